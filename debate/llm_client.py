"""
Multi-provider LLM Client
"""

import os
import json
import re
import time
import threading
import logging
from typing import Dict, Any, Optional, List, Tuple

import httpx

from debate.config import get_llm_config

logger = logging.getLogger(__name__)


class LLMError(Exception):
    """Base exception for LLM errors."""
    pass


class RateLimitError(LLMError):
    """Rate limit exceeded."""
    pass


PROVIDERS: Dict[str, Dict[str, str]] = {
    'groq': {
        'base_url': 'https://api.groq.com/openai/v1',
        'env': 'GROQ_API_KEY',
        'style': 'openai',
    },
    'openai': {
        'base_url': 'https://api.openai.com/v1',
        'env': 'OPENAI_API_KEY',
        'style': 'openai',
    },
    'openrouter': {
        'base_url': 'https://openrouter.ai/api/v1',
        'env': 'OPENROUTER_API_KEY',
        'style': 'openai',
    },
    'anthropic': {
        'base_url': 'https://api.anthropic.com/v1',
        'env': 'ANTHROPIC_API_KEY',
        'style': 'anthropic',
    },
}

ANTHROPIC_VERSION = '2023-06-01'


def extract_json(content: str) -> Optional[Any]:
    """
    Pull a JSON value out of an LLM reply.

    Tries, in order: the whole reply, a fenced ```json block and the first
    brace-balanced object that parses. Returns None when nothing parses.
    """
    if not content:
        return None

    try:
        return json.loads(content)
    except (json.JSONDecodeError, TypeError):
        pass

    json_block = re.search(r'```(?:json|JSON)?\s*(\{.*?\}|\[.*?\])\s*```', content, re.DOTALL)
    if json_block:
        try:
            return json.loads(json_block.group(1))
        except json.JSONDecodeError:
            logger.warning("Found markdown block but failed to parse JSON content.")

    starts = [i for i, char in enumerate(content) if char == '{']
    for start in starts:
        balance = 0
        for i in range(start, len(content)):
            if content[i] == '{':
                balance += 1
            elif content[i] == '}':
                balance -= 1
            if balance == 0:
                try:
                    return json.loads(content[start:i + 1])
                except json.JSONDecodeError:
                    break

    return None


class LLMClient:
    """Chat-completion client for Groq, OpenAI, OpenRouter and Anthropic."""

    def __init__(
        self,
        provider: str = None,
        api_keys: Dict[str, str] = None,
        timeout: float = None,
        max_retries: int = None,
        backoff: float = None
    ):
        config = get_llm_config()
        self.default_provider = (provider or config.get('provider', 'groq')).lower()
        self.api_keys = {k: v for k, v in (api_keys or {}).items() if v}
        self.timeout = timeout or config.get('timeout_seconds', 60.0)
        self.max_retries = max(1, max_retries or config.get('max_retries', 3))
        self.backoff = backoff if backoff is not None else config.get('backoff_seconds', 2.0)
        self.models = config.get('models', {})

        self._clients: Dict[str, httpx.Client] = {}
        self._lock = threading.Lock()

        if self.default_provider not in PROVIDERS:
            raise LLMError(f"Unsupported AI provider: {self.default_provider}")

        logger.info(f"LLM client initialized (default provider: {self.default_provider})")

    def _api_key(self, provider: str) -> Optional[str]:
        return self.api_keys.get(provider) or os.getenv(PROVIDERS[provider]['env'])

    def has_credentials(self, provider: str = None) -> bool:
        provider = (provider or self.default_provider).lower()
        return provider in PROVIDERS and bool(self._api_key(provider))

    def available_providers(self) -> List[str]:
        return [name for name in PROVIDERS if self._api_key(name)]

    def default_model(self, provider: str = None) -> str:
        provider = (provider or self.default_provider).lower()
        return self.models.get(provider, '')

    def _get_client(self, provider: str) -> httpx.Client:
        """Lazily create one HTTP client per provider."""
        with self._lock:
            client = self._clients.get(provider)
            if client is not None:
                return client

            spec = PROVIDERS[provider]
            api_key = self._api_key(provider)
            if not api_key:
                raise LLMError(f"{spec['env']} environment variable is required")

            headers = {'Content-Type': 'application/json'}
            if spec['style'] == 'anthropic':
                headers['x-api-key'] = api_key
                headers['anthropic-version'] = ANTHROPIC_VERSION
            else:
                headers['Authorization'] = f'Bearer {api_key}'

            client = httpx.Client(base_url=spec['base_url'], timeout=self.timeout, headers=headers)
            self._clients[provider] = client
            return client

    def _build_request(
        self,
        provider: str,
        messages: List[Dict[str, str]],
        model: str,
        temperature: float,
        max_tokens: int,
        extra: Dict[str, Any]
    ) -> Tuple[str, Dict[str, Any]]:
        if PROVIDERS[provider]['style'] == 'anthropic':
            system = "\n\n".join(m['content'] for m in messages if m.get('role') == 'system')
            payload = {
                'model': model,
                'messages': [m for m in messages if m.get('role') != 'system'],
                'temperature': temperature,
                'max_tokens': max_tokens,
            }
            if system:
                payload['system'] = system
            # response_format is an OpenAI-style option only
            extra = {k: v for k, v in extra.items() if k != 'response_format'}
            payload.update(extra)
            return '/messages', payload

        payload = {
            'model': model,
            'messages': messages,
            'temperature': temperature,
            'max_tokens': max_tokens,
            **extra
        }
        return '/chat/completions', payload

    def _parse_response(self, provider: str, data: Dict[str, Any]) -> Tuple[str, Dict[str, Any]]:
        if PROVIDERS[provider]['style'] == 'anthropic':
            blocks = data.get('content') or []
            content = ''.join(b.get('text', '') for b in blocks if b.get('type', 'text') == 'text')
            return content, data.get('usage', {})
        return data['choices'][0]['message']['content'] or '', data.get('usage', {})

    def complete(
        self,
        messages: List[Dict[str, str]],
        model: str = None,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        provider: str = None,
        **kwargs
    ) -> Dict[str, Any]:
        """Generate a completion."""
        provider = (provider or self.default_provider).lower()
        if provider not in PROVIDERS:
            raise LLMError(f"Unsupported AI provider: {provider}")

        model = model or self.default_model(provider)
        client = self._get_client(provider)
        path, payload = self._build_request(provider, messages, model, temperature, max_tokens, kwargs)

        start_time = time.time()
        for attempt in range(self.max_retries):
            try:
                logger.info(f"Sending request to {provider}/{model} (Attempt {attempt + 1}/{self.max_retries})")
                response = client.post(path, json=payload)
            except httpx.HTTPError as e:
                if attempt == self.max_retries - 1:
                    logger.error(f"LLM completion error: {e}")
                    raise LLMError(f"Completion failed: {e}") from e
                sleep_time = self.backoff * (2 ** attempt)
                logger.warning(f"Transport error from {provider}: {e}. Retrying in {sleep_time}s...")
                time.sleep(sleep_time)
                continue

            if response.status_code == 429:
                if attempt < self.max_retries - 1:
                    sleep_time = self.backoff * (2 ** attempt)
                    logger.warning(f"Rate limited (429). Retrying in {sleep_time}s...")
                    time.sleep(sleep_time)
                    continue
                logger.error("Rate limit exceeded after retries")
                raise RateLimitError("Rate limit exceeded")

            if response.is_error:
                if response.status_code == 401:
                    logger.error(f"401 Unauthorized from {provider}: invalid API key")
                logger.error(f"{provider} Error Status: {response.status_code}")
                logger.error(f"{provider} Error Body: {response.text}")
                raise LLMError(f"{provider} API error {response.status_code}")

            try:
                data = response.json()
                content, usage = self._parse_response(provider, data)
            except (ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
                logger.error(f"Malformed {provider} response: {e}")
                raise LLMError(f"Malformed response from {provider}: {e}") from e
            logger.info(f"Request successful. Tokens: {usage.get('total_tokens', 'unknown')}")

            return {
                'content': content,
                'model': data.get('model', model),
                'usage': usage,
                'elapsed': time.time() - start_time,
                'provider': provider
            }

        raise LLMError("Completion failed: no attempts made")

    def generate_text(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int = 2000,
        provider: str = None,
        model: str = None
    ) -> str:
        """Join message contents into a single prompt and return the reply text."""
        prompt = "\n\n".join(m.get('content', '') for m in messages)
        try:
            response = self.complete(
                messages=[{'role': 'user', 'content': prompt}],
                model=model,
                temperature=temperature,
                max_tokens=max_tokens,
                provider=provider
            )
            return response['content']
        except LLMError as e:
            logger.error(f"Text generation error: {e}")
            raise LLMError(f"Failed to generate text: {e}") from e

    def complete_json(self, messages: List[Dict[str, str]], **kwargs) -> Dict[str, Any]:
        """Generate a completion and parse JSON out of it."""
        response = self.complete(messages=messages, **kwargs)
        parsed = extract_json(response['content'])
        response['parsed'] = parsed
        if parsed is None:
            logger.warning("Failed to parse JSON from completion")
            logger.debug(f"Raw content: {response['content']}")
            response['parse_error'] = 'No JSON object found'
        return response

    def close(self):
        with self._lock:
            for client in self._clients.values():
                client.close()
            self._clients = {}
