"""
Base Agent Class
"""

import logging
from pathlib import Path
from abc import ABC, abstractmethod
from typing import Dict, Any, Optional

from debate.llm_client import LLMClient
from debate.config import get_agent_config

logger = logging.getLogger(__name__)


class AgentError(Exception):
    """Raised when an agent cannot produce a result."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        agent_type: Optional[str] = None,
        original_error: Optional[BaseException] = None
    ):
        super().__init__(message)
        self.provider = provider
        self.agent_type = agent_type
        self.original_error = original_error


def handle_agent_error(error: BaseException, provider: Optional[str], agent_type: str) -> AgentError:
    """Wrap any exception raised inside an agent into an AgentError."""
    if isinstance(error, AgentError):
        return error
    logger.error(f"{agent_type} agent error ({provider}): {error}")
    return AgentError(
        f"{agent_type} agent failed: {error}",
        provider=provider,
        agent_type=agent_type,
        original_error=error
    )


class BaseAgent(ABC):
    """Abstract base class for all agents."""

    AGENT_NAME: str = "base"
    PROMPT_FILE: Optional[str] = None

    def __init__(self, llm_client: LLMClient):
        self.llm_client = llm_client
        self.config = get_agent_config(self.AGENT_NAME)
        self.prompts_dir = Path(__file__).parent.parent / 'prompts'
        logger.debug(f"Initialized {self.AGENT_NAME} agent")

    @abstractmethod
    def _get_system_prompt(self) -> str:
        """Return the default system prompt for this agent."""
        pass

    def _load_prompt_template(self, filename: str = None) -> str:
        """Load prompt template from file."""
        filename = filename or self.PROMPT_FILE
        try:
            path = self.prompts_dir / filename
            with open(path, 'r', encoding='utf-8') as f:
                return f.read()
        except Exception as e:
            logger.error(f"Failed to load prompt template {filename}: {e}")
            raise

    def _render(self, params: Dict[str, Any], filename: str = None) -> str:
        """Fill {key} placeholders without touching JSON braces in the template."""
        prompt = self._load_prompt_template(filename)
        for key, value in params.items():
            prompt = prompt.replace(f"{{{key}}}", str(value))
        return prompt

    def _provider(self, provider: str = None) -> str:
        return provider or self.config.get('provider') or self.llm_client.default_provider

    def _options(self, provider: str = None, **overrides) -> Dict[str, Any]:
        options = {
            'model': self.config.get('model'),
            'temperature': self.config.get('temperature', 0.7),
            'max_tokens': self.config.get('max_tokens', 2000),
            'provider': self._provider(provider),
        }
        options.update(overrides)
        return options

    def _complete(
        self,
        prompt: str,
        system: str = None,
        provider: str = None,
        **overrides
    ) -> Dict[str, Any]:
        """Send a single-prompt completion using this agent's settings."""
        messages = [
            {'role': 'system', 'content': system or self._get_system_prompt()},
            {'role': 'user', 'content': prompt}
        ]

        return self.llm_client.complete(messages=messages, **self._options(provider, **overrides))

    def _complete_json(
        self,
        prompt: str,
        system: str = None,
        provider: str = None,
        **overrides
    ) -> Dict[str, Any]:
        if system is None:
            system = f"{self._get_system_prompt()} Return JSON only."
        messages = [
            {'role': 'system', 'content': system},
            {'role': 'user', 'content': prompt}
        ]
        return self.llm_client.complete_json(messages=messages, **self._options(provider, **overrides))
