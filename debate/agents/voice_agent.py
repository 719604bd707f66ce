"""
Voice Command Agent
"""

import json
import logging
from typing import Dict, Any, Optional

from debate.agents.base_agent import BaseAgent, AgentError, handle_agent_error

logger = logging.getLogger(__name__)

INTENTS = ('navigation', 'query', 'action', 'system')


class VoiceCommandAgent(BaseAgent):
    """Turns a spoken dashboard command into a structured intent."""

    AGENT_NAME = "voice"
    PROMPT_FILE = "voice.txt"

    def _get_system_prompt(self, user_context: Optional[Dict[str, Any]] = None) -> str:
        user_context = user_context or {}
        return self._render({
            'current_path': user_context.get('currentPath', '/'),
            'user_context': json.dumps(user_context),
        })

    def process(self, command: str, user_context: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if not command or not command.strip():
            raise ValueError("Command is required")

        system = self._get_system_prompt(user_context)
        provider = self._provider()

        try:
            response = self._complete_json(
                command.strip(),
                system=system,
                response_format={'type': 'json_object'}
            )
        except Exception as e:
            raise handle_agent_error(e, provider, self.AGENT_NAME) from e

        parsed = response.get('parsed')
        if not isinstance(parsed, dict):
            raise AgentError("Invalid response from voice model", provider, self.AGENT_NAME)

        intent = str(parsed.get('intent', 'query')).lower()
        try:
            confidence = max(0.0, min(1.0, float(parsed.get('confidence', 0.5))))
        except (TypeError, ValueError):
            confidence = 0.5

        return {
            'intent': intent if intent in INTENTS else 'query',
            'action': parsed.get('action', ''),
            'targetPath': parsed.get('targetPath'),
            'parameters': parsed.get('parameters') or {},
            'confidence': confidence,
            'response': parsed.get('response', ''),
        }
