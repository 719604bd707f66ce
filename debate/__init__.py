"""
Debate Package - Multi-Agent Debate Coordination
"""

from debate.orchestrator import DebateOrchestrator, FlowError, FlowNotFound
from debate.llm_client import LLMClient, LLMError, RateLimitError
from debate.config import get_config, load_config, get_agent_config, get_flow_config

__all__ = [
    'DebateOrchestrator',
    'FlowError',
    'FlowNotFound',
    'LLMClient',
    'LLMError',
    'RateLimitError',
    'get_config',
    'load_config',
    'get_agent_config',
    'get_flow_config'
]
