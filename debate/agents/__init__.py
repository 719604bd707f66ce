"""
Agent Module Exports
"""

from debate.agents.base_agent import BaseAgent, AgentError, handle_agent_error
from debate.agents.debate_agent import DebateAgent
from debate.agents.validator_agent import ValidatorAgent
from debate.agents.distributor_agent import TaskDistributorAgent
from debate.agents.report_agent import ReportGeneratorAgent
from debate.agents.search_agent import SearchEngineAgent
from debate.agents.voice_agent import VoiceCommandAgent

__all__ = [
    'BaseAgent',
    'AgentError',
    'handle_agent_error',
    'DebateAgent',
    'ValidatorAgent',
    'TaskDistributorAgent',
    'ReportGeneratorAgent',
    'SearchEngineAgent',
    'VoiceCommandAgent'
]
