"""
Task Distributor Agent
"""

import math
import logging
from typing import Dict, Any, List, Optional

from debate.agents.base_agent import BaseAgent

logger = logging.getLogger(__name__)

PRIORITIES = ('low', 'medium', 'high', 'critical')


def estimate_processing_time(query: str, agent_count: int, provider: str = 'openai') -> int:
    """Rough milliseconds a round will take for the given query and agent count."""
    base_time = 5000
    complexity = min(len(query) / 100, 5)
    agent_factor = math.log(agent_count + 1)
    provider_factor = 1.2 if provider == 'anthropic' else 1.0
    return round(base_time * complexity * agent_factor * provider_factor)


def _clamp(value: Any, low: float, high: float, default: float) -> float:
    try:
        return max(low, min(high, float(value)))
    except (TypeError, ValueError):
        return default


def fallback_distribution(query: str, agents: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Give every agent the whole query as a single task."""
    tasks = []
    recommended = []
    for i, agent in enumerate(agents):
        task_id = f"task-{i + 1}"
        tasks.append({
            'id': task_id,
            'title': f"Analysis by {agent.get('name', 'agent')}",
            'description': query,
            'priority': 'medium',
            'requiredExpertise': [],
            'estimatedComplexity': 5,
        })
        recommended.append({
            'agentId': str(agent.get('id')),
            'taskIds': [task_id],
            'reasoning': 'Default assignment',
            'confidence': 0.5,
        })
    return {
        'tasks': tasks,
        'recommendedAgents': recommended,
        'overallStrategy': 'Each agent analyzes the full query independently.',
    }


class TaskDistributorAgent(BaseAgent):
    """Breaks a query into tasks and assigns them to agents."""

    AGENT_NAME = "distributor"
    PROMPT_FILE = "distribution.txt"

    def _get_system_prompt(self) -> str:
        return "You are the task distributor for a multi-agent debate."

    def distribute(
        self,
        query: str,
        available_agents: List[Dict[str, Any]],
        context: Optional[str] = None,
        provider: str = None
    ) -> Dict[str, Any]:
        agents_text = "\n".join(
            f"- {a.get('name')}: {a.get('description') or 'No description'}\n"
            f"  Expertise: {(a.get('prompt') or '')[:200]}..."
            for a in available_agents
        )
        prompt = self._render({
            'agents': agents_text,
            'context': f"\nAdditional Context: {context}\n" if context else "",
            'query': query,
        })

        try:
            result = self._complete_json(prompt, provider=provider)
        except Exception as e:
            logger.error(f"Task distribution error: {e}")
            return {'success': False, 'error': str(e)}

        parsed = result.get('parsed')
        if not isinstance(parsed, dict):
            return {'success': False, 'error': 'Invalid distribution format'}

        return {
            'success': True,
            'distribution': self._normalize(parsed),
            'usage': result.get('usage', {})
        }

    def _normalize(self, data: Dict[str, Any]) -> Dict[str, Any]:
        tasks = []
        for i, task in enumerate(data.get('tasks') or []):
            if not isinstance(task, dict):
                continue
            priority = str(task.get('priority', 'medium')).lower()
            tasks.append({
                'id': str(task.get('id') or f"task-{i + 1}"),
                'title': task.get('title', ''),
                'description': task.get('description', ''),
                'priority': priority if priority in PRIORITIES else 'medium',
                'requiredExpertise': list(task.get('requiredExpertise') or []),
                'estimatedComplexity': int(_clamp(task.get('estimatedComplexity'), 1, 10, 5)),
            })

        recommended = [
            {
                'agentId': str(r.get('agentId', '')),
                'taskIds': [str(t) for t in r.get('taskIds') or []],
                'reasoning': r.get('reasoning', ''),
                'confidence': _clamp(r.get('confidence'), 0.0, 1.0, 0.5),
            }
            for r in data.get('recommendedAgents') or [] if isinstance(r, dict)
        ]

        return {
            'tasks': tasks,
            'recommendedAgents': recommended,
            'overallStrategy': data.get('overallStrategy', ''),
        }
