"""
Report Generator Agent
"""

import re
import logging
from typing import Dict, Any, List, Optional

from debate.agents.base_agent import BaseAgent
from debate.config import get_agent_config
from debate.models import AgentResponse, ValidationResult

logger = logging.getLogger(__name__)

REPORT_TYPES = ('interim', 'final', 'summary')

EMPTY_INSIGHTS = [
    "Multiple perspectives were presented with varying degrees of evidence.",
    "Further analysis may be needed to reach definitive conclusions.",
    "The debate highlighted important considerations for decision-making.",
]

ERROR_INSIGHTS = [
    "Analysis completed with multiple agent perspectives.",
    "Various arguments and evidence were presented.",
    "Further review of the responses may provide additional insights.",
]


def _truncate(text: str, limit: int = 200) -> str:
    return f"{(text or '')[:limit]}..."


class ReportGeneratorAgent(BaseAgent):
    """Writes session reports and short debate insights."""

    AGENT_NAME = "report"
    PROMPT_FILE = "report.txt"

    def _get_system_prompt(self) -> str:
        return "You write clear, well-structured debate reports in Markdown."

    def generate_report(self, session_data: Dict[str, Any], report_type: str = 'final') -> Dict[str, Any]:
        """
        Produce a markdown report for a session.

        session_data carries title, initial_query, rounds (each with round_number
        and responses of agent_name/response) and optional feedback entries.
        """
        report_type = report_type.lower() if report_type.lower() in REPORT_TYPES else 'final'

        rounds_text = []
        for rnd in session_data.get('rounds', []):
            lines = [f"Round {rnd.get('round_number')}:"]
            for response in rnd.get('responses', []):
                lines.append(f"- {response.get('agent_name', 'Agent')}: {_truncate(response.get('response'))}")
            rounds_text.append("\n".join(lines))

        feedback = [f.get('feedback_text') for f in session_data.get('feedback', []) if f.get('feedback_text')]
        feedback_text = ""
        if feedback:
            feedback_text = "\nUser Feedback:\n" + "\n".join(f"- {f}" for f in feedback) + "\n"

        prompt = self._render({
            'report_type': report_type,
            'title': session_data.get('title', 'Debate Session'),
            'query': session_data.get('initial_query', ''),
            'rounds': "\n\n".join(rounds_text) or "No rounds recorded.",
            'feedback': feedback_text,
        })

        try:
            result = self._complete(prompt)
        except Exception as e:
            logger.error(f"Report generation error: {e}")
            return {'success': False, 'error': str(e), 'report': ''}

        return {'success': True, 'report': result['content'], 'usage': result.get('usage', {})}

    def generate_insights(
        self,
        responses: List[AgentResponse],
        validations: List[ValidationResult],
        user_feedback: Optional[str] = None
    ) -> List[str]:
        if not responses:
            raise ValueError("No responses to analyze")

        responses_text = "\n".join(
            f"{r.agent_name} ({r.role}): {_truncate(r.response)}" for r in responses
        )
        validations_text = "\n".join(
            f"- {v.claim}: {'Valid' if v.is_valid else 'Invalid'} ({v.confidence}% confidence)"
            for v in validations
        )
        prompt = self._render(
            {
                'responses': responses_text,
                'validations': validations_text or "None",
                'feedback': f"\nUser Feedback: {user_feedback}\n" if user_feedback else "",
            },
            filename="insights.txt"
        )

        insights_config = get_agent_config('insights')
        try:
            result = self._complete(
                prompt,
                temperature=insights_config.get('temperature', 0.6),
                max_tokens=insights_config.get('max_tokens', 1000)
            )
        except Exception as e:
            logger.error(f"Insights generation error: {e}")
            return list(ERROR_INSIGHTS)

        insights = [
            re.sub(r'^\d+\.\s*', '', line.strip())
            for line in result['content'].splitlines()
            if re.match(r'^\d+\.', line.strip())
        ]
        insights = [i for i in insights if i]
        return insights or list(EMPTY_INSIGHTS)
