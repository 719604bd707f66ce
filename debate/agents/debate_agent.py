"""
Debate Agent - generates one agent's position on a query.
"""

import re
import time
import logging
from typing import List, Optional

from debate.agents.base_agent import BaseAgent, handle_agent_error
from debate.models import AgentProfile, AgentResponse, AgentRole, Sentiment, slugify_name

logger = logging.getLogger(__name__)


ROLE_PROMPTS = {
    AgentRole.ADVOCATE: (
        "You are an advocate agent in a structured debate. Build the strongest possible case "
        "in favor of the position raised by the query. Support every argument with evidence, "
        "state your confidence level explicitly as a number from 0 to 100, and explain your "
        "reasoning step by step. When data would help, describe it so it can be rendered as a "
        "Mermaid diagram or a Chart.js chart."
    ),
    AgentRole.OPPONENT: (
        "You are an opponent agent in a structured debate. Critically examine the position "
        "raised by the query, identify weaknesses, risks and counter-evidence, and argue the "
        "opposing case. State your confidence level explicitly as a number from 0 to 100 and "
        "back every objection with reasoning."
    ),
    AgentRole.MODERATOR: (
        "You are a moderator agent in a structured debate. Weigh the arguments on all sides "
        "objectively, highlight common ground and unresolved disagreements, and give a "
        "balanced assessment. State your confidence level explicitly as a number from 0 to 100."
    ),
}

POSITIVE_WORDS = ['support', 'agree', 'excellent', 'strong', 'compelling', 'effective', 'beneficial', 'advantage']
NEGATIVE_WORDS = ['oppose', 'disagree', 'weak', 'flawed', 'problematic', 'concerning', 'disadvantage', 'harmful']

REASONING_PATTERNS = [
    r'(?:because|since|due to|given that|considering)[^.!?]*[.!?]',
    r'(?:therefore|thus|consequently|as a result)[^.!?]*[.!?]',
    r'(?:first|second|third|finally|moreover|furthermore)[^.!?]*[.!?]',
]

EVIDENCE_PATTERNS = [
    r'(?:studies show|research indicates|data suggests|evidence shows)[^.!?]*[.!?]',
    r'(?:according to|based on|statistics show)[^.!?]*[.!?]',
    r'(?:for example|for instance|such as)[^.!?]*[.!?]',
]

DEFAULT_CONFIDENCE = 75


def extract_confidence(text: str) -> int:
    match = re.search(r'confidence[:\s]*([0-9]+)', text, re.IGNORECASE)
    if not match:
        match = re.search(r'([0-9]+)%?\s*confident', text, re.IGNORECASE)
    if not match:
        return DEFAULT_CONFIDENCE
    return max(0, min(100, int(match.group(1))))


def analyze_sentiment(text: str) -> str:
    lower = text.lower()
    positive = sum(lower.count(word) for word in POSITIVE_WORDS)
    negative = sum(lower.count(word) for word in NEGATIVE_WORDS)
    if positive > negative:
        return Sentiment.POSITIVE.value
    if negative > positive:
        return Sentiment.NEGATIVE.value
    return Sentiment.NEUTRAL.value


def _extract_sentences(text: str, patterns: List[str], limit: int = 5) -> List[str]:
    found = []
    for pattern in patterns:
        for match in re.findall(pattern, text, re.IGNORECASE):
            sentence = match.strip()
            if len(sentence) > 10:
                found.append(sentence)
    return found[:limit]


def extract_reasoning(text: str) -> List[str]:
    return _extract_sentences(text, REASONING_PATTERNS)


def extract_evidence(text: str) -> List[str]:
    return _extract_sentences(text, EVIDENCE_PATTERNS)


def extract_response_points(text: str, limit: int = 5) -> List[str]:
    """Split a response into sentence-sized points for streaming."""
    points = [p.strip() for p in re.split(r'[.!?]\s+', text or '')]
    return [p for p in points if len(p) > 10][:limit]


class DebateAgent(BaseAgent):
    """Generates a single agent's answer for a debate round."""

    AGENT_NAME = "debate"
    PROMPT_FILE = "agent_response.txt"

    def _get_system_prompt(self) -> str:
        return "You are a debate participant. Argue from the perspective you are given and support claims with evidence."

    def build_prompt(self, profile: AgentProfile, query: str, context: Optional[str] = None) -> str:
        return self._render({
            'system_prompt': profile.system_prompt or ROLE_PROMPTS[profile.role],
            'context': context or "No additional context provided",
            'query': query,
        })

    def generate_response(
        self,
        profile: AgentProfile,
        query: str,
        context: Optional[str] = None,
        provider: str = None
    ) -> AgentResponse:
        """Ask the LLM for this agent's position and analyze the reply."""
        start_time = time.time()
        provider = self._provider(provider)

        try:
            prompt = self.build_prompt(profile, query, context)
            result = self._complete(prompt, provider=provider)
        except Exception as e:
            raise handle_agent_error(e, provider, self.AGENT_NAME) from e

        text = result['content']
        agent_id = profile.id or slugify_name(profile.name)
        logger.info(f"[{profile.name}] response generated in {result.get('elapsed', 0):.2f}s")

        return AgentResponse(
            agent_id=agent_id,
            agent_name=profile.name,
            role=profile.role.value,
            response=text,
            confidence=extract_confidence(text),
            sentiment=analyze_sentiment(text),
            processing_time=int((time.time() - start_time) * 1000),
            reasoning=extract_reasoning(text),
            evidence=extract_evidence(text)
        )
