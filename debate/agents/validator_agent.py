"""
Validator Agent - checks agent responses for logic and evidence.
"""

import re
import logging
from typing import Dict, Any, List, Optional

from debate.agents.base_agent import BaseAgent, handle_agent_error
from debate.models import AgentResponse, ValidationResult

logger = logging.getLogger(__name__)

DEFAULT_CRITERIA = [
    "Accuracy and factual correctness",
    "Relevance to the original query",
    "Logical consistency",
    "Completeness of the response",
    "Clarity and coherence",
    "Evidence and supporting arguments",
]


def _split_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(',') if item.strip()]


def _parse_confidence(value: str) -> int:
    """Leading integer clamped to 0-100; 50 when there is none."""
    match = re.match(r'\s*([+-]?\d+)', value or '')
    if not match:
        return 50
    return max(0, min(100, int(match.group(1))))


def parse_validation_text(text: str, expected_count: int) -> List[ValidationResult]:
    """Parse [VALIDATION_START] ... [VALIDATION_END] blocks and pad to expected_count."""
    results: List[ValidationResult] = []
    blocks = (text or '').split('[VALIDATION_START]')[1:]

    for index, block in enumerate(blocks):
        if '[VALIDATION_END]' not in block:
            continue

        fields: Dict[str, str] = {}
        for line in block.split('[VALIDATION_END]')[0].strip().splitlines():
            if ':' not in line:
                continue
            key, value = line.split(':', 1)
            fields[key.strip().lower()] = value.strip()

        # an empty VALID or CONFIDENCE line still counts as present
        if not fields.get('claim') or 'valid' not in fields or 'confidence' not in fields:
            continue

        fallacies = fields.get('fallacies', '')
        results.append(ValidationResult(
            id=fields.get('id') or f"validation-{index}",
            claim=fields['claim'],
            is_valid=fields['valid'].lower() == 'true',
            confidence=_parse_confidence(fields['confidence']),
            evidence=fields.get('evidence') or "No evidence provided",
            logical_fallacies=[] if fallacies.lower() in ('', 'none') else _split_list(fallacies),
            supporting_facts=_split_list(fields.get('facts', ''))
        ))

    while len(results) < expected_count:
        results.append(ValidationResult(
            id=f"validation-{len(results)}",
            claim="Unable to parse validation",
            is_valid=True,
            confidence=50,
            evidence="Parsing error occurred"
        ))

    return results


def fallback_validations(responses: List[AgentResponse]) -> List[ValidationResult]:
    return [
        ValidationResult(
            id=f"validation-{i}",
            claim=r.response[:100] + "...",
            is_valid=True,
            confidence=50,
            evidence="Fallback validation due to error"
        )
        for i, r in enumerate(responses)
    ]


def template_validations(responses: List[AgentResponse], include_reasoning: bool = True) -> List[ValidationResult]:
    """
    Rule-based validation used when the validator LLM call fails during a flow.

    Produces three generic checks (four with include_reasoning) scored from the
    responses' own confidence values.
    """
    templates = [
        {
            'claim': "Logical consistency of arguments presented",
            'evidence': "Arguments follow clear logical structure with premises leading to conclusions",
            'fallacies': [],
            'facts': ["Structured reasoning", "Clear premise-conclusion flow"],
        },
        {
            'claim': "Quality and reliability of evidence cited",
            'evidence': (
                "Evidence sources vary in quality; some claims well-supported, "
                "others require additional verification"
            ),
            'fallacies': ["Low confidence indicators"] if any(r.confidence < 50 for r in responses) else [],
            'facts': [f"{r.agent_name} provided evidence" for r in responses if r.evidence],
        },
        {
            'claim': "Balanced consideration of multiple perspectives",
            'evidence': f"Analysis includes {len(responses)} different perspectives with varying confidence levels",
            'fallacies': [],
            'facts': [
                f"{r.agent_name}: {r.sentiment} perspective ({r.confidence}% confidence)" for r in responses
            ],
        },
    ]
    if include_reasoning:
        templates.append({
            'claim': "Reasoning quality and logical structure",
            'evidence': "Reasoning chains provided with varying levels of detail and logical rigor",
            'fallacies': ["Insufficient reasoning provided"] if any(not r.reasoning for r in responses) else [],
            'facts': [f"{r.agent_name} provided reasoning chain" for r in responses if r.reasoning],
        })

    is_valid = any(r.confidence > 60 for r in responses)
    confidence = max((r.confidence for r in responses), default=0) or 50

    return [
        ValidationResult(
            id=f"validation_{i + 1}",
            claim=t['claim'],
            is_valid=is_valid,
            confidence=confidence,
            evidence=t['evidence'],
            logical_fallacies=t['fallacies'],
            supporting_facts=t['facts'],
            selected=False
        )
        for i, t in enumerate(templates)
    ]


class ValidatorAgent(BaseAgent):
    """Validates debate responses, either as text blocks or as a scored evaluation."""

    AGENT_NAME = "validator"
    PROMPT_FILE = "validation.txt"

    def _get_system_prompt(self) -> str:
        return "You check debate arguments for logic and evidence. Follow the requested output format exactly."

    def validate(
        self,
        responses: List[AgentResponse],
        query: str,
        provider: str = None,
        fallback: bool = True
    ) -> List[ValidationResult]:
        """Validate responses; with fallback=False LLM failures propagate as AgentError."""
        if not responses:
            raise ValueError("No responses to validate")

        responses_text = "\n\n".join(
            f"{i + 1}. {r.agent_name} ({r.role}): {r.response}"
            for i, r in enumerate(responses)
        )
        prompt = self._render({'query': query, 'responses': responses_text})

        try:
            result = self._complete(prompt, provider=provider)
        except Exception as e:
            if not fallback:
                raise handle_agent_error(e, self._provider(provider), self.AGENT_NAME) from e
            logger.error(f"Validation failed, using fallback: {e}")
            return fallback_validations(responses)

        return parse_validation_text(result['content'], len(responses))

    def evaluate(
        self,
        query: str,
        responses: List[Dict[str, Any]],
        criteria: Optional[List[str]] = None,
        provider: str = None
    ) -> Dict[str, Any]:
        """Score stored responses against evaluation criteria."""
        criteria = criteria or DEFAULT_CRITERIA
        responses_text = "\n\n".join(
            f"Response ID: {r.get('id')}\nAgent: {r.get('agent_name', 'Unknown')}\n{r.get('response', '')}"
            for r in responses
        )
        prompt = self._render(
            {
                'query': query,
                'criteria': "\n".join(f"- {c}" for c in criteria),
                'responses': responses_text,
            },
            filename="evaluation.txt"
        )

        try:
            result = self._complete_json(prompt, provider=provider)
        except Exception as e:
            logger.error(f"Evaluation error: {e}")
            return {'success': False, 'error': str(e), 'validation': None}

        parsed = result.get('parsed')
        if not isinstance(parsed, dict):
            return {'success': False, 'error': 'Invalid evaluation format', 'validation': None}

        return {
            'success': True,
            'validation': self._normalize_evaluation(parsed),
            'usage': result.get('usage', {})
        }

    def _normalize_evaluation(self, data: Dict[str, Any]) -> Dict[str, Any]:
        def score(value: Any) -> float:
            try:
                return max(0.0, min(100.0, float(value)))
            except (TypeError, ValueError):
                return 0.0

        consensus = data.get('consensus') or {}
        next_steps = data.get('nextSteps') or {}

        return {
            'overallScore': score(data.get('overallScore')),
            'responses': [
                {
                    'responseId': str(r.get('responseId', '')),
                    'score': score(r.get('score')),
                    'strengths': list(r.get('strengths') or []),
                    'weaknesses': list(r.get('weaknesses') or []),
                    'suggestions': list(r.get('suggestions') or []),
                    'isAcceptable': bool(r.get('isAcceptable', False)),
                }
                for r in data.get('responses') or [] if isinstance(r, dict)
            ],
            'consensus': {
                'hasConsensus': bool(consensus.get('hasConsensus', False)),
                'consensusPoints': list(consensus.get('consensusPoints') or []),
                'disagreements': list(consensus.get('disagreements') or []),
            },
            'nextSteps': {
                'shouldContinue': bool(next_steps.get('shouldContinue', False)),
                'recommendedActions': list(next_steps.get('recommendedActions') or []),
                'focusAreas': list(next_steps.get('focusAreas') or []),
            },
        }
