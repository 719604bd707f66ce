"""
Flow Context Manager

Carries what was learned in one debate iteration (kept and rejected points,
validator feedback, user instructions) into the prompt of the next one.
"""

import json
import time
import random
import string
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional

from debate.config import get_flow_config
from debate.models import average

logger = logging.getLogger(__name__)

MAX_HISTORY = 10

AUTO_INSTRUCTIONS = (
    "Focus on improving the quality and accuracy of responses. "
    "Address any logical fallacies identified in previous iteration. "
    "Maintain high confidence levels (>70%) in all claims."
)


def _require_objects(items: Any, label: str) -> List[Dict[str, Any]]:
    if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
        raise ValueError(f"{label} must be a list of objects")
    return items


def _confidence(value: Any) -> Optional[float]:
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        raise ValueError("Validation confidence must be a number")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValueError("Validation confidence must be a number") from None


def generate_context_id() -> str:
    suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"ctx_{int(time.time() * 1000)}_{suffix}"


@dataclass
class ValidatorPoint:
    id: str
    content: str
    agentId: str
    agentName: str
    feedback: str = ""
    confidence: Optional[int] = None


@dataclass
class AgentFeedbackSummary:
    agentId: str
    agentName: str
    overallFeedback: str
    pointsKept: int
    pointsRemoved: int
    totalPoints: int


@dataclass
class FlowContext:
    id: str
    originalQuestion: str
    contextUpdates: str = ""
    additionalInstructions: str = ""
    validatorResponses: List[Dict[str, Any]] = field(default_factory=list)
    selectedAgents: List[str] = field(default_factory=list)
    enabledSystemAgents: List[str] = field(default_factory=list)
    iterationCount: int = 1
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    keptPoints: List[ValidatorPoint] = field(default_factory=list)
    removedPoints: List[ValidatorPoint] = field(default_factory=list)
    feedbackSummary: List[AgentFeedbackSummary] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FlowContext':
        return cls(
            id=data['id'],
            originalQuestion=data['originalQuestion'],
            contextUpdates=data.get('contextUpdates', ''),
            additionalInstructions=data.get('additionalInstructions', ''),
            validatorResponses=list(data.get('validatorResponses') or []),
            selectedAgents=list(data.get('selectedAgents') or []),
            enabledSystemAgents=list(data.get('enabledSystemAgents') or []),
            iterationCount=int(data.get('iterationCount', 1)),
            timestamp=data.get('timestamp') or datetime.now(timezone.utc).isoformat(),
            keptPoints=[ValidatorPoint(**p) for p in data.get('keptPoints') or []],
            removedPoints=[ValidatorPoint(**p) for p in data.get('removedPoints') or []],
            feedbackSummary=[AgentFeedbackSummary(**s) for s in data.get('feedbackSummary') or []]
        )


def _group_by_agent(points: List[ValidatorPoint]) -> Dict[str, List[ValidatorPoint]]:
    grouped: Dict[str, List[ValidatorPoint]] = {}
    for point in points:
        grouped.setdefault(point.agentName, []).append(point)
    return grouped


class ContextManager:
    """Current flow context plus a bounded history, optionally persisted per session."""

    def __init__(self, store=None, session_id: Optional[str] = None):
        self.store = store
        self.session_id = session_id
        self.current: Optional[FlowContext] = None
        self.history: List[FlowContext] = []

        if store is not None and session_id:
            saved = [FlowContext.from_dict(c) for c in store.get_history(session_id, limit=MAX_HISTORY + 1)]
            if saved:
                self.current, self.history = saved[0], saved[1:]

    def _next_iteration(self) -> int:
        return self.current.iterationCount + 1 if self.current else 1

    def _update(self, context: FlowContext) -> None:
        if self.current:
            self.history.insert(0, self.current)
            self.history = self.history[:MAX_HISTORY]
        self.current = context
        if self.store is not None and self.session_id:
            self.store.save_context(self.session_id, context.to_dict())

    def process_validation_data(
        self,
        validations: List[Dict[str, Any]],
        original_question: str,
        selected_agents: List[str]
    ) -> FlowContext:
        """Keep valid, high-confidence claims and build the next iteration's context."""
        _require_objects(validations, "validations")
        confidences = [_confidence(r.get('confidence')) for r in validations]
        threshold = get_flow_config().get('validation_keep_threshold', 70)
        kept: List[ValidatorPoint] = []
        removed: List[ValidatorPoint] = []

        for index, (result, confidence) in enumerate(zip(validations, confidences)):
            fallacies = result.get('logicalFallacies') or []
            point = ValidatorPoint(
                id=f"validation_{index}",
                content=f"{result.get('claim', '')}: {result.get('evidence', '')}",
                agentId='validator_agent',
                agentName='Validator Agent',
                feedback=f"Logical issues: {', '.join(str(f) for f in fallacies)}" if fallacies else '',
                confidence=result.get('confidence')
            )
            if result.get('isValid') and (confidence or 0) >= threshold:
                kept.append(point)
            else:
                removed.append(point)

        valid_count = sum(1 for r in validations if r.get('isValid'))
        avg_confidence = average([c or 0 for c in confidences])

        context_updates = (
            "Automated regeneration based on validation results:\n"
            f"- {valid_count}/{len(validations)} claims validated as correct\n"
            f"- Average confidence: {avg_confidence:.1f}%\n"
            f"- {len(kept)} high-confidence points retained\n"
            f"- {len(removed)} low-confidence points removed for refinement"
        )

        summary = AgentFeedbackSummary(
            agentId='validator_agent',
            agentName='Validator Agent',
            overallFeedback=(
                f"Automated analysis completed. {valid_count} claims validated "
                f"with average confidence of {avg_confidence:.1f}%."
            ),
            pointsKept=len(kept),
            pointsRemoved=len(removed),
            totalPoints=len(validations)
        )

        context = FlowContext(
            id=generate_context_id(),
            originalQuestion=original_question,
            contextUpdates=context_updates,
            additionalInstructions=AUTO_INSTRUCTIONS,
            validatorResponses=[{
                'id': 'validator_summary',
                'agentName': 'Validator Agent Analysis',
                'points': [
                    {'id': p.id, 'content': p.content, 'isKept': p in kept, 'feedback': p.feedback}
                    for p in kept + removed
                ],
                'overallFeedback': f"Automated validation completed for {len(validations)} claims.",
            }],
            selectedAgents=list(selected_agents),
            iterationCount=self._next_iteration(),
            keptPoints=kept,
            removedPoints=removed,
            feedbackSummary=[summary]
        )
        self._update(context)
        return context

    def process_user_interaction(self, form: Dict[str, Any]) -> FlowContext:
        """Build the next context from the user's keep/remove choices."""
        kept: List[ValidatorPoint] = []
        removed: List[ValidatorPoint] = []
        summaries: List[AgentFeedbackSummary] = []

        for response in _require_objects(form.get('validatorResponses') or [], "validatorResponses"):
            points = _require_objects(response.get('points') or [], "points")
            for point in points:
                target = kept if point.get('isKept') else removed
                target.append(ValidatorPoint(
                    id=point.get('id', ''),
                    content=point.get('content', ''),
                    agentId=response.get('id', ''),
                    agentName=response.get('agentName', ''),
                    feedback=point.get('feedback') or ''
                ))
            kept_count = sum(1 for p in points if p.get('isKept'))
            summaries.append(AgentFeedbackSummary(
                agentId=response.get('id', ''),
                agentName=response.get('agentName', ''),
                overallFeedback=response.get('overallFeedback') or '',
                pointsKept=kept_count,
                pointsRemoved=len(points) - kept_count,
                totalPoints=len(points)
            ))

        context = FlowContext(
            id=generate_context_id(),
            originalQuestion=form.get('originalQuestion', ''),
            contextUpdates=form.get('contextUpdates') or '',
            additionalInstructions=form.get('additionalInstructions') or '',
            validatorResponses=list(form.get('validatorResponses') or []),
            selectedAgents=list(form.get('selectedAgents') or []),
            enabledSystemAgents=list(form.get('enabledSystemAgents') or []),
            iterationCount=self._next_iteration(),
            keptPoints=kept,
            removedPoints=removed,
            feedbackSummary=summaries
        )
        self._update(context)
        return context

    def generate_enhanced_prompt(self, context: FlowContext, include_removed_points: bool = False) -> str:
        sections = [
            f"## Original Question\n{context.originalQuestion}",
            f"## Iteration Information\nThis is iteration {context.iterationCount} of the analysis.",
        ]

        if context.contextUpdates.strip():
            sections.append(f"## Updated Context\n{context.contextUpdates}")
        if context.additionalInstructions.strip():
            sections.append(f"## Additional Instructions\n{context.additionalInstructions}")

        if context.keptPoints:
            sections.append("## Validated Points from Previous Iteration")
            sections.append("The following points were validated and should be considered:")
            for agent_name, points in _group_by_agent(context.keptPoints).items():
                sections.append(f"\n### {agent_name}:")
                for index, point in enumerate(points):
                    sections.append(f"{index + 1}. {point.content}")
                    if point.feedback:
                        sections.append(f"   *Feedback: {point.feedback}*")

        if include_removed_points and context.removedPoints:
            sections.append("## Points to Avoid")
            sections.append("The following points were rejected in previous iteration:")
            for agent_name, points in _group_by_agent(context.removedPoints).items():
                sections.append(f"\n### {agent_name}:")
                for index, point in enumerate(points):
                    sections.append(f"{index + 1}. {point.content}")
                    if point.feedback:
                        sections.append(f"   *Reason for rejection: {point.feedback}*")

        if context.feedbackSummary:
            sections.append("## Agent Performance Feedback")
            for summary in context.feedbackSummary:
                if summary.overallFeedback.strip():
                    sections.append(f"\n### {summary.agentName}:")
                    sections.append(summary.overallFeedback)
                    sections.append(f"*Points kept: {summary.pointsKept}/{summary.totalPoints}*")

        sections.append("## Selected Agents for This Iteration")
        sections.append(f"The following agents will participate: {', '.join(context.selectedAgents)}")

        return "\n\n".join(sections)

    def prepare_flow_restart(
        self,
        context: FlowContext,
        include_removed_points: bool = False,
        reset_iteration_count: bool = False
    ) -> Dict[str, Any]:
        return {
            'contextId': context.id,
            'enhancedPrompt': self.generate_enhanced_prompt(context, include_removed_points),
            'selectedAgents': list(context.selectedAgents),
            'iterationCount': 1 if reset_iteration_count else context.iterationCount,
            'previousContext': {
                'keptPoints': [asdict(p) for p in context.keptPoints],
                'removedPoints': [asdict(p) for p in context.removedPoints],
                'feedbackSummary': [asdict(s) for s in context.feedbackSummary],
            },
            'metadata': {
                'originalQuestion': context.originalQuestion,
                'timestamp': context.timestamp,
                'contextUpdates': context.contextUpdates,
                'additionalInstructions': context.additionalInstructions,
            },
        }

    def get_context_by_id(self, context_id: str) -> Optional[FlowContext]:
        if self.current and self.current.id == context_id:
            return self.current
        return next((c for c in self.history if c.id == context_id), None)

    def export_context(self, context_id: Optional[str] = None) -> str:
        context = self.get_context_by_id(context_id) if context_id else self.current
        if not context:
            raise ValueError("No context found to export")
        return json.dumps(context.to_dict(), indent=2)

    def import_context(self, context_json: Any) -> FlowContext:
        """Restore an exported context, given as JSON text or an already-decoded object."""
        try:
            data = context_json if isinstance(context_json, dict) else json.loads(context_json)
            context = FlowContext.from_dict(data)
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise ValueError("Invalid context JSON format") from e
        self._update(context)
        return context

    def clear(self) -> None:
        self.current = None
        self.history = []
        if self.store is not None and self.session_id:
            self.store.clear(self.session_id)

    def stats(self) -> Dict[str, int]:
        if not self.current:
            return {
                'totalIterations': 0,
                'totalKeptPoints': 0,
                'totalRemovedPoints': 0,
                'totalFeedbacks': 0,
                'activeAgents': 0,
            }
        return {
            'totalIterations': self.current.iterationCount,
            'totalKeptPoints': len(self.current.keptPoints),
            'totalRemovedPoints': len(self.current.removedPoints),
            'totalFeedbacks': sum(1 for f in self.current.feedbackSummary if f.overallFeedback.strip()),
            'activeAgents': len(self.current.selectedAgents),
        }
