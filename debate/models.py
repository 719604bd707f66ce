"""
Domain types shared by agents, orchestrator and routes.
"""

import re
from enum import Enum
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional


class AgentRole(str, Enum):
    ADVOCATE = "advocate"
    OPPONENT = "opponent"
    MODERATOR = "moderator"


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class SessionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class SessionAgentRole(str, Enum):
    PARTICIPANT = "PARTICIPANT"
    VALIDATOR = "VALIDATOR"
    MODERATOR = "MODERATOR"
    TASK_DISTRIBUTOR = "TASK_DISTRIBUTOR"
    REPORT_GENERATOR = "REPORT_GENERATOR"


class RoundStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    PROCESSING = "PROCESSING"
    AWAITING_FEEDBACK = "AWAITING_FEEDBACK"
    FEEDBACK_RECEIVED = "FEEDBACK_RECEIVED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class ResponseStatus(str, Enum):
    SUBMITTED = "SUBMITTED"
    VALIDATED = "VALIDATED"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    FAILED = "FAILED"


class FeedbackPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class ReportType(str, Enum):
    INTERIM = "INTERIM"
    FINAL = "FINAL"
    SUMMARY = "SUMMARY"
    SNAPSHOT = "SNAPSHOT"


class ReportStatus(str, Enum):
    GENERATING = "GENERATING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class SubscriptionPlan(str, Enum):
    FREE = "FREE"
    PREMIUM = "PREMIUM"


class SubscriptionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"


ROLE_CYCLE = [AgentRole.ADVOCATE, AgentRole.OPPONENT, AgentRole.MODERATOR]


def slugify_name(name: str) -> str:
    return re.sub(r'\s+', '-', name.strip().lower())


@dataclass
class AgentProfile:
    """An agent persona taking part in a debate."""
    id: str
    name: str
    role: AgentRole
    system_prompt: str = ""
    description: str = ""

    @classmethod
    def from_record(cls, row: Dict[str, Any], index: int = 0) -> 'AgentProfile':
        role_value = str(row.get('role') or '').lower()
        try:
            role = AgentRole(role_value)
        except ValueError:
            role = ROLE_CYCLE[index % len(ROLE_CYCLE)]

        name = row.get('name') or f"Agent {index + 1}"
        return cls(
            id=str(row.get('id') or slugify_name(name)),
            name=name,
            role=role,
            system_prompt=row.get('system_prompt') or row.get('prompt') or '',
            description=row.get('description') or ''
        )

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'name': self.name, 'role': self.role.value}


@dataclass
class AgentResponse:
    agent_id: str
    agent_name: str
    role: str
    response: str
    confidence: int
    sentiment: str
    processing_time: int = 0
    reasoning: List[str] = field(default_factory=list)
    evidence: List[str] = field(default_factory=list)
    error: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'agentId': self.agent_id,
            'agentName': self.agent_name,
            'role': self.role,
            'response': self.response,
            'confidence': self.confidence,
            'sentiment': self.sentiment,
            'processingTime': self.processing_time,
            'reasoning': list(self.reasoning),
            'evidence': list(self.evidence),
        }
        if self.error:
            data['error'] = True
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AgentResponse':
        return cls(
            agent_id=data.get('agentId', ''),
            agent_name=data.get('agentName', ''),
            role=data.get('role', AgentRole.MODERATOR.value),
            response=data.get('response', ''),
            confidence=int(data.get('confidence', 0) or 0),
            sentiment=data.get('sentiment', Sentiment.NEUTRAL.value),
            processing_time=int(data.get('processingTime', 0) or 0),
            reasoning=list(data.get('reasoning') or []),
            evidence=list(data.get('evidence') or []),
            error=bool(data.get('error', False))
        )


@dataclass
class ValidationResult:
    id: str
    claim: str
    is_valid: bool
    confidence: int
    evidence: str
    logical_fallacies: List[str] = field(default_factory=list)
    supporting_facts: List[str] = field(default_factory=list)
    selected: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'claim': self.claim,
            'isValid': self.is_valid,
            'confidence': self.confidence,
            'evidence': self.evidence,
            'logicalFallacies': list(self.logical_fallacies),
            'supportingFacts': list(self.supporting_facts),
            'selected': self.selected,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ValidationResult':
        return cls(
            id=str(data.get('id', '')),
            claim=data.get('claim', ''),
            is_valid=bool(data.get('isValid', False)),
            confidence=int(data.get('confidence', 0) or 0),
            evidence=data.get('evidence', ''),
            logical_fallacies=list(data.get('logicalFallacies') or []),
            supporting_facts=list(data.get('supportingFacts') or []),
            selected=bool(data.get('selected', False))
        )


def average(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def to_optional_float(value: Any) -> Optional[float]:
    """Return a numeric, non-NaN value as float, else None."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if value != value:
        return None
    return float(value)


def score_to_fraction(value: Any) -> float:
    """0-100 score as the 0-1 DECIMAL(3,2) the database stores."""
    try:
        score = float(value or 0)
    except (TypeError, ValueError):
        return 0.0
    return round(max(0.0, min(100.0, score)) / 100, 2)


def fraction_to_score(value: Any) -> float:
    try:
        return round(float(value) * 100, 2)
    except (TypeError, ValueError):
        return 0.0
