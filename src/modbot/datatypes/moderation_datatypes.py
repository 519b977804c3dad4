"""
Value objects for the moderation decision engine.

This module defines the attribute vocabulary shared with the toxicity
classifier, the action and severity enums of the escalation ladder, and the
immutable records that flow through the pipeline:

- ViolationAssessment: normalized scores for one piece of text
- WarningState: one user's accumulated violation state
- ModerationDecision: what the caller should do with the text
- PolicyConfig: the numeric knobs of the decision table
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional

# Attribute names in the order they are reported
TOXICITY_ATTRIBUTES: tuple[str, ...] = (
    "toxicity",
    "severe_toxicity",
    "identity_attack",
    "insult",
    "profanity",
    "threat",
)

DEFAULT_THRESHOLDS: Dict[str, float] = {
    "toxicity": 0.7,
    "severe_toxicity": 0.8,
    "identity_attack": 0.7,
    "insult": 0.7,
    "profanity": 0.7,
    "threat": 0.7,
}

# camelCase spellings used by HTTP clients
ATTRIBUTE_ALIASES: Dict[str, str] = {
    "severeToxicity": "severe_toxicity",
    "identityAttack": "identity_attack",
}


def canonical_attribute(name: str) -> Optional[str]:
    """Return the snake_case attribute for ``name``, or None if it is unknown.

    Accepts the snake_case name, the camelCase alias, and the classifier's
    upper-case spelling (``SEVERE_TOXICITY``).
    """
    if name in ATTRIBUTE_ALIASES:
        return ATTRIBUTE_ALIASES[name]
    lowered = name.lower()
    return lowered if lowered in TOXICITY_ATTRIBUTES else None


class ModerationAction(Enum):
    """Rungs of the escalation ladder, from least to most severe."""

    ALLOW = "allow"
    ALLOW_FLAGGED = "allow_flagged"
    BLOCK_WARN = "block_warn"
    BLOCK_TIMEOUT = "block_timeout"
    BLOCK_BAN = "block_ban"

    def __str__(self) -> str:
        return self.value

    @property
    def is_blocking(self) -> bool:
        return self in (ModerationAction.BLOCK_WARN, ModerationAction.BLOCK_TIMEOUT, ModerationAction.BLOCK_BAN)

    @property
    def resets_warnings(self) -> bool:
        """Escalations spend the warnings accumulated so far."""
        return self in (ModerationAction.BLOCK_TIMEOUT, ModerationAction.BLOCK_BAN)


class Severity(Enum):
    """Severity band derived from an assessment's maximum score."""

    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class ViolationAssessment:
    """Normalized classifier output for a single piece of text.

    Attributes:
        scores: Score in [0, 1] for every toxicity attribute.
        thresholds: Threshold in effect for every attribute on this call.
        violated_attributes: Attributes whose score is strictly above threshold.
        max_score: Largest score over all attributes (0 when there are none).
        degraded: True when the classifier could not be consulted, so the
            all-zero scores mean "not evaluated" rather than "confirmed safe".
    """

    scores: Mapping[str, float]
    thresholds: Mapping[str, float]
    violated_attributes: FrozenSet[str]
    max_score: float
    degraded: bool = False

    @property
    def is_toxic(self) -> bool:
        return bool(self.violated_attributes)

    @property
    def confidence(self) -> int:
        """Max score as a 0-100 integer percentage."""
        return round(self.max_score * 100)

    @property
    def violations(self) -> List[str]:
        """Violated attributes in reporting order."""
        return [name for name in TOXICITY_ATTRIBUTES if name in self.violated_attributes]

    @property
    def reason(self) -> str:
        if self.degraded:
            return "No scores available"
        if self.violated_attributes:
            return f"Violated: {', '.join(self.violations)}"
        return "Content is safe"


@dataclass(frozen=True, slots=True)
class WarningState:
    """Accumulated violation state of one user.

    Attributes:
        user_id: Opaque, stable identifier of the user on the calling surface.
        warning_count: Number of warnings since the last reset.
        last_violation_at: When the most recent counted violation happened.
        muted_until: End of the user's active timeout, if any.
    """

    user_id: str
    warning_count: int = 0
    last_violation_at: Optional[datetime] = None
    muted_until: Optional[datetime] = None

    def is_muted(self, now: datetime) -> bool:
        return self.muted_until is not None and self.muted_until > now

    def is_expired(self, now: datetime, reset_window: timedelta) -> bool:
        """True when the last violation is older than ``reset_window``."""
        if self.last_violation_at is None:
            return False
        return now - self.last_violation_at > reset_window

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "warningCount": self.warning_count,
            "lastViolationAt": self.last_violation_at.isoformat() if self.last_violation_at else None,
            "mutedUntil": self.muted_until.isoformat() if self.muted_until else None,
        }


@dataclass(frozen=True, slots=True)
class ModerationDecision:
    """Outcome of evaluating one piece of text for one user.

    Attributes:
        action: Rung of the escalation ladder the caller should enact.
        severity: Severity band of the underlying assessment.
        warning_count_after: The user's warning count once this decision is applied.
        reason: Human-readable summary of the violated attributes.
        degraded: True when the text could not be evaluated (fail-open result).
        assessment: The assessment the decision was derived from, if any.
        user_id: User the decision applies to, when evaluated statefully.
        muted_until: End of the timeout started by this decision, if any.
    """

    action: ModerationAction
    severity: Severity
    warning_count_after: int
    reason: str
    degraded: bool = False
    assessment: Optional[ViolationAssessment] = None
    user_id: Optional[str] = None
    muted_until: Optional[datetime] = None

    @property
    def is_toxic(self) -> bool:
        return self.assessment is not None and self.assessment.is_toxic

    @property
    def confidence(self) -> int:
        return self.assessment.confidence if self.assessment else 0

    @property
    def violations(self) -> List[str]:
        return self.assessment.violations if self.assessment else []

    @classmethod
    def degraded_allow(cls, reason: str, warning_count: int = 0, user_id: Optional[str] = None) -> "ModerationDecision":
        """Fail-open decision used when the text could not be evaluated."""
        return cls(
            action=ModerationAction.ALLOW,
            severity=Severity.NONE,
            warning_count_after=warning_count,
            reason=reason,
            degraded=True,
            user_id=user_id,
        )


@dataclass(frozen=True, slots=True)
class PolicyConfig:
    """Numeric knobs of the decision table.

    Attributes:
        escalation_limit: Prior warnings at which a medium-severity violation
            escalates from a warning to a timeout.
        high_severity_cut: Max score strictly above which severity is high.
        medium_severity_cut: Max score strictly above which severity is medium.
        ban_on_escalation: Administrative override that makes the top of the
            automatic ladder a ban instead of a timeout.
    """

    escalation_limit: int = 2
    high_severity_cut: float = 0.9
    medium_severity_cut: float = 0.7
    ban_on_escalation: bool = False

    def with_overrides(self, overrides: Optional[Mapping[str, Any]]) -> "PolicyConfig":
        """Return a copy with the recognised keys of ``overrides`` applied.

        Keys may be snake_case field names or their camelCase spellings.
        """
        if not overrides:
            return self
        aliases = {
            "escalationLimit": "escalation_limit",
            "highSeverityCut": "high_severity_cut",
            "mediumSeverityCut": "medium_severity_cut",
            "banOnEscalation": "ban_on_escalation",
        }
        changes: Dict[str, Any] = {}
        for key, value in overrides.items():
            name = aliases.get(key, key)
            if name == "escalation_limit":
                changes[name] = int(value)
            elif name in ("high_severity_cut", "medium_severity_cut"):
                changes[name] = float(value)
            elif name == "ban_on_escalation":
                changes[name] = bool(value)
        return replace(self, **changes) if changes else self


@dataclass(slots=True)
class BatchItem:
    """One entry of a batch evaluation request."""

    text: Any
    user_id: Optional[str] = None
    thresholds: Optional[Mapping[str, Any]] = None
    languages: List[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class BatchResult:
    """Outcome of one batch entry; ``error`` is set when the entry failed in isolation."""

    index: int
    decision: ModerationDecision
    error: Optional[str] = None
