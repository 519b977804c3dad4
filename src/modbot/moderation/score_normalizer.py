"""
Conversion of raw classifier scores into a ViolationAssessment.

The classifier reports a mapping of attribute name to ``{"value": float}``.
Normalization fills in missing attributes with 0, resolves the thresholds in
effect for the call, and derives the violated set and maximum score. It is a
pure transform: the same scores and thresholds always give the same result.
"""

from __future__ import annotations

from numbers import Real
from typing import Any, Dict, Mapping, Optional

from modbot.datatypes.errors import ValidationError
from modbot.datatypes.moderation_datatypes import (
    DEFAULT_THRESHOLDS,
    TOXICITY_ATTRIBUTES,
    ViolationAssessment,
    canonical_attribute,
)


def _as_score(name: str, entry: Any) -> float:
    """Extract a float score from a classifier entry, clamped to [0, 1]."""
    if isinstance(entry, Mapping):
        entry = entry.get("value", 0.0)
    if isinstance(entry, bool) or not isinstance(entry, Real):
        raise ValidationError(f"score for '{name}' is not a number: {entry!r}")
    return min(1.0, max(0.0, float(entry)))


class ScoreNormalizer:
    """Stateless normalizer bound to a set of global default thresholds."""

    def __init__(self, default_thresholds: Optional[Mapping[str, float]] = None) -> None:
        self.default_thresholds: Dict[str, float] = dict(DEFAULT_THRESHOLDS)
        if default_thresholds:
            self.default_thresholds.update(self.resolve_thresholds(default_thresholds, base=DEFAULT_THRESHOLDS))

    def resolve_thresholds(
        self,
        overrides: Optional[Mapping[str, Any]] = None,
        base: Optional[Mapping[str, float]] = None,
    ) -> Dict[str, float]:
        """Merge per-call ``overrides`` onto ``base`` (the global defaults if omitted).

        Override keys may use snake_case, camelCase or the classifier's
        upper-case spelling; unknown keys are ignored.

        Raises:
            ValidationError: If an override is not a number in [0, 1].
        """
        thresholds = dict(base if base is not None else self.default_thresholds)
        if not overrides:
            return thresholds
        if not isinstance(overrides, Mapping):
            raise ValidationError("thresholds must be an object mapping attribute names to numbers")

        for key, value in overrides.items():
            name = canonical_attribute(str(key))
            if name is None or value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, Real):
                raise ValidationError(f"threshold for '{key}' must be a number")
            if not 0.0 <= float(value) <= 1.0:
                raise ValidationError(f"threshold for '{key}' must be between 0 and 1")
            thresholds[name] = float(value)
        return thresholds

    def normalize(
        self,
        raw_scores: Optional[Mapping[str, Any]],
        threshold_overrides: Optional[Mapping[str, Any]] = None,
    ) -> ViolationAssessment:
        """Build the assessment for ``raw_scores`` under the effective thresholds.

        Args:
            raw_scores: Classifier output keyed by attribute, or None when the
                classifier was unavailable. Missing attributes score 0.
            threshold_overrides: Optional per-call thresholds.

        Returns:
            ViolationAssessment. When ``raw_scores`` is None every score is 0
            and the assessment is marked ``degraded``.

        Raises:
            ValidationError: If ``raw_scores`` is not a mapping or holds a
                non-numeric score.
        """
        thresholds = self.resolve_thresholds(threshold_overrides)

        if raw_scores is None:
            return self._build({name: 0.0 for name in TOXICITY_ATTRIBUTES}, thresholds, degraded=True)

        if not isinstance(raw_scores, Mapping):
            raise ValidationError(f"raw scores must be a mapping, got {type(raw_scores).__name__}")

        scores = {name: 0.0 for name in TOXICITY_ATTRIBUTES}
        for key, entry in raw_scores.items():
            name = canonical_attribute(str(key))
            if name is None:
                continue
            scores[name] = _as_score(name, entry)

        return self._build(scores, thresholds)

    def reassess(self, assessment: ViolationAssessment, threshold_overrides: Optional[Mapping[str, Any]] = None) -> ViolationAssessment:
        """Re-derive ``assessment`` under different thresholds without a classifier call."""
        thresholds = self.resolve_thresholds(threshold_overrides)
        if thresholds == dict(assessment.thresholds):
            return assessment
        return self._build(dict(assessment.scores), thresholds, degraded=assessment.degraded)

    @staticmethod
    def _build(scores: Dict[str, float], thresholds: Dict[str, float], degraded: bool = False) -> ViolationAssessment:
        violated = frozenset(name for name, score in scores.items() if score > thresholds[name])
        return ViolationAssessment(
            scores=scores,
            thresholds=thresholds,
            violated_attributes=violated,
            max_score=max(scores.values(), default=0.0),
            degraded=degraded,
        )
