"""
Policy evaluation: the escalation ladder as a pure function.

Maps a ViolationAssessment and the user's current WarningState to a
ModerationDecision. Nothing here reads clocks, stores, or globals; the caller
passes the (already expiry-adjusted) warning state in and applies the
returned decision through the WarningStore.

Decision table, first match wins:

    not toxic                                  -> allow
    low severity                               -> allow_flagged
    medium severity, warnings < limit          -> block_warn
    medium severity, warnings >= limit         -> block_timeout
    high severity, no prior warnings           -> block_warn
    high severity, prior warnings              -> block_timeout

block_timeout becomes block_ban when the policy's ``ban_on_escalation``
override is set. Escalations reset the warning count to 0, block_warn adds
one, and the allow actions leave it unchanged.
"""

from __future__ import annotations

from typing import Optional

from modbot.datatypes.moderation_datatypes import (
    ModerationAction,
    ModerationDecision,
    PolicyConfig,
    Severity,
    ViolationAssessment,
    WarningState,
)


def severity_for(assessment: ViolationAssessment, policy: PolicyConfig) -> Severity:
    """Band the assessment's max score with the policy's cut points."""
    if assessment.max_score > policy.high_severity_cut:
        return Severity.HIGH
    if assessment.max_score > policy.medium_severity_cut:
        return Severity.MEDIUM
    if assessment.max_score > 0 and assessment.is_toxic:
        return Severity.LOW
    return Severity.NONE


def warning_count_after(action: ModerationAction, warning_count: int) -> int:
    """Warning count once ``action`` is applied to a user holding ``warning_count``."""
    if action.resets_warnings:
        return 0
    if action is ModerationAction.BLOCK_WARN:
        return warning_count + 1
    return warning_count


class PolicyEvaluator:
    """Applies the decision table under a default :class:`PolicyConfig`."""

    def __init__(self, policy: Optional[PolicyConfig] = None) -> None:
        self.policy = policy or PolicyConfig()

    def evaluate(
        self,
        assessment: ViolationAssessment,
        warning_state: WarningState,
        policy: Optional[PolicyConfig] = None,
    ) -> ModerationDecision:
        """Decide what to do with one assessed text for one user.

        The evaluator ignores active mutes; keeping muted users' messages out
        of evaluation is the orchestrator's job.

        Args:
            assessment: Normalized classifier output.
            warning_state: The user's state at call time, already adjusted for
                inactivity expiry.
            policy: Per-call policy; defaults to the evaluator's policy.

        Returns:
            ModerationDecision carrying the action, severity, and the user's
            warning count after the action is applied.
        """
        policy = policy or self.policy
        count = warning_state.warning_count
        severity = severity_for(assessment, policy)

        if assessment.degraded:
            return ModerationDecision.degraded_allow(assessment.reason, count, warning_state.user_id)

        action = self._select_action(assessment, severity, count, policy)
        return ModerationDecision(
            action=action,
            severity=severity,
            warning_count_after=warning_count_after(action, count),
            reason=assessment.reason,
            assessment=assessment,
            user_id=warning_state.user_id,
        )

    @staticmethod
    def _select_action(
        assessment: ViolationAssessment,
        severity: Severity,
        count: int,
        policy: PolicyConfig,
    ) -> ModerationAction:
        escalation = ModerationAction.BLOCK_BAN if policy.ban_on_escalation else ModerationAction.BLOCK_TIMEOUT

        if not assessment.is_toxic:
            return ModerationAction.ALLOW
        if severity is Severity.LOW:
            return ModerationAction.ALLOW_FLAGGED
        if severity is Severity.MEDIUM:
            return ModerationAction.BLOCK_WARN if count < policy.escalation_limit else escalation
        if severity is Severity.HIGH:
            # A first high-severity offence still only earns a warning
            return ModerationAction.BLOCK_WARN if count == 0 else escalation
        return ModerationAction.ALLOW_FLAGGED
