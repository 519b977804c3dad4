"""
Enactment of moderation decisions on a live platform.

The orchestrator only returns a decision; DecisionEnactor turns it into the
platform steps for that action and runs them through a PlatformActionAdapter.
Each step is attempted independently: a failed delete never prevents the
timeout, the notification, or the log entry.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Protocol, Tuple

from modbot.datatypes.moderation_datatypes import ModerationAction, ModerationDecision
from modbot.util.format_utils import format_duration
from modbot.util.logger import get_logger

logger = get_logger("decision_enactor")


class PlatformActionAdapter(Protocol):
    """Platform operations for the message a decision was made about."""

    async def delete_message(self) -> None: ...

    async def timeout_user(self, duration_seconds: int) -> None: ...

    async def notify_user(self, message: str) -> None: ...

    async def post_log(self, decision: ModerationDecision) -> None: ...


class DecisionEnactor:
    """Maps each action of the escalation ladder to adapter steps.

    ==============  ==========================================
    action          steps
    ==============  ==========================================
    allow           (none)
    allow_flagged   post_log
    block_warn      delete_message, notify_user, post_log
    block_timeout   delete_message, timeout_user, notify_user, post_log
    block_ban       delete_message, notify_user, post_log
    ==============  ==========================================

    Bans are never executed automatically; the log entry leaves them to a
    human moderator.
    """

    def __init__(self, escalation_limit: int = 2, mute_duration_seconds: int = 600) -> None:
        self.escalation_limit = escalation_limit
        self.mute_duration_seconds = mute_duration_seconds

    async def enact(self, decision: ModerationDecision, adapter: PlatformActionAdapter) -> List[str]:
        """Run the steps for ``decision.action``.

        Returns:
            Names of the steps that succeeded, in execution order.
        """
        succeeded: List[str] = []
        for name, step in self._steps(decision, adapter):
            try:
                await step()
            except Exception as exc:
                logger.warning(
                    "[ENACTOR] %s failed for user %s (%s): %s",
                    name,
                    decision.user_id or "-",
                    decision.action,
                    exc,
                )
                continue
            succeeded.append(name)
        return succeeded

    def timeout_seconds(self, decision: ModerationDecision) -> int:
        """Remaining timeout for ``decision``; repeated enactment never extends a mute."""
        if decision.muted_until is None:
            return self.mute_duration_seconds
        remaining = (decision.muted_until - datetime.now(timezone.utc)).total_seconds()
        return max(0, math.ceil(remaining))

    def notification_for(self, decision: ModerationDecision) -> str:
        action = decision.action
        if action is ModerationAction.BLOCK_WARN:
            return (
                "Your message was removed for containing inappropriate content. "
                f"Warnings: {decision.warning_count_after}/{self.escalation_limit}"
            )
        if action is ModerationAction.BLOCK_TIMEOUT:
            return (
                "Your message was removed and you have been timed out for "
                f"{format_duration(self.timeout_seconds(decision))}. Reason: {decision.reason}"
            )
        if action is ModerationAction.BLOCK_BAN:
            return "Your message was removed. A moderator has been notified and will review your account."
        return decision.reason

    def _steps(
        self,
        decision: ModerationDecision,
        adapter: PlatformActionAdapter,
    ) -> List[Tuple[str, Callable[[], Awaitable[None]]]]:
        action = decision.action
        if action is ModerationAction.ALLOW:
            return []
        if action is ModerationAction.ALLOW_FLAGGED:
            return [("post_log", lambda: adapter.post_log(decision))]

        steps: List[Tuple[str, Callable[[], Awaitable[None]]]] = [("delete_message", adapter.delete_message)]
        if action is ModerationAction.BLOCK_TIMEOUT:
            seconds = self.timeout_seconds(decision)
            if seconds > 0:
                steps.append(("timeout_user", lambda: adapter.timeout_user(seconds)))
        message = self.notification_for(decision)
        steps.append(("notify_user", lambda: adapter.notify_user(message)))
        steps.append(("post_log", lambda: adapter.post_log(decision)))
        return steps
