from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from modbot.datatypes.moderation_datatypes import ModerationAction, ModerationDecision, Severity
from modbot.moderation.decision_enactor import DecisionEnactor


def make_adapter():
    adapter = AsyncMock()
    adapter.delete_message = AsyncMock()
    adapter.timeout_user = AsyncMock()
    adapter.notify_user = AsyncMock()
    adapter.post_log = AsyncMock()
    return adapter


def make_decision(action, **kwargs):
    kwargs.setdefault("warning_count_after", 1)
    return ModerationDecision(action=action, severity=Severity.MEDIUM, reason="Violated: insult", user_id="u1", **kwargs)


@pytest.mark.asyncio
async def test_allow_does_nothing():
    adapter = make_adapter()

    steps = await DecisionEnactor().enact(make_decision(ModerationAction.ALLOW), adapter)

    assert steps == []
    adapter.delete_message.assert_not_awaited()
    adapter.post_log.assert_not_awaited()


@pytest.mark.asyncio
async def test_flagged_is_only_logged():
    adapter = make_adapter()
    decision = make_decision(ModerationAction.ALLOW_FLAGGED)

    steps = await DecisionEnactor().enact(decision, adapter)

    assert steps == ["post_log"]
    adapter.post_log.assert_awaited_once_with(decision)
    adapter.delete_message.assert_not_awaited()


@pytest.mark.asyncio
async def test_warn_deletes_notifies_and_logs():
    adapter = make_adapter()

    steps = await DecisionEnactor(escalation_limit=2).enact(make_decision(ModerationAction.BLOCK_WARN), adapter)

    assert steps == ["delete_message", "notify_user", "post_log"]
    message = adapter.notify_user.await_args.args[0]
    assert "Warnings: 1/2" in message
    adapter.timeout_user.assert_not_awaited()


@pytest.mark.asyncio
async def test_timeout_uses_remaining_mute():
    adapter = make_adapter()
    until = datetime.now(timezone.utc) + timedelta(seconds=300)
    decision = make_decision(ModerationAction.BLOCK_TIMEOUT, warning_count_after=0, muted_until=until)

    steps = await DecisionEnactor(mute_duration_seconds=600).enact(decision, adapter)

    assert steps == ["delete_message", "timeout_user", "notify_user", "post_log"]
    seconds = adapter.timeout_user.await_args.args[0]
    assert 295 <= seconds <= 300


@pytest.mark.asyncio
async def test_timeout_without_end_uses_configured_duration():
    adapter = make_adapter()

    await DecisionEnactor(mute_duration_seconds=600).enact(
        make_decision(ModerationAction.BLOCK_TIMEOUT, warning_count_after=0), adapter
    )

    adapter.timeout_user.assert_awaited_once_with(600)
    assert "10 mins" in adapter.notify_user.await_args.args[0]


@pytest.mark.asyncio
async def test_ban_is_left_to_a_moderator():
    adapter = make_adapter()

    steps = await DecisionEnactor().enact(make_decision(ModerationAction.BLOCK_BAN, warning_count_after=0), adapter)

    assert steps == ["delete_message", "notify_user", "post_log"]
    assert "moderator" in adapter.notify_user.await_args.args[0]


@pytest.mark.asyncio
async def test_failed_step_does_not_stop_the_rest():
    adapter = make_adapter()
    adapter.delete_message.side_effect = RuntimeError("missing permissions")
    adapter.notify_user.side_effect = RuntimeError("DMs closed")

    steps = await DecisionEnactor().enact(make_decision(ModerationAction.BLOCK_TIMEOUT, warning_count_after=0), adapter)

    assert steps == ["timeout_user", "post_log"]
