import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from modbot.datatypes.errors import PersistenceError
from modbot.datatypes.moderation_datatypes import ModerationAction, ModerationDecision, Severity, WarningState
from modbot.moderation.warning_store import WarningStore

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def decision(action: ModerationAction) -> ModerationDecision:
    return ModerationDecision(action=action, severity=Severity.MEDIUM, warning_count_after=0, reason="test")


class FakePersistence:
    def __init__(self, states=None, fail=False):
        self.states = dict(states or {})
        self.fail = fail
        self.writes = []
        self.deleted = []

    async def load_all_warning_states(self):
        return dict(self.states)

    async def persist(self, user_id, state):
        if self.fail:
            raise OSError("disk full")
        self.writes.append(state)
        self.states[user_id] = state

    async def delete(self, user_id):
        self.deleted.append(user_id)
        self.states.pop(user_id, None)


def test_unknown_user_reads_as_zero_state():
    state = WarningStore().get("nobody", NOW)

    assert state == WarningState(user_id="nobody")
    assert state.warning_count == 0


@pytest.mark.asyncio
async def test_warn_increments_and_timeout_resets():
    store = WarningStore(mute_duration=timedelta(minutes=10))

    first = await store.apply_atomic("u1", decision(ModerationAction.BLOCK_WARN), NOW)
    second = await store.apply_atomic("u1", decision(ModerationAction.BLOCK_WARN), NOW)
    assert (first.warning_count, second.warning_count) == (1, 2)
    assert second.last_violation_at == NOW

    muted = await store.apply_atomic("u1", decision(ModerationAction.BLOCK_TIMEOUT), NOW)
    assert muted.warning_count == 0
    assert muted.muted_until == NOW + timedelta(minutes=10)
    assert store.is_muted("u1", NOW + timedelta(minutes=5))
    assert not store.is_muted("u1", NOW + timedelta(minutes=11))


@pytest.mark.asyncio
async def test_allow_actions_do_not_change_state():
    store = WarningStore()
    await store.apply_atomic("u1", decision(ModerationAction.BLOCK_WARN), NOW)

    after = await store.apply_atomic("u1", decision(ModerationAction.ALLOW_FLAGGED), NOW)

    assert after.warning_count == 1


@pytest.mark.asyncio
async def test_concurrent_warnings_are_all_counted():
    store = WarningStore()
    n = 25

    async def warn():
        await asyncio.sleep(0)
        return await store.apply_atomic("u1", decision(ModerationAction.BLOCK_WARN))

    await asyncio.gather(*(warn() for _ in range(n)))

    assert store.get("u1").warning_count == n


@pytest.mark.asyncio
async def test_concurrent_evaluate_and_apply_sees_previous_commit():
    store = WarningStore()
    seen = []

    def evaluate(state):
        seen.append(state.warning_count)
        return decision(ModerationAction.BLOCK_WARN)

    results = await asyncio.gather(*(store.evaluate_and_apply("u1", evaluate) for _ in range(5)))

    assert sorted(seen) == [0, 1, 2, 3, 4]
    assert sorted(d.warning_count_after for d, _ in results) == [1, 2, 3, 4, 5]


@pytest.mark.asyncio
async def test_different_users_do_not_block_each_other():
    store = WarningStore()
    release = asyncio.Event()
    entered = asyncio.Event()

    async def slow_persist(user_id, state):
        if user_id == "slow":
            entered.set()
            await release.wait()

    store._persistence = type("P", (), {"persist": staticmethod(slow_persist)})()

    slow = asyncio.create_task(store.apply_atomic("slow", decision(ModerationAction.BLOCK_WARN)))
    await entered.wait()

    fast = await asyncio.wait_for(store.apply_atomic("fast", decision(ModerationAction.BLOCK_WARN)), timeout=1)
    assert fast.warning_count == 1
    assert not slow.done()

    release.set()
    assert (await slow).warning_count == 1


@pytest.mark.asyncio
async def test_same_user_update_waits_for_previous_write():
    store = WarningStore()
    release = asyncio.Event()
    entered = asyncio.Event()
    written = []

    async def slow_first_persist(user_id, state):
        if not entered.is_set():
            entered.set()
            await release.wait()
        written.append(state.warning_count)

    store._persistence = type("P", (), {"persist": staticmethod(slow_first_persist)})()

    first = asyncio.create_task(store.apply_atomic("slow", decision(ModerationAction.BLOCK_WARN)))
    await entered.wait()
    second = asyncio.create_task(store.apply_atomic("slow", decision(ModerationAction.BLOCK_WARN)))
    await asyncio.sleep(0.01)

    assert not second.done()
    assert written == []

    release.set()
    results = await asyncio.gather(first, second)

    assert [state.warning_count for state in results] == [1, 2]
    # Writes land in commit order, so the durable copy holds the latest state
    assert written == [1, 2]
    assert store.get("slow").warning_count == 2


@pytest.mark.asyncio
async def test_expired_warnings_read_as_zero():
    store = WarningStore(reset_window=timedelta(hours=24))
    await store.apply_atomic("u1", decision(ModerationAction.BLOCK_WARN), NOW)
    await store.apply_atomic("u1", decision(ModerationAction.BLOCK_WARN), NOW)

    later = NOW + timedelta(hours=25)
    assert store.get("u1", NOW + timedelta(hours=23)).warning_count == 2
    assert store.get("u1", later).warning_count == 0
    # Stored value untouched until the next update
    assert store._states["u1"].warning_count == 2

    renewed = await store.apply_atomic("u1", decision(ModerationAction.BLOCK_WARN), later)
    assert renewed.warning_count == 1


@pytest.mark.asyncio
async def test_evaluate_and_apply_sets_mute_only_for_timeouts():
    store = WarningStore(mute_duration=timedelta(seconds=600))
    await store.apply_atomic("u1", decision(ModerationAction.BLOCK_WARN), NOW)

    warned, _ = await store.evaluate_and_apply("u1", lambda s: decision(ModerationAction.BLOCK_WARN), NOW)
    assert warned.warning_count_after == 2
    assert warned.muted_until is None

    timed_out, state = await store.evaluate_and_apply("u1", lambda s: decision(ModerationAction.BLOCK_TIMEOUT), NOW)
    assert timed_out.warning_count_after == 0
    assert timed_out.muted_until == NOW + timedelta(seconds=600)
    assert state.muted_until == timed_out.muted_until


@pytest.mark.asyncio
async def test_clear_and_mute_administration():
    persistence = FakePersistence()
    store = WarningStore(persistence=persistence)
    await store.apply_atomic("u1", decision(ModerationAction.BLOCK_WARN), NOW)

    until = NOW + timedelta(hours=1)
    muted = await store.set_mute("u1", until)
    assert muted.muted_until == until
    assert muted.warning_count == 1

    unmuted = await store.clear_mute("u1")
    assert unmuted.muted_until is None

    cleared = await store.clear("u1")
    assert cleared == WarningState(user_id="u1")
    assert persistence.deleted == ["u1"]
    assert store.tracked_users == 0


@pytest.mark.asyncio
async def test_persistence_round_trip_through_async_init():
    stored = WarningState(user_id="u9", warning_count=1, last_violation_at=NOW)
    persistence = FakePersistence({"u9": stored})
    store = WarningStore(persistence=persistence)

    assert await store.async_init() == 1
    assert store.get("u9", NOW).warning_count == 1

    await store.apply_atomic("u9", decision(ModerationAction.BLOCK_WARN), NOW)
    assert persistence.states["u9"].warning_count == 2


@pytest.mark.asyncio
async def test_allow_for_new_user_writes_nothing():
    persistence = FakePersistence()
    store = WarningStore(persistence=persistence)

    await store.apply_atomic("u1", decision(ModerationAction.ALLOW), NOW)

    assert persistence.writes == []
    assert store.tracked_users == 0


@pytest.mark.asyncio
async def test_persistence_failure_keeps_memory_state():
    store = WarningStore(persistence=FakePersistence(fail=True))

    with pytest.raises(PersistenceError) as excinfo:
        await store.apply_atomic("u1", decision(ModerationAction.BLOCK_WARN), NOW)

    assert excinfo.value.state.warning_count == 1
    assert store.get("u1", NOW).warning_count == 1


@pytest.mark.asyncio
async def test_locks_are_released_after_use():
    store = WarningStore()

    await asyncio.gather(*(store.apply_atomic(f"u{i}", decision(ModerationAction.BLOCK_WARN)) for i in range(10)))

    assert store._locks == {}
    assert store._lock_refs == {}
    assert store.users_with_warnings() == 10
