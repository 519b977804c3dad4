"""
Tests for the SQLite warning-state persistence.

Covers:
- Schema creation
- Warning state round trip (unix-second timestamps)
- Moderation log writes and reads
- Monitored channel storage
"""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from modbot.bot.monitored_channels import MonitoredChannels
from modbot.database.db_connection import ConnectionManager
from modbot.database.warning_persistence import SqliteWarningPersistence
from modbot.datatypes.moderation_datatypes import ModerationAction, ModerationDecision, Severity, WarningState
from modbot.moderation.warning_store import WarningStore


@pytest_asyncio.fixture
async def persistence(tmp_path):
    """Open a temporary database with the full schema."""
    connection = ConnectionManager()
    store = SqliteWarningPersistence(connection)
    await store.initialize(tmp_path / "data" / "modbot.db")
    yield store
    await store.close()


def whole_seconds(value: datetime) -> datetime:
    return value.replace(microsecond=0)


@pytest.mark.asyncio
async def test_schema_tables_exist(persistence):
    async with persistence._db.read() as conn:
        cursor = await conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
        tables = {row[0] for row in await cursor.fetchall()}

    assert {"warning_states", "moderation_log", "monitored_channels", "schema_version"} <= tables


@pytest.mark.asyncio
async def test_state_round_trip(persistence):
    now = datetime.now(timezone.utc)
    state = WarningState(
        user_id="123",
        warning_count=2,
        last_violation_at=now,
        muted_until=now + timedelta(minutes=10),
    )

    await persistence.persist("123", state)
    loaded = await persistence.load_all_warning_states()

    assert set(loaded) == {"123"}
    assert loaded["123"].warning_count == 2
    assert loaded["123"].last_violation_at == whole_seconds(now)
    assert loaded["123"].muted_until == whole_seconds(now + timedelta(minutes=10))


@pytest.mark.asyncio
async def test_upsert_replaces_and_delete_removes(persistence):
    await persistence.persist("u", WarningState(user_id="u", warning_count=1))
    await persistence.persist("u", WarningState(user_id="u", warning_count=3))

    loaded = await persistence.load_all_warning_states()
    assert loaded["u"].warning_count == 3
    assert loaded["u"].last_violation_at is None

    await persistence.delete("u")
    assert await persistence.load_all_warning_states() == {}


@pytest.mark.asyncio
async def test_warning_store_survives_restart(persistence):
    first = WarningStore(persistence=persistence)
    await first.async_init()
    decision = ModerationDecision(ModerationAction.BLOCK_WARN, Severity.MEDIUM, 1, "Violated: insult")
    await first.apply_atomic("u1", decision)
    await first.apply_atomic("u1", decision)

    second = WarningStore(persistence=persistence)
    assert await second.async_init() == 1
    assert second.get("u1").warning_count == 2


@pytest.mark.asyncio
async def test_decision_log_newest_first(persistence):
    warn = ModerationDecision(
        ModerationAction.BLOCK_WARN, Severity.MEDIUM, 1, "Violated: insult", user_id="u1"
    )
    timeout = ModerationDecision(
        ModerationAction.BLOCK_TIMEOUT, Severity.HIGH, 0, "Violated: toxicity", user_id="u1"
    )

    await persistence.log_decision(warn)
    await persistence.log_decision(timeout)
    entries = await persistence.recent_decisions("u1")

    assert [entry["action"] for entry in entries] == ["block_timeout", "block_warn"]
    assert entries[1]["warningCountAfter"] == 1
    assert entries[0]["degraded"] is False
    assert await persistence.recent_decisions("someone-else") == []


@pytest.mark.asyncio
async def test_monitored_channels_persist(persistence):
    channels = MonitoredChannels([10], persistence._db)
    assert await channels.add(20) is True
    assert await channels.add(20) is False

    reloaded = MonitoredChannels([10], persistence._db)
    await reloaded.async_init()
    assert reloaded.as_list() == [10, 20]

    assert await reloaded.remove(20) is True
    again = MonitoredChannels([], persistence._db)
    await again.async_init()
    assert again.as_list() == []
    assert again.is_monitored(999)
