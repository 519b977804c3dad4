"""
Persistent storage for per-user warning states and the moderation log.

Timestamps are stored as INTEGER unix seconds (seconds since the epoch) so
comparisons are trivial and there is no string parsing or timezone
conversion needed.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Optional

import aiosqlite

from modbot.datatypes.moderation_datatypes import ModerationDecision, WarningState
from modbot.util.logger import get_logger

logger = get_logger("warning_state_repo")


def to_unix(value: Optional[datetime]) -> Optional[int]:
    return int(value.timestamp()) if value is not None else None


def from_unix(value: Optional[int]) -> Optional[datetime]:
    return datetime.fromtimestamp(value, tz=timezone.utc) if value is not None else None


class WarningStateRepo:
    """Low-level CRUD for the ``warning_states`` and ``moderation_log`` tables."""

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @staticmethod
    async def upsert(conn: aiosqlite.Connection, state: WarningState) -> None:
        """Insert or replace the row for ``state.user_id``."""
        await conn.execute(
            """
            INSERT INTO warning_states (user_id, warning_count, last_violation_at, muted_until, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET
                warning_count     = excluded.warning_count,
                last_violation_at = excluded.last_violation_at,
                muted_until       = excluded.muted_until,
                updated_at        = excluded.updated_at
            """,
            (
                state.user_id,
                state.warning_count,
                to_unix(state.last_violation_at),
                to_unix(state.muted_until),
                int(datetime.now(timezone.utc).timestamp()),
            ),
        )

    @staticmethod
    async def delete(conn: aiosqlite.Connection, user_id: str) -> None:
        await conn.execute("DELETE FROM warning_states WHERE user_id = ?", (user_id,))

    @staticmethod
    async def insert_log(conn: aiosqlite.Connection, decision: ModerationDecision, created_at: int) -> None:
        """Append one decision to ``moderation_log``."""
        await conn.execute(
            """
            INSERT INTO moderation_log
                (user_id, action, severity, reason, violations, warning_count_after, degraded, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                decision.user_id,
                decision.action.value,
                decision.severity.value,
                decision.reason,
                ",".join(decision.violations),
                decision.warning_count_after,
                int(decision.degraded),
                created_at,
            ),
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    async def get_all(conn: aiosqlite.Connection) -> Dict[str, WarningState]:
        cursor = await conn.execute(
            "SELECT user_id, warning_count, last_violation_at, muted_until FROM warning_states"
        )
        rows = await cursor.fetchall()
        return {
            str(row[0]): WarningState(
                user_id=str(row[0]),
                warning_count=row[1],
                last_violation_at=from_unix(row[2]),
                muted_until=from_unix(row[3]),
            )
            for row in rows
        }

    @staticmethod
    async def get(conn: aiosqlite.Connection, user_id: str) -> Optional[WarningState]:
        cursor = await conn.execute(
            "SELECT user_id, warning_count, last_violation_at, muted_until FROM warning_states WHERE user_id = ?",
            (user_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return WarningState(
            user_id=str(row[0]),
            warning_count=row[1],
            last_violation_at=from_unix(row[2]),
            muted_until=from_unix(row[3]),
        )

    @staticmethod
    async def get_log(conn: aiosqlite.Connection, user_id: str, limit: int = 20) -> List[dict]:
        """Most recent log entries for ``user_id``, newest first."""
        cursor = await conn.execute(
            "SELECT action, severity, reason, violations, warning_count_after, degraded, created_at "
            "FROM moderation_log WHERE user_id = ? ORDER BY created_at DESC, id DESC LIMIT ?",
            (user_id, limit),
        )
        rows = await cursor.fetchall()
        return [
            {
                "action": row[0],
                "severity": row[1],
                "reason": row[2],
                "violations": [name for name in row[3].split(",") if name],
                "warningCountAfter": row[4],
                "degraded": bool(row[5]),
                "timestamp": from_unix(row[6]).isoformat(),
            }
            for row in rows
        ]
