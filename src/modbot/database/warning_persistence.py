"""
SQLite backing for the WarningStore and the decision audit log.

Implements the WarningPersistence protocol on top of the shared
ConnectionManager: reads go through ``read()``, every write through a
serialised ``transaction()``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List

from modbot.database.db_connection import ConnectionManager, db_connection
from modbot.database.db_schema import SchemaManager
from modbot.datatypes.moderation_datatypes import ModerationDecision, WarningState
from modbot.repositories.warning_state_repo import WarningStateRepo
from modbot.util.logger import get_logger

logger = get_logger("warning_persistence")


class SqliteWarningPersistence:
    """Warning-state persistence and moderation log over aiosqlite."""

    def __init__(self, connection: ConnectionManager = db_connection) -> None:
        self._db = connection

    async def initialize(self, path: Path) -> None:
        """Open the database at ``path`` (if not open yet) and create the schema."""
        if not self._db.is_open:
            await self._db.open(path)
        await SchemaManager.initialize_schema(self._db.connection)

    async def close(self) -> None:
        await self._db.close()

    async def load_all_warning_states(self) -> Dict[str, WarningState]:
        async with self._db.read() as conn:
            states = await WarningStateRepo.get_all(conn)
        logger.debug("[PERSISTENCE] Loaded %d warning states", len(states))
        return states

    async def persist(self, user_id: str, state: WarningState) -> None:
        async with self._db.transaction() as conn:
            await WarningStateRepo.upsert(conn, state)

    async def delete(self, user_id: str) -> None:
        async with self._db.transaction() as conn:
            await WarningStateRepo.delete(conn, user_id)

    async def log_decision(self, decision: ModerationDecision) -> None:
        async with self._db.transaction() as conn:
            await WarningStateRepo.insert_log(conn, decision, int(datetime.now(timezone.utc).timestamp()))

    async def recent_decisions(self, user_id: str, limit: int = 20) -> List[dict]:
        async with self._db.read() as conn:
            return await WarningStateRepo.get_log(conn, user_id, limit)
