"""
Set of channels the message listener moderates.

Seeded from configuration, extended at runtime by the /modbot addchannel and
removechannel commands, and persisted in the ``monitored_channels`` table
when a database connection is available. An empty set means every channel
is monitored.
"""

from __future__ import annotations

import time
from typing import Iterable, List, Optional

from modbot.database.db_connection import ConnectionManager
from modbot.repositories.monitored_channel_repo import MonitoredChannelRepo
from modbot.util.logger import get_logger

logger = get_logger("monitored_channels")


class MonitoredChannels:
    """
    Manager for the monitored channel list.

    Provides:
    - is_monitored(channel_id): Whether a message in the channel is moderated
    - add / remove: Runtime changes, persisted when a database is open
    - as_list(): Channels in insertion order
    """

    def __init__(self, initial: Iterable[int] = (), connection: Optional[ConnectionManager] = None) -> None:
        self._channels: List[int] = []
        for channel_id in map(int, initial):
            if channel_id not in self._channels:
                self._channels.append(channel_id)
        self._db = connection

    async def async_init(self) -> None:
        """Merge the persisted channels into the configured ones."""
        if self._db is None or not self._db.is_open:
            return
        async with self._db.read() as conn:
            stored = await MonitoredChannelRepo.get_all(conn)
        for channel_id in stored:
            if channel_id not in self._channels:
                self._channels.append(channel_id)
        logger.info("[MONITORED CHANNELS] %d channels monitored", len(self._channels))

    def is_monitored(self, channel_id: int) -> bool:
        return not self._channels or channel_id in self._channels

    def as_list(self) -> List[int]:
        return list(self._channels)

    def __len__(self) -> int:
        return len(self._channels)

    async def add(self, channel_id: int) -> bool:
        """Start monitoring ``channel_id``. Returns False if it already was."""
        if channel_id in self._channels:
            return False
        self._channels.append(channel_id)
        if self._db is not None and self._db.is_open:
            async with self._db.transaction() as conn:
                await MonitoredChannelRepo.add(conn, channel_id, int(time.time()))
        logger.info("[MONITORED CHANNELS] Added channel %s", channel_id)
        return True

    async def remove(self, channel_id: int) -> bool:
        """Stop monitoring ``channel_id``. Returns False if it was not monitored."""
        if channel_id not in self._channels:
            return False
        self._channels.remove(channel_id)
        if self._db is not None and self._db.is_open:
            async with self._db.transaction() as conn:
                await MonitoredChannelRepo.remove(conn, channel_id)
        logger.info("[MONITORED CHANNELS] Removed channel %s", channel_id)
        return True
