"""
Short-TTL cache of assessments keyed by a text fingerprint.

Collapses bursts of identical text (spam, copy-paste floods) into a single
classifier call. Only the classification is shared: every message still goes
through policy evaluation and the warning store on its own.
"""

from __future__ import annotations

import asyncio
import hashlib
import time
from typing import Awaitable, Callable, Dict, Optional, Tuple

from modbot.datatypes.moderation_datatypes import ViolationAssessment
from modbot.util.logger import get_logger

logger = get_logger("dedup_cache")


def fingerprint(text: str) -> str:
    """Case-insensitive, whitespace-trimmed, content-derived key for ``text``."""
    return hashlib.sha256(text.strip().lower().encode("utf-8")).hexdigest()


class DeduplicationCache:
    """
    TTL-based cache of ViolationAssessments.

    Entries are immutable once written and replaced only on a miss. Concurrent
    misses for one fingerprint wait on the same in-flight computation, and a
    computation that raises is not cached.
    """

    def __init__(
        self,
        ttl_seconds: float = 300,
        sweep_interval_seconds: float = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the cache.

        Args:
            ttl_seconds: Time-to-live of an entry (default: 5 minutes)
            sweep_interval_seconds: Delay between background sweeps
            clock: Monotonic time source in seconds
        """
        self._entries: Dict[str, Tuple[float, ViolationAssessment]] = {}
        self._inflight: Dict[str, asyncio.Task] = {}
        self._ttl_seconds = ttl_seconds
        self._sweep_interval = sweep_interval_seconds
        self._clock = clock
        self._sweep_task: Optional[asyncio.Task] = None
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[ViolationAssessment]:
        """
        Get a cached assessment if still valid.

        Returns:
            The assessment, or None if it expired or was never cached
        """
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, assessment = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            logger.debug("[DEDUP CACHE] Expired key: %s", key[:12])
            return None
        return assessment

    def set(self, key: str, assessment: ViolationAssessment) -> None:
        self._entries[key] = (self._clock() + self._ttl_seconds, assessment)

    async def get_or_compute(
        self,
        key: str,
        compute: Callable[[], Awaitable[ViolationAssessment]],
    ) -> ViolationAssessment:
        """
        Return the cached assessment for ``key`` or compute and cache it.

        The computation runs in its own task and every caller awaits it
        through ``asyncio.shield``, so cancelling one caller never cancels
        the computation other callers are waiting on.

        Args:
            key: Fingerprint of the text
            compute: Coroutine factory producing the assessment on a miss

        Returns:
            The cached or freshly computed assessment

        Raises:
            Whatever ``compute`` raises; the failure is shared with every
            caller waiting on the same key and nothing is cached.
        """
        cached = self.get(key)
        if cached is not None:
            self.hits += 1
            logger.debug("[DEDUP CACHE] Hit for key: %s", key[:12])
            return cached

        pending = self._inflight.get(key)
        if pending is not None:
            self.hits += 1
            return await asyncio.shield(pending)

        self.misses += 1
        task = asyncio.ensure_future(self._compute_and_store(key, compute))
        self._inflight[key] = task
        return await asyncio.shield(task)

    async def _compute_and_store(
        self,
        key: str,
        compute: Callable[[], Awaitable[ViolationAssessment]],
    ) -> ViolationAssessment:
        try:
            assessment = await compute()
            self.set(key, assessment)
            return assessment
        finally:
            self._inflight.pop(key, None)

    def sweep(self) -> int:
        """Evict every expired entry. Returns the number evicted."""
        now = self._clock()
        expired = [key for key, (expires_at, _) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("[DEDUP CACHE] Swept %d expired entries", len(expired))
        return len(expired)

    def invalidate(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        logger.debug("[DEDUP CACHE] Cleared all %d entries", count)
        return count

    def start(self) -> None:
        """Start the background sweep task on the running loop."""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_loop())
            logger.info("[DEDUP CACHE] Sweep task started (every %ss)", self._sweep_interval)

    async def shutdown(self) -> None:
        """Stop the sweep task and cancel computations nobody will collect."""
        for task in list(self._inflight.values()):
            task.cancel()
        if self._sweep_task is None:
            return
        self._sweep_task.cancel()
        try:
            await self._sweep_task
        except asyncio.CancelledError:
            pass
        self._sweep_task = None
        logger.info("[DEDUP CACHE] Sweep task stopped")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            self.sweep()

    def get_stats(self) -> Dict[str, float]:
        return {
            "size": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
            "ttl_seconds": self._ttl_seconds,
        }
