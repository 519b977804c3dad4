"""
Per-user warning state with atomic, per-user serialized updates.

WarningStore is the only owner of WarningState records and the only shared
mutable resource of the engine. Every mutation runs under a lock keyed by
user id: two updates for the same user are linearized, while updates for
different users never wait on each other.

Persistence is pluggable. The in-memory state is authoritative; a write to
durable storage happens inside the user's lock right after the in-memory
commit (so the last write per user wins), and a failed write is logged and
reported to the caller without rolling back memory.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Callable, Dict, Optional, Protocol, Tuple

from modbot.datatypes.errors import PersistenceError
from modbot.datatypes.moderation_datatypes import ModerationAction, ModerationDecision, WarningState
from modbot.util.logger import get_logger

logger = get_logger("warning_store")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class WarningPersistence(Protocol):
    """Durable backing for warning states."""

    async def load_all_warning_states(self) -> Dict[str, WarningState]: ...

    async def persist(self, user_id: str, state: WarningState) -> None: ...

    async def delete(self, user_id: str) -> None: ...


class WarningStore:
    """
    Owner of all per-user warning state.

    Provides:
    - get(user_id): expiry-adjusted view of a user's state (zero-state if absent)
    - apply_atomic(user_id, decision): the single mutation path for decisions
    - evaluate_and_apply(user_id, evaluate): read, decide, and apply as one unit
    - clear / set_mute / clear_mute: administrative updates

    Attributes:
        reset_window: Inactivity after which accumulated warnings expire.
        mute_duration: Length of the timeout started by block_timeout.
    """

    def __init__(
        self,
        reset_window: timedelta = timedelta(hours=24),
        mute_duration: timedelta = timedelta(seconds=600),
        persistence: Optional[WarningPersistence] = None,
        clock: Clock = utc_now,
    ) -> None:
        self.reset_window = reset_window
        self.mute_duration = mute_duration
        self._persistence = persistence
        self._clock = clock
        self._states: Dict[str, WarningState] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_refs: Dict[str, int] = {}
        self._initialized = False

    async def async_init(self) -> int:
        """Load every persisted state into memory. Returns the number loaded."""
        if self._initialized or self._persistence is None:
            self._initialized = True
            return 0

        loaded = await self._persistence.load_all_warning_states()
        self._states.update(loaded)
        self._initialized = True
        logger.info("[WARNING STORE] Loaded %d warning states", len(loaded))
        return len(loaded)

    # ========== Reads ==========

    def now(self) -> datetime:
        """Current time on the store's clock."""
        return self._clock()

    def get(self, user_id: str, now: Optional[datetime] = None) -> WarningState:
        """
        Return the user's state as the policy should see it.

        Users without a record get the zero-state. A record whose last
        violation is older than the reset window reads as warning_count 0,
        even though the stored value is unchanged until the next update.
        """
        now = now or self._clock()
        return self._effective(self._states.get(user_id), user_id, now)

    def is_muted(self, user_id: str, now: Optional[datetime] = None) -> bool:
        return self.get(user_id, now).is_muted(now or self._clock())

    @property
    def tracked_users(self) -> int:
        return len(self._states)

    def users_with_warnings(self, now: Optional[datetime] = None) -> int:
        now = now or self._clock()
        return sum(1 for user_id in self._states if self.get(user_id, now).warning_count > 0)

    # ========== Atomic updates ==========

    async def apply_atomic(
        self,
        user_id: str,
        decision: ModerationDecision,
        now: Optional[datetime] = None,
    ) -> WarningState:
        """
        Apply ``decision`` to the user's current state as one atomic unit.

        The expiry check runs first, then the action's effect is applied to
        the state found under the lock (not to the state the decision was
        computed from), so concurrent warnings are all counted.

        Returns:
            The user's new state.

        Raises:
            PersistenceError: If durable storage rejected the write. The new
                state is already committed in memory and is on the error.
        """
        async with self._user_lock(user_id):
            now = now or self._clock()
            current = self._effective(self._states.get(user_id), user_id, now)
            updated = self._apply_action(current, decision.action, now)
            await self._commit(user_id, updated, decision)
            return updated

    async def evaluate_and_apply(
        self,
        user_id: str,
        evaluate: Callable[[WarningState], ModerationDecision],
        now: Optional[datetime] = None,
    ) -> Tuple[ModerationDecision, WarningState]:
        """
        Read the user's state, compute a decision from it, and apply it, all
        under the user's lock.

        Args:
            user_id: User being evaluated.
            evaluate: Pure function from the user's effective state to a decision.
            now: Evaluation time; defaults to the store's clock.

        Returns:
            The decision (with ``warning_count_after`` and ``muted_until``
            matching the committed state) and the new state.

        Raises:
            PersistenceError: If durable storage rejected the write; carries
                both the committed state and the decision.
        """
        async with self._user_lock(user_id):
            now = now or self._clock()
            current = self._effective(self._states.get(user_id), user_id, now)
            decision = evaluate(current)
            updated = self._apply_action(current, decision.action, now)
            decision = replace(
                decision,
                warning_count_after=updated.warning_count,
                muted_until=updated.muted_until if decision.action is ModerationAction.BLOCK_TIMEOUT else None,
            )
            await self._commit(user_id, updated, decision)
            return decision, updated

    # ========== Administrative updates ==========

    async def clear(self, user_id: str) -> WarningState:
        """Reset the user to the zero-state and drop the stored record."""
        async with self._user_lock(user_id):
            existed = self._states.pop(user_id, None) is not None
            cleared = WarningState(user_id=user_id)
            logger.info("[WARNING STORE] Cleared warnings for user %s", user_id)
            if existed and self._persistence is not None:
                try:
                    await self._persistence.delete(user_id)
                except Exception as exc:
                    logger.error("[WARNING STORE] Failed to delete stored state for %s: %s", user_id, exc)
                    raise PersistenceError(f"failed to delete warning state for {user_id}", state=cleared) from exc
            return cleared

    async def set_mute(self, user_id: str, until: datetime) -> WarningState:
        """Record an active timeout for the user ending at ``until``."""
        async with self._user_lock(user_id):
            current = self._states.get(user_id) or WarningState(user_id=user_id)
            updated = replace(current, muted_until=until)
            await self._commit(user_id, updated)
            return updated

    async def clear_mute(self, user_id: str) -> WarningState:
        """Lift the user's active timeout, if any."""
        async with self._user_lock(user_id):
            current = self._states.get(user_id) or WarningState(user_id=user_id)
            if current.muted_until is None:
                return current
            updated = replace(current, muted_until=None)
            await self._commit(user_id, updated)
            return updated

    # ========== Private Methods ==========

    def _effective(self, state: Optional[WarningState], user_id: str, now: datetime) -> WarningState:
        if state is None:
            return WarningState(user_id=user_id)
        if state.warning_count and state.is_expired(now, self.reset_window):
            return replace(state, warning_count=0)
        return state

    def _apply_action(self, state: WarningState, action: ModerationAction, now: datetime) -> WarningState:
        if action is ModerationAction.BLOCK_WARN:
            return replace(state, warning_count=state.warning_count + 1, last_violation_at=now)
        if action is ModerationAction.BLOCK_TIMEOUT:
            return replace(state, warning_count=0, last_violation_at=now, muted_until=now + self.mute_duration)
        if action is ModerationAction.BLOCK_BAN:
            return replace(state, warning_count=0, last_violation_at=now)
        return state

    async def _commit(self, user_id: str, state: WarningState, decision: Optional[ModerationDecision] = None) -> None:
        """Write ``state`` to memory, then to durable storage. Caller holds the user's lock."""
        previous = self._states.get(user_id)
        if previous == state or (previous is None and state == WarningState(user_id=user_id)):
            return

        self._states[user_id] = state
        if self._persistence is None:
            return

        try:
            await self._persistence.persist(user_id, state)
        except Exception as exc:
            logger.error("[WARNING STORE] Failed to persist warning state for %s: %s", user_id, exc)
            raise PersistenceError(f"failed to persist warning state for {user_id}", state=state, decision=decision) from exc

    @asynccontextmanager
    async def _user_lock(self, user_id: str) -> AsyncIterator[None]:
        """Hold the lock for ``user_id``; the lock is discarded once nobody holds or awaits it."""
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        self._lock_refs[user_id] = self._lock_refs.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_refs[user_id] -= 1
            if self._lock_refs[user_id] == 0:
                del self._lock_refs[user_id]
                del self._locks[user_id]
