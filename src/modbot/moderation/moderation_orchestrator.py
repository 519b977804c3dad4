"""
Moderation orchestrator: the per-message pipeline.

For each incoming text: validate and truncate, classify (through the
deduplication cache when one is configured), normalize, evaluate against the
user's warning state, and atomically apply the result in the WarningStore.

Classifier failures of any kind (timeout, network, bad response) fail OPEN:
the caller gets an ``allow`` decision marked ``degraded`` and no warning
state is touched. Only malformed input raises, as ValidationError.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import replace
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

from modbot.datatypes.errors import (
    BatchItemError,
    ClassifierError,
    ClassifierErrorKind,
    PersistenceError,
    ValidationError,
)
from modbot.datatypes.moderation_datatypes import (
    BatchItem,
    BatchResult,
    ModerationAction,
    ModerationDecision,
    PolicyConfig,
    Severity,
    ViolationAssessment,
    WarningState,
)
from modbot.moderation.dedup_cache import DeduplicationCache, fingerprint
from modbot.moderation.moderation_stats import ModerationStats
from modbot.moderation.policy_evaluator import PolicyEvaluator
from modbot.moderation.score_normalizer import ScoreNormalizer
from modbot.moderation.warning_store import WarningStore
from modbot.util.logger import get_logger

logger = get_logger("moderation_orchestrator")

FAIL_OPEN_REASON = "moderation service unavailable"
EMPTY_TEXT_REASON = "empty text"


class Classifier(Protocol):
    async def classify(self, text: str, languages: Optional[Sequence[str]] = None) -> Mapping[str, Any]: ...


class DecisionAuditLog(Protocol):
    async def log_decision(self, decision: ModerationDecision) -> None: ...


class ModerationOrchestrator:
    """
    Composes normalizer, evaluator and warning store for every inbound text.

    Attributes:
        classifier: Remote scorer, called with the cleaned text and language hints.
        warning_store: Owner of per-user warning state.
        normalizer: Raw scores to ViolationAssessment.
        evaluator: Decision table with the default policy.
        cache: Optional deduplication cache shared by all callers.
        stats: Decision and latency counters.
    """

    def __init__(
        self,
        classifier: Classifier,
        warning_store: WarningStore,
        normalizer: Optional[ScoreNormalizer] = None,
        evaluator: Optional[PolicyEvaluator] = None,
        cache: Optional[DeduplicationCache] = None,
        stats: Optional[ModerationStats] = None,
        audit_log: Optional[DecisionAuditLog] = None,
        max_text_length: int = 3000,
        classifier_timeout: float = 10.0,
        batch_default_concurrency: int = 5,
        batch_max_items: int = 50,
    ) -> None:
        self.classifier = classifier
        self.warning_store = warning_store
        self.normalizer = normalizer or ScoreNormalizer()
        self.evaluator = evaluator or PolicyEvaluator()
        self.cache = cache
        self.stats = stats or ModerationStats()
        self.audit_log = audit_log
        self.max_text_length = max_text_length
        self.classifier_timeout = classifier_timeout
        self.batch_default_concurrency = batch_default_concurrency
        self.batch_max_items = batch_max_items

    # ========== Single-message paths ==========

    async def evaluate_message(
        self,
        text: str,
        user_id: str,
        policy_overrides: Optional[Mapping[str, Any]] = None,
        thresholds: Optional[Mapping[str, Any]] = None,
        languages: Optional[Sequence[str]] = None,
    ) -> ModerationDecision:
        """
        Evaluate one message from one user and apply the outcome to their state.

        Args:
            text: Raw message text. Empty text yields a degraded allow; text
                longer than ``max_text_length`` is truncated.
            user_id: Stable identifier of the author.
            policy_overrides: Per-call PolicyConfig overrides.
            thresholds: Per-call threshold overrides.
            languages: Language hints for the classifier.

        Returns:
            The decision to enact. On classifier failure this is an ``allow``
            marked ``degraded`` and the user's warning count is untouched.

        Raises:
            ValidationError: On a non-string text, a missing user id, or an
                invalid threshold override.
        """
        if not isinstance(user_id, str) or not user_id.strip():
            raise ValidationError("user id is required")

        policy = self.evaluator.policy.with_overrides(policy_overrides)
        try:
            decision = await self._decide(text, user_id, thresholds, languages, policy)
        except ClassifierError as exc:
            decision = self._fail_open(exc, user_id)

        await self._record(decision)
        return decision

    async def analyze(
        self,
        text: str,
        thresholds: Optional[Mapping[str, Any]] = None,
        languages: Optional[Sequence[str]] = None,
        policy_overrides: Optional[Mapping[str, Any]] = None,
    ) -> ModerationDecision:
        """Stateless evaluation: the text is judged as if from a user with no warnings."""
        policy = self.evaluator.policy.with_overrides(policy_overrides)
        try:
            decision = await self._decide(text, None, thresholds, languages, policy)
        except ClassifierError as exc:
            decision = self._fail_open(exc, None)

        await self._record(decision)
        return decision

    async def assess(
        self,
        text: str,
        thresholds: Optional[Mapping[str, Any]] = None,
        languages: Optional[Sequence[str]] = None,
    ) -> ViolationAssessment:
        """
        Classify ``text`` and normalize the scores under ``thresholds``.

        Identical texts share one classifier call while the cached
        assessment is fresh; a cached assessment is re-thresholded for the
        caller's thresholds.

        Raises:
            ClassifierError: If the classifier failed or its output was unusable.
        """
        resolved = self.normalizer.resolve_thresholds(thresholds)
        if self.cache is None:
            return self.normalizer.reassess(await self._classify_and_normalize(text, languages), resolved)

        key = fingerprint(text)
        if languages:
            key = f"{key}:{','.join(languages)}"
        assessment = await self.cache.get_or_compute(key, lambda: self._classify_and_normalize(text, languages))
        return self.normalizer.reassess(assessment, resolved)

    # ========== Batch ==========

    async def evaluate_batch(
        self,
        items: Sequence[Any],
        concurrency_limit: Optional[int] = None,
    ) -> List[BatchResult]:
        """
        Evaluate many texts with bounded parallelism.

        Items are split into consecutive chunks of ``concurrency_limit``; a
        chunk's items run concurrently and the next chunk starts when the
        previous one has finished. Results keep the input order. An item
        that fails yields a degraded decision carrying its error and never
        affects its siblings.

        Args:
            items: BatchItem instances or plain strings.
            concurrency_limit: Chunk size; defaults to ``batch_default_concurrency``.

        Raises:
            ValidationError: On an empty batch, more than ``batch_max_items``
                items, or a concurrency limit below 1.
        """
        batch = [item if isinstance(item, BatchItem) else BatchItem(text=item) for item in items or []]
        if not batch:
            raise ValidationError("batch must contain at least one text")
        if len(batch) > self.batch_max_items:
            raise ValidationError(f"batch is limited to {self.batch_max_items} texts")

        limit = self.batch_default_concurrency if concurrency_limit is None else concurrency_limit
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise ValidationError("concurrency limit must be a positive integer")

        results: List[BatchResult] = []
        for start in range(0, len(batch), limit):
            chunk = batch[start:start + limit]
            results.extend(
                await asyncio.gather(
                    *(self._evaluate_batch_item(start + offset, item) for offset, item in enumerate(chunk))
                )
            )

        failed = sum(1 for result in results if result.error)
        logger.info("[ORCHESTRATOR] Batch of %d evaluated in chunks of %d (%d failed)", len(results), limit, failed)
        return results

    async def _evaluate_batch_item(self, index: int, item: BatchItem) -> BatchResult:
        try:
            decision = await self._decide(
                item.text,
                item.user_id,
                item.thresholds,
                item.languages or None,
                self.evaluator.policy,
            )
        except Exception as exc:
            error = BatchItemError(index, exc)
            logger.warning("[ORCHESTRATOR] %s", error)
            reason = FAIL_OPEN_REASON if isinstance(exc, ClassifierError) else str(exc)
            decision = ModerationDecision.degraded_allow(reason, self._current_count(item.user_id), item.user_id)
            await self._record(decision)
            return BatchResult(index=index, decision=decision, error=str(exc))

        await self._record(decision)
        return BatchResult(index=index, decision=decision)

    # ========== Statistics ==========

    def get_statistics(self) -> Dict[str, Any]:
        statistics = self.stats.get_statistics()
        statistics["trackedUsers"] = self.warning_store.tracked_users
        statistics["usersWithWarnings"] = self.warning_store.users_with_warnings()
        if self.cache is not None:
            statistics["cache"] = self.cache.get_stats()
        return statistics

    def reset_statistics(self) -> None:
        """Zero the decision, latency and cache hit counters."""
        self.stats.reset()
        if self.cache is not None:
            self.cache.hits = 0
            self.cache.misses = 0

    def flush_cache(self) -> int:
        """Drop every cached assessment. Returns the number dropped."""
        if self.cache is None:
            return 0
        flushed = self.cache.invalidate()
        logger.info("[ORCHESTRATOR] Flushed %d cached assessments", flushed)
        return flushed

    # ========== Private Methods ==========

    def prepare_text(self, text: Any) -> str:
        """Trim ``text`` and cut it to ``max_text_length`` characters."""
        if not isinstance(text, str):
            raise ValidationError("text must be a string")
        return text.strip()[: self.max_text_length]

    async def _decide(
        self,
        text: Any,
        user_id: Optional[str],
        thresholds: Optional[Mapping[str, Any]],
        languages: Optional[Sequence[str]],
        policy: PolicyConfig,
    ) -> ModerationDecision:
        """The pipeline proper; ClassifierError propagates to the caller's fail-open handling."""
        cleaned = self.prepare_text(text)
        resolved = self.normalizer.resolve_thresholds(thresholds)

        if not cleaned:
            return ModerationDecision.degraded_allow(EMPTY_TEXT_REASON, self._current_count(user_id), user_id)

        if user_id is not None:
            muted = self._muted_decision(user_id)
            if muted is not None:
                return muted

        assessment = await self.assess(cleaned, resolved, languages)

        if user_id is None:
            decision = self.evaluator.evaluate(assessment, WarningState(user_id=""), policy)
            return replace(decision, user_id=None)

        try:
            decision, _ = await self.warning_store.evaluate_and_apply(
                user_id,
                lambda state: self.evaluator.evaluate(assessment, state, policy),
            )
        except PersistenceError as exc:
            self.stats.record_persistence_failure()
            logger.error("[ORCHESTRATOR] Warning state for %s not persisted, decision stands: %s", user_id, exc)
            decision = exc.decision
        return decision

    async def _classify_and_normalize(self, text: str, languages: Optional[Sequence[str]]) -> ViolationAssessment:
        started = time.perf_counter()
        try:
            raw_scores = await asyncio.wait_for(self.classifier.classify(text, languages), self.classifier_timeout)
        except asyncio.TimeoutError as exc:
            raise ClassifierError(ClassifierErrorKind.TIMEOUT, f"classifier timed out after {self.classifier_timeout}s") from exc
        finally:
            self.stats.track_classifier_call(time.perf_counter() - started)

        try:
            return self.normalizer.normalize(raw_scores)
        except ValidationError as exc:
            raise ClassifierError(ClassifierErrorKind.BAD_RESPONSE, str(exc)) from exc

    def _muted_decision(self, user_id: str) -> Optional[ModerationDecision]:
        now = self.warning_store.now()
        state = self.warning_store.get(user_id, now)
        if not state.is_muted(now):
            return None
        return ModerationDecision(
            action=ModerationAction.BLOCK_TIMEOUT,
            severity=Severity.NONE,
            warning_count_after=state.warning_count,
            reason=f"User is muted until {state.muted_until.isoformat()}",
            user_id=user_id,
            muted_until=state.muted_until,
        )

    def _fail_open(self, exc: ClassifierError, user_id: Optional[str]) -> ModerationDecision:
        logger.warning("[ORCHESTRATOR] Classifier unavailable (%s), allowing content: %s", exc.kind, exc)
        return ModerationDecision.degraded_allow(FAIL_OPEN_REASON, self._current_count(user_id), user_id)

    def _current_count(self, user_id: Optional[str]) -> int:
        return self.warning_store.get(user_id).warning_count if user_id else 0

    async def _record(self, decision: ModerationDecision) -> None:
        self.stats.record_decision(decision)
        if decision.action is ModerationAction.ALLOW:
            return

        logger.info(
            "[ORCHESTRATOR] %s for user %s (severity=%s, warnings=%d): %s",
            decision.action,
            decision.user_id or "-",
            decision.severity,
            decision.warning_count_after,
            decision.reason,
        )
        if self.audit_log is None or decision.user_id is None:
            return
        try:
            await self.audit_log.log_decision(decision)
        except Exception as exc:
            logger.error("[ORCHESTRATOR] Failed to write audit log entry: %s", exc)
