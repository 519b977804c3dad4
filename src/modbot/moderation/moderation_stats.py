"""
Aggregate counters for moderation decisions and classifier latency.

Counters are reported by the /stats endpoint and the Discord status command.
They are never consulted when making a decision.
"""

import time
from typing import Dict

from modbot.datatypes.moderation_datatypes import ModerationAction, ModerationDecision
from modbot.util.logger import get_logger

logger = get_logger("moderation_stats")


class ModerationStats:
    """
    Tracks decisions per action and classifier call timings.

    Records execution times for classifier calls and provides statistics
    including average, min, max times, and call counts.
    """

    def __init__(self, slow_call_threshold_ms: float = 2000.0):
        """
        Initialize the counters.

        Args:
            slow_call_threshold_ms: Classifier calls slower than this are logged
        """
        self.started_at = time.time()
        self._actions: Dict[str, int] = {action.value: 0 for action in ModerationAction}
        self._degraded = 0
        self._persistence_failures = 0
        self._classifier = {
            "count": 0,
            "total_time": 0.0,
            "min_time": float("inf"),
            "max_time": 0.0,
        }
        self._slow_call_threshold = slow_call_threshold_ms / 1000.0

    def record_decision(self, decision: ModerationDecision) -> None:
        self._actions[decision.action.value] += 1
        if decision.degraded:
            self._degraded += 1

    def record_persistence_failure(self) -> None:
        self._persistence_failures += 1

    def track_classifier_call(self, duration: float) -> None:
        """
        Track one classifier round trip.

        Args:
            duration: Execution time in seconds
        """
        stats = self._classifier
        stats["count"] += 1
        stats["total_time"] += duration
        stats["min_time"] = min(stats["min_time"], duration)
        stats["max_time"] = max(stats["max_time"], duration)

        if duration > self._slow_call_threshold:
            logger.warning("[PERFORMANCE] Slow classifier call took %.2fms", duration * 1000)

    @property
    def total_decisions(self) -> int:
        return sum(self._actions.values())

    def get_statistics(self) -> Dict[str, object]:
        """
        Get decision and latency statistics.

        Returns:
            Dictionary with decisions by action, degraded count, persistence
            failures, and classifier timings in milliseconds
        """
        stats = self._classifier
        count = stats["count"]
        return {
            "uptimeSeconds": round(time.time() - self.started_at),
            "totalDecisions": self.total_decisions,
            "decisionsByAction": dict(self._actions),
            "degraded": self._degraded,
            "persistenceFailures": self._persistence_failures,
            "classifier": {
                "calls": count,
                "avgMs": round(stats["total_time"] / count * 1000, 2) if count else 0,
                "minMs": round(stats["min_time"] * 1000, 2) if count else 0,
                "maxMs": round(stats["max_time"] * 1000, 2),
            },
        }

    def reset(self) -> None:
        """Reset all counters."""
        self._actions = {action.value: 0 for action in ModerationAction}
        self._degraded = 0
        self._persistence_failures = 0
        self._classifier.update(count=0, total_time=0.0, min_time=float("inf"), max_time=0.0)
        logger.info("[PERFORMANCE] Statistics reset")

    def get_summary(self) -> str:
        """
        Get a human-readable summary for chat surfaces.

        Returns:
            Formatted multi-line string
        """
        stats = self.get_statistics()
        lines = [f"Decisions: {stats['totalDecisions']} (degraded: {stats['degraded']})"]
        for action, count in stats["decisionsByAction"].items():
            lines.append(f"  {action}: {count}")
        classifier = stats["classifier"]
        lines.append(f"Classifier calls: {classifier['calls']} (avg {classifier['avgMs']}ms)")
        return "\n".join(lines)
