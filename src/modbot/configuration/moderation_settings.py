import os
from datetime import timedelta
from typing import Any, Dict, List

from modbot.datatypes.moderation_datatypes import DEFAULT_THRESHOLDS, PolicyConfig

PERSPECTIVE_API_URL = "https://commentanalyzer.googleapis.com/v1alpha1/comments:analyze"

# Attributes covered by the TOXICITY_THRESHOLD environment override
GENERAL_ATTRIBUTES = ("toxicity", "identity_attack", "insult", "profanity", "threat")


def _section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key, {})
    return value if isinstance(value, dict) else {}


def _env_float(name: str) -> float | None:
    raw = os.getenv(name)
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


class ModerationSettings:
    """Typed accessors for the moderation engine's tuning knobs.

    Wraps the raw YAML mapping and resolves every value against its
    documented default, so callers never need to check for missing keys.
    """

    def __init__(self, data: Dict[str, Any] | None = None) -> None:
        self.data: Dict[str, Any] = data or {}

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for `key` or `default` if missing."""
        return self.data.get(key, default)

    def as_dict(self) -> Dict[str, Any]:
        return self.data

    # Thresholds and policy
    @property
    def thresholds(self) -> Dict[str, float]:
        """Global thresholds: defaults, then the YAML file, then the environment."""
        thresholds = dict(DEFAULT_THRESHOLDS)
        for name, value in _section(self.data, "thresholds").items():
            if name in thresholds:
                thresholds[name] = float(value)

        general = _env_float("TOXICITY_THRESHOLD")
        if general is not None:
            for name in GENERAL_ATTRIBUTES:
                thresholds[name] = general
        severe = _env_float("SEVERE_TOXICITY_THRESHOLD")
        if severe is not None:
            thresholds["severe_toxicity"] = severe
        return thresholds

    @property
    def policy(self) -> PolicyConfig:
        policy = _section(self.data, "policy")
        return PolicyConfig(
            escalation_limit=int(policy.get("escalation_limit", 2)),
            high_severity_cut=float(policy.get("high_severity_cut", 0.9)),
            medium_severity_cut=float(policy.get("medium_severity_cut", 0.7)),
            ban_on_escalation=bool(policy.get("ban_on_escalation", False)),
        )

    # Warning state
    @property
    def reset_window(self) -> timedelta:
        hours = float(_section(self.data, "warnings").get("reset_window_hours", 24))
        return timedelta(hours=hours)

    @property
    def mute_duration_seconds(self) -> int:
        return int(_section(self.data, "warnings").get("mute_duration_seconds", 600))

    # Text limits
    @property
    def max_text_length(self) -> int:
        return int(_section(self.data, "text").get("max_length", 3000))

    @property
    def min_text_length(self) -> int:
        return int(_section(self.data, "text").get("min_length", 3))

    # Classifier
    @property
    def classifier_url(self) -> str:
        return str(_section(self.data, "classifier").get("url") or PERSPECTIVE_API_URL)

    @property
    def classifier_timeout_seconds(self) -> float:
        return float(_section(self.data, "classifier").get("timeout_seconds", 10))

    @property
    def classifier_languages(self) -> List[str]:
        languages = _section(self.data, "classifier").get("languages", ["pt", "en"])
        return [str(lang) for lang in languages] if isinstance(languages, list) else ["pt", "en"]

    # Deduplication cache
    @property
    def cache_ttl_seconds(self) -> float:
        return float(_section(self.data, "cache").get("ttl_seconds", 300))

    @property
    def cache_sweep_interval_seconds(self) -> float:
        return float(_section(self.data, "cache").get("sweep_interval_seconds", 60))

    # Batch evaluation
    @property
    def batch_default_concurrency(self) -> int:
        return int(_section(self.data, "batch").get("default_concurrency", 5))

    @property
    def batch_max_items(self) -> int:
        return int(_section(self.data, "batch").get("max_items", 50))

    # HTTP surface
    @property
    def rate_limit_requests(self) -> int:
        return int(_section(self.data, "api").get("rate_limit_requests", 100))

    @property
    def rate_limit_window_seconds(self) -> int:
        return int(_section(self.data, "api").get("rate_limit_window_seconds", 60))


class DiscordSettings:
    """Accessors for the Discord adapter section of the configuration."""

    def __init__(self, data: Dict[str, Any] | None = None) -> None:
        self.data: Dict[str, Any] = data or {}

    @staticmethod
    def _ids(values: Any) -> List[int]:
        if not isinstance(values, list):
            return []
        ids: List[int] = []
        for value in values:
            try:
                ids.append(int(value))
            except (TypeError, ValueError):
                continue
        return ids

    @property
    def monitored_channels(self) -> List[int]:
        env_channels = os.getenv("MONITORED_CHANNELS")
        if env_channels:
            return self._ids([part.strip() for part in env_channels.split(",") if part.strip()])
        return self._ids(self.data.get("monitored_channels", []))

    @property
    def immune_users(self) -> List[int]:
        return self._ids(self.data.get("immune_users", []))

    @property
    def immune_roles(self) -> List[int]:
        return self._ids(self.data.get("immune_roles", []))

    @property
    def ignored_prefixes(self) -> List[str]:
        prefixes = self.data.get("ignored_prefixes", ["!", "/"])
        return [str(p) for p in prefixes] if isinstance(prefixes, list) else ["!", "/"]

    @property
    def log_auto_delete_seconds(self) -> float:
        return float(self.data.get("log_auto_delete_seconds", 10))

    @property
    def log_channel_id(self) -> int | None:
        value = self.data.get("log_channel_id")
        try:
            return int(value) if value else None
        except (TypeError, ValueError):
            return None
