from __future__ import annotations
from pathlib import Path
import fcntl
from typing import Any, Dict
import yaml

from modbot.configuration.moderation_settings import DiscordSettings, ModerationSettings
from modbot.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path("./config/app_config.yml").resolve()
DEFAULT_DB_PATH = Path("./data/modbot.db")


class AppConfig:
    """File-lock based accessor around the YAML-based application configuration.

    The class caches contents of ``./config/app_config.yml``, exposes dictionary-like
    access helpers, and resolves moderation and Discord settings through
    :class:`ModerationSettings` and :class:`DiscordSettings`.
    Uses fcntl file locks for safe concurrent access across processes.
    """

    def __init__(self, config_path: Path) -> None:
        self.config_path = config_path
        self._data: Dict[str, Any] = {}
        self.reload()

    # --------------------------
    # Private helpers
    # --------------------------
    def load_from_disk(self) -> Dict[str, Any]:
        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                # Acquire a shared lock for reading
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    data = yaml.safe_load(f)
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
            if data is None:
                return {}
            if not isinstance(data, dict):
                logger.error("[APP CONFIGURATION] Config %s is not a mapping, ignoring it.", self.config_path)
                return {}
            return data
        except FileNotFoundError:
            logger.error("[APP CONFIGURATION] Config file %s not found.", self.config_path)
        except Exception as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
        return {}

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Reload configuration from disk and return the loaded mapping.

        Returns the raw mapping that was loaded (an empty dict on error).
        """
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        """Return the current cached configuration mapping.

        The returned dict is the internal cache (shallow reference). Callers
        should not mutate it; use get(...) or the provided convenience
        properties instead.
        """
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Safe lookup for top-level configuration keys."""
        return self._data.get(key, default)

    # --------------------------
    # High-level shortcuts
    # --------------------------
    @property
    def moderation(self) -> ModerationSettings:
        """Return the moderation engine settings (thresholds, policy, limits)."""
        settings = self._data.get("moderation", {})
        if not isinstance(settings, dict):
            settings = {}
        return ModerationSettings(settings)

    @property
    def discord(self) -> DiscordSettings:
        """Return the Discord adapter settings."""
        settings = self._data.get("discord", {})
        if not isinstance(settings, dict):
            settings = {}
        return DiscordSettings(settings)

    @property
    def database_path(self) -> Path:
        """Return the SQLite file used for warning-state persistence."""
        database = self._data.get("database", {})
        if isinstance(database, dict) and database.get("path"):
            return Path(str(database["path"])).resolve()
        return DEFAULT_DB_PATH.resolve()


# Shared application-wide configuration instance
app_config = AppConfig(CONFIG_PATH)
