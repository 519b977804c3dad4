import json
from pathlib import Path

import pytest

from modbot.configuration.app_configuration import AppConfig
from modbot.configuration.moderation_settings import DiscordSettings, ModerationSettings


@pytest.fixture()
def config_path(tmp_path: Path) -> Path:
    return tmp_path / "app_config.yml"


@pytest.fixture(autouse=True)
def clear_env(monkeypatch):
    for name in ("TOXICITY_THRESHOLD", "SEVERE_TOXICITY_THRESHOLD", "MONITORED_CHANNELS"):
        monkeypatch.delenv(name, raising=False)


def test_app_config_reload_parses_yaml(config_path: Path) -> None:
    config_payload = {
        "moderation": {
            "thresholds": {"toxicity": 0.6, "unknown": 0.1},
            "policy": {"escalation_limit": 3, "ban_on_escalation": True},
            "warnings": {"reset_window_hours": 12, "mute_duration_seconds": 300},
            "batch": {"max_items": 20},
        },
        "discord": {"monitored_channels": ["10", 20, "junk"], "log_channel_id": "55"},
        "database": {"path": str(config_path.parent / "db" / "state.db")},
    }
    config_path.write_text(json.dumps(config_payload), encoding="utf-8")

    config = AppConfig(config_path)

    moderation = config.moderation
    assert moderation.thresholds["toxicity"] == pytest.approx(0.6)
    assert "unknown" not in moderation.thresholds
    assert moderation.policy.escalation_limit == 3
    assert moderation.policy.ban_on_escalation is True
    assert moderation.reset_window.total_seconds() == 12 * 3600
    assert moderation.mute_duration_seconds == 300
    assert moderation.batch_max_items == 20

    discord_settings = config.discord
    assert discord_settings.monitored_channels == [10, 20]
    assert discord_settings.log_channel_id == 55
    assert config.database_path == (config_path.parent / "db" / "state.db").resolve()


def test_app_config_missing_file_returns_defaults(tmp_path: Path) -> None:
    config = AppConfig(tmp_path / "does_not_exist.yml")

    assert config.data == {}
    assert config.moderation.thresholds["severe_toxicity"] == pytest.approx(0.8)
    assert config.discord.monitored_channels == []
    assert config.database_path.name == "modbot.db"


def test_non_mapping_file_is_ignored(config_path: Path) -> None:
    config_path.write_text("- just\n- a list\n", encoding="utf-8")

    assert AppConfig(config_path).data == {}


def test_reload_picks_up_changes(config_path: Path) -> None:
    config_path.write_text("moderation: {}\n", encoding="utf-8")
    config = AppConfig(config_path)
    config_path.write_text("moderation:\n  text:\n    max_length: 100\n", encoding="utf-8")

    config.reload()

    assert config.moderation.max_text_length == 100


def test_moderation_settings_defaults() -> None:
    settings = ModerationSettings()

    assert settings.policy.escalation_limit == 2
    assert settings.policy.ban_on_escalation is False
    assert settings.mute_duration_seconds == 600
    assert settings.reset_window.total_seconds() == 24 * 3600
    assert settings.max_text_length == 3000
    assert settings.classifier_languages == ["pt", "en"]
    assert settings.classifier_timeout_seconds == 10
    assert settings.batch_default_concurrency == 5
    assert settings.batch_max_items == 50
    assert settings.rate_limit_requests == 100


def test_threshold_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("TOXICITY_THRESHOLD", "0.5")
    monkeypatch.setenv("SEVERE_TOXICITY_THRESHOLD", "0.95")

    thresholds = ModerationSettings({"thresholds": {"insult": 0.2}}).thresholds

    assert thresholds["toxicity"] == pytest.approx(0.5)
    assert thresholds["insult"] == pytest.approx(0.5)
    assert thresholds["severe_toxicity"] == pytest.approx(0.95)


def test_invalid_environment_threshold_is_ignored(monkeypatch) -> None:
    monkeypatch.setenv("TOXICITY_THRESHOLD", "high")

    assert ModerationSettings().thresholds["toxicity"] == pytest.approx(0.7)


def test_monitored_channels_environment_override(monkeypatch) -> None:
    monkeypatch.setenv("MONITORED_CHANNELS", "1, 2,,3")

    assert DiscordSettings({"monitored_channels": [9]}).monitored_channels == [1, 2, 3]


def test_discord_settings_defaults() -> None:
    settings = DiscordSettings()

    assert settings.ignored_prefixes == ["!", "/"]
    assert settings.immune_users == []
    assert settings.log_channel_id is None
    assert settings.log_auto_delete_seconds == 10
