"""
Configuration management for ModBot.

- **app_configuration.py**: File-locked YAML loader for ``config/app_config.yml``.
  Falls back to an empty mapping on missing or malformed files.

- **moderation_settings.py**: Typed accessors with defaults for thresholds,
  escalation policy, warning windows, classifier, cache, batch, HTTP rate
  limiting and the Discord adapter. Applies environment overrides.
"""
