"""
Utility functions and helpers for ModBot.

- **logger.py**: Centralized logging with coloured console output through
  prompt_toolkit, a rotating per-session log file, and suppression of noisy
  library loggers.

- **format_utils.py**: Durations, timestamps and text previews.
"""
