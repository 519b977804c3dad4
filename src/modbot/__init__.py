"""
ModBot - Toxicity-Based Moderation Layer

ModBot sits between chat surfaces (a Discord server, a web chat, a comment
system) and a remote toxicity classifier. It scores candidate text, decides
what to do with it, and tracks an escalating per-user warning state across
repeated violations.

Core Components:

- **Score Normalization**: Converts raw classifier attribute scores into a
  fixed-shape assessment with per-attribute thresholds
- **Policy Evaluation**: Maps an assessment plus the user's warning state to
  an action on the escalation ladder (allow, flag, warn, timeout, ban)
- **Warning Store**: Owns per-user warning state with atomic, per-user
  serialized updates, inactivity expiry, and pluggable persistence
- **Orchestration**: Runs the normalize -> evaluate -> update pipeline per
  message, fails open on classifier outages, and fans out batches
- **Surfaces**: A FastAPI HTTP service and a Py-Cord Discord adapter that
  enact the returned decisions

Usage:
    from modbot.main import main
    main()  # Starts the HTTP API (and the Discord bot when a token is set)
"""

__version__ = "1.0.0"
