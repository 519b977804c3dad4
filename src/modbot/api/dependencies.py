"""Shared state handed to the route handlers."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import Request

from modbot.api.security import DEFAULT_API_KEY
from modbot.configuration.moderation_settings import ModerationSettings
from modbot.moderation.moderation_orchestrator import ModerationOrchestrator


@dataclass
class ApiContext:
    """Everything the route handlers need, stored on ``app.state.context``."""

    orchestrator: ModerationOrchestrator
    settings: ModerationSettings
    api_key: str = DEFAULT_API_KEY
    classifier_configured: bool = False
    audit_log: Optional[Any] = None
    started_at: float = field(default_factory=time.time)


def get_context(request: Request) -> ApiContext:
    return request.app.state.context


def request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()
