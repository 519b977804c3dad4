"""
Error taxonomy for ModBot.

Only ValidationError and AuthorizationError (plus the rate limiter's
RateLimitError) ever reach an end caller as hard failures. Classifier and
per-item batch errors are recovered inside the orchestrator and turned into
fail-open decisions; persistence errors are logged while the in-memory
decision stands.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ModBotError(Exception):
    """Base class for every error raised by ModBot."""


class ValidationError(ModBotError):
    """Malformed, missing, or oversized input. No classifier call is made."""


class ClassifierErrorKind(Enum):
    TIMEOUT = "timeout"
    NETWORK = "network"
    BAD_RESPONSE = "bad_response"

    def __str__(self) -> str:
        return self.value


class ClassifierError(ModBotError):
    """The toxicity classifier could not produce scores.

    Attributes:
        kind: Whether the call timed out, failed on the network, or returned
            something unusable (non-2xx status or unexpected body).
        status: HTTP status of the classifier response, when there was one.
    """

    def __init__(self, kind: ClassifierErrorKind, message: str = "", status: int | None = None) -> None:
        super().__init__(message or f"classifier {kind.value}")
        self.kind = kind
        self.status = status


class BatchItemError(ModBotError):
    """A single batch entry failed; its siblings are unaffected."""

    def __init__(self, index: int, cause: BaseException) -> None:
        super().__init__(f"batch item {index} failed: {cause}")
        self.index = index
        self.cause = cause


class AuthorizationError(ModBotError):
    """Missing or wrong API key for a protected endpoint."""


class RateLimitError(ModBotError):
    """The caller exhausted its request window.

    Attributes:
        retry_after: Seconds until the caller's window resets.
    """

    def __init__(self, retry_after: int) -> None:
        super().__init__(f"rate limit exceeded, retry after {retry_after}s")
        self.retry_after = retry_after


class PersistenceError(ModBotError):
    """Durable storage rejected a write. The in-memory state is already updated.

    Attributes:
        state: The state that was committed in memory but not persisted.
        decision: The decision that produced ``state``, when there was one.
    """

    def __init__(self, message: str, state: Any = None, decision: Any = None) -> None:
        super().__init__(message)
        self.state = state
        self.decision = decision
