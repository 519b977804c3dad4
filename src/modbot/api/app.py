"""FastAPI application for the ModBot moderation API.

Provides REST endpoints wrapping the moderation orchestrator:
- Single-text moderation and detailed analysis
- Batch evaluation (API key)
- Statistics and warning-state administration (API key)

Every request gets a UUID request id, is logged with method, path and client
IP, and passes the per-caller rate limiter before routing. Errors are
rendered as ``{success: false, error, message, requestId}`` envelopes.
"""

from __future__ import annotations

import uuid
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from modbot import __version__
from modbot.api.dependencies import ApiContext
from modbot.api.routers import meta, moderation, warnings
from modbot.api.security import DEFAULT_API_KEY, FixedWindowRateLimiter, caller_identity
from modbot.configuration.moderation_settings import ModerationSettings
from modbot.datatypes.errors import AuthorizationError, RateLimitError, ValidationError
from modbot.moderation.moderation_orchestrator import ModerationOrchestrator
from modbot.util.logger import get_logger

logger = get_logger("api")

ENDPOINTS = ["/health", "/info", "/moderate", "/analyze", "/batch", "/stats", "/cache", "/warnings/{userId}"]


def error_response(status_code: int, error: str, message: str, request: Request, **extra: Any) -> JSONResponse:
    body = {
        "success": False,
        "error": error,
        "message": message,
        "requestId": getattr(request.state, "request_id", None),
    }
    body.update(extra)
    return JSONResponse(status_code=status_code, content=body)


def create_app(
    orchestrator: ModerationOrchestrator,
    settings: Optional[ModerationSettings] = None,
    api_key: Optional[str] = None,
    classifier_configured: bool = False,
    audit_log: Optional[Any] = None,
    rate_limiter: Optional[FixedWindowRateLimiter] = None,
) -> FastAPI:
    """Build the API around an already wired orchestrator.

    Args:
        orchestrator: Pipeline used by every moderation route.
        settings: Limits and thresholds reported by /info and /stats.
        api_key: Shared secret for protected routes.
        classifier_configured: Reported by /stats.
        audit_log: Optional source of recent decisions for /warnings.
        rate_limiter: Defaults to the configured fixed-window limiter.
    """
    settings = settings or ModerationSettings()
    if not api_key or api_key == DEFAULT_API_KEY:
        logger.warning("[API] Using the default API key, set API_SECRET_KEY to a custom value")

    app = FastAPI(
        title="ModBot API",
        description="Automatic content moderation backed by the Perspective toxicity classifier.",
        version=__version__,
    )
    app.state.context = ApiContext(
        orchestrator=orchestrator,
        settings=settings,
        api_key=api_key or DEFAULT_API_KEY,
        classifier_configured=classifier_configured,
        audit_log=audit_log,
    )
    limiter = rate_limiter or FixedWindowRateLimiter(settings.rate_limit_requests, settings.rate_limit_window_seconds)

    # ---------------------------------------------------------------------------
    # Request id, logging and rate limiting
    # ---------------------------------------------------------------------------

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        client_ip = request.client.host if request.client else "unknown"
        logger.info("[API] %s - %s %s - IP: %s", request_id, request.method, request.url.path, client_ip)

        try:
            limiter.consume(caller_identity(request))
        except RateLimitError as exc:
            logger.warning("[API] %s - rate limit exceeded for %s", request_id, client_ip)
            return error_response(
                429,
                "Too Many Requests",
                "Rate limit exceeded. Try again later.",
                request,
                retryAfter=exc.retry_after,
            )

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ---------------------------------------------------------------------------
    # Error envelopes
    # ---------------------------------------------------------------------------

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        return error_response(400, "Bad Request", str(exc), request)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError):
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'] if part != 'body')}: {error['msg']}"
            for error in exc.errors()
        )
        return error_response(400, "Bad Request", problems or "Invalid request body", request)

    @app.exception_handler(AuthorizationError)
    async def handle_authorization_error(request: Request, exc: AuthorizationError):
        return error_response(401, "Unauthorized", str(exc), request)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return error_response(
                404,
                "Not Found",
                f"Route {request.method} {request.url.path} not found",
                request,
                availableEndpoints=ENDPOINTS,
            )
        return error_response(exc.status_code, str(exc.detail), str(exc.detail), request)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error(
            "[API] %s - unhandled error: %s",
            getattr(request.state, "request_id", "unknown"),
            exc,
            exc_info=exc,
        )
        return error_response(500, "Internal Server Error", "An unexpected error occurred", request)

    # ---------------------------------------------------------------------------
    # Routers
    # ---------------------------------------------------------------------------
    app.include_router(meta.router)
    app.include_router(moderation.router)
    app.include_router(warnings.router)

    return app
