"""Meta router -- health, API information, and statistics."""

from __future__ import annotations

import time

from fastapi import APIRouter, Depends, Request

from modbot import __version__
from modbot.api.dependencies import ApiContext, get_context, request_id, utc_timestamp
from modbot.api.security import require_api_key
from modbot.datatypes.moderation_datatypes import TOXICITY_ATTRIBUTES

router = APIRouter(tags=["meta"])


@router.get("/health")
async def health():
    return {
        "success": True,
        "message": "ModBot API is running",
        "timestamp": utc_timestamp(),
        "version": __version__,
    }


@router.get("/info")
async def info(context: ApiContext = Depends(get_context)):
    """Return basic API information."""
    settings = context.settings
    return {
        "success": True,
        "data": {
            "name": "ModBot API",
            "version": __version__,
            "description": "Automatic content moderation using the Google Perspective API",
            "endpoints": [
                "GET /health - API status",
                "GET /info - API information",
                "POST /moderate - Moderate a text",
                "POST /analyze - Detailed text analysis",
                "POST /batch - Batch analysis (requires API key)",
                "GET /stats - Statistics (requires API key)",
                "DELETE /stats - Reset statistics (requires API key)",
                "DELETE /cache - Flush the classification cache (requires API key)",
                "GET /warnings/{userId} - Warning state of a user (requires API key)",
                "DELETE /warnings/{userId} - Clear a user's warnings (requires API key)",
            ],
            "rateLimit": (
                f"{settings.rate_limit_requests} requests per {settings.rate_limit_window_seconds} seconds "
                "per IP/API key"
            ),
            "authentication": "API key required for protected endpoints (X-API-Key header or apiKey query parameter)",
        },
    }


@router.get("/stats", dependencies=[Depends(require_api_key)])
async def stats(request: Request, context: ApiContext = Depends(get_context)):
    settings = context.settings
    policy = settings.policy
    return {
        "success": True,
        "requestId": request_id(request),
        "data": {
            "api": {
                "version": __version__,
                "uptime": int(time.time() - context.started_at),
            },
            "configuration": {
                "thresholds": context.orchestrator.normalizer.default_thresholds,
                "escalationLimit": policy.escalation_limit,
                "banOnEscalation": policy.ban_on_escalation,
                "resetWindowHours": settings.reset_window.total_seconds() / 3600,
                "muteDurationSeconds": settings.mute_duration_seconds,
                "rateLimitRequests": settings.rate_limit_requests,
                "rateLimitWindowSeconds": settings.rate_limit_window_seconds,
                "maxTextLength": settings.max_text_length,
                "maxBatchSize": settings.batch_max_items,
            },
            "classifier": {
                "configured": context.classifier_configured,
                "attributes": [name.upper() for name in TOXICITY_ATTRIBUTES],
            },
            "moderation": context.orchestrator.get_statistics(),
            "timestamp": utc_timestamp(),
        },
    }


@router.delete("/stats", dependencies=[Depends(require_api_key)])
async def reset_stats(request: Request, context: ApiContext = Depends(get_context)):
    """Zero the moderation counters. Warning state is untouched."""
    context.orchestrator.reset_statistics()
    return {"success": True, "requestId": request_id(request), "message": "Statistics reset"}


@router.delete("/cache", dependencies=[Depends(require_api_key)])
async def flush_cache(request: Request, context: ApiContext = Depends(get_context)):
    flushed = context.orchestrator.flush_cache()
    return {
        "success": True,
        "requestId": request_id(request),
        "message": f"{flushed} cached assessments removed",
        "data": {"flushed": flushed},
    }
