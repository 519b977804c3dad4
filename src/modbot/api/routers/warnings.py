"""Warnings router -- administrative view and reset of per-user warning state."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from modbot.api.dependencies import ApiContext, get_context, request_id
from modbot.api.security import require_api_key

router = APIRouter(prefix="/warnings", tags=["warnings"], dependencies=[Depends(require_api_key)])


@router.get("/{user_id}")
async def get_warnings(user_id: str, request: Request, context: ApiContext = Depends(get_context)):
    store = context.orchestrator.warning_store
    now = store.now()
    state = store.get(user_id, now)

    data = state.to_dict()
    data["isMuted"] = state.is_muted(now)
    data["escalationLimit"] = context.orchestrator.evaluator.policy.escalation_limit
    if context.audit_log is not None:
        data["recentDecisions"] = await context.audit_log.recent_decisions(user_id)
    return {"success": True, "requestId": request_id(request), "data": data}


@router.delete("/{user_id}")
async def clear_warnings(user_id: str, request: Request, context: ApiContext = Depends(get_context)):
    """Reset the user to zero warnings and lift any recorded mute."""
    state = await context.orchestrator.warning_store.clear(user_id)
    return {
        "success": True,
        "requestId": request_id(request),
        "message": f"Warnings for {user_id} cleared",
        "data": state.to_dict(),
    }
