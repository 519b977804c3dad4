"""Moderation router -- single-text moderation, detailed analysis, and batch evaluation."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, Request

from modbot.api.dependencies import ApiContext, get_context, request_id, utc_timestamp
from modbot.api.schemas import AnalyzeRequest, BatchRequest, ModerateRequest
from modbot.api.security import require_api_key
from modbot.datatypes.errors import ValidationError
from modbot.datatypes.moderation_datatypes import BatchItem, BatchResult, ModerationDecision
from modbot.util.format_utils import preview

router = APIRouter(tags=["moderation"])


def _require_text(text: str) -> None:
    if not text:
        raise ValidationError("Text field is required and must be a string")


def _batch_entry(text: Any, result: BatchResult) -> Dict[str, Any]:
    decision = result.decision
    entry: Dict[str, Any] = {
        "index": result.index,
        "text": preview(text, 50) if isinstance(text, str) else None,
    }
    if result.error:
        entry.update(isToxic=None, action=decision.action.value, error=result.error)
        return entry
    entry.update(
        isToxic=decision.is_toxic,
        confidence=decision.confidence,
        violations=decision.violations,
        action=decision.action.value,
        severity=decision.severity.value,
        degraded=decision.degraded,
    )
    return entry


def _summary(entries: list) -> Dict[str, int]:
    return {
        "total": len(entries),
        "toxic": sum(1 for entry in entries if entry["isToxic"] is True),
        "safe": sum(1 for entry in entries if entry["isToxic"] is False),
        "errors": sum(1 for entry in entries if entry.get("error")),
    }


@router.post("/moderate")
async def moderate(body: ModerateRequest, request: Request, context: ApiContext = Depends(get_context)):
    """Evaluate one text. Stateless unless ``userId`` is supplied."""
    _require_text(body.text)
    max_length = context.settings.max_text_length
    if len(body.text) > max_length:
        raise ValidationError(f"Text too long. Maximum {max_length} characters allowed")

    orchestrator = context.orchestrator
    if body.user_id:
        decision: ModerationDecision = await orchestrator.evaluate_message(
            body.text, body.user_id, thresholds=body.thresholds, languages=body.languages
        )
    else:
        decision = await orchestrator.analyze(body.text, thresholds=body.thresholds, languages=body.languages)

    data: Dict[str, Any] = {
        "text": preview(body.text, 100),
        "isToxic": decision.is_toxic,
        "action": decision.action.value,
        "reason": decision.reason,
        "confidence": decision.confidence,
        "violations": decision.violations,
        "severity": decision.severity.value,
        "degraded": decision.degraded,
        "timestamp": utc_timestamp(),
    }
    if body.user_id:
        data["userId"] = body.user_id
        data["warningCount"] = decision.warning_count_after
        if decision.muted_until:
            data["mutedUntil"] = decision.muted_until.isoformat()
    return {"success": True, "requestId": request_id(request), "data": data}


@router.post("/analyze")
async def analyze(body: AnalyzeRequest, request: Request, context: ApiContext = Depends(get_context)):
    """Detailed, stateless assessment with a recommended action."""
    _require_text(body.text)
    orchestrator = context.orchestrator
    decision = await orchestrator.analyze(body.text, thresholds=body.thresholds, languages=body.languages)

    assessment = decision.assessment
    thresholds = dict(assessment.thresholds) if assessment else orchestrator.normalizer.resolve_thresholds(body.thresholds)
    data: Dict[str, Any] = {
        "text": preview(body.text, 200),
        "analysis": {
            "isToxic": decision.is_toxic,
            "confidence": decision.confidence,
            "maxScore": assessment.max_score if assessment else 0.0,
            "violations": decision.violations,
            "reason": decision.reason,
            "degraded": decision.degraded,
        },
        "recommendation": {
            "action": decision.action.value,
            "severity": decision.severity.value,
        },
        "metadata": {
            "textLength": len(body.text),
            "timestamp": utc_timestamp(),
            "thresholds": thresholds,
        },
    }
    if body.include_scores:
        data["scores"] = dict(assessment.scores) if assessment else {}
    return {"success": True, "requestId": request_id(request), "data": data}


@router.post("/batch", dependencies=[Depends(require_api_key)])
async def batch(body: BatchRequest, request: Request, context: ApiContext = Depends(get_context)):
    """Evaluate up to ``batch_max_items`` texts in concurrent chunks."""
    if not body.texts:
        raise ValidationError("texts field is required and must be a non-empty array")
    max_items = context.settings.batch_max_items
    if len(body.texts) > max_items:
        raise ValidationError(f"Maximum {max_items} texts allowed per batch")

    items = [BatchItem(text=text, thresholds=body.thresholds, languages=body.languages or []) for text in body.texts]
    results = await context.orchestrator.evaluate_batch(items, body.max_concurrent)
    entries = [_batch_entry(body.texts[result.index], result) for result in results]

    return {
        "success": True,
        "requestId": request_id(request),
        "data": {
            "results": entries,
            "summary": _summary(entries),
            "timestamp": utc_timestamp(),
        },
    }
