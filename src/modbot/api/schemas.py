"""Pydantic request models for the HTTP API.

Field names follow the camelCase wire format; attribute access in Python is
snake_case through aliases.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _Request(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ModerateRequest(_Request):
    text: str
    thresholds: Optional[Dict[str, float]] = None
    languages: Optional[List[str]] = None
    user_id: Optional[str] = Field(None, alias="userId")


class AnalyzeRequest(_Request):
    text: str
    thresholds: Optional[Dict[str, float]] = None
    languages: Optional[List[str]] = None
    include_scores: bool = Field(False, alias="includeScores")


class BatchRequest(_Request):
    # Items are validated one by one so a bad entry fails alone
    texts: List[Any] = Field(default_factory=list)
    thresholds: Optional[Dict[str, float]] = None
    languages: Optional[List[str]] = None
    max_concurrent: Optional[int] = Field(None, alias="maxConcurrent")
