"""Pydantic response models for the status server."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str
    uptime_seconds: int
    in_progress: bool


class SyncStatusResponse(BaseModel):
    """Current run state plus the last finished RunSummary."""

    last_summary: Optional[dict[str, Any]] = None
    in_progress: bool = False
    started_at: Optional[float] = None
    next_run: Optional[float] = None
    next_full_refresh: Optional[float] = None
    state: dict[str, Any] = Field(default_factory=dict)
    documents: dict[str, Any] = Field(default_factory=dict)


class ChangeRecordResponse(BaseModel):
    entity: str
    key: str
    op: str
    run_tag: str
    changed_fields: list[str] = Field(default_factory=list)
    changes: dict[str, Any] = Field(default_factory=dict)
    created_at: str


class TriggerResponse(BaseModel):
    status: str
    detail: Optional[str] = None
