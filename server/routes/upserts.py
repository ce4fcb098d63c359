"""GET /upserts: recent upsert audit entries."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from server.auth import require_auth
from server.models import ChangeRecordResponse
from store.audit import DEFAULT_QUERY_LIMIT, MAX_QUERY_LIMIT

router = APIRouter(dependencies=[Depends(require_auth)])


@router.get("/upserts")
def recent_upserts(
    request: Request,
    entity: Optional[str] = None,
    key: Optional[str] = None,
    since: Optional[str] = None,
    limit: int = Query(DEFAULT_QUERY_LIMIT, ge=1, le=MAX_QUERY_LIMIT),
) -> dict:
    audit = request.app.state.audit
    if audit is None:
        return {"items": []}
    records = audit.recent(entity=entity, key=key, since=since, limit=limit)
    return {"items": [ChangeRecordResponse(**r.to_dict()).model_dump() for r in records]}
