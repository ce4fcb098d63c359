"""Run status and summary history.

GET /sync-summary        current state, last finished run, cursors and document counts
GET /summaries           persisted history, newest first
GET /summaries/{id}      one persisted summary
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from server.auth import require_auth
from server.models import SyncStatusResponse
from store.summaries import DEFAULT_LIST_LIMIT, MAX_LIST_LIMIT

router = APIRouter(dependencies=[Depends(require_auth)])


@router.get("/sync-summary", response_model=SyncStatusResponse)
def sync_summary(request: Request) -> SyncStatusResponse:
    snapshot = request.app.state.recorder.snapshot()
    state_store = request.app.state.state_store
    if state_store is not None:
        snapshot["state"] = state_store.snapshot()
    documents = request.app.state.documents
    if documents is not None:
        snapshot["documents"] = documents.stats()
    return SyncStatusResponse(**snapshot)


@router.get("/summaries")
def list_summaries(
    request: Request,
    limit: int = Query(DEFAULT_LIST_LIMIT, ge=1, le=MAX_LIST_LIMIT),
) -> dict:
    repo = request.app.state.summaries
    if repo is None:
        return {"items": []}
    return {"items": repo.list(limit=limit)}


@router.get("/summaries/{summary_id}")
def get_summary(request: Request, summary_id: int) -> dict:
    repo = request.app.state.summaries
    summary = repo.get(summary_id) if repo is not None else None
    if summary is None:
        raise HTTPException(status_code=404, detail="Summary not found")
    return summary
