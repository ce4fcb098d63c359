"""POST /sync: manual trigger, run executes on a background thread."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from server.auth import require_auth
from server.models import TriggerResponse

router = APIRouter(dependencies=[Depends(require_auth)])
logger = logging.getLogger(__name__)


@router.post("/sync")
def trigger_sync(request: Request) -> JSONResponse:
    thread = request.app.state.orchestrator.start_background()
    if thread is None:
        body = TriggerResponse(status="busy", detail="Sync already in progress")
        return JSONResponse(status_code=409, content=body.model_dump())

    logger.info("Manual sync triggered")
    return JSONResponse(status_code=202, content=TriggerResponse(status="started").model_dump())
