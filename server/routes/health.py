"""GET /health: liveness, always open."""

from __future__ import annotations

import time

from fastapi import APIRouter, Request

from server import __version__
from server.models import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    started_at: float = getattr(request.app.state, "started_at", time.time())
    recorder = request.app.state.recorder
    return HealthResponse(
        version=__version__,
        uptime_seconds=int(time.time() - started_at),
        in_progress=recorder.in_progress,
    )
