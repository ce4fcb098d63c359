"""FastAPI application factory for the KashflowSync status server.

Exposes the in-memory SummaryRecorder, persisted run history, the upsert
audit log and Prometheus metrics, plus a manual sync trigger. Everything
the routes need is passed in explicitly and hung on app.state, so tests
build an app around fakes.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request, Response

from server import __version__
from server.routes import health, metrics, summaries, sync, upserts

logger = logging.getLogger("KashflowSync.Server")


def create_app(
    recorder,
    orchestrator,
    summaries_repo=None,
    audit=None,
    state_store=None,
    documents=None,
    auth_user: Optional[str] = None,
    auth_pass: Optional[str] = None,
) -> FastAPI:
    """Build the status app.

    Args:
        recorder: SummaryRecorder with the live run state
        orchestrator: SyncOrchestrator for manual triggers
        summaries_repo: Optional SummaryRepository for history endpoints
        audit: Optional AuditSink for the upsert log endpoint
        state_store: Optional StateStore, cursors shown in /sync-summary
        documents: Optional DocumentStore, per-collection counts in /sync-summary
        auth_user / auth_pass: Enable HTTP Basic auth when both are set
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info(
            f"KashflowSync status server v{__version__} starting",
            extra={"version": __version__, "auth_enabled": bool(auth_user and auth_pass)},
        )
        yield
        logger.info("KashflowSync status server shutting down")

    app = FastAPI(
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
    )
    app.state.started_at = time.time()
    app.state.recorder = recorder
    app.state.orchestrator = orchestrator
    app.state.summaries = summaries_repo
    app.state.audit = audit
    app.state.state_store = state_store
    app.state.documents = documents
    app.state.auth_user = auth_user
    app.state.auth_pass = auth_pass

    app.include_router(health.router)
    app.include_router(summaries.router)
    app.include_router(upserts.router)
    app.include_router(sync.router)
    app.include_router(metrics.router)

    @app.middleware("http")
    async def log_requests(request: Request, call_next) -> Response:  # type: ignore[no-untyped-def]
        """Log all incoming requests with method, path, status, and response time."""
        start = time.perf_counter()
        response: Response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.debug(
            "HTTP request",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "duration_ms": round(elapsed_ms, 2),
            },
        )
        return response

    return app


def run_server(app: FastAPI, port: int, log_level: str = "info") -> None:
    """Serve the app with uvicorn (blocks until shutdown)."""
    import uvicorn

    level = "debug" if log_level == "trace" else log_level
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=port,
        log_level=level,
        access_log=False,  # We handle request logging ourselves
    )
