"""GET /metrics: Prometheus text exposition of run state.

A fresh CollectorRegistry is built per scrape from the SummaryRecorder, so
entities that vanish from the last summary never leave stale series behind.
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Gauge, generate_latest

from reconciliation.governor import LAST_FULL_REFRESH_KEY
from server.auth import require_auth

router = APIRouter(dependencies=[Depends(require_auth)])

# (summary field, metric suffix, help text)
_ENTITY_GAUGES = (
    ('fetched', 'fetched_total', 'Items returned by the API in the last run'),
    ('upserted', 'upserted_total', 'Items written to the store in the last run'),
    ('pages', 'pages_total', 'Pages fetched in the last run'),
    ('total', 'api_total', 'API-reported total in the last run'),
    ('soft_deleted', 'soft_deleted_total', 'Documents soft-deleted in the last run'),
    ('new_max', 'newmax', 'Highest sequence number seen in the last run'),
    ('last_max', 'lastmax', 'Sequence watermark the last run started from'),
    ('duration_ms', 'duration_ms', 'Entity traversal time in ms'),
)


def _epoch(iso: Optional[str]) -> Optional[float]:
    if not iso:
        return None
    try:
        return datetime.fromisoformat(iso).timestamp()
    except ValueError:
        return None


def render_metrics(recorder, state_store=None, now: Optional[float] = None) -> bytes:
    """Build the exposition text for the current recorder state."""
    now = time.time() if now is None else now
    snapshot = recorder.snapshot()
    counters = recorder.counters()
    last = snapshot['last_summary']
    registry = CollectorRegistry()

    def gauge(name: str, doc: str, value, labels: Optional[dict] = None) -> None:
        if value is None:
            return
        g = Gauge(name, doc, list(labels or {}), registry=registry)
        (g.labels(**labels) if labels else g).set(value)

    gauge('sync_runs_total', 'Total sync runs', counters['total_runs'])
    gauge('sync_failures_total', 'Total failed sync runs', counters['total_failures'])
    gauge('sync_last_duration_ms', 'Duration of last completed sync in ms', counters['last_duration_ms'])
    gauge('sync_last_success', '1 if last sync succeeded, else 0', 1 if last and last.get('success') else 0)
    gauge('sync_in_progress', '1 if a sync is currently running', 1 if snapshot['in_progress'] else 0)
    gauge('sync_now_timestamp_seconds', 'Current server time in seconds', int(now))

    if last:
        end = _epoch(last.get('end'))
        gauge('sync_last_start_timestamp_seconds', 'Start time of last sync', _epoch(last.get('start')))
        gauge('sync_last_end_timestamp_seconds', 'End time of last sync', end)
        if end is not None:
            gauge('sync_time_since_last_success_seconds', 'Seconds since last sync finished', now - end)

    gauge('sync_next_cron_timestamp_seconds', 'Next scheduled run (predicted)', snapshot['next_run'])
    gauge('sync_next_full_refresh_timestamp_seconds', 'Next full refresh timestamp',
          snapshot['next_full_refresh'])
    if state_store is not None:
        gauge('sync_last_full_refresh_timestamp_seconds', 'Last full refresh (incrementals)',
              state_store.get(LAST_FULL_REFRESH_KEY) or None)

    entities = (last or {}).get('entities') or []
    for field, suffix, doc in _ENTITY_GAUGES:
        values = [(e['entity'], e.get(field)) for e in entities if isinstance(e.get(field), (int, float))]
        if not values:
            continue
        g = Gauge(f'sync_entity_{suffix}', doc, ['entity'], registry=registry)
        for entity, value in values:
            g.labels(entity=entity).set(value)

    return generate_latest(registry)


@router.get("/metrics")
def metrics(request: Request) -> Response:
    body = render_metrics(request.app.state.recorder, request.app.state.state_store)
    return Response(content=body, media_type=CONTENT_TYPE_LATEST)
