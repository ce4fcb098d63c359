"""
In-memory run status shared between the orchestrator and the status server.

SummaryRecorder is an explicitly owned object: the entry script creates one,
hands it to the orchestrator, the scheduler and the status app. Tests create
a fresh instance each time.
"""

import threading
import time
from dataclasses import dataclass, field, asdict
from typing import Optional


@dataclass
class RunSummary:
    """One sync execution."""
    run_tag: str
    start: str
    end: Optional[str] = None
    duration_ms: int = 0
    success: bool = False
    error: Optional[str] = None
    full_refresh: bool = False
    entities: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


class SummaryRecorder:
    """Thread-safe holder for the last summary and in-progress flag."""

    def __init__(self):
        self._lock = threading.Lock()
        self._last_summary: Optional[RunSummary] = None
        self._in_progress = False
        self._started_at: Optional[float] = None
        self._next_run: Optional[float] = None
        self._next_full_refresh: Optional[float] = None
        self._total_runs = 0
        self._total_failures = 0
        self._last_duration_ms = 0

    def mark_start(self, now: Optional[float] = None) -> None:
        with self._lock:
            self._in_progress = True
            self._started_at = now if now is not None else time.time()

    def finish(self, summary: RunSummary) -> None:
        """Publish a finished run, count it and clear the in-progress flag."""
        with self._lock:
            self._last_summary = summary
            self._in_progress = False
            self._total_runs += 1
            if not summary.success:
                self._total_failures += 1
            self._last_duration_ms = summary.duration_ms

    @property
    def in_progress(self) -> bool:
        with self._lock:
            return self._in_progress

    @property
    def last_summary(self) -> Optional[RunSummary]:
        with self._lock:
            return self._last_summary

    def set_next_run(self, ts: Optional[float]) -> None:
        with self._lock:
            self._next_run = ts

    def set_next_full_refresh(self, ts: Optional[float]) -> None:
        with self._lock:
            self._next_full_refresh = ts

    def snapshot(self) -> dict:
        """Plain-dict view for the status endpoint."""
        with self._lock:
            return {
                'last_summary': self._last_summary.to_dict() if self._last_summary else None,
                'in_progress': self._in_progress,
                'started_at': self._started_at,
                'next_run': self._next_run,
                'next_full_refresh': self._next_full_refresh,
            }

    def counters(self) -> dict:
        """Process-lifetime run counters for /metrics."""
        with self._lock:
            return {
                'total_runs': self._total_runs,
                'total_failures': self._total_failures,
                'last_duration_ms': self._last_duration_ms,
            }
