"""
Periodic sync trigger.

SyncScheduler runs in a daemon thread: it triggers a sync immediately, then
every interval_seconds, publishing the next run time to the SummaryRecorder.
A tick that lands while a run is still in flight is skipped.
"""

import threading
import time
from typing import Callable, Optional

from reconciliation.orchestrator import SyncOrchestrator
from reconciliation.summary import RunSummary, SummaryRecorder
from shared.log import create_logger

log_trace, log_debug, log_info, log_warn, log_error = create_logger("Scheduler")

# Sleep granularity so stop() is honoured quickly
_SLEEP_CHUNK = 0.5


class SyncScheduler:
    """
    Background thread calling orchestrator.run_sync() on a fixed period.

    Args:
        orchestrator: SyncOrchestrator to trigger
        recorder: SummaryRecorder receiving the next run time
        interval_seconds: Period between run starts
        clock: Returns epoch seconds (replaced in tests)
    """

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        recorder: SummaryRecorder,
        interval_seconds: float,
        clock: Callable[[], float] = time.time,
    ):
        self.orchestrator = orchestrator
        self.recorder = recorder
        self.interval_seconds = interval_seconds
        self.clock = clock
        self.running = False
        self.thread: Optional[threading.Thread] = None
        self._next_run: Optional[float] = None

    def start(self) -> None:
        """Start the scheduler thread; the first sync runs immediately."""
        if self.running:
            log_trace("Already running")
            return
        self.running = True
        self._next_run = self.clock()
        self.thread = threading.Thread(target=self._loop, name="sync-scheduler", daemon=True)
        self.thread.start()
        log_info(f"Scheduler started, interval {self.interval_seconds:.0f}s")

    def stop(self, timeout: float = 10.0) -> None:
        """Stop the thread, asking an in-flight sync to stop between pages."""
        if not self.running:
            return
        log_trace("Stopping scheduler...")
        self.running = False
        self.orchestrator.request_stop()
        if self.thread:
            self.thread.join(timeout=timeout)
            if self.thread.is_alive():
                log_warn(f"Scheduler thread did not stop within {timeout:.0f}s")
        self.recorder.set_next_run(None)
        log_trace("Scheduler stopped")

    def tick(self) -> Optional[RunSummary]:
        """Trigger one sync now unless one is already running."""
        now = self.clock()
        self._next_run = now + self.interval_seconds
        self.recorder.set_next_run(self._next_run)
        if self.orchestrator.is_running:
            log_info("Scheduled sync skipped, previous run still in progress")
            return None
        return self.orchestrator.run_sync()

    def _loop(self) -> None:
        while self.running:
            if self._next_run is not None and self.clock() < self._next_run:
                remaining = self._next_run - self.clock()
                time.sleep(max(0.0, min(remaining, _SLEEP_CHUNK)))
                continue
            try:
                summary = self.tick()
                if summary is not None and not summary.success:
                    log_warn(f"Scheduled sync failed: {summary.error}")
            except Exception as e:
                log_error(f"Scheduled sync raised unexpectedly: {e}")
