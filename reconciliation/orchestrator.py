"""
Sync orchestrator.

run_sync() is single-flight: a call made while another run is in progress is
rejected immediately and returns None. Each run:

    1. asks the FullRefreshGovernor whether incremental entities must do a
       complete traversal this time
    2. runs every entity strategy in order (purchases last)
    3. records the full-refresh timestamp if one was forced and everything
       succeeded
    4. always publishes a RunSummary to the SummaryRecorder and tries to
       persist it, success or failure

An entity failure aborts the remaining entities. Cursors already persisted by
completed entities are kept.
"""

import threading
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from reconciliation.entities import ENTITIES
from reconciliation.governor import FullRefreshGovernor
from reconciliation.strategies import (
    EntitySyncStrategy,
    RunContext,
    SyncCancelled,
    SyncOptions,
    build_strategy,
)
from reconciliation.summary import RunSummary, SummaryRecorder
from shared.log import create_logger
from store.summaries import SummaryRepository

_, log_debug, log_info, log_warn, log_error = create_logger("Orchestrator")


class SyncOrchestrator:
    """
    Runs all entity strategies under a single-flight lock.

    Args:
        strategies: Strategies in execution order
        governor: FullRefreshGovernor for incremental entities
        recorder: SummaryRecorder exposed to the status server
        summaries: Optional SummaryRepository for run history
        clock: Returns epoch seconds (replaced in tests)
    """

    def __init__(
        self,
        strategies: list[EntitySyncStrategy],
        governor: FullRefreshGovernor,
        recorder: SummaryRecorder,
        summaries: Optional[SummaryRepository] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.strategies = strategies
        self.governor = governor
        self.recorder = recorder
        self.summaries = summaries
        self.clock = clock
        self._lock = threading.Lock()
        self._stop_event = threading.Event()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def request_stop(self) -> None:
        """Ask the current run to stop at the next page boundary."""
        self._stop_event.set()

    def run_sync(self) -> Optional[RunSummary]:
        """
        Run one sync unless another is in flight.

        Returns:
            The RunSummary, or None if a run was already in progress
        """
        if not self._lock.acquire(blocking=False):
            log_warn("Sync already in progress, skipping")
            return None
        try:
            return self._run()
        finally:
            self._lock.release()

    def start_background(self) -> Optional[threading.Thread]:
        """
        Claim the run lock and start a sync on a daemon thread.

        The lock is taken before the thread exists, so two concurrent
        triggers cannot both start a run.

        Returns:
            The started thread, or None if a run was already in progress
        """
        if not self._lock.acquire(blocking=False):
            log_warn("Sync already in progress, not starting another")
            return None

        def target() -> None:
            try:
                self._run()
            finally:
                self._lock.release()

        thread = threading.Thread(target=target, name="manual-sync", daemon=True)
        try:
            thread.start()
        except Exception:
            self._lock.release()
            raise
        return thread

    def _run(self) -> RunSummary:
        self._stop_event.clear()
        start_ts = self.clock()
        start_iso = datetime.fromtimestamp(start_ts, tz=timezone.utc).isoformat(timespec='microseconds')
        started = time.monotonic()

        summary = RunSummary(run_tag=start_iso, start=start_iso)
        self.recorder.mark_start(start_ts)
        log_info("Sync started", run_tag=start_iso)

        error: Optional[str] = None
        try:
            decision = self.governor.decide(start_ts)
            summary.full_refresh = decision.force_full_refresh
            self.recorder.set_next_full_refresh(decision.next_due)

            ctx = RunContext(
                run_tag=start_iso,
                force_full_refresh=decision.force_full_refresh,
                stop_event=self._stop_event,
            )
            for strategy in self.strategies:
                outcome = strategy.run(ctx)
                summary.entities.append(outcome.to_dict())

            if decision.force_full_refresh:
                next_due = self.governor.record_full_refresh(start_ts)
                self.recorder.set_next_full_refresh(next_due)
        except SyncCancelled as e:
            error = str(e)
            log_warn(f"Sync cancelled during {e.entity}")
        except Exception as e:
            error = str(e) or type(e).__name__
            log_error(f"Sync failed: {error}", error_type=type(e).__name__)
        finally:
            summary.end = datetime.now(timezone.utc).isoformat(timespec='microseconds')
            summary.duration_ms = int((time.monotonic() - started) * 1000)
            summary.success = error is None
            summary.error = error
            self.recorder.finish(summary)
            self._persist(summary)

        if summary.success:
            log_info(
                f"Sync finished in {summary.duration_ms}ms",
                duration_ms=summary.duration_ms, full_refresh=summary.full_refresh,
            )
        return summary

    def _persist(self, summary: RunSummary) -> None:
        if self.summaries is None:
            return
        try:
            self.summaries.save(summary.to_dict())
        except Exception as e:
            log_warn(f"Failed to persist sync summary: {e}")


def build_orchestrator(
    settings,
    fetchers: dict,
    documents,
    state,
    recorder: SummaryRecorder,
    audit=None,
    summaries: Optional[SummaryRepository] = None,
) -> SyncOrchestrator:
    """
    Wire strategies for every entity from settings and shared stores.

    Args:
        settings: SyncSettings
        fetchers: Entity name -> EntityFetcher (see kashflow.fetchers.build_fetchers)
        documents: DocumentStore
        state: StateStore
        recorder: SummaryRecorder
        audit: Optional AuditSink
        summaries: Optional SummaryRepository
    """
    options = SyncOptions.from_settings(settings)
    strategies = []
    for spec in ENTITIES:
        strategies.append(build_strategy(
            spec,
            fetcher=fetchers[spec.name],
            collection=documents.collection(spec.name, spec.key_field, spec.numeric_key),
            state=state,
            page_size=getattr(settings, spec.page_size_setting),
            audit=audit,
            options=options,
        ))
    governor = FullRefreshGovernor(state, settings.full_refresh_hours)
    return SyncOrchestrator(strategies, governor, recorder, summaries=summaries)
