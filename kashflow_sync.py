#!/usr/bin/env python3
"""
KashflowSync - replicate KashFlow accounting records into a local document store

Entry point. Loads configuration, wires the API client, stores and
orchestrator, then either runs a single sync (--once / RUN_ONCE) or starts
the periodic scheduler and the status server.
"""

import argparse
import os
import sys
import time
from dataclasses import dataclass
from typing import Optional

from shared.log import configure_logging, create_logger
log_trace, log_debug, log_info, log_warn, log_error = create_logger()

DB_FILE = 'kashflow.db'


@dataclass
class Components:
    """Everything main() starts and stops."""
    settings: object
    client: object
    state: object
    documents: object
    audit: object
    summaries: object
    recorder: object
    orchestrator: object


def initialize(settings) -> Components:
    """
    Build the client, stores and orchestrator from validated settings.

    Args:
        settings: SyncSettings
    """
    from kashflow.client import KashflowClient
    from kashflow.fetchers import build_fetchers
    from reconciliation.orchestrator import build_orchestrator
    from reconciliation.summary import SummaryRecorder
    from store.audit import AuditSink
    from store.documents import DocumentStore
    from store.state import StateStore
    from store.summaries import SummaryRepository

    os.makedirs(settings.data_dir, exist_ok=True)
    db_path = os.path.join(settings.data_dir, DB_FILE)
    log_trace(f"Using database {db_path}")

    client = KashflowClient.from_settings(settings)
    state = StateStore(settings.data_dir)
    documents = DocumentStore(db_path)
    audit = AuditSink(db_path)
    summaries = SummaryRepository(db_path)
    recorder = SummaryRecorder()

    orchestrator = build_orchestrator(
        settings,
        fetchers=build_fetchers(client),
        documents=documents,
        state=state,
        recorder=recorder,
        audit=audit,
        summaries=summaries,
    )
    recorder.set_next_full_refresh(orchestrator.governor.next_due())

    log_info("Initialization complete")
    return Components(
        settings=settings,
        client=client,
        state=state,
        documents=documents,
        audit=audit,
        summaries=summaries,
        recorder=recorder,
        orchestrator=orchestrator,
    )


def run_once(components: Components) -> int:
    """Run a single sync. Returns the process exit code."""
    summary = components.orchestrator.run_sync()
    if summary is None:
        log_warn("Sync already in progress")
        return 1
    if not summary.success:
        log_error(f"Sync failed: {summary.error}")
        return 1
    return 0


def serve(components: Components) -> None:
    """Start the scheduler and (optionally) the status server until interrupted."""
    from worker.scheduler import SyncScheduler

    settings = components.settings
    scheduler: Optional[SyncScheduler] = None
    if settings.cron_enabled:
        scheduler = SyncScheduler(
            components.orchestrator,
            components.recorder,
            settings.sync_interval_seconds,
        )
        scheduler.start()
    else:
        log_info("Scheduler disabled (CRON_ENABLED=false); use POST /sync to trigger runs")

    try:
        if settings.metrics_enabled:
            from server.app import create_app, run_server
            app = create_app(
                recorder=components.recorder,
                orchestrator=components.orchestrator,
                summaries_repo=components.summaries,
                audit=components.audit,
                state_store=components.state,
                documents=components.documents,
                auth_user=settings.metrics_auth_user,
                auth_pass=settings.metrics_auth_pass,
            )
            run_server(app, settings.port, settings.log_level)
        else:
            while True:
                time.sleep(1)
    except KeyboardInterrupt:
        log_info("Interrupted")
    finally:
        if scheduler is not None:
            scheduler.stop()


def shutdown(components: Optional[Components]) -> None:
    """Ask any in-flight run to stop and close the HTTP client once idle."""
    if components is None:
        return
    components.orchestrator.request_stop()
    if components.orchestrator.is_running:
        log_warn("Sync still running at shutdown, leaving HTTP client open")
    else:
        components.client.close()
    log_trace("Shutdown complete")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Replicate KashFlow records into a local store")
    parser.add_argument('--once', action='store_true', help="run one sync and exit")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    from validation.config import get_settings

    args = parse_args(argv)
    settings = get_settings()
    configure_logging(settings.log_level, json_output=settings.log_json)
    settings.log_config()

    components = None
    try:
        components = initialize(settings)
        if args.once or settings.run_once:
            return run_once(components)
        serve(components)
        return 0
    finally:
        shutdown(components)


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        sys.exit(0)
