"""
Per-entity traversal strategies.

Three shared loops replace one hand-written loop per entity:

    FullTraversalStrategy   paged scan from a persisted resume page; only a
                            scan that started at page 1 counts as complete
    WrapTraversalStrategy   paged scan that wraps back to page 1 when it
                            resumed mid-list, covering the whole list in one run
    IncrementalMaxStrategy  descending scan by sequence number that stops at
                            the first already-known record, unless this run is
                            a forced full refresh

All three upsert through the same path: normalize dates, diff against the
stored document, upsert with insert-only defaults, then write a best-effort
audit entry. Cancellation is checked between pages only.
"""

import threading
import time
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Callable, Optional

from kashflow.fetchers import EntityFetcher, PageEnvelope
from reconciliation.diff import diff_documents
from reconciliation.entities import (
    EntitySpec,
    TRAVERSAL_FULL,
    TRAVERSAL_INCREMENTAL,
    TRAVERSAL_WRAP,
    item_key,
    normalize_item,
)
from reconciliation.soft_delete import SoftDeleteReconciler
from shared.log import create_logger
from store.audit import AuditSink, ChangeRecord
from store.documents import Collection
from store.state import StateStore
from validation.errors import ErrorKind

log_trace, log_debug, log_info, log_warn, log_error = create_logger("Strategy")

# Stop reasons
STOP_EMPTY_PAGE = 'emptyPage'
STOP_NO_NEXT_PAGE = 'noNextPage'
STOP_WRAPPED = 'wrappedToStart'
STOP_REACHED_OLD = 'reachedOld'
STOP_UNPAGED = 'unpaged'
STOP_PARTIAL_PAGE = 'partialPage'
STOP_EXHAUSTED_TOTAL = 'exhaustedTotal'


class EntityFetchError(Exception):
    """A page fetch failed after the client gave up; aborts the entity."""

    def __init__(self, entity: str, page: int, kind: Optional[ErrorKind], message: Optional[str]):
        self.entity = entity
        self.page = page
        self.kind = kind
        self.message = message or 'unknown error'
        kind_name = kind.value if kind else 'unknown'
        super().__init__(f"{entity} page {page} fetch failed ({kind_name}): {self.message}")


class SyncCancelled(Exception):
    """Stop was requested; raised between pages."""

    def __init__(self, entity: str):
        self.entity = entity
        super().__init__("cancelled")


@dataclass
class RunContext:
    """Per-run values shared by every strategy."""
    run_tag: str
    force_full_refresh: bool = False
    stop_event: Optional[threading.Event] = None


@dataclass
class SyncOptions:
    """Behaviour flags taken from SyncSettings."""
    progress_logs: bool = True
    upsert_logs: bool = False
    incremental_soft_delete: bool = True
    wrap_total_check: bool = False

    @classmethod
    def from_settings(cls, settings) -> 'SyncOptions':
        return cls(
            progress_logs=settings.progress_logs,
            upsert_logs=settings.upsert_logs,
            incremental_soft_delete=settings.incremental_soft_delete,
            wrap_total_check=settings.wrap_total_check,
        )


@dataclass
class EntityOutcome:
    """Result of one entity's traversal, reported in the RunSummary.

    Attributes:
        entity: Entity name
        strategy: Traversal kind (full, wrap, incremental)
        pages: Pages fetched
        fetched: Items returned by the API
        upserted: Items written to the store
        inserted: Items that were new
        changed: Items whose diff was non-empty
        total: API-reported total
        soft_deleted: Documents soft-deleted after the traversal
        start_cursor / end_cursor: Page range traversed (paged strategies)
        last_max / new_max: Sequence range (incremental strategy)
        reached_old: Incremental scan hit an already-known record
        stopped_reason: Why the loop ended
        unpaged: API ignored paging (projects)
        full_refresh: Run was a forced full refresh
        completed: Traversal covered the whole upstream list
        duration_ms: Wall time of the traversal
    """
    entity: str
    strategy: str
    pages: int = 0
    fetched: int = 0
    upserted: int = 0
    inserted: int = 0
    changed: int = 0
    total: int = 0
    soft_deleted: int = 0
    start_cursor: Optional[int] = None
    end_cursor: Optional[int] = None
    last_max: Optional[int] = None
    new_max: Optional[int] = None
    reached_old: bool = False
    stopped_reason: Optional[str] = None
    unpaged: bool = False
    full_refresh: bool = False
    completed: bool = False
    duration_ms: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class EntitySyncStrategy:
    """
    Shared page/upsert machinery for one entity.

    Args:
        spec: EntitySpec describing the entity
        fetcher: EntityFetcher for the entity's endpoint
        collection: Collection holding the entity's documents
        state: StateStore for cursors
        page_size: Requested page size
        audit: Optional AuditSink for ChangeRecords
        reconciler: SoftDeleteReconciler (default: new instance)
        options: SyncOptions flags
        clock: Returns the current UTC datetime (replaced in tests)
    """

    traversal = ''

    def __init__(
        self,
        spec: EntitySpec,
        fetcher: EntityFetcher,
        collection: Collection,
        state: StateStore,
        page_size: int,
        audit: Optional[AuditSink] = None,
        reconciler: Optional[SoftDeleteReconciler] = None,
        options: Optional[SyncOptions] = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.spec = spec
        self.fetcher = fetcher
        self.collection = collection
        self.state = state
        self.page_size = page_size
        self.audit = audit
        self.reconciler = reconciler or SoftDeleteReconciler()
        self.options = options or SyncOptions()
        self.clock = clock

    @property
    def entity(self) -> str:
        return self.spec.name

    def run(self, ctx: RunContext) -> EntityOutcome:
        """Traverse the entity and return its outcome."""
        outcome = EntityOutcome(entity=self.entity, strategy=self.traversal)
        started = time.monotonic()
        log_info(f"{self.entity} sync started", entity=self.entity, strategy=self.traversal)
        self._traverse(ctx, outcome)
        outcome.duration_ms = int((time.monotonic() - started) * 1000)
        log_info(f"{self.entity} sync completed", **self._log_fields(outcome))
        return outcome

    def _traverse(self, ctx: RunContext, outcome: EntityOutcome) -> None:
        raise NotImplementedError

    # -- helpers -----------------------------------------------------------

    def _log_fields(self, outcome: EntityOutcome) -> dict:
        fields = outcome.to_dict()
        fields.pop('strategy', None)
        return fields

    def _check_cancelled(self, ctx: RunContext) -> None:
        if ctx.stop_event is not None and ctx.stop_event.is_set():
            log_warn(f"{self.entity} sync cancelled between pages", entity=self.entity)
            raise SyncCancelled(self.entity)

    def _read_cursor(self) -> int:
        value = self.state.get(self.spec.cursor_key, 0)
        try:
            return int(value or 0)
        except (TypeError, ValueError):
            log_warn(f"Ignoring invalid cursor {self.spec.cursor_key}={value!r}")
            return 0

    def _fetch(self, page: int, outcome: EntityOutcome) -> PageEnvelope:
        """Fetch one page, updating counters. Raises EntityFetchError on failure."""
        result = self.fetcher.fetch_page(page, self.page_size)
        if not result.ok:
            raise EntityFetchError(self.entity, page, result.error_kind, result.error)

        envelope = result.envelope
        outcome.pages += 1
        outcome.fetched += len(envelope.items)
        outcome.total = envelope.total or outcome.total

        if self.options.progress_logs:
            pct = min(100.0, outcome.fetched / outcome.total * 100) if outcome.total else 0.0
            log_info(
                f"{self.entity} progress",
                entity=self.entity, page=page, page_size=self.page_size, page_items=len(envelope.items),
                cumulative=outcome.fetched, total=outcome.total, pct=round(pct, 2),
            )
        return envelope

    def _apply_item(self, item: dict, key, ctx: RunContext, outcome: EntityOutcome) -> None:
        """Diff and upsert one upstream record, then audit it."""
        now = self.clock().isoformat()
        doc = normalize_item(item, self.spec.date_fields)
        doc.pop('createdAt', None)
        doc.pop('deletedAt', None)
        doc['updatedAt'] = now
        doc['lastSeenRun'] = ctx.run_tag

        insert_only = {'createdAt': now, 'deletedAt': None}
        insert_only.update(self.spec.insert_fields(key))
        result = self.collection.upsert(key, doc, insert_only)
        changed_fields, changes = diff_documents(result.before, doc)

        outcome.upserted += 1
        if result.inserted:
            outcome.inserted += 1
        if changed_fields:
            outcome.changed += 1

        if self.audit is not None:
            record = ChangeRecord(
                entity=self.entity,
                key=str(key),
                op='insert' if result.inserted else 'update',
                run_tag=ctx.run_tag,
                changed_fields=changed_fields,
                changes=changes,
            )
            try:
                self.audit.record(record)
            except Exception as e:
                log_warn(f"Failed to write {self.entity} upsert log for {key}: {e}", entity=self.entity)

        if self.options.upsert_logs:
            log_debug(
                f"{self.entity} upsert",
                entity=self.entity, key=str(key), inserted=result.inserted,
                modified=result.modified, changed_fields=changed_fields,
            )

    def _apply_page(self, items: list, ctx: RunContext, outcome: EntityOutcome) -> None:
        for item in items:
            key = item_key(item, self.spec)
            if key is None:
                log_warn(f"Skipping {self.entity} record without {self.spec.key_field}", entity=self.entity)
                continue
            self._apply_item(item, key, ctx, outcome)

    def _soft_delete(self, ctx: RunContext, outcome: EntityOutcome) -> None:
        outcome.soft_deleted = self.reconciler.reconcile(self.collection, ctx.run_tag, self.clock())

    def _count_check(self, outcome: EntityOutcome) -> None:
        """Compare active documents with the API total; never fatal."""
        try:
            db_count = self.collection.count_documents({'deletedAt': None})
        except Exception as e:
            log_warn(f"{self.entity} count check failed: {e}", entity=self.entity)
            return
        if outcome.total > 0 and db_count != outcome.total:
            log_warn(
                f"{self.entity} count mismatch (store vs API)",
                entity=self.entity, db_count=db_count, api_total=outcome.total,
            )
        else:
            log_info(
                f"{self.entity} count check OK",
                entity=self.entity, db_count=db_count, api_total=outcome.total,
            )


class FullTraversalStrategy(EntitySyncStrategy):
    """Paged scan; complete only when it started at page 1."""

    traversal = TRAVERSAL_FULL

    def _traverse(self, ctx: RunContext, outcome: EntityOutcome) -> None:
        page = self._read_cursor() or 1
        started_at_first = page == 1
        outcome.start_cursor = page
        if not started_at_first:
            log_info(f"{self.entity} resuming from page {page}", entity=self.entity, page=page)

        while True:
            self._check_cancelled(ctx)
            envelope = self._fetch(page, outcome)
            self._apply_page(envelope.items, ctx, outcome)

            if not envelope.items and page > 1:
                outcome.stopped_reason = STOP_EMPTY_PAGE
                break
            self.state.set(self.spec.cursor_key, page)
            if envelope.has_next:
                page += 1
                continue
            outcome.stopped_reason = STOP_NO_NEXT_PAGE
            break

        # End of list: next run starts from page 1 either way
        self.state.set(self.spec.cursor_key, 0)
        outcome.end_cursor = page
        outcome.completed = started_at_first

        if outcome.completed and outcome.fetched > 0:
            self._soft_delete(ctx, outcome)
        elif not outcome.completed:
            log_info(
                f"{self.entity} traversal started mid-list, skipping soft delete",
                entity=self.entity, start_cursor=outcome.start_cursor,
            )
        if outcome.completed:
            self._count_check(outcome)


class WrapTraversalStrategy(EntitySyncStrategy):
    """Paged scan that wraps to page 1 so one run covers the whole list."""

    traversal = TRAVERSAL_WRAP

    def _traverse(self, ctx: RunContext, outcome: EntityOutcome) -> None:
        initial_page = page = self._read_cursor() or 1
        outcome.start_cursor = initial_page
        looped = False

        while True:
            self._check_cancelled(ctx)
            envelope = self._fetch(page, outcome)
            self._apply_page(envelope.items, ctx, outcome)

            end_of_list = (not envelope.items and page > 1)
            if not end_of_list:
                self.state.set(self.spec.cursor_key, page)
                if envelope.has_next:
                    page += 1
                    if looped and page >= initial_page:
                        outcome.stopped_reason = STOP_WRAPPED
                        break
                    continue

            if not looped and initial_page > 1:
                log_info(
                    f"{self.entity} reached end of list, wrapping to page 1",
                    entity=self.entity, start_cursor=initial_page,
                )
                looped = True
                page = 1
                continue

            outcome.stopped_reason = STOP_EMPTY_PAGE if end_of_list else STOP_NO_NEXT_PAGE
            break

        self.state.set(self.spec.cursor_key, 0)
        outcome.end_cursor = page
        outcome.completed = True

        if self.options.wrap_total_check and outcome.total > 0 and outcome.fetched < outcome.total:
            log_warn(
                f"{self.entity} wrap traversal fetched fewer items than the API total, "
                f"not treating as complete",
                entity=self.entity, fetched=outcome.fetched, total=outcome.total,
            )
            outcome.completed = False

        if outcome.completed and outcome.fetched > 0:
            self._soft_delete(ctx, outcome)
        if outcome.completed:
            self._count_check(outcome)


class IncrementalMaxStrategy(EntitySyncStrategy):
    """Descending scan by sequence number with a persisted high-water mark."""

    traversal = TRAVERSAL_INCREMENTAL

    def _bootstrap_last_max(self) -> int:
        last_max = self._read_cursor()
        if last_max:
            return last_max
        last_max = self.collection.max_key()
        if last_max:
            log_info(
                f"{self.entity} cursor bootstrapped from stored max {last_max}",
                entity=self.entity, last_max=last_max,
            )
            self.state.set(self.spec.cursor_key, last_max)
        return last_max

    def _traverse(self, ctx: RunContext, outcome: EntityOutcome) -> None:
        force_full = ctx.force_full_refresh
        last_max = self._bootstrap_last_max()
        new_max = last_max
        outcome.last_max = last_max
        outcome.full_refresh = force_full
        outcome.start_cursor = 1
        page = 1

        while True:
            self._check_cancelled(ctx)
            envelope = self._fetch(page, outcome)

            for item in envelope.items:
                key = item_key(item, self.spec)
                if key is None:
                    log_warn(f"Skipping {self.entity} record without {self.spec.key_field}", entity=self.entity)
                    continue
                if key > new_max:
                    new_max = key
                if not force_full and key and key <= last_max:
                    outcome.reached_old = True
                    continue
                self._apply_item(item, key, ctx, outcome)

            if outcome.reached_old:
                outcome.stopped_reason = STOP_REACHED_OLD
                break
            if self.spec.stop_on_unpaged and envelope.unpaged:
                outcome.unpaged = True
                outcome.stopped_reason = STOP_UNPAGED
                break
            if len(envelope.items) < self.page_size:
                outcome.stopped_reason = STOP_PARTIAL_PAGE
                break
            if self.spec.stop_on_total and outcome.fetched >= outcome.total:
                outcome.stopped_reason = STOP_EXHAUSTED_TOTAL
                break
            page += 1

        outcome.end_cursor = page
        outcome.new_max = new_max
        if new_max > last_max:
            self.state.set(self.spec.cursor_key, new_max)

        outcome.completed = outcome.stopped_reason != STOP_REACHED_OLD
        if force_full and self.options.incremental_soft_delete and outcome.completed and outcome.fetched > 0:
            self._soft_delete(ctx, outcome)


STRATEGY_CLASSES = {
    TRAVERSAL_FULL: FullTraversalStrategy,
    TRAVERSAL_WRAP: WrapTraversalStrategy,
    TRAVERSAL_INCREMENTAL: IncrementalMaxStrategy,
}


def build_strategy(spec: EntitySpec, **kwargs) -> EntitySyncStrategy:
    """Instantiate the strategy class matching spec.traversal."""
    try:
        cls = STRATEGY_CLASSES[spec.traversal]
    except KeyError:
        raise ValueError(f"Unknown traversal {spec.traversal!r} for {spec.name}")
    return cls(spec, **kwargs)
