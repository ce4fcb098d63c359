"""
Tests for SyncOrchestrator: ordering, single-flight, failure handling and
full-refresh bookkeeping.
"""

import threading
from unittest.mock import Mock

import pytest

from reconciliation.governor import LAST_FULL_REFRESH_KEY, FullRefreshGovernor
from reconciliation.orchestrator import SyncOrchestrator, build_orchestrator
from reconciliation.strategies import EntityOutcome, SyncCancelled
from reconciliation.summary import SummaryRecorder

T = 1_767_225_600.0  # 2026-01-01T00:00:00Z


class FakeStrategy:
    """Records its run order into a shared list."""

    def __init__(self, entity, order, error=None, gate=None, started=None):
        self.entity = entity
        self.order = order
        self.error = error
        self.gate = gate
        self.started = started
        self.contexts = []

    def run(self, ctx):
        self.order.append(self.entity)
        self.contexts.append(ctx)
        if self.started is not None:
            self.started.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.error is not None:
            raise self.error
        return EntityOutcome(entity=self.entity, strategy="fake", fetched=1, upserted=1)


@pytest.fixture
def recorder():
    return SummaryRecorder()


@pytest.fixture
def governor(state_store):
    return FullRefreshGovernor(state_store, interval_hours=24)


def _orchestrator(strategies, governor, recorder, summaries=None):
    return SyncOrchestrator(strategies, governor, recorder, summaries=summaries, clock=lambda: T)


class TestRunSync:

    def test_runs_entities_in_order(self, governor, recorder):
        order = []
        names = ["customers", "suppliers", "invoices", "quotes", "projects", "purchases"]
        orch = _orchestrator([FakeStrategy(n, order) for n in names], governor, recorder)

        summary = orch.run_sync()

        assert order == names
        assert summary.success is True
        assert summary.error is None
        assert [e["entity"] for e in summary.entities] == names

    def test_run_tag_is_start_time(self, governor, recorder):
        strategy = FakeStrategy("customers", [])
        summary = _orchestrator([strategy], governor, recorder).run_sync()

        assert summary.run_tag == "2026-01-01T00:00:00.000000+00:00"
        assert summary.start == summary.run_tag
        assert strategy.contexts[0].run_tag == summary.run_tag

    def test_failure_aborts_remaining_entities(self, governor, recorder, summary_repo):
        order = []
        strategies = [
            FakeStrategy("customers", order),
            FakeStrategy("suppliers", order, error=RuntimeError("suppliers page 2 fetch failed")),
            FakeStrategy("invoices", order),
        ]

        summary = _orchestrator(strategies, governor, recorder, summary_repo).run_sync()

        assert order == ["customers", "suppliers"]
        assert summary.success is False
        assert summary.error == "suppliers page 2 fetch failed"
        assert [e["entity"] for e in summary.entities] == ["customers"]
        stored = summary_repo.list()
        assert len(stored) == 1
        assert stored[0]["success"] is False
        assert recorder.last_summary is summary
        assert recorder.in_progress is False

    def test_cancellation_recorded(self, governor, recorder):
        strategies = [FakeStrategy("customers", [], error=SyncCancelled("customers"))]

        summary = _orchestrator(strategies, governor, recorder).run_sync()

        assert summary.success is False
        assert summary.error == "cancelled"

    def test_persist_failure_does_not_fail_run(self, governor, recorder):
        summaries = Mock()
        summaries.save.side_effect = OSError("disk full")

        summary = _orchestrator([FakeStrategy("customers", [])], governor, recorder, summaries).run_sync()

        assert summary.success is True
        summaries.save.assert_called_once()
        assert recorder.last_summary is summary

    def test_summary_persisted(self, governor, recorder, summary_repo):
        summary = _orchestrator([FakeStrategy("customers", [])], governor, recorder, summary_repo).run_sync()

        stored = summary_repo.list()[0]
        assert stored["run_tag"] == summary.run_tag
        assert stored["success"] is True
        assert stored["entities"][0]["entity"] == "customers"


class TestFullRefresh:

    def test_first_run_forces_and_records_timestamp(self, governor, recorder, state_store):
        strategy = FakeStrategy("invoices", [])

        summary = _orchestrator([strategy], governor, recorder).run_sync()

        assert summary.full_refresh is True
        assert strategy.contexts[0].force_full_refresh is True
        assert state_store.get(LAST_FULL_REFRESH_KEY) == T
        assert recorder.snapshot()["next_full_refresh"] == T + 24 * 3600

    def test_not_forced_within_interval(self, governor, recorder, state_store):
        state_store.set(LAST_FULL_REFRESH_KEY, T - 23 * 3600)
        strategy = FakeStrategy("invoices", [])

        summary = _orchestrator([strategy], governor, recorder).run_sync()

        assert summary.full_refresh is False
        assert strategy.contexts[0].force_full_refresh is False
        assert state_store.get(LAST_FULL_REFRESH_KEY) == T - 23 * 3600

    def test_failed_run_does_not_record_refresh(self, governor, recorder, state_store):
        strategies = [FakeStrategy("invoices", [], error=RuntimeError("boom"))]

        summary = _orchestrator(strategies, governor, recorder).run_sync()

        assert summary.full_refresh is True
        assert summary.success is False
        assert state_store.get(LAST_FULL_REFRESH_KEY) is None


class TestSingleFlight:

    def test_concurrent_call_rejected(self, governor, recorder):
        gate = threading.Event()
        started = threading.Event()
        orch = _orchestrator(
            [FakeStrategy("customers", [], gate=gate, started=started)], governor, recorder,
        )
        results = []
        worker = threading.Thread(target=lambda: results.append(orch.run_sync()))
        worker.start()
        try:
            assert started.wait(timeout=5)
            assert orch.is_running is True
            assert recorder.in_progress is True
            assert orch.run_sync() is None
        finally:
            gate.set()
            worker.join(timeout=5)

        assert results[0].success is True
        assert orch.is_running is False

    def test_start_background_runs_and_releases_lock(self, governor, recorder):
        orch = _orchestrator([FakeStrategy("customers", [])], governor, recorder)

        thread = orch.start_background()
        assert thread is not None
        assert thread.name == "manual-sync"
        assert thread.daemon is True
        thread.join(timeout=5)

        assert orch.is_running is False
        assert recorder.last_summary.success is True

    def test_start_background_rejected_while_busy(self, governor, recorder):
        gate = threading.Event()
        started = threading.Event()
        orch = _orchestrator(
            [FakeStrategy("customers", [], gate=gate, started=started)], governor, recorder,
        )
        first = orch.start_background()
        try:
            assert started.wait(timeout=5)
            assert orch.start_background() is None
            assert orch.run_sync() is None
        finally:
            gate.set()
            first.join(timeout=5)

        assert recorder.counters()["total_runs"] == 1

    def test_start_background_claims_lock_before_thread_runs(self, governor, recorder, mocker):
        orch = _orchestrator([FakeStrategy("customers", [])], governor, recorder)
        mocker.patch("reconciliation.orchestrator.threading")

        assert orch.start_background() is not None
        assert orch.is_running is True
        assert orch.start_background() is None

    def test_start_background_releases_lock_if_thread_fails_to_start(self, governor, recorder, mocker):
        orch = _orchestrator([FakeStrategy("customers", [])], governor, recorder)
        fake_threading = mocker.patch("reconciliation.orchestrator.threading")
        fake_threading.Thread.return_value.start.side_effect = RuntimeError("can't start new thread")

        with pytest.raises(RuntimeError):
            orch.start_background()

        assert orch.is_running is False

    def test_request_stop_sets_event_seen_by_strategies(self, governor, recorder):
        gate = threading.Event()
        started = threading.Event()
        strategy = FakeStrategy("customers", [], gate=gate, started=started)
        orch = _orchestrator([strategy], governor, recorder)
        worker = threading.Thread(target=orch.run_sync)
        worker.start()
        try:
            assert started.wait(timeout=5)
            orch.request_stop()
            assert strategy.contexts[0].stop_event.is_set()
        finally:
            gate.set()
            worker.join(timeout=5)

    def test_stop_flag_cleared_for_next_run(self, governor, recorder):
        strategy = FakeStrategy("customers", [])
        orch = _orchestrator([strategy], governor, recorder)
        orch.request_stop()

        orch.run_sync()

        assert not strategy.contexts[0].stop_event.is_set()


def test_build_orchestrator_wires_every_entity(mock_settings, make_fetcher, document_store, state_store,
                                               recorder):
    names = ["customers", "suppliers", "invoices", "quotes", "projects", "purchases"]
    fetchers = {n: make_fetcher(n, {}) for n in names}

    orch = build_orchestrator(mock_settings, fetchers, document_store, state_store, recorder)

    assert [s.entity for s in orch.strategies] == names
    assert orch.strategies[1].page_size == 250
    assert orch.strategies[-1].page_size == 100
    assert orch.governor.interval_hours == 24


def test_build_orchestrator_end_to_end(mock_settings, make_fetcher, make_customer, make_numbered,
                                       document_store, state_store, recorder, summary_repo):
    fetchers = {
        "customers": make_fetcher("customers", {1: [make_customer("A")]}),
        "suppliers": make_fetcher("suppliers", {1: [make_customer("S")]}),
        "invoices": make_fetcher("invoices", {1: [make_numbered(5)]}),
        "quotes": make_fetcher("quotes", {}),
        "projects": make_fetcher("projects", {1: [make_numbered(1)]}, unpaged=True),
        "purchases": make_fetcher("purchases", {1: [make_numbered(9)]}),
    }
    orch = build_orchestrator(mock_settings, fetchers, document_store, state_store, recorder,
                              summaries=summary_repo)

    summary = orch.run_sync()

    assert summary.success is True
    assert [e["upserted"] for e in summary.entities] == [1, 1, 1, 0, 1, 1]
    assert state_store.get("invoices:lastMaxNumber") == 5
    assert state_store.get("purchases:lastMaxNumber") == 9
    assert document_store.stats()["customers"] == {"active": 1, "deleted": 0}
