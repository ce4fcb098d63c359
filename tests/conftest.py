"""
Shared pytest fixtures for KashflowSync tests.

Provides reusable fixtures for:
- Local stores backed by tmp_path (state file, sqlite documents, audit log)
- A scripted page fetcher standing in for the KashFlow API
- Settings objects for wiring tests

These fixtures avoid network access entirely; HTTP-level tests use respx.
"""

import threading
from unittest.mock import Mock

import pytest

from kashflow.fetchers import FetchOutcome, PageEnvelope
from reconciliation.strategies import RunContext, SyncOptions
from store.audit import AuditSink
from store.documents import DocumentStore
from store.state import StateStore
from store.summaries import SummaryRepository


REQUIRED_ENV = {
    "kashflow_username": "user@example.com",
    "kashflow_password": "secret-password",
    "kashflow_memorable_word": "memorable",
}


# =============================================================================
# Scripted fetcher
# =============================================================================

class ScriptedFetcher:
    """
    Fake EntityFetcher returning pre-built pages.

    Args:
        entity: Entity name
        pages: {page_number: [items]}; pages not listed come back empty
        total: API-reported total (default: sum of all items)
        failures: {page_number: ErrorKind} pages that fail
        unpaged: Return every page as an unpaged (bare array) response
        has_next: Optional callable(page) -> bool overriding next-page detection
    """

    def __init__(self, entity, pages, total=None, failures=None, unpaged=False, has_next=None):
        self.entity = entity
        self.pages = pages
        self.total = total if total is not None else sum(len(v) for v in pages.values())
        self.failures = failures or {}
        self.unpaged = unpaged
        self._has_next = has_next
        self.calls = []

    def fetch_page(self, page, page_size, extra_params=None):
        self.calls.append(page)
        if page in self.failures:
            return FetchOutcome(error_kind=self.failures[page], error="HTTP 503")
        items = list(self.pages.get(page, []))
        if self._has_next is not None:
            has_next = self._has_next(page)
        else:
            has_next = bool(self.pages) and page < max(self.pages)
        return FetchOutcome(envelope=PageEnvelope(
            items=items,
            page=page,
            page_size=len(items) if self.unpaged else page_size,
            total=self.total,
            has_next=False if self.unpaged else has_next,
            unpaged=self.unpaged,
        ))


def customer(code, **fields):
    item = {"Code": code, "Name": f"Customer {code}"}
    item.update(fields)
    return item


def numbered(number, **fields):
    item = {"Number": number, "Amount": float(number)}
    item.update(fields)
    return item


@pytest.fixture
def make_fetcher():
    """Factory for ScriptedFetcher instances."""
    return ScriptedFetcher


@pytest.fixture
def make_customer():
    return customer


@pytest.fixture
def make_numbered():
    return numbered


# =============================================================================
# Stores
# =============================================================================

@pytest.fixture
def data_dir(tmp_path):
    return str(tmp_path)


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "kashflow.db")


@pytest.fixture
def state_store(data_dir):
    return StateStore(data_dir)


@pytest.fixture
def document_store(db_path):
    return DocumentStore(db_path)


@pytest.fixture
def audit_sink(db_path):
    return AuditSink(db_path)


@pytest.fixture
def summary_repo(db_path):
    return SummaryRepository(db_path)


# =============================================================================
# Run context / options
# =============================================================================

@pytest.fixture
def run_ctx():
    """RunContext for a normal (non-forced) run."""
    return RunContext(run_tag="2026-01-01T00:00:00.000000+00:00", stop_event=threading.Event())


@pytest.fixture
def quiet_options():
    """SyncOptions with progress logging off."""
    return SyncOptions(progress_logs=False)


@pytest.fixture
def valid_settings_dict(tmp_path):
    """Minimal valid SyncSettings kwargs."""
    config = dict(REQUIRED_ENV)
    config["data_dir"] = str(tmp_path)
    return config


@pytest.fixture
def mock_settings(tmp_path):
    """
    Mock SyncSettings with defaults matching the real model.

    Usage:
        def test_wiring(mock_settings):
            mock_settings.full_refresh_hours = 12
    """
    settings = Mock()
    settings.kashflow_base_url = "https://api.example.test/v2"
    settings.kashflow_username = REQUIRED_ENV["kashflow_username"]
    settings.kashflow_password = REQUIRED_ENV["kashflow_password"]
    settings.kashflow_memorable_word = REQUIRED_ENV["kashflow_memorable_word"]
    settings.kashflow_timeout = 5.0
    settings.kashflow_max_retries = 0
    settings.data_dir = str(tmp_path)
    settings.progress_logs = False
    settings.upsert_logs = False
    settings.incremental_soft_delete = True
    settings.wrap_total_check = False
    settings.full_refresh_hours = 24
    settings.customers_page_size = 100
    settings.suppliers_page_size = 250
    settings.incremental_page_size = 100
    settings.run_once = False
    settings.cron_enabled = False
    settings.metrics_enabled = False
    settings.sync_interval_seconds = 3600.0
    return settings
