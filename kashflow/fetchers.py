"""
Per-entity page fetchers.

The KashFlow API is inconsistent about response shapes: some list endpoints
return a bare array, others wrap items in Data/MetaData, and field casing
varies. normalize_page() maps every known shape onto a single PageEnvelope so
the reconciliation strategies never look at raw payloads.

Mapping table (first present key wins):

    items        raw list itself, else Data, data, items, Items, then
                 per-entity extras (customers, Customers, CustomersList, ...)
    metadata     MetaData, metadata, meta
    has_next     metadata NextPageUrl / nextPageUrl non-empty
    total        metadata TotalRecords / totalRecords, then raw total, Total,
                 totalCount, TotalCount (projects fall back to item count)
    page         raw page / Page, else the requested page
"""

from dataclasses import dataclass
from typing import Any, Optional

from pydantic import BaseModel

from kashflow.client import ApiResult, KashflowClient
from shared.log import create_logger
from validation.errors import ErrorKind

_, log_debug, log_info, _, _ = create_logger("Fetcher")

_ITEM_KEYS = ('Data', 'data', 'items', 'Items')
_META_KEYS = ('MetaData', 'metadata', 'meta')
_NEXT_KEYS = ('NextPageUrl', 'nextPageUrl')
_META_TOTAL_KEYS = ('TotalRecords', 'totalRecords')
_RAW_TOTAL_KEYS = ('total', 'Total', 'totalCount', 'TotalCount')
_PAGE_KEYS = ('page', 'Page')


class PageEnvelope(BaseModel):
    """One normalized page of upstream records."""

    items: list[dict] = []
    page: int = 1
    page_size: int = 0
    total: int = 0
    has_next: bool = False
    unpaged: bool = False


@dataclass
class FetchOutcome:
    """Result of fetch_page(): an envelope, or the kind of failure."""
    envelope: Optional[PageEnvelope] = None
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error_kind is None and self.envelope is not None


@dataclass(frozen=True)
class EndpointConfig:
    """How one entity's list endpoint is called and decoded."""
    entity: str
    path: str
    sort_by: str
    order: str = 'Asc'
    extra_item_keys: tuple = ()
    # Bare-array responses mean the endpoint ignored paging
    detect_unpaged: bool = False
    total_falls_back_to_count: bool = False


ENDPOINTS: dict[str, EndpointConfig] = {
    'customers': EndpointConfig(
        'customers', '/customers', 'Code',
        extra_item_keys=('customers', 'Customers', 'CustomersList'),
    ),
    'suppliers': EndpointConfig(
        'suppliers', '/suppliers', 'Name',
        extra_item_keys=('Suppliers', 'suppliers'),
    ),
    'invoices': EndpointConfig('invoices', '/invoices', 'Number', order='Desc'),
    'quotes': EndpointConfig('quotes', '/quotes', 'Number', order='Desc'),
    'projects': EndpointConfig(
        'projects', '/projects', 'Number', order='Desc',
        detect_unpaged=True, total_falls_back_to_count=True,
    ),
    'purchases': EndpointConfig('purchases', '/purchases', 'Number', order='Desc'),
}


def _first(source: Any, keys) -> Any:
    if not isinstance(source, dict):
        return None
    for key in keys:
        value = source.get(key)
        if value is not None:
            return value
    return None


def _to_int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool) or value is None:
        return default
    try:
        return int(value) or default
    except (TypeError, ValueError):
        return default


def normalize_page(raw: Any, requested_page: int, page_size: int, endpoint: EndpointConfig) -> PageEnvelope:
    """
    Map a raw list response onto a PageEnvelope.

    Args:
        raw: Decoded JSON body
        requested_page: Page number that was requested
        page_size: Page size that was requested
        endpoint: Endpoint configuration for the entity

    Returns:
        PageEnvelope (items always a list, possibly empty)
    """
    unpaged = isinstance(raw, list) and endpoint.detect_unpaged
    if isinstance(raw, list):
        items = raw
    else:
        items = _first(raw, _ITEM_KEYS + endpoint.extra_item_keys)
    if not isinstance(items, list):
        items = []
    items = [item for item in items if isinstance(item, dict)]

    meta = _first(raw, _META_KEYS)
    if not isinstance(meta, dict):
        meta = {}

    has_next = False if unpaged else bool(_first(meta, _NEXT_KEYS))

    total = _to_int(_first(meta, _META_TOTAL_KEYS))
    if not total:
        total = _to_int(_first(raw, _RAW_TOTAL_KEYS))
    if unpaged or (not total and endpoint.total_falls_back_to_count):
        total = len(items)

    return PageEnvelope(
        items=items,
        page=_to_int(_first(raw, _PAGE_KEYS), requested_page),
        page_size=len(items) if unpaged else page_size,
        total=total,
        has_next=has_next,
        unpaged=unpaged,
    )


class EntityFetcher:
    """
    Fetches pages for a single entity.

    Args:
        client: KashflowClient (or anything with get(path, params) -> ApiResult)
        endpoint: EndpointConfig for the entity
    """

    def __init__(self, client: KashflowClient, endpoint: EndpointConfig):
        self.client = client
        self.endpoint = endpoint

    @property
    def entity(self) -> str:
        return self.endpoint.entity

    def fetch_page(self, page: int, page_size: int, extra_params: Optional[dict] = None) -> FetchOutcome:
        """
        Fetch and normalize one page.

        Returns:
            FetchOutcome with envelope on success, error_kind otherwise
        """
        params = {
            'page': page,
            'perpage': page_size,
            'sortby': self.endpoint.sort_by,
            'order': self.endpoint.order,
        }
        if extra_params:
            params.update(extra_params)

        result: ApiResult = self.client.get(self.endpoint.path, params)
        if not result.ok:
            return FetchOutcome(error_kind=result.error_kind, error=result.error)

        raw = result.data
        if page == 1:
            keys = list(raw.keys()) if isinstance(raw, dict) else []
            raw_type = 'array' if isinstance(raw, list) else type(raw).__name__
            log_debug(
                f"{self.entity} raw response shape",
                entity=self.entity, keys=keys, raw_type=raw_type,
            )

        envelope = normalize_page(raw, page, page_size, self.endpoint)
        log_debug(
            f"Fetched {self.entity} page",
            entity=self.entity, page=envelope.page, page_size=envelope.page_size,
            total=envelope.total, count=len(envelope.items),
        )
        return FetchOutcome(envelope=envelope)


def build_fetchers(client: KashflowClient) -> dict[str, EntityFetcher]:
    """Create one EntityFetcher per configured entity."""
    return {name: EntityFetcher(client, endpoint) for name, endpoint in ENDPOINTS.items()}
