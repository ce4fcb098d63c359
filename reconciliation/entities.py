"""
Entity definitions for the reconciliation strategies.

Each synced entity differs only in its natural key, traversal strategy, page
size and which fields hold dates. The strategies read everything they need
from an EntitySpec, so adding an entity means adding a row here.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

TRAVERSAL_FULL = 'full'
TRAVERSAL_WRAP = 'wrap'
TRAVERSAL_INCREMENTAL = 'incremental'


def _no_insert_fields(key) -> dict:
    return {}


def _invoice_insert_fields(key) -> dict:
    return {'uuid': f"invoice:{key}"}


@dataclass(frozen=True)
class EntitySpec:
    """
    Static description of one synced entity.

    Attributes:
        name: Entity / collection name
        key_field: Natural key field in upstream records
        numeric_key: True for integer sequence keys
        traversal: One of TRAVERSAL_FULL, TRAVERSAL_WRAP, TRAVERSAL_INCREMENTAL
        page_size_setting: SyncSettings attribute holding the page size
        date_fields: Fields normalized to ISO-8601 strings
        insert_fields: Callable(key) -> fields written only on insert
        stop_on_unpaged: Stop when the API ignored paging (bare array)
        stop_on_total: Stop once cumulative fetched reaches the API total
    """
    name: str
    key_field: str
    numeric_key: bool
    traversal: str
    page_size_setting: str
    date_fields: tuple = ()
    insert_fields: Callable[[Any], dict] = field(default=_no_insert_fields)
    stop_on_unpaged: bool = False
    stop_on_total: bool = False

    @property
    def cursor_key(self) -> str:
        if self.traversal == TRAVERSAL_INCREMENTAL:
            return f"{self.name}:lastMaxNumber"
        return f"{self.name}:lastPage"


# Execution order; purchases must stay last
ENTITIES: tuple[EntitySpec, ...] = (
    EntitySpec(
        name='customers',
        key_field='Code',
        numeric_key=False,
        traversal=TRAVERSAL_FULL,
        page_size_setting='customers_page_size',
        date_fields=('LastUpdatedDate', 'CreatedDate', 'FirstInvoiceDate', 'LastInvoiceDate'),
    ),
    EntitySpec(
        name='suppliers',
        key_field='Code',
        numeric_key=False,
        traversal=TRAVERSAL_WRAP,
        page_size_setting='suppliers_page_size',
        date_fields=('LastUpdatedDate',),
    ),
    EntitySpec(
        name='invoices',
        key_field='Number',
        numeric_key=True,
        traversal=TRAVERSAL_INCREMENTAL,
        page_size_setting='incremental_page_size',
        date_fields=('IssuedDate', 'DueDate', 'LastPaymentDate', 'PaidDate'),
        insert_fields=_invoice_insert_fields,
    ),
    EntitySpec(
        name='quotes',
        key_field='Number',
        numeric_key=True,
        traversal=TRAVERSAL_INCREMENTAL,
        page_size_setting='incremental_page_size',
        date_fields=('Date',),
    ),
    EntitySpec(
        name='projects',
        key_field='Number',
        numeric_key=True,
        traversal=TRAVERSAL_INCREMENTAL,
        page_size_setting='incremental_page_size',
        date_fields=('StartDate', 'EndDate'),
        stop_on_unpaged=True,
        stop_on_total=True,
    ),
    EntitySpec(
        name='purchases',
        key_field='Number',
        numeric_key=True,
        traversal=TRAVERSAL_INCREMENTAL,
        page_size_setting='incremental_page_size',
        date_fields=('IssuedDate', 'DueDate', 'PaidDate'),
    ),
)

ENTITY_BY_NAME = {spec.name: spec for spec in ENTITIES}


def normalize_date(value: Any) -> Any:
    """
    Normalize a date value to an ISO-8601 string.

    Naive timestamps are taken as UTC. Empty and unparseable values are
    returned unchanged.
    """
    if not value or not isinstance(value, str):
        return value
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return value
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.isoformat()


def normalize_item(item: dict, date_fields: tuple) -> dict:
    """Copy of item with its date fields normalized."""
    doc = dict(item)
    for name in date_fields:
        if name in doc:
            doc[name] = normalize_date(doc[name])
    return doc


def item_key(item: dict, spec: EntitySpec) -> Optional[Any]:
    """
    Natural key of an upstream item, or None when missing/invalid.

    Numeric keys are coerced to int; string keys must be non-empty.
    """
    raw = item.get(spec.key_field)
    if raw is None or isinstance(raw, bool):
        return None
    if spec.numeric_key:
        try:
            return int(raw)
        except (TypeError, ValueError):
            return None
    text = str(raw)
    return text if text else None
