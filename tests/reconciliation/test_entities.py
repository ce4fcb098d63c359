"""Tests for entity definitions and item normalization."""

import pytest

from reconciliation.entities import (
    ENTITIES,
    ENTITY_BY_NAME,
    TRAVERSAL_FULL,
    TRAVERSAL_INCREMENTAL,
    TRAVERSAL_WRAP,
    item_key,
    normalize_date,
    normalize_item,
)


def test_execution_order_ends_with_purchases():
    assert [e.name for e in ENTITIES] == [
        "customers", "suppliers", "invoices", "quotes", "projects", "purchases",
    ]


def test_traversal_kinds():
    assert ENTITY_BY_NAME["customers"].traversal == TRAVERSAL_FULL
    assert ENTITY_BY_NAME["suppliers"].traversal == TRAVERSAL_WRAP
    for name in ("invoices", "quotes", "projects", "purchases"):
        assert ENTITY_BY_NAME[name].traversal == TRAVERSAL_INCREMENTAL


def test_cursor_keys():
    assert ENTITY_BY_NAME["customers"].cursor_key == "customers:lastPage"
    assert ENTITY_BY_NAME["invoices"].cursor_key == "invoices:lastMaxNumber"


def test_invoice_insert_fields():
    assert ENTITY_BY_NAME["invoices"].insert_fields(42) == {"uuid": "invoice:42"}
    assert ENTITY_BY_NAME["quotes"].insert_fields(42) == {}


def test_only_projects_stop_on_unpaged_and_total():
    flagged = [e.name for e in ENTITIES if e.stop_on_unpaged or e.stop_on_total]
    assert flagged == ["projects"]


class TestNormalizeDate:

    def test_naive_timestamp_taken_as_utc(self):
        assert normalize_date("2024-01-15T10:30:00") == "2024-01-15T10:30:00+00:00"

    def test_z_suffix(self):
        assert normalize_date("2024-01-15T10:30:00Z") == "2024-01-15T10:30:00+00:00"

    def test_date_only(self):
        assert normalize_date("2024-01-15") == "2024-01-15T00:00:00+00:00"

    @pytest.mark.parametrize("value", [None, "", "not a date", 12345])
    def test_unparseable_kept(self, value):
        assert normalize_date(value) == value


def test_normalize_item_only_touches_date_fields():
    item = {"Number": 1, "IssuedDate": "2024-01-15", "Note": "2024-01-15"}
    doc = normalize_item(item, ("IssuedDate", "DueDate"))
    assert doc["IssuedDate"] == "2024-01-15T00:00:00+00:00"
    assert doc["Note"] == "2024-01-15"
    assert "DueDate" not in doc
    assert item["IssuedDate"] == "2024-01-15"


class TestItemKey:

    def test_numeric_key_coerced(self):
        assert item_key({"Number": "17"}, ENTITY_BY_NAME["invoices"]) == 17

    def test_numeric_key_invalid(self):
        assert item_key({"Number": "abc"}, ENTITY_BY_NAME["invoices"]) is None
        assert item_key({}, ENTITY_BY_NAME["invoices"]) is None

    def test_string_key(self):
        assert item_key({"Code": "ACME"}, ENTITY_BY_NAME["customers"]) == "ACME"
        assert item_key({"Code": ""}, ENTITY_BY_NAME["customers"]) is None
