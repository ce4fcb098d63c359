"""
Tests for store.documents: sqlite JSON document collections.
"""

import pytest

from store.documents import DocumentStore


@pytest.fixture
def customers(document_store):
    return document_store.collection("customers", "Code")


@pytest.fixture
def invoices(document_store):
    return document_store.collection("invoices", "Number", numeric_key=True)


class TestUpsert:

    def test_insert_applies_insert_only_fields(self, customers):
        result = customers.upsert("C1", {"Name": "Acme", "lastSeenRun": "r1"}, {"createdAt": "t0", "deletedAt": None})

        assert result.inserted is True
        doc = customers.find_one("C1")
        assert doc == {"Name": "Acme", "lastSeenRun": "r1", "createdAt": "t0", "deletedAt": None, "Code": "C1"}

    def test_update_keeps_insert_only_fields(self, customers):
        customers.upsert("C1", {"Name": "Acme"}, {"createdAt": "t0", "deletedAt": None})
        result = customers.upsert("C1", {"Name": "Acme Ltd"}, {"createdAt": "t9", "deletedAt": None})

        assert result.inserted is False
        assert result.modified is True
        assert result.before["Name"] == "Acme"
        doc = customers.find_one("C1")
        assert doc["Name"] == "Acme Ltd"
        assert doc["createdAt"] == "t0"

    def test_update_never_clears_deleted_at(self, customers):
        customers.upsert("C1", {"Name": "Acme"}, {"deletedAt": None})
        customers.update_many({"deletedAt": None}, {"deletedAt": "gone"})

        customers.upsert("C1", {"Name": "Acme"}, {"deletedAt": None})

        assert customers.find_one("C1")["deletedAt"] == "gone"

    def test_identical_update_not_modified(self, customers):
        customers.upsert("C1", {"Name": "Acme"})
        result = customers.upsert("C1", {"Name": "Acme"})
        assert result.modified is False

    def test_find_one_missing(self, customers):
        assert customers.find_one("nope") is None


class TestFilters:

    def test_soft_delete_filter_matches_missing_and_other_tags(self, customers):
        customers.upsert("A", {"lastSeenRun": "run-1"}, {"deletedAt": None})
        customers.upsert("B", {"lastSeenRun": "run-2"}, {"deletedAt": None})
        customers.upsert("C", {"Name": "never tagged"}, {"deletedAt": None})

        count = customers.update_many(
            {"deletedAt": None, "lastSeenRun": {"$ne": "run-2"}},
            {"deletedAt": "now"},
        )

        assert count == 2
        assert customers.find_one("A")["deletedAt"] == "now"
        assert customers.find_one("B")["deletedAt"] is None
        assert customers.find_one("C")["deletedAt"] == "now"

    def test_already_deleted_not_counted_again(self, customers):
        customers.upsert("A", {"lastSeenRun": "old"}, {"deletedAt": "earlier"})
        count = customers.update_many({"deletedAt": None, "lastSeenRun": {"$ne": "new"}}, {"deletedAt": "now"})
        assert count == 0
        assert customers.find_one("A")["deletedAt"] == "earlier"

    def test_count_documents(self, customers):
        customers.upsert("A", {}, {"deletedAt": None})
        customers.upsert("B", {}, {"deletedAt": "x"})

        assert customers.count_documents() == 2
        assert customers.count_documents({"deletedAt": None}) == 1
        assert customers.count_documents({"deletedAt": {"$ne": None}}) == 1

    def test_equality_filter_on_run_tag(self, customers):
        customers.upsert("A", {"lastSeenRun": "r"}, {"deletedAt": None})
        customers.upsert("B", {"lastSeenRun": "s"}, {"deletedAt": None})
        assert customers.count_documents({"lastSeenRun": "r"}) == 1

    def test_unsupported_filter_field_rejected(self, customers):
        with pytest.raises(ValueError):
            customers.count_documents({"Name": "x"})


class TestMaxKey:

    def test_max_key_numeric(self, invoices):
        for n in (5, 120, 17):
            invoices.upsert(n, {"Number": n})
        assert invoices.max_key() == 120

    def test_max_key_empty(self, invoices):
        assert invoices.max_key() == 0

    def test_max_key_string_collection(self, customers):
        customers.upsert("Z", {})
        assert customers.max_key() == 0


def test_collections_share_database_file(db_path):
    store = DocumentStore(db_path)
    store.collection("customers", "Code").upsert("A", {}, {"deletedAt": None})
    store.collection("suppliers", "Code").upsert("S", {}, {"deletedAt": "x"})

    again = DocumentStore(db_path)
    again.collection("customers", "Code")
    again.collection("suppliers", "Code")
    assert again.stats() == {
        "customers": {"active": 1, "deleted": 0},
        "suppliers": {"active": 0, "deleted": 1},
    }


def test_invalid_collection_name_rejected(document_store):
    with pytest.raises(ValueError):
        document_store.collection("bad name;", "Code")
