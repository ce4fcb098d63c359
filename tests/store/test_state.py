"""Unit tests for StateStore."""

import json
import os

from store.state import StateStore


def test_get_missing_key_returns_default(state_store):
    assert state_store.get("customers:lastPage") is None
    assert state_store.get("customers:lastPage", 0) == 0


def test_set_then_get(state_store):
    state_store.set("invoices:lastMaxNumber", 600)
    assert state_store.get("invoices:lastMaxNumber") == 600


def test_values_survive_new_instance(data_dir):
    StateStore(data_dir).set("suppliers:lastPage", 3)
    assert StateStore(data_dir).get("suppliers:lastPage") == 3


def test_file_is_plain_json(state_store):
    state_store.set("a", 1)
    state_store.set("b", 2.5)
    with open(state_store.state_path) as f:
        assert json.load(f) == {"a": 1, "b": 2.5}


def test_no_tmp_file_left_behind(state_store):
    state_store.set("a", 1)
    assert not os.path.exists(state_store.state_path + ".tmp")


def test_corrupt_file_treated_as_empty(state_store):
    with open(state_store.state_path, "w") as f:
        f.write("{not json")
    assert state_store.get("a") is None
    state_store.set("a", 1)
    assert state_store.get("a") == 1


def test_creates_missing_data_dir(tmp_path):
    store = StateStore(str(tmp_path / "nested" / "dir"))
    store.set("k", "v")
    assert store.get("k") == "v"


def test_snapshot(state_store):
    state_store.set("x", 1)
    assert state_store.snapshot() == {"x": 1}
