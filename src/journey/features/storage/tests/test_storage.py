from __future__ import annotations

import pytest

from journey.core.errors import StorageUnavailable
from journey.features.persistence.duckdb_adapter import DuckDBAdapter
from journey.features.storage.service import (
    DuckDBKeyValueStore,
    FallbackKeyValueStore,
    InMemoryKeyValueStore,
)


class FlakyStore:
    """Works until `fail` is flipped."""

    def __init__(self) -> None:
        self.fail = False
        self.data: dict[str, str] = {}

    def get(self, key):
        if self.fail:
            raise StorageUnavailable("boom")
        return self.data.get(key)

    def set(self, key, value):
        if self.fail:
            raise StorageUnavailable("boom")
        self.data[key] = value

    def remove(self, key):
        if self.fail:
            raise StorageUnavailable("boom")
        self.data.pop(key, None)


def test_in_memory_store_roundtrip():
    store = InMemoryKeyValueStore()
    assert store.get("k") is None
    store.set("k", "v")
    assert store.get("k") == "v"
    store.remove("k")
    store.remove("k")  # removing twice is fine
    assert store.get("k") is None


def test_duckdb_store_persists_across_reopen(tmp_path):
    path = str(tmp_path / "kv.duckdb")

    s1 = DuckDBKeyValueStore(DuckDBAdapter(path, clean_slate=True))
    s1.open()
    s1.set("user_id", "user_1_abc")
    s1.set("user_id", "user_2_def")  # overwrite
    s1.set("visitor_type", "new")
    s1.remove("visitor_type")
    s1.close()

    s2 = DuckDBKeyValueStore(DuckDBAdapter(path, clean_slate=False))
    s2.open()
    assert s2.get("user_id") == "user_2_def"
    assert s2.get("visitor_type") is None
    s2.close()


def test_duckdb_store_clean_slate_wipes_previous_file(tmp_path):
    path = str(tmp_path / "kv.duckdb")
    s1 = DuckDBKeyValueStore(DuckDBAdapter(path, clean_slate=False))
    s1.open()
    s1.set("user_id", "u")
    s1.close()

    s2 = DuckDBKeyValueStore(DuckDBAdapter(path, clean_slate=True))
    s2.open()
    assert s2.get("user_id") is None
    s2.close()


def test_duckdb_store_raises_storage_unavailable_when_closed(tmp_path):
    store = DuckDBKeyValueStore(DuckDBAdapter(str(tmp_path / "kv.duckdb"), clean_slate=True))
    with pytest.raises(StorageUnavailable):
        store.get("user_id")


def test_fallback_switches_to_memory_on_first_failure():
    primary = FlakyStore()
    store = FallbackKeyValueStore(primary)

    store.set("a", "1")
    assert primary.data == {"a": "1"}
    assert store.degraded is False

    primary.fail = True
    # values written before the outage are still served from memory
    assert store.get("a") == "1"
    assert store.degraded is True

    store.set("b", "2")
    assert store.get("b") == "2"

    # once degraded, the primary is never consulted again
    primary.fail = False
    assert store.get("b") == "2"
    assert "b" not in primary.data


def test_fallback_keeps_values_read_or_removed_before_the_outage():
    primary = FlakyStore()
    primary.data = {"user_id": "user_1", "user_cohort": "cohort_2024_03", "stale": "x"}
    store = FallbackKeyValueStore(primary)

    assert store.get("user_id") == "user_1"
    assert store.get("user_cohort") == "cohort_2024_03"
    store.remove("stale")
    assert store.get("never_set") is None

    primary.fail = True

    assert store.get("user_id") == "user_1"
    assert store.get("user_cohort") == "cohort_2024_03"
    assert store.get("stale") is None
    assert store.get("never_set") is None
    assert store.degraded is True
