"""
Tests for the storage module.
"""

import tempfile

import pytest

from taste_engine.storage import (
    FileStore,
    MemoryStore,
    StorageQuotaExceeded,
    load_json,
    save_json,
)


class TestMemoryStore:
    """Tests for MemoryStore."""

    def test_set_and_get(self):
        store = MemoryStore()
        store.set("k", "value")

        assert store.get("k") == "value"
        assert store.keys() == ["k"]

    def test_missing_key(self):
        assert MemoryStore().get("nope") is None

    def test_quota_exceeded(self):
        store = MemoryStore(quota_bytes=10)

        with pytest.raises(StorageQuotaExceeded):
            store.set("k", "x" * 11)
        assert store.get("k") is None

    def test_overwrite_counts_replaced_value_once(self):
        store = MemoryStore(quota_bytes=10)
        store.set("k", "x" * 8)
        store.set("k", "y" * 10)

        assert store.used_bytes() == 10

    def test_clear(self):
        store = MemoryStore()
        store.set("a", "1")
        store.set("b", "2")

        assert store.clear() == 2
        assert store.keys() == []


class TestFileStore:
    """Tests for FileStore."""

    @pytest.fixture
    def temp_dir(self):
        """Create temporary directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield tmpdir

    def test_persists_across_instances(self, temp_dir):
        FileStore(temp_dir).set("engine.features", '{"a": 1}')

        assert FileStore(temp_dir).get("engine.features") == '{"a": 1}'

    def test_delete(self, temp_dir):
        store = FileStore(temp_dir)
        store.set("k", "v")
        store.delete("k")
        store.delete("k")

        assert store.get("k") is None

    def test_quota(self, temp_dir):
        store = FileStore(temp_dir, quota_bytes=5)

        with pytest.raises(StorageQuotaExceeded):
            store.set("k", "123456")


class TestJsonHelpers:
    """Tests for load_json / save_json."""

    def test_round_trip(self):
        store = MemoryStore()

        assert save_json(store, "k", {"x": [1, 2]})
        assert load_json(store, "k") == {"x": [1, 2]}

    def test_corrupt_value_is_a_miss(self):
        store = MemoryStore()
        store.set("k", "{not json")

        assert load_json(store, "k") is None

    def test_quota_purges_and_retries(self):
        store = MemoryStore(quota_bytes=40)
        store.set("snapshot", "s" * 30)

        assert save_json(store, "k", "v" * 20, purge_keys=["snapshot"])
        assert store.get("snapshot") is None
        assert load_json(store, "k") == "v" * 20

    def test_quota_failure_after_purge_does_not_raise(self):
        store = MemoryStore(quota_bytes=5)

        assert save_json(store, "k", "v" * 50, purge_keys=["snapshot"]) is False
        assert store.get("k") is None
