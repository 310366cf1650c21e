"""Tests for the file-backed status cache store."""

from __future__ import annotations

import json

from services.status_store import CacheEntry, CacheStore


def test_save_and_load_round_trip(tmp_path) -> None:
    store = CacheStore(str(tmp_path))
    assert store.load() is None
    store.save(123.5, '{"a":1}')
    entry = store.load()
    assert entry.timestamp == 123.5
    assert entry.data == '{"a":1}'
    # one document holds both fields
    doc = json.loads((tmp_path / "status.cache").read_text())
    assert doc == {"timestamp": 123.5, "data": '{"a":1}'}


def test_unreadable_cache_is_cold(tmp_path) -> None:
    (tmp_path / "status.cache").write_text("{not json")
    assert CacheStore(str(tmp_path)).load() is None


def test_entry_freshness() -> None:
    entry = CacheEntry(timestamp=100.0, data="x", ttl=5)
    assert entry.is_fresh(104.9)
    assert not entry.is_fresh(105.0)
    assert entry.is_fresh(108.0, ttl=10)
    assert not CacheEntry(timestamp=100.0, data="", ttl=5).is_fresh(100.0)


def test_error_marker(tmp_path) -> None:
    store = CacheStore(str(tmp_path))
    assert store.read_error() is None
    store.write_error("ERROR: boom", exit_code=3, now=10.0)
    assert store.read_error() == {"message": "ERROR: boom", "exit_code": 3, "timestamp": 10.0}
    assert store.clear_error()
    assert store.read_error() is None


def test_foreign_error_marker_still_counts(tmp_path) -> None:
    (tmp_path / "status.cache.error").write_text("ERROR: plain text\n")
    assert CacheStore(str(tmp_path)).read_error()["message"] == "ERROR: plain text"


def test_lease_blocks_other_holders_until_expiry(tmp_path) -> None:
    store = CacheStore(str(tmp_path))
    assert store.acquire_lease("a", 30, now=100.0)
    assert store.lease_active(110.0)
    assert not store.acquire_lease("b", 30, now=110.0)
    # same holder may renew
    assert store.acquire_lease("a", 30, now=110.0)
    # expired lease is taken over
    assert store.acquire_lease("b", 30, now=200.0)
    assert store.read_lease().holder == "b"


def test_expired_lease_is_cleared_on_read(tmp_path) -> None:
    store = CacheStore(str(tmp_path))
    store.acquire_lease("a", 30, now=100.0)
    assert not store.lease_active(131.0)
    assert not (tmp_path / "status.cache.lease").exists()


def test_release_only_by_owner(tmp_path) -> None:
    store = CacheStore(str(tmp_path))
    store.acquire_lease("a", 30, now=100.0)
    assert not store.release_lease("b")
    assert store.release_lease("a")
    assert store.read_lease() is None


def test_garbage_lease_counts_as_expired(tmp_path) -> None:
    (tmp_path / "status.cache.lease").write_text("???")
    store = CacheStore(str(tmp_path))
    assert not store.lease_active(1.0)
    assert store.acquire_lease("a", 30, now=1.0)
