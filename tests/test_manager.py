"""
Tests for CacheManager: lazy expiry, metadata, and fail-open handling.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from sidecache.core import CacheEntry, StorageBackend
from sidecache.faults import CacheConfigFault
from sidecache.manager import CacheManager
from sidecache.response import Response


KEY = "api:GET:http://example.com/users"


class SyncDictStorage:
    """Storage with plain (non-async) methods."""

    def __init__(self):
        self.items: Dict[str, Any] = {}

    def get_item(self, key: str) -> Optional[Any]:
        return self.items.get(key)

    def set_item(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        self.items[key] = value

    def remove_item(self, key: str) -> None:
        self.items.pop(key, None)

    def get_keys(self, prefix: Optional[str] = None) -> List[str]:
        return [k for k in self.items if not prefix or k.startswith(prefix)]

    def clear(self, prefix: Optional[str] = None) -> None:
        for key in self.get_keys(prefix):
            del self.items[key]


def failing_storage() -> MagicMock:
    storage = MagicMock()
    storage.name = "broken"
    error = ConnectionError("connection refused")
    storage.get_item = AsyncMock(side_effect=error)
    storage.set_item = AsyncMock(side_effect=error)
    storage.remove_item = AsyncMock(side_effect=error)
    storage.get_keys = AsyncMock(side_effect=error)
    storage.clear = AsyncMock(side_effect=error)
    storage.set_meta = AsyncMock(side_effect=error)
    return storage


# ============================================================================
# Construction
# ============================================================================


class TestConstruction:

    def test_negative_ttl_is_config_fault(self, storage):
        with pytest.raises(CacheConfigFault):
            CacheManager(storage, ttl_seconds=-1)

    def test_zero_ttl_means_no_expiry(self, storage):
        assert CacheManager(storage, ttl_seconds=0).ttl_seconds is None

    def test_backend_name(self, storage):
        assert CacheManager(storage).backend_name == "memory"
        assert CacheManager(SyncDictStorage()).backend_name == "SyncDictStorage"

    def test_bundled_backends_satisfy_protocol(self, storage):
        assert isinstance(storage, StorageBackend)
        assert isinstance(SyncDictStorage(), StorageBackend)


# ============================================================================
# Read / write
# ============================================================================


class TestReadWrite:

    @pytest.mark.asyncio
    async def test_store_then_get_response(self, storage, clock):
        manager = CacheManager(storage, ttl_seconds=60, clock=clock)
        assert await manager.store(KEY, Response.json({"id": 1}))

        cached = await manager.get_response(KEY)
        assert cached is not None
        assert cached.status == 200
        assert cached.body == b'{"id":1}'
        assert cached.headers["content-type"] == "application/json"

    @pytest.mark.asyncio
    async def test_missing_key(self, storage):
        manager = CacheManager(storage)
        assert await manager.get(KEY) is None
        assert await manager.get_response(KEY) is None
        assert not await manager.has(KEY)

    @pytest.mark.asyncio
    async def test_stored_as_dict_with_timestamp(self, storage, clock):
        manager = CacheManager(storage, clock=clock)
        await manager.store(KEY, Response.text("x"))
        raw = await storage.get_item(KEY)
        assert raw["cachedAt"] == clock.now
        assert raw["body"] == "x"

    @pytest.mark.asyncio
    async def test_write_replaces_previous_entry(self, storage, clock):
        manager = CacheManager(storage, clock=clock)
        await manager.store(KEY, Response.text("old"))
        clock.advance(10)
        await manager.store(KEY, Response.text("new"))
        entry = await manager.get(KEY)
        assert entry.body == "new"
        assert entry.cached_at == clock.now

    @pytest.mark.asyncio
    async def test_reads_do_not_touch_timestamp(self, storage, clock):
        manager = CacheManager(storage, ttl_seconds=60, clock=clock)
        await manager.store(KEY, Response.text("x"))
        written = clock.now
        for _ in range(3):
            clock.advance(1000)
            assert (await manager.get(KEY)).cached_at == written

    @pytest.mark.asyncio
    async def test_binary_body_not_stored(self, storage, caplog):
        manager = CacheManager(storage)
        with caplog.at_level(logging.WARNING, logger="sidecache.manager"):
            stored = await manager.store(KEY, Response(content=b"\xff\xfe", media_type="image/png"))
        assert stored is False
        assert await storage.get_keys() == []
        assert "CACHE_SERIALIZATION_FAILED" in caplog.text

    @pytest.mark.asyncio
    async def test_sync_backend(self, clock):
        backend = SyncDictStorage()
        manager = CacheManager(backend, ttl_seconds=5, clock=clock)
        await manager.store(KEY, Response.text("sync"))
        assert (await manager.get(KEY)).body == "sync"
        assert await manager.keys() == [KEY]
        await manager.delete(KEY)
        assert backend.items == {}

    @pytest.mark.asyncio
    async def test_encoded_values_are_decoded(self, clock):
        backend = SyncDictStorage()
        backend.items[KEY] = '{"body": "raw", "headers": {}, "status": 200, "statusText": "OK", "cachedAt": %d}' % clock.now
        manager = CacheManager(backend, clock=clock)
        assert (await manager.get(KEY)).body == "raw"

    @pytest.mark.asyncio
    async def test_corrupt_entry_is_a_miss(self, storage):
        await storage.set_item(KEY, {"unexpected": True})
        assert await CacheManager(storage).get(KEY) is None


# ============================================================================
# Expiry
# ============================================================================


class TestExpiry:

    @pytest.mark.asyncio
    async def test_fresh_until_deadline(self, storage, clock):
        manager = CacheManager(storage, ttl_seconds=60, clock=clock)
        await manager.store(KEY, Response.text("x"))

        clock.advance(60_000)
        assert await manager.has(KEY)

        clock.advance(1)
        assert not await manager.has(KEY)

    @pytest.mark.asyncio
    async def test_expired_entry_is_deleted(self, storage, clock):
        manager = CacheManager(storage, ttl_seconds=1, clock=clock)
        await manager.store(KEY, Response.text("x"))
        clock.advance(1001)

        assert await manager.get(KEY) is None
        assert await storage.get_keys() == []

    @pytest.mark.asyncio
    async def test_no_ttl_never_expires(self, storage, clock):
        manager = CacheManager(storage, clock=clock)
        await manager.store(KEY, Response.text("x"))
        clock.advance(10 * 365 * 24 * 3600 * 1000)
        assert await manager.has(KEY)

    @pytest.mark.asyncio
    async def test_ttl_elapses_in_real_time(self, storage):
        manager = CacheManager(storage, ttl_seconds=1)
        await manager.store(KEY, Response.text("x"))
        assert await manager.has(KEY)

        await asyncio.sleep(1.1)
        assert not await manager.has(KEY)


# ============================================================================
# Metadata
# ============================================================================


class TestMetadata:

    @pytest.mark.asyncio
    async def test_metadata_written_with_ttl(self, storage, clock):
        manager = CacheManager(storage, ttl_seconds=30, clock=clock)
        await manager.store(KEY, Response.text("x"))
        meta = await storage.get_meta(KEY)
        assert meta is not None
        assert meta.expires == clock.now + 30_000

    @pytest.mark.asyncio
    async def test_no_metadata_without_ttl(self, storage, clock):
        manager = CacheManager(storage, clock=clock)
        await manager.store(KEY, Response.text("x"))
        assert await storage.get_meta(KEY) is None

    @pytest.mark.asyncio
    async def test_ttl_passed_as_native_hint(self, clock):
        backend = SyncDictStorage()
        backend.set_item = AsyncMock()
        manager = CacheManager(backend, ttl_seconds=90, clock=clock)
        await manager.set(KEY, CacheEntry(body="x", cached_at=clock.now))
        backend.set_item.assert_awaited_once()
        assert backend.set_item.await_args.kwargs["ttl"] == 90

    @pytest.mark.asyncio
    async def test_backend_without_set_meta(self, clock):
        manager = CacheManager(SyncDictStorage(), ttl_seconds=30, clock=clock)
        await manager.store(KEY, Response.text("x"))
        assert await manager.has(KEY)


# ============================================================================
# Maintenance
# ============================================================================


class TestMaintenance:

    @pytest.mark.asyncio
    async def test_keys_and_prefix(self, storage):
        manager = CacheManager(storage)
        await manager.store("a:1", Response.text("x"))
        await manager.store("a:2", Response.text("x"))
        await manager.store("b:1", Response.text("x"))
        assert sorted(await manager.keys()) == ["a:1", "a:2", "b:1"]
        assert sorted(await manager.keys("a:")) == ["a:1", "a:2"]

    @pytest.mark.asyncio
    async def test_clear_prefix(self, storage):
        manager = CacheManager(storage)
        await manager.store("a:1", Response.text("x"))
        await manager.store("b:1", Response.text("x"))
        await manager.clear("a:")
        assert await manager.keys() == ["b:1"]
        await manager.clear()
        assert await manager.keys() == []

    @pytest.mark.asyncio
    async def test_delete(self, storage):
        manager = CacheManager(storage)
        await manager.store(KEY, Response.text("x"))
        await manager.delete(KEY)
        assert not await manager.has(KEY)


# ============================================================================
# Fail-open
# ============================================================================


class TestFailOpen:

    @pytest.mark.asyncio
    async def test_read_failure_is_a_miss(self, caplog):
        manager = CacheManager(failing_storage())
        with caplog.at_level(logging.WARNING, logger="sidecache.manager"):
            assert await manager.get(KEY) is None
        assert "CACHE_BACKEND_ERROR" in caplog.text
        assert "broken" in caplog.text

    @pytest.mark.asyncio
    async def test_write_failure_is_swallowed(self):
        manager = CacheManager(failing_storage(), ttl_seconds=10)
        assert await manager.store(KEY, Response.text("x")) is True

    @pytest.mark.asyncio
    async def test_maintenance_failures_are_swallowed(self):
        manager = CacheManager(failing_storage())
        await manager.delete(KEY)
        await manager.clear()
        assert await manager.keys() == []

    @pytest.mark.asyncio
    async def test_fault_attached_to_log_record(self, caplog):
        manager = CacheManager(failing_storage())
        with caplog.at_level(logging.WARNING, logger="sidecache.manager"):
            await manager.keys()
        record = caplog.records[-1]
        assert record.fault["code"] == "CACHE_BACKEND_ERROR"
        assert record.fault["metadata"]["operation"] == "keys"

    @pytest.mark.asyncio
    async def test_backend_fault_logged_at_warning(self, caplog):
        manager = CacheManager(failing_storage())
        with caplog.at_level(logging.DEBUG, logger="sidecache.manager"):
            await manager.get(KEY)
        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert record.fault["severity"] == "warn"

    @pytest.mark.asyncio
    async def test_stored_json_array_is_a_miss(self, caplog):
        backend = SyncDictStorage()
        backend.items[KEY] = "[1, 2]"
        manager = CacheManager(backend)

        with caplog.at_level(logging.WARNING, logger="sidecache.manager"):
            assert await manager.get(KEY) is None
            assert await manager.get_response(KEY) is None

        assert "CACHE_SERIALIZATION_FAILED" in caplog.text
        assert caplog.records[-1].fault["code"] == "CACHE_SERIALIZATION_FAILED"
