"""
SideCache — CacheManager: storage-facing cache operations.

Wraps a storage backend with:
- Lazy TTL expiration from each entry's own ``cached_at``
- Advisory metadata records for backends with native expiry
- Fail-open error handling: backend failures are logged and reported
  as misses or skipped writes, never raised

The manager holds no mutable state besides its configuration, and takes
no locks. Concurrent writes to one key resolve as last-write-wins in the
backend.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from .codec import coerce_entry, deserialize_entry, serialize_response
from .core import CacheEntry, CacheMetadata, StorageBackend, is_expired
from .faults import CacheBackendFault, CacheConfigFault, CacheSerializationFault, Fault, Severity
from .response import Response
from .utils import maybe_await, now_ms, qualified_name

logger = logging.getLogger("sidecache.manager")

_LOG_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.WARN: logging.WARNING,
    Severity.ERROR: logging.ERROR,
    Severity.FATAL: logging.CRITICAL,
}


class CacheManager:
    """
    Response cache over a key-value storage backend.

    Usage::

        manager = CacheManager(MemoryStorage(), ttl_seconds=60)
        await manager.store("api:GET:http://localhost/x", response)
        cached = await manager.get_response("api:GET:http://localhost/x")
    """

    __slots__ = ("_storage", "_ttl", "_clock")

    def __init__(
        self,
        storage: StorageBackend,
        ttl_seconds: Optional[int] = None,
        *,
        clock: Callable[[], int] = now_ms,
    ):
        if ttl_seconds is not None and ttl_seconds < 0:
            raise CacheConfigFault(f"ttl_seconds must not be negative, got {ttl_seconds}")
        self._storage = storage
        self._ttl = ttl_seconds or None
        self._clock = clock

    @property
    def storage(self) -> StorageBackend:
        return self._storage

    @property
    def ttl_seconds(self) -> Optional[int]:
        return self._ttl

    @property
    def backend_name(self) -> str:
        return getattr(self._storage, "name", None) or qualified_name(self._storage)

    # ── Reads ────────────────────────────────────────────────────────

    async def get(self, key: str) -> Optional[CacheEntry]:
        """
        Fresh entry for ``key``, or ``None``.

        An expired entry is deleted and reported absent. Never raises.
        """
        try:
            raw = await maybe_await(self._storage.get_item(key))
        except Exception as e:
            self._log_fault(CacheBackendFault(self.backend_name, "get", str(e)))
            return None

        if raw is None:
            return None

        try:
            entry = coerce_entry(raw, key=key)
        except CacheSerializationFault as fault:
            self._log_fault(fault)
            return None

        if is_expired(entry.cached_at, self._ttl, self._clock()):
            logger.debug(f"Cache entry expired: {key}")
            await self.delete(key)
            return None

        return entry

    async def get_response(self, key: str) -> Optional[Response]:
        """Cached response for ``key``, or ``None``."""
        entry = await self.get(key)
        if entry is None:
            return None
        return deserialize_entry(entry)

    async def has(self, key: str) -> bool:
        """Whether a fresh entry exists for ``key``."""
        return await self.get(key) is not None

    # ── Writes ───────────────────────────────────────────────────────

    async def set(self, key: str, entry: CacheEntry) -> None:
        """
        Persist ``entry`` under ``key``, replacing any previous entry.

        When a TTL is configured it is passed to the backend as a native
        expiry hint, and a ``CacheMetadata`` record is written if the
        backend supports ``set_meta``. Never raises.
        """
        try:
            await maybe_await(self._storage.set_item(key, entry.to_dict(), ttl=self._ttl))
            if self._ttl:
                set_meta = getattr(self._storage, "set_meta", None)
                if set_meta is not None:
                    await maybe_await(set_meta(key, CacheMetadata.for_entry(entry, self._ttl)))
        except Exception as e:
            self._log_fault(CacheBackendFault(self.backend_name, "set", str(e)))

    async def store(self, key: str, response: Response) -> bool:
        """
        Serialize ``response`` and persist it.

        Returns False (after logging) when the body cannot be serialized.
        Backend failures are handled by ``set``.
        """
        try:
            entry = await serialize_response(response, key=key, clock=self._clock)
        except CacheSerializationFault as fault:
            self._log_fault(fault)
            return False
        await self.set(key, entry)
        return True

    async def delete(self, key: str) -> None:
        """Remove ``key``. Never raises."""
        try:
            await maybe_await(self._storage.remove_item(key))
        except Exception as e:
            self._log_fault(CacheBackendFault(self.backend_name, "delete", str(e)))

    async def clear(self, prefix: Optional[str] = None) -> None:
        """Remove all entries, or those whose key starts with ``prefix``."""
        try:
            await maybe_await(self._storage.clear(prefix))
        except Exception as e:
            self._log_fault(CacheBackendFault(self.backend_name, "clear", str(e)))

    async def keys(self, prefix: Optional[str] = None) -> List[str]:
        """Stored keys, or ``[]`` if the backend fails."""
        try:
            return list(await maybe_await(self._storage.get_keys(prefix)))
        except Exception as e:
            self._log_fault(CacheBackendFault(self.backend_name, "keys", str(e)))
            return []

    # ── Internals ────────────────────────────────────────────────────

    @staticmethod
    def _log_fault(fault: Fault) -> None:
        logger.log(_LOG_LEVELS[fault.severity], str(fault), extra={"fault": fault.to_dict()})

    def __repr__(self) -> str:
        return f"CacheManager(backend={self.backend_name!r}, ttl_seconds={self._ttl})"
