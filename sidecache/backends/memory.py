"""
SideCache — In-process memory storage.

Ordered dict store used when no storage is configured. Entries live
until removed or cleared; the TTL hint is ignored, so expiry relies
entirely on the manager's lazy check.
"""

from __future__ import annotations

import copy
import logging
from collections import OrderedDict
from typing import Any, Dict, List, Optional

from ..core import CacheMetadata

logger = logging.getLogger("sidecache.backends.memory")


class MemoryStorage:
    """
    Ephemeral storage for a single process.

    Values are deep-copied on the way in and out so callers can never
    mutate a stored entry in place. Each middleware that falls back to
    memory storage gets its own instance.
    """

    __slots__ = ("_store", "_meta")

    name = "memory"

    def __init__(self):
        self._store: "OrderedDict[str, Any]" = OrderedDict()
        self._meta: Dict[str, CacheMetadata] = {}

    async def get_item(self, key: str) -> Optional[Any]:
        value = self._store.get(key)
        return copy.deepcopy(value) if value is not None else None

    async def set_item(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        self._store.pop(key, None)
        self._store[key] = copy.deepcopy(value)
        # A replaced entry must not keep the previous entry's metadata
        self._meta.pop(key, None)

    async def remove_item(self, key: str) -> None:
        self._store.pop(key, None)
        self._meta.pop(key, None)

    async def get_keys(self, prefix: Optional[str] = None) -> List[str]:
        if not prefix:
            return list(self._store)
        return [key for key in self._store if key.startswith(prefix)]

    async def clear(self, prefix: Optional[str] = None) -> None:
        if not prefix:
            self._store.clear()
            self._meta.clear()
            return
        doomed = [k for k in self._store if k.startswith(prefix)]
        for key in doomed:
            del self._store[key]
            self._meta.pop(key, None)
        logger.debug(f"Cleared {len(doomed)} entries with prefix '{prefix}'")

    async def set_meta(self, key: str, metadata: CacheMetadata) -> None:
        self._meta[key] = metadata

    async def get_meta(self, key: str) -> Optional[CacheMetadata]:
        return self._meta.get(key)

    def __len__(self) -> int:
        return len(self._store)

    def __repr__(self) -> str:
        return f"<MemoryStorage entries={len(self._store)}>"
