"""
SideCache — Core types, protocols, and expiry arithmetic.

Defines the stored form of a cached response, the advisory metadata
record written next to it, and the storage contract every backend
satisfies structurally.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import (
    Any,
    Awaitable,
    Dict,
    Mapping,
    Optional,
    Protocol,
    Union,
    runtime_checkable,
)


# ============================================================================
# Cache Entry
# ============================================================================

@dataclass(slots=True)
class CacheEntry:
    """
    Serialized form of a cached response.

    ``cached_at`` is stamped once when the entry is written; reads never
    touch it.
    """
    body: str
    headers: Dict[str, str] = field(default_factory=dict)
    status: int = 200
    status_text: str = ""
    cached_at: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Storage representation."""
        return {
            "body": self.body,
            "headers": dict(self.headers),
            "status": self.status,
            "statusText": self.status_text,
            "cachedAt": self.cached_at,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CacheEntry":
        """
        Rebuild an entry from its storage representation.

        Raises:
            KeyError: if ``body`` or ``cachedAt`` is missing.
            TypeError / ValueError: if fields have the wrong shape.
        """
        headers = data.get("headers") or {}
        if not isinstance(headers, Mapping):
            raise TypeError(f"headers must be a mapping, got {type(headers).__name__}")
        body = data["body"]
        if not isinstance(body, str):
            raise TypeError(f"body must be text, got {type(body).__name__}")
        return cls(
            body=body,
            headers={str(k): str(v) for k, v in headers.items()},
            status=int(data.get("status", 200)),
            status_text=str(data.get("statusText", "")),
            cached_at=int(data["cachedAt"]),
        )

    def __repr__(self) -> str:
        return f"<CacheEntry status={self.status} cached_at={self.cached_at} bytes={len(self.body)}>"


# ============================================================================
# Cache Metadata
# ============================================================================

@dataclass(slots=True)
class CacheMetadata:
    """
    Advisory side record for a stored entry.

    Backends that understand it may use ``expires`` for native eviction.
    Correctness never depends on it: expiry is always decided from the
    entry's own ``cached_at``.
    """
    mtime: datetime
    expires: Optional[int] = None

    @classmethod
    def for_entry(cls, entry: CacheEntry, ttl_seconds: Optional[int]) -> "CacheMetadata":
        return cls(
            mtime=datetime.fromtimestamp(entry.cached_at / 1000, tz=timezone.utc),
            expires=expires_at(entry.cached_at, ttl_seconds),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"mtime": self.mtime.isoformat()}
        if self.expires is not None:
            data["expires"] = self.expires
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CacheMetadata":
        mtime = data["mtime"]
        if isinstance(mtime, str):
            mtime = datetime.fromisoformat(mtime)
        expires = data.get("expires")
        return cls(mtime=mtime, expires=int(expires) if expires is not None else None)


# ============================================================================
# Expiry
# ============================================================================

def expires_at(cached_at: int, ttl_seconds: Optional[int]) -> Optional[int]:
    """Expiry timestamp in epoch ms, or ``None`` when entries never expire."""
    if not ttl_seconds:
        return None
    return cached_at + ttl_seconds * 1000


def is_expired(cached_at: int, ttl_seconds: Optional[int], now: int) -> bool:
    """
    Whether an entry written at ``cached_at`` is stale at ``now``.

    An entry is still fresh at exactly ``cached_at + ttl * 1000`` and
    expired strictly after it. No TTL means never expired.
    """
    deadline = expires_at(cached_at, ttl_seconds)
    if deadline is None:
        return False
    return now > deadline


# ============================================================================
# Storage Backend Protocol
# ============================================================================

MaybeAwaitable = Union[Any, Awaitable[Any]]


@runtime_checkable
class StorageBackend(Protocol):
    """
    Key-value storage contract consumed by ``CacheManager``.

    Conformance is structural: any object with these methods works,
    sync or async. ``set_meta`` is optional and is looked up with
    ``getattr`` before use, so it is not part of the checked protocol.
    Backends need not implement native expiration.
    """

    def get_item(self, key: str) -> MaybeAwaitable:
        """Stored value, or ``None`` when absent."""
        ...

    def set_item(self, key: str, value: Any, ttl: Optional[int] = None) -> MaybeAwaitable:
        """Store ``value``; ``ttl`` (seconds) is a native-expiry hint."""
        ...

    def remove_item(self, key: str) -> MaybeAwaitable:
        ...

    def get_keys(self, prefix: Optional[str] = None) -> MaybeAwaitable:
        """Keys, optionally restricted to those starting with ``prefix``."""
        ...

    def clear(self, prefix: Optional[str] = None) -> MaybeAwaitable:
        ...


__all__ = [
    "CacheEntry",
    "CacheMetadata",
    "StorageBackend",
    "expires_at",
    "is_expired",
]
