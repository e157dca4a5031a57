"""
SideCache — Redis storage for shared caching.

Stores entries as JSON strings via ``EntryCodec``, honours the TTL hint
with native ``EX`` expiry, and keeps metadata under ``__meta__:{key}``
with the same expiry. Errors propagate to the caller; ``CacheManager`` decides
how to degrade.
"""

from __future__ import annotations

import logging
import re
from typing import Any, List, Optional

from ..codec import EntryCodec
from ..core import CacheMetadata

logger = logging.getLogger("sidecache.backends.redis")

META_PREFIX = "__meta__:"

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


def _escape_glob(value: str) -> str:
    """Escape Redis MATCH metacharacters so ``value`` matches literally."""
    return _GLOB_SPECIAL.sub(r"\\\1", value)


class RedisStorage:
    """
    Redis-backed storage using ``redis.asyncio``.

    The connection is created on first use. An existing client may be
    passed instead of a URL (its responses must not be decoded, or be
    decoded to ``str``; both are handled).

    Args:
        url: Redis connection URL
        key_prefix: Prepended to every key in Redis and stripped from
            keys returned by ``get_keys``
        client: Pre-built ``redis.asyncio.Redis`` client
        max_connections: Pool size for the client created from ``url``
        socket_timeout: Socket timeout in seconds
        connect_timeout: Connect timeout in seconds
    """

    __slots__ = (
        "_url",
        "_key_prefix",
        "_redis",
        "_owns_client",
        "_codec",
        "_max_connections",
        "_socket_timeout",
        "_connect_timeout",
    )

    name = "redis"

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        *,
        key_prefix: str = "",
        client: Optional[Any] = None,
        max_connections: int = 10,
        socket_timeout: float = 5.0,
        connect_timeout: float = 5.0,
    ):
        self._url = url
        self._key_prefix = key_prefix
        self._redis = client
        self._owns_client = client is None
        self._codec = EntryCodec()
        self._max_connections = max_connections
        self._socket_timeout = socket_timeout
        self._connect_timeout = connect_timeout

    def _client(self):
        """Connected client, created lazily from the URL."""
        if self._redis is None:
            import redis.asyncio as aioredis

            self._redis = aioredis.from_url(
                self._url,
                max_connections=self._max_connections,
                socket_timeout=self._socket_timeout,
                socket_connect_timeout=self._connect_timeout,
                decode_responses=False,  # We handle serialization
            )
            logger.info(f"Redis storage connecting: {self._url}")
        return self._redis

    def _full_key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    def _meta_key(self, key: str) -> str:
        return f"{self._key_prefix}{META_PREFIX}{key}"

    async def get_item(self, key: str) -> Optional[Any]:
        raw = await self._client().get(self._full_key(key))
        if raw is None:
            return None
        return self._codec.decode(raw, key=key)

    async def set_item(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        data = self._codec.encode(value, key=key)
        client = self._client()
        if ttl and ttl > 0:
            await client.set(self._full_key(key), data, ex=ttl)
        else:
            await client.set(self._full_key(key), data)
        # A replaced entry must not keep the previous entry's metadata
        await client.delete(self._meta_key(key))

    async def remove_item(self, key: str) -> None:
        await self._client().delete(self._full_key(key), self._meta_key(key))

    async def set_meta(self, key: str, metadata: CacheMetadata) -> None:
        data = self._codec.encode(metadata.to_dict(), key=key)
        client = self._client()
        # Metadata lives exactly as long as the entry it describes
        ttl = await client.pttl(self._full_key(key))
        if ttl is not None and ttl > 0:
            await client.set(self._meta_key(key), data, px=ttl)
        else:
            await client.set(self._meta_key(key), data)

    async def get_meta(self, key: str) -> Optional[CacheMetadata]:
        raw = await self._client().get(self._meta_key(key))
        if raw is None:
            return None
        return CacheMetadata.from_dict(self._codec.decode(raw, key=key))

    async def _scan(self, prefix: Optional[str], *, meta: bool = False) -> List[str]:
        """Full Redis keys under ``prefix``, in the metadata namespace if ``meta``."""
        base = self._meta_key(prefix or "") if meta else self._full_key(prefix or "")
        pattern = f"{_escape_glob(base)}*"
        keys = []
        async for raw in self._client().scan_iter(match=pattern, count=1000):
            keys.append(raw.decode("utf-8") if isinstance(raw, bytes) else raw)
        return keys

    async def get_keys(self, prefix: Optional[str] = None) -> List[str]:
        prefix_len = len(self._key_prefix)
        meta_start = self._meta_key("")
        return [
            k[prefix_len:]
            for k in await self._scan(prefix)
            if not k.startswith(meta_start)
        ]

    async def clear(self, prefix: Optional[str] = None) -> None:
        keys = await self._scan(prefix)
        if prefix:
            keys += await self._scan(prefix, meta=True)
        if keys:
            await self._client().delete(*keys)

    async def close(self) -> None:
        """Close the connection pool if this storage created it."""
        if self._redis is not None and self._owns_client:
            await self._redis.aclose()
            self._redis = None
