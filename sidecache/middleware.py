"""
SideCache — Cache-aside response middleware.

Sits between the dispatcher and the application handler:

- Derives a key for the request and serves a fresh stored response
  without running the handler
- On a miss, runs the handler and, when the admission policy allows,
  stores a snapshot of the response
- Defers the write until after the response is sent when the request
  context supports it, otherwise awaits it before returning

No failure in this layer reaches the client: key, lookup and storage
errors are logged and the request is served uncached.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Iterable, Optional, TYPE_CHECKING

from .admission import DEFAULT_CACHEABLE_STATUS_CODES, AdmissionPolicy
from .backends.memory import MemoryStorage
from .context import RequestCtx
from .core import StorageBackend
from .key_builder import KeyFunction, RequestKeyBuilder, StringProducer
from .manager import CacheManager
from .request import Request
from .response import Response

if TYPE_CHECKING:
    from .config import CacheOptions

logger = logging.getLogger("sidecache.middleware")

Handler = Callable[[Request, RequestCtx], Awaitable[Response]]


class CacheMiddleware:
    """
    Response caching middleware.

    Usage::

        cache = CacheMiddleware("api", storage=RedisStorage(url), ttl_seconds=300)
        response = await cache(request, ctx, next_handler)

        # Explicit invalidation
        await cache.manager.delete("api:GET:http://example.com/users")

    Args:
        namespace: Key prefix, or a (possibly async) function of the request
        storage: Storage backend; a private ``MemoryStorage`` when omitted
        ttl_seconds: Entry lifetime; ``None`` or ``0`` never expires
        cacheable_status_codes: Status codes eligible for storage
        key_fn: Custom key body producer; defaults to ``METHOD:URL``
        bypass_method_check: Also store responses to non-GET requests
    """

    def __init__(
        self,
        namespace: StringProducer,
        *,
        storage: Optional[StorageBackend] = None,
        ttl_seconds: Optional[int] = None,
        cacheable_status_codes: Iterable[int] = DEFAULT_CACHEABLE_STATUS_CODES,
        key_fn: Optional[KeyFunction] = None,
        bypass_method_check: bool = False,
    ):
        if storage is None:
            logger.warning("No storage provided, using default in-memory storage")
            storage = MemoryStorage()

        self.namespace = namespace
        self.manager = CacheManager(storage, ttl_seconds)
        self.policy = AdmissionPolicy(cacheable_status_codes, bypass_method_check)
        self.key_builder = RequestKeyBuilder(key_fn)

    @classmethod
    def from_options(cls, options: "CacheOptions") -> "CacheMiddleware":
        """Create middleware from a validated ``CacheOptions``."""
        options.validate()
        return cls(
            options.namespace,
            storage=options.storage,
            ttl_seconds=options.ttl_seconds,
            cacheable_status_codes=options.cacheable_status_codes,
            key_fn=options.key_fn,
            bypass_method_check=options.bypass_method_check,
        )

    async def __call__(
        self,
        request: Request,
        ctx: RequestCtx,
        next_handler: Handler,
    ) -> Response:
        """Middleware handler."""
        try:
            key = await self.key_builder.for_request(self.namespace, request)
        except Exception as e:
            logger.warning(f"Cache key derivation failed, serving uncached: {e}", exc_info=True)
            return await next_handler(request, ctx)

        cached = await self.manager.get_response(key)
        if cached is not None:
            logger.debug(f"Cache HIT: {key}")
            return cached

        logger.debug(f"Cache MISS: {key}")
        response = await next_handler(request, ctx)

        if not self.policy.admit(response, request.method):
            return response

        # The original goes back to the client; only the copy is read for storage
        snapshot = response.clone()

        if _can_defer(ctx):
            ctx.wait_until(lambda: self._persist(key, snapshot))
        else:
            await self._persist(key, snapshot)

        return response

    async def _persist(self, key: str, snapshot: Response) -> None:
        try:
            if await self.manager.store(key, snapshot):
                logger.debug(f"Cache STORE: {key}")
        except Exception as e:
            logger.warning(f"Cache write failed for '{key}': {e}", exc_info=True)

    def __repr__(self) -> str:
        return f"CacheMiddleware(namespace={self.namespace!r}, manager={self.manager!r})"


def _can_defer(ctx: Any) -> bool:
    return bool(getattr(ctx, "can_defer", False))


__all__ = ["CacheMiddleware", "Handler"]
