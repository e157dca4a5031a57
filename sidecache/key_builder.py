"""
SideCache — Cache key derivation.

Pattern: ``{namespace}:{key}`` where ``key`` defaults to
``{METHOD}:{full URL including query string}``.

No escaping is applied to the ``:`` separator. Namespaces and custom
keys must be chosen so that distinct requests do not collide, and both
must be deterministic for logically identical requests, otherwise the
cache silently fragments.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Optional, Union

from .request import Request
from .utils import maybe_await

StringProducer = Union[str, Callable[[Request], Union[str, Awaitable[str]]]]
KeyFunction = Callable[[Request], Union[str, Awaitable[str]]]


async def resolve_string(producer: StringProducer, request: Request) -> str:
    """
    Resolve a namespace/key producer for ``request``.

    ``producer`` may be a plain string, a function returning a string, or
    a coroutine function; all are resolved through one await.
    """
    if isinstance(producer, str):
        return producer
    return str(await maybe_await(producer(request)))


class RequestKeyBuilder:
    """
    Builds cache keys for requests.

    Example: ``api:GET:http://example.com/users?page=2``
    """

    __slots__ = ("_key_fn",)

    def __init__(self, key_fn: Optional[KeyFunction] = None):
        self._key_fn = key_fn

    async def derive(self, request: Request) -> str:
        """Key body for ``request`` (without the namespace)."""
        if self._key_fn is not None:
            return await resolve_string(self._key_fn, request)
        return f"{request.method}:{request.url()}"

    @staticmethod
    def build(namespace: str, key: str) -> str:
        """Qualified cache key."""
        return f"{namespace}:{key}"

    async def for_request(self, namespace: StringProducer, request: Request) -> str:
        """Resolve ``namespace`` and derive the full key for ``request``."""
        name = await resolve_string(namespace, request)
        return self.build(name, await self.derive(request))
