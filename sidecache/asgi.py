"""
ASGI adapter - Puts a ``CacheMiddleware`` in front of any ASGI 3 app.

The wrapped application's output is buffered into a ``Response`` so it
can be inspected and stored. Cache writes registered during the request
run as background tasks once the response body has been sent.

Usage::

    app = CacheASGIMiddleware(app, CacheMiddleware("api", ttl_seconds=60))
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List, MutableMapping, Optional, Tuple, Union

from .config import CacheOptions
from .context import RequestCtx
from .middleware import CacheMiddleware
from .request import Request
from .response import Response

Scope = MutableMapping[str, Any]
Receive = Callable[[], Awaitable[Dict[str, Any]]]
Send = Callable[[Dict[str, Any]], Awaitable[None]]
ASGIApp = Callable[[Scope, Receive, Send], Awaitable[None]]


class CacheASGIMiddleware:
    """
    ASGI middleware serving cached responses for HTTP requests.

    Non-HTTP scopes (``lifespan``, ``websocket``) are passed through
    untouched. Streaming responses from the wrapped app are fully
    buffered before being sent.
    """

    __slots__ = ("app", "cache", "logger")

    def __init__(self, app: ASGIApp, cache: Union[CacheMiddleware, CacheOptions]):
        self.app = app
        self.cache = cache if isinstance(cache, CacheMiddleware) else CacheMiddleware.from_options(cache)
        self.logger = logging.getLogger("sidecache.asgi")

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive)
        ctx = RequestCtx.deferring(request)

        response = await self.cache(request, ctx, self._downstream)

        for task in ctx.deferred or []:
            response.add_background(task)
        await response.send_asgi(send, content_length=False)

    async def _downstream(self, request: Request, ctx: RequestCtx) -> Response:
        """Run the wrapped app and capture what it sends."""
        status: Optional[int] = None
        headers: List[Tuple[bytes, bytes]] = []
        chunks: List[bytes] = []

        async def capture(message: Dict[str, Any]) -> None:
            nonlocal status
            if message["type"] == "http.response.start":
                status = message["status"]
                headers.extend(message.get("headers", []))
            elif message["type"] == "http.response.body":
                chunks.append(message.get("body", b""))

        await self.app(request.scope, request.receive, capture)

        if status is None:
            raise RuntimeError("ASGI app returned without starting a response")

        self.logger.debug(f"Downstream {request.method} {request.path} -> {status}")
        return Response(
            content=b"".join(chunks),
            status=status,
            headers=headers,
            infer_media_type=False,
        )


__all__ = ["CacheASGIMiddleware"]
