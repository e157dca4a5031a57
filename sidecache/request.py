"""
Request - ASGI request descriptor.

Wraps an ASGI scope and exposes the parts of a request that cache key
derivation and admission need: method, path, query string, headers and
the full URL. Body streaming is left to the host framework.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from ._datastructures import Headers, URL


class Request:
    """
    Request descriptor built from an ASGI scope.

    ``state`` is a free-form dict that hosts and ``namespace``/``key_fn``
    callbacks may use to pass per-request data (e.g. a resolved tenant).
    """

    __slots__ = ("scope", "_receive", "state", "_headers", "_url")

    def __init__(
        self,
        scope: Mapping[str, Any],
        receive: Optional[Callable[..., Awaitable[dict]]] = None,
    ):
        self.scope = scope
        self._receive = receive
        self.state: Dict[str, Any] = {}
        self._headers: Optional[Headers] = None
        self._url: Optional[URL] = None

    # ========================================================================
    # Basic Properties
    # ========================================================================

    @property
    def method(self) -> str:
        """HTTP method, as sent by the client."""
        return self.scope.get("method", "GET")

    @property
    def path(self) -> str:
        """Request path (decoded)."""
        return self.scope.get("path", "/")

    @property
    def query_string(self) -> str:
        """Raw query string."""
        return self.scope.get("query_string", b"").decode("utf-8")

    @property
    def receive(self) -> Optional[Callable[..., Awaitable[dict]]]:
        """ASGI receive callable, if the request was built by a server."""
        return self._receive

    # ========================================================================
    # Headers
    # ========================================================================

    @property
    def headers(self) -> Headers:
        """Get parsed headers."""
        if self._headers is None:
            self._headers = Headers(raw=list(self.scope.get("headers", [])))
        return self._headers

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Get single header (case-insensitive)."""
        return self.headers.get(name, default)

    # ========================================================================
    # URL Building
    # ========================================================================

    def url(self) -> URL:
        """Get full request URL, including the query string."""
        if self._url is None:
            scheme = self.scope.get("scheme", "http")
            host = self.header("host")
            port = None
            if host is None:
                server = self.scope.get("server")
                if server:
                    host, port = server[0], server[1]
                else:
                    host = "localhost"
            elif ":" in host:
                # Parse port from host if present
                host_part, port_part = host.rsplit(":", 1)
                try:
                    port = int(port_part)
                    host = host_part
                except ValueError:
                    port = None

            self._url = URL(
                scheme=scheme,
                host=host,
                port=port,
                path=self.path,
                query=self.query_string,
            )
        return self._url

    def __repr__(self) -> str:
        return f"<Request {self.method} {self.path}>"
