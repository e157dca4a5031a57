"""
Shared test fixtures and helpers for the SideCache test suite.
"""

import re
from typing import Any, Dict, List, Optional

import pytest

from sidecache.backends.memory import MemoryStorage
from sidecache.context import RequestCtx
from sidecache.request import Request
from sidecache.response import Response


# ============================================================================
# Request Helpers
# ============================================================================


def make_scope(
    method: str = "GET",
    path: str = "/",
    query_string: str = "",
    headers: Optional[List[tuple]] = None,
    scheme: str = "http",
    server: Optional[tuple] = ("127.0.0.1", 8000),
) -> dict:
    """Build a minimal ASGI HTTP scope."""
    raw_headers = []
    if headers:
        for name, value in headers:
            raw_headers.append(
                (name.encode("latin-1") if isinstance(name, str) else name,
                 value.encode("latin-1") if isinstance(value, str) else value)
            )
    return {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "path": path,
        "raw_path": path.encode("utf-8"),
        "query_string": query_string.encode("utf-8"),
        "headers": raw_headers,
        "scheme": scheme,
        "server": server,
        "client": ("127.0.0.1", 12345),
        "root_path": "",
    }


def make_receive(body: bytes = b""):
    """Create an ASGI receive callable delivering ``body`` in one message."""
    sent = False

    async def receive():
        nonlocal sent
        if not sent:
            sent = True
            return {"type": "http.request", "body": body, "more_body": False}
        return {"type": "http.disconnect"}

    return receive


class Clock:
    """Controllable epoch-millisecond clock."""

    def __init__(self, now: int = 1_700_000_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class CountingHandler:
    """Downstream handler returning a fixed response and counting calls."""

    def __init__(self, body: Any = "hello", status: int = 200, headers: Optional[Dict[str, str]] = None):
        self.body = body
        self.status = status
        self.headers = headers
        self.calls = 0

    async def __call__(self, request, ctx) -> Response:
        self.calls += 1
        if isinstance(self.body, (dict, list)):
            return Response.json(self.body, status=self.status, headers=self.headers)
        return Response.text(self.body, status=self.status, headers=self.headers)


# ============================================================================
# Fake Redis
# ============================================================================


def _redis_pattern(pattern: str) -> "re.Pattern[str]":
    """Translate a Redis glob (``*``, ``?``, backslash escapes) to a regex."""
    out = []
    chars = iter(pattern)
    for ch in chars:
        if ch == "\\":
            out.append(re.escape(next(chars, "\\")))
        elif ch == "*":
            out.append(".*")
        elif ch == "?":
            out.append(".")
        else:
            out.append(re.escape(ch))
    return re.compile("".join(out) + r"\Z", re.DOTALL)


class FakeRedis:
    """
    Dict-backed stand-in for ``redis.asyncio.Redis`` (bytes responses).

    Records expiry in milliseconds but never evicts; expiry behaviour is
    the manager's concern.
    """

    def __init__(self):
        self.data: Dict[str, bytes] = {}
        self.expiry_ms: Dict[str, int] = {}
        self.closed = False

    async def get(self, key: str) -> Optional[bytes]:
        return self.data.get(key)

    async def set(self, key: str, value: bytes, ex: Optional[int] = None, px: Optional[int] = None) -> bool:
        self.data[key] = value if isinstance(value, bytes) else str(value).encode("utf-8")
        self.expiry_ms.pop(key, None)
        if ex is not None:
            self.expiry_ms[key] = ex * 1000
        elif px is not None:
            self.expiry_ms[key] = px
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if key in self.data:
                removed += 1
            self.data.pop(key, None)
            self.expiry_ms.pop(key, None)
        return removed

    async def pttl(self, key: str) -> int:
        if key not in self.data:
            return -2
        return self.expiry_ms.get(key, -1)

    async def scan_iter(self, match: Optional[str] = None, count: Optional[int] = None):
        regex = _redis_pattern(match or "*")
        for key in list(self.data):
            if regex.match(key):
                yield key.encode("utf-8")

    async def aclose(self) -> None:
        self.closed = True


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def make_request():
    """Factory building a ``Request`` from scope arguments."""
    def _make(method: str = "GET", path: str = "/", query_string: str = "", **kwargs) -> Request:
        return Request(make_scope(method, path, query_string, **kwargs), make_receive())
    return _make


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def storage():
    """Fresh in-memory storage."""
    return MemoryStorage()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def inline_ctx():
    """Context for a host that cannot run work after the response."""
    return RequestCtx()


@pytest.fixture
def deferring_ctx():
    """Context for a host that runs registered work after sending."""
    return RequestCtx.deferring()


@pytest.fixture
def counting_handler():
    """``CountingHandler`` class, for building downstream handlers."""
    return CountingHandler


@pytest.fixture
def asgi_scope():
    """Factory for raw ASGI HTTP scopes."""
    return make_scope
