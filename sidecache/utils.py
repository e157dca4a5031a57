"""
Small helpers shared across the caching layer.
"""

from __future__ import annotations

import inspect
import time
from typing import Any, Awaitable, TypeVar, Union

T = TypeVar("T")


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


async def maybe_await(value: Union[T, Awaitable[T]]) -> T:
    """Await ``value`` if it is awaitable, otherwise return it unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value


def qualified_name(obj: Any) -> str:
    """Readable name of an object's class, for diagnostics."""
    cls = obj if isinstance(obj, type) else type(obj)
    return getattr(cls, "__name__", repr(cls))
