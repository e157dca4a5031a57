"""
Request context passed alongside the request through the middleware chain.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, TYPE_CHECKING

from .response import BackgroundTask, CallableBackgroundTask

if TYPE_CHECKING:
    from .request import Request


@dataclass
class RequestCtx:
    """
    Per-request context.

    Attributes:
        request: The HTTP request
        state: Additional state dictionary
        deferred: Tasks to run after the response has been sent. ``None``
            means the host cannot run work beyond the request's lifetime,
            so anything that must complete has to be awaited inline.
    """

    request: Optional["Request"] = None
    state: Dict[str, Any] = field(default_factory=dict)
    deferred: Optional[List[BackgroundTask]] = None

    @classmethod
    def deferring(cls, request: Optional["Request"] = None) -> "RequestCtx":
        """Context for hosts that run tasks after sending the response."""
        return cls(request=request, deferred=[])

    @property
    def can_defer(self) -> bool:
        """Whether ``wait_until`` is available."""
        return self.deferred is not None

    def wait_until(self, func: Callable[[], Awaitable[None]]) -> None:
        """
        Register work to run once the response has been sent.

        Raises:
            RuntimeError: if the host offers no after-send facility.
        """
        if self.deferred is None:
            raise RuntimeError("This request context cannot defer work past the response")
        self.deferred.append(CallableBackgroundTask(func))

    async def run_deferred(self) -> None:
        """Run and drain registered tasks (for hosts without a send phase)."""
        if self.deferred is None:
            return
        tasks, self.deferred = self.deferred, []
        for task in tasks:
            await task.run()
