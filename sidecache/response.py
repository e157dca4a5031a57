"""
Response - HTTP response with buffered body and background tasks.

Provides:
- Text, bytes and JSON bodies, buffered in memory
- Ordered, case-preserving headers and an explicit status line
- ``clone()`` for taking an independent snapshot before the original
  is handed back to the server
- Background task scheduling (tasks run after the body has been sent)
- ASGI 3 sending
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from http import HTTPStatus
from typing import (
    Any, Awaitable, Callable, List, Mapping, Optional, Protocol, Sequence, Union
)

from ._datastructures import HeaderInput, MutableHeaders


logger = logging.getLogger("sidecache.response")


def _json_default_serializer(o):
    """Default JSON serializer for non-standard types."""
    if isinstance(o, (set, tuple)):
        return list(o)
    if hasattr(o, "isoformat"):
        return o.isoformat()
    return str(o)


def reason_phrase(status: int) -> str:
    """Standard reason phrase for a status code, or ``""`` if unknown."""
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return ""


# ============================================================================
# Background tasks
# ============================================================================

class BackgroundTask(Protocol):
    """Protocol for background tasks executed after response is sent."""

    async def run(self) -> None:
        """Execute the background task."""
        ...


@dataclass
class CallableBackgroundTask:
    """Simple callable-based background task."""
    func: Callable[[], Awaitable[None]]

    async def run(self) -> None:
        await self.func()


# ============================================================================
# Main Response Class
# ============================================================================

class Response:
    """
    HTTP response with a buffered body.

    ``content`` may be bytes, str, or a JSON-serialisable mapping/sequence.
    When ``infer_media_type`` is true and no ``content-type`` header is
    supplied, one is derived from the content. Responses rebuilt from a
    stored header set pass ``infer_media_type=False`` so nothing is added.
    """

    def __init__(
        self,
        content: Union[bytes, str, Mapping, Sequence, None] = b"",
        status: int = 200,
        headers: Optional[HeaderInput] = None,
        media_type: Optional[str] = None,
        *,
        status_text: Optional[str] = None,
        background: Optional[Union[BackgroundTask, List[BackgroundTask]]] = None,
        encoding: str = "utf-8",
        infer_media_type: bool = True,
    ):
        """
        Initialize Response.

        Args:
            content: Response body
            status: HTTP status code
            headers: Response headers (mapping or ordered pairs)
            media_type: Content-Type override
            status_text: Reason phrase (defaults to the standard phrase)
            background: Background task(s) to run after send
            encoding: Text encoding (default utf-8)
            infer_media_type: Add a content-type when none is given
        """
        self.status = status
        self.status_text = status_text if status_text is not None else reason_phrase(status)
        self.encoding = encoding
        self._headers = MutableHeaders(headers)
        self._body = self._encode_body(content)

        if media_type:
            self._headers["content-type"] = media_type
        elif infer_media_type and "content-type" not in self._headers:
            self._headers["content-type"] = self._detect_media_type(content)

        if background is None:
            self._background_tasks: List[BackgroundTask] = []
        elif isinstance(background, list):
            self._background_tasks = background
        else:
            self._background_tasks = [background]

    # ========================================================================
    # Factories
    # ========================================================================

    @classmethod
    def json(cls, content: Any, status: int = 200, **kwargs) -> "Response":
        """Create a JSON response."""
        body = json.dumps(content, default=_json_default_serializer, ensure_ascii=False, separators=(",", ":"))
        return cls(content=body, status=status, media_type="application/json", **kwargs)

    @classmethod
    def text(cls, content: str, status: int = 200, **kwargs) -> "Response":
        """Create a plain-text response."""
        return cls(content=content, status=status, media_type="text/plain; charset=utf-8", **kwargs)

    @classmethod
    def html(cls, content: str, status: int = 200, **kwargs) -> "Response":
        """Create an HTML response."""
        return cls(content=content, status=status, media_type="text/html; charset=utf-8", **kwargs)

    # ========================================================================
    # Accessors
    # ========================================================================

    @property
    def headers(self) -> MutableHeaders:
        """Get response headers."""
        return self._headers

    @property
    def body(self) -> bytes:
        """Raw body bytes."""
        return self._body

    @property
    def background_tasks(self) -> List[BackgroundTask]:
        return self._background_tasks

    async def read_text(self) -> str:
        """
        Decode the body as text.

        Raises:
            UnicodeDecodeError: if the body is not valid in ``encoding``.
        """
        return self._body.decode(self.encoding)

    def add_background(self, task: BackgroundTask) -> None:
        """Schedule a task to run after the response has been sent."""
        self._background_tasks.append(task)

    def clone(self) -> "Response":
        """
        Independent copy of status line, headers and body.

        Background tasks are not copied; they belong to the response that
        is actually sent.
        """
        return Response(
            content=self._body,
            status=self.status,
            headers=self._headers.raw_items(),
            status_text=self.status_text,
            encoding=self.encoding,
            infer_media_type=False,
        )

    def _detect_media_type(self, content: Any) -> str:
        """Auto-detect media type from content."""
        if isinstance(content, (dict, list)):
            return "application/json"
        if isinstance(content, str):
            return "text/plain; charset=utf-8"
        return "application/octet-stream"

    def _encode_body(self, content: Any) -> bytes:
        """Encode content to bytes."""
        if content is None:
            return b""
        if isinstance(content, bytes):
            return content
        if isinstance(content, (bytearray, memoryview)):
            return bytes(content)
        if isinstance(content, str):
            return content.encode(self.encoding)
        if isinstance(content, (dict, list, tuple)):
            return json.dumps(
                content, default=_json_default_serializer, ensure_ascii=False, separators=(",", ":")
            ).encode(self.encoding)
        return str(content).encode(self.encoding)

    # ========================================================================
    # ASGI Send
    # ========================================================================

    async def send_asgi(
        self,
        send: Callable[[dict], Awaitable[None]],
        *,
        content_length: bool = True,
    ) -> None:
        """
        Send response via ASGI, then run background tasks.

        ``content_length=False`` sends the headers exactly as held, for
        responses relayed from another application.

        A client disconnect while sending cancels the send but background
        tasks that were already scheduled still run.
        """
        headers = self._headers.copy()
        if content_length and "content-length" not in headers:
            headers["content-length"] = str(len(self._body))

        try:
            await send({
                "type": "http.response.start",
                "status": self.status,
                "headers": [
                    (name.encode("latin-1"), value.encode("latin-1"))
                    for name, value in headers.raw_items()
                ],
            })
            await send({
                "type": "http.response.body",
                "body": self._body,
                "more_body": False,
            })
        finally:
            if self._background_tasks:
                # Shielded so a cancelled send does not drop scheduled work
                await asyncio.shield(self._run_background_tasks())

    async def _run_background_tasks(self) -> None:
        """Execute background tasks after response sent."""
        for task in self._background_tasks:
            try:
                await task.run()
            except Exception as e:
                logger.error(f"Background task error: {e}", exc_info=True)

    def __repr__(self) -> str:
        return f"<Response {self.status} {self.status_text!r} {len(self._body)} bytes>"


__all__ = [
    "Response",
    "BackgroundTask",
    "CallableBackgroundTask",
    "reason_phrase",
]
