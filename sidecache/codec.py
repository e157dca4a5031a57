"""
SideCache — Response codec.

Converts responses to storable ``CacheEntry`` records and back, and
encodes entries to bytes for backends that only store strings.

Only text-representable bodies are supported. A body that does not
decode in the response's encoding raises ``CacheSerializationFault``
and is never stored.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, Mapping, Union

from ._datastructures import MutableHeaders
from .core import CacheEntry
from .faults import CacheSerializationFault
from .response import Response
from .utils import now_ms

logger = logging.getLogger("sidecache.codec")


async def serialize_response(
    response: Response,
    *,
    key: str = "",
    clock: Callable[[], int] = now_ms,
) -> CacheEntry:
    """
    Build a ``CacheEntry`` from a response.

    Headers are flattened in their original order and casing, repeated
    names folded as in ``MutableHeaders.to_dict``. ``cached_at`` is taken
    from ``clock`` at this moment.
    """
    try:
        body = await response.read_text()
    except UnicodeDecodeError as e:
        raise CacheSerializationFault(key=key, operation="serialize", reason=f"body is not text: {e}")

    return CacheEntry(
        body=body,
        headers=response.headers.to_dict(),
        status=response.status,
        status_text=response.status_text,
        cached_at=clock(),
    )


def deserialize_entry(entry: CacheEntry) -> Response:
    """Rebuild a response from a stored entry, headers in stored order."""
    return Response(
        content=entry.body,
        status=entry.status,
        headers=MutableHeaders.from_dict(entry.headers).raw_items(),
        status_text=entry.status_text,
        infer_media_type=False,
    )


class EntryCodec:
    """
    JSON codec for storage records.

    Used by byte-oriented backends (e.g. Redis) to store entry and
    metadata dicts. Non-ASCII text is kept as UTF-8.
    """

    def encode(self, value: Union[CacheEntry, Mapping[str, Any]], *, key: str = "") -> bytes:
        """Encode a record to JSON bytes."""
        if isinstance(value, CacheEntry):
            value = value.to_dict()
        try:
            return json.dumps(value, default=str, ensure_ascii=False).encode("utf-8")
        except (TypeError, ValueError, OverflowError) as e:
            logger.warning(f"JSON encoding failed for key '{key}': {e}")
            raise CacheSerializationFault(key=key, operation="encode", reason=str(e))

    def decode(self, data: Union[bytes, str], *, key: str = "") -> Dict[str, Any]:
        """Decode JSON bytes/str to a record dict."""
        try:
            if isinstance(data, bytes):
                data = data.decode("utf-8")
            value = json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"JSON decoding failed for key '{key}': {e}")
            raise CacheSerializationFault(key=key, operation="decode", reason=str(e))
        if not isinstance(value, dict):
            raise CacheSerializationFault(
                key=key, operation="decode", reason=f"expected an object, got {type(value).__name__}"
            )
        return value


_default_codec = EntryCodec()


def coerce_entry(raw: Any, *, key: str = "") -> CacheEntry:
    """
    Turn whatever a backend returned into a ``CacheEntry``.

    Accepts an entry, its dict representation, or JSON bytes/str.
    """
    if isinstance(raw, CacheEntry):
        return raw
    if isinstance(raw, (bytes, str)):
        raw = _default_codec.decode(raw, key=key)
    if not isinstance(raw, Mapping):
        raise CacheSerializationFault(
            key=key, operation="deserialize", reason=f"unsupported stored type {type(raw).__name__}"
        )
    try:
        return CacheEntry.from_dict(raw)
    except (KeyError, TypeError, ValueError) as e:
        raise CacheSerializationFault(key=key, operation="deserialize", reason=f"malformed entry: {e!r}")


__all__ = [
    "serialize_response",
    "deserialize_entry",
    "EntryCodec",
    "coerce_entry",
]
