"""
Core data structures for SideCache request/response handling.

Provides:
- Headers: Case-insensitive, read-only view over raw ASGI headers
- MutableHeaders: Ordered, case-preserving response headers, repeats kept
- URL: URL building from request parts
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import (
    Dict, Iterable, Iterator, List, Mapping, MutableMapping, Optional, Tuple, Union
)
from urllib.parse import urlunparse


# ============================================================================
# Headers
# ============================================================================

@dataclass
class Headers:
    """
    Case-insensitive header access with raw preservation.

    Normalizes header names while preserving original casing.
    """

    raw: List[Tuple[bytes, bytes]] = field(default_factory=list)
    _index: Dict[str, List[Tuple[bytes, bytes]]] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self):
        """Build case-insensitive index."""
        self._index = {}
        for name, value in self.raw:
            key = name.decode("latin-1").lower()
            if key not in self._index:
                self._index[key] = []
            self._index[key].append((name, value))

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Get first value for header (case-insensitive)."""
        pairs = self._index.get(name.lower())
        if pairs:
            return pairs[0][1].decode("latin-1")
        return default

    def has(self, name: str) -> bool:
        """Check if header exists."""
        return name.lower() in self._index

    def __contains__(self, name: str) -> bool:
        return self.has(name)

    def __repr__(self) -> str:
        return f"Headers({self.raw!r})"


HeaderInput = Union[
    Mapping[str, str],
    Iterable[Tuple[str, str]],
    Iterable[Tuple[bytes, bytes]],
]


class MutableHeaders(MutableMapping[str, str]):
    """
    Response header list.

    Lookups are case-insensitive and return repeated values comma-joined.
    Pairs are kept exactly as added, repeats included, so a header set
    re-emits unchanged. Setting a name replaces all of its values in
    place of the first one, keeping the first spelling.
    """

    __slots__ = ("_items",)

    def __init__(self, headers: Optional[HeaderInput] = None):
        self._items: List[Tuple[str, str]] = []
        if headers is None:
            return
        pairs = headers.items() if isinstance(headers, Mapping) else headers
        for name, value in pairs:
            if isinstance(name, bytes):
                name = name.decode("latin-1")
            if isinstance(value, bytes):
                value = value.decode("latin-1")
            self.add(name, value)

    @classmethod
    def from_dict(cls, headers: Mapping[str, str]) -> "MutableHeaders":
        """Rebuild a header list from ``to_dict()`` output."""
        result = cls()
        for name, value in headers.items():
            if name.lower() == "set-cookie":
                for cookie in value.split("\n"):
                    result.add(name, cookie)
            else:
                result.add(name, value)
        return result

    def get_list(self, name: str) -> List[str]:
        key = name.lower()
        return [v for n, v in self._items if n.lower() == key]

    def __getitem__(self, name: str) -> str:
        values = self.get_list(name)
        if not values:
            raise KeyError(name)
        return ", ".join(values)

    def __setitem__(self, name: str, value: str) -> None:
        key = name.lower()
        result: List[Tuple[str, str]] = []
        replaced = False
        for n, v in self._items:
            if n.lower() != key:
                result.append((n, v))
            elif not replaced:
                result.append((n, str(value)))
                replaced = True
        if not replaced:
            result.append((name, str(value)))
        self._items = result

    def __delitem__(self, name: str) -> None:
        key = name.lower()
        kept = [(n, v) for n, v in self._items if n.lower() != key]
        if len(kept) == len(self._items):
            raise KeyError(name)
        self._items = kept

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, str):
            return False
        key = name.lower()
        return any(n.lower() == key for n, _ in self._items)

    def __iter__(self) -> Iterator[str]:
        seen = set()
        for n, _ in self._items:
            if n.lower() not in seen:
                seen.add(n.lower())
                yield n

    def __len__(self) -> int:
        return len({n.lower() for n, _ in self._items})

    def __eq__(self, other: object) -> bool:
        if isinstance(other, MutableHeaders):
            return self._items == other._items
        if isinstance(other, Mapping):
            return self._items == list(other.items())
        return NotImplemented

    def __repr__(self) -> str:
        return f"MutableHeaders({self._items})"

    def add(self, name: str, value: str) -> None:
        """Append a value, keeping any existing values for ``name``."""
        self._items.append((name, str(value)))

    def raw_items(self) -> List[Tuple[str, str]]:
        """Headers as ``(name, value)`` pairs in insertion order, repeats included."""
        return list(self._items)

    def to_dict(self) -> Dict[str, str]:
        """
        Ordered plain dict, first spelling of each name.

        Repeated values are comma-joined, except ``Set-Cookie`` which
        cannot be folded that way and is newline-joined instead.
        """
        folded: Dict[str, Tuple[str, List[str]]] = {}
        for n, v in self._items:
            folded.setdefault(n.lower(), (n, []))[1].append(v)
        return {
            original: ("\n" if key == "set-cookie" else ", ").join(values)
            for key, (original, values) in folded.items()
        }

    def copy(self) -> "MutableHeaders":
        clone = MutableHeaders()
        clone._items = list(self._items)
        return clone


# ============================================================================
# URL
# ============================================================================

@dataclass
class URL:
    """
    URL assembled from request components.

    ``str()`` gives the full URL; default ports are omitted.
    """

    scheme: str
    host: str
    port: Optional[int] = None
    path: str = "/"
    query: str = ""
    fragment: str = ""

    @property
    def netloc(self) -> str:
        """Build netloc string."""
        netloc = self.host
        if self.port:
            # Only include port if non-standard
            if not ((self.scheme == "http" and self.port == 80) or
                    (self.scheme == "https" and self.port == 443)):
                netloc += f":{self.port}"
        return netloc

    def __str__(self) -> str:
        """Build full URL string."""
        return urlunparse((
            self.scheme,
            self.netloc,
            self.path,
            "",  # params (unused)
            self.query,
            self.fragment,
        ))
