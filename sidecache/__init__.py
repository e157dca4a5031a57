"""
SideCache — Cache-aside HTTP response caching for async Python services.

Stores handler responses keyed by request identity and replays them on
later identical requests, with:
- **Pluggable storage**: in-process memory or Redis, or any object with
  ``get_item``/``set_item``/``remove_item``/``get_keys``/``clear``
- **Lazy TTL expiry** computed from each entry's write time
- **Admission policy**: status codes, ``Vary: *`` and method gating
- **Deferred writes**: persistence runs after the response is sent when
  the host supports it
- **Fail-open**: storage errors are logged, never surfaced to clients

Usage::

    from sidecache import CacheASGIMiddleware, CacheMiddleware, RedisStorage

    cache = CacheMiddleware(
        "api",
        storage=RedisStorage("redis://localhost:6379/0"),
        ttl_seconds=300,
    )
    app = CacheASGIMiddleware(app, cache)
"""

__version__ = "0.1.0"

from .admission import AdmissionPolicy
from .asgi import CacheASGIMiddleware
from .backends import MemoryStorage, RedisStorage
from .codec import EntryCodec, deserialize_entry, serialize_response
from .config import CacheOptions, build_cache_options, create_storage, load_cache_options
from .context import RequestCtx
from .core import CacheEntry, CacheMetadata, StorageBackend, expires_at, is_expired
from .faults import (
    CacheBackendFault,
    CacheConfigFault,
    CacheFault,
    CacheSerializationFault,
    Fault,
    FaultDomain,
    Severity,
)
from .key_builder import RequestKeyBuilder
from .manager import CacheManager
from .middleware import CacheMiddleware
from .request import Request
from .response import Response

__all__ = [
    "__version__",
    # Core
    "CacheEntry",
    "CacheMetadata",
    "StorageBackend",
    "expires_at",
    "is_expired",
    # Components
    "AdmissionPolicy",
    "CacheManager",
    "CacheMiddleware",
    "CacheASGIMiddleware",
    "EntryCodec",
    "RequestKeyBuilder",
    "serialize_response",
    "deserialize_entry",
    # Backends
    "MemoryStorage",
    "RedisStorage",
    # Config
    "CacheOptions",
    "build_cache_options",
    "load_cache_options",
    "create_storage",
    # HTTP
    "Request",
    "Response",
    "RequestCtx",
    # Faults
    "Fault",
    "FaultDomain",
    "Severity",
    "CacheFault",
    "CacheBackendFault",
    "CacheSerializationFault",
    "CacheConfigFault",
]
