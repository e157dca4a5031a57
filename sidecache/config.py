"""
SideCache — Configuration.

``CacheOptions`` is the middleware configuration surface. Options can be
built directly, from a plain dict, or from ``SIDECACHE_*`` environment
variables (optionally seeded from a ``.env`` file).

Environment variables::

    SIDECACHE_NAMESPACE=api
    SIDECACHE_TTL_SECONDS=300
    SIDECACHE_CACHEABLE_STATUS_CODES=200,203,404
    SIDECACHE_BYPASS_METHOD_CHECK=false
    SIDECACHE_BACKEND=redis
    SIDECACHE_REDIS_URL=redis://localhost:6379/0
    SIDECACHE_KEY_PREFIX=sc:

Invalid values raise ``CacheConfigFault`` when the options are built,
never while serving a request.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, Union

from dotenv import dotenv_values

from .admission import DEFAULT_CACHEABLE_STATUS_CODES
from .core import StorageBackend
from .faults import CacheConfigFault
from .key_builder import KeyFunction, StringProducer

logger = logging.getLogger("sidecache.config")

BACKENDS = ("memory", "redis")


@dataclass
class CacheOptions:
    """
    Cache middleware configuration.

    ``storage=None`` gives each middleware its own in-memory store.
    ``ttl_seconds`` of ``None`` or ``0`` means entries never expire.
    """
    namespace: StringProducer
    ttl_seconds: Optional[int] = None
    cacheable_status_codes: FrozenSet[int] = DEFAULT_CACHEABLE_STATUS_CODES
    key_fn: Optional[KeyFunction] = None
    bypass_method_check: bool = False
    storage: Optional[StorageBackend] = field(default=None, repr=False)

    def validate(self) -> None:
        """
        Check option values.

        Raises:
            CacheConfigFault: on the first invalid value found.
        """
        if not callable(self.namespace) and not isinstance(self.namespace, str):
            raise CacheConfigFault(
                f"namespace must be a string or callable, got {type(self.namespace).__name__}"
            )
        if isinstance(self.namespace, str) and not self.namespace:
            raise CacheConfigFault("namespace must not be empty")
        if self.ttl_seconds is not None:
            if isinstance(self.ttl_seconds, bool) or not isinstance(self.ttl_seconds, int):
                raise CacheConfigFault(f"ttl_seconds must be an integer, got {self.ttl_seconds!r}")
            if self.ttl_seconds < 0:
                raise CacheConfigFault(f"ttl_seconds must not be negative, got {self.ttl_seconds}")
        self.cacheable_status_codes = _status_codes(self.cacheable_status_codes)
        if self.key_fn is not None and not callable(self.key_fn):
            raise CacheConfigFault("key_fn must be callable")

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for diagnostics."""
        return {
            "namespace": self.namespace if isinstance(self.namespace, str) else "<callable>",
            "ttl_seconds": self.ttl_seconds,
            "cacheable_status_codes": sorted(self.cacheable_status_codes),
            "key_fn": None if self.key_fn is None else "<callable>",
            "bypass_method_check": self.bypass_method_check,
            "storage": None if self.storage is None else getattr(self.storage, "name", type(self.storage).__name__),
        }


# ============================================================================
# Builders
# ============================================================================

def build_cache_options(config: Mapping[str, Any]) -> CacheOptions:
    """
    Build options from a plain dict.

    Recognised keys: ``namespace``, ``ttl_seconds``,
    ``cacheable_status_codes``, ``bypass_method_check``, ``key_fn``,
    ``storage`` (an instance), or ``backend`` with ``redis_url`` and
    ``key_prefix`` to have one created.
    """
    if "namespace" not in config:
        raise CacheConfigFault("namespace is required")

    storage = config.get("storage")
    backend = config.get("backend")
    if storage is None and backend:
        storage = create_storage(
            backend,
            url=config.get("redis_url"),
            key_prefix=config.get("key_prefix"),
        )

    codes = config.get("cacheable_status_codes")
    options = CacheOptions(
        namespace=config["namespace"],
        ttl_seconds=_int_or_none(config.get("ttl_seconds")),
        cacheable_status_codes=_status_codes(
            DEFAULT_CACHEABLE_STATUS_CODES if codes is None else codes
        ),
        key_fn=config.get("key_fn"),
        bypass_method_check=_parse_bool(config.get("bypass_method_check", False)),
        storage=storage,
    )
    options.validate()
    return options


def load_cache_options(
    env_prefix: str = "SIDECACHE_",
    env_file: Optional[Union[str, Path]] = None,
) -> CacheOptions:
    """
    Build options from environment variables.

    Values from ``env_file`` (a dotenv file) are used as defaults; the
    process environment always wins.
    """
    values: Dict[str, Optional[str]] = {}
    if env_file is not None:
        path = Path(env_file)
        if path.exists():
            values.update(dotenv_values(path))
            logger.debug(f"Loaded cache settings from {path}")
        else:
            logger.warning(f"Env file not found: {path}")
    values.update(os.environ)

    config: Dict[str, Any] = {}
    for key, value in values.items():
        if key.startswith(env_prefix) and value is not None:
            config[key[len(env_prefix):].lower()] = value

    if "cacheable_status_codes" in config:
        config["cacheable_status_codes"] = [
            part for part in config["cacheable_status_codes"].split(",") if part.strip()
        ]
    return build_cache_options(config)


def create_storage(backend: str, **kwargs: Any) -> StorageBackend:
    """
    Factory: create a storage backend by name.

    Args:
        backend: ``"memory"`` or ``"redis"``
        **kwargs: Backend options (``url``, ``key_prefix`` for Redis);
            ``None`` values are ignored

    Raises:
        CacheConfigFault: for an unknown backend name.
    """
    name = str(backend).strip().lower()
    options = {k: v for k, v in kwargs.items() if v is not None}

    if name == "memory":
        from .backends.memory import MemoryStorage
        return MemoryStorage()

    elif name == "redis":
        from .backends.redis import RedisStorage
        return RedisStorage(**options)

    raise CacheConfigFault(f"Unknown cache backend: {backend!r} (expected one of {', '.join(BACKENDS)})")


# ============================================================================
# Value parsing
# ============================================================================

def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("true", "yes", "1", "on"):
        return True
    if text in ("false", "no", "0", "off", ""):
        return False
    raise CacheConfigFault(f"Expected a boolean, got {value!r}")


def _int_or_none(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise CacheConfigFault(f"Expected an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise CacheConfigFault(f"Expected an integer, got {value!r}")


def _status_codes(codes: Union[str, Iterable[Any]]) -> FrozenSet[int]:
    if isinstance(codes, str):
        codes = [part for part in codes.split(",") if part.strip()]
    result = set()
    for code in codes:
        status = _int_or_none(code.strip() if isinstance(code, str) else code)
        if status is None or not 100 <= status <= 599:
            raise CacheConfigFault(f"Invalid HTTP status code: {code!r}")
        result.add(status)
    return frozenset(result)


__all__ = [
    "CacheOptions",
    "build_cache_options",
    "load_cache_options",
    "create_storage",
]
