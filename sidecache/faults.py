"""
SideCache faults - Core types and cache fault taxonomy.

Defines:
- Severity levels
- FaultDomain (explicit fault domains)
- Fault base class (structured fault objects)
- Cache faults raised or logged by the caching layer

Faults in this package never reach the client. Backend and serialization
faults are caught where they occur and logged; configuration faults are
raised while a middleware is being constructed.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional


# ============================================================================
# Severity & Domain
# ============================================================================

class Severity(str, Enum):
    """
    Fault severity levels.

    Determines the logging level used when a fault is recorded.
    """
    INFO = "info"       # Informational, no action needed
    WARN = "warn"       # Warning, should be reviewed
    ERROR = "error"     # Error, immediate attention
    FATAL = "fatal"     # Fatal, unrecoverable, abort


class FaultDomain:
    """
    Fault domains (taxonomy).

    Identifies the functional area where a fault occurred.
    """

    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.value = name  # For compatibility with Enum consumers
        self.description = description

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"FaultDomain(name='{self.name}')"

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, FaultDomain):
            return self.name == other.name
        return str(self) == str(other)

    def __hash__(self) -> int:
        return hash(self.name)


# Standard Domains
FaultDomain.CONFIG = FaultDomain("config", "Configuration errors")
FaultDomain.CACHE = FaultDomain("cache", "Cache subsystem faults")


DOMAIN_DEFAULTS = {
    FaultDomain.CONFIG: {"severity": Severity.FATAL, "retryable": False},
    FaultDomain.CACHE: {"severity": Severity.WARN, "retryable": True},
}


# ============================================================================
# Fault - Base Class
# ============================================================================

class Fault(Exception):
    """
    Base fault class - structured, typed fault object.

    A fault carries:
    - Stable machine-readable code
    - Human-readable message
    - Severity level
    - Domain classification
    - Retry semantics
    - Additional metadata

    Example:
        ```python
        raise Fault(
            code="CACHE_CONFIG_INVALID",
            message="ttl_seconds must not be negative",
            domain=FaultDomain.CONFIG,
        )
        ```
    """

    def __init__(
        self,
        code: str | None = None,
        message: str | None = None,
        *,
        domain: FaultDomain | None = None,
        severity: Optional[Severity] = None,
        retryable: Optional[bool] = None,
        metadata: Optional[dict[str, Any]] = None,
    ):
        # Fallback to class attributes if not provided
        self.code = code if code is not None else getattr(self, "code", None)
        self.message = message if message is not None else getattr(self, "message", None)
        self.domain = domain if domain is not None else getattr(self, "domain", None)

        if self.code is None or self.message is None or self.domain is None:
            raise TypeError(f"{self.__class__.__name__} missing required code, message, or domain")

        super().__init__(self.message)

        defaults = DOMAIN_DEFAULTS.get(self.domain, {"severity": Severity.ERROR, "retryable": False})
        self.severity = severity or defaults["severity"]
        self.retryable = retryable if retryable is not None else defaults["retryable"]
        self.metadata = metadata or {}

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"Fault(code={self.code!r}, domain={self.domain.value}, "
            f"severity={self.severity.value})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for structured logging."""
        return {
            "code": self.code,
            "message": self.message,
            "domain": self.domain.name,
            "severity": self.severity.value,
            "retryable": self.retryable,
            "metadata": self.metadata,
        }


# ============================================================================
# Cache Faults
# ============================================================================

class CacheFault(Fault):
    """Base class for all cache faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        domain: FaultDomain = FaultDomain.CACHE,
        severity: Severity = Severity.WARN,
        retryable: bool = True,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=domain,
            severity=severity,
            retryable=retryable,
            metadata=metadata,
        )


class CacheBackendFault(CacheFault):
    """Storage backend failed during an operation."""

    def __init__(self, backend: str, operation: str, reason: str):
        super().__init__(
            code="CACHE_BACKEND_ERROR",
            message=f"Cache backend '{backend}' error during {operation}: {reason}",
            severity=Severity.WARN,
            retryable=True,
            metadata={"backend": backend, "operation": operation, "reason": reason},
        )


class CacheSerializationFault(CacheFault):
    """A response or stored entry could not be converted."""

    def __init__(self, key: str, operation: str, reason: str):
        super().__init__(
            code="CACHE_SERIALIZATION_FAILED",
            message=f"Cache {operation} failed for key '{key}': {reason}",
            severity=Severity.WARN,
            retryable=False,
            metadata={"key": key, "operation": operation, "reason": reason},
        )


class CacheConfigFault(CacheFault):
    """Cache configuration error."""

    def __init__(self, reason: str):
        super().__init__(
            code="CACHE_CONFIG_INVALID",
            message=f"Invalid cache configuration: {reason}",
            domain=FaultDomain.CONFIG,
            severity=Severity.FATAL,
            retryable=False,
            metadata={"reason": reason},
        )


__all__ = [
    "Severity",
    "FaultDomain",
    "Fault",
    "CacheFault",
    "CacheBackendFault",
    "CacheSerializationFault",
    "CacheConfigFault",
]
