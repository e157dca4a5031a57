"""
SideCache Backends — Storage implementations.
"""

from .memory import MemoryStorage
from .redis import RedisStorage

__all__ = [
    "MemoryStorage",
    "RedisStorage",
]
