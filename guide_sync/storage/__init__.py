"""Local persistence backends."""

from .base import KeyValueStore, LocalStore, estimate_size_bytes
from .factory import build_stores
from .memory import InMemoryKeyValueStore, InMemoryLocalStore
from .redis import RedisKeyValueStore
from .sql import SqlKeyValueStore, SqlLocalStore

__all__ = [
    "KeyValueStore",
    "LocalStore",
    "estimate_size_bytes",
    "build_stores",
    "InMemoryKeyValueStore",
    "InMemoryLocalStore",
    "RedisKeyValueStore",
    "SqlKeyValueStore",
    "SqlLocalStore",
]
