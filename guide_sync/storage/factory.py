"""Factory helpers for choosing storage backends at startup."""

from __future__ import annotations

from typing import Tuple

try:
    import redis  # type: ignore
except ImportError:  # pragma: no cover - optional dependency
    redis = None

from guide_sync import config
from guide_sync.storage.base import KeyValueStore, LocalStore
from guide_sync.storage.memory import InMemoryKeyValueStore, InMemoryLocalStore
from guide_sync.storage.redis import RedisKeyValueStore
from guide_sync.storage.sql import SqlKeyValueStore, SqlLocalStore, build_engine
from utils.logging_utils import get_tagged_logger, mask_url

logger = get_tagged_logger(__name__, tag="storage/factory")


DEFAULT_BACKEND = "sqlite"


def build_stores(settings: config.Settings | None = None) -> Tuple[LocalStore, KeyValueStore]:
    """Instantiate the configured record store and key/value store."""
    settings = settings or config.settings
    backend = (settings.store_backend or DEFAULT_BACKEND).lower()

    if backend == "memory":
        logger.info("Using in-memory stores (nothing survives a restart)")
        local_store: LocalStore = InMemoryLocalStore()
        kv_store: KeyValueStore = InMemoryKeyValueStore()
    elif backend == "sqlite":
        db_url = settings.store_database_url
        if not db_url:
            raise ValueError("store_database_url must be set for the sqlite backend")
        engine = build_engine(db_url)
        logger.info("Using SQL stores", extra={"db_url": mask_url(db_url)})
        local_store = SqlLocalStore(engine)
        kv_store = SqlKeyValueStore(engine)
    else:
        raise ValueError(f"Unknown store backend '{backend}'")

    redis_kv = _maybe_redis_kv(settings)
    if redis_kv is not None:
        kv_store = redis_kv
    return local_store, kv_store


def _maybe_redis_kv(settings: config.Settings) -> KeyValueStore | None:
    """Return a Redis key/value store if configured and reachable."""
    logger.debug(
        f"Key/value store: redis_url='{settings.kv_redis_url or 'None'}', "
        f"redis package present: {'yes' if redis else 'no'}"
    )
    if not settings.kv_redis_url or not redis:
        return None
    try:
        client = redis.Redis.from_url(settings.kv_redis_url)
        client.ping()
    except Exception as exc:  # pragma: no cover - defensive
        logger.warning("Falling back to local key/value store (Redis unavailable)", extra={"error": str(exc)})
        return None
    logger.info("Using RedisKeyValueStore", extra={"redis_url": mask_url(settings.kv_redis_url)})
    return RedisKeyValueStore(client, prefix=settings.kv_prefix)
