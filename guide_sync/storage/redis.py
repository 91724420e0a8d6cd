"""Redis-backed key/value store for feed entries and cooldown markers."""

from typing import List, Optional

from guide_sync.errors import StorageWriteError
from guide_sync.storage.base import KeyValueStore
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="storage/redis_kv")


class RedisKeyValueStore(KeyValueStore):
    """
    Prefix-scoped string values in Redis.

    Values never expire on the Redis side: feed freshness is judged by the
    timestamp inside each entry, and a stale entry is still worth serving when
    the network is down.
    """

    def __init__(self, client, prefix: str = "guide:") -> None:
        logger.debug("Initializing RedisKeyValueStore")
        self.client = client
        self.prefix = prefix

    def _key(self, key: str) -> str:
        """Return the Redis key for a logical key."""
        return f"{self.prefix}{key}"

    def get(self, key: str) -> Optional[str]:
        try:
            raw = self.client.get(self._key(key))
        except Exception as exc:  # pragma: no cover - defensive
            logger.error("Failed to read key from Redis: %s", exc)
            return None
        if raw is None:
            return None
        return raw.decode("utf-8") if isinstance(raw, bytes) else str(raw)

    def set(self, key: str, value: str) -> None:
        try:
            self.client.set(self._key(key), value.encode("utf-8"))
        except Exception as exc:
            raise StorageWriteError(f"Failed to write '{key}' to Redis: {exc}", key=key) from exc

    def delete(self, key: str) -> None:
        try:
            self.client.delete(self._key(key))
        except Exception as exc:  # pragma: no cover - defensive
            logger.error("Failed to delete key from Redis: %s", exc)

    def keys(self, prefix: str = "") -> List[str]:
        out: List[str] = []
        try:
            for raw in self.client.scan_iter(f"{self.prefix}{prefix}*"):
                name = raw.decode("utf-8") if isinstance(raw, bytes) else str(raw)
                out.append(name[len(self.prefix):])
        except Exception as exc:  # pragma: no cover - defensive
            logger.error("Failed to scan keys in Redis: %s", exc)
        return out
