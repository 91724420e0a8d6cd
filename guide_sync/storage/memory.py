"""In-memory stores, intended for development and tests."""

import copy
import threading
import time
from typing import Any, Callable, List, Optional

from guide_sync.app_types import CacheRecord, StorageQuota, StorageSize
from guide_sync.errors import StorageWriteError
from guide_sync.storage.base import KeyValueStore, LocalStore, estimate_size_bytes, total_size_of

from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="storage/in_memory")


class InMemoryLocalStore(LocalStore):
    """
    Thread-safe record store kept in a dict.

    Payloads are deep-copied on the way in and out so a caller mutating what it
    received can never change what is stored. `max_bytes` simulates a device
    quota: a write that would push the estimated total past it is rejected.
    """

    def __init__(self, max_bytes: int | None = None, clock: Callable[[], float] = time.time) -> None:
        logger.debug("Initializing InMemoryLocalStore")
        self.max_bytes = max_bytes
        self._clock = clock
        self._records: dict[str, CacheRecord] = {}
        self._lock = threading.Lock()

    def put(self, key: str, payload: Any) -> CacheRecord:
        record = CacheRecord(key=key, payload=copy.deepcopy(payload), saved_at=self._clock())
        with self._lock:
            if self.max_bytes is not None:
                others = [r for k, r in self._records.items() if k != key]
                projected = total_size_of(others).bytes + estimate_size_bytes(record)
                if projected > self.max_bytes:
                    raise StorageWriteError(
                        f"Storage quota exceeded writing '{key}'",
                        key=key,
                        details={"projected_bytes": projected, "max_bytes": self.max_bytes},
                    )
            self._records[key] = record
        return copy.deepcopy(record)

    def get(self, key: str) -> Optional[Any]:
        record = self.get_record(key)
        return record.payload if record else None

    def get_record(self, key: str) -> Optional[CacheRecord]:
        with self._lock:
            record = self._records.get(key)
            return copy.deepcopy(record) if record else None

    def get_all(self) -> List[CacheRecord]:
        with self._lock:
            return [copy.deepcopy(r) for r in self._records.values()]

    def delete(self, key: str) -> None:
        with self._lock:
            self._records.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def estimate_size_bytes(self, record: CacheRecord) -> int:
        return estimate_size_bytes(record)

    def total_size(self) -> StorageSize:
        return total_size_of(self.get_all())

    def storage_quota(self) -> Optional[StorageQuota]:
        if self.max_bytes is None:
            return None
        return StorageQuota(used=self.total_size().bytes, quota=self.max_bytes)

    def is_available_offline(self, key: str) -> bool:
        with self._lock:
            return key in self._records


class InMemoryKeyValueStore(KeyValueStore):
    """Thread-safe dict of strings; `fail_writes` lets tests simulate a full disk."""

    def __init__(self) -> None:
        self._values: dict[str, str] = {}
        self._lock = threading.Lock()
        self.fail_writes = False

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise StorageWriteError(f"Storage quota exceeded writing '{key}'", key=key)
        with self._lock:
            self._values[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._values.pop(key, None)

    def keys(self, prefix: str = "") -> List[str]:
        with self._lock:
            return [k for k in self._values if k.startswith(prefix)]

