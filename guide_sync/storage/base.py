"""Shared protocols and helpers for local persistence backends."""

import json
from typing import Any, Iterable, List, Optional, Protocol

from guide_sync.app_types import CacheRecord, StorageQuota, StorageSize


def estimate_size_bytes(record: CacheRecord) -> int:
    """
    Approximate byte cost of a stored record.

    Character count of the JSON form times two, modelling a two-bytes-per-char
    encoding. Non-ASCII text counts as characters, not as escape sequences.
    This is an estimate for display, not an exact accounting of what the
    backend uses on disk. Returns 0 if the record cannot be serialized.
    """
    try:
        return len(json.dumps(record.to_dict(), ensure_ascii=False)) * 2
    except (TypeError, ValueError):
        return 0


def total_size_of(records: Iterable[CacheRecord]) -> StorageSize:
    """Sum the size estimate over records."""
    count = 0
    total = 0
    for record in records:
        count += 1
        total += estimate_size_bytes(record)
    return StorageSize(count=count, bytes=total)


class LocalStore(Protocol):
    """Durable keyed store for resource bundles (one record per key, no expiry)."""

    def put(self, key: str, payload: Any) -> CacheRecord:
        """Replace the record for `key`; raise StorageWriteError if rejected."""

    def get(self, key: str) -> Optional[Any]:
        """Return the stored payload or None."""

    def get_record(self, key: str) -> Optional[CacheRecord]:
        """Return the full record (payload and saved_at) or None."""

    def get_all(self) -> List[CacheRecord]:
        """Return every stored record."""

    def delete(self, key: str) -> None:
        """Remove a record without raising if it is absent."""

    def clear(self) -> None:
        """Remove every record."""

    def estimate_size_bytes(self, record: CacheRecord) -> int:
        """Approximate size of one record."""

    def total_size(self) -> StorageSize:
        """Count and approximate bytes of everything stored."""

    def storage_quota(self) -> Optional[StorageQuota]:
        """Device usage/quota, or None when the backend cannot tell."""

    def is_available_offline(self, key: str) -> bool:
        """True if a record exists for `key`."""


class KeyValueStore(Protocol):
    """Small string key/value persistence (TTL entries, cooldown markers)."""

    def get(self, key: str) -> Optional[str]:
        """Return the raw value or None."""

    def set(self, key: str, value: str) -> None:
        """Store a value; raise StorageWriteError if rejected."""

    def delete(self, key: str) -> None:
        """Delete a value without raising if it is absent."""

    def keys(self, prefix: str = "") -> List[str]:
        """List stored keys starting with `prefix`."""
