"""Shared dataclasses and lightweight types used across modules."""

from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class ResolvedResource:
    """Payload handed back by the resolver plus where it came from."""
    key: str
    payload: Any
    served_from_network: bool

    @property
    def is_offline_copy(self) -> bool:
        """True when the payload came from the local store or the seed dataset."""
        return not self.served_from_network


@dataclass
class CacheRecord:
    """One persisted resource bundle; `saved_at` is epoch seconds."""
    key: str
    payload: Any
    saved_at: float

    def to_dict(self) -> dict:
        """JSON-safe form, also the basis of the size estimate."""
        return {"key": self.key, "payload": self.payload, "savedAt": self.saved_at}


@dataclass
class TTLEntry:
    """A feed response cached with the time it was fetched."""
    key: str
    payload: Any
    timestamp: float

    def age(self, now: float) -> float:
        return now - self.timestamp

    def is_fresh(self, now: float, ttl_seconds: float) -> bool:
        """Fresh while younger than the TTL; a timestamp in the future counts as stale."""
        return 0.0 <= self.age(now) < ttl_seconds

    def to_dict(self) -> dict:
        return {"key": self.key, "payload": self.payload, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data: dict) -> "TTLEntry":
        return cls(key=data["key"], payload=data["payload"], timestamp=float(data["timestamp"]))


@dataclass
class TTLLookup:
    """Result of peeking at a TTL entry under a given feed policy."""
    entry: TTLEntry
    is_fresh: bool


@dataclass
class CooldownMarker:
    """Do-not-call-before timestamp (epoch seconds) for a throttled service."""
    until: float

    def is_active(self, now: float) -> bool:
        return self.until > now

    def remaining(self, now: float) -> float:
        return max(0.0, self.until - now)


@dataclass
class StorageSize:
    """Approximate footprint of the offline guides."""
    count: int
    bytes: int

    @property
    def mb(self) -> float:
        return round(self.bytes / (1024 * 1024), 2)


@dataclass
class StorageQuota:
    """Device-level usage/quota where the backend can tell."""
    used: int
    quota: int

    @property
    def usage_percent(self) -> int:
        if self.quota <= 0:
            return 0
        return round(self.used / self.quota * 100)


@dataclass
class OfflineGuideSummary:
    """Row shown on a settings/management screen."""
    key: str
    saved_at: float
    approx_bytes: int
    name: Optional[str] = None
