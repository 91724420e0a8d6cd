"""TTL Response Cache for ancillary live feeds.

Entries are JSON strings in a `KeyValueStore` under `policy.prefix + key`. An
entry older than the policy TTL is treated as absent for freshness, but it is
kept: when the network cannot produce a replacement, the stale entry is still
the best placeholder available.
"""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from guide_sync.app_types import TTLEntry, TTLLookup
from guide_sync.errors import GuideSyncError, StorageWriteError
from guide_sync.session_context import SessionContext
from guide_sync.storage.base import KeyValueStore
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="ttl_cache")

Fetcher = Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class FeedPolicy:
    """Storage prefix and freshness window for one feed."""
    name: str
    prefix: str
    ttl_seconds: float


ENVIRONMENTAL_POLICY = FeedPolicy(name="environmental", prefix="env-impact-cache-v1-", ttl_seconds=30 * 60)
PULSE_POLICY = FeedPolicy(name="pulse", prefix="pulse_data_", ttl_seconds=6 * 60 * 60)


class TTLResponseCache:
    """Freshness-aware cache in front of feed fetchers."""

    def __init__(
        self,
        kv: KeyValueStore,
        context: SessionContext,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.kv = kv
        self.context = context
        self._clock = clock

    def peek(self, key: str, policy: FeedPolicy) -> Optional[TTLLookup]:
        """Return the stored entry and whether it is still fresh, or None."""
        storage_key = policy.prefix + key
        raw = self.kv.get(storage_key)
        if raw is None:
            return None
        try:
            entry = TTLEntry.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError):
            logger.warning("Dropping corrupt %s cache entry '%s'", policy.name, key)
            self.kv.delete(storage_key)
            return None
        return TTLLookup(entry=entry, is_fresh=entry.is_fresh(self._clock(), policy.ttl_seconds))

    def store(self, key: str, payload: Any, policy: FeedPolicy) -> Optional[TTLEntry]:
        """Replace the entry for `key`; a rejected write is logged and skipped."""
        entry = TTLEntry(key=key, payload=payload, timestamp=self._clock())
        try:
            self.kv.set(policy.prefix + key, json.dumps(entry.to_dict()))
        except StorageWriteError as exc:
            logger.warning("Could not cache %s response for '%s': %s", policy.name, key, exc)
            return None
        except (TypeError, ValueError) as exc:
            logger.warning("Could not serialize %s response for '%s': %s", policy.name, key, exc)
            return None
        return entry

    def invalidate(self, key: str, policy: FeedPolicy) -> None:
        self.kv.delete(policy.prefix + key)

    async def _refresh(
        self,
        key: str,
        fetcher: Fetcher,
        policy: FeedPolicy,
        validator: Optional[Callable[[Any], bool]],
    ) -> Optional[Any]:
        try:
            payload = await fetcher()
        except (GuideSyncError, OSError) as exc:
            logger.warning("Refreshing %s feed for '%s' failed: %s", policy.name, key, exc)
            return None
        if payload is None:
            return None
        if validator is not None and not validator(payload):
            logger.warning("Rejected invalid %s payload for '%s'", policy.name, key)
            return None
        await asyncio.to_thread(self.store, key, payload, policy)
        return payload

    async def get_or_fetch(
        self,
        key: str,
        fetcher: Fetcher,
        policy: FeedPolicy,
        validator: Optional[Callable[[Any], bool]] = None,
    ) -> Optional[Any]:
        """
        Return a fresh entry without touching the network, otherwise fetch.

        Falls back to the stale entry when offline or when the fetch fails,
        and to None when there is nothing cached at all.
        """
        lookup = await asyncio.to_thread(self.peek, key, policy)
        if lookup is not None and lookup.is_fresh:
            logger.debug("Fresh %s entry for '%s'", policy.name, key)
            return lookup.entry.payload

        stale = lookup.entry.payload if lookup is not None else None
        if self.context.is_offline:
            logger.info("Offline: serving %s entry for '%s'", "stale" if stale is not None else "no", key)
            return stale

        fetched = await self._refresh(key, fetcher, policy, validator)
        if fetched is not None:
            return fetched
        return stale

    async def get_stale_while_revalidate(
        self,
        key: str,
        fetcher: Fetcher,
        policy: FeedPolicy,
        validator: Optional[Callable[[Any], bool]] = None,
    ) -> Optional[Any]:
        """
        Like `get_or_fetch`, but a stale entry is returned immediately and the
        refresh runs as a detached session task.
        """
        lookup = await asyncio.to_thread(self.peek, key, policy)
        if lookup is None:
            return await self.get_or_fetch(key, fetcher, policy, validator)
        if not lookup.is_fresh and not self.context.is_offline:
            self.context.spawn(
                self._refresh(key, fetcher, policy, validator),
                name=f"revalidate:{policy.name}:{key}",
            )
        return lookup.entry.payload
