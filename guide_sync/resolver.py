"""Fetch-Cache-Fallback Resolver.

Answers `resolve(key)` from the best tier available within a bounded wait:

1. the network (validated, then persisted to the local store),
2. the Persistent Local Store,
3. the Bundled Seed Dataset.

When online, the network leg and a fallback timer race. The timer answers from
the local tiers once `fallback_delay` elapses; the network leg keeps running in
the session and, if it succeeds late, updates the store for the next call.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError

from guide_sync.app_types import ResolvedResource
from guide_sync.data_sources.base import ResourceSource
from guide_sync.data_sources.seed import BundledSeedDataset
from guide_sync.domain import is_city_pack
from guide_sync.errors import NetworkFailure, ResourceNotFound, StorageWriteError
from guide_sync.resource_keys import normalize_resource_key
from guide_sync.session_context import SessionContext
from guide_sync.storage.base import LocalStore
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="resolver")

DEFAULT_NETWORK_TIMEOUT = 2.5


class FetchCacheFallbackResolver:
    """Resolve resource bundles across network, local store and seed tiers."""

    def __init__(
        self,
        source: ResourceSource,
        store: LocalStore,
        seed: BundledSeedDataset,
        context: SessionContext,
        *,
        validator: Callable[[Any], bool] = is_city_pack,
        network_timeout: float = DEFAULT_NETWORK_TIMEOUT,
        fallback_delay: float | None = None,
    ) -> None:
        self.source = source
        self.store = store
        self.seed = seed
        self.context = context
        self.validator = validator
        self.network_timeout = network_timeout
        self.fallback_delay = network_timeout if fallback_delay is None else fallback_delay

    async def resolve(self, raw_key: str | None) -> ResolvedResource:
        """
        Return the payload for `raw_key` and whether it came from the network.

        Raises:
            ResourceNotFound: the key is absent from every tier.
        """
        key = normalize_resource_key(raw_key)
        if not key:
            raise ResourceNotFound(raw_key or "")

        if self.context.is_offline:
            logger.info("Offline: resolving '%s' from local tiers", key)
            return await self.local_only(key)

        network_task = self.context.spawn(self._network_leg(key), name=f"network:{key}")
        fallback_task = asyncio.ensure_future(self._fallback_leg(key))
        try:
            done, _ = await asyncio.wait({network_task, fallback_task}, return_when=asyncio.FIRST_COMPLETED)
            if network_task in done:
                fallback_task.cancel()
                return network_task.result()

            if fallback_task.exception() is None:
                logger.info("Network slower than %.2fs for '%s'; serving offline copy", self.fallback_delay, key)
                return fallback_task.result()

            # nothing local; the network leg is the only remaining chance
            return await asyncio.shield(network_task)
        except asyncio.CancelledError:
            fallback_task.cancel()
            raise

    async def local_only(self, key: str) -> ResolvedResource:
        """Resolve from the local store, then the seed dataset."""
        try:
            payload = await asyncio.to_thread(self.store.get, key)
        except (SQLAlchemyError, OSError) as exc:
            logger.warning("Local store read failed for '%s' (%s); trying seed dataset", key, exc)
            payload = None
        if payload is not None:
            logger.debug("Local store hit for '%s'", key)
            return ResolvedResource(key=key, payload=payload, served_from_network=False)

        payload = self.seed.get(key)
        if payload is not None:
            logger.debug("Seed dataset hit for '%s'", key)
            return ResolvedResource(key=key, payload=payload, served_from_network=False)

        raise ResourceNotFound(key)

    async def _network_leg(self, key: str) -> ResolvedResource:
        try:
            payload = await asyncio.wait_for(self.source.fetch(key), timeout=self.network_timeout)
        except asyncio.TimeoutError:
            logger.warning("Fetch for '%s' timed out after %.2fs; trying local tiers", key, self.network_timeout)
            return await self.local_only(key)
        except (NetworkFailure, OSError) as exc:
            logger.warning("Fetch for '%s' failed (%s); trying local tiers", key, exc)
            return await self.local_only(key)
        except Exception as exc:
            logger.warning("Fetch for '%s' raised %s; trying local tiers", key, type(exc).__name__, exc_info=True)
            return await self.local_only(key)

        if not self.validator(payload):
            logger.warning("Rejected invalid payload for '%s'; trying local tiers", key)
            return await self.local_only(key)

        await self._persist(key, payload)
        return ResolvedResource(key=key, payload=payload, served_from_network=True)

    async def _fallback_leg(self, key: str) -> ResolvedResource:
        await asyncio.sleep(self.fallback_delay)
        return await self.local_only(key)

    async def _persist(self, key: str, payload: Any) -> None:
        try:
            await asyncio.to_thread(self.store.put, key, payload)
        except StorageWriteError as exc:
            logger.warning("Could not save '%s' for offline use: %s", key, exc)
        else:
            logger.info("Saved '%s' for offline use", key)
