"""Wiring for one application session: stores, resolver, controllers and feeds."""

from __future__ import annotations

from typing import Dict, List, Optional

from guide_sync import config
from guide_sync.app_types import OfflineGuideSummary, ResolvedResource
from guide_sync.backoff import RateLimitBackoffCoordinator
from guide_sync.data_sources import BundledSeedDataset, ResourceSource, build_resource_source, build_seed_dataset
from guide_sync.feeds import CityPulseFeed, EnvironmentalImpactFeed, VisaLookup
from guide_sync.resolver import FetchCacheFallbackResolver
from guide_sync.resource_keys import format_city_label, normalize_resource_key
from guide_sync.session_context import SessionContext
from guide_sync.storage import KeyValueStore, LocalStore, build_stores
from guide_sync.sync_status import DEFAULT_RESET_DELAY, SyncStatus, SyncStatusController
from guide_sync.ttl_cache import ENVIRONMENTAL_POLICY, PULSE_POLICY, FeedPolicy, TTLResponseCache
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="guide_service")


class GuideService:
    """Facade used by the API layer; owns the session and everything built on it."""

    def __init__(
        self,
        *,
        context: SessionContext,
        store: LocalStore,
        kv: KeyValueStore,
        seed: BundledSeedDataset,
        source: ResourceSource,
        resolver: FetchCacheFallbackResolver,
        environmental: Optional[EnvironmentalImpactFeed] = None,
        pulse: Optional[CityPulseFeed] = None,
        visa: Optional[VisaLookup] = None,
        reset_delay: float = DEFAULT_RESET_DELAY,
    ) -> None:
        self.context = context
        self.store = store
        self.kv = kv
        self.seed = seed
        self.source = source
        self.resolver = resolver
        self.environmental = environmental
        self.pulse = pulse
        self.visa = visa
        self.reset_delay = reset_delay
        self._controllers: Dict[str, SyncStatusController] = {}

    # ------------------------------------------------------------------
    # Guides
    # ------------------------------------------------------------------

    async def resolve(self, slug: str) -> ResolvedResource:
        return await self.resolver.resolve(slug)

    def controller_for(self, slug: str) -> SyncStatusController:
        """One controller per normalized key for the life of the session."""
        key = normalize_resource_key(slug)
        controller = self._controllers.get(key)
        if controller is None or controller.closed:
            controller = SyncStatusController(self.resolver, key, reset_delay=self.reset_delay)
            self._controllers[key] = controller
        return controller

    def sync_snapshot(self, slug: str) -> dict:
        """Current sync state without creating a controller for unseen keys."""
        key = normalize_resource_key(slug)
        controller = self._controllers.get(key)
        if controller is not None and not controller.closed:
            return controller.snapshot()
        return {
            "key": key,
            "status": SyncStatus.IDLE.value,
            "is_loading": False,
            "is_offline_copy": None,
            "last_synced_at": None,
            "error": None,
        }

    def guide_listing(self) -> List[dict]:
        """Seed guides for the home screen, flagged with offline availability."""
        listing = []
        for summary in self.seed.summaries():
            listing.append({**summary, "availableOffline": self.store.is_available_offline(summary["slug"])})
        return listing

    def city_name_for(self, slug: str) -> str:
        key = normalize_resource_key(slug)
        seeded = self.seed.get(key)
        if seeded and isinstance(seeded.get("name"), str):
            return seeded["name"]
        return format_city_label(key).split(",")[0]

    # ------------------------------------------------------------------
    # Offline management
    # ------------------------------------------------------------------

    def list_offline_guides(self) -> List[OfflineGuideSummary]:
        out = []
        for record in self.store.get_all():
            name = record.payload.get("name") if isinstance(record.payload, dict) else None
            out.append(
                OfflineGuideSummary(
                    key=record.key,
                    saved_at=record.saved_at,
                    approx_bytes=self.store.estimate_size_bytes(record),
                    name=name,
                )
            )
        return out

    def storage_summary(self) -> dict:
        size = self.store.total_size()
        quota = self.store.storage_quota()
        return {
            "count": size.count,
            "bytes": size.bytes,
            "mb": size.mb,
            "quota": (
                {"used": quota.used, "quota": quota.quota, "usage_percent": quota.usage_percent}
                if quota is not None
                else None
            ),
        }

    def remove_offline_copy(self, slug: str) -> bool:
        """Delete one stored guide; returns whether it existed."""
        key = normalize_resource_key(slug)
        existed = self.store.is_available_offline(key)
        self.store.delete(key)
        if existed:
            logger.info("Removed offline copy of '%s'", key)
        return existed

    def clear_offline_guides(self) -> int:
        count = self.store.total_size().count
        self.store.clear()
        logger.info("Cleared %d offline guide(s)", count)
        return count

    # ------------------------------------------------------------------
    # Connectivity
    # ------------------------------------------------------------------

    def set_online(self, online: bool) -> None:
        self.context.set_online(online)

    def set_simulate_offline(self, enabled: bool) -> None:
        self.context.set_simulate_offline(enabled)

    def connectivity(self) -> dict:
        return {
            "online": self.context.online,
            "simulate_offline": self.context.simulate_offline,
            "is_offline": self.context.is_offline,
        }

    async def aclose(self) -> None:
        for controller in self._controllers.values():
            controller.close()
        self._controllers.clear()
        await self.context.aclose()
        for closable in (self.environmental, self.pulse, self.visa, self.source):
            aclose = getattr(closable, "aclose", None)
            if aclose is not None:
                await aclose()


def build_guide_service(
    settings: config.Settings | None = None,
    *,
    store: LocalStore | None = None,
    kv: KeyValueStore | None = None,
    source: ResourceSource | None = None,
    seed: BundledSeedDataset | None = None,
    context: SessionContext | None = None,
) -> GuideService:
    """Build a service from settings; any component can be passed in instead."""
    settings = settings or config.settings
    if store is None or kv is None:
        built_store, built_kv = build_stores(settings)
        store = store or built_store
        kv = kv or built_kv
    source = source or build_resource_source(settings)
    seed = seed or build_seed_dataset(settings)
    context = context or SessionContext(simulate_offline=settings.simulate_offline)

    resolver = FetchCacheFallbackResolver(
        source,
        store,
        seed,
        context,
        network_timeout=settings.fetch_timeout_seconds,
        fallback_delay=settings.effective_fallback_delay,
    )
    cache = TTLResponseCache(kv, context)
    environmental = EnvironmentalImpactFeed(
        settings.environmental_endpoint,
        cache,
        timeout=settings.environmental_timeout_seconds,
        policy=_policy(ENVIRONMENTAL_POLICY, settings.environmental_ttl_seconds),
    )
    pulse = CityPulseFeed(
        settings.news_api_url,
        settings.news_api_key,
        cache,
        timeout=settings.pulse_timeout_seconds,
        policy=_policy(PULSE_POLICY, settings.pulse_ttl_seconds),
    )
    coordinator = RateLimitBackoffCoordinator(
        kv,
        context,
        default_cooldown_seconds=settings.visa_cooldown_seconds,
    )
    visa = VisaLookup(
        settings.visa_api_host,
        settings.visa_api_key,
        coordinator,
        timeout=settings.visa_timeout_seconds,
    )
    logger.info(
        "Guide service ready (timeout=%.2fs, fallback=%.2fs, offline=%s)",
        settings.fetch_timeout_seconds,
        settings.effective_fallback_delay,
        context.is_offline,
    )
    return GuideService(
        context=context,
        store=store,
        kv=kv,
        seed=seed,
        source=source,
        resolver=resolver,
        environmental=environmental,
        pulse=pulse,
        visa=visa,
        reset_delay=settings.sync_reset_seconds,
    )


def _policy(default: FeedPolicy, ttl_seconds: float) -> FeedPolicy:
    if ttl_seconds == default.ttl_seconds:
        return default
    return FeedPolicy(name=default.name, prefix=default.prefix, ttl_seconds=ttl_seconds)
