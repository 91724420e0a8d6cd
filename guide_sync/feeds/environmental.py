"""Environmental impact feed (air quality, pollen, overtourism) with a 30 minute TTL."""

from __future__ import annotations

import datetime as dt
from typing import Any, Optional

import httpx

from guide_sync.domain import is_environmental_report
from guide_sync.errors import NetworkFailure
from guide_sync.resource_keys import format_city_label, normalize_city_id
from guide_sync.ttl_cache import ENVIRONMENTAL_POLICY, FeedPolicy, TTLResponseCache
from utils.logging_utils import get_tagged_logger, mask_url

logger = get_tagged_logger(__name__, tag="feeds/environmental")

DEFAULT_TIMEOUT_SECONDS = 7.0

OFFLINE_SUMMARY = "Environmental data unavailable offline. Connect to the internet to load live conditions."
OFFLINE_ACTIONS = [
    "Use public transport wherever available.",
    "Support locally owned restaurants and accommodation.",
    "Visit major attractions during off-peak hours.",
]
OFFLINE_HOW_IT_HELPS = (
    "Your choices as a traveller directly affect the communities and environment you visit. "
    "Transit over taxi and local over chain add up across thousands of visitors."
)


def build_offline_placeholder(city_id: str, now: dt.datetime | None = None) -> dict:
    """Report shown when there is neither a cached nor a live report."""
    now = now or dt.datetime.now(dt.timezone.utc)
    return {
        "cityId": city_id,
        "cityLabel": format_city_label(city_id),
        "aqiValue": 0,
        "aqiCategory": "Offline",
        "aqiTrend": "unknown",
        "dominantPollutant": "",
        "pollutants": [],
        "googleHealthAdvice": "",
        "pollenTreeBand": "None",
        "pollenGrassBand": "None",
        "pollenWeedBand": "None",
        "highestPollenThreat": "No data",
        "overtourismIndex": 0,
        "overtourismLabel": "Unknown",
        "primaryStress": "unknown",
        "neighbourhoodRetentionPct": 0,
        "currentConditionsSummary": OFFLINE_SUMMARY,
        "whatYouCanDo": list(OFFLINE_ACTIONS),
        "howItHelps": OFFLINE_HOW_IT_HELPS,
        "isLive": False,
        "sourceRefs": ["Offline: cached data unavailable"],
        "fetchedAt": now.isoformat(),
    }


class EnvironmentalImpactFeed:
    """POSTs to the environmental endpoint and caches validated reports."""

    def __init__(
        self,
        endpoint: str,
        cache: TTLResponseCache,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        policy: FeedPolicy = ENVIRONMENTAL_POLICY,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.endpoint = endpoint
        self.cache = cache
        self.timeout = timeout
        self.policy = policy
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def fetch_report(self, city_id: str, lat: float | None = None, lng: float | None = None) -> Any:
        """One live request; raises NetworkFailure on any transport or status problem."""
        body = {"cityId": city_id, "lat": lat, "lng": lng}
        try:
            response = await self._get_client().post(
                self.endpoint,
                json=body,
                headers={"Cache-Control": "no-store"},
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            raise NetworkFailure(f"Environmental request to {mask_url(self.endpoint)} failed: {exc}") from exc
        if not response.is_success:
            raise NetworkFailure("Environmental endpoint returned an error", status_code=response.status_code)
        try:
            return response.json()
        except ValueError as exc:
            raise NetworkFailure("Environmental endpoint returned invalid JSON") from exc

    async def get_report(
        self,
        city_id_raw: str,
        lat: float | None = None,
        lng: float | None = None,
    ) -> dict:
        """
        Cached report if fresh, else a live one, else the stale cache, else a
        placeholder. Never raises for network problems.
        """
        city_id = normalize_city_id(city_id_raw)
        report = await self.cache.get_or_fetch(
            city_id,
            lambda: self.fetch_report(city_id, lat, lng),
            self.policy,
            validator=is_environmental_report,
        )
        if report is None:
            logger.info("No environmental data for '%s'; using offline placeholder", city_id)
            return build_offline_placeholder(city_id)
        return report

    def cached_report(self, city_id_raw: str) -> Optional[dict]:
        """Stored report, fresh or not, without any network call."""
        lookup = self.cache.peek(normalize_city_id(city_id_raw), self.policy)
        return lookup.entry.payload if lookup else None

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
