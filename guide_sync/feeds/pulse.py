"""City pulse feed: recent local news classified as safety, event or news."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

import httpx

from guide_sync.domain import PulseType, is_pulse_list
from guide_sync.errors import NetworkFailure
from guide_sync.resource_keys import normalize_city_id
from guide_sync.ttl_cache import PULSE_POLICY, FeedPolicy, TTLResponseCache
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="feeds/pulse")

DEFAULT_TIMEOUT_SECONDS = 5.0
PAGE_SIZE = 3

SAFETY_KEYWORDS = ("strike", "protest", "warning", "alert", "closed", "danger", "delay", "emergency")
EVENT_KEYWORDS = ("festival", "concert", "match", "parade", "expo", "fair", "conference")
GLOBAL_NOISE_KEYWORDS = ("global", "world", "international", "geopolitics", "markets")


def has_local_city_signal(article: Dict[str, Any], city_name: str) -> bool:
    """True if the article mentions the city; global-news noise without the city is dropped."""
    title = (article.get("title") or "").lower()
    description = (article.get("description") or "").lower()
    text = f"{title} {description}".strip()
    if not text:
        return False

    city_lower = city_name.lower().strip()
    tokens = [t for t in city_lower.split() if t]
    includes_city = bool(city_lower) and (
        city_lower in text or any(len(t) > 2 and t in text for t in tokens)
    )
    if not includes_city and any(k in text for k in GLOBAL_NOISE_KEYWORDS):
        return False
    return includes_city


def to_pulse_item(article: Dict[str, Any]) -> Optional[dict]:
    """Classify one NewsAPI article; returns None when it has no title."""
    raw_title = article.get("title")
    if not raw_title or not str(raw_title).strip():
        return None
    title = str(raw_title).strip()
    description = (article.get("description") or "").strip() or "No description provided."
    title_lower = title.lower()
    is_safety = any(k in title_lower for k in SAFETY_KEYWORDS)
    is_event = not is_safety and any(k in title_lower for k in EVENT_KEYWORDS)
    if is_safety:
        kind = PulseType.SAFETY
    elif is_event:
        kind = PulseType.EVENT
    else:
        kind = PulseType.NEWS
    source = ((article.get("source") or {}).get("name") or "").strip() or "News Feed"
    return {
        "type": kind.value,
        "title": title,
        "description": description,
        "source": source,
        "urgency": is_safety,
        "publishedAt": article.get("publishedAt"),
        "url": article.get("url"),
    }


def dedupe_by_title(items: Iterable[dict]) -> List[dict]:
    seen = set()
    out = []
    for item in items:
        key = item["title"].lower().strip()
        if key in seen:
            continue
        seen.add(key)
        out.append(item)
    return out


class CityPulseFeed:
    """NewsAPI-backed pulse with a 6 hour cache."""

    def __init__(
        self,
        api_url: str,
        api_key: str | None,
        cache: TTLResponseCache,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        policy: FeedPolicy = PULSE_POLICY,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_url = api_url
        self.api_key = (api_key or "").strip() or None
        self.cache = cache
        self.timeout = timeout
        self.policy = policy
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def fetch_pulse(self, city_name: str) -> List[dict]:
        """Query NewsAPI for `city_name` and return classified, deduplicated items."""
        if not self.api_key:
            raise NetworkFailure("News API key is not configured")
        params = {
            "q": city_name,
            "language": "en",
            "sortBy": "publishedAt",
            "pageSize": PAGE_SIZE,
            "apiKey": self.api_key,
        }
        try:
            response = await self._get_client().get(self.api_url, params=params, timeout=self.timeout)
        except httpx.HTTPError as exc:
            raise NetworkFailure(f"News request for {city_name} failed: {exc}") from exc
        if not response.is_success:
            raise NetworkFailure(f"News request for {city_name} failed", status_code=response.status_code)
        try:
            payload = response.json()
        except ValueError as exc:
            raise NetworkFailure("News response was not valid JSON") from exc

        articles = payload.get("articles") if isinstance(payload, dict) else None
        items = []
        for article in articles or []:
            if not isinstance(article, dict) or not has_local_city_signal(article, city_name):
                continue
            item = to_pulse_item(article)
            if item is not None:
                items.append(item)
        return dedupe_by_title(items)

    async def get_pulse(self, city_slug: str, city_name: str) -> List[dict]:
        """
        Cached pulse for a city; `[]` when nothing is cached and the fetch fails.

        Headlines past their TTL are still returned at once while a background
        refresh replaces them for the next call.
        """
        key = normalize_city_id(city_slug)
        items = await self.cache.get_stale_while_revalidate(
            key,
            lambda: self.fetch_pulse(city_name),
            self.policy,
            validator=is_pulse_list,
        )
        if items is None:
            logger.debug("No pulse available for '%s'", key)
            return []
        return items

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
