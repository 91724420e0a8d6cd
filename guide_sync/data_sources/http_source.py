"""HTTP resource source backed by httpx."""

from __future__ import annotations

import time
from typing import Any

import httpx

from guide_sync.errors import NetworkFailure
from guide_sync.data_sources.base import ResourceSource
from utils.logging_utils import get_tagged_logger, mask_url

logger = get_tagged_logger(__name__, tag="http_source")


class HttpResourceSource(ResourceSource):
    """
    Fetch city packs from `{base_url}/{key}`.

    Every request carries a `t=<epoch ms>` query parameter so intermediate HTTP
    caches never answer for the origin. Timeouts are enforced by the resolver
    (it cancels the awaiting task); `timeout` here is only an upper bound for
    callers that use the source directly.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    def url_for(self, key: str) -> str:
        return f"{self.base_url}/{key}"

    async def fetch(self, key: str) -> Any:
        url = self.url_for(key)
        params = {"t": int(time.time() * 1000)}
        try:
            response = await self._get_client().get(url, params=params, headers={"Cache-Control": "no-cache"})
        except httpx.HTTPError as exc:
            raise NetworkFailure(f"Request to {mask_url(url)} failed: {exc}") from exc

        if response.status_code < 200 or response.status_code >= 300:
            raise NetworkFailure(
                f"Unexpected status from {mask_url(url)}",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise NetworkFailure(f"Undecodable body from {mask_url(url)}") from exc
        logger.debug("Fetched %s (%d bytes)", key, len(response.content))
        return payload

    async def aclose(self) -> None:
        """Close the underlying client if this source created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
