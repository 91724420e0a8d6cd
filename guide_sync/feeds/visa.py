"""Visa rule lookups against a rate-limited provider."""

from __future__ import annotations

import re
from typing import Any, Dict, Optional

import httpx

from guide_sync.backoff import RateLimitBackoffCoordinator, parse_retry_after
from guide_sync.errors import NetworkFailure, Throttled
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="feeds/visa")

COUNTRY_CODE_RE = re.compile(r"^[A-Z]{2,3}$")
DEFAULT_TIMEOUT_SECONDS = 10.0


def normalize_country_code(raw: str | None) -> str:
    return (raw or "").strip().upper()


def visa_signature(passport: str, destination: str) -> str:
    return f"{passport}_{destination}"


def _first_text(source: Dict[str, Any], *names: str) -> Optional[str]:
    for name in names:
        value = source.get(name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def normalize_visa_payload(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Fold the provider's registration variants into `mandatory_registration`."""
    reg = None
    for name in ("mandatory_registration", "registration", "requirement"):
        if isinstance(raw.get(name), dict):
            reg = raw[name]
            break
    out = dict(raw)
    out["mandatory_registration"] = (
        {
            "text": _first_text(reg, "text", "label", "name", "description"),
            "link": _first_text(reg, "link", "url"),
            "color": _first_text(reg, "color") or "amber",
        }
        if reg is not None
        else None
    )
    return out


class VisaLookup:
    """Visa check client; every call goes through the backoff coordinator."""

    def __init__(
        self,
        host: str,
        api_key: str | None,
        coordinator: RateLimitBackoffCoordinator,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.host = host
        self.api_key = api_key
        self.coordinator = coordinator
        self.timeout = timeout
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def _fetch(self, passport: str, destination: str) -> Dict[str, Any]:
        if not self.api_key:
            raise NetworkFailure("Visa provider key is not configured")
        try:
            response = await self._get_client().post(
                f"https://{self.host}/v2/visa/check",
                data={"passport": passport, "destination": destination},
                headers={"x-rapidapi-host": self.host, "x-rapidapi-key": self.api_key},
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            raise NetworkFailure(f"Visa provider unreachable: {exc}") from exc

        if response.status_code == 429:
            raise Throttled(
                "Visa provider rate limit exceeded",
                retry_after_seconds=parse_retry_after(response.headers.get("retry-after")),
            )
        if not response.is_success:
            raise NetworkFailure("Visa provider request failed", status_code=response.status_code)
        try:
            payload = response.json()
        except ValueError as exc:
            raise NetworkFailure("Visa provider returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise NetworkFailure("Visa provider response was not an object")
        data = payload.get("data") if isinstance(payload.get("data"), dict) else payload
        return normalize_visa_payload(data)

    async def check(self, passport_raw: str, destination_raw: str) -> Optional[Dict[str, Any]]:
        """
        Visa rules for a passport/destination pair, or None when suppressed,
        throttled or unavailable.

        Raises:
            ValueError: a code is not two or three letters.
        """
        passport = normalize_country_code(passport_raw)
        destination = normalize_country_code(destination_raw)
        if not COUNTRY_CODE_RE.match(passport) or not COUNTRY_CODE_RE.match(destination):
            raise ValueError("Invalid passport or destination code. Expected ISO alpha code like US, FR, JP.")
        return await self.coordinator.request(
            visa_signature(passport, destination),
            lambda: self._fetch(passport, destination),
        )

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
