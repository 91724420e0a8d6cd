"""Rate-Limit Backoff Coordinator.

Guards a rate-limited remote service. Once the service answers with a throttle
signal, a single persisted Cooldown Marker suppresses every guarded call until
it expires, whatever the request signature. Successful results are cached for
the rest of the session, and concurrent identical requests share one attempt.
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Awaitable, Callable, Optional

from guide_sync.app_types import CooldownMarker
from guide_sync.errors import NetworkFailure, StorageWriteError, Throttled
from guide_sync.session_context import SessionContext
from guide_sync.storage.base import KeyValueStore
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="backoff")

DEFAULT_COOLDOWN_SECONDS = 30 * 60
DEFAULT_COOLDOWN_KEY = "visa_api_cooldown_until"


def parse_retry_after(header: str | None, default: float | None = None) -> float | None:
    """
    Seconds from a `Retry-After` header value.

    Only the delta-seconds form is honoured; anything else yields `default`.
    """
    if header is None:
        return default
    try:
        seconds = float(str(header).strip())
    except ValueError:
        return default
    if seconds != seconds or seconds <= 0:  # NaN or non-positive
        return default
    return seconds


class RateLimitBackoffCoordinator:
    """Session cache, persisted cooldown and in-flight de-duplication for one service."""

    def __init__(
        self,
        kv: KeyValueStore,
        context: SessionContext,
        *,
        default_cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        cooldown_key: str = DEFAULT_COOLDOWN_KEY,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.kv = kv
        self.context = context
        self.default_cooldown_seconds = default_cooldown_seconds
        self.cooldown_key = cooldown_key
        self._clock = clock

    # ------------------------------------------------------------------
    # Cooldown marker
    # ------------------------------------------------------------------

    def active_cooldown(self) -> Optional[CooldownMarker]:
        """Return the persisted marker if it has not expired yet."""
        raw = self.kv.get(self.cooldown_key)
        if raw is None:
            return None
        try:
            marker = CooldownMarker(until=float(json.loads(raw)["until"]))
        except (ValueError, KeyError, TypeError):
            logger.warning("Dropping unreadable cooldown marker '%s'", self.cooldown_key)
            self.kv.delete(self.cooldown_key)
            return None
        return marker if marker.is_active(self._clock()) else None

    def cooldown_remaining(self) -> float:
        marker = self.active_cooldown()
        return marker.remaining(self._clock()) if marker else 0.0

    def install_cooldown(self, retry_after_seconds: float | None = None) -> CooldownMarker:
        """Persist a marker `retry_after_seconds` (or the default) from now."""
        delay = retry_after_seconds if retry_after_seconds and retry_after_seconds > 0 else self.default_cooldown_seconds
        marker = CooldownMarker(until=self._clock() + delay)
        try:
            self.kv.set(self.cooldown_key, json.dumps({"until": marker.until}))
        except StorageWriteError as exc:
            logger.warning("Could not persist cooldown marker: %s", exc)
        logger.warning("Remote service throttled; backing off for %.0fs", delay)
        return marker

    def clear_cooldown(self) -> None:
        self.kv.delete(self.cooldown_key)

    # ------------------------------------------------------------------
    # Guarded requests
    # ------------------------------------------------------------------

    async def request(self, signature: str, perform: Callable[[], Awaitable[Any]]) -> Optional[Any]:
        """
        Run `perform` unless the session cache or an active cooldown answers first.

        Returns the result, or None when suppressed, throttled or failed.
        """
        if signature in self.context.success_cache:
            logger.debug("Session cache hit for '%s'", signature)
            return self.context.success_cache[signature]

        if await asyncio.to_thread(self.active_cooldown) is not None:
            logger.info("Cooldown active; skipping request '%s'", signature)
            return None

        task = self.context.inflight.get(signature)
        if task is None:
            task = asyncio.get_running_loop().create_task(self._attempt(signature, perform), name=f"guarded:{signature}")
            self.context.inflight[signature] = task
            task.add_done_callback(lambda t, sig=signature: self._forget_inflight(sig, t))
        else:
            logger.debug("Joining in-flight request '%s'", signature)
        # one caller giving up must not cancel the attempt the others wait on
        return await asyncio.shield(task)

    def _forget_inflight(self, signature: str, task: asyncio.Task) -> None:
        if self.context.inflight.get(signature) is task:
            del self.context.inflight[signature]

    async def _attempt(self, signature: str, perform: Callable[[], Awaitable[Any]]) -> Optional[Any]:
        try:
            result = await perform()
        except Throttled as exc:
            await asyncio.to_thread(self.install_cooldown, exc.retry_after_seconds)
            return None
        except (NetworkFailure, OSError) as exc:
            logger.warning("Guarded request '%s' failed: %s", signature, exc)
            return None
        if result is not None:
            self.context.success_cache[signature] = result
        return result
