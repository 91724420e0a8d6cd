"""Synchronization-status state machine for one displayed resource.

```
idle --refresh--> syncing --ok--> success --(reset_delay)--> idle
                  syncing --fail--> error
```

The initial `load()` only toggles `is_loading`; it never passes through
`syncing`, so a sync indicator is shown for user-initiated refreshes only.
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Any, Callable, Optional

from guide_sync.app_types import ResolvedResource
from guide_sync.errors import ResourceNotFound
from guide_sync.resolver import FetchCacheFallbackResolver
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="sync_status")

DEFAULT_RESET_DELAY = 3.0


class SyncStatus(str, Enum):
    """Status of a user-initiated refresh."""

    IDLE = "idle"
    SYNCING = "syncing"
    SUCCESS = "success"
    ERROR = "error"

    @classmethod
    def _missing_(cls, value):
        # older clients report "complete" for a finished sync
        if isinstance(value, str):
            normalized = value.strip().lower()
            if normalized == "complete":
                return cls.SUCCESS
            for member in cls:
                if member.value == normalized:
                    return member
        return None


class SyncStatusController:
    """Track loading/sync state for one resource key."""

    def __init__(
        self,
        resolver: FetchCacheFallbackResolver,
        key: str,
        *,
        reset_delay: float = DEFAULT_RESET_DELAY,
        on_change: Optional[Callable[[SyncStatus], None]] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.resolver = resolver
        self.key = key
        self.reset_delay = reset_delay
        self.on_change = on_change
        self._clock = clock

        self.status = SyncStatus.IDLE
        self.is_loading = False
        self.payload: Any = None
        self.served_from_network: Optional[bool] = None
        self.last_synced_at: Optional[float] = None
        self.error: Optional[str] = None
        self._reset_task: Optional[asyncio.Task] = None
        self._closed = False

    def _set_status(self, status: SyncStatus) -> None:
        if self._closed or status == self.status:
            return
        logger.debug("%s: %s -> %s", self.key, self.status.value, status.value)
        self.status = status
        if self.on_change is not None:
            self.on_change(status)

    def _apply(self, resolved: ResolvedResource) -> None:
        self.payload = resolved.payload
        self.served_from_network = resolved.served_from_network
        self.error = None

    async def load(self) -> Optional[ResolvedResource]:
        """Initial load; returns None if the resource exists in no tier."""
        if self._closed:
            return None
        self.is_loading = True
        try:
            resolved = await self.resolver.resolve(self.key)
        except ResourceNotFound as exc:
            if not self._closed:
                self.error = exc.message
            return None
        finally:
            self.is_loading = False
        if not self._closed:
            self._apply(resolved)
        return resolved

    async def refresh(self) -> bool:
        """
        User-initiated sync.

        Returns False without doing anything while a sync is in progress.
        Returns True once the attempt finished, whatever its outcome.
        Errors other than a missing resource are re-raised after the
        controller has moved to `error`.
        """
        if self._closed or self.status == SyncStatus.SYNCING:
            return False
        self._cancel_reset()
        self._set_status(SyncStatus.SYNCING)
        try:
            resolved = await self.resolver.resolve(self.key)
        except ResourceNotFound as exc:
            if not self._closed:
                self.error = exc.message
            self._set_status(SyncStatus.ERROR)
            logger.warning("Sync failed for '%s': %s", self.key, exc.message)
            return True
        except asyncio.CancelledError:
            self._set_status(SyncStatus.IDLE)
            raise
        except Exception as exc:
            if not self._closed:
                self.error = str(exc) or type(exc).__name__
            self._set_status(SyncStatus.ERROR)
            logger.error("Sync for '%s' failed unexpectedly", self.key, exc_info=True)
            raise

        if self._closed:
            return True
        self._apply(resolved)
        self.last_synced_at = self._clock()
        self._set_status(SyncStatus.SUCCESS)
        self._reset_task = asyncio.get_running_loop().create_task(self._reset_later(), name=f"sync-reset:{self.key}")
        return True

    async def _reset_later(self) -> None:
        await asyncio.sleep(self.reset_delay)
        if self.status == SyncStatus.SUCCESS:
            self._set_status(SyncStatus.IDLE)

    def _cancel_reset(self) -> None:
        if self._reset_task is not None and not self._reset_task.done():
            self._reset_task.cancel()
        self._reset_task = None

    def close(self) -> None:
        """Stop the reset timer; later results are discarded."""
        self._cancel_reset()
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    def snapshot(self) -> dict:
        """State for UI and API responses."""
        return {
            "key": self.key,
            "status": self.status.value,
            "is_loading": self.is_loading,
            "is_offline_copy": None if self.served_from_network is None else not self.served_from_network,
            "last_synced_at": self.last_synced_at,
            "error": self.error,
        }
