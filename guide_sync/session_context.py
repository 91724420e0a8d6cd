"""Per-session state shared by the resolver, TTL cache and backoff coordinator.

One `SessionContext` is created per application session and passed to every
component that needs connectivity state or detached background work. Nothing in
here is module-global, so tests get a clean session by building a new context.
"""

from __future__ import annotations

import asyncio
from typing import Any, Coroutine, Dict, Set

from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="session")


class SessionContext:
    """Connectivity flags, detached task registry and session-scoped caches."""

    def __init__(self, online: bool = True, simulate_offline: bool = False) -> None:
        self.online = online
        self.simulate_offline = simulate_offline
        self._tasks: Set[asyncio.Task] = set()
        # backoff coordinator state; dropped when the session ends
        self.success_cache: Dict[str, Any] = {}
        self.inflight: Dict[str, asyncio.Task] = {}

    @property
    def is_offline(self) -> bool:
        """True when the device reports no connectivity or offline is forced."""
        return self.simulate_offline or not self.online

    def set_online(self, online: bool) -> None:
        if online != self.online:
            logger.info("Connectivity changed: %s", "online" if online else "offline")
        self.online = online

    def set_simulate_offline(self, enabled: bool) -> None:
        if enabled != self.simulate_offline:
            logger.info("Simulated offline mode %s", "enabled" if enabled else "disabled")
        self.simulate_offline = enabled

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task:
        """
        Run `coro` as a detached task owned by the session.

        The task is referenced until it finishes. Its exception, if any, is
        logged here because no caller awaits it.
        """
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Background task %s failed: %s", task.get_name(), exc)

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until every detached task (including ones they spawn) has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel outstanding work and forget session caches."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self.success_cache.clear()
        self.inflight.clear()
        logger.debug("Session closed (%d task(s) cancelled)", len(tasks))
