"""Interfaces and helpers for remote resource sources."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Protocol


class ResourceSource(Protocol):
    """Anything that can fetch a resource bundle by normalized key."""

    async def fetch(self, key: str) -> Any:
        """
        Return the decoded payload for `key`.

        Raise NetworkFailure on transport errors, non-2xx responses or
        undecodable bodies. Cancelling the awaiting task must abort the request.
        """
        ...


@dataclass
class CallableResourceSource(ResourceSource):
    """Wrap an async callable so it can be swapped in for the HTTP source."""

    fetcher: Callable[[str], Awaitable[Any]]

    async def fetch(self, key: str) -> Any:
        """Delegate to the configured callable."""
        return await self.fetcher(key)
