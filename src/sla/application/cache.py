"""
Tenant-scoped caches for calendars and configurations.

Caches are plain objects handed to the services that use them; admin writes
invalidate the affected organization.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Generic, Hashable, Tuple, TypeVar

from shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class TenantScopedCache(Generic[T]):
    """
    Async read-through cache keyed by (organization_id, key).

    Loads for the same key are serialised so concurrent sweep workers hit
    the database once.
    """

    def __init__(self, name: str):
        self.name = name
        self._entries: Dict[Tuple[str, Hashable], T] = {}
        self._locks: Dict[Tuple[str, Hashable], asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, organization_id: str, key: Hashable = None) -> Any:
        return self._entries.get((organization_id, key))

    async def get_or_load(
        self,
        organization_id: str,
        key: Hashable,
        loader: Callable[[], Awaitable[T]]
    ) -> T:
        cache_key = (organization_id, key)
        if cache_key in self._entries:
            return self._entries[cache_key]

        lock = self._locks.setdefault(cache_key, asyncio.Lock())
        async with lock:
            if cache_key not in self._entries:
                self._entries[cache_key] = await loader()
        return self._entries[cache_key]

    def invalidate(self, organization_id: str) -> None:
        stale = [k for k in self._entries if k[0] == organization_id]
        for cache_key in stale:
            self._entries.pop(cache_key, None)
            self._locks.pop(cache_key, None)
        if stale:
            logger.debug(
                "Cache invalidated",
                extra={"cache": self.name, "organization_id": organization_id, "entries": len(stale)}
            )

    def clear(self) -> None:
        self._entries.clear()
        self._locks.clear()


class SlaCaches:
    """The caches shared by the tracking, sweep and admin services."""

    def __init__(self):
        self.configurations: TenantScopedCache = TenantScopedCache("configurations")
        self.calendars: TenantScopedCache = TenantScopedCache("calendars")

    def invalidate(self, organization_id: str) -> None:
        self.configurations.invalidate(organization_id)
        self.calendars.invalidate(organization_id)

    def clear(self) -> None:
        self.configurations.clear()
        self.calendars.clear()
