"""Unit tests for the tenant-scoped caches and the conflict retry helper."""

import asyncio
from uuid import uuid4

import pytest

from core import ConcurrentModificationException
from sla.application import SlaCaches, TenantScopedCache, run_with_retry

from tests.factories import ORG, OTHER_ORG


class CountingLoader:
    def __init__(self, value="loaded", delay=0.0):
        self.value = value
        self.delay = delay
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.value


class TestTenantScopedCache:

    @pytest.mark.asyncio
    async def test_loads_once(self):
        cache = TenantScopedCache("configurations")
        loader = CountingLoader()

        first = await cache.get_or_load(ORG, "support", loader)
        second = await cache.get_or_load(ORG, "support", loader)

        assert first == second == "loaded"
        assert loader.calls == 1

    @pytest.mark.asyncio
    async def test_concurrent_loads_are_serialised(self):
        cache = TenantScopedCache("calendars")
        loader = CountingLoader(delay=0.01)

        results = await asyncio.gather(
            *(cache.get_or_load(ORG, "schedule", loader) for _ in range(5))
        )

        assert results == ["loaded"] * 5
        assert loader.calls == 1

    @pytest.mark.asyncio
    async def test_invalidate_only_touches_one_organization(self):
        cache = TenantScopedCache("configurations")
        await cache.get_or_load(ORG, "support", CountingLoader("acme"))
        await cache.get_or_load(OTHER_ORG, "support", CountingLoader("globex"))

        cache.invalidate(ORG)

        assert cache.get(ORG, "support") is None
        assert cache.get(OTHER_ORG, "support") == "globex"
        assert len(cache) == 1

    @pytest.mark.asyncio
    async def test_sla_caches_invalidate_both(self):
        caches = SlaCaches()
        await caches.configurations.get_or_load(ORG, "support", CountingLoader())
        await caches.calendars.get_or_load(ORG, uuid4(), CountingLoader())

        caches.invalidate(ORG)

        assert len(caches.configurations) == 0
        assert len(caches.calendars) == 0


class TestRunWithRetry:

    @pytest.mark.asyncio
    async def test_retries_conflicts(self):
        attempts = []

        async def operation():
            attempts.append(1)
            if len(attempts) < 3:
                raise ConcurrentModificationException("t-1")
            return "saved"

        assert await run_with_retry(operation, max_retries=3) == "saved"
        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        attempts = []

        async def operation():
            attempts.append(1)
            raise ConcurrentModificationException("t-1")

        with pytest.raises(ConcurrentModificationException):
            await run_with_retry(operation, max_retries=2)
        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self):
        attempts = []

        async def operation():
            attempts.append(1)
            raise ValueError("boom")

        with pytest.raises(ValueError):
            await run_with_retry(operation, max_retries=5)
        assert len(attempts) == 1
