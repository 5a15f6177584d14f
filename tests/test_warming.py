"""
Tests for the homepage cache warmer.
"""

import asyncio

import pytest

from src.cache.warming import CacheWarmer
from src.content.types import ContentType
from src.sync.coordinator import SyncCoordinator


@pytest.mark.asyncio
class TestCacheWarmer:

    async def test_warm_homepage_populates_cache(self, aggregator, repository):
        warmer = CacheWarmer(aggregator)

        metadata = await warmer.warm_homepage()
        assert metadata["source"] == "database"

        result = await aggregator.load()
        assert result.metadata.cached is True
        assert repository.calls["sections"] == 1

    async def test_warming_never_raises(self, aggregator, repository, fake_redis):
        fake_redis.fail = True
        repository.fail_all()

        metadata = await CacheWarmer(aggregator).warm_homepage()

        assert sorted(metadata["failed"]) == ["campaigns", "categoryStats", "sections"]

    async def test_background_warmer_start_stop(self, aggregator, repository):
        warmer = CacheWarmer(aggregator, interval_seconds=60)

        await warmer.start_background_warmer()
        await asyncio.sleep(0.05)
        assert warmer.is_running
        assert repository.calls["sections"] == 1

        await warmer.stop_background_warmer()
        assert not warmer.is_running

    async def test_rewarms_after_flush(self, aggregator, repository, store, invalidator):
        warmer = CacheWarmer(aggregator)
        coordinator = SyncCoordinator(
            store,
            invalidator,
            debounce_seconds=10.0,
            post_flush=warmer.warm_after_flush,
        )
        await aggregator.load()

        coordinator.queue_update("sections", {"sections": [{"id": "new", "order": 0}]})
        await coordinator.sync_now()

        # Sections were invalidated and immediately re-fetched by the warmer
        assert repository.calls["sections"] == 2
        result = await aggregator.load()
        assert result.metadata.sources["sections"].value == "cache"
        assert (await store.read(ContentType.SECTIONS)).payload["sections"][0]["id"] == "new"
