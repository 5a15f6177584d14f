"""
Tests for the homepage preload aggregator.

These tests verify:
- Second load within the TTL is served entirely from cache
- Fallback chain cache -> database -> snapshot per sub-resource
- Partial results and TotalUnavailableError when every tier fails
"""

import asyncio

import pytest

from src.cache.compression import MARKER_ZSTD
from src.content.types import ContentType, DataSource
from src.preload.aggregator import PreloadAggregator, TotalUnavailableError


SNAPSHOT_SECTIONS = {
    "type": "ui-sections-structure",
    "sections": [
        {"id": "hero", "order": 0, "visible": True},
        {"id": "hidden", "order": 1, "visible": False},
        {"id": "popular", "order": 2},
    ],
    "sectionOrder": [],
}


# =============================================================================
# CACHE BEHAVIOR
# =============================================================================

@pytest.mark.asyncio
class TestPreloadCaching:

    async def test_second_load_is_cached(self, aggregator, repository):
        first = await aggregator.load()
        calls = dict(repository.calls)
        second = await aggregator.load()

        assert first.metadata.cached is False
        assert first.metadata.source is DataSource.DATABASE
        assert second.metadata.cached is True
        assert second.metadata.source is DataSource.CACHE
        assert dict(repository.calls) == calls
        assert second.sections == repository.sections
        assert second.campaigns == repository.campaigns
        assert second.category_stats == repository.stats

    async def test_result_shape(self, aggregator):
        data = (await aggregator.load()).to_dict()

        assert set(data) == {"sections", "campaigns", "categoryStats", "metadata"}
        assert data["metadata"]["sources"] == {
            "sections": "database",
            "campaigns": "database",
            "categoryStats": "database",
        }
        assert data["metadata"]["loadTimeMs"] >= 0

    async def test_mixed_sources_report_worst(self, aggregator, cache):
        await aggregator.load()
        await cache.invalidate_type(ContentType.CAMPAIGNS)

        result = await aggregator.load()

        assert result.metadata.cached is False
        assert result.metadata.source is DataSource.DATABASE
        assert result.metadata.sources["sections"] is DataSource.CACHE
        assert result.metadata.sources["campaigns"] is DataSource.DATABASE

    async def test_campaign_limit(self, repository, cache, store):
        aggregator = PreloadAggregator(repository, cache, store, campaign_limit=1)

        result = await aggregator.load()

        assert len(result.campaigns) == 1

    async def test_concurrent_loads_share_fetches(self, aggregator, repository):
        repository.delay = 0.05

        await asyncio.gather(aggregator.load(), aggregator.load(), aggregator.load())

        assert repository.calls["sections"] == 1
        assert repository.calls["campaigns"] == 1
        assert repository.calls["stats"] == 1

    async def test_timed_out_load_does_not_break_concurrent_load(self, aggregator, repository):
        repository.delay = 0.2

        impatient = asyncio.create_task(asyncio.wait_for(aggregator.load(), 0.05))
        await asyncio.sleep(0.01)
        result = await aggregator.load()

        with pytest.raises(asyncio.TimeoutError):
            await impatient
        assert result.metadata.source is DataSource.DATABASE
        assert result.sections == repository.sections
        assert repository.calls["sections"] == 1

    async def test_sub_resources_resolve_concurrently(self, aggregator, repository):
        repository.delay = 0.2

        result = await aggregator.load()

        # Sequential resolution would take at least 600ms
        assert result.metadata.load_time_ms < 500


# =============================================================================
# SNAPSHOT RECORDING
# =============================================================================

@pytest.mark.asyncio
class TestSnapshotRecording:

    async def test_database_results_recorded_as_snapshots(self, aggregator, repository, store):
        await aggregator.load()

        campaigns = await store.read(ContentType.CAMPAIGNS)
        stats = await store.read(ContentType.CATEGORY_STATS)
        assert campaigns.payload["campaigns"] == repository.campaigns
        assert stats.payload["stats"] == repository.stats

    async def test_sections_snapshot_not_written_by_aggregator(self, aggregator, store):
        await aggregator.load()
        assert await store.read(ContentType.SECTIONS) is None

    async def test_unchanged_values_not_rewritten(self, aggregator, store, cache):
        await aggregator.load()
        before = await store.read(ContentType.CAMPAIGNS)

        await cache.invalidate_type(ContentType.CAMPAIGNS)
        await aggregator.load()

        assert (await store.read(ContentType.CAMPAIGNS)).version == before.version


# =============================================================================
# FALLBACK CHAIN
# =============================================================================

@pytest.mark.asyncio
class TestFallbackChain:

    async def test_snapshot_serves_when_cache_and_database_down(
        self, aggregator, repository, store, fake_redis,
    ):
        await store.update(ContentType.SECTIONS, SNAPSHOT_SECTIONS)
        await aggregator.load()

        fake_redis.fail = True
        repository.fail_all()
        result = await aggregator.load()

        assert result.metadata.source is DataSource.SNAPSHOT
        assert result.metadata.cached is False
        assert set(result.metadata.sources.values()) == {DataSource.SNAPSHOT}
        assert [s["id"] for s in result.sections] == ["hero", "popular"]
        assert result.campaigns == repository.campaigns
        assert result.category_stats == repository.stats

    async def test_database_serves_when_cache_down(self, aggregator, repository, fake_redis):
        fake_redis.fail = True

        result = await aggregator.load()

        assert result.metadata.source is DataSource.DATABASE
        assert result.campaigns == repository.campaigns

    async def test_one_failing_query_falls_back_alone(self, aggregator, repository, cache):
        await aggregator.load()
        await cache.invalidate_type(ContentType.CAMPAIGNS)
        repository.failing = {"campaigns"}

        result = await aggregator.load()

        assert result.metadata.sources["campaigns"] is DataSource.SNAPSHOT
        assert result.metadata.sources["sections"] is DataSource.CACHE
        assert result.metadata.source is DataSource.SNAPSHOT
        assert result.campaigns == repository.campaigns

    async def test_every_tier_failing_raises(self, aggregator, repository, fake_redis):
        fake_redis.fail = True
        repository.fail_all()

        with pytest.raises(TotalUnavailableError) as exc_info:
            await aggregator.load()

        assert sorted(exc_info.value.failed) == ["campaigns", "categoryStats", "sections"]
        partial = exc_info.value.partial
        assert partial.sections == []
        assert partial.campaigns == []
        assert partial.category_stats == {}

    async def test_degraded_load_returns_partial(self, aggregator, repository):
        repository.failing = {"campaigns"}

        result = await aggregator.load_degraded()

        assert result.metadata.failed == ["campaigns"]
        assert result.campaigns == []
        assert result.sections == repository.sections
        assert result.metadata.source is DataSource.SNAPSHOT

    async def test_corrupt_cache_entry_treated_as_miss(self, aggregator, repository, cache, fake_redis):
        key = cache.content_key(ContentType.SECTIONS, "homepage")
        fake_redis.data[key] = b"\x07corrupt"

        result = await aggregator.load()

        assert result.metadata.sources["sections"] is DataSource.DATABASE
        assert result.sections == repository.sections

    async def test_corrupt_zstd_entry_treated_as_miss(self, aggregator, repository, cache, fake_redis):
        key = cache.content_key(ContentType.SECTIONS, "homepage")
        fake_redis.data[key] = MARKER_ZSTD + b"not zstd"

        result = await aggregator.load()

        assert result.metadata.sources["sections"] is DataSource.DATABASE
        assert result.sections == repository.sections
