"""
Pytest Configuration and Shared Fixtures

Provides in-memory doubles for Redis and the content repository, plus
wired-up cache, snapshot store and aggregator fixtures.
"""

import asyncio
import copy
import fnmatch
import time
from collections import Counter
from typing import Any, Dict, List, Optional

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from src.cache.config import CacheConfig
from src.cache.invalidation import CacheInvalidator
from src.cache.redis_cache import ReadThroughCache
from src.content.repository import ContentRepository
from src.preload.aggregator import PreloadAggregator
from src.snapshot.store import SnapshotStore


# ============================================================================
# Redis Double
# ============================================================================

class FakeRedis:
    """In-memory stand-in for redis.asyncio.Redis (only the calls the cache makes)."""

    def __init__(self):
        self.data: Dict[str, bytes] = {}
        self.expiry: Dict[str, float] = {}
        self.fail = False
        self.delete_calls = 0
        self.closed = False

    def _check(self):
        if self.fail:
            raise RedisConnectionError("Connection refused")

    def _purge(self, key: str):
        expires = self.expiry.get(key)
        if expires is not None and expires <= time.monotonic():
            self.data.pop(key, None)
            self.expiry.pop(key, None)

    async def get(self, key):
        self._check()
        self._purge(key)
        return self.data.get(key)

    async def set(self, key, value):
        self._check()
        self.data[key] = value
        self.expiry.pop(key, None)
        return True

    async def setex(self, key, seconds, value):
        self._check()
        self.data[key] = value
        self.expiry[key] = time.monotonic() + seconds
        return True

    async def scan_iter(self, match=None, count=None):
        self._check()
        for key in list(self.data):
            self._purge(key)
            if key in self.data and (match is None or fnmatch.fnmatchcase(key, match)):
                yield key

    async def delete(self, *keys):
        self._check()
        self.delete_calls += 1
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
            self.expiry.pop(key, None)
        return removed

    async def ttl(self, key):
        self._check()
        self._purge(key)
        if key not in self.data:
            return -2
        if key not in self.expiry:
            return -1
        return int(self.expiry[key] - time.monotonic())

    async def ping(self):
        self._check()
        return True

    async def aclose(self):
        self.closed = True


# ============================================================================
# Repository Double
# ============================================================================

SAMPLE_SECTIONS = [
    {"id": "hero", "type": "hero", "order": 0, "visible": True},
    {"id": "popular", "type": "campaign-grid", "order": 1, "visible": True},
]

SAMPLE_CAMPAIGNS = [
    {"id": 101, "title": "Seoul cafe review", "category": "food"},
    {"id": 102, "title": "Skincare trial", "category": "beauty"},
]

SAMPLE_STATS = {"food": 12, "beauty": 7}


class FakeRepository(ContentRepository):
    """Counts calls per query and fails the queries named in `failing`."""

    def __init__(
        self,
        sections: Optional[List[Dict[str, Any]]] = None,
        campaigns: Optional[List[Dict[str, Any]]] = None,
        stats: Optional[Dict[str, Any]] = None,
    ):
        self.sections = sections if sections is not None else copy.deepcopy(SAMPLE_SECTIONS)
        self.campaigns = campaigns if campaigns is not None else copy.deepcopy(SAMPLE_CAMPAIGNS)
        self.stats = stats if stats is not None else dict(SAMPLE_STATS)
        self.calls = Counter()
        self.failing = set()
        self.delay = 0.0

    async def _serve(self, name: str, value: Any) -> Any:
        self.calls[name] += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if name in self.failing:
            raise RuntimeError(f"database unavailable: {name}")
        return copy.deepcopy(value)

    async def get_sections(self):
        return await self._serve("sections", self.sections)

    async def get_active_campaigns(self, limit: int = 20):
        campaigns = await self._serve("campaigns", self.campaigns)
        return campaigns[:limit]

    async def get_category_stats(self):
        return await self._serve("stats", self.stats)

    def fail_all(self):
        self.failing = {"sections", "campaigns", "stats"}


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def cache_config() -> CacheConfig:
    return CacheConfig(
        redis_url="redis://localhost:6379/15",
        namespace="test",
        enabled=True,
        compression_enabled=True,
        compression_threshold=1024,
        circuit_breaker_enabled=True,
        circuit_breaker_threshold=5,
        circuit_breaker_timeout=30,
    )


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def cache(cache_config, fake_redis) -> ReadThroughCache:
    return ReadThroughCache(cache_config, client=fake_redis)


@pytest.fixture
def store(tmp_path) -> SnapshotStore:
    return SnapshotStore(tmp_path / "snapshots")


@pytest.fixture
def repository() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def invalidator(cache) -> CacheInvalidator:
    return CacheInvalidator(cache)


@pytest.fixture
def aggregator(repository, cache, store) -> PreloadAggregator:
    return PreloadAggregator(repository, cache, store, campaign_limit=20)
