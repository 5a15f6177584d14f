"""
Tests for cache invalidation and page revalidation.
"""

import json

import httpx
import pytest

from src.cache.invalidation import CacheInvalidator, PageRevalidator
from src.content.types import ContentType


def recording_transport(status_code=200):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status_code, json={"revalidated": True})

    return httpx.MockTransport(handler), requests


@pytest.mark.asyncio
class TestPageRevalidator:

    async def test_posts_paths_with_bearer_secret(self):
        transport, requests = recording_transport()
        revalidator = PageRevalidator(
            "https://web.example.com/api/revalidate",
            secret="s3cret",
            transport=transport,
        )

        assert await revalidator.revalidate(["/", "/[...slug]"]) is True

        assert len(requests) == 1
        request = requests[0]
        assert request.method == "POST"
        assert request.headers["Authorization"] == "Bearer s3cret"
        assert json.loads(request.content) == {"paths": ["/", "/[...slug]"]}

    async def test_disabled_without_url(self):
        transport, requests = recording_transport()
        revalidator = PageRevalidator(transport=transport)

        assert revalidator.is_enabled is False
        assert await revalidator.revalidate() is False
        assert requests == []

    async def test_error_status_returns_false(self):
        transport, _ = recording_transport(status_code=500)
        revalidator = PageRevalidator("https://web.example.com/api/revalidate", transport=transport)

        assert await revalidator.revalidate() is False

    async def test_network_error_returns_false(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        revalidator = PageRevalidator(
            "https://web.example.com/api/revalidate",
            transport=httpx.MockTransport(handler),
        )

        assert await revalidator.revalidate() is False


@pytest.mark.asyncio
class TestCacheInvalidator:

    async def test_invalidates_only_the_type_prefix(self, cache, invalidator):
        await cache.set(cache.content_key(ContentType.SECTIONS, "homepage"), [1], 60)
        await cache.set(cache.content_key(ContentType.CATEGORY_STATS, "homepage"), {"a": 1}, 60)

        result = await invalidator.invalidate(ContentType.SECTIONS)

        assert result.success is True
        assert result.keys_invalidated == 1
        assert result.content_type is ContentType.SECTIONS
        assert await cache.get(cache.content_key(ContentType.CATEGORY_STATS, "homepage")) == {"a": 1}

    async def test_redis_down_is_not_an_error(self, cache, invalidator, fake_redis):
        fake_redis.fail = True

        result = await invalidator.invalidate(ContentType.HERO)

        assert result.success is True
        assert result.keys_invalidated == 0

    async def test_unexpected_error_recorded(self):
        class BrokenCache:
            async def invalidate_type(self, content_type):
                raise RuntimeError("boom")

        result = await CacheInvalidator(BrokenCache()).invalidate(ContentType.HERO)

        assert result.success is False
        assert result.errors == ["boom"]
