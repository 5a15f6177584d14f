"""
Linkpick Caching Layer

Cache in front of the content repository, sized by data volatility:
- Redis read-through cache with TTL tiers per content type
- Per-type invalidation when a snapshot is rewritten
- Page revalidation webhook for statically-rendered pages
- Cache warming after publishes and on a timer

Usage:
    cache = ReadThroughCache()
    sections = await cache.with_content_cache(
        ContentType.SECTIONS, "homepage", repository.get_sections
    )

    # Drop a type after its snapshot changes
    await CacheInvalidator(cache).invalidate(ContentType.SECTIONS)
"""

from src.cache.config import CacheConfig, CacheTTL, get_cache_config
from src.cache.compression import CacheCompressor, CompressionStats
from src.cache.redis_cache import (
    ReadThroughCache,
    CacheLookup,
    CacheStats,
    CircuitBreaker,
    CacheUnavailableError,
)
from src.cache.invalidation import (
    CacheInvalidator,
    InvalidationResult,
    PageRevalidator,
    DEFAULT_REVALIDATE_PATHS,
)

__all__ = [
    # Config
    "CacheConfig",
    "CacheTTL",
    "get_cache_config",
    # Compression
    "CacheCompressor",
    "CompressionStats",
    # Redis
    "ReadThroughCache",
    "CacheLookup",
    "CacheStats",
    "CircuitBreaker",
    "CacheUnavailableError",
    # Invalidation
    "CacheInvalidator",
    "InvalidationResult",
    "PageRevalidator",
    "DEFAULT_REVALIDATE_PATHS",
]
