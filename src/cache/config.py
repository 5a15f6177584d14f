"""
Cache Configuration

Centralized configuration for the Redis read-through cache.
TTLs are fixed tiers chosen by data volatility.
"""

import os
from dataclasses import dataclass, field
from datetime import timedelta
from functools import lru_cache

from src.content.types import ContentType


@dataclass(frozen=True)
class CacheTTL:
    """
    Cache TTL tiers by content type.

    Campaign listings change with every new application or status flip, so
    they are the shortest. UI configuration (hero slides, static texts) is
    only touched from the admin console and invalidated explicitly on edit,
    so it caches longest.
    """

    CAMPAIGN_LISTING: timedelta = timedelta(seconds=60)
    CATEGORY_STATS: timedelta = timedelta(minutes=2)
    SECTIONS: timedelta = timedelta(minutes=10)
    CATEGORY_MENU: timedelta = timedelta(minutes=15)
    UI_CONFIG: timedelta = timedelta(minutes=30)

    @classmethod
    def for_content_type(cls, content_type: ContentType) -> timedelta:
        """Get TTL tier for a content type."""
        mapping = {
            ContentType.CAMPAIGNS: cls.CAMPAIGN_LISTING,
            ContentType.CATEGORY_STATS: cls.CATEGORY_STATS,
            ContentType.SECTIONS: cls.SECTIONS,
            ContentType.CATEGORIES: cls.CATEGORY_MENU,
            ContentType.HERO: cls.UI_CONFIG,
            ContentType.UI_TEXT: cls.UI_CONFIG,
        }
        return mapping.get(content_type, cls.SECTIONS)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class CacheConfig:
    """
    Main cache configuration.

    Settings can be overridden via environment variables:
    - REDIS_URL: Redis connection URL
    - CACHE_NAMESPACE: Prefix for every key written by this service
    - CACHE_ENABLED: Enable/disable caching globally
    - CACHE_COMPRESSION_ENABLED / CACHE_COMPRESSION_THRESHOLD
    - CACHE_CIRCUIT_BREAKER_* : circuit breaker tuning
    """

    redis_url: str = field(default_factory=lambda: os.getenv(
        "REDIS_URL",
        "redis://localhost:6379/0"
    ))

    namespace: str = field(default_factory=lambda: os.getenv(
        "CACHE_NAMESPACE",
        "linkpick"
    ))

    enabled: bool = field(default_factory=lambda: _env_flag("CACHE_ENABLED", "true"))

    # Connection pool
    redis_max_connections: int = field(default_factory=lambda: int(os.getenv(
        "REDIS_MAX_CONNECTIONS", "50"
    )))
    redis_socket_timeout: float = field(default_factory=lambda: float(os.getenv(
        "REDIS_SOCKET_TIMEOUT", "2.0"
    )))
    redis_connect_timeout: float = field(default_factory=lambda: float(os.getenv(
        "REDIS_CONNECT_TIMEOUT", "2.0"
    )))

    # Compression
    compression_enabled: bool = field(
        default_factory=lambda: _env_flag("CACHE_COMPRESSION_ENABLED", "true")
    )
    compression_threshold: int = field(default_factory=lambda: int(os.getenv(
        "CACHE_COMPRESSION_THRESHOLD", "1024"
    )))

    # Circuit breaker
    circuit_breaker_enabled: bool = field(
        default_factory=lambda: _env_flag("CACHE_CIRCUIT_BREAKER_ENABLED", "true")
    )
    circuit_breaker_threshold: int = field(default_factory=lambda: int(os.getenv(
        "CACHE_CIRCUIT_BREAKER_THRESHOLD", "5"
    )))
    circuit_breaker_timeout: int = field(default_factory=lambda: int(os.getenv(
        "CACHE_CIRCUIT_BREAKER_TIMEOUT", "30"
    )))

    # SCAN batch size for prefix deletion
    scan_count: int = 100


@lru_cache(maxsize=1)
def get_cache_config() -> CacheConfig:
    """Get singleton cache configuration."""
    return CacheConfig()
