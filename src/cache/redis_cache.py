"""
Redis Read-Through Cache

Optional acceleration layer in front of the repository:
- get / set / delete-by-prefix plus a with_cache get-or-compute primitive
- Single-flight: concurrent misses on one key share a single fetch
- Circuit breaker so a dead Redis fails fast instead of timing out per call
- Graceful degradation: every operation becomes a no-op when Redis is down
- Automatic compression for large values
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar, Union

from redis.asyncio import Redis, ConnectionPool
from redis.exceptions import RedisError

from src.cache.config import CacheConfig, CacheTTL, get_cache_config
from src.cache.compression import (
    CacheCompressor,
    serialize_value,
    deserialize_value,
)
from src.content.types import ContentType


logger = logging.getLogger(__name__)

T = TypeVar('T')

Fetcher = Callable[[], Awaitable[T]]
TTL = Union[timedelta, int, None]


class CacheUnavailableError(RedisError):
    """Raised internally when the circuit breaker rejects a call."""
    pass


@dataclass
class CacheStats:
    """Cache operation statistics."""
    hits: int = 0
    misses: int = 0
    errors: int = 0
    fetches: int = 0
    bytes_written: int = 0
    bytes_read: int = 0
    latency_samples: List[float] = field(default_factory=list)

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    @property
    def avg_latency_ms(self) -> float:
        recent = self.latency_samples[-100:]
        if not recent:
            return 0.0
        return sum(recent) / len(recent) * 1000

    def record_latency(self, seconds: float):
        self.latency_samples.append(seconds)
        if len(self.latency_samples) > 1000:
            self.latency_samples = self.latency_samples[-1000:]


@dataclass
class CircuitBreakerState:
    failures: int = 0
    last_failure: float = 0.0
    is_open: bool = False
    opened_at: float = 0.0


class CircuitBreaker:
    """
    Circuit breaker for the Redis connection.

    Opens after `threshold` consecutive failures, rejects calls for
    `timeout` seconds, then lets requests through again.
    """

    def __init__(self, threshold: int = 5, timeout: int = 30):
        self.threshold = threshold
        self.timeout = timeout
        self.state = CircuitBreakerState()
        self._lock = asyncio.Lock()

    async def is_available(self) -> bool:
        if not self.state.is_open:
            return True

        if time.time() - self.state.opened_at >= self.timeout:
            async with self._lock:
                self.state.is_open = False
                self.state.failures = 0
                logger.info("Circuit breaker closed, allowing requests")
            return True

        return False

    async def record_success(self):
        async with self._lock:
            self.state.failures = 0
            self.state.is_open = False

    async def record_failure(self):
        async with self._lock:
            self.state.failures += 1
            self.state.last_failure = time.time()

            if self.state.failures >= self.threshold and not self.state.is_open:
                self.state.is_open = True
                self.state.opened_at = time.time()
                logger.warning(
                    f"Circuit breaker opened after {self.state.failures} failures. "
                    f"Will retry in {self.timeout} seconds."
                )


@dataclass
class CacheLookup:
    """Result of a read-through lookup."""
    value: Any
    hit: bool


def _ttl_seconds(ttl: TTL) -> Optional[int]:
    if ttl is None:
        return None
    if isinstance(ttl, timedelta):
        return max(1, int(ttl.total_seconds()))
    return max(1, int(ttl))


class ReadThroughCache:
    """
    Redis-backed read-through cache.

    The cache is never a hard dependency: if Redis cannot be reached,
    get returns None, set returns False, delete returns 0 and with_cache
    simply calls the fetcher.
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        client: Optional[Redis] = None,
    ):
        self.config = config or get_cache_config()
        self._pool: Optional[ConnectionPool] = None
        self._redis: Optional[Redis] = client
        self._initialized = client is not None
        self._compressor = CacheCompressor(
            enabled=self.config.compression_enabled,
            threshold=self.config.compression_threshold,
        )
        self._circuit_breaker = CircuitBreaker(
            threshold=self.config.circuit_breaker_threshold,
            timeout=self.config.circuit_breaker_timeout,
        ) if self.config.circuit_breaker_enabled else None
        self._stats = CacheStats()
        self._lock = asyncio.Lock()
        self._inflight: Dict[str, asyncio.Task] = {}

    async def initialize(self) -> bool:
        """
        Connect to Redis.

        Returns False instead of raising when Redis is unreachable.
        """
        if self._initialized:
            return True

        async with self._lock:
            if self._initialized:
                return True

            try:
                self._pool = ConnectionPool.from_url(
                    self.config.redis_url,
                    max_connections=self.config.redis_max_connections,
                    socket_timeout=self.config.redis_socket_timeout,
                    socket_connect_timeout=self.config.redis_connect_timeout,
                    decode_responses=False,
                )
                self._redis = Redis(connection_pool=self._pool)
                await self._redis.ping()
                self._initialized = True
                logger.info(f"Redis cache initialized: {self.config.redis_url}")

            except (RedisError, OSError) as e:
                logger.warning(f"Redis unavailable, cache disabled for now: {e}")
                if self._circuit_breaker:
                    await self._circuit_breaker.record_failure()
                await self._release_connection()

        return self._initialized

    async def _release_connection(self):
        if self._redis is not None:
            try:
                await self._redis.aclose()
            except (RedisError, OSError) as e:
                logger.debug(f"Error closing Redis client: {e}")
        if self._pool is not None:
            await self._pool.disconnect()
        self._redis = None
        self._pool = None
        self._initialized = False

    async def close(self):
        """Close Redis connection pool."""
        await self._release_connection()
        logger.info("Redis cache closed")

    @asynccontextmanager
    async def _with_circuit_breaker(self):
        if self._circuit_breaker and not await self._circuit_breaker.is_available():
            raise CacheUnavailableError("Circuit breaker is open")

        try:
            yield
        except (RedisError, OSError):
            if self._circuit_breaker:
                await self._circuit_breaker.record_failure()
            raise
        else:
            if self._circuit_breaker:
                await self._circuit_breaker.record_success()

    async def _client(self) -> Optional[Redis]:
        """Return a connected client, or None when the cache is unusable."""
        if not self.config.enabled:
            return None
        if self._circuit_breaker and not await self._circuit_breaker.is_available():
            return None
        if not self._initialized and not await self.initialize():
            return None
        return self._redis

    # =========================================================================
    # Keys
    # =========================================================================

    def make_key(self, *parts: Any) -> str:
        """Create namespaced cache key."""
        return f"{self.config.namespace}:{':'.join(str(p) for p in parts)}"

    def type_prefix(self, content_type: ContentType) -> str:
        """Key prefix shared by every entry of a content type."""
        return self.make_key(content_type.cache_prefix, "")

    def content_key(self, content_type: ContentType, *parts: Any) -> str:
        return self.make_key(content_type.cache_prefix, *parts)

    # =========================================================================
    # Core Operations
    # =========================================================================

    async def get(self, key: str) -> Optional[Any]:
        """
        Get value from cache.

        Returns None if the key doesn't exist, the cache is disabled,
        Redis is unavailable, or the stored value can't be decoded.
        """
        client = await self._client()
        if client is None:
            return None

        start_time = time.time()

        try:
            async with self._with_circuit_breaker():
                data = await client.get(key)
        except (RedisError, OSError) as e:
            self._stats.errors += 1
            logger.warning(f"Cache get failed for {key}, treating as miss: {e}")
            return None

        self._stats.record_latency(time.time() - start_time)

        if data is None:
            self._stats.misses += 1
            return None

        try:
            value = deserialize_value(self._compressor.decompress(data))
        except (ValueError, RuntimeError) as e:
            self._stats.errors += 1
            logger.error(f"Cache decode error for {key}: {e}")
            return None

        self._stats.hits += 1
        self._stats.bytes_read += len(data)
        return value

    async def set(self, key: str, value: Any, ttl: TTL = None) -> bool:
        """Set value with optional TTL. Returns True on success."""
        client = await self._client()
        if client is None:
            return False

        start_time = time.time()

        try:
            compressed, _ = self._compressor.compress(serialize_value(value))
        except (TypeError, ValueError) as e:
            self._stats.errors += 1
            logger.error(f"Cache serialize error for {key}: {e}")
            return False

        seconds = _ttl_seconds(ttl)

        try:
            async with self._with_circuit_breaker():
                if seconds:
                    await client.setex(key, seconds, compressed)
                else:
                    await client.set(key, compressed)
        except (RedisError, OSError) as e:
            self._stats.errors += 1
            logger.warning(f"Cache set failed for {key}: {e}")
            return False

        self._stats.record_latency(time.time() - start_time)
        self._stats.bytes_written += len(compressed)
        return True

    async def delete(self, prefix: str) -> int:
        """
        Delete every key starting with prefix in one DEL.

        Returns count deleted (0 when Redis is unavailable).
        """
        client = await self._client()
        if client is None:
            return 0

        try:
            async with self._with_circuit_breaker():
                keys = [
                    key async for key in client.scan_iter(
                        match=f"{prefix}*", count=self.config.scan_count
                    )
                ]
                if not keys:
                    return 0
                deleted = await client.delete(*keys)
        except (RedisError, OSError) as e:
            self._stats.errors += 1
            logger.warning(f"Cache delete failed for prefix {prefix}: {e}")
            return 0

        logger.info(f"Deleted {deleted} keys matching {prefix}*")
        return deleted

    async def invalidate_type(self, content_type: ContentType) -> int:
        """Delete all entries cached for a content type."""
        return await self.delete(self.type_prefix(content_type))

    async def ttl(self, key: str) -> int:
        """Remaining TTL in seconds. -1 if no TTL, -2 if missing or unavailable."""
        client = await self._client()
        if client is None:
            return -2

        try:
            async with self._with_circuit_breaker():
                return await client.ttl(key)
        except (RedisError, OSError):
            return -2

    # =========================================================================
    # Read-through
    # =========================================================================

    async def lookup(self, key: str, fetcher: Fetcher, ttl: TTL = None) -> CacheLookup:
        """
        Get-or-compute, also reporting whether the value was a cache hit.

        Fetcher exceptions propagate and nothing is cached. Concurrent
        misses for the same key share one fetch task; cancelling one
        caller leaves that task running for the others.
        """
        cached = await self.get(key)
        if cached is not None:
            return CacheLookup(value=cached, hit=True)

        while True:
            task = self._inflight.get(key)
            if task is None or task.cancelled():
                self._stats.fetches += 1
                task = asyncio.create_task(self._fetch_and_store(key, fetcher, ttl))
                self._inflight[key] = task
                task.add_done_callback(lambda t: self._fetch_done(key, t))

            try:
                value = await asyncio.shield(task)
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise
                # Shared fetch was cancelled under us; start a fresh one
                logger.warning(f"Shared fetch for {key} was cancelled, retrying")
                continue
            return CacheLookup(value=value, hit=False)

    async def _fetch_and_store(self, key: str, fetcher: Fetcher, ttl: TTL) -> Any:
        value = await fetcher()
        if value is not None:
            await self.set(key, value, ttl)
        return value

    def _fetch_done(self, key: str, task: asyncio.Task):
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # Mark the exception retrieved when every caller has gone away
        if not task.cancelled():
            task.exception()

    async def with_cache(self, key: str, fetcher: Fetcher, ttl: TTL = None) -> Any:
        """Return the cached value for key, computing and storing it on a miss."""
        result = await self.lookup(key, fetcher, ttl)
        return result.value

    async def with_content_cache(
        self,
        content_type: ContentType,
        name: str,
        fetcher: Fetcher,
    ) -> Any:
        """with_cache keyed and TTL-tiered by content type."""
        return await self.with_cache(
            self.content_key(content_type, name),
            fetcher,
            CacheTTL.for_content_type(content_type),
        )

    # =========================================================================
    # Statistics and Health
    # =========================================================================

    def get_stats(self) -> Dict:
        return {
            "enabled": self.config.enabled,
            "initialized": self._initialized,
            "hits": self._stats.hits,
            "misses": self._stats.misses,
            "errors": self._stats.errors,
            "fetches": self._stats.fetches,
            "hit_rate_percent": round(self._stats.hit_rate * 100, 2),
            "avg_latency_ms": round(self._stats.avg_latency_ms, 2),
            "bytes_written": self._stats.bytes_written,
            "bytes_read": self._stats.bytes_read,
            "circuit_breaker_open": (
                self._circuit_breaker.state.is_open
                if self._circuit_breaker else False
            ),
        }

    async def health_check(self) -> Dict:
        if not self.config.enabled:
            return {"healthy": True, "status": "disabled", "stats": self.get_stats()}

        client = await self._client()
        if client is None:
            return {"healthy": False, "status": "unavailable", "stats": self.get_stats()}

        start = time.time()
        try:
            async with self._with_circuit_breaker():
                await client.ping()
        except (RedisError, OSError) as e:
            return {
                "healthy": False,
                "status": "error",
                "error": str(e),
                "stats": self.get_stats(),
            }

        return {
            "healthy": True,
            "status": "connected",
            "latency_ms": round((time.time() - start) * 1000, 2),
            "stats": self.get_stats(),
        }
