"""
Cache Invalidation and Page Revalidation

Invalidate as narrowly as possible: a snapshot update for one content type
drops only that type's cache prefix. After a flush batch the page renderer
is asked to regenerate its statically-rendered pages.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence

import httpx

from src.cache.redis_cache import ReadThroughCache
from src.content.types import ContentType


logger = logging.getLogger(__name__)


DEFAULT_REVALIDATE_PATHS = ("/", "/[...slug]")


@dataclass
class InvalidationResult:
    """Result of a cache invalidation operation."""
    content_type: ContentType
    success: bool
    keys_invalidated: int
    duration_ms: float
    errors: List[str] = field(default_factory=list)


class PageRevalidator:
    """
    Notifies the page renderer that statically-rendered pages are stale.

    Disabled when no webhook URL is configured. Failures are logged and
    reported as False, never raised.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        secret: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.secret = secret
        self.timeout = timeout
        self._transport = transport

    @property
    def is_enabled(self) -> bool:
        return bool(self.url)

    async def revalidate(self, paths: Sequence[str] = DEFAULT_REVALIDATE_PATHS) -> bool:
        """Ask the renderer to regenerate the given paths."""
        if not self.is_enabled:
            logger.debug(f"Page revalidation disabled, skipping {list(paths)}")
            return False

        headers = {"Content-Type": "application/json"}
        if self.secret:
            headers["Authorization"] = f"Bearer {self.secret}"

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                response = await client.post(
                    self.url,
                    headers=headers,
                    json={"paths": list(paths)},
                )
        except httpx.HTTPError as e:
            logger.error(f"Page revalidation error: {e}")
            return False

        if response.is_success:
            logger.info(f"Pages revalidated: {list(paths)}")
            return True

        logger.warning(f"Page revalidation failed (status {response.status_code}) for {list(paths)}")
        return False


class CacheInvalidator:
    """Drops cached entries for a content type after its snapshot changes."""

    def __init__(self, cache: ReadThroughCache):
        self._cache = cache

    async def invalidate(self, content_type: ContentType) -> InvalidationResult:
        start_time = datetime.utcnow()
        errors = []
        keys_invalidated = 0

        try:
            keys_invalidated = await self._cache.invalidate_type(content_type)
        except Exception as e:
            # The cache swallows Redis errors itself; anything else is a bug worth recording
            errors.append(str(e))
            logger.error(f"Cache invalidation error for {content_type.value}: {e}")

        duration = (datetime.utcnow() - start_time).total_seconds() * 1000

        logger.info(
            f"Invalidation complete for {content_type.value}: "
            f"{keys_invalidated} keys, duration: {duration:.2f}ms"
        )

        return InvalidationResult(
            content_type=content_type,
            success=not errors,
            keys_invalidated=keys_invalidated,
            duration_ms=duration,
            errors=errors,
        )
