"""
Homepage Preload Aggregator

Assembles one homepage payload from independent sources:
- Sections (UI section configuration)
- Active campaigns
- Category statistics

Each sub-resource resolves concurrently through a short fallback chain:

    cache  ->  repository (populates cache)  ->  last-known snapshot

A failure in one sub-resource never aborts the others. The result reports
the worst tier actually used and the end-to-end load time.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from src.cache.config import CacheTTL
from src.cache.redis_cache import ReadThroughCache
from src.content.repository import ContentRepository
from src.content.types import (
    ContentType,
    DataSource,
    PreloadMetadata,
    PreloadResult,
)
from src.snapshot.store import SnapshotStore


logger = logging.getLogger(__name__)


class TotalUnavailableError(Exception):
    """Every fallback tier failed for at least one sub-resource."""

    def __init__(self, failed: List[str], partial: PreloadResult):
        self.failed = failed
        self.partial = partial
        super().__init__(f"All tiers unavailable for: {', '.join(failed)}")


@dataclass
class Resolved:
    value: Any
    source: DataSource


@dataclass
class PreloadSource:
    """How one sub-resource is fetched, cached and recovered from snapshot."""
    name: str
    content_type: ContentType
    cache_name: str
    fetch: Callable[[], Awaitable[Any]]
    from_snapshot: Callable[[Dict[str, Any]], Any]
    default: Callable[[], Any]
    # None when the snapshot is owned by the sync coordinator
    to_snapshot: Optional[Callable[[Any], Dict[str, Any]]] = None


def _visible_sections(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [s for s in payload.get("sections", []) if s.get("visible") is not False]


class PreloadAggregator:
    """Builds the homepage PreloadResult. Read-only and safe to run concurrently."""

    def __init__(
        self,
        repository: ContentRepository,
        cache: ReadThroughCache,
        store: SnapshotStore,
        campaign_limit: int = 20,
    ):
        self._repository = repository
        self._cache = cache
        self._store = store
        self.campaign_limit = campaign_limit

    def _sources(self) -> List[PreloadSource]:
        limit = self.campaign_limit
        return [
            PreloadSource(
                name="sections",
                content_type=ContentType.SECTIONS,
                cache_name="homepage",
                fetch=self._repository.get_sections,
                from_snapshot=_visible_sections,
                default=list,
            ),
            PreloadSource(
                name="campaigns",
                content_type=ContentType.CAMPAIGNS,
                cache_name=f"active:{limit}",
                fetch=lambda: self._repository.get_active_campaigns(limit),
                from_snapshot=lambda payload: payload.get("campaigns", []),
                default=list,
                to_snapshot=lambda value: {"type": "campaign-listing", "campaigns": value},
            ),
            PreloadSource(
                name="categoryStats",
                content_type=ContentType.CATEGORY_STATS,
                cache_name="homepage",
                fetch=self._repository.get_category_stats,
                from_snapshot=lambda payload: payload.get("stats", {}),
                default=dict,
                to_snapshot=lambda value: {"type": "category-stats", "stats": value},
            ),
        ]

    # =========================================================================
    # Public API
    # =========================================================================

    async def load(self) -> PreloadResult:
        """
        Load the homepage payload.

        Raises:
            TotalUnavailableError: cache, repository and snapshot all failed
                for a sub-resource; the partial result is attached
        """
        result = await self._assemble()
        if result.metadata.failed:
            raise TotalUnavailableError(result.metadata.failed, result)
        return result

    async def load_degraded(self) -> PreloadResult:
        """Like load(), but returns the partial result when a sub-resource is lost."""
        try:
            return await self.load()
        except TotalUnavailableError as e:
            logger.warning(f"Homepage preload degraded, omitting: {e.failed}")
            return e.partial

    # =========================================================================
    # Assembly
    # =========================================================================

    async def _assemble(self) -> PreloadResult:
        start = time.perf_counter()
        sources = self._sources()

        outcomes = await asyncio.gather(*(self._resolve(source) for source in sources))

        values: Dict[str, Any] = {}
        used: Dict[str, DataSource] = {}
        failed: List[str] = []
        for source, outcome in zip(sources, outcomes):
            if outcome is None:
                values[source.name] = source.default()
                failed.append(source.name)
            else:
                values[source.name] = outcome.value
                used[source.name] = outcome.source

        worst = DataSource.SNAPSHOT if failed else DataSource.worst(list(used.values()))
        elapsed_ms = (time.perf_counter() - start) * 1000

        metadata = PreloadMetadata(
            cached=not failed and all(s is DataSource.CACHE for s in used.values()),
            source=worst,
            load_time_ms=elapsed_ms,
            sources=used,
            failed=failed,
        )

        logger.info(
            f"Homepage preload in {elapsed_ms:.1f}ms: source={worst.value}, "
            f"sections={len(values['sections'])}, campaigns={len(values['campaigns'])}"
        )

        return PreloadResult(
            sections=values["sections"],
            campaigns=values["campaigns"],
            category_stats=values["categoryStats"],
            metadata=metadata,
        )

    async def _resolve(self, source: PreloadSource) -> Optional[Resolved]:
        tiers = (
            ("cache/database", self._from_cache_or_database),
            ("snapshot", self._from_snapshot),
        )
        for tier_name, tier in tiers:
            try:
                resolved = await tier(source)
            except Exception as e:
                logger.warning(f"Preload {source.name}: {tier_name} tier failed: {e}")
                continue
            if resolved is not None:
                return resolved
            logger.warning(f"Preload {source.name}: {tier_name} tier returned nothing")

        logger.error(f"Preload {source.name}: all tiers unavailable")
        return None

    async def _from_cache_or_database(self, source: PreloadSource) -> Optional[Resolved]:
        key = self._cache.content_key(source.content_type, source.cache_name)
        lookup = await self._cache.lookup(
            key,
            source.fetch,
            CacheTTL.for_content_type(source.content_type),
        )
        if lookup.value is None:
            return None
        if lookup.hit:
            return Resolved(lookup.value, DataSource.CACHE)

        if source.to_snapshot is not None:
            try:
                await self._record_snapshot(source, lookup.value)
            except Exception as e:
                logger.warning(f"Could not record {source.name} snapshot: {e}")
        return Resolved(lookup.value, DataSource.DATABASE)

    async def _from_snapshot(self, source: PreloadSource) -> Optional[Resolved]:
        document = await self._store.read(source.content_type)
        if document is None:
            return None
        return Resolved(source.from_snapshot(document.payload), DataSource.SNAPSHOT)

    async def _record_snapshot(self, source: PreloadSource, value: Any):
        """Keep the last-known-good repository value as this source's snapshot."""
        payload = source.to_snapshot(value)
        current = await self._store.read(source.content_type)
        if current is not None and current.payload == payload:
            return
        if not await self._store.update(source.content_type, payload):
            logger.warning(f"Could not record {source.name} snapshot; fallback stays at previous version")
