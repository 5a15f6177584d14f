"""
Content Sync Service

FastAPI application wiring the content sync layer together:
1. Redis read-through cache (optional, degrades to no-op)
2. Snapshot store on local disk
3. Sync coordinator for admin edits (debounced, coalesced)
4. Homepage preload aggregator with cache -> database -> snapshot fallback
5. Cache warmer refreshing the homepage after publishes
"""

import logging
import sys
from contextlib import asynccontextmanager
from datetime import timedelta
from pathlib import Path
from typing import Optional

from fastapi import FastAPI

from src import __version__
from src.cache.config import CacheConfig
from src.cache.invalidation import CacheInvalidator, PageRevalidator
from src.cache.redis_cache import ReadThroughCache
from src.cache.warming import CacheWarmer
from src.content.repository import ContentRepository
from src.preload.aggregator import PreloadAggregator
from src.snapshot.store import SnapshotStore
from src.sync.coordinator import SyncCoordinator
from src.utils.config import Settings, get_settings

from api.cache import router as cache_router
from api.homepage import router as homepage_router


# Configure logging to stdout
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stdout,
    force=True,
)
logger = logging.getLogger(__name__)

# Quiet down chatty loggers
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


def create_app(
    repository: ContentRepository,
    settings: Optional[Settings] = None,
    cache: Optional[ReadThroughCache] = None,
    revalidator: Optional[PageRevalidator] = None,
) -> FastAPI:
    """
    Build the application around a repository implementation.

    The cache and revalidator can be injected; by default they are built
    from settings.
    """
    settings = settings or get_settings()
    logging.getLogger().setLevel(settings.LOG_LEVEL.upper())

    cache = cache or ReadThroughCache(CacheConfig(
        redis_url=settings.REDIS_URL,
        namespace=settings.CACHE_NAMESPACE,
    ))
    store = SnapshotStore(
        Path(settings.SNAPSHOT_BASE_PATH),
        max_backups=settings.SNAPSHOT_MAX_BACKUPS,
        max_backup_age=timedelta(days=settings.SNAPSHOT_BACKUP_MAX_AGE_DAYS),
    )
    aggregator = PreloadAggregator(
        repository,
        cache,
        store,
        campaign_limit=settings.PRELOAD_CAMPAIGN_LIMIT,
    )
    warmer = CacheWarmer(aggregator, interval_seconds=settings.WARMING_INTERVAL_SECONDS)
    coordinator = SyncCoordinator(
        store,
        CacheInvalidator(cache),
        revalidator or PageRevalidator(settings.REVALIDATE_URL, settings.REVALIDATE_SECRET),
        debounce_seconds=settings.SYNC_DEBOUNCE_SECONDS,
        auto_sync=settings.SYNC_AUTO,
        revalidate_paths=settings.revalidate_paths,
        post_flush=warmer.warm_after_flush,
    )

    # ========================================================================
    # STARTUP / SHUTDOWN
    # ========================================================================

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Initializing cache...")
        if await cache.initialize():
            logger.info("Redis cache connection verified")
        else:
            # Don't fail startup - snapshots and the database still serve
            logger.warning("Redis unavailable - continuing without cache")

        if settings.WARMING_INTERVAL_SECONDS > 0:
            await warmer.start_background_warmer()

        yield

        # Publish pending edits before the process exits
        if coordinator.pending_types:
            logger.info(f"Flushing pending edits before shutdown: {coordinator.pending_types}")
            await coordinator.sync_now()
        if warmer.is_running:
            await warmer.stop_background_warmer()
        await cache.close()

    app = FastAPI(
        title="Linkpick Content Sync",
        description="Homepage cache, snapshot sync and preload service",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.cache = cache
    app.state.store = store
    app.state.aggregator = aggregator
    app.state.coordinator = coordinator
    app.state.warmer = warmer

    app.include_router(cache_router)
    app.include_router(homepage_router)

    return app
