"""
Cache Warming Service

Re-populates the homepage cache so the first visitor after a publish does
not pay for the repository round trip.

Strategies:
1. Post-flush warming: after the sync coordinator invalidates a type
2. Periodic warming: a read-through homepage load on a fixed interval,
   repopulating whatever has expired since the last pass (live entries
   are left as they are)
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from src.preload.aggregator import PreloadAggregator


logger = logging.getLogger(__name__)


class CacheWarmer:
    """
    Proactive homepage cache warming.

    Warming reads through the aggregator in degraded mode, so a dead
    sub-resource is logged and skipped rather than raised.
    """

    def __init__(
        self,
        aggregator: PreloadAggregator,
        interval_seconds: int = 300,
    ):
        self._aggregator = aggregator
        self.interval_seconds = interval_seconds
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def warm_homepage(self) -> Dict[str, Any]:
        """
        Load the homepage payload once, populating every cache miss.

        Returns:
            The preload metadata of the warming run
        """
        result = await self._aggregator.load_degraded()
        metadata = result.metadata
        logger.info(
            f"Homepage cache warmed from {metadata.source.value} "
            f"in {metadata.load_time_ms:.1f}ms"
        )
        return metadata.to_dict()

    async def warm_after_flush(self, report: Any = None) -> Dict[str, Any]:
        """Post-flush hook for the sync coordinator."""
        return await self.warm_homepage()

    async def start_background_warmer(
        self,
        interval_seconds: Optional[int] = None,
    ):
        """Start the periodic warming task."""
        if self._running:
            logger.warning("Background warmer already running")
            return

        interval = interval_seconds or self.interval_seconds
        self._running = True

        async def warming_loop():
            while self._running:
                try:
                    await self.warm_homepage()
                except Exception as e:
                    logger.error(f"Background warming error: {e}")

                await asyncio.sleep(interval)

        self._task = asyncio.create_task(warming_loop())
        logger.info(f"Background cache warmer started (interval: {interval}s)")

    async def stop_background_warmer(self):
        """Stop background warming task."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Background cache warmer stopped")
