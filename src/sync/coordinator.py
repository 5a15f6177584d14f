"""
Sync Coordinator

Pushes admin edits into snapshots with debouncing and coalescing:

    IDLE --queue_update--> PENDING --timer fires--> FLUSHING --> IDLE

- queue_update overwrites any pending payload for the same slot, so only
  the final state within a debounce window is ever written
- A slot is one content type, except UI text, which gets one slot per
  language; each language is its own document, so edits to two languages
  in one window are both kept
- One shared timer covers every pending slot; each new edit re-arms it
- A flush swaps out the whole pending map, then writes each slot
  sequentially: snapshot update, then cache invalidation on success
- Failures are isolated per slot, logged and not retried; the next edit
  re-arms the timer
- After a batch with at least one successful write, the page renderer is
  asked to revalidate

All state lives on one coordinator instance and is only touched from the
event loop that owns it.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from src.cache.invalidation import (
    CacheInvalidator,
    PageRevalidator,
    DEFAULT_REVALIDATE_PATHS,
)
from src.content.types import ContentType, ContentUpdate, parse_update, document_name
from src.snapshot.store import SnapshotStore


logger = logging.getLogger(__name__)


class SyncState(Enum):
    IDLE = "idle"
    PENDING = "pending"
    FLUSHING = "flushing"


_ALLOWED_TRANSITIONS = {
    SyncState.IDLE: {SyncState.PENDING},
    SyncState.PENDING: {SyncState.PENDING, SyncState.FLUSHING, SyncState.IDLE},
    SyncState.FLUSHING: {SyncState.IDLE, SyncState.PENDING},
}


class InvalidTransitionError(RuntimeError):
    """Raised on a state change the sync state machine does not allow."""
    pass


# Slot = (content type, variant); every type except UI text has one slot
Slot = Tuple[ContentType, Optional[str]]


@dataclass
class PendingUpdate:
    update: ContentUpdate
    queued_at: datetime

    @property
    def content_type(self) -> ContentType:
        return self.update.content_type

    @property
    def slot(self) -> Slot:
        return (self.update.content_type, self.update.variant)


@dataclass
class FlushReport:
    """Outcome of one flush batch."""
    written: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    keys_invalidated: int = 0
    revalidated: bool = False
    duration_ms: float = 0.0

    @property
    def success(self) -> bool:
        return not self.failed

    def to_dict(self) -> Dict:
        return {
            "success": self.success,
            "written": list(self.written),
            "failed": list(self.failed),
            "keysInvalidated": self.keys_invalidated,
            "revalidated": self.revalidated,
            "durationMs": round(self.duration_ms, 2),
        }


PostFlushHook = Callable[[FlushReport], Awaitable[Any]]


class SyncCoordinator:
    """Debounced, coalescing writer from admin edits to snapshots."""

    def __init__(
        self,
        store: SnapshotStore,
        invalidator: CacheInvalidator,
        revalidator: Optional[PageRevalidator] = None,
        debounce_seconds: float = 1.0,
        auto_sync: bool = True,
        revalidate_paths: Sequence[str] = DEFAULT_REVALIDATE_PATHS,
        post_flush: Optional[PostFlushHook] = None,
    ):
        self._store = store
        self._invalidator = invalidator
        self._revalidator = revalidator or PageRevalidator()
        self.debounce_seconds = debounce_seconds
        self.auto_sync = auto_sync
        self.revalidate_paths = tuple(revalidate_paths)
        self._post_flush = post_flush

        self._pending: Dict[Slot, PendingUpdate] = {}
        self._states: Dict[Slot, SyncState] = {}
        self._timer: Optional[asyncio.Task] = None
        self._flush_lock = asyncio.Lock()

    # =========================================================================
    # State machine
    # =========================================================================

    def state(self, content_type: ContentType, variant: Optional[str] = None) -> SyncState:
        return self._states.get((content_type, variant), SyncState.IDLE)

    def _transition(self, slot: Slot, new_state: SyncState):
        current = self._states.get(slot, SyncState.IDLE)
        if new_state not in _ALLOWED_TRANSITIONS[current]:
            raise InvalidTransitionError(
                f"{document_name(*slot)}: {current.value} -> {new_state.value}"
            )
        if new_state is SyncState.IDLE:
            self._states.pop(slot, None)
        else:
            self._states[slot] = new_state
        logger.debug(f"Sync state {document_name(*slot)}: {current.value} -> {new_state.value}")

    @property
    def pending_types(self) -> List[str]:
        return sorted(document_name(*slot) for slot in self._pending)

    @property
    def timer_armed(self) -> bool:
        return self._timer is not None and not self._timer.done()

    # =========================================================================
    # Ingress
    # =========================================================================

    def queue_update(self, content_type: Any, data: Any) -> bool:
        """
        Queue an edit for the next flush, replacing any pending edit for the
        same slot, and restart the debounce timer.

        Raises:
            ValueError: data does not match the content type's shape
        """
        if not self.auto_sync:
            logger.debug(f"Auto sync disabled, ignoring update for {content_type}")
            return False

        update = parse_update(content_type, data)
        pending = PendingUpdate(update=update, queued_at=datetime.now(timezone.utc))
        slot = pending.slot

        if slot in self._pending:
            logger.debug(f"Coalescing pending update for {document_name(*slot)}")

        self._pending[slot] = pending
        if self.state(*slot) is not SyncState.PENDING:
            self._transition(slot, SyncState.PENDING)

        self._arm_timer()
        return True

    def _arm_timer(self):
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = asyncio.get_running_loop().create_task(self._debounce())

    async def _debounce(self):
        await asyncio.sleep(self.debounce_seconds)
        # Detach before flushing so a new edit arms a fresh timer instead of
        # cancelling a flush that has already started
        self._timer = None
        try:
            await self._flush()
        except Exception as e:
            logger.error(f"Scheduled flush failed: {e}")

    # =========================================================================
    # Flush
    # =========================================================================

    async def sync_now(self) -> FlushReport:
        """Cancel the timer and flush immediately."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        return await self._flush()

    def stop(self):
        """Cancel the timer and drop pending updates without writing them."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        for slot in list(self._pending):
            if self.state(*slot) is SyncState.PENDING:
                self._transition(slot, SyncState.IDLE)
        dropped = len(self._pending)
        self._pending = {}
        if dropped:
            logger.info(f"Sync coordinator stopped, dropped {dropped} pending updates")

    async def _flush(self) -> FlushReport:
        async with self._flush_lock:
            return await self._flush_batch()

    async def _flush_batch(self) -> FlushReport:
        report = FlushReport()
        if not self._pending:
            return report

        start = time.perf_counter()
        batch, self._pending = self._pending, {}

        for slot in batch:
            self._transition(slot, SyncState.FLUSHING)

        logger.info(f"Flushing {len(batch)} pending updates: {sorted(document_name(*s) for s in batch)}")

        for slot, pending in batch.items():
            name = document_name(*slot)
            try:
                written = await self._write(pending)
            except Exception as e:
                logger.error(f"Sync failed for {name}: {e}")
                written = False

            if written:
                report.written.append(name)
                result = await self._invalidator.invalidate(pending.content_type)
                report.keys_invalidated += result.keys_invalidated
            else:
                report.failed.append(name)

            # Edits queued while this slot was flushing stay pending
            if slot in self._pending:
                self._transition(slot, SyncState.PENDING)
            elif self.state(*slot) is not SyncState.IDLE:
                self._transition(slot, SyncState.IDLE)

        if report.written:
            report.revalidated = await self._revalidator.revalidate(self.revalidate_paths)

        report.duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            f"Flush complete: {len(report.written)} written, {len(report.failed)} failed, "
            f"{report.keys_invalidated} keys invalidated, duration: {report.duration_ms:.2f}ms"
        )

        if report.written and self._post_flush is not None:
            try:
                await self._post_flush(report)
            except Exception as e:
                logger.warning(f"Post-flush hook failed: {e}")

        return report

    async def _write(self, pending: PendingUpdate) -> bool:
        update = pending.update
        payload = update.to_snapshot_payload()
        return await self._store.update(update.content_type, payload, update.variant)
