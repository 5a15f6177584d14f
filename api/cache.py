"""
Cache & Snapshot Sync API

Admin-facing endpoints for the content sync layer.

Endpoints:
- Queue an admin edit for the next snapshot flush
- Sync status (pending edits, snapshot location)
- Explicit publish (flush now)
- Redis cache health for monitoring/alerting
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field

from src.cache.redis_cache import ReadThroughCache
from src.snapshot.store import SnapshotStore
from src.sync.coordinator import SyncCoordinator


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/cache", tags=["Cache Management"])


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_coordinator(request: Request) -> SyncCoordinator:
    return request.app.state.coordinator


def get_store(request: Request) -> SnapshotStore:
    return request.app.state.store


def get_cache(request: Request) -> ReadThroughCache:
    return request.app.state.cache


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================

class UpdateJsonRequest(BaseModel):
    """Admin edit for one content type."""
    type: str = Field(..., description="hero, categories, sections or ui-text")
    data: Dict[str, Any] = Field(default_factory=dict)


class UpdateJsonResponse(BaseModel):
    success: bool
    queued: bool
    message: str
    pending_types: List[str] = []
    report: Optional[Dict[str, Any]] = None


class SyncStatusResponse(BaseModel):
    status: str
    base_path: str
    backup_path: str
    max_backups: int
    auto_sync: bool
    debounce_seconds: float
    pending_types: List[str]
    timer_armed: bool
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class FlushResponse(BaseModel):
    success: bool
    written: List[str]
    failed: List[str]
    keys_invalidated: int
    revalidated: bool
    duration_ms: float


class CacheHealthResponse(BaseModel):
    """Cache health check response."""
    status: str = Field(..., description="connected, disabled, unavailable or error")
    healthy: bool
    backend: str = Field(default="redis", description="Cache backend type")
    stats: Dict[str, Any] = {}
    timestamp: datetime = Field(default_factory=datetime.utcnow)


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post("/update-json", response_model=UpdateJsonResponse, status_code=202)
async def update_json(
    request: UpdateJsonRequest,
    immediate: bool = Query(False, description="Flush now instead of waiting for the debounce"),
    coordinator: SyncCoordinator = Depends(get_coordinator),
):
    """
    Queue an admin edit for the snapshot files.

    Edits to the same content type inside the debounce window coalesce;
    only the last one is written.
    """
    try:
        queued = coordinator.queue_update(request.type, request.data)
    except ValueError as e:
        logger.warning(f"Rejected update-json for {request.type}: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    if not queued:
        return UpdateJsonResponse(
            success=True,
            queued=False,
            message="Auto sync disabled, update ignored",
            pending_types=coordinator.pending_types,
        )

    report = None
    if immediate:
        report = (await coordinator.sync_now()).to_dict()

    return UpdateJsonResponse(
        success=report["success"] if report else True,
        queued=True,
        message=f"Update for {request.type} {'synced' if immediate else 'queued'}",
        pending_types=coordinator.pending_types,
        report=report,
    )


@router.get("/update-json", response_model=SyncStatusResponse)
def sync_status(
    coordinator: SyncCoordinator = Depends(get_coordinator),
    store: SnapshotStore = Depends(get_store),
):
    """Snapshot system status and edits waiting for the next flush."""
    status = store.status()
    return SyncStatusResponse(
        status=status["status"],
        base_path=status["basePath"],
        backup_path=status["backupPath"],
        max_backups=status["maxBackups"],
        auto_sync=coordinator.auto_sync,
        debounce_seconds=coordinator.debounce_seconds,
        pending_types=coordinator.pending_types,
        timer_armed=coordinator.timer_armed,
    )


@router.post("/sync", response_model=FlushResponse)
async def sync_now(coordinator: SyncCoordinator = Depends(get_coordinator)):
    """
    Publish every pending edit immediately.

    Returns the flush report; an empty report means nothing was pending.
    """
    report = await coordinator.sync_now()
    return FlushResponse(
        success=report.success,
        written=report.written,
        failed=report.failed,
        keys_invalidated=report.keys_invalidated,
        revalidated=report.revalidated,
        duration_ms=report.duration_ms,
    )


@router.get("/health", response_model=CacheHealthResponse)
async def cache_health_check(cache: ReadThroughCache = Depends(get_cache)):
    """
    Check cache infrastructure health.

    The cache is optional, so an unavailable Redis is reported but the
    endpoint itself still answers 200.
    """
    health = await cache.health_check()
    return CacheHealthResponse(
        status=health["status"],
        healthy=health["healthy"],
        stats=health.get("stats", {}),
    )
