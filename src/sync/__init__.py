"""Admin edit to snapshot synchronization."""

from .coordinator import (
    SyncCoordinator,
    SyncState,
    PendingUpdate,
    FlushReport,
    InvalidTransitionError,
)

__all__ = [
    "SyncCoordinator",
    "SyncState",
    "PendingUpdate",
    "FlushReport",
    "InvalidTransitionError",
]
