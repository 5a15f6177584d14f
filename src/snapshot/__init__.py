"""Versioned JSON snapshot persistence."""

from .store import SnapshotStore, BackupInfo

__all__ = [
    "SnapshotStore",
    "BackupInfo",
]
