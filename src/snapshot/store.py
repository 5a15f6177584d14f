"""
Snapshot Store

Durable, versioned JSON documents (one per content type) used for fast
rendering and as the last-resort fallback when cache and database fail.

Layout under base_path:
    hero.json                          live document
    hero.backup.json                   most recent known-good copy
    backups/hero/hero-<ts>-v<ver>.json timestamped history (pruned)

Writes go to a temp file, are fsynced, then atomically renamed over the
live document, so readers never observe a partial write.
"""

import asyncio
import json
import logging
import os
import re
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from src.content.types import ContentType, SnapshotDocument, document_name


logger = logging.getLogger(__name__)

_BACKUP_NAME = re.compile(r"^(?P<name>.+)-(?P<ts>\d{8}_\d{6}_\d{6})-v(?P<version>\d+)\.json$")
_TS_FORMAT = "%Y%m%d_%H%M%S_%f"


@dataclass
class BackupInfo:
    """Metadata for one timestamped backup file."""
    path: Path
    name: str
    version: int
    created_at: datetime
    size: int

    def to_dict(self) -> Dict:
        return {
            "path": str(self.path),
            "name": self.name,
            "version": self.version,
            "createdAt": self.created_at.isoformat(),
            "size": self.size,
        }


class SnapshotStore:
    """
    Reads and writes versioned snapshot documents.

    Updates for the same document serialize on a per-document lock;
    different documents proceed independently.
    """

    def __init__(
        self,
        base_path: Path,
        max_backups: int = 4,
        max_backup_age: Optional[timedelta] = timedelta(days=30),
    ):
        self.base_path = Path(base_path)
        self.backup_dir = self.base_path / "backups"
        self.max_backups = max_backups
        self.max_backup_age = max_backup_age
        self._locks: Dict[str, asyncio.Lock] = {}

        self.base_path.mkdir(parents=True, exist_ok=True)
        logger.info(f"SnapshotStore initialized at {self.base_path}")

    # =========================================================================
    # Paths
    # =========================================================================

    def live_path(self, name: str) -> Path:
        return self.base_path / f"{name}.json"

    def backup_copy_path(self, name: str) -> Path:
        return self.base_path / f"{name}.backup.json"

    def history_dir(self, name: str) -> Path:
        return self.backup_dir / name

    def _lock_for(self, name: str) -> asyncio.Lock:
        lock = self._locks.get(name)
        if lock is None:
            lock = self._locks[name] = asyncio.Lock()
        return lock

    # =========================================================================
    # Read
    # =========================================================================

    async def read(
        self,
        content_type: ContentType,
        variant: Optional[str] = None,
    ) -> Optional[SnapshotDocument]:
        """
        Read the live document for a content type.

        Falls back to the .backup copy when the live file is corrupt.
        Returns None if neither exists.
        """
        name = document_name(content_type, variant)
        return await asyncio.to_thread(self._read_sync, name)

    def _read_sync(self, name: str) -> Optional[SnapshotDocument]:
        live = self.live_path(name)
        try:
            return self._load(live)
        except FileNotFoundError:
            return None
        except (OSError, ValueError, KeyError) as e:
            logger.error(f"Snapshot {live} unreadable, trying backup copy: {e}")

        backup = self.backup_copy_path(name)
        try:
            document = self._load(backup)
        except FileNotFoundError:
            logger.error(f"No backup copy for snapshot {name}")
            return None
        except (OSError, ValueError, KeyError) as e:
            logger.error(f"Backup copy {backup} unreadable: {e}")
            return None

        logger.info(f"Recovered snapshot {name} from backup copy (v{document.version})")
        return document

    @staticmethod
    def _load(path: Path) -> SnapshotDocument:
        with open(path, "r", encoding="utf-8") as f:
            return SnapshotDocument.from_dict(json.load(f))

    # =========================================================================
    # Update
    # =========================================================================

    async def update(
        self,
        content_type: ContentType,
        payload: Dict[str, Any],
        variant: Optional[str] = None,
    ) -> bool:
        """
        Atomically replace the live document with a new version.

        Returns True only once the new document is durably in place. On
        failure the previous document is left untouched and False is returned.
        """
        name = document_name(content_type, variant)
        async with self._lock_for(name):
            return await asyncio.to_thread(self._update_sync, content_type, name, payload)

    def _update_sync(self, content_type: ContentType, name: str, payload: Dict[str, Any]) -> bool:
        live = self.live_path(name)

        previous = None
        try:
            previous = self._load(live)
        except FileNotFoundError:
            pass
        except (OSError, ValueError, KeyError) as e:
            logger.warning(f"Existing snapshot {live} unreadable, versioning from backup: {e}")
            try:
                previous = self._load(self.backup_copy_path(name))
            except (OSError, ValueError, KeyError):
                previous = None

        now_ms = int(time.time() * 1000)
        version = now_ms if previous is None else max(now_ms, previous.version + 1)
        document = SnapshotDocument(
            type=content_type,
            version=version,
            payload=payload,
            last_updated=datetime.now(timezone.utc),
        )

        try:
            data = json.dumps(document.to_dict(), indent=2, ensure_ascii=False, default=str)
        except (TypeError, ValueError) as e:
            logger.error(f"Snapshot {name} payload not serializable: {e}")
            return False

        try:
            self._atomic_write(live, data)
        except OSError as e:
            logger.error(f"Snapshot write failed for {live}, previous version kept: {e}")
            return False

        logger.info(f"Snapshot updated: {name} v{version} ({len(data)} bytes)")

        try:
            self._atomic_write(self.backup_copy_path(name), data)
            self._write_history(name, version, data)
            self._prune_history(name)
        except OSError as e:
            logger.warning(f"Snapshot {name} written but backup step failed: {e}")

        return True

    def _atomic_write(self, path: Path, data: str):
        """Write via temp file + fsync + rename in the same directory."""
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")

        try:
            with open(tmp, "w", encoding="utf-8") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, path)
        except OSError:
            try:
                tmp.unlink()
            except FileNotFoundError:
                pass
            raise

        self._fsync_dir(path.parent)

    @staticmethod
    def _fsync_dir(directory: Path):
        try:
            fd = os.open(directory, os.O_RDONLY)
        except OSError:
            return
        try:
            os.fsync(fd)
        except OSError:
            pass
        finally:
            os.close(fd)

    # =========================================================================
    # Backup history
    # =========================================================================

    def _write_history(self, name: str, version: int, data: str) -> Path:
        directory = self.history_dir(name)
        directory.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now(timezone.utc).strftime(_TS_FORMAT)
        path = directory / f"{name}-{timestamp}-v{version}.json"
        with open(path, "w", encoding="utf-8") as f:
            f.write(data)
        logger.debug(f"Backup written: {path}")
        return path

    def _history(self, name: str) -> List[BackupInfo]:
        directory = self.history_dir(name)
        if not directory.exists():
            return []

        backups = []
        for path in directory.glob(f"{name}-*.json"):
            match = _BACKUP_NAME.match(path.name)
            if not match or match.group("name") != name:
                continue
            try:
                created = datetime.strptime(match.group("ts"), _TS_FORMAT).replace(tzinfo=timezone.utc)
            except ValueError:
                logger.warning(f"Ignoring backup with unreadable timestamp: {path.name}")
                continue
            try:
                size = path.stat().st_size
            except FileNotFoundError:
                continue
            backups.append(BackupInfo(
                path=path,
                name=name,
                version=int(match.group("version")),
                created_at=created,
                size=size,
            ))

        # Newest first
        backups.sort(key=lambda b: (b.version, b.created_at), reverse=True)
        return backups

    def _prune_history(self, name: str) -> int:
        backups = self._history(name)
        cutoff = None
        if self.max_backup_age is not None:
            cutoff = datetime.now(timezone.utc) - self.max_backup_age

        removed = 0
        for index, backup in enumerate(backups):
            too_many = index >= self.max_backups
            too_old = cutoff is not None and index > 0 and backup.created_at < cutoff
            if too_many or too_old:
                backup.path.unlink(missing_ok=True)
                removed += 1

        if removed:
            logger.info(f"Pruned {removed} old backups for {name}")
        return removed

    async def list_backups(
        self,
        content_type: ContentType,
        variant: Optional[str] = None,
    ) -> List[BackupInfo]:
        """Timestamped backups for a document, newest first."""
        name = document_name(content_type, variant)
        return await asyncio.to_thread(self._history, name)

    async def restore_from_backup(
        self,
        content_type: ContentType,
        variant: Optional[str] = None,
        level: int = 1,
    ) -> bool:
        """
        Republish the payload of an older backup as a new version.

        level=1 is the backup before the current one. The restore is itself
        an update, so versions keep increasing.
        """
        name = document_name(content_type, variant)
        backups = await asyncio.to_thread(self._history, name)
        if len(backups) <= level:
            logger.warning(f"Backup level {level} not found for {name}")
            return False

        source = backups[level]
        try:
            document = await asyncio.to_thread(self._load, source.path)
        except (OSError, ValueError, KeyError) as e:
            logger.error(f"Failed to read backup {source.path}: {e}")
            return False

        logger.info(f"Restoring {name} from backup v{source.version}")
        return await self.update(content_type, document.payload, variant)

    # =========================================================================
    # Status
    # =========================================================================

    def status(self) -> Dict:
        """Read-only report for health checks."""
        return {
            "status": "JSON snapshot system active",
            "basePath": str(self.base_path),
            "backupPath": str(self.backup_dir),
            "maxBackups": self.max_backups,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
