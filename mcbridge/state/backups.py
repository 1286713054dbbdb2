"""
mcbridge Backups - Append-only snapshots of paths taken before mutation.

Copies live under ``<backup_dir>/<path-hash>/<name>_<timestamp>.bak`` and
are described by a YAML index. A record is never rewritten; it is only
removed by an explicit cleanup or restore.
"""

import hashlib
import logging
import shutil
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from mcbridge.errors import InvalidParams
from mcbridge.files.atomic import atomic_write_bytes, atomic_write_text

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackupRecord:
    """
    One captured snapshot.

    ``existed`` is False when the path was absent at capture time; such a
    record has no copy, and restoring it means deleting the path.
    """

    record_id: str
    original_path: str
    backup_path: Optional[str]
    captured_at: datetime
    existed: bool = True
    sha256: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert the record to a dictionary for serialization."""
        return {
            "record_id": self.record_id,
            "original_path": self.original_path,
            "backup_path": self.backup_path,
            "captured_at": self.captured_at.isoformat(),
            "existed": self.existed,
            "sha256": self.sha256,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BackupRecord":
        return cls(
            record_id=data["record_id"],
            original_path=data["original_path"],
            backup_path=data.get("backup_path"),
            captured_at=datetime.fromisoformat(data["captured_at"]),
            existed=data.get("existed", True),
            sha256=data.get("sha256"),
        )


class BackupStore:
    """
    Backup records for one project.

    Example:
        >>> store = BackupStore(Path(".mcbridge/backups"))
        >>> record = store.capture(Path("/project/main.tf"))
        >>> store.latest_for(Path("/project/main.tf")) == record
        True
    """

    INDEX_NAME = "index.yaml"

    def __init__(self, backup_dir: Path):
        """
        Initialize the BackupStore.

        Args:
            backup_dir: Directory holding the copies and the index. Created
                lazily on the first capture.
        """
        self.backup_dir = Path(backup_dir)
        self._records: List[BackupRecord] = self._load_index()

    # ── Index ─────────────────────────────────────────────────────────────

    @property
    def index_path(self) -> Path:
        return self.backup_dir / self.INDEX_NAME

    def _load_index(self) -> List[BackupRecord]:
        if not self.index_path.exists():
            return []
        with open(self.index_path) as f:
            data = yaml.safe_load(f) or {}
        return [BackupRecord.from_dict(item) for item in data.get("records", [])]

    def _save_index(self) -> None:
        payload = {"records": [record.to_dict() for record in self._records]}
        atomic_write_text(
            self.index_path,
            yaml.dump(payload, default_flow_style=False, sort_keys=False),
        )

    # ── Capture ───────────────────────────────────────────────────────────

    @staticmethod
    def path_hash(path: Path) -> str:
        return hashlib.sha256(str(path).encode("utf-8")).hexdigest()[:16]

    def capture(self, path: Path) -> BackupRecord:
        """
        Snapshot ``path`` as it is right now.

        Args:
            path: Canonical absolute path of the file about to be touched.

        Returns:
            The new record, already persisted in the index.
        """
        path = Path(path)
        record_id = uuid.uuid4().hex[:12]
        captured_at = datetime.now()

        if path.exists() and not path.is_file():
            raise InvalidParams(f"Not a regular file: {path}", data={"path": str(path)})

        if path.is_file():
            data = path.read_bytes()
            subdir = self.backup_dir / self.path_hash(path)
            subdir.mkdir(parents=True, exist_ok=True)
            stamp = captured_at.strftime("%Y%m%d_%H%M%S_%f")
            backup_path = subdir / f"{path.name}_{stamp}.bak"
            if backup_path.exists():
                backup_path = subdir / f"{path.name}_{stamp}_{record_id}.bak"
            backup_path.write_bytes(data)
            record = BackupRecord(
                record_id=record_id,
                original_path=str(path),
                backup_path=str(backup_path),
                captured_at=captured_at,
                existed=True,
                sha256=hashlib.sha256(data).hexdigest(),
            )
            logger.info("backed up %s to %s", path, backup_path)
        else:
            record = BackupRecord(
                record_id=record_id,
                original_path=str(path),
                backup_path=None,
                captured_at=captured_at,
                existed=False,
            )
            logger.info("recorded absence of %s", path)

        self._records.append(record)
        self._save_index()
        return record

    # ── Lookup ────────────────────────────────────────────────────────────

    def list_for(self, path: Path) -> List[BackupRecord]:
        """Records for ``path``, newest first."""
        key = str(path)
        return [record for record in reversed(self._records) if record.original_path == key]

    def latest_for(self, path: Path) -> Optional[BackupRecord]:
        records = self.list_for(path)
        return records[0] if records else None

    def get(self, record_id: str) -> Optional[BackupRecord]:
        for record in self._records:
            if record.record_id == record_id:
                return record
        return None

    def __len__(self) -> int:
        return len(self._records)

    # ── Restore / cleanup ─────────────────────────────────────────────────

    def restore(self, record: BackupRecord) -> None:
        """Put ``record``'s snapshot back in place."""
        original = Path(record.original_path)
        if not record.existed:
            if original.exists():
                original.unlink()
            logger.info("restored absence of %s", original)
            return

        backup_path = Path(record.backup_path)
        if not backup_path.is_file():
            raise InvalidParams(
                f"Backup copy is missing: {backup_path}",
                data={"record_id": record.record_id},
            )
        atomic_write_bytes(original, backup_path.read_bytes())
        logger.info("restored %s from %s", original, backup_path)

    def remove(self, record_id: str) -> Optional[BackupRecord]:
        record = self.get(record_id)
        if record is None:
            return None
        self._records = [r for r in self._records if r.record_id != record_id]
        self._delete_copy(record)
        self._save_index()
        return record

    def remove_for(self, path: Path) -> List[BackupRecord]:
        """Delete every record and copy for ``path``; returns what was removed."""
        removed = self.list_for(path)
        if not removed:
            return []
        ids = {record.record_id for record in removed}
        self._records = [r for r in self._records if r.record_id not in ids]
        for record in removed:
            self._delete_copy(record)
        subdir = self.backup_dir / self.path_hash(Path(path))
        if subdir.is_dir() and not any(subdir.iterdir()):
            shutil.rmtree(subdir)
        self._save_index()
        logger.info("removed %d backup(s) of %s", len(removed), path)
        return removed

    @staticmethod
    def _delete_copy(record: BackupRecord) -> None:
        if record.backup_path:
            Path(record.backup_path).unlink(missing_ok=True)
