"""
Point-in-time JSON snapshots of the vault.

Snapshots are written after every add and delete so the record set can be
restored by hand if the store is lost.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from django.conf import settings
from django.utils import timezone

from vault.models import Record
from vault.serializers import RecordSerializer

logger = logging.getLogger(__name__)

SNAPSHOT_PREFIX = "backup_"
SNAPSHOT_TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"
MAX_SUFFIX = 1000


@dataclass(frozen=True)
class SnapshotResult:
    """Outcome of a snapshot write: either ``path`` or ``error`` is set."""

    path: Optional[Path] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def get_backup_dir() -> Path:
    return Path(settings.VAULT_BACKUP_DIR)


def _open_new_snapshot(backup_dir: Path, stamp: str):
    """
    Create a fresh snapshot file, never touching an existing one.

    Files written within the same second get a numeric suffix.
    """
    for suffix in range(MAX_SUFFIX):
        name = f"{SNAPSHOT_PREFIX}{stamp}.json" if suffix == 0 else f"{SNAPSHOT_PREFIX}{stamp}_{suffix}.json"
        path = backup_dir / name
        try:
            return path, path.open("x", encoding="utf-8")
        except FileExistsError:
            continue
    raise FileExistsError(f"Too many snapshots for {stamp} in {backup_dir}")


def create_snapshot(records: Iterable[Record]) -> SnapshotResult:
    """
    Write ``records`` to a new timestamped JSON file in the backup directory.

    Filesystem errors are returned in the result rather than raised.
    """
    data = RecordSerializer(list(records), many=True).data
    stamp = timezone.now().strftime(SNAPSHOT_TIMESTAMP_FORMAT)
    backup_dir = get_backup_dir()

    try:
        backup_dir.mkdir(parents=True, exist_ok=True)
        path, handle = _open_new_snapshot(backup_dir, stamp)
        with handle:
            json.dump(data, handle, indent=2, ensure_ascii=False)
    except OSError as exc:
        return SnapshotResult(error=exc)

    logger.info(f"Backup created at {path}")
    return SnapshotResult(path=path)
