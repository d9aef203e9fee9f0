"""Read-only summaries of the vault: statistics and the text export."""

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional

from django.conf import settings
from django.utils import timezone

from vault.models import Record

logger = logging.getLogger(__name__)

RULE = "=" * 40


@dataclass
class VaultStatistics:
    total_records: int = 0
    longest_name: Optional[str] = None
    longest_name_length: int = 0
    earliest_date: Optional[datetime] = None
    latest_date: Optional[datetime] = None
    last_modified: Optional[datetime] = None


def get_statistics(records: Iterable[Record]) -> VaultStatistics:
    """Compute vault statistics in a single pass over ``records``."""
    stats = VaultStatistics()
    for record in records:
        stats.total_records += 1
        # Strictly greater, so the first of equally long names is kept.
        if len(record.name) > stats.longest_name_length:
            stats.longest_name = record.name
            stats.longest_name_length = len(record.name)
        if stats.earliest_date is None or record.created_at < stats.earliest_date:
            stats.earliest_date = record.created_at
        if stats.latest_date is None or record.created_at > stats.latest_date:
            stats.latest_date = record.created_at
        modified = record.updated_at or record.created_at
        if stats.last_modified is None or modified > stats.last_modified:
            stats.last_modified = modified
    return stats


def get_export_path() -> Path:
    return Path(settings.VAULT_EXPORT_PATH)


def render_export(records: List[Record], exported_at: datetime, file_name: str) -> str:
    lines = [
        RULE,
        "VAULT DATA EXPORT",
        RULE,
        f"Export Date/Time: {exported_at:%Y-%m-%d %H:%M:%S}",
        f"Total Records: {len(records)}",
        f"File Name: {file_name}",
        RULE,
        "",
    ]
    if not records:
        lines.append("No records found.")
    for index, record in enumerate(records, start=1):
        lines.extend(
            [
                f"Record {index}:",
                f"  ID: {record.pk}",
                f"  Name: {record.name}",
                f"  Value: {record.value}",
                f"  Created: {record.created_at:%Y-%m-%d}",
                "",
            ]
        )
    return "\n".join(lines) + "\n"


def export_to_text(records: Iterable[Record]) -> Path:
    """
    Overwrite the export file with a report of ``records``.

    Raises:
        OSError: If the export file cannot be written
    """
    records = list(records)
    path = get_export_path()
    content = render_export(records, timezone.now(), path.name)
    path.write_text(content, encoding="utf-8")
    logger.info(f"Exported {len(records)} records to {path}")
    return path
