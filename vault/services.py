import locale
import logging
import unicodedata
from typing import List, Optional

from django.utils import timezone

from vault import reports
from vault.backup import SnapshotResult, create_snapshot
from vault.events import ADDED, DELETED, UPDATED, RecordEvents
from vault.models import Record
from vault.serializers import RecordWriteSerializer

logger = logging.getLogger(__name__)

SORT_FIELDS = ("name", "date")
SORT_ORDERS = ("asc", "desc")


def validate_record(name: str, value: str) -> dict:
    """
    Validate a name/value pair and return the cleaned (trimmed) data.

    Raises:
        rest_framework.exceptions.ValidationError: If either field is empty
            or whitespace-only
    """
    serializer = RecordWriteSerializer(data={"name": name, "value": value})
    serializer.is_valid(raise_exception=True)
    return serializer.validated_data


def _fold_name(name: str) -> str:
    decomposed = unicodedata.normalize("NFKD", name)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).casefold()


def _name_sort_key(record: Record):
    # Accents and case only break ties, so "Émile" lands between "Edgar" and "eve".
    return locale.strxfrm(_fold_name(record.name)), locale.strxfrm(record.name)


class RecordRepository:
    """CRUD and query operations over the record collection."""

    def __init__(self, events: Optional[RecordEvents] = None):
        self.events = events if events is not None else RecordEvents()

    def _get(self, record_id) -> Optional[Record]:
        try:
            return Record.objects.filter(pk=record_id).first()
        except (TypeError, ValueError, OverflowError):
            # Malformed or out-of-range ids are treated like unknown ones.
            return None

    def _snapshot(self) -> SnapshotResult:
        result = create_snapshot(self.list())
        if not result.ok:
            logger.error(f"Snapshot failed: {result.error}")
        return result

    def add(self, name: str, value: str) -> Record:
        """
        Persist a new record, notify listeners and snapshot the vault.

        Raises:
            rest_framework.exceptions.ValidationError: On empty name or value
        """
        data = validate_record(name, value)
        now = timezone.now()
        record = Record.objects.create(
            name=data["name"],
            value=data["value"],
            created_at=now,
            updated_at=now,
        )
        self.events.publish(ADDED, record)
        self._snapshot()
        return record

    def list(self) -> List[Record]:
        return list(Record.objects.all())

    def update(self, record_id, name: str, value: str) -> Optional[Record]:
        """
        Replace the name and value of an existing record.

        Returns:
            The updated record, or None if no record has that id

        Raises:
            rest_framework.exceptions.ValidationError: On empty name or value
        """
        data = validate_record(name, value)
        record = self._get(record_id)
        if record is None:
            return None

        record.name = data["name"]
        record.value = data["value"]
        record.updated_at = timezone.now()
        record.save(update_fields=["name", "value", "updated_at"])
        self.events.publish(UPDATED, record)
        return record

    def delete(self, record_id) -> Optional[Record]:
        """
        Remove a record permanently.

        Returns:
            The removed record (still carrying its id), or None if not found
        """
        record = self._get(record_id)
        if record is None:
            return None

        # Delete through the queryset so the instance keeps its primary key.
        deleted, _ = Record.objects.filter(pk=record.pk).delete()
        if not deleted:
            return None
        self.events.publish(DELETED, record)
        self._snapshot()
        return record

    def search(self, keyword: str) -> List[Record]:
        """Match ``keyword`` against names (case-insensitive) and ids (literal)."""
        keyword_lower = keyword.lower()
        return [
            record
            for record in self.list()
            if keyword_lower in record.name.lower() or keyword in str(record.pk)
        ]

    def sort(self, field: str, order: str = "asc") -> List[Record]:
        """
        Return all records ordered by ``name`` or creation ``date``.

        Raises:
            ValueError: If field or order is not recognised
        """
        if field not in SORT_FIELDS:
            raise ValueError(f"Unknown sort field: {field}")
        if order not in SORT_ORDERS:
            raise ValueError(f"Unknown sort order: {order}")

        key = _name_sort_key if field == "name" else (lambda record: record.created_at)
        return sorted(self.list(), key=key, reverse=order == "desc")

    def statistics(self) -> reports.VaultStatistics:
        return reports.get_statistics(self.list())

    def export_to_text(self):
        """Write the text export of all records and return its path."""
        return reports.export_to_text(self.list())
