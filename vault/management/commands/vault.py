import locale
import logging
import sys

from django.core.management.base import BaseCommand, CommandError
from django.db import DatabaseError, OperationalError, connection
from rest_framework.exceptions import ValidationError

from vault.events import log_record_event
from vault.services import RecordRepository

logger = logging.getLogger(__name__)

MENU = """
===== Record Vault =====
1. Add Record
2. List Records
3. Update Record
4. Delete Record
5. Search Records
6. Sort Records
7. Export Data
8. View Vault Statistics
9. Exit
========================"""

EXIT_CHOICE = "9"
STATS_RULE = "-" * 26


def _format_validation_error(exc: ValidationError) -> str:
    detail = exc.detail
    if isinstance(detail, dict):
        messages = [str(message) for messages in detail.values() for message in messages]
    elif isinstance(detail, list):
        messages = [str(message) for message in detail]
    else:
        messages = [str(detail)]
    return " ".join(messages)


class Command(BaseCommand):
    help = "Interactive menu for adding, listing, updating and reporting on vault records."

    # Lets tests script the session through call_command("vault", stdin=...).
    stealth_options = ("stdin",)

    def handle(self, *args, **options):
        self.stdin = options.get("stdin") or sys.stdin
        self._use_system_collation()
        self._connect()

        self.repository = RecordRepository()
        self.repository.events.connect(log_record_event)

        actions = {
            "1": self.add_record,
            "2": self.list_records,
            "3": self.update_record,
            "4": self.delete_record,
            "5": self.search_records,
            "6": self.sort_records,
            "7": self.export_data,
            "8": self.show_statistics,
        }

        while True:
            self.stdout.write(MENU)
            try:
                choice = self._ask("Choose option: ").strip()
                if choice == EXIT_CHOICE:
                    break
                action = actions.get(choice)
                if action is None:
                    self.stdout.write("Invalid option.")
                    continue
                action()
            except EOFError:
                break
            except DatabaseError as exc:
                self.stderr.write(f"Store error: {exc}")

        self.stdout.write("Exiting Record Vault...")

    def _use_system_collation(self):
        try:
            locale.setlocale(locale.LC_COLLATE, "")
        except locale.Error as exc:
            logger.warning(f"Falling back to default collation: {exc}")

    def _connect(self):
        try:
            connection.ensure_connection()
        except OperationalError as exc:
            raise CommandError(f"Store connection error: {exc}", returncode=1) from exc
        self.stdout.write(f"Connected to store {connection.settings_dict['NAME']}")

    def _ask(self, prompt: str) -> str:
        self.stdout.write(prompt, ending="")
        self.stdout.flush()
        line = self.stdin.readline()
        if not line:
            raise EOFError
        return line.rstrip("\r\n")

    def _write_records(self, records, with_value=False):
        if not records:
            self.stdout.write("No records found.")
            return
        for record in records:
            parts = [f"ID: {record.pk}", f"Name: {record.name}"]
            if with_value:
                parts.append(f"Value: {record.value}")
            parts.append(f"Created: {record.created_at:%Y-%m-%d}")
            self.stdout.write(" | ".join(parts))

    def add_record(self):
        name = self._ask("Enter name: ")
        value = self._ask("Enter value: ")
        try:
            self.repository.add(name, value)
        except ValidationError as exc:
            self.stderr.write(f"Error adding record: {_format_validation_error(exc)}")
            return
        self.stdout.write(self.style.SUCCESS("Record added successfully!"))

    def list_records(self):
        self._write_records(self.repository.list(), with_value=True)

    def update_record(self):
        record_id = self._ask("Enter record ID to update: ").strip()
        name = self._ask("New name: ")
        value = self._ask("New value: ")
        try:
            updated = self.repository.update(record_id, name, value)
        except ValidationError as exc:
            self.stderr.write(f"Error updating record: {_format_validation_error(exc)}")
            return
        self.stdout.write(self.style.SUCCESS("Record updated!") if updated else "Record not found.")

    def delete_record(self):
        record_id = self._ask("Enter record ID to delete: ").strip()
        deleted = self.repository.delete(record_id)
        self.stdout.write(self.style.SUCCESS("Record deleted!") if deleted else "Record not found.")

    def search_records(self):
        keyword = self._ask("Enter search keyword: ")
        self._write_records(self.repository.search(keyword))

    def sort_records(self):
        field_choice = self._ask("Choose field to sort by: (1) Name, (2) Creation Date: ").strip()
        field = "name" if field_choice == "1" else "date"
        order_choice = self._ask("Choose order: (1) Ascending, (2) Descending: ").strip()
        order = "asc" if order_choice == "1" else "desc"

        records = self.repository.sort(field, order)
        if records:
            self.stdout.write(f"\nSorted Records ({field}, {order}):")
        self._write_records(records)

    def export_data(self):
        try:
            path = self.repository.export_to_text()
        except OSError as exc:
            self.stderr.write(f"Error exporting data: {exc}")
            return
        self.stdout.write(self.style.SUCCESS(f"Data exported successfully to {path.name}"))

    def show_statistics(self):
        stats = self.repository.statistics()
        self.stdout.write("\nVault Statistics:")
        self.stdout.write(STATS_RULE)
        self.stdout.write(f"Total Records: {stats.total_records}")
        if stats.last_modified:
            self.stdout.write(f"Last Modified: {stats.last_modified:%Y-%m-%d %H:%M:%S}")
        if stats.longest_name:
            self.stdout.write(
                f"Longest Name: {stats.longest_name} ({stats.longest_name_length} characters)"
            )
        if stats.earliest_date:
            self.stdout.write(f"Earliest Record: {stats.earliest_date:%Y-%m-%d}")
        if stats.latest_date:
            self.stdout.write(f"Latest Record: {stats.latest_date:%Y-%m-%d}")
        self.stdout.write(f"{STATS_RULE}\n")
