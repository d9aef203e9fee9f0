import io
import json
import shutil
import tempfile
from datetime import datetime, timedelta, timezone as dt_timezone
from pathlib import Path
from unittest import mock

from django.core.management import call_command
from django.core.management.base import CommandError
from django.db import OperationalError
from django.test import TestCase, override_settings
from rest_framework.exceptions import ValidationError

from vault.backup import create_snapshot
from vault.events import ADDED, DELETED, UPDATED, RecordEvents
from vault.models import Record
from vault.reports import get_statistics
from vault.serializers import RecordSerializer
from vault.services import RecordRepository


class VaultTestCase(TestCase):
    """Points backups and exports at a throwaway directory."""

    def setUp(self):
        self.tmp_dir = Path(tempfile.mkdtemp())
        self.addCleanup(shutil.rmtree, self.tmp_dir, ignore_errors=True)
        self.backup_dir = self.tmp_dir / "backups"
        self.export_path = self.tmp_dir / "export.txt"
        override = override_settings(
            VAULT_BACKUP_DIR=str(self.backup_dir),
            VAULT_EXPORT_PATH=str(self.export_path),
        )
        override.enable()
        self.addCleanup(override.disable)
        self.repository = RecordRepository()

    def snapshot_files(self):
        if not self.backup_dir.exists():
            return []
        return sorted(self.backup_dir.glob("backup_*.json"))


class RecordRepositoryTests(VaultTestCase):
    def test_add_and_list_record(self):
        record = self.repository.add("alpha", "first")

        records = self.repository.list()
        self.assertEqual(len(records), 1)
        self.assertEqual(records[0].pk, record.pk)
        self.assertEqual(records[0].name, "alpha")
        self.assertEqual(records[0].value, "first")
        self.assertEqual(records[0].created_at, records[0].updated_at)

    def test_add_accepts_long_name(self):
        name = "n" * 1000
        record = self.repository.add(name, "first")

        record.refresh_from_db()
        self.assertEqual(record.name, name)
        self.assertEqual(Record.objects.count(), 1)

    def test_add_strips_surrounding_whitespace(self):
        record = self.repository.add("  alpha ", " first\t")
        self.assertEqual(record.name, "alpha")
        self.assertEqual(record.value, "first")

    def test_add_rejects_empty_or_blank_fields(self):
        for name, value in [("", "x"), ("   ", "x"), ("x", ""), ("x", " \t ")]:
            with self.subTest(name=name, value=value):
                with self.assertRaises(ValidationError):
                    self.repository.add(name, value)
        self.assertEqual(Record.objects.count(), 0)
        self.assertEqual(self.snapshot_files(), [])

    def test_update_missing_record_returns_none(self):
        self.repository.add("alpha", "first")
        self.assertIsNone(self.repository.update(999999, "beta", "second"))
        self.assertIsNone(self.repository.update("not-an-id", "beta", "second"))
        self.assertEqual(
            [(r.name, r.value) for r in self.repository.list()],
            [("alpha", "first")],
        )

    def test_update_changes_only_that_record(self):
        target = self.repository.add("alpha", "first")
        other = self.repository.add("beta", "second")
        later = target.created_at + timedelta(seconds=5)

        with mock.patch("vault.services.timezone.now", return_value=later):
            updated = self.repository.update(str(target.pk), "gamma", "third")

        self.assertEqual(updated.pk, target.pk)
        target.refresh_from_db()
        self.assertEqual((target.name, target.value), ("gamma", "third"))
        self.assertGreater(target.updated_at, target.created_at)
        other.refresh_from_db()
        self.assertEqual((other.name, other.value), ("beta", "second"))

    def test_update_validates_like_add(self):
        record = self.repository.add("alpha", "first")
        with self.assertRaises(ValidationError):
            self.repository.update(record.pk, " ", "second")
        record.refresh_from_db()
        self.assertEqual(record.name, "alpha")

    def test_out_of_range_id_is_not_found(self):
        self.repository.add("alpha", "first")
        huge_id = "9" * 25

        self.assertIsNone(self.repository.update(huge_id, "beta", "second"))
        self.assertIsNone(self.repository.delete(huge_id))
        self.assertEqual(
            [(r.name, r.value) for r in self.repository.list()],
            [("alpha", "first")],
        )

    def test_delete_missing_record_returns_none(self):
        self.repository.add("alpha", "first")
        self.assertIsNone(self.repository.delete(999999))
        self.assertIsNone(self.repository.delete(""))
        self.assertEqual(Record.objects.count(), 1)

    def test_delete_removes_record(self):
        keep = self.repository.add("alpha", "first")
        remove = self.repository.add("beta", "second")

        deleted = self.repository.delete(remove.pk)

        self.assertEqual(deleted.pk, remove.pk)
        self.assertEqual(Record.objects.count(), 1)
        self.assertFalse(Record.objects.filter(pk=remove.pk).exists())
        self.assertTrue(Record.objects.filter(pk=keep.pk).exists())

    def test_search_matches_name_case_insensitively(self):
        self.repository.add("Foobar", "1")
        self.repository.add("my FOO", "2")
        self.repository.add("bar", "3")

        names = [record.name for record in self.repository.search("foo")]
        self.assertEqual(names, ["Foobar", "my FOO"])

    def test_search_matches_id(self):
        record = self.repository.add("alpha", "first")
        self.assertIn(record.pk, [r.pk for r in self.repository.search(str(record.pk))])

    def test_sort_by_name(self):
        for name in ["cherry", "Apple", "banana"]:
            self.repository.add(name, "x")

        ascending = [r.name for r in self.repository.sort("name", "asc")]
        descending = [r.name for r in self.repository.sort("name", "desc")]

        self.assertEqual(ascending, ["Apple", "banana", "cherry"])
        self.assertEqual(descending, ["cherry", "banana", "Apple"])

    def test_sort_by_name_ignores_accents_before_ordering(self):
        for name in ["zeta", "Émile", "eve", "Edgar"]:
            self.repository.add(name, "x")

        self.assertEqual(
            [r.name for r in self.repository.sort("name", "asc")],
            ["Edgar", "Émile", "eve", "zeta"],
        )

    def test_sort_by_date(self):
        base = datetime(2024, 1, 1, tzinfo=dt_timezone.utc)
        for offset, name in [(2, "middle"), (1, "oldest"), (3, "newest")]:
            created = base + timedelta(days=offset)
            Record.objects.create(name=name, value="x", created_at=created, updated_at=created)

        self.assertEqual(
            [r.name for r in self.repository.sort("date", "desc")],
            ["newest", "middle", "oldest"],
        )
        self.assertEqual(
            [r.name for r in self.repository.sort("date", "asc")],
            ["oldest", "middle", "newest"],
        )
        # Stored order is untouched.
        self.assertEqual([r.name for r in self.repository.list()], ["middle", "oldest", "newest"])

    def test_sort_rejects_unknown_field_or_order(self):
        with self.assertRaises(ValueError):
            self.repository.sort("value", "asc")
        with self.assertRaises(ValueError):
            self.repository.sort("name", "sideways")


class RecordEventsTests(VaultTestCase):
    def test_listeners_run_in_registration_order(self):
        calls = []
        self.repository.events.connect(lambda sender, record, event, **kwargs: calls.append(("first", event, record.name)))
        self.repository.events.connect(lambda sender, record, event, **kwargs: calls.append(("second", event, record.name)))

        record = self.repository.add("alpha", "1")
        self.repository.update(record.pk, "beta", "2")
        self.repository.delete(record.pk)

        self.assertEqual(
            calls,
            [
                ("first", ADDED, "alpha"),
                ("second", ADDED, "alpha"),
                ("first", UPDATED, "beta"),
                ("second", UPDATED, "beta"),
                ("first", DELETED, "beta"),
                ("second", DELETED, "beta"),
            ],
        )

    def test_failing_listener_does_not_stop_others(self):
        seen = []

        def broken(sender, record, event, **kwargs):
            raise RuntimeError("listener down")

        self.repository.events.connect(broken)
        self.repository.events.connect(lambda sender, record, event, **kwargs: seen.append(event))

        with self.assertLogs("django.dispatch", level="ERROR") as logs:
            with self.assertNoLogs("vault.events", level="ERROR"):
                record = self.repository.add("alpha", "1")

        self.assertEqual(seen, [ADDED])
        self.assertTrue(Record.objects.filter(pk=record.pk).exists())
        self.assertIn("listener down", logs.output[0])

    def test_listener_can_subscribe_to_selected_events(self):
        seen = []
        self.repository.events.connect(
            lambda sender, record, event, **kwargs: seen.append(record.pk),
            events=[DELETED],
        )

        record = self.repository.add("alpha", "1")
        self.repository.update(record.pk, "beta", "2")
        self.repository.delete(record.pk)

        self.assertEqual(seen, [record.pk])

    def test_repositories_do_not_share_listeners(self):
        seen = []
        self.repository.events.connect(lambda sender, record, event, **kwargs: seen.append(event))

        RecordRepository().add("alpha", "1")

        self.assertEqual(seen, [])

    def test_unknown_event_is_rejected(self):
        with self.assertRaises(ValueError):
            RecordEvents().publish("renamed", Record(name="a", value="b"))


class SnapshotTests(VaultTestCase):
    def test_add_and_delete_each_write_one_snapshot(self):
        record = self.repository.add("alpha", "1")
        self.assertEqual(len(self.snapshot_files()), 1)

        with mock.patch("vault.backup.timezone.now", return_value=datetime(2030, 1, 1, tzinfo=dt_timezone.utc)):
            self.repository.add("beta", "2")
        self.assertEqual(len(self.snapshot_files()), 2)

        self.repository.update(record.pk, "gamma", "3")
        self.assertEqual(len(self.snapshot_files()), 2)

        with mock.patch("vault.backup.timezone.now", return_value=datetime(2031, 1, 1, tzinfo=dt_timezone.utc)):
            self.repository.delete(record.pk)
        files = self.snapshot_files()
        self.assertEqual(len(files), 3)

        latest = self.backup_dir / "backup_2031-01-01_00-00-00.json"
        self.assertIn(latest, files)
        expected = json.loads(json.dumps(RecordSerializer(Record.objects.all(), many=True).data))
        self.assertEqual(json.loads(latest.read_text(encoding="utf-8")), expected)
        self.assertEqual([item["name"] for item in expected], ["beta"])

    def test_snapshot_uses_two_space_indent(self):
        self.repository.add("alpha", "1")
        content = self.snapshot_files()[0].read_text(encoding="utf-8")
        self.assertTrue(content.startswith('[\n  {\n    "id": '))

    def test_snapshots_in_same_second_do_not_overwrite(self):
        fixed = datetime(2024, 5, 6, 7, 8, 9, tzinfo=dt_timezone.utc)
        with mock.patch("vault.backup.timezone.now", return_value=fixed):
            first = create_snapshot([])
            second = create_snapshot([])

        self.assertEqual(first.path.name, "backup_2024-05-06_07-08-09.json")
        self.assertEqual(second.path.name, "backup_2024-05-06_07-08-09_1.json")
        self.assertEqual(len(self.snapshot_files()), 2)

    def test_snapshot_failure_does_not_fail_mutation(self):
        # A regular file where the backup directory should be.
        self.backup_dir.write_text("in the way", encoding="utf-8")

        with self.assertLogs("vault.services", level="ERROR") as logs:
            record = self.repository.add("alpha", "1")

        self.assertTrue(Record.objects.filter(pk=record.pk).exists())
        self.assertIn("Snapshot failed", logs.output[0])

        result = create_snapshot([record])
        self.assertFalse(result.ok)
        self.assertIsNone(result.path)
        self.assertIsInstance(result.error, OSError)


class ReportTests(VaultTestCase):
    def test_statistics_for_empty_vault(self):
        stats = self.repository.statistics()
        self.assertEqual(stats.total_records, 0)
        self.assertIsNone(stats.longest_name)
        self.assertEqual(stats.longest_name_length, 0)
        self.assertIsNone(stats.earliest_date)
        self.assertIsNone(stats.latest_date)
        self.assertIsNone(stats.last_modified)

    def test_statistics_end_to_end(self):
        first = datetime(2024, 1, 1, tzinfo=dt_timezone.utc)
        second = datetime(2024, 2, 1, tzinfo=dt_timezone.utc)
        with mock.patch("vault.services.timezone.now", return_value=first):
            alpha = self.repository.add("alpha", "1")
        with mock.patch("vault.services.timezone.now", return_value=second):
            beta = self.repository.add("beta", "2")

        stats = self.repository.statistics()

        self.assertEqual(stats.total_records, 2)
        self.assertEqual(stats.longest_name, "alpha")
        self.assertEqual(stats.longest_name_length, 5)
        self.assertEqual(stats.earliest_date, alpha.created_at)
        self.assertEqual(stats.latest_date, beta.created_at)
        self.assertEqual(stats.last_modified, second)

    def test_longest_name_keeps_first_on_tie(self):
        records = [Record(name=name, value="x", created_at=datetime(2024, 1, 1, tzinfo=dt_timezone.utc)) for name in ["bbb", "aaa", "cc"]]
        self.assertEqual(get_statistics(records).longest_name, "bbb")

    def test_last_modified_tracks_updates(self):
        record = self.repository.add("alpha", "1")
        later = record.created_at + timedelta(hours=1)
        with mock.patch("vault.services.timezone.now", return_value=later):
            self.repository.update(record.pk, "alpha", "2")

        self.assertEqual(self.repository.statistics().last_modified, later)

    def test_export_writes_fixed_layout(self):
        created = datetime(2024, 3, 4, 5, 6, 7, tzinfo=dt_timezone.utc)
        record = Record.objects.create(name="alpha", value="first", created_at=created, updated_at=created)

        exported_at = datetime(2024, 6, 7, 8, 9, 10, tzinfo=dt_timezone.utc)
        with mock.patch("vault.reports.timezone.now", return_value=exported_at):
            path = self.repository.export_to_text()

        self.assertEqual(path, self.export_path)
        self.assertEqual(
            path.read_text(encoding="utf-8"),
            "========================================\n"
            "VAULT DATA EXPORT\n"
            "========================================\n"
            "Export Date/Time: 2024-06-07 08:09:10\n"
            "Total Records: 1\n"
            "File Name: export.txt\n"
            "========================================\n"
            "\n"
            "Record 1:\n"
            f"  ID: {record.pk}\n"
            "  Name: alpha\n"
            "  Value: first\n"
            "  Created: 2024-03-04\n"
            "\n",
        )

    def test_export_overwrites_previous_file(self):
        self.repository.add("alpha", "1")
        self.repository.export_to_text()
        self.repository.delete(Record.objects.get().pk)

        content = self.repository.export_to_text().read_text(encoding="utf-8")

        self.assertIn("Total Records: 0", content)
        self.assertIn("No records found.", content)
        self.assertNotIn("alpha", content)


class VaultCommandTests(VaultTestCase):
    def run_session(self, script):
        out, err = io.StringIO(), io.StringIO()
        call_command("vault", stdin=io.StringIO(script), stdout=out, stderr=err)
        return out.getvalue(), err.getvalue()

    def test_add_then_list(self):
        out, err = self.run_session("1\nalpha\nfirst\n2\n9\n")

        self.assertIn("Record added successfully!", out)
        record = Record.objects.get()
        self.assertIn(f"ID: {record.pk} | Name: alpha | Value: first | Created: ", out)
        self.assertIn("Exiting Record Vault...", out)
        self.assertEqual(err, "")

    def test_validation_error_returns_to_menu(self):
        out, err = self.run_session("1\n   \nfirst\n2\n9\n")

        self.assertIn("Error adding record: Name cannot be empty.", err)
        self.assertIn("No records found.", out)
        self.assertEqual(Record.objects.count(), 0)

    def test_update_and_delete_unknown_id(self):
        out, _ = self.run_session("3\n12345\nname\nvalue\n4\nabc\n9\n")
        self.assertEqual(out.count("Record not found."), 2)

    def test_out_of_range_id_returns_to_menu(self):
        huge_id = "9" * 25
        out, err = self.run_session(f"3\n{huge_id}\nname\nvalue\n4\n{huge_id}\n2\n9\n")

        self.assertEqual(out.count("Record not found."), 2)
        self.assertIn("Exiting Record Vault...", out)
        self.assertEqual(err, "")

    def test_sort_search_export_and_statistics(self):
        self.repository.add("beta", "2")
        self.repository.add("alpha", "1")

        out, err = self.run_session("6\n1\n1\n5\nALP\n7\n8\n9\n")

        self.assertIn("Sorted Records (name, asc):", out)
        self.assertLess(out.index("Name: alpha | Created"), out.index("Name: beta | Created"))
        self.assertIn("Data exported successfully to export.txt", out)
        self.assertTrue(self.export_path.exists())
        self.assertIn("Total Records: 2", out)
        self.assertIn("Longest Name: alpha (5 characters)", out)
        self.assertEqual(err, "")

    def test_invalid_option_and_end_of_input(self):
        out, _ = self.run_session("42\n")
        self.assertIn("Invalid option.", out)
        self.assertIn("Exiting Record Vault...", out)

    def test_export_failure_is_reported(self):
        self.export_path.mkdir()
        out, err = self.run_session("7\n9\n")
        self.assertIn("Error exporting data:", err)
        self.assertIn("Exiting Record Vault...", out)

    def test_connection_failure_is_fatal(self):
        with mock.patch(
            "vault.management.commands.vault.connection.ensure_connection",
            side_effect=OperationalError("unable to open database file"),
        ):
            with self.assertRaises(CommandError) as ctx:
                self.run_session("9\n")
        self.assertEqual(ctx.exception.returncode, 1)
