from datetime import datetime, timezone
from unittest import mock

from django.db import connection
from django.db.models import F, Q, QuerySet
from django.test import TestCase
from django.test.utils import CaptureQueriesContext

from safelock.exceptions import StaleObjectConflict, UnsupportedConditionKind
from safelock.models import KeyValueEntry, KeyValueTag
from safelock.writer import OccWriter

LONG_AGO = datetime(2000, 1, 1, tzinfo=timezone.utc)


def advance_stored_version(entry):
    """Simulate another writer saving the row behind our back."""
    KeyValueEntry.objects.filter(pk=entry.pk).update(value="theirs", version=F("version") + 1)


class OccWriterUpdateTests(TestCase):
    def setUp(self):
        created = KeyValueEntry.objects.create(key="alpha", value="first")
        KeyValueEntry.objects.filter(pk=created.pk).update(updated_at=LONG_AGO)
        self.entry = KeyValueEntry.objects.get(pk=created.pk)

    def test_update_increments_version(self):
        outcome = OccWriter(self.entry).update(self.entry.pk, {"value": "second"})

        self.assertEqual(outcome.rows_affected, 1)
        self.assertEqual(outcome.condition, "version = 0")
        self.assertEqual(self.entry.version, 1)
        stored = KeyValueEntry.objects.get(pk=self.entry.pk)
        self.assertEqual(stored.version, 1)
        self.assertEqual(stored.value, "second")

    def test_update_refreshes_updated_at(self):
        OccWriter(self.entry).update(self.entry.pk, {"value": "second"})

        stored = KeyValueEntry.objects.get(pk=self.entry.pk)
        self.assertNotEqual(stored.updated_at, LONG_AGO)
        self.assertEqual(self.entry.updated_at, stored.updated_at)

    def test_stale_version_raises_and_keeps_in_memory_version(self):
        advance_stored_version(self.entry)

        with self.assertRaises(StaleObjectConflict) as ctx:
            OccWriter(self.entry).update(self.entry.pk, {"value": "mine"})

        self.assertEqual(ctx.exception.expected_version, 0)
        self.assertEqual(ctx.exception.model, "KeyValueEntry")
        self.assertEqual(self.entry.version, 0)
        stored = KeyValueEntry.objects.get(pk=self.entry.pk)
        self.assertEqual(stored.value, "theirs")
        self.assertEqual(stored.version, 1)

    def test_repeated_updates_do_not_accumulate_predicates(self):
        writer = OccWriter(self.entry)
        first = writer.update(self.entry.pk, {"value": "second"}, "owner_id IS NULL")
        second = writer.update(self.entry.pk, {"value": "third"}, first.condition)

        self.assertEqual(first.condition, "owner_id IS NULL AND version = 0")
        self.assertEqual(second.condition, "owner_id IS NULL AND version = 1")
        self.assertEqual(second.condition.count("version = "), 1)
        self.assertEqual(KeyValueEntry.objects.get(pk=self.entry.pk).version, 2)

    def test_extra_condition_must_match(self):
        with self.assertRaises(StaleObjectConflict):
            OccWriter(self.entry).update(self.entry.pk, {"value": "second"}, "value = %s", ["other"])
        self.assertEqual(KeyValueEntry.objects.get(pk=self.entry.pk).version, 0)

    def test_missing_row_is_a_conflict(self):
        with self.assertRaises(StaleObjectConflict):
            OccWriter(self.entry).update(self.entry.pk + 1000, {"value": "second"})

    def test_structured_condition_rejected_before_write(self):
        with CaptureQueriesContext(connection) as queries:
            with self.assertLogs("safelock.conditions", level="ERROR"):
                with self.assertRaises(UnsupportedConditionKind) as ctx:
                    OccWriter(self.entry).update(self.entry.pk, {"value": "second"}, Q(key="alpha"))

        self.assertEqual(len(queries), 0)
        self.assertEqual(ctx.exception.condition_type, "Q")
        self.assertEqual(self.entry.version, 0)

    def test_conflict_and_unsupported_are_distinct_kinds(self):
        self.assertFalse(issubclass(StaleObjectConflict, UnsupportedConditionKind))
        self.assertFalse(issubclass(UnsupportedConditionKind, StaleObjectConflict))


class OccWriterDeleteTests(TestCase):
    def setUp(self):
        created = KeyValueEntry.objects.create(key="alpha", value="first")
        self.entry = KeyValueEntry.objects.get(pk=created.pk)

    def test_delete_current_version(self):
        outcome = OccWriter(self.entry).delete(self.entry.pk)

        self.assertEqual(outcome.rows_affected, 1)
        self.assertFalse(KeyValueEntry.objects.filter(pk=self.entry.pk).exists())

    def test_delete_stale_version_raises(self):
        advance_stored_version(self.entry)

        with self.assertRaises(StaleObjectConflict):
            OccWriter(self.entry).delete(self.entry.pk)
        self.assertTrue(KeyValueEntry.objects.filter(pk=self.entry.pk).exists())

    def test_delete_after_update_in_same_session(self):
        writer = OccWriter(self.entry)
        outcome = writer.update(self.entry.pk, {"value": "second"})

        self.assertEqual(writer.delete(self.entry.pk, outcome.condition).condition, "version = 1")
        self.assertFalse(KeyValueEntry.objects.filter(pk=self.entry.pk).exists())

    def test_structured_condition_rejected_before_delete(self):
        with CaptureQueriesContext(connection) as queries:
            with self.assertLogs("safelock.conditions", level="ERROR"):
                with self.assertRaises(UnsupportedConditionKind):
                    OccWriter(self.entry).delete(self.entry.pk, {"key": "alpha"})

        self.assertEqual(len(queries), 0)
        self.assertTrue(KeyValueEntry.objects.filter(pk=self.entry.pk).exists())


@mock.patch.object(QuerySet, "select_for_update", autospec=True, side_effect=QuerySet.select_for_update)
class OccWriterCascadeDeleteTests(TestCase):
    def setUp(self):
        created = KeyValueEntry.objects.create(key="alpha", value="first")
        self.tag = KeyValueTag.objects.create(entry=created, name="red")
        self.entry = KeyValueEntry.objects.get(pk=created.pk)

    def test_delete_with_cascade_locks_the_matched_row(self, select_for_update):
        outcome = OccWriter(self.entry).delete(self.entry.pk)

        self.assertEqual(outcome.rows_affected, 1)
        select_for_update.assert_called_once()
        self.assertFalse(KeyValueEntry.objects.filter(pk=self.entry.pk).exists())
        self.assertFalse(KeyValueTag.objects.filter(pk=self.tag.pk).exists())

    def test_stale_delete_with_cascade_keeps_everything(self, select_for_update):
        advance_stored_version(self.entry)

        with self.assertRaises(StaleObjectConflict):
            OccWriter(self.entry).delete(self.entry.pk)

        self.assertTrue(KeyValueEntry.objects.filter(pk=self.entry.pk).exists())
        self.assertTrue(KeyValueTag.objects.filter(pk=self.tag.pk).exists())

    def test_delete_without_relations_is_a_single_statement(self, select_for_update):
        tag = KeyValueTag.objects.get(pk=self.tag.pk)

        with CaptureQueriesContext(connection) as queries:
            OccWriter(tag).delete(tag.pk)

        select_for_update.assert_not_called()
        deletes = [q["sql"] for q in queries if q["sql"].startswith("DELETE")]
        self.assertEqual(len(deletes), 1)
        self.assertIn("version = 0", deletes[0])
        self.assertTrue(KeyValueEntry.objects.filter(pk=self.entry.pk).exists())
