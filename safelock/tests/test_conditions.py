from django.db.models import Q
from django.test import SimpleTestCase

from safelock.conditions import apply_locking_condition, strip_locking_condition, validate_condition
from safelock.exceptions import UnsupportedConditionKind


class ValidateConditionTests(SimpleTestCase):
    def test_accepts_strings_and_none(self):
        self.assertEqual(validate_condition("key = %s"), "key = %s")
        self.assertEqual(validate_condition(""), "")
        self.assertEqual(validate_condition(None), "")

    def test_rejects_structured_conditions(self):
        for condition in (Q(key="a"), {"key": "a"}, ["key = 1"], 42):
            with self.subTest(condition=condition):
                with self.assertLogs("safelock.conditions", level="ERROR"):
                    with self.assertRaises(UnsupportedConditionKind) as ctx:
                        validate_condition(condition)
                self.assertEqual(ctx.exception.condition_type, type(condition).__name__)
                self.assertIn(type(condition).__name__, str(ctx.exception))


class ApplyLockingConditionTests(SimpleTestCase):
    def test_empty_base_gives_only_version_predicate(self):
        self.assertEqual(apply_locking_condition("", "version", 0), "version = 0")

    def test_base_condition_is_joined_with_and(self):
        self.assertEqual(
            apply_locking_condition("owner_id = %s", "version", 3),
            "owner_id = %s AND version = 3",
        )

    def test_stale_predicate_is_replaced(self):
        composed = apply_locking_condition("owner_id = %s", "version", 3)
        recomposed = apply_locking_condition(composed, "version", 4)
        self.assertEqual(recomposed, "owner_id = %s AND version = 4")
        self.assertEqual(recomposed.count("version = "), 1)

    def test_lone_stale_predicate_is_replaced(self):
        self.assertEqual(apply_locking_condition("version = 7", "version", 8), "version = 8")

    def test_similar_column_names_are_left_alone(self):
        self.assertEqual(
            apply_locking_condition("schema_version = 2", "version", 1),
            "schema_version = 2 AND version = 1",
        )

    def test_strip_keeps_words_ending_in_and(self):
        self.assertEqual(strip_locking_condition("name = BRAND AND version = 2", "version"), "name = BRAND")
        self.assertEqual(strip_locking_condition("name = BRAND", "version"), "name = BRAND")

    def test_stale_predicate_at_the_start_is_replaced(self):
        self.assertEqual(
            apply_locking_condition("version = 3 AND owner_id = %s", "version", 4),
            "owner_id = %s AND version = 4",
        )

    def test_stale_predicate_in_the_middle_is_replaced(self):
        self.assertEqual(
            apply_locking_condition("key = %s AND version = 3 AND owner_id = %s", "version", 4),
            "key = %s AND owner_id = %s AND version = 4",
        )
