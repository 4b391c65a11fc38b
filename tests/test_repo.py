"""
Reminder store tests.

Covers:
- create validation (entity type, reminder date, recurrence, entity existence)
- due ordering, partial update, idempotent cancel
- stats, snooze, per-entity cancel and conditional scheduler writes
"""

import unittest

from habitline.reminders.errors import NotFoundError, ValidationError
from tests.helpers import DbTestCase, T0


class TestCreate(DbTestCase):

    def test_create_one_time(self):
        task_id = self.add_task()
        record = self.one_time(task_id, T0 + 3600)
        self.assertEqual(record.status, "active")
        self.assertEqual(record.reminder_type, "one-time")
        self.assertEqual(record.reminder_date, T0 + 3600)
        self.assertIsNone(record.recurrence)
        self.assertEqual(record.created_at, T0)

    def test_create_accepts_iso_date(self):
        task_id = self.add_task()
        record = self.repo.create("u1", "task", task_id, {"reminder_date": "2026-01-15T10:00:00Z"})
        self.assertEqual(record.reminder_date, T0 + 3600)

    def test_naive_iso_date_is_utc(self):
        task_id = self.add_task()
        record = self.repo.create("u1", "task", task_id, {"reminder_date": "2026-01-15T10:00:00"})
        self.assertEqual(record.reminder_date, T0 + 3600)

    def test_create_recurring_keeps_rule(self):
        task_id = self.add_task()
        record = self.daily(task_id, T0, interval=2)
        self.assertTrue(record.is_recurring)
        self.assertEqual(record.recurrence.frequency, "daily")
        self.assertEqual(record.recurrence.interval, 2)

    def test_unknown_entity_type_is_rejected(self):
        with self.assertRaises(ValidationError):
            self.repo.create("u1", "invoice", 1, {"reminder_date": T0})

    def test_missing_reminder_date_is_rejected(self):
        task_id = self.add_task()
        with self.assertRaises(ValidationError):
            self.repo.create("u1", "task", task_id, {})

    def test_malformed_reminder_date_is_rejected(self):
        task_id = self.add_task()
        with self.assertRaises(ValidationError):
            self.repo.create("u1", "task", task_id, {"reminder_date": "tomorrow-ish"})

    def test_recurring_requires_rule(self):
        task_id = self.add_task()
        with self.assertRaises(ValidationError):
            self.repo.create("u1", "task", task_id, {"reminder_date": T0, "reminder_type": "recurring"})

    def test_missing_user_is_rejected(self):
        task_id = self.add_task()
        with self.assertRaises(ValidationError):
            self.repo.create("", "task", task_id, {"reminder_date": T0})

    def test_missing_entity_is_not_found(self):
        with self.assertRaises(NotFoundError):
            self.repo.create("u1", "task", 999, {"reminder_date": T0})

    def test_other_users_entity_is_not_found(self):
        task_id = self.add_task(user_id="u1")
        with self.assertRaises(NotFoundError):
            self.repo.create("u2", "task", task_id, {"reminder_date": T0})
        self.assertEqual(self.repo.list_for_user("u2"), [])

    def test_metadata_from_top_level_title(self):
        task_id = self.add_task()
        record = self.one_time(task_id, T0, title="Custom", message="Body")
        self.assertEqual(record.metadata_title, "Custom")
        self.assertEqual(record.metadata_message, "Body")


class TestQueries(DbTestCase):

    def test_find_due_orders_by_date(self):
        task_id = self.add_task()
        at_t = self.one_time(task_id, T0)
        minus_two = self.one_time(task_id, T0 - 120)
        minus_one = self.one_time(task_id, T0 - 60)
        self.one_time(task_id, T0 + 60)
        cancelled = self.one_time(task_id, T0 - 300)
        self.repo.cancel(cancelled.id)

        due = self.repo.find_due(T0)
        self.assertEqual([r.id for r in due], [minus_two.id, minus_one.id, at_t.id])

    def test_find_due_ties_break_on_creation_order(self):
        task_id = self.add_task()
        first = self.one_time(task_id, T0)
        second = self.one_time(task_id, T0)
        self.assertEqual([r.id for r in self.repo.find_due(T0)], [first.id, second.id])

    def test_list_for_user_filters_and_sorts(self):
        task_id = self.add_task()
        habit_id = self.add_habit()
        other_task = self.add_task(user_id="u2")
        later = self.one_time(task_id, T0 + 600)
        sooner = self.one_time(habit_id, T0 + 60, entity_type="habit")
        self.one_time(other_task, T0, user_id="u2")

        self.assertEqual([r.id for r in self.repo.list_for_user("u1")], [sooner.id, later.id])
        self.assertEqual([r.id for r in self.repo.list_for_user("u1", "task")], [later.id])

    def test_stats_are_zero_filled(self):
        self.assertEqual(
            self.repo.stats("nobody"),
            {
                "total": 0,
                "by_status": {"active": 0, "sent": 0, "cancelled": 0},
                "by_type": {"one-time": 0, "recurring": 0},
            },
        )

    def test_stats_count_status_and_type(self):
        task_id = self.add_task()
        self.one_time(task_id, T0)
        self.daily(task_id, T0)
        cancelled = self.one_time(task_id, T0)
        self.repo.cancel(cancelled.id)

        stats = self.repo.stats("u1")
        self.assertEqual(stats["total"], 3)
        self.assertEqual(stats["by_status"], {"active": 2, "sent": 0, "cancelled": 1})
        self.assertEqual(stats["by_type"], {"one-time": 2, "recurring": 1})


class TestUpdates(DbTestCase):

    def test_update_merges_allowed_fields_only(self):
        task_id = self.add_task()
        record = self.one_time(task_id, T0)
        updated = self.repo.update(
            record.id,
            {"reminder_date": T0 + 60, "metadata": {"title": "New"}, "status": "sent", "user_id": "u2"},
        )
        self.assertEqual(updated.reminder_date, T0 + 60)
        self.assertEqual(updated.metadata_title, "New")
        self.assertEqual(updated.status, "active")
        self.assertEqual(updated.user_id, "u1")

    def test_update_to_recurring_needs_rule(self):
        task_id = self.add_task()
        record = self.one_time(task_id, T0)
        with self.assertRaises(ValidationError):
            self.repo.update(record.id, {"reminder_type": "recurring"})
        updated = self.repo.update(
            record.id,
            {"reminder_type": "recurring", "recurrence": {"frequency": "weekly"}},
        )
        self.assertEqual(updated.recurrence.frequency, "weekly")

    def test_update_to_one_time_drops_rule(self):
        task_id = self.add_task()
        record = self.daily(task_id, T0)
        updated = self.repo.update(record.id, {"reminder_type": "one-time"})
        self.assertIsNone(updated.recurrence)

    def test_update_missing_is_not_found(self):
        with self.assertRaises(NotFoundError):
            self.repo.update(404, {"reminder_date": T0})

    def test_cancel_is_idempotent(self):
        task_id = self.add_task()
        record = self.one_time(task_id, T0)
        self.assertEqual(self.repo.cancel(record.id).status, "cancelled")
        self.assertEqual(self.repo.cancel(record.id).status, "cancelled")

    def test_cancel_missing_is_not_found(self):
        with self.assertRaises(NotFoundError):
            self.repo.cancel(404)

    def test_snooze_defaults_to_fifteen_minutes(self):
        task_id = self.add_task()
        record = self.one_time(task_id, T0 - 60)
        self.assertEqual(self.repo.snooze(record.id).reminder_date, T0 + 15 * 60)
        self.assertEqual(self.repo.snooze(record.id, 5).reminder_date, T0 + 5 * 60)

    def test_snooze_rejects_non_active_and_bad_minutes(self):
        task_id = self.add_task()
        record = self.one_time(task_id, T0)
        with self.assertRaises(ValidationError):
            self.repo.snooze(record.id, 0)
        self.repo.cancel(record.id)
        with self.assertRaises(ValidationError):
            self.repo.snooze(record.id)

    def test_cancel_for_entity_cancels_every_active(self):
        task_id = self.add_task()
        other_id = self.add_task()
        self.one_time(task_id, T0)
        self.daily(task_id, T0)
        keep = self.one_time(other_id, T0)

        self.assertEqual(self.repo.cancel_for_entity("task", task_id), 2)
        self.assertEqual(self.repo.cancel_for_entity("task", task_id), 0)
        self.assertEqual(self.repo.get(keep.id).status, "active")

    def test_scheduler_writes_lose_to_explicit_cancel(self):
        task_id = self.add_task()
        record = self.one_time(task_id, T0)
        self.repo.cancel(record.id)

        self.assertFalse(self.repo.mark_sent(record.id, T0))
        self.assertFalse(self.repo.reschedule(record.id, T0 + 60, T0))
        self.assertEqual(self.repo.get(record.id).status, "cancelled")

    def test_purge_terminal_before(self):
        task_id = self.add_task()
        old = self.one_time(task_id, T0)
        self.repo.cancel(old.id)
        active = self.one_time(task_id, T0)

        self.clock.set(T0 + 100)
        recent = self.one_time(task_id, T0)
        self.repo.mark_sent(recent.id, T0 + 100)

        self.assertEqual(self.repo.purge_terminal_before(T0 + 50), 1)
        with self.assertRaises(NotFoundError):
            self.repo.get(old.id)
        self.assertEqual(self.repo.get(active.id).status, "active")
        self.assertEqual(self.repo.get(recent.id).status, "sent")


if __name__ == "__main__":
    unittest.main()
