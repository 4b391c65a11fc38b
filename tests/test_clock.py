"""
Clock tests.
"""

import unittest

from habitline.core.clock import FixedClock
from habitline.reminders.scheduler import ReminderScheduler
from tests.helpers import DAY, DbTestCase, FakeChannel, T0


class TestFixedClock(unittest.TestCase):

    def test_advance_and_reset(self):
        clock = FixedClock(T0)
        self.assertEqual(clock.advance_seconds(seconds=60), 60)
        self.assertEqual(clock.now_utc_ts(), T0 + 60)
        clock.reset_offset()
        self.assertEqual(clock.now_utc_ts(), T0)

    def test_advance_rejects_non_positive(self):
        with self.assertRaises(ValueError):
            FixedClock(T0).advance_seconds(seconds=0)

    def test_set_clears_offset(self):
        clock = FixedClock(T0)
        clock.advance_seconds(seconds=10)
        clock.set(T0 + DAY)
        self.assertEqual(clock.now_utc_ts(), T0 + DAY)


class TestAdvancingClockFiresReminders(DbTestCase):

    def test_reminder_fires_after_advance(self):
        channel = FakeChannel(online={"u1"})
        scheduler = ReminderScheduler(
            repo=self.repo,
            registry=self.registry,
            notification_queue=self.queue,
            channel=channel,
            clock=self.clock,
        )
        task_id = self.add_task()
        self.one_time(task_id, T0 + 3600)

        self.assertEqual(scheduler.tick().due, 0)
        self.clock.advance_seconds(seconds=3600)
        self.assertEqual(scheduler.tick().delivered, 1)


if __name__ == "__main__":
    unittest.main()
