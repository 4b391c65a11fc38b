"""
Recurrence calculation tests.

Covers:
- daily / weekly / monthly / custom advancement
- month-end clamping (Jan 31 -> Feb 28/29)
- end_date bound and rule parsing
"""

import unittest

from habitline.reminders.errors import ValidationError
from habitline.reminders.recurrence import RecurrenceRule, is_within_end_date, next_fire_after, next_fire_date
from tests.helpers import DAY, T0, utc_ts


class TestNextFireDate(unittest.TestCase):

    def test_daily_adds_interval_days(self):
        self.assertEqual(next_fire_date(T0, RecurrenceRule("daily")), T0 + DAY)
        self.assertEqual(next_fire_date(T0, RecurrenceRule("daily", interval=3)), T0 + 3 * DAY)

    def test_weekly_adds_interval_weeks(self):
        self.assertEqual(next_fire_date(T0, RecurrenceRule("weekly")), T0 + 7 * DAY)
        self.assertEqual(next_fire_date(T0, RecurrenceRule("weekly", interval=2)), T0 + 14 * DAY)

    def test_monthly_clamps_to_month_end(self):
        jan31 = utc_ts(2026, 1, 31, 9, 0)
        self.assertEqual(next_fire_date(jan31, RecurrenceRule("monthly")), utc_ts(2026, 2, 28, 9, 0))

    def test_monthly_clamps_to_leap_day(self):
        jan31 = utc_ts(2024, 1, 31, 8, 15)
        self.assertEqual(next_fire_date(jan31, RecurrenceRule("monthly")), utc_ts(2024, 2, 29, 8, 15))

    def test_monthly_clamped_day_becomes_new_anchor(self):
        feb28 = next_fire_date(utc_ts(2026, 1, 31, 9, 0), RecurrenceRule("monthly"))
        self.assertEqual(next_fire_date(feb28, RecurrenceRule("monthly")), utc_ts(2026, 3, 28, 9, 0))

    def test_monthly_crosses_year(self):
        self.assertEqual(
            next_fire_date(utc_ts(2026, 11, 30, 7, 0), RecurrenceRule("monthly", interval=3)),
            utc_ts(2027, 2, 28, 7, 0),
        )

    def test_custom_picks_next_listed_weekday(self):
        # T0 is a Thursday; 1 = Monday
        self.assertEqual(
            next_fire_date(T0, RecurrenceRule("custom", days_of_week=(1,))),
            utc_ts(2026, 1, 19, 9, 0),
        )

    def test_custom_same_weekday_moves_a_full_week(self):
        self.assertEqual(
            next_fire_date(T0, RecurrenceRule("custom", days_of_week=(4,))),
            T0 + 7 * DAY,
        )

    def test_custom_picks_earliest_of_several_days(self):
        # Friday(5) comes before Sunday(0)
        self.assertEqual(
            next_fire_date(T0, RecurrenceRule("custom", days_of_week=(0, 5))),
            T0 + DAY,
        )

    def test_custom_without_days_has_no_next(self):
        self.assertIsNone(next_fire_date(T0, RecurrenceRule("custom")))

    def test_unknown_or_missing_rule_has_no_next(self):
        self.assertIsNone(next_fire_date(T0, None))
        self.assertIsNone(next_fire_date(T0, RecurrenceRule("yearly")))
        self.assertIsNone(next_fire_date(T0, RecurrenceRule("daily", interval=0)))


class TestNextFireAfter(unittest.TestCase):

    def test_on_time_processing_moves_one_step(self):
        self.assertEqual(next_fire_after(T0, RecurrenceRule("daily"), T0), T0 + DAY)

    def test_overdue_skips_missed_occurrences(self):
        self.assertEqual(next_fire_after(T0 - 3 * DAY, RecurrenceRule("daily"), T0), T0 + DAY)
        self.assertEqual(next_fire_after(T0 - 3 * DAY, RecurrenceRule("weekly"), T0), T0 + 4 * DAY)

    def test_keeps_time_of_day(self):
        anchor = T0 - 5 * DAY - 1800
        self.assertEqual(next_fire_after(anchor, RecurrenceRule("daily"), T0 + 60), T0 + DAY - 1800)

    def test_monthly_overdue_keeps_clamped_day(self):
        jan31 = utc_ts(2026, 1, 31, 9, 0)
        self.assertEqual(
            next_fire_after(jan31, RecurrenceRule("monthly"), utc_ts(2026, 3, 1, 9, 0)),
            utc_ts(2026, 3, 28, 9, 0),
        )

    def test_rule_without_next_returns_none(self):
        self.assertIsNone(next_fire_after(T0 - DAY, RecurrenceRule("custom"), T0))
        self.assertIsNone(next_fire_after(T0 - DAY, None, T0))


class TestEndDate(unittest.TestCase):

    def test_no_end_date_is_always_within(self):
        self.assertTrue(is_within_end_date(T0 + 365 * DAY, RecurrenceRule("daily")))
        self.assertTrue(is_within_end_date(T0, None))

    def test_end_date_bounds_next(self):
        rule = RecurrenceRule("daily", end_date=T0 + DAY)
        self.assertTrue(is_within_end_date(T0 + DAY, rule))
        self.assertFalse(is_within_end_date(T0 + DAY + 1, rule))


class TestRuleParsing(unittest.TestCase):

    def test_from_dict_accepts_aliases(self):
        rule = RecurrenceRule.from_dict(
            {"frequency": "Custom", "daysOfWeek": [5, 1, 1], "endDate": "2026-02-01T00:00:00Z"}
        )
        self.assertEqual(rule.frequency, "custom")
        self.assertEqual(rule.interval, 1)
        self.assertEqual(rule.days_of_week, (1, 5))
        self.assertEqual(rule.end_date, utc_ts(2026, 2, 1))

    def test_from_dict_rejects_bad_input(self):
        for bad in (
            {},
            {"frequency": "yearly"},
            {"frequency": "daily", "interval": 0},
            {"frequency": "daily", "interval": "2"},
            {"frequency": "custom", "days_of_week": [7]},
            {"frequency": "daily", "end_date": "not a date"},
        ):
            with self.subTest(bad=bad):
                with self.assertRaises(ValidationError):
                    RecurrenceRule.from_dict(bad)


if __name__ == "__main__":
    unittest.main()
