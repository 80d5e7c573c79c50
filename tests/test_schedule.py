"""
Unit tests for weekly schedule generation.

Rules:
- one lesson every 7 days, holidays skipped without losing a lesson
- weekday-anchored runs first move to the requested weekday (0=Sunday)
- at most 100 weekly iterations, exhaustion is reported, not raised
"""

import itertools
import unittest
from datetime import date, timedelta

from lessonbook.holidays import HolidayCalendar, is_holiday
from lessonbook.model import PENDING, SCHEDULED, AvailabilitySlot, Location
from lessonbook.schedule import (
    MAX_WEEKLY_ITERATIONS,
    advance_to_weekday,
    bounds,
    day_of_week,
    generate,
    new_enrollment,
)


def _location() -> Location:
    return Location(
        id="loc-a",
        name="Sede A",
        color="#ff0000",
        availability=[AvailabilitySlot(day_of_week=3, start_time="16:00", end_time="18:00")],
        supplier_id="sup-1",
        supplier_name="Palestra Uno",
    )


def _ids():
    counter = itertools.count(1)
    return lambda: f"L{next(counter)}"


class TestWeekdays(unittest.TestCase):
    def test_sunday_is_zero(self) -> None:
        self.assertEqual(day_of_week(date(2025, 1, 5)), 0)  # Sunday
        self.assertEqual(day_of_week(date(2025, 1, 6)), 1)  # Monday
        self.assertEqual(day_of_week(date(2025, 1, 11)), 6)  # Saturday

    def test_advance_to_weekday(self) -> None:
        self.assertEqual(advance_to_weekday(date(2025, 1, 6), 1), date(2025, 1, 6))
        self.assertEqual(advance_to_weekday(date(2025, 1, 6), 3), date(2025, 1, 8))
        self.assertEqual(advance_to_weekday(date(2025, 1, 6), 0), date(2025, 1, 12))
        with self.assertRaises(ValueError):
            advance_to_weekday(date(2025, 1, 6), 7)


class TestGenerate(unittest.TestCase):
    def test_monotonic_weekly_count(self) -> None:
        # 2025-01-06 is Epifania, so the first lesson is the following Monday
        result = generate(date(2025, 1, 6), "16:00", "17:00", _location(), 5, day_of_week=1)

        self.assertEqual(result.produced, 5)
        self.assertFalse(result.exhausted)
        dates = [a.date for a in result.appointments]
        self.assertEqual(dates[0], date(2025, 1, 13))
        for prev, cur in zip(dates, dates[1:]):
            self.assertEqual(cur - prev, timedelta(days=7))
        self.assertFalse(any(is_holiday(d) for d in dates))
        self.assertTrue(all(day_of_week(d) == 1 for d in dates))

    def test_date_anchored_starts_on_anchor(self) -> None:
        result = generate(date(2025, 1, 8), "16:00", "18:00", _location(), 3)
        self.assertEqual([a.date for a in result.appointments], [date(2025, 1, 8), date(2025, 1, 15), date(2025, 1, 22)])

    def test_easter_monday_is_skipped(self) -> None:
        result = generate(date(2025, 4, 7), "16:00", "17:00", _location(), 4, day_of_week=1)
        self.assertEqual(
            [a.date for a in result.appointments],
            [date(2025, 4, 7), date(2025, 4, 14), date(2025, 4, 28), date(2025, 5, 5)],
        )

    def test_appointments_carry_snapshot(self) -> None:
        result = generate(
            date(2025, 3, 5), "16:00", "18:00", _location(), 2, child_name="Anna", id_factory=_ids()
        )
        first = result.appointments[0]
        self.assertEqual(first.lesson_id, "L1")
        self.assertEqual(first.location_id, "loc-a")
        self.assertEqual(first.location_name, "Sede A")
        self.assertEqual(first.location_color, "#ff0000")
        self.assertEqual(first.child_name, "Anna")
        self.assertEqual(first.status, SCHEDULED)

    def test_zero_count(self) -> None:
        result = generate(date(2025, 3, 5), "16:00", "18:00", _location(), 0)
        self.assertEqual(result.produced, 0)
        self.assertFalse(result.exhausted)

    def test_iteration_cap_is_observable(self) -> None:
        result = generate(date(2025, 1, 13), "16:00", "17:00", _location(), 150)
        self.assertTrue(result.exhausted)
        self.assertEqual(result.requested, 150)
        self.assertLessEqual(result.produced, MAX_WEEKLY_ITERATIONS)
        self.assertGreater(result.produced, 90)

    def test_all_weeks_closed(self) -> None:
        start = date(2025, 1, 13)
        cal = HolidayCalendar((start + timedelta(weeks=i), "Chiuso") for i in range(MAX_WEEKLY_ITERATIONS))
        result = generate(start, "16:00", "17:00", _location(), 3, calendar=cal)
        self.assertEqual(result.produced, 0)
        self.assertTrue(result.exhausted)


class TestNewEnrollment(unittest.TestCase):
    def test_bounds_and_credit_from_package(self) -> None:
        loc = _location()
        enrollment, result = new_enrollment("E1", "Anna", loc, loc.availability[0], date(2025, 3, 3), 4, client_id="C1")

        self.assertEqual(result.produced, 4)
        self.assertEqual(enrollment.lessons_total, 4)
        self.assertEqual(enrollment.lessons_remaining, 4)
        self.assertEqual(enrollment.start_date, date(2025, 3, 5))
        self.assertEqual(enrollment.end_date, date(2025, 3, 26))
        self.assertEqual((enrollment.start_date, enrollment.end_date), bounds(enrollment.appointments))
        self.assertEqual(enrollment.status, PENDING)
        self.assertEqual(enrollment.supplier_name, "Palestra Uno")

    def test_negative_package_is_rejected(self) -> None:
        loc = _location()
        with self.assertRaises(ValueError):
            new_enrollment("E1", "Anna", loc, loc.availability[0], date(2025, 3, 3), -3)

    def test_bounds_of_empty_list(self) -> None:
        self.assertEqual(bounds([]), (None, None))


if __name__ == "__main__":
    unittest.main()
