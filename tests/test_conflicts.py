"""
Unit tests for conflict detection.

Definition used here:
- A conflict exists if two appointments overlap in time on the same date.
- Touching endpoints (end == start) is NOT a conflict.
- Child conflicts ignore the location: one child cannot be in two places.
"""

import unittest
from datetime import date

from lessonbook.conflicts import by_start_time, child_conflicts, find_conflicts, location_conflicts
from lessonbook.model import Appointment


def _app(lesson_id: str, d: date, start: str, end: str, location_id: str = "loc-a", child: str = "") -> Appointment:
    return Appointment(
        lesson_id=lesson_id,
        date=d,
        start_time=start,
        end_time=end,
        location_id=location_id,
        location_name=location_id,
        location_color="",
        child_name=child,
    )


DAY = date(2025, 3, 5)


class TestConflicts(unittest.TestCase):
    def test_overlap_same_day(self) -> None:
        apps = [_app("A", DAY, "16:00", "17:00"), _app("B", DAY, "16:30", "18:00")]
        self.assertEqual(len(find_conflicts(apps)), 1)

    def test_no_overlap_touching_end(self) -> None:
        apps = [_app("A", DAY, "16:00", "17:00"), _app("B", DAY, "17:00", "18:00")]
        self.assertEqual(find_conflicts(apps), [])

    def test_different_day_no_conflict(self) -> None:
        apps = [_app("A", DAY, "16:00", "17:00"), _app("B", date(2025, 3, 6), "16:30", "18:00")]
        self.assertEqual(find_conflicts(apps), [])

    def test_invalid_times_are_ignored(self) -> None:
        apps = [_app("A", DAY, "16:00", "17:00"), _app("B", DAY, "1630", "18:00"), _app("C", DAY, "18:00", "17:00")]
        self.assertEqual(find_conflicts(apps), [])

    def test_location_conflicts_only_same_site(self) -> None:
        apps = [
            _app("A", DAY, "16:00", "18:00", "loc-a"),
            _app("B", DAY, "16:00", "18:00", "loc-b"),
            _app("C", DAY, "17:00", "19:00", "loc-a"),
        ]
        pairs = location_conflicts(apps)
        self.assertEqual([(a.lesson_id, b.lesson_id) for a, b in pairs], [("A", "C")])

    def test_child_conflicts_across_sites(self) -> None:
        apps = [
            _app("A", DAY, "16:00", "18:00", "loc-a", child="Anna"),
            _app("B", DAY, "17:00", "18:30", "loc-b", child="anna "),
            _app("C", DAY, "17:00", "18:00", "loc-a", child="Luca"),
            _app("D", DAY, "16:00", "17:00", "loc-b"),
            _app("E", DAY, "16:00", "17:00", "loc-c"),
        ]
        pairs = child_conflicts(apps)
        self.assertEqual([(a.lesson_id, b.lesson_id) for a, b in pairs], [("A", "B")])

    def test_start_time_order_is_numeric(self) -> None:
        apps = [_app("late", DAY, "10:00", "11:00"), _app("early", DAY, "9:00", "10:00"), _app("bad", DAY, "?", "10:00")]
        self.assertEqual([a.lesson_id for a in sorted(apps, key=by_start_time)], ["early", "late", "bad"])


if __name__ == "__main__":
    unittest.main()
