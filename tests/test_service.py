"""
Tests for the application service (engine + JSON store + change events).

Every test works on a temporary directory so real data is never touched.
"""

import tempfile
import threading
import unittest
from datetime import date
from pathlib import Path

from lessonbook.errors import EnrollmentNotFoundError, NotFoundError
from lessonbook.model import ACTIVE, CUSTOM, PRESENT, AvailabilitySlot, Location
from lessonbook.recovery import MOVE_TO_DATE, RECOVER_AUTO
from lessonbook.service import EnrollmentChanged, EnrollmentService
from lessonbook.storage import save_locations

SEDE = Location(
    id="loc-a",
    name="Sede A",
    color="#ff0000",
    availability=[AvailabilitySlot(day_of_week=3, start_time="16:00", end_time="18:00")],
)


class TestEnrollmentService(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        base = Path(self._tmp.name)
        save_locations([SEDE], base / "locations.json")
        self.service = EnrollmentService(
            base / "enrollments.json", base / "locations.json", closures_path=base / "closures.json"
        )
        self.events: list[EnrollmentChanged] = []
        self.service.subscribe(self.events.append)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _enroll(self, enrollment_id: str = "E1", lessons: int = 4):
        enr, _ = self.service.enroll(enrollment_id, "Anna", SEDE, SEDE.availability[0], date(2025, 3, 3), lessons)
        return enr

    def test_enroll_persists_and_notifies(self) -> None:
        enr = self._enroll()
        self.assertEqual(self.service.get("E1").to_dict(), enr.to_dict())
        self.assertEqual(self.events, [EnrollmentChanged("E1", "created")])
        self.assertEqual(self.service.location("loc-a"), SEDE)

    def test_present_and_absent_round_trip(self) -> None:
        enr = self._enroll()
        first = enr.appointments[0].lesson_id
        second = enr.appointments[1].lesson_id

        self.service.mark_present("E1", first)
        plan = self.service.mark_absent("E1", second, RECOVER_AUTO)

        stored = self.service.get("E1")
        self.assertEqual(stored.find(first).status, PRESENT)
        self.assertEqual(stored.lessons_remaining, 3)
        self.assertEqual(len(stored.appointments), 5)
        self.assertEqual(stored.end_date, plan.new_appointment.date)
        self.assertEqual([e.action for e in self.events], ["created", "present", "absent"])

    def test_not_found_saves_nothing_and_is_silent(self) -> None:
        self._enroll()
        before = self.service.get("E1").to_dict()
        self.events.clear()

        with self.assertRaises(NotFoundError):
            self.service.mark_present("E1", "nope")
        with self.assertRaises(EnrollmentNotFoundError):
            self.service.revert("E404", "nope")

        self.assertEqual(self.service.get("E1").to_dict(), before)
        self.assertEqual(self.events, [])

    def test_group_absence_across_enrollments(self) -> None:
        a = self._enroll("E1")
        b = self._enroll("E2")
        plans = self.service.mark_absent_group(
            [("E1", a.appointments[0].lesson_id), ("E2", b.appointments[0].lesson_id)], RECOVER_AUTO
        )
        self.assertEqual(len(plans), 2)
        self.assertEqual(len(self.service.get("E2").appointments), 5)

    def test_lessons_on_and_consolidate(self) -> None:
        self._enroll("E1")
        self._enroll("E2")
        self.assertEqual(len(self.service.lessons_on(date(2025, 3, 12))), 2)

        self.assertEqual(self.service.consolidate(date(2025, 3, 13)), 2)
        self.assertEqual(self.service.get("E1").lessons_remaining, 2)
        self.assertEqual(self.service.consolidate(date(2025, 3, 13)), 0)

    def test_status_transition(self) -> None:
        self._enroll()
        enr = self.service.set_status("E1", "activate")
        self.assertEqual(enr.status, ACTIVE)
        with self.assertRaises(ValueError):
            self.service.set_status("E1", "pause")

    def test_failing_listener_does_not_undo(self) -> None:
        def _boom(event: EnrollmentChanged) -> None:
            raise RuntimeError("view crashed")

        self.service.subscribe(_boom)
        with self.assertLogs("lessonbook.service", level="ERROR"):
            enr = self._enroll()
        self.assertEqual(self.service.get("E1").id, enr.id)

    def test_unsubscribe(self) -> None:
        seen: list[EnrollmentChanged] = []
        unsubscribe = self.service.subscribe(seen.append)
        unsubscribe()
        self._enroll()
        self.assertEqual(seen, [])

    def test_concurrent_presence_is_serialized(self) -> None:
        enr = self._enroll(lessons=8)
        ids = [a.lesson_id for a in enr.appointments]

        threads = [threading.Thread(target=self.service.mark_present, args=("E1", lid)) for lid in ids]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        stored = self.service.get("E1")
        self.assertEqual(stored.lessons_remaining, 0)
        self.assertTrue(all(a.status == PRESENT for a in stored.appointments))

    def test_negative_package_stores_nothing(self) -> None:
        with self.assertRaises(ValueError):
            self.service.enroll("E1", "Anna", SEDE, SEDE.availability[0], date(2025, 3, 3), -1)
        self.assertEqual(self.service.all(), [])

    def test_lessons_on_orders_by_clock_time(self) -> None:
        late = AvailabilitySlot(day_of_week=3, start_time="10:00", end_time="11:00")
        early = AvailabilitySlot(day_of_week=3, start_time="9:00", end_time="10:00")
        self.service.enroll("E1", "Anna", SEDE, late, date(2025, 3, 3), 1)
        self.service.enroll("E2", "Zoe", SEDE, early, date(2025, 3, 3), 1)

        rows = self.service.lessons_on(date(2025, 3, 5))
        self.assertEqual([e.id for e, _ in rows], ["E2", "E1"])

    def test_custom_enrollment(self) -> None:
        builder = self.service.custom_builder("Classe 3B", today=date(2025, 3, 3))
        builder.add_weekly(3, SEDE, "09:00", "11:00", 3)
        builder.add_single(date(2025, 4, 21), SEDE, "09:00", "11:00")

        self.service.enroll_custom("P1", builder, client_id="C9")

        stored = self.service.get("P1")
        self.assertEqual(stored.mode, CUSTOM)
        self.assertEqual(stored.lessons_total, 4)
        self.assertEqual((stored.start_date, stored.end_date), (date(2025, 3, 5), date(2025, 4, 21)))
        self.assertEqual(self.events, [EnrollmentChanged("P1", "created")])

    def test_close_day_moves_scheduled_lessons(self) -> None:
        self._enroll("E1")  # 5, 12, 19, 26 March
        e2 = self._enroll("E2")
        self.service.mark_present("E2", e2.appointments[1].lesson_id)
        self.events.clear()

        moves = self.service.close_day(date(2025, 3, 12), "Disinfestazione")

        self.assertEqual([(m.enrollment_id, m.new_date) for m in moves], [("E1", date(2025, 4, 2))])
        e1 = self.service.get("E1")
        self.assertNotIn(date(2025, 3, 12), [a.date for a in e1.appointments])
        self.assertEqual(e1.end_date, date(2025, 4, 2))
        self.assertEqual(self.service.get("E2").appointments[1].date, date(2025, 3, 12))
        self.assertEqual(self.events, [EnrollmentChanged("E1", "rescheduled")])

        fresh = EnrollmentService(
            self.service.enrollments_path, self.service.locations_path, closures_path=self.service.closures_path
        )
        self.assertEqual(fresh.closures(), {date(2025, 3, 12): "Disinfestazione"})
        self.assertTrue(fresh.calendar.is_holiday(date(2025, 3, 12)))

    def test_new_enrollment_skips_closure(self) -> None:
        self.service.close_day(date(2025, 3, 12))
        enr = self._enroll()
        self.assertEqual([a.date for a in enr.appointments][:2], [date(2025, 3, 5), date(2025, 3, 19)])

    def test_move_to_date_and_reopen(self) -> None:
        self._enroll("E1")
        moves = self.service.close_day(date(2025, 3, 19), action=MOVE_TO_DATE, move_date=date(2025, 3, 21))
        self.assertEqual(moves[0].new_date, date(2025, 3, 21))

        self.assertTrue(self.service.reopen_day(date(2025, 3, 19)))
        self.assertFalse(self.service.reopen_day(date(2025, 3, 19)))
        self.assertEqual(self.service.closures(), {})

        with self.assertRaises(ValueError):
            self.service.close_day(date(2025, 3, 26), action=MOVE_TO_DATE)
        self.assertEqual(self.service.closures(), {})


if __name__ == "__main__":
    unittest.main()
