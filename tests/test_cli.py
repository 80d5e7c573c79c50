"""
Tests for CLI entry points.

These tests focus on:
- exit codes (0 on success, 1 on engine errors, 2 on bad arguments)
- a full enroll -> present -> absent flow against a temporary store
"""

import io
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from datetime import date
from pathlib import Path

from lessonbook.cli import main
from lessonbook.model import CUSTOM, AvailabilitySlot, Location
from lessonbook.service import EnrollmentService
from lessonbook.storage import save_locations

SEDE = Location(
    id="loc-a",
    name="Sede A",
    color="#ff0000",
    availability=[AvailabilitySlot(day_of_week=1, start_time="16:00", end_time="17:00")],
)


class TestCLI(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        base = Path(self._tmp.name)
        save_locations([SEDE], base / "locations.json")
        self.service = EnrollmentService(
            base / "enrollments.json", base / "locations.json", closures_path=base / "closures.json"
        )

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _run(self, *argv: str) -> tuple[int, str, str]:
        out, err = io.StringIO(), io.StringIO()
        with redirect_stdout(out), redirect_stderr(err):
            with self.assertRaises(SystemExit) as ctx:
                main(list(argv), service=self.service)
        return ctx.exception.code, out.getvalue(), err.getvalue()

    def test_holidays(self) -> None:
        code, out, _ = self._run("holidays", "2026")
        self.assertEqual(code, 0)
        self.assertIn("2026-04-06", out)
        self.assertEqual(len(out.strip().splitlines()), 11)

    def test_bad_date_argument(self) -> None:
        code, _, _ = self._run("consolidate", "--today", "2025-13-40")
        self.assertEqual(code, 2)

    def test_unknown_enrollment_exits_1(self) -> None:
        code, _, err = self._run("show", "E404")
        self.assertEqual(code, 1)
        self.assertIn("E404", err)

    def test_enroll_present_absent_flow(self) -> None:
        code, out, _ = self._run("enroll", "E1", "Anna", "--location", "loc-a", "--slot", "0", "--from", "2025-04-07", "--lessons", "3")
        self.assertEqual(code, 0)
        self.assertIn("2025-04-28", out)  # Easter Monday 21/04 skipped

        enr = self.service.get("E1")
        first, second = enr.appointments[0].lesson_id, enr.appointments[1].lesson_id

        code, _, _ = self._run("present", "E1", first)
        self.assertEqual(code, 0)
        code, out, _ = self._run("absent", "E1", second, "--strategy", "recover_auto")
        self.assertEqual(code, 0)
        self.assertIn("2025-05-05", out)

        enr = self.service.get("E1")
        self.assertEqual(enr.lessons_remaining, 2)
        self.assertEqual(len(enr.appointments), 4)

    def test_manual_recovery_needs_date(self) -> None:
        self._run("enroll", "E1", "Anna", "--location", "loc-a", "--slot", "0", "--from", "2025-03-03", "--lessons", "2")
        lesson_id = self.service.get("E1").appointments[0].lesson_id
        code, out, _ = self._run("absent", "E1", lesson_id, "--strategy", "recover_manual")
        self.assertEqual(code, 1)
        self.assertIn("--date", out)

    def test_unknown_location(self) -> None:
        code, out, _ = self._run("enroll", "E1", "Anna", "--location", "nowhere", "--slot", "0", "--lessons", "2")
        self.assertEqual(code, 1)
        self.assertIn("Unknown location", out)

    def test_negative_lessons_is_a_usage_error(self) -> None:
        code, _, _ = self._run("enroll", "E1", "Anna", "--location", "loc-a", "--slot", "0", "--lessons", "-3")
        self.assertEqual(code, 2)
        self.assertEqual(self.service.all(), [])

    def test_enroll_custom(self) -> None:
        code, _, _ = self._run(
            "enroll-custom", "P1", "Classe 3B",
            "--weekly", "1", "loc-a", "09:00", "11:00", "2",
            "--single", "2025-04-21", "loc-a", "09:00", "11:00",
            "--from", "2025-03-03",
        )
        self.assertEqual(code, 0)

        enr = self.service.get("P1")
        self.assertEqual(enr.mode, CUSTOM)
        self.assertEqual(enr.lessons_total, 3)
        self.assertEqual([a.date for a in enr.appointments], [date(2025, 3, 3), date(2025, 3, 10), date(2025, 4, 21)])

        code, out, _ = self._run("enroll-custom", "P2", "Classe 4A")
        self.assertEqual(code, 1)
        self.assertIn("--weekly", out)

    def test_close_moves_lessons(self) -> None:
        self._run("enroll", "E1", "Anna", "--location", "loc-a", "--slot", "0", "--from", "2025-03-03", "--lessons", "3")

        code, out, _ = self._run("close", "2025-03-10", "--reason", "Sciopero")
        self.assertEqual(code, 0)
        self.assertIn("2025-03-24", out)

        code, out, _ = self._run("closures")
        self.assertIn("2025-03-10  Sciopero", out)
        code, _, _ = self._run("reopen", "2025-03-10")
        self.assertEqual(code, 0)

    def test_conflicts_include_children(self) -> None:
        self._run("enroll", "E1", "Anna", "--location", "loc-a", "--slot", "0", "--from", "2025-03-03", "--lessons", "1")
        self._run(
            "enroll", "E2", "Anna", "--location", "loc-a",
            "--day", "1", "--start", "16:30", "--end", "17:30", "--from", "2025-03-03", "--lessons", "1",
        )
        code, out, _ = self._run("conflicts", "--date", "2025-03-03")
        self.assertEqual(code, 0)
        self.assertIn("Conflicts found: 2", out)
        self.assertIn("[child] Anna", out)
        self.assertIn("[location] Sede A", out)


if __name__ == "__main__":
    unittest.main()
