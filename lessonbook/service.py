"""
Application service: engine operations against the JSON store.

Each operation is a read-modify-write:
    load enrollments -> run the engine on one of them -> save -> notify listeners

The engine assumes it holds an exclusive snapshot of an enrollment, so every
read-modify-write runs under one store lock. The store is a single JSON
document, which makes the lock per store rather than per enrollment.

Closure days are kept in their own file and merged into the holiday calendar
every generator and recovery search uses.

Listeners subscribed with subscribe() receive an EnrollmentChanged event after
every successful save, so dependent views (billing, dashboards) can refresh.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from lessonbook import attendance, recovery, schedule
from lessonbook.conflicts import by_start_time
from lessonbook.custom import CustomScheduleBuilder
from lessonbook.errors import EnrollmentNotFoundError
from lessonbook.holidays import HolidayCalendar
from lessonbook.model import SCHEDULED, Appointment, AvailabilitySlot, Enrollment, Location
from lessonbook.recovery import ManualRecovery, RecoveryPlan
from lessonbook.storage import (
    load_closures,
    load_enrollments,
    load_locations,
    save_closures,
    save_enrollments,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnrollmentChanged:
    enrollment_id: str
    action: str


@dataclass(frozen=True)
class Rescheduled:
    enrollment_id: str
    lesson_id: str
    old_date: date
    new_date: Optional[date]


Listener = Callable[[EnrollmentChanged], None]


class EnrollmentService:
    def __init__(
        self,
        enrollments_path: str | Path | None = None,
        locations_path: str | Path | None = None,
        calendar: Optional[HolidayCalendar] = None,
        closures_path: str | Path | None = None,
    ) -> None:
        self.enrollments_path = enrollments_path
        self.locations_path = locations_path
        self.closures_path = closures_path
        self.calendar = calendar if calendar is not None else HolidayCalendar(load_closures(closures_path))
        self._lock = threading.RLock()
        self._listeners: List[Listener] = []

    # -- events -------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener; returns a function that unregisters it.
        """
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self, enrollment_id: str, action: str) -> None:
        event = EnrollmentChanged(enrollment_id=enrollment_id, action=action)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                # the change is already saved; a broken view must not undo it
                logger.exception("Listener %r failed on %s", listener, event)

    # -- reads --------------------------------------------------------------

    def all(self) -> List[Enrollment]:
        with self._lock:
            return sorted(load_enrollments(self.enrollments_path).values(), key=lambda e: e.id)

    def get(self, enrollment_id: str) -> Enrollment:
        with self._lock:
            enrollments = load_enrollments(self.enrollments_path)
        if enrollment_id not in enrollments:
            raise EnrollmentNotFoundError(enrollment_id)
        return enrollments[enrollment_id]

    def locations(self) -> List[Location]:
        return load_locations(self.locations_path)

    def location(self, location_id: str) -> Optional[Location]:
        for loc in self.locations():
            if loc.id == location_id:
                return loc
        return None

    def lessons_on(self, day: date) -> List[tuple[Enrollment, Appointment]]:
        """
        All (enrollment, appointment) pairs dated `day`, ordered by start time.
        """
        out = [(e, a) for e in self.all() for a in e.appointments if a.date == day]
        out.sort(key=lambda pair: (by_start_time(pair[1]), pair[0].child_name))
        return out

    # -- writes -------------------------------------------------------------

    def add(self, enrollment: Enrollment) -> Enrollment:
        with self._lock:
            enrollments = load_enrollments(self.enrollments_path)
            enrollments[enrollment.id] = enrollment
            save_enrollments(enrollments.values(), self.enrollments_path)
        self._emit(enrollment.id, "created")
        return enrollment

    def enroll(
        self,
        enrollment_id: str,
        child_name: str,
        location: Location,
        slot: AvailabilitySlot,
        start_date: date,
        lessons: int,
        client_id: str = "",
    ) -> tuple[Enrollment, schedule.GenerationResult]:
        enrollment, result = schedule.new_enrollment(
            enrollment_id,
            child_name,
            location,
            slot,
            start_date,
            lessons,
            client_id=client_id,
            calendar=self.calendar,
        )
        self.add(enrollment)
        return enrollment, result

    def custom_builder(self, child_name: str = "", today: Optional[date] = None) -> CustomScheduleBuilder:
        """
        Start a custom (institutional) schedule on this service's calendar.
        """
        return CustomScheduleBuilder(child_name=child_name, calendar=self.calendar, today=today)

    def enroll_custom(
        self,
        enrollment_id: str,
        builder: CustomScheduleBuilder,
        client_id: str = "",
        child_name: Optional[str] = None,
    ) -> Enrollment:
        return self.add(builder.finalize(enrollment_id, client_id=client_id, child_name=child_name))

    # -- closure days -------------------------------------------------------

    def closures(self) -> dict[date, str]:
        return self.calendar.closures

    def close_day(
        self,
        day: date,
        reason: str = "Chiusura",
        action: str = recovery.APPEND_END,
        move_date: Optional[date] = None,
    ) -> List[Rescheduled]:
        """
        Record a closure day and move every Scheduled lesson on it.

        Present and Absent lessons on that day stay where they are. Lessons
        append_end cannot place are reported with new_date None.
        """
        recovery.check_reschedule(action, move_date)
        moves: List[Rescheduled] = []
        with self._lock:
            self.calendar.add_closure(day, reason)
            save_closures(self.calendar.closures.items(), self.closures_path)

            enrollments = load_enrollments(self.enrollments_path)
            changed: List[str] = []
            for enrollment in sorted(enrollments.values(), key=lambda e: e.id):
                suspended = [a.lesson_id for a in enrollment.appointments if a.date == day and a.status == SCHEDULED]
                for lesson_id in suspended:
                    new_date = recovery.reschedule(enrollment, lesson_id, action, move_date, calendar=self.calendar)
                    moves.append(Rescheduled(enrollment.id, lesson_id, day, new_date))
                if any(m.new_date is not None for m in moves if m.enrollment_id == enrollment.id):
                    changed.append(enrollment.id)
            if changed:
                save_enrollments(enrollments.values(), self.enrollments_path)
        logger.info("Closure %s (%s): %d lessons to move, %d enrollments changed", day, reason, len(moves), len(changed))
        for enrollment_id in changed:
            self._emit(enrollment_id, "rescheduled")
        return moves

    def reopen_day(self, day: date) -> bool:
        """
        Drop a closure day. Lessons already moved away stay where they are.
        """
        with self._lock:
            removed = self.calendar.remove_closure(day)
            if removed:
                save_closures(self.calendar.closures.items(), self.closures_path)
        return removed

    def _mutate(self, enrollment_ids: Iterable[str], action: str, fn: Callable[[dict[str, Enrollment]], object]):
        ids = list(dict.fromkeys(enrollment_ids))
        with self._lock:
            enrollments = load_enrollments(self.enrollments_path)
            for enrollment_id in ids:
                if enrollment_id not in enrollments:
                    raise EnrollmentNotFoundError(enrollment_id)
            result = fn(enrollments)
            save_enrollments(enrollments.values(), self.enrollments_path)
        for enrollment_id in ids:
            self._emit(enrollment_id, action)
        return result

    def mark_present(self, enrollment_id: str, lesson_id: str) -> Appointment:
        return self._mutate(
            [enrollment_id], "present", lambda es: attendance.mark_present(es[enrollment_id], lesson_id)
        )

    def mark_absent(
        self,
        enrollment_id: str,
        lesson_id: str,
        strategy: str,
        details: Optional[ManualRecovery] = None,
    ) -> RecoveryPlan:
        return self._mutate(
            [enrollment_id],
            "absent",
            lambda es: attendance.mark_absent(es[enrollment_id], lesson_id, strategy, details, calendar=self.calendar),
        )

    def mark_absent_group(
        self,
        items: Iterable[tuple[str, str]],
        strategy: str,
        details: Optional[ManualRecovery] = None,
    ) -> List[RecoveryPlan]:
        pairs = list(items)
        return self._mutate(
            [eid for eid, _ in pairs],
            "absent",
            lambda es: attendance.mark_absent_group(
                [(es[eid], lid) for eid, lid in pairs], strategy, details, calendar=self.calendar
            ),
        )

    def revert(self, enrollment_id: str, lesson_id: str) -> Appointment:
        return self._mutate([enrollment_id], "reverted", lambda es: attendance.revert(es[enrollment_id], lesson_id))

    def delete(self, enrollment_id: str, lesson_id: str) -> Appointment:
        return self._mutate([enrollment_id], "deleted", lambda es: attendance.delete(es[enrollment_id], lesson_id))

    def relocate(self, enrollment_id: str, location: Location) -> None:
        self._mutate([enrollment_id], "relocated", lambda es: attendance.relocate(es[enrollment_id], location))

    def set_status(self, enrollment_id: str, transition: str, today: Optional[date] = None) -> Enrollment:
        """
        Run one lifecycle transition: activate, revoke, abandon or terminate.
        """
        transitions = {
            "activate": attendance.activate,
            "revoke": attendance.revoke,
            "abandon": lambda e: attendance.abandon(e, today or date.today()),
            "terminate": attendance.terminate,
        }
        if transition not in transitions:
            raise ValueError(f"Unknown transition: {transition!r}")

        def _run(es: dict[str, Enrollment]) -> Enrollment:
            transitions[transition](es[enrollment_id])
            return es[enrollment_id]

        return self._mutate([enrollment_id], transition, _run)

    def consolidate(self, today: date) -> int:
        """
        Mark past Scheduled lessons Present across all enrollments.
        Only enrollments that actually changed are saved and announced.
        """
        with self._lock:
            enrollments = load_enrollments(self.enrollments_path)
            changed = [e.id for e in enrollments.values() if attendance.consolidate_past(e, today) > 0]
            if changed:
                save_enrollments(enrollments.values(), self.enrollments_path)
        for enrollment_id in changed:
            self._emit(enrollment_id, "consolidated")
        return len(changed)
