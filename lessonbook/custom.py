"""
Custom schedules for institutional / project clients.

These enrollments have no fixed package: the operator composes the calendar
from single dates and weekly series, possibly across several locations, and
the package size is whatever the final list contains.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Callable, List, Optional

from lessonbook.errors import NotFoundError
from lessonbook.holidays import HolidayCalendar
from lessonbook.model import (
    CUSTOM,
    INSTITUTIONAL_SUPPLIER,
    MIXED_LOCATION,
    PENDING,
    Appointment,
    Enrollment,
    Location,
    new_lesson_id,
)
from lessonbook.schedule import GenerationResult, advance_to_weekday, weekly_slots

logger = logging.getLogger(__name__)


class CustomScheduleBuilder:
    """
    Accumulates appointments for one custom enrollment.

    Unlike the standard generator there is no package size to reach: the
    list grows with each insertion until finalize().
    """

    def __init__(
        self,
        child_name: str = "",
        calendar: Optional[HolidayCalendar] = None,
        today: Optional[date] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        self.child_name = child_name
        self._calendar = calendar
        self._today = today
        self._make_id = id_factory or new_lesson_id
        self._appointments: List[Appointment] = []

    @property
    def appointments(self) -> List[Appointment]:
        return list(self._appointments)

    def __len__(self) -> int:
        return len(self._appointments)

    def _sort(self) -> None:
        self._appointments.sort(key=lambda a: a.date)

    def add_single(self, d: date, location: Location, start_time: str, end_time: str) -> Appointment:
        # operator-chosen date: no holiday check
        app = Appointment(
            lesson_id=self._make_id(),
            date=d,
            start_time=start_time,
            end_time=end_time,
            location_id=location.id,
            location_name=location.name,
            location_color=location.color,
            child_name=self.child_name,
        )
        self._appointments.append(app)
        self._sort()
        return app

    def add_weekly(
        self,
        day_of_week: int,
        location: Location,
        start_time: str,
        end_time: str,
        count: int,
    ) -> GenerationResult:
        """
        Add `count` weekly lessons starting from the first `day_of_week` on or after today.
        """
        today = self._today or date.today()
        result = weekly_slots(
            advance_to_weekday(today, day_of_week),
            start_time,
            end_time,
            location,
            count,
            child_name=self.child_name,
            calendar=self._calendar,
            id_factory=self._make_id,
        )
        self._appointments.extend(result.appointments)
        self._sort()
        return result

    def remove(self, lesson_id: str) -> Appointment:
        for app in self._appointments:
            if app.lesson_id == lesson_id:
                self._appointments.remove(app)
                return app
        raise NotFoundError(lesson_id)

    def finalize(self, enrollment_id: str, client_id: str = "", child_name: Optional[str] = None) -> Enrollment:
        """
        Build the enrollment; dates and lesson counts come from the accumulated list.
        """
        if not self._appointments:
            raise ValueError("Cannot finalize an empty custom schedule")

        apps = list(self._appointments)
        total = len(apps)
        enrollment = Enrollment(
            id=enrollment_id,
            child_name=child_name if child_name is not None else self.child_name,
            client_id=client_id,
            lessons_total=total,
            lessons_remaining=total,
            appointments=apps,
            start_date=apps[0].date,
            end_date=apps[-1].date,
            location_id=MIXED_LOCATION,
            location_name=MIXED_LOCATION,
            supplier_id=INSTITUTIONAL_SUPPLIER,
            supplier_name=INSTITUTIONAL_SUPPLIER,
            status=PENDING,
            mode=CUSTOM,
        )
        logger.info("Finalized custom enrollment %s with %d lessons", enrollment_id, total)
        return enrollment
