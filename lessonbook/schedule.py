"""
Weekly schedule generation.

A standard enrollment gets one lesson per week on a fixed weekday and time
window. Holidays are skipped and do not count towards the package size, so a
skipped week pushes every following lesson one week later.

Weekday convention everywhere in this package: 0 = Sunday ... 6 = Saturday.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Callable, List, Optional, Tuple

from lessonbook.holidays import DEFAULT_CALENDAR, HolidayCalendar
from lessonbook.model import (
    PENDING,
    STANDARD,
    Appointment,
    AvailabilitySlot,
    Enrollment,
    Location,
    new_lesson_id,
)

logger = logging.getLogger(__name__)

# Safety valve against targets that can never be met (e.g. a calendar full of closures)
MAX_WEEKLY_ITERATIONS = 100


@dataclass
class GenerationResult:
    """
    Appointments produced by one generation run.

    exhausted is True when the iteration cap was hit before `requested`
    appointments could be placed.
    """

    appointments: List[Appointment] = field(default_factory=list)
    requested: int = 0

    @property
    def produced(self) -> int:
        return len(self.appointments)

    @property
    def exhausted(self) -> bool:
        return self.produced < self.requested


def day_of_week(d: date) -> int:
    """
    Weekday of `d` with 0 = Sunday ... 6 = Saturday.
    """
    return d.isoweekday() % 7


def advance_to_weekday(d: date, dow: int) -> date:
    """
    Return the first date >= d falling on weekday `dow` (0 = Sunday).
    """
    if not 0 <= dow <= 6:
        raise ValueError(f"day_of_week must be in 0..6, got {dow!r}")
    while day_of_week(d) != dow:
        d += timedelta(days=1)
    return d


def weekly_slots(
    first: date,
    start_time: str,
    end_time: str,
    location: Location,
    count: int,
    child_name: str = "",
    calendar: Optional[HolidayCalendar] = None,
    id_factory: Optional[Callable[[], str]] = None,
) -> GenerationResult:
    """
    Core loop: walk forward 7 days at a time from `first`, emitting a slot on
    every non-holiday date until `count` slots exist or the cap is reached.
    """
    cal = calendar or DEFAULT_CALENDAR
    make_id = id_factory or new_lesson_id

    result = GenerationResult(requested=max(0, count))
    current = first
    iterations = 0
    while result.produced < result.requested and iterations < MAX_WEEKLY_ITERATIONS:
        if not cal.is_holiday(current):
            result.appointments.append(
                Appointment(
                    lesson_id=make_id(),
                    date=current,
                    start_time=start_time,
                    end_time=end_time,
                    location_id=location.id,
                    location_name=location.name,
                    location_color=location.color,
                    child_name=child_name,
                )
            )
        else:
            logger.debug("Skipping holiday %s (%s)", current, cal.name_of(current))
        current += timedelta(days=7)
        iterations += 1

    if result.exhausted:
        logger.warning(
            "Weekly generation from %s stopped after %d iterations: %d of %d lessons placed",
            first,
            iterations,
            result.produced,
            result.requested,
        )
    return result


def generate(
    start_date: date,
    start_time: str,
    end_time: str,
    location: Location,
    lesson_count: int,
    day_of_week: Optional[int] = None,
    child_name: str = "",
    calendar: Optional[HolidayCalendar] = None,
    id_factory: Optional[Callable[[], str]] = None,
) -> GenerationResult:
    """
    Generate a weekly lesson sequence.

    Two entry modes:
    - date-anchored (day_of_week is None): the first candidate is start_date
    - weekday-anchored: start_date is first moved forward to day_of_week

    The result is ordered by date ascending by construction.
    """
    first = start_date if day_of_week is None else advance_to_weekday(start_date, day_of_week)
    return weekly_slots(
        first,
        start_time,
        end_time,
        location,
        lesson_count,
        child_name=child_name,
        calendar=calendar,
        id_factory=id_factory,
    )


def bounds(appointments: List[Appointment]) -> Tuple[Optional[date], Optional[date]]:
    """
    (first date, last date) of a list of appointments, (None, None) if empty.
    """
    if not appointments:
        return None, None
    dates = [a.date for a in appointments]
    return min(dates), max(dates)


def new_enrollment(
    enrollment_id: str,
    child_name: str,
    location: Location,
    slot: AvailabilitySlot,
    start_date: date,
    lessons: int,
    client_id: str = "",
    calendar: Optional[HolidayCalendar] = None,
    id_factory: Optional[Callable[[], str]] = None,
) -> Tuple[Enrollment, GenerationResult]:
    """
    Build a standard-mode enrollment for one child on one weekly slot.

    lessons_total and lessons_remaining come from the package size, start and
    end dates from the generated appointments (start_date if none could be placed).
    Raises ValueError for a negative package size.
    """
    if lessons < 0:
        raise ValueError(f"Package size cannot be negative: {lessons}")
    result = generate(
        start_date,
        slot.start_time,
        slot.end_time,
        location,
        lessons,
        day_of_week=slot.day_of_week,
        child_name=child_name,
        calendar=calendar,
        id_factory=id_factory,
    )
    first, last = bounds(result.appointments)

    enrollment = Enrollment(
        id=enrollment_id,
        child_name=child_name,
        client_id=client_id,
        lessons_total=lessons,
        lessons_remaining=lessons,
        appointments=list(result.appointments),
        start_date=first or start_date,
        end_date=last or start_date,
        location_id=location.id,
        location_name=location.name,
        location_color=location.color,
        supplier_id=location.supplier_id,
        supplier_name=location.supplier_name,
        status=PENDING,
        mode=STANDARD,
    )
    logger.info(
        "Created enrollment %s for %s: %d lessons from %s to %s",
        enrollment.id,
        child_name,
        result.produced,
        enrollment.start_date,
        enrollment.end_date,
    )
    return enrollment, result
