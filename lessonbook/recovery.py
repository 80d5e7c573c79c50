"""
Absence recovery.

After a lesson is marked absent the operator picks one of three strategies:

    lost            the lesson is forfeited; nothing is added, credit is not returned
    recover_auto    a make-up lesson is appended on the next free week
    recover_manual  a make-up lesson is placed on an operator-chosen date

recover_auto anchors on the latest appointment of the enrollment, not on the
absent one: the make-up lesson always goes after the end of the schedule, on
the weekday of that last lesson.

The same search moves lessons off closure days (reschedule).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Callable, Optional

from lessonbook.errors import InvalidTransitionError, NotFoundError
from lessonbook.holidays import DEFAULT_CALENDAR, HolidayCalendar
from lessonbook.model import MIXED_LOCATION, SCHEDULED, Appointment, Enrollment, Location, new_lesson_id
from lessonbook.schedule import day_of_week

logger = logging.getLogger(__name__)

LOST = "lost"
RECOVER_AUTO = "recover_auto"
RECOVER_MANUAL = "recover_manual"
STRATEGIES = (LOST, RECOVER_AUTO, RECOVER_MANUAL)

# Day-by-day steps tried by recover_auto before giving up
MAX_RECOVERY_STEPS = 52


@dataclass
class ManualRecovery:
    """
    Target slot chosen by the operator for recover_manual.

    Without a location the enrollment's current location is used.
    """

    date: date
    start_time: str
    end_time: str
    location: Optional[Location] = None


@dataclass
class RecoveryPlan:
    strategy: str
    lesson_id: str
    new_appointment: Optional[Appointment] = None
    credit_delta: int = 0
    exhausted: bool = False


def _unique_id(enrollment: Enrollment, id_factory: Optional[Callable[[], str]]) -> str:
    make_id = id_factory or new_lesson_id
    taken = enrollment.lesson_ids()
    lesson_id = make_id()
    while lesson_id in taken:
        lesson_id = make_id()
    return lesson_id


def latest_appointment(enrollment: Enrollment) -> Optional[Appointment]:
    if not enrollment.appointments:
        return None
    return sorted(enrollment.appointments, key=lambda a: a.date)[-1]


def next_recovery_date(reference: date, calendar: Optional[HolidayCalendar] = None) -> Optional[date]:
    """
    First non-holiday date after `reference` on the same weekday.

    Returns None if none is found within MAX_RECOVERY_STEPS days.
    """
    cal = calendar or DEFAULT_CALENDAR
    target = day_of_week(reference)
    candidate = reference
    for _ in range(MAX_RECOVERY_STEPS):
        candidate += timedelta(days=1)
        if day_of_week(candidate) == target and not cal.is_holiday(candidate):
            return candidate
    return None


def _plan_auto(
    enrollment: Enrollment,
    plan: RecoveryPlan,
    calendar: Optional[HolidayCalendar],
    id_factory: Optional[Callable[[], str]],
) -> RecoveryPlan:
    reference = latest_appointment(enrollment)
    if reference is None:
        plan.exhausted = True
        return plan

    new_date = next_recovery_date(reference.date, calendar)
    if new_date is None:
        logger.warning(
            "No recovery date found within %d days after %s for enrollment %s",
            MAX_RECOVERY_STEPS,
            reference.date,
            enrollment.id,
        )
        plan.exhausted = True
        return plan

    plan.new_appointment = Appointment(
        lesson_id=_unique_id(enrollment, id_factory),
        date=new_date,
        start_time=reference.start_time,
        end_time=reference.end_time,
        location_id=reference.location_id,
        location_name=reference.location_name,
        location_color=reference.location_color,
        child_name=reference.child_name,
        status=SCHEDULED,
    )
    return plan


def _plan_manual(
    enrollment: Enrollment,
    plan: RecoveryPlan,
    details: Optional[ManualRecovery],
    id_factory: Optional[Callable[[], str]],
) -> RecoveryPlan:
    if details is None:
        raise ValueError("recover_manual requires a target date, time window and location")

    absent = enrollment.find(plan.lesson_id)
    loc = details.location
    if loc is not None:
        snapshot = (loc.id, loc.name, loc.color)
    elif enrollment.location_id == MIXED_LOCATION:
        snapshot = (absent.location_id, absent.location_name, absent.location_color)
    else:
        snapshot = (enrollment.location_id, enrollment.location_name, enrollment.location_color)

    plan.new_appointment = Appointment(
        lesson_id=_unique_id(enrollment, id_factory),
        date=details.date,
        start_time=details.start_time,
        end_time=details.end_time,
        location_id=snapshot[0],
        location_name=snapshot[1],
        location_color=snapshot[2],
        child_name=absent.child_name or enrollment.child_name,
        status=SCHEDULED,
    )
    return plan


def plan(
    enrollment: Enrollment,
    absent_lesson_id: str,
    strategy: str,
    details: Optional[ManualRecovery] = None,
    calendar: Optional[HolidayCalendar] = None,
    id_factory: Optional[Callable[[], str]] = None,
) -> RecoveryPlan:
    """
    Decide what happens to an absent lesson. Does not mutate the enrollment.

    Raises NotFoundError for an unknown lesson id and ValueError for an
    unknown strategy or a manual recovery without details.
    """
    if strategy not in STRATEGIES:
        raise ValueError(f"Unknown recovery strategy: {strategy!r} (expected one of {', '.join(STRATEGIES)})")
    if enrollment.find(absent_lesson_id) is None:
        raise NotFoundError(absent_lesson_id, enrollment.id)

    result = RecoveryPlan(strategy=strategy, lesson_id=absent_lesson_id)
    if strategy == RECOVER_AUTO:
        return _plan_auto(enrollment, result, calendar, id_factory)
    if strategy == RECOVER_MANUAL:
        return _plan_manual(enrollment, result, details, id_factory)
    return result


def apply(enrollment: Enrollment, recovery: RecoveryPlan) -> Optional[Appointment]:
    """
    Apply a plan: append the make-up lesson (if any), re-sort, refresh bounds.
    """
    new_app = recovery.new_appointment
    if new_app is not None:
        enrollment.appointments.append(new_app)
        enrollment.sort_appointments()
        enrollment.refresh_bounds()
        logger.debug(
            "Enrollment %s: %s for lesson %s -> new lesson %s on %s",
            enrollment.id,
            recovery.strategy,
            recovery.lesson_id,
            new_app.lesson_id,
            new_app.date,
        )
    enrollment.lessons_remaining = max(
        0, min(enrollment.lessons_total, enrollment.lessons_remaining + recovery.credit_delta)
    )
    return new_app


# ---------------------------------------------------------------------------
# Closure days
# ---------------------------------------------------------------------------

APPEND_END = "append_end"
MOVE_TO_DATE = "move_to_date"
RESCHEDULE_ACTIONS = (APPEND_END, MOVE_TO_DATE)


def check_reschedule(action: str, move_date: Optional[date] = None) -> None:
    if action not in RESCHEDULE_ACTIONS:
        raise ValueError(f"Unknown reschedule action: {action!r} (expected one of {', '.join(RESCHEDULE_ACTIONS)})")
    if action == MOVE_TO_DATE and move_date is None:
        raise ValueError("move_to_date requires a target date")


def reschedule(
    enrollment: Enrollment,
    lesson_id: str,
    action: str,
    move_date: Optional[date] = None,
    calendar: Optional[HolidayCalendar] = None,
) -> Optional[date]:
    """
    Move a Scheduled lesson off a day the center is closed.

    append_end    the lesson goes after the last one, on the next free date of
                  the last lesson's weekday (same search as recover_auto)
    move_to_date  the lesson goes to `move_date`, no holiday check

    The lesson keeps its id and time window; credit is untouched. Returns the
    new date, or None when append_end finds no free date (nothing changes).
    """
    check_reschedule(action, move_date)
    app = enrollment.find(lesson_id)
    if app is None:
        raise NotFoundError(lesson_id, enrollment.id)
    if app.status != SCHEDULED:
        raise InvalidTransitionError(
            f"Lesson {lesson_id!r} is {app.status}, only Scheduled lessons can be rescheduled"
        )

    if action == APPEND_END:
        reference = latest_appointment(enrollment)
        new_date = next_recovery_date(reference.date, calendar)
        if new_date is None:
            logger.warning("No free date after %s for lesson %s of enrollment %s", reference.date, lesson_id, enrollment.id)
            return None
    else:
        new_date = move_date

    logger.debug("Enrollment %s: lesson %s moved %s -> %s", enrollment.id, lesson_id, app.date, new_date)
    app.date = new_date
    enrollment.sort_appointments()
    enrollment.refresh_bounds()
    return new_date
