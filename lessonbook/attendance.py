"""
Attendance ledger.

Each appointment moves between three states:

    Scheduled -> Present | Absent
    Present | Absent -> Scheduled   (revert)

Credit rules (lessons_remaining):
- the first transition into Present consumes one lesson
- leaving Present (revert, delete, or a later absence) gives it back
- Absent never touches credit by itself; the recovery strategy decides

An active enrollment whose last lesson is consumed becomes completed; giving
that lesson back reopens it.

The counter is clamped to 0..lessons_total instead of raising.
Every operation checks the lesson id before mutating anything.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Iterable, Optional

from lessonbook import recovery
from lessonbook.errors import InvalidTransitionError, NotFoundError
from lessonbook.holidays import HolidayCalendar
from lessonbook.model import (
    ABSENT,
    ACTIVE,
    COMPLETED,
    EXPIRED,
    MIXED_LOCATION,
    PENDING,
    PRESENT,
    SCHEDULED,
    Appointment,
    Enrollment,
    Location,
)

logger = logging.getLogger(__name__)


def _lookup(enrollment: Enrollment, lesson_id: str) -> Appointment:
    app = enrollment.find(lesson_id)
    if app is None:
        raise NotFoundError(lesson_id, enrollment.id)
    return app


def _consume(enrollment: Enrollment) -> None:
    enrollment.consume_credit()
    if enrollment.lessons_remaining == 0 and enrollment.status == ACTIVE:
        logger.info("Enrollment %s: last lesson used, %s -> %s", enrollment.id, ACTIVE, COMPLETED)
        enrollment.status = COMPLETED


def _give_back(enrollment: Enrollment) -> None:
    used_up = enrollment.lessons_remaining == 0
    enrollment.restore_credit()
    # only a package closed by its last lesson reopens; abandoned ones keep credit left
    if used_up and enrollment.status == COMPLETED and enrollment.lessons_remaining > 0:
        logger.info("Enrollment %s: lesson given back, %s -> %s", enrollment.id, COMPLETED, ACTIVE)
        enrollment.status = ACTIVE


def mark_present(enrollment: Enrollment, lesson_id: str) -> Appointment:
    """
    Confirm presence. Idempotent: a lesson already Present is left alone.

    The appointment's location snapshot is replaced with the enrollment's
    current location, so a child moved to another site after scheduling is
    recorded where the lesson actually took place.
    """
    app = _lookup(enrollment, lesson_id)
    if app.status == PRESENT:
        return app

    app.status = PRESENT
    # "mixed" is a marker, not a site: custom schedules keep each lesson's own location
    if enrollment.location_id != MIXED_LOCATION:
        app.location_id = enrollment.location_id
        app.location_name = enrollment.location_name
        app.location_color = enrollment.location_color
    _consume(enrollment)
    logger.debug("Enrollment %s: lesson %s present, %d left", enrollment.id, lesson_id, enrollment.lessons_remaining)
    return app


def mark_absent(
    enrollment: Enrollment,
    lesson_id: str,
    strategy: str,
    details: Optional[recovery.ManualRecovery] = None,
    calendar: Optional[HolidayCalendar] = None,
    id_factory: Optional[Callable[[], str]] = None,
) -> recovery.RecoveryPlan:
    """
    Record an absence and apply the chosen recovery strategy.

    The plan is computed before the status changes, so a bad strategy or
    missing manual details leave the enrollment untouched. A lesson that was
    Present first returns its credit, as revert does.
    """
    app = _lookup(enrollment, lesson_id)
    plan = recovery.plan(enrollment, lesson_id, strategy, details, calendar=calendar, id_factory=id_factory)

    if app.status == PRESENT:
        _give_back(enrollment)
    app.status = ABSENT
    recovery.apply(enrollment, plan)
    logger.debug("Enrollment %s: lesson %s absent (%s)", enrollment.id, lesson_id, strategy)
    return plan


def mark_absent_group(
    items: Iterable[tuple[Enrollment, str]],
    strategy: str,
    details: Optional[recovery.ManualRecovery] = None,
    calendar: Optional[HolidayCalendar] = None,
    id_factory: Optional[Callable[[], str]] = None,
) -> list[recovery.RecoveryPlan]:
    """
    Apply one recovery decision to a group of absences (e.g. a whole class slot).

    Each (enrollment, lesson_id) pair gets its own mutation. All ids are
    checked first: one unknown id fails the group before anything changes.
    """
    pairs = list(items)
    for enrollment, lesson_id in pairs:
        _lookup(enrollment, lesson_id)
    if strategy not in recovery.STRATEGIES:
        raise ValueError(f"Unknown recovery strategy: {strategy!r}")
    if strategy == recovery.RECOVER_MANUAL and details is None:
        raise ValueError("recover_manual requires a target date, time window and location")

    return [
        mark_absent(enrollment, lesson_id, strategy, details, calendar=calendar, id_factory=id_factory)
        for enrollment, lesson_id in pairs
    ]


def revert(enrollment: Enrollment, lesson_id: str) -> Appointment:
    app = _lookup(enrollment, lesson_id)
    if app.status == PRESENT:
        _give_back(enrollment)
    app.status = SCHEDULED
    logger.debug("Enrollment %s: lesson %s reverted, %d left", enrollment.id, lesson_id, enrollment.lessons_remaining)
    return app


def delete(enrollment: Enrollment, lesson_id: str) -> Appointment:
    """
    Remove an appointment. A Present one returns its credit, like revert.
    """
    app = _lookup(enrollment, lesson_id)
    enrollment.appointments.remove(app)
    if app.status == PRESENT:
        _give_back(enrollment)
    enrollment.refresh_bounds()
    logger.debug("Enrollment %s: lesson %s deleted, %d left", enrollment.id, lesson_id, enrollment.lessons_remaining)
    return app


def consolidate_past(enrollment: Enrollment, today: date) -> int:
    """
    Mark every lesson still Scheduled before `today` as Present.

    Lessons nobody flagged as absent are assumed to have taken place.
    Returns the number of lessons consolidated.
    """
    past = [a.lesson_id for a in enrollment.appointments if a.status == SCHEDULED and a.date < today]
    for lesson_id in past:
        mark_present(enrollment, lesson_id)
    if past:
        logger.info("Enrollment %s: consolidated %d past lessons", enrollment.id, len(past))
    return len(past)


# ---------------------------------------------------------------------------
# Enrollment lifecycle
# ---------------------------------------------------------------------------


def _transition(enrollment: Enrollment, allowed_from: tuple[str, ...], target: str) -> None:
    if enrollment.status not in allowed_from:
        raise InvalidTransitionError(
            f"Enrollment {enrollment.id!r} cannot go from {enrollment.status!r} to {target!r}"
        )
    logger.info("Enrollment %s: %s -> %s", enrollment.id, enrollment.status, target)
    enrollment.status = target


def activate(enrollment: Enrollment) -> None:
    """Payment received. A package already used up goes straight to completed."""
    _transition(enrollment, (PENDING,), ACTIVE)
    if enrollment.lessons_remaining == 0:
        _transition(enrollment, (ACTIVE,), COMPLETED)


def revoke(enrollment: Enrollment) -> None:
    """Payment cancelled: back to pending."""
    _transition(enrollment, (ACTIVE,), PENDING)


def abandon(enrollment: Enrollment, today: date) -> None:
    """Early closure: the enrollment ends today."""
    _transition(enrollment, (PENDING, ACTIVE), COMPLETED)
    enrollment.end_date = today


def terminate(enrollment: Enrollment) -> None:
    _transition(enrollment, (PENDING, ACTIVE, COMPLETED), EXPIRED)


def relocate(enrollment: Enrollment, location: Location) -> None:
    """
    Move the enrollment to another site.

    Existing appointments keep their snapshot until presence is confirmed.
    """
    enrollment.location_id = location.id
    enrollment.location_name = location.name
    enrollment.location_color = location.color
    if location.supplier_id:
        enrollment.supplier_id = location.supplier_id
        enrollment.supplier_name = location.supplier_name
    logger.info("Enrollment %s moved to %s", enrollment.id, location.name)
