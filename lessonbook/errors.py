"""
Exception types raised by the scheduling engine and its collaborators.
"""

from __future__ import annotations


class LessonbookError(Exception):
    """Base class for all errors raised by lessonbook."""


class NotFoundError(LessonbookError):
    """
    A referenced lesson does not exist in the target enrollment.

    Not transient: retrying with the same ids fails again.
    """

    def __init__(self, lesson_id: str, enrollment_id: str = "") -> None:
        self.lesson_id = lesson_id
        self.enrollment_id = enrollment_id
        where = f" in enrollment {enrollment_id!r}" if enrollment_id else ""
        super().__init__(f"Lesson {lesson_id!r} not found{where}")


class EnrollmentNotFoundError(NotFoundError):
    """An enrollment id is unknown to the store."""

    def __init__(self, enrollment_id: str) -> None:
        self.lesson_id = ""
        self.enrollment_id = enrollment_id
        LessonbookError.__init__(self, f"Enrollment {enrollment_id!r} not found")


class InvalidTransitionError(LessonbookError):
    """An enrollment lifecycle transition is not allowed from its current status."""


class StorageError(LessonbookError):
    """The enrollment store exists but cannot be read."""
