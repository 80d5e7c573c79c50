"""
Conflict detection.

Given appointments (typically from several enrollments), detect overlaps on
the same date. Overlap rule:
    start < other_end AND end > other_start

An optional `same` key narrows the comparison, e.g. to appointments at the
same location or for the same child.
"""

from __future__ import annotations

from datetime import date
from typing import Callable, Hashable, Optional

from lessonbook.model import Appointment


def _time_to_minutes(hhmm: str) -> int:
    """
    Convert 'HH:MM' to minutes since midnight.
    Raises ValueError for invalid formats.
    """
    parts = hhmm.strip().split(":")
    if len(parts) != 2:
        raise ValueError(f"Invalid time format: {hhmm!r}")
    h = int(parts[0])
    m = int(parts[1])
    if not (0 <= h <= 23 and 0 <= m <= 59):
        raise ValueError(f"Invalid time value: {hhmm!r}")
    return h * 60 + m


def _overlaps(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    return a_start < b_end and a_end > b_start


def find_conflicts(
    appointments: list[Appointment],
    same: Optional[Callable[[Appointment], Hashable]] = None,
) -> list[tuple[Appointment, Appointment]]:
    """
    Find overlapping appointment pairs (A,B), each pair appears once (i<j).
    Appointments with unparseable or empty time windows are ignored.
    """
    conflicts: list[tuple[Appointment, Appointment]] = []

    parsed: list[tuple[int, int, Appointment]] = []
    for app in appointments:
        try:
            start = _time_to_minutes(app.start_time)
            end = _time_to_minutes(app.end_time)
        except ValueError:
            continue
        if end <= start:
            continue
        parsed.append((start, end, app))

    for i in range(len(parsed)):
        s1, e1, a1 = parsed[i]
        for j in range(i + 1, len(parsed)):
            s2, e2, a2 = parsed[j]
            if a1.date != a2.date:
                continue
            if same is not None and same(a1) != same(a2):
                continue
            if _overlaps(s1, e1, s2, e2):
                conflicts.append((a1, a2))

    return conflicts


def location_conflicts(appointments: list[Appointment]) -> list[tuple[Appointment, Appointment]]:
    return find_conflicts(appointments, same=lambda a: a.location_id)


def child_conflicts(appointments: list[Appointment]) -> list[tuple[Appointment, Appointment]]:
    """
    The same child booked twice at once, wherever the two lessons are.
    Appointments without a child name are left out.
    """
    named = [a for a in appointments if a.child_name.strip()]
    return find_conflicts(named, same=lambda a: a.child_name.strip().lower())


def by_start_time(app: Appointment) -> tuple[date, int]:
    """
    Sort key (date, minutes since midnight); unparseable times sort last.
    """
    try:
        minutes = _time_to_minutes(app.start_time)
    except ValueError:
        minutes = 24 * 60
    return app.date, minutes
