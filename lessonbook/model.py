"""
Central data model definitions used across the project.

This module defines the canonical structure of locations, appointments and
enrollments so that:
- the scheduling engine and the storage layer share the same field names
- JSON documents round-trip through one pair of to_dict/from_dict functions
- location data on appointments stays a snapshot, never a live reference
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, List, Optional


# Appointment status values
SCHEDULED = "Scheduled"
PRESENT = "Present"
ABSENT = "Absent"
APPOINTMENT_STATUSES = (SCHEDULED, PRESENT, ABSENT)

# Enrollment status values
PENDING = "pending"
ACTIVE = "active"
COMPLETED = "completed"
EXPIRED = "expired"
ENROLLMENT_STATUSES = (PENDING, ACTIVE, COMPLETED, EXPIRED)

# Enrollment modes
STANDARD = "standard"
CUSTOM = "custom"

# Markers used by custom-mode enrollments, whose appointments may differ in location
MIXED_LOCATION = "mixed"
INSTITUTIONAL_SUPPLIER = "institutional"


def new_lesson_id() -> str:
    return uuid.uuid4().hex


def _parse_date(value: Any) -> Optional[date]:
    """
    Accept a date, an ISO date string or an ISO datetime string.

    Older documents store full ISO timestamps ("2025-01-06T00:00:00.000Z"),
    only the calendar part is relevant here.
    """
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip()[:10])


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass
class AvailabilitySlot:
    """
    One weekly opening window of a location.

    day_of_week uses 0 = Sunday ... 6 = Saturday.
    """

    day_of_week: int
    start_time: str
    end_time: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AvailabilitySlot":
        return cls(
            day_of_week=int(data["day_of_week"]),
            start_time=str(data["start_time"]),
            end_time=str(data["end_time"]),
        )


@dataclass
class Location:
    """
    Represents one site from the location directory.
    """

    id: str
    name: str
    color: str = ""
    availability: List[AvailabilitySlot] = field(default_factory=list)
    supplier_id: str = ""
    supplier_name: str = ""

    def slots_for(self, day_of_week: int) -> List[AvailabilitySlot]:
        return [s for s in self.availability if s.day_of_week == day_of_week]

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Location":
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            color=str(data.get("color", "") or ""),
            availability=[AvailabilitySlot.from_dict(s) for s in data.get("availability", []) or []],
            supplier_id=str(data.get("supplier_id", "") or ""),
            supplier_name=str(data.get("supplier_name", "") or ""),
        )


@dataclass
class Appointment:
    """
    Represents one scheduled occurrence of a lesson for one enrollment.

    location_id/location_name/location_color are a snapshot taken when the
    appointment was created (or when presence was confirmed).
    """

    lesson_id: str
    date: date
    start_time: str
    end_time: str
    location_id: str
    location_name: str
    location_color: str
    child_name: str = ""
    status: str = SCHEDULED

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["date"] = _iso(self.date)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Appointment":
        status = str(data.get("status") or SCHEDULED)
        if status not in APPOINTMENT_STATUSES:
            raise ValueError(f"Invalid appointment status: {status!r}")
        return cls(
            lesson_id=str(data["lesson_id"]),
            date=_parse_date(data["date"]),
            start_time=str(data.get("start_time", "")),
            end_time=str(data.get("end_time", "")),
            location_id=str(data.get("location_id", "") or ""),
            location_name=str(data.get("location_name", "") or ""),
            location_color=str(data.get("location_color", "") or ""),
            child_name=str(data.get("child_name", "") or ""),
            status=status,
        )


@dataclass
class Enrollment:
    """
    The aggregate root: one child enrolled into one lesson package.

    Invariant: 0 <= lessons_remaining <= lessons_total.
    """

    id: str
    child_name: str
    lessons_total: int
    lessons_remaining: int
    appointments: List[Appointment] = field(default_factory=list)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    client_id: str = ""
    location_id: str = ""
    location_name: str = ""
    location_color: str = ""
    supplier_id: str = ""
    supplier_name: str = ""
    status: str = PENDING
    mode: str = STANDARD

    def find(self, lesson_id: str) -> Optional[Appointment]:
        for app in self.appointments:
            if app.lesson_id == lesson_id:
                return app
        return None

    def lesson_ids(self) -> set[str]:
        return {a.lesson_id for a in self.appointments}

    def sort_appointments(self) -> None:
        # list.sort is stable: same-day appointments keep their insertion order
        self.appointments.sort(key=lambda a: a.date)

    def refresh_bounds(self) -> None:
        """
        Re-derive start/end from the appointment list (standard mode only).
        """
        if self.mode != STANDARD or not self.appointments:
            return
        dates = [a.date for a in self.appointments]
        self.start_date = min(dates)
        self.end_date = max(dates)

    def consume_credit(self) -> None:
        self.lessons_remaining = max(0, self.lessons_remaining - 1)

    def restore_credit(self) -> None:
        self.lessons_remaining = min(self.lessons_total, self.lessons_remaining + 1)

    @property
    def lessons_done(self) -> int:
        return self.lessons_total - self.lessons_remaining

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["start_date"] = _iso(self.start_date)
        data["end_date"] = _iso(self.end_date)
        data["appointments"] = [a.to_dict() for a in self.appointments]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Enrollment":
        status = str(data.get("status") or PENDING)
        if status not in ENROLLMENT_STATUSES:
            raise ValueError(f"Invalid enrollment status: {status!r}")
        enrollment = cls(
            id=str(data["id"]),
            child_name=str(data.get("child_name", "") or ""),
            lessons_total=int(data.get("lessons_total", 0)),
            lessons_remaining=int(data.get("lessons_remaining", 0)),
            appointments=[Appointment.from_dict(a) for a in data.get("appointments", []) or []],
            start_date=_parse_date(data.get("start_date")),
            end_date=_parse_date(data.get("end_date")),
            client_id=str(data.get("client_id", "") or ""),
            location_id=str(data.get("location_id", "") or ""),
            location_name=str(data.get("location_name", "") or ""),
            location_color=str(data.get("location_color", "") or ""),
            supplier_id=str(data.get("supplier_id", "") or ""),
            supplier_name=str(data.get("supplier_name", "") or ""),
            status=status,
            mode=str(data.get("mode") or STANDARD),
        )
        # clamp documents written by older versions that let the counter drift
        enrollment.lessons_remaining = max(0, min(enrollment.lessons_total, enrollment.lessons_remaining))
        enrollment.sort_appointments()
        return enrollment
