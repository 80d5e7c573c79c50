"""
Italian public holiday calendar.

Lessons are never auto-scheduled on:
- the 10 fixed national holidays
- Easter Monday (Pasquetta), computed per year

Easter Sunday itself is computed (easter_sunday) but does not block lessons.
"""

from __future__ import annotations

from datetime import date, timedelta
from functools import lru_cache
from typing import Iterable, Optional


FIXED_HOLIDAYS: dict[tuple[int, int], str] = {
    (1, 1): "Capodanno",
    (1, 6): "Epifania",
    (4, 25): "Festa della Liberazione",
    (5, 1): "Festa del Lavoro",
    (6, 2): "Festa della Repubblica",
    (8, 15): "Ferragosto",
    (11, 1): "Ognissanti",
    (12, 8): "Immacolata Concezione",
    (12, 25): "Natale",
    (12, 26): "Santo Stefano",
}


def easter_sunday(year: int) -> date:
    """
    Gregorian Easter Sunday (anonymous Gregorian / Gauss algorithm).
    """
    a = year % 19
    b = year // 100
    c = year % 100
    d = b // 4
    e = b % 4
    f = (b + 8) // 25
    g = (b - f + 1) // 3
    h = (19 * a + b - d - g + 15) % 30
    i = c // 4
    k = c % 4
    l = (32 + 2 * e + 2 * i - h - k) % 7
    m = (a + 11 * h + 22 * l) // 451
    month = (h + l - 7 * m + 114) // 31
    day = ((h + l - 7 * m + 114) % 31) + 1
    return date(year, month, day)


def easter_monday(year: int) -> date:
    return easter_sunday(year) + timedelta(days=1)


@lru_cache(maxsize=64)
def _holidays_for_year(year: int) -> tuple[tuple[date, str], ...]:
    out = [(date(year, month, day), name) for (month, day), name in FIXED_HOLIDAYS.items()]
    out.append((easter_monday(year), "Lunedì dell'Angelo"))
    return tuple(sorted(out))


def italian_holidays(year: int) -> dict[date, str]:
    """
    Return {date: name} for the 11 lesson-blocking holidays of one year.
    """
    return dict(_holidays_for_year(year))


def holiday_name(d: date) -> Optional[str]:
    return italian_holidays(d.year).get(d)


def is_holiday(d: date) -> bool:
    return holiday_name(d) is not None


class HolidayCalendar:
    """
    Holiday lookup used by the schedule generators.

    On top of the national holidays a calendar can carry site-specific
    closure days (summer closure, local patron saint, ...).
    """

    def __init__(self, extra: Optional[Iterable[tuple[date, str]]] = None) -> None:
        self._closures: dict[date, str] = dict(extra or [])

    def add_closure(self, d: date, name: str = "Chiusura") -> None:
        self._closures[d] = name

    def remove_closure(self, d: date) -> bool:
        return self._closures.pop(d, None) is not None

    @property
    def closures(self) -> dict[date, str]:
        return dict(self._closures)

    def name_of(self, d: date) -> Optional[str]:
        return self._closures.get(d) or holiday_name(d)

    def is_holiday(self, d: date) -> bool:
        return self.name_of(d) is not None


DEFAULT_CALENDAR = HolidayCalendar()
