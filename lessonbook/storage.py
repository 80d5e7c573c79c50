"""
Persistent storage for enrollments, the location directory and closure days.

Files (inside the configured data directory):

    enrollments.json   {"enrollments": [ ... ]}
    locations.json     [ {id, name, color, availability, supplier_id, supplier_name}, ... ]
    closures.json      [ {date, reason}, ... ]

The scheduling engine never touches these files: callers load an enrollment,
let the engine mutate it in memory and write it back here.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import date
from pathlib import Path
from typing import Iterable

from lessonbook.config import load_settings
from lessonbook.errors import StorageError
from lessonbook.model import Enrollment, Location

logger = logging.getLogger(__name__)


def _default_enrollments_path() -> Path:
    """
    Using a function instead of a constant lets tests (and the environment)
    override the location.
    """
    return load_settings().enrollments_path


def _default_locations_path() -> Path:
    return load_settings().locations_path


def load_enrollments(path: str | Path | None = None) -> dict[str, Enrollment]:
    """
    Load all enrollments keyed by id.

    A missing file means "no enrollments yet". A file that exists but cannot
    be parsed raises StorageError: silently returning nothing here would let
    the next save wipe the data.
    """
    enrollments_path = Path(path) if path is not None else _default_enrollments_path()

    if not enrollments_path.exists():
        return {}

    try:
        data = json.loads(enrollments_path.read_text(encoding="utf-8"))
        items = data.get("enrollments", [])
        if not isinstance(items, list):
            raise StorageError(f"{enrollments_path}: 'enrollments' is not a list")
        out: dict[str, Enrollment] = {}
        for item in items:
            enrollment = Enrollment.from_dict(item)
            out[enrollment.id] = enrollment
        return out
    except (OSError, json.JSONDecodeError, UnicodeDecodeError, AttributeError, KeyError, ValueError) as e:
        raise StorageError(f"Cannot read {enrollments_path}: {e}") from e


def save_enrollments(enrollments: Iterable[Enrollment], path: str | Path | None = None) -> None:
    """
    Save enrollments sorted by id. The file is replaced atomically.
    """
    enrollments_path = Path(path) if path is not None else _default_enrollments_path()
    enrollments_path.parent.mkdir(parents=True, exist_ok=True)

    items = sorted(enrollments, key=lambda e: e.id)
    payload = {"enrollments": [e.to_dict() for e in items]}

    tmp_path = enrollments_path.with_suffix(enrollments_path.suffix + ".tmp")
    tmp_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    os.replace(tmp_path, enrollments_path)
    logger.debug("Saved %d enrollments to %s", len(items), enrollments_path)


def load_locations(path: str | Path | None = None) -> list[Location]:
    """
    Load the read-only location directory.

    The directory is only used to offer choices, so a missing or broken
    file yields an empty list (with a warning for the broken case).
    """
    locations_path = Path(path) if path is not None else _default_locations_path()

    if not locations_path.exists():
        return []

    try:
        data = json.loads(locations_path.read_text(encoding="utf-8"))
        if not isinstance(data, list):
            return []
        return [Location.from_dict(x) for x in data if isinstance(x, dict)]
    except (OSError, json.JSONDecodeError, UnicodeDecodeError, KeyError, ValueError, TypeError) as e:
        logger.warning("Ignoring unreadable location directory %s: %s", locations_path, e)
        return []


def save_locations(locations: Iterable[Location], path: str | Path | None = None) -> None:
    locations_path = Path(path) if path is not None else _default_locations_path()
    locations_path.parent.mkdir(parents=True, exist_ok=True)
    payload = [loc.to_dict() for loc in locations]
    locations_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")


def _default_closures_path() -> Path:
    return load_settings().closures_path


def load_closures(path: str | Path | None = None) -> list[tuple[date, str]]:
    """
    Load closure days as (date, reason) pairs sorted by date.

    A missing file means no closures. A broken one raises StorageError:
    ignoring it would schedule lessons on days the center is closed.
    """
    closures_path = Path(path) if path is not None else _default_closures_path()

    if not closures_path.exists():
        return []

    try:
        data = json.loads(closures_path.read_text(encoding="utf-8"))
        if not isinstance(data, list):
            raise StorageError(f"{closures_path}: expected a list of closures")
        out = [(date.fromisoformat(str(x["date"])[:10]), str(x.get("reason", "") or "")) for x in data]
        return sorted(out)
    except (OSError, json.JSONDecodeError, UnicodeDecodeError, KeyError, ValueError, TypeError, AttributeError) as e:
        raise StorageError(f"Cannot read {closures_path}: {e}") from e


def save_closures(closures: Iterable[tuple[date, str]], path: str | Path | None = None) -> None:
    closures_path = Path(path) if path is not None else _default_closures_path()
    closures_path.parent.mkdir(parents=True, exist_ok=True)
    payload = [{"date": d.isoformat(), "reason": reason} for d, reason in sorted(closures)]
    closures_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
