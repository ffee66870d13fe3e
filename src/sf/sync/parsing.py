"""Field-level helpers for extract lines."""

from __future__ import annotations

import re
from collections.abc import Sequence
from datetime import date, datetime

from sf.sync.errors import LineValidationError

_TIME_PATTERN = re.compile(r"^\d{2}:\d{2}:\d{2}$")


def normalize_fields(row: Sequence[str]) -> list[str | None]:
    """Trim every field and turn blanks into None."""
    return [value.strip() or None for value in row]


def field_at(fields: Sequence[str | None], index: int) -> str | None:
    """Return the field at ``index``, or None past the end of a short line."""
    return fields[index] if index < len(fields) else None


def parse_date(value: str | None, date_format: str) -> date | None:
    """Parse ``value`` with ``date_format``; unparseable values become None."""
    if value is None:
        return None
    try:
        return datetime.strptime(value, date_format).date()
    except ValueError:
        return None


def parse_time(value: str | None) -> str | None:
    """Return ``value`` if it is an 'HH:MM:SS' time, else None."""
    if value is None or not _TIME_PATTERN.match(value):
        return None
    try:
        datetime.strptime(value, "%H:%M:%S")
    except ValueError:
        return None
    return value


def require_min_fields(fields: Sequence[str | None], minimum: int, kind: str) -> None:
    if len(fields) < minimum:
        raise LineValidationError(
            f"{kind} line has {len(fields)} field(s), at least {minimum} are required"
        )


def require(value: object, name: str, eid: str | None) -> None:
    """Raise LineValidationError unless ``value`` is present."""
    if value is None:
        raise LineValidationError(f"A valid {name} value is required for eid {eid}")
