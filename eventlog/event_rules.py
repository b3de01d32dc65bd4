"""Validation and derivation rules for event records.

Everything here is a plain function over plain values so the save lifecycle in
``eventlog.services.events`` can call it with explicit before/after snapshots
instead of relying on ORM dirty tracking.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, List, Mapping, Optional, Set, Union

from pytz.tzinfo import BaseTzInfo

from eventlog.time_zones import combine

DESCRIPTION_MAX_LENGTH = 1000

TIME_FIELDS = frozenset({"start_time", "end_time"})
DESCRIPTION_FIELDS = frozenset({"description"})

# Accepted wall-clock formats, tried in order.
_TIME_FORMATS = (
    "%H:%M",
    "%H:%M:%S",
    "%I:%M %p",
    "%I:%M%p",
    "%I:%M:%S %p",
    "%I %p",
    "%I%p",
)

DateInput = Union[date, str, None]
TimeInput = Union[time, str, None]


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str

    def as_dict(self) -> dict:
        return {"field": self.field, "message": self.message}


class EventValidationError(ValueError):
    """Raised when an event record fails validation; nothing is persisted."""

    def __init__(self, errors: List[FieldError]) -> None:
        self.errors = list(errors)
        summary = "; ".join(f"{e.field} {e.message}" for e in self.errors)
        super().__init__(summary or "invalid event")


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_date(value: DateInput) -> Optional[date]:
    """Return a ``date`` for a date object or ISO string, ``None`` if it doesn't parse."""

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            return None
    return None


def parse_time_of_day(value: TimeInput) -> Optional[time]:
    """Return a ``time`` for a time object or wall-clock string, ``None`` if it doesn't parse."""

    if isinstance(value, time):
        return value
    if not isinstance(value, str):
        return None
    raw = " ".join(value.strip().upper().split())
    for fmt in _TIME_FORMATS:
        try:
            return datetime.strptime(raw, fmt).time()
        except ValueError:
            continue
    return None


def format_time_of_day(value: time) -> str:
    """Zero-padded 24h string; string order matches chronological order."""

    if value.second:
        return value.strftime("%H:%M:%S")
    return value.strftime("%H:%M")


def normalize_time(value: TimeInput) -> Optional[str]:
    """Normalise a wall-clock value for storage. Blank stays ``None``."""

    if is_blank(value):
        return None
    parsed = parse_time_of_day(value)
    if parsed is None:
        raise ValueError(f"invalid time of day: {value!r}")
    return format_time_of_day(parsed)


def validate(fields: Mapping[str, Any]) -> List[FieldError]:
    """Check an event's fields and return every problem found."""

    errors: List[FieldError] = []

    raw_date = fields.get("date")
    if is_blank(raw_date):
        errors.append(FieldError("date", "can't be blank"))
    elif parse_date(raw_date) is None:
        errors.append(FieldError("date", "is not a valid date"))

    raw_start = fields.get("start_time")
    start: Optional[time] = None
    if is_blank(raw_start):
        errors.append(FieldError("start_time", "can't be blank"))
    else:
        start = parse_time_of_day(raw_start)
        if start is None:
            errors.append(FieldError("start_time", "is not a valid time"))

    raw_end = fields.get("end_time")
    if not is_blank(raw_end):
        end = parse_time_of_day(raw_end)
        if end is None:
            errors.append(FieldError("end_time", "is not a valid time"))
        elif start is not None and end < start:
            errors.append(
                FieldError("end_time", f"must be on or after {format_time_of_day(start)}")
            )

    description = fields.get("description")
    if is_blank(description):
        errors.append(FieldError("description", "can't be blank"))
    elif len(description) > DESCRIPTION_MAX_LENGTH:
        errors.append(
            FieldError(
                "description",
                f"is too long (maximum is {DESCRIPTION_MAX_LENGTH} characters)",
            )
        )

    return errors


def changed_fields(before: Mapping[str, Any], after: Mapping[str, Any]) -> Set[str]:
    """Names of fields whose value differs between two snapshots.

    A field missing from ``before`` counts as changed when ``after`` has a
    non-blank value, which makes every provided field "changed" on creation.
    """

    changed = set()
    for name, new_value in after.items():
        if name not in before:
            if not is_blank(new_value):
                changed.add(name)
        elif before[name] != new_value:
            changed.add(name)
    return changed


def derive_duration(
    day: DateInput,
    start_time: TimeInput,
    end_time: TimeInput,
    tz: Optional[BaseTzInfo] = None,
) -> Optional[int]:
    """Whole minutes from start to end, both anchored to ``day`` in ``tz``.

    Returns ``None`` while there is no end time. Assumes the record already
    passed ``validate``; overnight spans are not modelled.
    """

    if is_blank(end_time):
        return None
    parsed_day = parse_date(day)
    start = parse_time_of_day(start_time)
    finish = parse_time_of_day(end_time)
    if parsed_day is None or start is None or finish is None:
        raise ValueError("derive_duration needs a valid date, start_time and end_time")

    elapsed = combine(parsed_day, finish, tz) - combine(parsed_day, start, tz)
    return int(elapsed.total_seconds() // 60)


__all__ = [
    "DESCRIPTION_MAX_LENGTH",
    "EventValidationError",
    "FieldError",
    "changed_fields",
    "derive_duration",
    "format_time_of_day",
    "normalize_time",
    "parse_date",
    "parse_time_of_day",
    "validate",
]
