"""Time zone helpers for anchoring wall-clock event times to a calendar date."""

from __future__ import annotations

import os
from datetime import date, datetime, time
from typing import Optional, Union

import pytz
from pytz.tzinfo import BaseTzInfo

DEFAULT_TIME_ZONE = os.getenv("DEFAULT_TIME_ZONE", "UTC")

TimeZoneLike = Union[str, BaseTzInfo, None]


def resolve_time_zone(value: TimeZoneLike = None) -> BaseTzInfo:
    """Return a pytz zone for a name, an existing zone, or the configured default.

    Raises ``pytz.UnknownTimeZoneError`` for names pytz does not know.
    """

    if value is None or (isinstance(value, str) and not value.strip()):
        return pytz.timezone(DEFAULT_TIME_ZONE)
    if isinstance(value, str):
        return pytz.timezone(value.strip())
    return value


def combine(day: date, time_of_day: time, tz: Optional[BaseTzInfo] = None) -> datetime:
    """Build an aware datetime for ``day`` at ``time_of_day`` in ``tz``."""

    zone = tz or resolve_time_zone()
    # pytz zones must go through localize() to pick the right UTC offset
    return zone.localize(datetime.combine(day, time_of_day))


def now_utc() -> datetime:
    return datetime.now(pytz.utc)
