# eventlog/schemas.py
# ------------------------------------------------------------
# Pydantic v2 schemas for event records
# ------------------------------------------------------------
import datetime as dt
import re
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


_CONTROL_CHAR_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")


def _sanitize_multiline_text(value: str | None) -> str | None:
    if value is None:
        return value
    if not isinstance(value, str):
        raise TypeError("Expected string input")
    # blank and over-long descriptions are reported by event_rules.validate
    return _CONTROL_CHAR_RE.sub("", value).strip()


def _clean_time(value: Union[dt.time, str, None]) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, dt.time):
        return value.isoformat(timespec="seconds")
    if not isinstance(value, str):
        raise TypeError("Expected a time string")
    return _CONTROL_CHAR_RE.sub("", value).strip()


# ============================================================
# Events
# ============================================================

class EventCreate(BaseModel):
    # date/time strings are checked by event_rules.validate so every field
    # error is reported together
    date: Union[dt.date, str]
    start_time: str
    end_time: Optional[str] = None
    description: str
    ends_previous: bool = False

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def _clean_times(cls, value):
        return _clean_time(value)

    @field_validator("description", mode="before")
    @classmethod
    def _clean_description(cls, value: str) -> str:
        return _sanitize_multiline_text(value)


class EventUpdate(BaseModel):
    """Partial update; only fields present in the payload are applied."""

    date: Optional[Union[dt.date, str]] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    description: Optional[str] = None

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def _clean_times(cls, value):
        return _clean_time(value)

    @field_validator("description", mode="before")
    @classmethod
    def _clean_description(cls, value: Optional[str]) -> Optional[str]:
        return _sanitize_multiline_text(value)

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


class EventRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    date: dt.date
    start_time: str
    end_time: Optional[str] = None
    duration: Optional[int] = None
    description: str
    html_description: str
    text_description: str
    hash_tag_names: List[str] = Field(default_factory=list, serialization_alias="hash_tags")
    status: str
    deleted_at: Optional[dt.datetime] = None
    created_at: dt.datetime
    updated_at: dt.datetime


class FieldErrorRead(BaseModel):
    field: str
    message: str


class DurationEntry(BaseModel):
    text_description: str
    duration: int
