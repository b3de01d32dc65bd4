from datetime import date, time

import pytest
import pytz

from eventlog.event_rules import (
    DESCRIPTION_MAX_LENGTH,
    changed_fields,
    derive_duration,
    normalize_time,
    parse_time_of_day,
    validate,
)


def _fields(**overrides):
    fields = {
        "date": "2024-05-01",
        "start_time": "09:00",
        "end_time": "09:30",
        "description": "Standup",
    }
    fields.update(overrides)
    return fields


def _error_fields(errors):
    return [error.field for error in errors]


def test_valid_event_has_no_errors():
    assert validate(_fields()) == []


def test_end_time_is_optional():
    assert validate(_fields(end_time=None)) == []
    assert validate(_fields(end_time="  ")) == []


def test_description_length_boundary():
    assert validate(_fields(description="x" * DESCRIPTION_MAX_LENGTH)) == []

    errors = validate(_fields(description="x" * (DESCRIPTION_MAX_LENGTH + 1)))
    assert _error_fields(errors) == ["description"]
    assert "too long" in errors[0].message


def test_blank_description_is_rejected():
    assert _error_fields(validate(_fields(description="   "))) == ["description"]


def test_end_time_before_start_time_is_rejected():
    errors = validate(_fields(start_time="10:00", end_time="09:59"))
    assert _error_fields(errors) == ["end_time"]
    assert errors[0].message == "must be on or after 10:00"


def test_end_time_equal_to_start_time_is_allowed():
    assert validate(_fields(start_time="10:00", end_time="10:00")) == []


@pytest.mark.parametrize(
    "overrides, field",
    [
        ({"date": None}, "date"),
        ({"date": "2024-02-30"}, "date"),
        ({"date": "yesterday"}, "date"),
        ({"start_time": ""}, "start_time"),
        ({"start_time": "25:00"}, "start_time"),
        ({"end_time": "noonish"}, "end_time"),
    ],
)
def test_malformed_fields_are_reported(overrides, field):
    assert _error_fields(validate(_fields(**overrides))) == [field]


def test_all_errors_are_collected():
    errors = validate({"date": "nope", "start_time": "later", "description": ""})
    assert _error_fields(errors) == ["date", "start_time", "description"]


def test_date_objects_are_accepted():
    assert validate(_fields(date=date(2024, 5, 1))) == []


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("9:05", time(9, 5)),
        ("09:30:15", time(9, 30, 15)),
        ("9:30 pm", time(21, 30)),
        ("9:30PM", time(21, 30)),
        ("12 am", time(0, 0)),
        (time(7, 45), time(7, 45)),
    ],
)
def test_parse_time_of_day_formats(raw, expected):
    assert parse_time_of_day(raw) == expected


def test_normalize_time_pads_and_drops_zero_seconds():
    assert normalize_time("9:05") == "09:05"
    assert normalize_time("9:05:00") == "09:05"
    assert normalize_time("9:05:30") == "09:05:30"
    assert normalize_time("") is None
    with pytest.raises(ValueError):
        normalize_time("quarter past")


def test_derive_duration_whole_minutes():
    assert derive_duration("2024-05-01", "09:00", "09:30") == 30
    assert derive_duration(date(2024, 5, 1), "09:00:00", "10:15:59") == 75


def test_derive_duration_without_end_time_is_none():
    assert derive_duration("2024-05-01", "09:00", None) is None
    assert derive_duration("2024-05-01", "09:00", "") is None


def test_derive_duration_uses_the_given_time_zone():
    # clocks jump from 02:00 to 03:00 in New York on this date
    new_york = pytz.timezone("America/New_York")
    assert derive_duration("2024-03-10", "01:00", "03:30", new_york) == 90
    assert derive_duration("2024-03-10", "01:00", "03:30", pytz.utc) == 150


def test_changed_fields_on_create_counts_non_blank_values():
    after = {"date": date(2024, 5, 1), "start_time": "09:00", "end_time": None, "description": "x"}
    assert changed_fields({}, after) == {"date", "start_time", "description"}


def test_changed_fields_on_update_compares_values():
    before = {"date": date(2024, 5, 1), "start_time": "09:00", "end_time": None, "description": "x"}
    after = dict(before, end_time="10:00")
    assert changed_fields(before, after) == {"end_time"}
    assert changed_fields(before, dict(before)) == set()
