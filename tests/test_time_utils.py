"""Tests for time utilities."""

from datetime import date, datetime

import pytest

from daytracker.errors import FormatError
from daytracker.utils.time_utils import (
    format_clock,
    format_duration,
    minutes_between,
    normalize_wall_clock,
    parse_wall_clock,
    truncate_to_second,
    validate_block_times,
    wall_clock_to_instant,
)


def test_parse_wall_clock():
    """Test parsing HH:MM into minutes since midnight."""
    assert parse_wall_clock("00:00") == 0
    assert parse_wall_clock("09:30") == 570
    assert parse_wall_clock("23:59") == 1439
    assert parse_wall_clock("7:05") == 425
    assert parse_wall_clock(" 10:00 ") == 600


@pytest.mark.parametrize(
    "text",
    [
        "", "10", "10:00:00", "ab:cd", "24:00", "12:60", "-1:30", "10:-5", "10.30", "1 0:00",
        # Unicode digits
        "²:00", "10:٤٥",
    ],
)
def test_parse_wall_clock_rejects_malformed(text):
    """Test that malformed times raise FormatError."""
    with pytest.raises(FormatError):
        parse_wall_clock(text)


def test_format_error_is_value_error():
    """FormatError can be caught as a ValueError."""
    with pytest.raises(ValueError):
        parse_wall_clock("nope")


def test_wall_clock_to_instant():
    """Test conversion to an instant on the reference day."""
    reference = datetime(2026, 3, 15, 18, 45, 12)
    assert wall_clock_to_instant("09:00", reference) == datetime(2026, 3, 15, 9, 0)
    assert wall_clock_to_instant("23:59", date(2026, 3, 15)) == datetime(2026, 3, 15, 23, 59)


def test_instants_order_by_time_not_text():
    """Instants compare by time of day, not lexically."""
    day = date(2026, 3, 15)
    assert wall_clock_to_instant("09:00", day) < wall_clock_to_instant("10:00", day)
    # "9:00" > "10:00" as strings
    assert wall_clock_to_instant("9:00", day) < wall_clock_to_instant("10:00", day)


def test_validate_block_times():
    """Test that end must be strictly later than start."""
    assert validate_block_times("09:00", "10:30") == (540, 630)

    with pytest.raises(FormatError):
        validate_block_times("10:00", "10:00")

    # No midnight-crossing blocks
    with pytest.raises(FormatError):
        validate_block_times("23:00", "01:00")


def test_normalize_wall_clock():
    assert normalize_wall_clock("9:5") == "09:05"
    assert normalize_wall_clock("14:30") == "14:30"


def test_format_duration():
    """Test duration formatting."""
    assert format_duration(0) == "0m"
    assert format_duration(45) == "45m"
    assert format_duration(60) == "1h0m"
    assert format_duration(135) == "2h15m"


def test_format_clock():
    assert format_clock(datetime(2026, 3, 15, 7, 5, 59)) == "07:05"


def test_truncate_to_second():
    assert truncate_to_second(datetime(2026, 3, 15, 10, 0, 0, 999999)) == datetime(2026, 3, 15, 10, 0)


def test_minutes_between():
    start = datetime(2026, 3, 15, 9, 0)
    assert minutes_between(start, datetime(2026, 3, 15, 10, 14, 59)) == 74
    assert minutes_between(start, datetime(2026, 3, 15, 8, 59)) == -1
