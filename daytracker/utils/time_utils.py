"""Wall-clock parsing and formatting helpers."""

from datetime import date, datetime, time, timedelta

from daytracker.errors import FormatError


def parse_wall_clock(text: str) -> int:
    """Parse a "HH:MM" string into minutes since midnight.

    Raises:
        FormatError: if the text is not two ':'-separated integers, or the
            hour is outside 0-23, or the minute is outside 0-59.
    """
    if not isinstance(text, str):
        raise FormatError(f"Expected HH:MM text, got {text!r}")

    parts = text.strip().split(":")
    if len(parts) != 2:
        raise FormatError(f"Invalid time {text!r}: expected HH:MM")

    hour_str, minute_str = parts
    # isdigit alone accepts non-ASCII digits that int() rejects
    if not all(s.isascii() and s.isdigit() for s in (hour_str, minute_str)):
        raise FormatError(f"Invalid time {text!r}: expected HH:MM")

    hour = int(hour_str)
    minute = int(minute_str)

    if not 0 <= hour <= 23:
        raise FormatError(f"Invalid hour in {text!r}: must be 0-23")
    if not 0 <= minute <= 59:
        raise FormatError(f"Invalid minute in {text!r}: must be 0-59")

    return hour * 60 + minute


def wall_clock_to_instant(text: str, reference: date | datetime) -> datetime:
    """Convert a wall-clock string to an instant on reference's calendar day."""
    if isinstance(reference, datetime):
        reference = reference.date()

    minutes = parse_wall_clock(text)
    return datetime.combine(reference, time(minutes // 60, minutes % 60))


def validate_block_times(start_time: str, end_time: str) -> tuple[int, int]:
    """Check a block's start/end pair.

    Blocks never cross midnight, so an end at or before the start is rejected
    rather than read as spanning into the next day.

    Returns:
        Tuple of (start_minutes, end_minutes)
    """
    start = parse_wall_clock(start_time)
    end = parse_wall_clock(end_time)

    if end <= start:
        raise FormatError(
            f"End time {end_time} must be later than start time {start_time}"
        )

    return start, end


def normalize_wall_clock(text: str) -> str:
    """Return the canonical zero-padded "HH:MM" form of a wall-clock string."""
    minutes = parse_wall_clock(text)
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def format_duration(minutes: int) -> str:
    """Format minutes as a compact duration.

    Examples:
        45 -> "45m"
        60 -> "1h0m"
        135 -> "2h15m"
    """
    minutes = int(minutes)
    if minutes < 60:
        return f"{minutes}m"
    hours, rest = divmod(minutes, 60)
    return f"{hours}h{rest}m"


def format_clock(dt: datetime) -> str:
    """Format a datetime as a "HH:MM" clock face."""
    return f"{dt.hour:02d}:{dt.minute:02d}"


def truncate_to_second(dt: datetime) -> datetime:
    """Drop sub-second jitter from a tick timestamp."""
    return dt.replace(microsecond=0)


def minutes_between(start: datetime, end: datetime) -> int:
    """Whole minutes from start to end (negative if end is earlier)."""
    return int((end - start) // timedelta(minutes=1))


def local_now() -> datetime:
    """Current local wall-clock time, naive."""
    return datetime.now()
