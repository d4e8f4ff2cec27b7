"""Weekday and wall-clock time helpers plus the half-open interval overlap rule."""

from datetime import time
from typing import Union

from schoolerp.core.enums import Weekday

MINUTES_PER_DAY = 24 * 60

TimeLike = Union[str, time]


def parse_time(value: TimeLike) -> int:
    """Parse H:MM, HH:MM, HH:MM:SS or a time object into minute of day (0..1439)."""
    if isinstance(value, time):
        return value.hour * 60 + value.minute
    if not isinstance(value, str):
        raise ValueError("time must be a 24-hour string (e.g. 09:00) or time")
    parts = value.strip().split(":")
    if len(parts) not in (2, 3) or not all(p.isdigit() for p in parts):
        raise ValueError(f"Invalid time {value!r}; expected 24-hour HH:MM")
    hour, minute = int(parts[0]), int(parts[1])
    if len(parts[1]) != 2 or not 0 <= hour <= 23 or not 0 <= minute <= 59:
        raise ValueError(f"Invalid time {value!r}; expected 24-hour HH:MM")
    if len(parts) == 3 and (len(parts[2]) != 2 or int(parts[2]) > 59):
        raise ValueError(f"Invalid time {value!r}; expected 24-hour HH:MM")
    return hour * 60 + minute


def format_minutes(minutes: int) -> str:
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValueError(f"minute of day out of range: {minutes}")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def normalize_time(value: TimeLike) -> str:
    """Zero-padded HH:MM, so stored strings also sort correctly."""
    return format_minutes(parse_time(value))


def normalize_day(value: Union[str, Weekday]) -> str:
    if isinstance(value, Weekday):
        return value.value
    day = str(value).strip().lower()
    try:
        return Weekday(day).value
    except ValueError:
        raise ValueError(f"Invalid day {value!r}; expected one of {', '.join(d.value for d in Weekday)}")


def overlaps(start_a: TimeLike, end_a: TimeLike, start_b: TimeLike, end_b: TimeLike) -> bool:
    """
    True when [start_a, end_a) and [start_b, end_b) intersect.

    Half-open: back-to-back ranges (end_a == start_b) do not overlap,
    identical ranges do.
    """
    s1, e1, s2, e2 = parse_time(start_a), parse_time(end_a), parse_time(start_b), parse_time(end_b)
    return s1 < e2 and s2 < e1
