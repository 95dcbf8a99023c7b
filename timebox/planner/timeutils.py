"""Time-of-day helpers for the day schedule."""
from datetime import time

MINUTES_PER_DAY = 24 * 60


def truncate_to_minute(value: time) -> time:
    """Drop seconds and microseconds; blocks are scheduled per minute."""
    return value.replace(second=0, microsecond=0, tzinfo=None)


def to_minutes(value: time) -> int:
    """
    Minutes since midnight.

    Example: 09:30 -> 570
    """
    return value.hour * 60 + value.minute


def from_minutes(minutes: int) -> time:
    """
    Inverse of to_minutes, clamped to the same day.

    Example: 570 -> 09:30, 1500 -> 23:59
    """
    minutes = max(0, min(minutes, MINUTES_PER_DAY - 1))
    return time(minutes // 60, minutes % 60)


def add_minutes(value: time, minutes: int) -> time:
    return from_minutes(to_minutes(value) + minutes)


def duration_minutes(start: time, end: time) -> int:
    return to_minutes(end) - to_minutes(start)


def format_duration(start: time, end: time) -> str:
    """
    Human readable duration.

    Example: 09:00-10:30 -> "1h 30m"
    """
    minutes = duration_minutes(start, end)
    hours, mins = divmod(minutes, 60)
    if hours == 0:
        return f"{mins}m"
    if mins == 0:
        return f"{hours}h"
    return f"{hours}h {mins}m"
