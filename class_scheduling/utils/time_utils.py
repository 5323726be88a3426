# class_scheduling/utils/time_utils.py
"""
Time-of-day helpers for "HH:MM" session times.

Session times are stored zero-padded so that lexical order in SQL matches
chronological order.
"""
import re
from datetime import date

TIME_OF_DAY_PATTERN = re.compile(r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$")


def normalize_time(value: str) -> str:
    """
    Validate a 24-hour "H:MM"/"HH:MM" string and return it zero-padded.

    Raises:
        ValueError: If the value is not a valid time of day
    """
    if not isinstance(value, str) or not TIME_OF_DAY_PATTERN.match(value.strip()):
        raise ValueError(f"Invalid time '{value}'. Expected HH:MM (24-hour)")
    hours, minutes = value.strip().split(":")
    return f"{int(hours):02d}:{minutes}"


def to_minutes(value: str) -> int:
    """Minutes since midnight for an "HH:MM" string."""
    hours, minutes = normalize_time(value).split(":")
    return int(hours) * 60 + int(minutes)


def duration_minutes(start_time: str, end_time: str) -> int:
    """Length of the same-day window [start_time, end_time) in minutes."""
    return to_minutes(end_time) - to_minutes(start_time)


def sunday_based_weekday(day: date) -> int:
    """Weekday index with 0=Sunday .. 6=Saturday."""
    return (day.weekday() + 1) % 7
