"""
Datetime utilities for consistent timezone handling across the application.

All business logic ("today", booking windows, queue days) uses Bangladesh
time (Asia/Dhaka, UTC+6, no daylight saving). Dates travel as ISO
YYYY-MM-DD strings and times as 24-hour HH:MM or HH:MM:SS strings.
"""

import logging
from datetime import datetime, timezone, timedelta, date, time
from typing import Iterator

logger = logging.getLogger(__name__)

# Bangladesh timezone constant (UTC+6)
DHAKA_TZ = timezone(timedelta(hours=6))

# Python's weekday(): 0=Monday ... 6=Sunday
WEEKDAY_NAMES = ["MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY", "SATURDAY", "SUNDAY"]


def dhaka_now() -> datetime:
    """
    Get current Dhaka datetime (UTC+6).

    Returns:
        Current datetime with Dhaka timezone
    """
    return datetime.now(DHAKA_TZ)


def dhaka_today() -> date:
    """Get the current calendar date in Dhaka."""
    return dhaka_now().date()


def day_name(d: date) -> str:
    """Return the upper-case weekday name for a date, e.g. 'SATURDAY'."""
    return WEEKDAY_NAMES[d.weekday()]


def iter_dates(start: date, end: date) -> Iterator[date]:
    """Yield every date from start to end, both inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def parse_date_string(date_str: str) -> date:
    """
    Parse a date string in YYYY-MM-DD or YYYY/MM/DD format.

    Accepts both formats:
    - YYYY-MM-DD (e.g., "2026-01-01", "2026-1-1")
    - YYYY/MM/DD (e.g., "2026/01/01", "2026/1/1")

    Automatically normalizes single-digit months/days.

    Args:
        date_str: Date string in YYYY-MM-DD or YYYY/MM/DD format

    Returns:
        Date object

    Raises:
        ValueError: If date string cannot be parsed
    """
    if not date_str or not date_str.strip():
        raise ValueError("Date string cannot be empty")

    date_str = date_str.strip()

    if '/' in date_str:
        parts = date_str.split('/')
    elif '-' in date_str:
        parts = date_str.split('-')
    else:
        raise ValueError(f"Invalid date format (expected YYYY-MM-DD or YYYY/MM/DD): {date_str}")

    if len(parts) != 3:
        raise ValueError(f"Invalid date format (expected YYYY-MM-DD or YYYY/MM/DD): {date_str}")

    year = parts[0].zfill(4)
    month = parts[1].zfill(2)
    day = parts[2].zfill(2)

    normalized = f"{year}-{month}-{day}"

    try:
        return datetime.strptime(normalized, '%Y-%m-%d').date()
    except ValueError as e:
        raise ValueError(f"Invalid date format (expected YYYY-MM-DD or YYYY/MM/DD): {date_str}") from e


def parse_time_string(time_str: str) -> time:
    """
    Parse a 24-hour time string in HH:MM or HH:MM:SS format.

    Raises:
        ValueError: If the time string cannot be parsed
    """
    if not time_str or not time_str.strip():
        raise ValueError("Time string cannot be empty")

    value = time_str.strip()
    for fmt in ('%H:%M', '%H:%M:%S'):
        try:
            return datetime.strptime(value, fmt).time()
        except ValueError:
            continue
    raise ValueError(f"Invalid time format (expected HH:MM or HH:MM:SS): {time_str}")


def format_time(t: time) -> str:
    """Format a time as HH:MM."""
    return t.strftime('%H:%M')
