"""Human time references for filtering and listing history.

Used by the CLI for ``--since`` filters ("2 days ago", "yesterday",
"2026-03-01") and for the age column of snapshot and branch tables.
"""

import re
from datetime import datetime, timedelta, timezone

from dateutil import parser as dateparser
from dateutil.relativedelta import relativedelta

from .constants import (
    SECONDS_PER_DAY,
    SECONDS_PER_HOUR,
    SECONDS_PER_MINUTE,
    SECONDS_PER_MONTH,
    SECONDS_PER_WEEK,
    SECONDS_PER_YEAR,
)

_AGO = re.compile(r"^(\d+)\s*(second|minute|hour|day|week|month|year)s?\s+ago$")

_CALENDAR_UNITS = {"month": "months", "year": "years"}

# Largest unit first
_AGE_UNITS = (
    (SECONDS_PER_YEAR, "year"),
    (SECONDS_PER_MONTH, "month"),
    (SECONDS_PER_WEEK, "week"),
    (SECONDS_PER_DAY, "day"),
    (SECONDS_PER_HOUR, "hour"),
    (SECONDS_PER_MINUTE, "minute"),
)


def _start_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def parse_time_reference(ref: str, now: datetime | None = None) -> datetime:
    """Resolve a time reference to a timezone-aware UTC datetime.

    Accepts "today", "yesterday", "N <unit>s ago" and anything dateutil
    can parse. Naive results are taken as UTC.

    Raises:
        ValueError: If the reference cannot be parsed
    """
    now = now or datetime.now(timezone.utc)
    text = ref.strip().lower()

    if text == "now":
        return now
    if text == "today":
        return _start_of_day(now)
    if text == "yesterday":
        return _start_of_day(now - timedelta(days=1))

    match = _AGO.match(text)
    if match:
        amount, unit = int(match.group(1)), match.group(2)
        if unit in _CALENDAR_UNITS:
            return now - relativedelta(**{_CALENDAR_UNITS[unit]: amount})
        return now - timedelta(**{f"{unit}s": amount})

    try:
        parsed = dateparser.parse(text)
    except (ValueError, OverflowError) as e:
        raise ValueError(f"Cannot parse time reference: {ref}") from e
    if parsed is None:
        raise ValueError(f"Cannot parse time reference: {ref}")
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def format_relative_time(dt: datetime, now: datetime | None = None) -> str:
    """Render dt as "just now", "3 hours ago", "2 weeks ago"..."""
    now = now or datetime.now(timezone.utc)
    seconds = int((now - dt).total_seconds())

    if seconds < 0:
        return "in the future"
    if seconds < SECONDS_PER_MINUTE:
        return "just now"

    for size, name in _AGE_UNITS:
        if seconds >= size:
            count = seconds // size
            return f"{count} {name}{'s' if count != 1 else ''} ago"
    return "just now"
