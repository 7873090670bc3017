"""Calendar date and epoch-range utilities.

The POS provider is queried with inclusive [fini, ffin] Unix-second ranges.
Business days are defined in a fixed UTC-5 timezone (America/Panama, no
daylight saving), so one calendar day always maps to local midnight through
23:59:59, i.e. ffin = fini + 86399.

This module provides:

- Date parsing: YYYY-MM-DD strings plus the literals today/hoy and yesterday/ayer
- Epoch translation: day and range bounds, and epoch back to a business date
- Range tiling: iterating days or fixed-size chunks without gaps or overlaps

Examples:
    >>> day_bounds("2024-04-01")
    (1711947600, 1712033999)
    >>> epoch_to_business_date(1711947600)
    '2024-04-01'
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import date, datetime, timedelta, timezone

from invu_sync.exceptions import InvalidDateError, InvalidRangeError

BUSINESS_TZ = timezone(timedelta(hours=-5), "America/Panama")
SECONDS_PER_DAY = 86400

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

TODAY_LITERALS = {"today", "hoy"}
YESTERDAY_LITERALS = {"yesterday", "ayer"}


def today_business(now: datetime | None = None) -> date:
    """Return today's date in the business timezone."""
    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    return current.astimezone(BUSINESS_TZ).date()


def parse_date(s: str) -> date:
    """Parse a strict YYYY-MM-DD string into a real calendar date.

    The components are round-tripped through date(), so impossible days
    such as 2024-02-30 are rejected rather than rolled over.

    Raises:
        InvalidDateError: If the string is malformed or not a real date.

    Examples:
        >>> parse_date("2024-02-29")
        datetime.date(2024, 2, 29)
    """
    value = (s or "").strip() if isinstance(s, str) else ""
    if not DATE_RE.match(value):
        raise InvalidDateError(f"Invalid date '{s}'. Use YYYY-MM-DD or today/yesterday.")
    year, month, day = (int(part) for part in value.split("-"))
    try:
        return date(year, month, day)
    except ValueError as e:
        raise InvalidDateError(f"Invalid date '{s}': {e}") from e


def resolve_date(value: str | None, default: date | None = None, *, now: datetime | None = None) -> date:
    """Resolve a request date parameter.

    Args:
        value: YYYY-MM-DD, a today/yesterday literal, or None/blank.
        default: Returned when value is blank. Defaults to today.
        now: Clock override for literals (tests).

    Returns:
        The resolved calendar date.

    Raises:
        InvalidDateError: If value is neither a valid date nor a known literal.
    """
    today = today_business(now)
    if value is None or not value.strip():
        return default if default is not None else today
    lowered = value.strip().lower()
    if lowered in TODAY_LITERALS:
        return today
    if lowered in YESTERDAY_LITERALS:
        return today - timedelta(days=1)
    return parse_date(value)


def day_start_epoch(day: date) -> int:
    """Unix seconds of local midnight for a business day."""
    return int(datetime(day.year, day.month, day.day, tzinfo=BUSINESS_TZ).timestamp())


def day_bounds(day: date | str) -> tuple[int, int]:
    """Return the inclusive (fini, ffin) range covering one business day."""
    d = parse_date(day) if isinstance(day, str) else day
    fini = day_start_epoch(d)
    return fini, fini + SECONDS_PER_DAY - 1


def range_bounds(desde: date, hasta: date) -> tuple[int, int]:
    """Return the inclusive (fini, ffin) range from the start of desde to the end of hasta.

    Raises:
        InvalidRangeError: If desde is after hasta.
    """
    if desde > hasta:
        raise InvalidRangeError(f"'desde' ({desde}) must be on or before 'hasta' ({hasta}).")
    return day_bounds(desde)[0], day_bounds(hasta)[1]


def epoch_to_business_date(epoch: int | float) -> str:
    """Convert Unix seconds to the YYYY-MM-DD business day containing it."""
    return datetime.fromtimestamp(epoch, tz=BUSINESS_TZ).date().isoformat()


def parse_epoch_pair(fini: str | None, ffin: str | None) -> tuple[int, int]:
    """Validate an explicit fini/ffin query pair.

    Both values must be present, positive integers (fractions are truncated)
    and ordered.

    Raises:
        InvalidRangeError: If either value is missing, not numeric, non-positive,
            or fini > ffin.
    """
    if not fini or not ffin:
        raise InvalidRangeError("Both fini and ffin are required.")
    try:
        start = int(float(fini))
        end = int(float(ffin))
    except ValueError as e:
        raise InvalidRangeError("fini/ffin must be integer epoch seconds.") from e
    if start <= 0 or end <= 0:
        raise InvalidRangeError("fini/ffin must be positive epoch seconds.")
    if start > end:
        raise InvalidRangeError("fini cannot be greater than ffin.")
    return start, end


def iter_days(start: date, end: date) -> Iterable[date]:
    """Yield each calendar day from start to end, inclusive."""
    cur = start
    while cur <= end:
        yield cur
        cur += timedelta(days=1)


def iter_chunks(start: date, end: date, max_days: int = 31) -> Iterable[tuple[date, date]]:
    """Yield date chunks covering a range in windows of at most max_days.

    Splits a date range into non-overlapping chunks, each containing at most
    max_days (inclusive). The last chunk may be smaller if needed. A
    max_days of 0 yields the whole range as a single chunk.

    Examples:
        >>> list(iter_chunks(date(2023, 1, 1), date(2023, 1, 5), max_days=2))
        [(datetime.date(2023, 1, 1), datetime.date(2023, 1, 2)), (datetime.date(2023, 1, 3), datetime.date(2023, 1, 4)), (datetime.date(2023, 1, 5), datetime.date(2023, 1, 5))]
    """
    if max_days <= 0:
        if start <= end:
            yield start, end
        return
    cur = start
    step = timedelta(days=max_days)
    while cur <= end:
        chunk_end = cur + step - timedelta(days=1)
        if chunk_end > end:
            chunk_end = end
        yield cur, chunk_end
        cur = chunk_end + timedelta(days=1)


def format_duration(seconds: float) -> str:
    """Format a duration in seconds as a human-readable string.

    Examples:
        >>> format_duration(90.5)
        '1m 30.5s'
        >>> format_duration(45.2)
        '45.2s'
    """
    mins, secs = divmod(seconds, 60.0)
    if mins >= 1:
        return f"{int(mins)}m {secs:04.1f}s"
    return f"{secs:.1f}s"
