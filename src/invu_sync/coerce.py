"""Value coercion helpers for loosely-typed upstream records.

Upstream payloads mix numbers, numeric strings, ISO timestamps and epoch
values under the same field names. These helpers return None when a value
cannot be coerced, so callers can move on to the next candidate field.
"""

from __future__ import annotations

import math
import numbers
import re
import warnings
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

import pandas as pd

from invu_sync.dates import DATE_RE

DIGITS_RE = re.compile(r"^-?\d+$")

# Values above this are epoch milliseconds, below it epoch seconds.
EPOCH_MS_THRESHOLD = 10_000_000_000


def to_number(value: Any) -> float | None:
    """Coerce a value to a finite float, or None.

    Booleans count as 0/1 and a blank string counts as 0, matching the
    numeric conversion the upstream consumers historically applied.

    Examples:
        >>> to_number("12.50")
        12.5
        >>> to_number("")
        0.0
        >>> to_number("n/a") is None
        True
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, numbers.Real):
        try:
            num = float(value)
        except OverflowError:
            return None
        return num if math.isfinite(num) else None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        if "_" in text:
            return None
        try:
            num = float(text)
        except ValueError:
            return None
        return num if math.isfinite(num) else None
    return None


def epoch_to_utc_date(value: float) -> str | None:
    """Convert epoch seconds or milliseconds (by magnitude) to a UTC YYYY-MM-DD."""
    ms = value if value > EPOCH_MS_THRESHOLD else value * 1000
    try:
        return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).date().isoformat()
    except (OverflowError, OSError, ValueError):
        return None


def normalize_date(value: Any) -> str | None:
    """Normalize a date-like value to YYYY-MM-DD, or None.

    - Strings already shaped YYYY-MM-DD pass through unchanged.
    - Digit-only strings and finite numbers are epoch seconds or milliseconds.
    - Other strings go through a generic timestamp parse and are converted to UTC.

    Examples:
        >>> normalize_date("2024-04-01")
        '2024-04-01'
        >>> normalize_date(1712016000)
        '2024-04-02'
        >>> normalize_date("2024-04-01T10:30:00Z")
        '2024-04-01'
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if DATE_RE.match(text):
            return text
        if DIGITS_RE.match(text):
            return epoch_to_utc_date(float(text))
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            try:
                parsed = pd.to_datetime(text, utc=True, errors="coerce")
            except (ValueError, TypeError, OverflowError):
                return None
        if parsed is None or pd.isna(parsed):
            return None
        return parsed.strftime("%Y-%m-%d")
    if isinstance(value, numbers.Real):
        try:
            num = float(value)
        except OverflowError:
            return None
        if not math.isfinite(num):
            return None
        return epoch_to_utc_date(num)
    return None


def first_present(record: Mapping[str, Any], names: Iterable[str]) -> Any:
    """Return the first value under names that is not None (missing keys skipped)."""
    for name in names:
        value = record.get(name)
        if value is not None:
            return value
    return None
