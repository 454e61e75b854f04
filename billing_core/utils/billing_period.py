"""Billing period parsing and cycle arithmetic.

Products carry their cycle length as whole minutes (``period_minutes``).
The catalog accepts ISO 8601 durations (``P30D``, ``PT3M``) as well as the
legacy shorthand the storefront used (``30d``, ``12h``, ``3m``).
"""

import re
from datetime import datetime, timedelta, timezone

MINUTES_PER_HOUR = 60
MINUTES_PER_DAY = 24 * MINUTES_PER_HOUR
MINUTES_PER_WEEK = 7 * MINUTES_PER_DAY
MINUTES_PER_MONTH = 30 * MINUTES_PER_DAY  # Standard approximation for billing
MINUTES_PER_YEAR = 365 * MINUTES_PER_DAY  # Standard approximation for billing

# Cursor parked here for one-time products so the catch-up query never selects them
FAR_FUTURE = datetime(2099, 12, 31, tzinfo=timezone.utc)

_DATE_UNITS = {
    "D": MINUTES_PER_DAY,
    "W": MINUTES_PER_WEEK,
    "M": MINUTES_PER_MONTH,
    "Y": MINUTES_PER_YEAR,
}
_TIME_UNITS = {
    "H": MINUTES_PER_HOUR,
    "M": 1,
}
_SHORTHAND_UNITS = {
    "m": 1,
    "h": MINUTES_PER_HOUR,
    "d": MINUTES_PER_DAY,
    "w": MINUTES_PER_WEEK,
}


def parse_billing_period(period: str) -> int:
    """Parse a billing period string to whole minutes.

    Supports:
    - P[n]D, P[n]W, P[n]M, P[n]Y - ISO 8601 date durations
    - PT[n]H, PT[n]M - ISO 8601 time durations (short test cycles)
    - [n]m, [n]h, [n]d, [n]w - storefront shorthand (``3m`` is the test cycle)

    Months are approximated as 30 days and years as 365 days.

    Args:
        period: Period string (e.g., "P1M", "PT3M", "30d")

    Returns:
        Duration in minutes (always positive)

    Raises:
        ValueError: If the period string is invalid or unsupported

    Examples:
        >>> parse_billing_period("P30D")
        43200

        >>> parse_billing_period("PT3M")
        3

        >>> parse_billing_period("7d")
        10080
    """
    if not period or not isinstance(period, str):
        raise ValueError("Period must be a non-empty string")

    period = period.strip()

    shorthand = re.match(r"^(\d+)([mhdw])$", period)
    if shorthand:
        number = int(shorthand.group(1))
        if number <= 0:
            raise ValueError(f"Period number must be positive, got: {number}")
        return number * _SHORTHAND_UNITS[shorthand.group(2)]

    upper = period.upper()
    if not upper.startswith("P"):
        raise ValueError(f"Invalid period format: '{period}'. Must start with 'P'")

    time_match = re.match(r"^PT(\d+)?([HM])$", upper)
    if time_match:
        number_str, unit = time_match.groups()
        number = int(number_str) if number_str else 1
        if number <= 0:
            raise ValueError(f"Period number must be positive, got: {number}")
        return number * _TIME_UNITS[unit]

    date_match = re.match(r"^P(\d+)?([DWMY])$", upper)
    if not date_match:
        raise ValueError(
            f"Unsupported period format: '{period}'. "
            "Supported formats: P[n]D, P[n]W, P[n]M, P[n]Y, PT[n]H, PT[n]M, [n]m/h/d/w"
        )

    number_str, unit = date_match.groups()
    number = int(number_str) if number_str else 1
    if number <= 0:
        raise ValueError(f"Period number must be positive, got: {number}")
    return number * _DATE_UNITS[unit]


def format_billing_period(period_minutes: int) -> str:
    """Format minutes as the shortest readable shorthand ("30d", "12h", "3m").

    Args:
        period_minutes: Cycle length in minutes (0 means one-time)

    Returns:
        Shorthand string, or "one_time" for 0
    """
    if period_minutes <= 0:
        return "one_time"
    if period_minutes % MINUTES_PER_DAY == 0:
        return f"{period_minutes // MINUTES_PER_DAY}d"
    if period_minutes % MINUTES_PER_HOUR == 0:
        return f"{period_minutes // MINUTES_PER_HOUR}h"
    return f"{period_minutes}m"


def add_minutes(moment: datetime, minutes: int) -> datetime:
    """Return ``moment`` shifted by ``minutes``."""
    return moment + timedelta(minutes=minutes)


def cycle_window(cursor: datetime, period_minutes: int) -> tuple[datetime, datetime]:
    """Half-open billing cycle ``[cursor, cursor + period)``.

    Args:
        cursor: Current next_invoice_at of the service
        period_minutes: Cycle length in minutes

    Returns:
        (cycle_start, cycle_end); cycle_end is also the service's next cursor

    Raises:
        ValueError: If period_minutes is not positive
    """
    if period_minutes <= 0:
        raise ValueError(f"Cycle length must be positive, got: {period_minutes}")
    return cursor, add_minutes(cursor, period_minutes)


def dedup_window(cursor: datetime, window_minutes: int) -> tuple[datetime, datetime]:
    """Closed time window ``[cursor - window, cursor + window]`` used for duplicate checks."""
    delta = timedelta(minutes=window_minutes)
    return cursor - delta, cursor + delta


def as_utc(moment: datetime) -> datetime:
    """Normalize a datetime to timezone-aware UTC (naive values are taken as UTC)."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)
