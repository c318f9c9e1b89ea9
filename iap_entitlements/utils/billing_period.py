"""Billing period utilities.

Parses ISO 8601 duration strings used for product terms and applies them
to purchase timestamps.
"""

import calendar
import re
from datetime import datetime, timedelta, timezone

# Milliseconds in common time units
MILLIS_PER_SECOND = 1000
MILLIS_PER_MINUTE = 60 * MILLIS_PER_SECOND
MILLIS_PER_HOUR = 60 * MILLIS_PER_MINUTE
MILLIS_PER_DAY = 24 * MILLIS_PER_HOUR
MILLIS_PER_WEEK = 7 * MILLIS_PER_DAY

_PERIOD_PATTERN = re.compile(r"^(\d+)?([DWMY])$")


def parse_billing_period(period: str) -> tuple[int, str]:
    """Parse an ISO 8601 duration string into (count, unit).

    Supports P[n]D, P[n]W, P[n]M and P[n]Y, where n defaults to 1.

    Args:
        period: ISO 8601 duration string (e.g., "P1M", "P1Y", "P7D")

    Returns:
        Tuple of positive count and unit letter

    Raises:
        ValueError: If the period string is invalid or unsupported

    Examples:
        >>> parse_billing_period("P1Y")
        (1, 'Y')

        >>> parse_billing_period("p2w")
        (2, 'W')
    """
    if not period or not isinstance(period, str):
        raise ValueError("Period must be a non-empty string")

    period = period.strip().upper()

    if not period.startswith("P"):
        raise ValueError(f"Invalid period format: '{period}'. Must start with 'P'")

    duration_str = period[1:]
    if not duration_str:
        raise ValueError(f"Invalid period format: '{period}'. No duration specified")

    match = _PERIOD_PATTERN.match(duration_str)
    if not match:
        raise ValueError(
            f"Unsupported period format: '{period}'. "
            "Supported formats: P[n]D, P[n]W, P[n]M, P[n]Y"
        )

    number_str, unit = match.groups()
    number = int(number_str) if number_str else 1

    if number <= 0:
        raise ValueError(f"Period number must be positive, got: {number}")

    return number, unit


def validate_billing_period(period: str) -> bool:
    """Validate that a string is a supported billing period.

    Examples:
        >>> validate_billing_period("P1Y")
        True

        >>> validate_billing_period("invalid")
        False
    """
    try:
        parse_billing_period(period)
        return True
    except (ValueError, TypeError):
        return False


def _add_months(moment: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the target month's length."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def add_billing_period(start_millis: int, period: str) -> int:
    """Return ``start_millis`` advanced by one billing period.

    Years and months are calendar-aware in UTC (a purchase on Feb 29 expires
    on Feb 28 of the following year); days and weeks are fixed lengths.

    Args:
        start_millis: Start time (Unix millis)
        period: ISO 8601 duration string

    Returns:
        End time (Unix millis)

    Raises:
        ValueError: If the period string is invalid

    Examples:
        >>> add_billing_period(0, "P1D")
        86400000

        >>> add_billing_period(0, "P1Y")
        31536000000
    """
    number, unit = parse_billing_period(period)

    if unit == "D":
        return start_millis + number * MILLIS_PER_DAY
    if unit == "W":
        return start_millis + number * MILLIS_PER_WEEK

    start = datetime.fromtimestamp(start_millis / 1000, tz=timezone.utc)
    months = number * 12 if unit == "Y" else number
    end = _add_months(start, months)
    return start_millis + (end - start) // timedelta(milliseconds=1)
