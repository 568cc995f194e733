"""
Date and Period Utilities

Local-calendar date arithmetic for schedule generation and overdue checks.
Everything here works on datetime.date; time of day never matters.
"""

from datetime import date, datetime, timedelta
from typing import Optional
import calendar

from .config import get_config
from .models import PaymentFrequency


def today() -> date:
    """
    Current date in the ledger's local calendar

    Uses the configured IANA time zone when set, otherwise the host's local
    date. Overdue checks compare against this value.
    """
    tz_name = get_config().timezone
    if tz_name:
        from zoneinfo import ZoneInfo
        return datetime.now(ZoneInfo(tz_name)).date()
    return date.today()


def add_months(start_date: date, months: int) -> date:
    """Add months to a date, clamping the day to the target month length"""
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1
    day = min(start_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def add_days(start_date: date, days: int) -> date:
    return start_date + timedelta(days=days)


def add_period(start_date: date, count: int, frequency: PaymentFrequency) -> date:
    """
    Advance a date by a number of payment periods

    Args:
        start_date: Date to advance from
        count: Number of periods
        frequency: Payment frequency

    Returns:
        The advanced date. Biweekly periods are 15 calendar days.
    """
    if frequency == PaymentFrequency.MONTHLY:
        return add_months(start_date, count)
    elif frequency == PaymentFrequency.BIWEEKLY:
        return add_days(start_date, count * 15)
    elif frequency == PaymentFrequency.WEEKLY:
        return add_days(start_date, count * 7)
    elif frequency == PaymentFrequency.DAILY:
        return add_days(start_date, count)
    else:
        raise ValueError(f"Unsupported payment frequency: {frequency}")


def days_between(start: date, end: date) -> int:
    """Whole days from start to end (negative if end is earlier)"""
    return (end - start).days


def to_local_date(value) -> Optional[date]:
    """
    Normalize a stored date value

    Accepts date, datetime, "YYYY-MM-DD" and ISO datetime strings. Returns
    None for empty or unparseable input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            tz_name = get_config().timezone
            if tz_name:
                from zoneinfo import ZoneInfo
                return value.astimezone(ZoneInfo(tz_name)).date()
            return value.astimezone().date()
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if len(text) > 10:
            try:
                return to_local_date(datetime.fromisoformat(text.replace("Z", "+00:00")))
            except ValueError:
                pass
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            return None
    return None
