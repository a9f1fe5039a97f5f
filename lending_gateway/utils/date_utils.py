"""Date manipulation utilities"""

from datetime import date, datetime, time, timezone

from dateutil.relativedelta import relativedelta


def utcnow() -> datetime:
    """Naive UTC timestamp (the storage convention for all datetimes)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def add_months(from_date: date, months: int) -> date:
    """Calendar month arithmetic; Jan 31 + 1 month -> Feb 28/29"""
    return from_date + relativedelta(months=months)


def start_of_day(day: date) -> datetime:
    """Midnight (naive UTC) at the start of the given date"""
    return datetime.combine(day, time.min)


def months_between(start: datetime, end: datetime) -> int:
    """Whole calendar months elapsed from start to end (0 if end precedes start)"""
    if end <= start:
        return 0
    delta = relativedelta(end, start)
    return delta.years * 12 + delta.months
