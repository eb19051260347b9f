# common/timezone_utils.py
import calendar
from datetime import datetime
from zoneinfo import ZoneInfo

from django.utils import timezone


def month_bounds(year: int, month: int) -> tuple[datetime, datetime]:
    """First instant of the month and last representable instant of its final day."""
    last_day = calendar.monthrange(year, month)[1]
    start = timezone.make_aware(datetime(year, month, 1, 0, 0, 0), ZoneInfo("UTC"))
    end = timezone.make_aware(
        datetime(year, month, last_day, 23, 59, 59, 999999), ZoneInfo("UTC")
    )
    return start, end


def year_bounds(year: int) -> tuple[datetime, datetime]:
    start = timezone.make_aware(datetime(year, 1, 1, 0, 0, 0), ZoneInfo("UTC"))
    end = timezone.make_aware(datetime(year, 12, 31, 23, 59, 59, 999999), ZoneInfo("UTC"))
    return start, end


def days_left_in_month(now: datetime) -> int:
    last_day = calendar.monthrange(now.year, now.month)[1]
    return last_day - now.day
