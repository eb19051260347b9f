from datetime import date, datetime

from dateutil.relativedelta import relativedelta

from common.enums import Frequency
from common.exceptions import ValidationError

MIN_INTERVAL = 1
MAX_INTERVAL = 365

_STEPS = {
    Frequency.DAILY: lambda n: relativedelta(days=n),
    Frequency.WEEKLY: lambda n: relativedelta(weeks=n),
    Frequency.MONTHLY: lambda n: relativedelta(months=n),
    Frequency.YEARLY: lambda n: relativedelta(years=n),
}


def validate_schedule(frequency, interval):
    if frequency not in Frequency.values:
        raise ValidationError(
            f"Unsupported frequency '{frequency}'",
            details={'frequency': frequency, 'allowed': list(Frequency.values)},
        )
    try:
        interval = int(interval)
    except (TypeError, ValueError):
        raise ValidationError("Interval must be a whole number", details={'interval': interval})
    if not MIN_INTERVAL <= interval <= MAX_INTERVAL:
        raise ValidationError(
            f"Interval must be between {MIN_INTERVAL} and {MAX_INTERVAL}",
            details={'interval': interval},
        )
    return interval


def advance(moment: date | datetime, frequency, interval=1):
    """Return ``moment`` moved forward by ``interval`` units of ``frequency``.

    Month and year steps clamp to the last day of shorter months.
    """
    interval = validate_schedule(frequency, interval)
    return moment + _STEPS[Frequency(frequency)](interval)
