"""Settlement period labels.

A period is either a month (``YYYY-MM``) or a whole year (``YYYY``).
Transactions and liabilities are always tagged with the monthly label of
their date; a yearly period covers every monthly label of its year.
"""

import re
from dataclasses import dataclass
from datetime import datetime

from django.utils import timezone

from common.enums import PeriodType
from common.exceptions import ValidationError
from common.timezone_utils import month_bounds, year_bounds

PERIOD_RE = re.compile(r'^(?P<year>\d{4})(?:-(?P<month>\d{2}))?$')


def monthly_label(moment: datetime) -> str:
    moment = timezone.localtime(moment) if timezone.is_aware(moment) else moment
    return f"{moment.year:04d}-{moment.month:02d}"


@dataclass(frozen=True)
class SettlementPeriod:
    year: int
    month: int | None = None

    @classmethod
    def parse(cls, label: str) -> 'SettlementPeriod':
        match = PERIOD_RE.match(label or '')
        if not match:
            raise ValidationError(
                "Settlement period must look like YYYY-MM or YYYY",
                details={'period': label},
            )
        year = int(match.group('year'))
        month = match.group('month')
        if month is None:
            return cls(year)
        month = int(month)
        if not 1 <= month <= 12:
            raise ValidationError("Invalid month in settlement period", details={'period': label})
        return cls(year, month)

    @classmethod
    def current(cls, now: datetime | None = None) -> 'SettlementPeriod':
        now = timezone.localtime(now or timezone.now())
        return cls(now.year, now.month)

    @property
    def period_type(self) -> str:
        return PeriodType.YEARLY if self.month is None else PeriodType.MONTHLY

    @property
    def label(self) -> str:
        if self.month is None:
            return f"{self.year:04d}"
        return f"{self.year:04d}-{self.month:02d}"

    def bounds(self) -> tuple[datetime, datetime]:
        if self.month is None:
            return year_bounds(self.year)
        return month_bounds(self.year, self.month)

    def next(self) -> 'SettlementPeriod':
        if self.month is None:
            return SettlementPeriod(self.year + 1)
        if self.month == 12:
            return SettlementPeriod(self.year + 1, 1)
        return SettlementPeriod(self.year, self.month + 1)

    def monthly_labels(self) -> list[str]:
        """Monthly tags covered by this period."""
        if self.month is None:
            return [f"{self.year:04d}-{m:02d}" for m in range(1, 13)]
        return [self.label]

    def carry_forward_label(self) -> str:
        """Monthly tag that carried-forward liabilities move to."""
        if self.month is None:
            return f"{self.year + 1:04d}-01"
        return self.next().label

    def __str__(self):
        return self.label
