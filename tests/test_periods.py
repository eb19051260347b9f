# tests/test_periods.py
from datetime import date, datetime
from zoneinfo import ZoneInfo

import pytest

from common.enums import Frequency, PeriodType
from common.exceptions import ValidationError
from common.timezone_utils import days_left_in_month, month_bounds, year_bounds
from finance.periods import SettlementPeriod, monthly_label
from finance.schedules import advance, validate_schedule

UTC = ZoneInfo("UTC")


class TestSettlementPeriod:

    def test_parse_monthly_and_yearly(self):
        monthly = SettlementPeriod.parse('2024-02')
        assert (monthly.year, monthly.month) == (2024, 2)
        assert monthly.period_type == PeriodType.MONTHLY

        yearly = SettlementPeriod.parse('2024')
        assert yearly.month is None
        assert yearly.period_type == PeriodType.YEARLY

    @pytest.mark.parametrize('label', ['', '24-01', '2024-1', '2024-00', '2024-13', '2024/01'])
    def test_bad_labels(self, label):
        with pytest.raises(ValidationError):
            SettlementPeriod.parse(label)

    def test_bounds_cover_the_whole_month(self):
        start, end = SettlementPeriod.parse('2024-02').bounds()
        assert start == datetime(2024, 2, 1, tzinfo=UTC)
        assert end == datetime(2024, 2, 29, 23, 59, 59, 999999, tzinfo=UTC)

    def test_next_and_carry_forward(self):
        assert SettlementPeriod.parse('2024-12').next().label == '2025-01'
        assert SettlementPeriod.parse('2024-12').carry_forward_label() == '2025-01'
        assert SettlementPeriod.parse('2024').carry_forward_label() == '2025-01'
        assert SettlementPeriod.parse('2024').next().label == '2025'

    def test_yearly_period_spans_all_months(self):
        labels = SettlementPeriod.parse('2023').monthly_labels()
        assert len(labels) == 12
        assert labels[0] == '2023-01'
        assert labels[-1] == '2023-12'

    def test_monthly_label(self):
        assert monthly_label(datetime(2024, 7, 31, 23, 0, tzinfo=UTC)) == '2024-07'


class TestSchedules:

    def test_month_end_clamps(self):
        assert advance(date(2024, 1, 31), Frequency.MONTHLY) == date(2024, 2, 29)
        assert advance(date(2024, 2, 29), Frequency.YEARLY) == date(2025, 2, 28)

    def test_interval_steps(self):
        assert advance(date(2024, 1, 1), Frequency.WEEKLY, 2) == date(2024, 1, 15)
        assert advance(date(2024, 1, 1), Frequency.DAILY, 10) == date(2024, 1, 11)

    @pytest.mark.parametrize('frequency,interval', [('hourly', 1), (Frequency.DAILY, 0), (Frequency.DAILY, 366)])
    def test_invalid_schedules(self, frequency, interval):
        with pytest.raises(ValidationError):
            validate_schedule(frequency, interval)


def test_timezone_helpers():
    start, end = year_bounds(2024)
    assert start == datetime(2024, 1, 1, tzinfo=UTC)
    assert end == datetime(2024, 12, 31, 23, 59, 59, 999999, tzinfo=UTC)

    assert month_bounds(2023, 2)[1].day == 28
    assert days_left_in_month(datetime(2024, 1, 29, tzinfo=UTC)) == 2
