from datetime import date

import pytest

from apps.compliance.services import (
    InvalidPeriodError,
    period_bounds,
    period_label,
    period_range,
)


class TestPeriodRange:
    """Tests for period_range"""

    def test_month(self):
        assert period_range('monthly', 2026, 2) == (date(2026, 2, 1), date(2026, 2, 28))

    def test_leap_february(self):
        assert period_range('monthly', 2028, 2) == (date(2028, 2, 1), date(2028, 2, 29))

    def test_quarter(self):
        assert period_range('quarterly', 2026, 3) == (date(2026, 7, 1), date(2026, 9, 30))

    def test_year(self):
        assert period_range('annual', 2026) == (date(2026, 1, 1), date(2026, 12, 31))

    def test_bad_month(self):
        with pytest.raises(InvalidPeriodError):
            period_range('monthly', 2026, 13)

    def test_bad_quarter(self):
        with pytest.raises(InvalidPeriodError):
            period_range('quarterly', 2026, 5)

    def test_unknown_type(self):
        with pytest.raises(InvalidPeriodError):
            period_range('weekly', 2026, 1)


class TestPeriodLabel:
    """Tests for period_label"""

    def test_labels(self):
        assert period_label('monthly', 2026, 3) == 'March 2026'
        assert period_label('quarterly', 2026, 1) == 'Q1 2026'
        assert period_label('annual', 2026) == '2026'


class TestPeriodBounds:
    """Tests for period_bounds"""

    def test_end_is_exclusive_next_midnight(self):
        start, end = period_bounds(date(2026, 3, 1), date(2026, 3, 31))

        assert start.date() == date(2026, 3, 1)
        assert end.date() == date(2026, 4, 1)
        assert start.tzinfo is not None

    def test_end_before_start(self):
        with pytest.raises(InvalidPeriodError):
            period_bounds(date(2026, 3, 31), date(2026, 3, 1))
