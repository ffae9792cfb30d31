"""
Money, pricing and schedule helpers

Covers rounding, flat-rate pricing, even splitting with the remainder on
the last share, period arithmetic and the instalment schedule.
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal

from microfinance.utils.money import MoneyCalculator, InterestCalculator
from microfinance.utils.helpers import (
    add_periods, months_between, risk_level, bulk_payment_reference, build_installment_schedule,
)


class TestMoneyCalculator:
    """Rounding and arithmetic on Decimal amounts"""

    def test_round_money_half_up(self):
        assert MoneyCalculator.round_money('2.345') == Decimal('2.35')
        assert MoneyCalculator.round_money(123.456) == Decimal('123.46')
        assert MoneyCalculator.round_money(None) == Decimal('0.00')

    def test_calculate_percentage(self):
        assert MoneyCalculator.calculate_percentage(5000, '0.06') == Decimal('300.00')
        assert MoneyCalculator.calculate_percentage(5000, 0) == Decimal('0.00')

    def test_safe_divide_by_zero_returns_default(self):
        assert MoneyCalculator.safe_divide(10, 0) == Decimal('0.00')
        assert MoneyCalculator.safe_divide(10, 4) == Decimal('2.50')

    def test_percentage_of(self):
        assert MoneyCalculator.percentage_of(1, 3) == Decimal('33.33')
        assert MoneyCalculator.percentage_of(5, 0) == Decimal('0.00')

    def test_split_evenly_puts_remainder_on_last_share(self):
        shares = MoneyCalculator.split_evenly(Decimal('100'), 3)
        assert shares == [Decimal('33.33'), Decimal('33.33'), Decimal('33.34')]
        assert sum(shares) == Decimal('100.00')

    def test_split_evenly_tiny_amount_has_no_negative_share(self):
        shares = MoneyCalculator.split_evenly(Decimal('0.05'), 8)
        assert shares == [Decimal('0.00')] * 7 + [Decimal('0.05')]
        assert sum(shares) == Decimal('0.05')

    def test_split_evenly_rejects_zero_parts(self):
        with pytest.raises(ValueError):
            MoneyCalculator.split_evenly(Decimal('100'), 0)

    def test_format_currency(self):
        assert MoneyCalculator.format_currency(1234567.891) == 'KES 1,234,567.89'


class TestFlatInterest:
    """Flat-rate pricing: interest once on principal, fee outside the total"""

    def test_small_loan_pricing(self):
        pricing = InterestCalculator.calculate_flat_interest(Decimal('5000'), Decimal('0.15'), Decimal('0.06'))
        assert pricing['interest_amount'] == Decimal('750.00')
        assert pricing['processing_fee'] == Decimal('300.00')
        assert pricing['total_amount'] == Decimal('5750.00')

    def test_big_loan_pricing(self):
        pricing = InterestCalculator.calculate_flat_interest(Decimal('9000'), Decimal('0.20'), Decimal('0.06'))
        assert pricing['interest_amount'] == Decimal('1800.00')
        assert pricing['processing_fee'] == Decimal('540.00')
        assert pricing['total_amount'] == Decimal('10800.00')


class TestPeriods:

    def test_weekly_daily_monthly(self):
        start = date(2024, 1, 31)
        assert add_periods(start, 2, 'weekly') == start + timedelta(weeks=2)
        assert add_periods(start, 3, 'daily') == date(2024, 2, 3)
        # month end clamps to the shorter month
        assert add_periods(start, 1, 'monthly') == date(2024, 2, 29)

    def test_months_between(self):
        assert months_between(date(2024, 1, 15), date(2024, 4, 14)) == 2
        assert months_between(date(2024, 1, 15), date(2024, 4, 15)) == 3
        assert months_between(date(2024, 5, 1), date(2024, 4, 1)) == 0
        assert months_between(None, date(2024, 4, 1)) == 0

    @pytest.mark.parametrize('days, level', [
        (1, 'low'), (7, 'low'), (8, 'medium'), (30, 'medium'),
        (31, 'high'), (90, 'high'), (91, 'critical'),
    ])
    def test_risk_level_bands(self, days, level):
        assert risk_level(days) == level

    def test_bulk_payment_reference(self):
        reference = bulk_payment_reference('MBR-00007')
        prefix, millis, member_no = reference.split('-', 2)
        assert prefix == 'BULK'
        assert millis.isdigit()
        assert member_no == 'MBR-00007'


class TestInstallmentSchedule:
    """Equal instalments, i periods after issue"""

    def test_small_loan_schedule(self):
        issue = date(2024, 3, 4)
        rows = build_installment_schedule(Decimal('5000'), Decimal('750'), 8, issue, 'weekly')

        assert len(rows) == 8
        assert [r['installment_number'] for r in rows] == list(range(1, 9))
        for row in rows:
            assert row['principal_amount'] == Decimal('625.00')
            assert row['interest_amount'] == Decimal('93.75')
            assert row['total_amount'] == Decimal('718.75')
        assert rows[0]['due_date'] == date(2024, 3, 11)
        assert rows[-1]['due_date'] == date(2024, 4, 29)

    def test_schedule_sums_to_loan_total(self):
        rows = build_installment_schedule(Decimal('7000'), Decimal('1050'), 12, date(2024, 1, 1), 'monthly')
        assert sum(r['principal_amount'] for r in rows) == Decimal('7000.00')
        assert sum(r['interest_amount'] for r in rows) == Decimal('1050.00')
        assert rows[-1]['due_date'] == date(2025, 1, 1)
