"""
Money Arithmetic
================

All amounts are Decimal at 2 places, rounded half-up. Loans are priced
flat: interest is charged once on the principal for the whole term, and
the processing fee is taken at issue outside the repayable total.
"""

from decimal import Decimal, ROUND_HALF_UP, ROUND_DOWN


ZERO = Decimal('0.00')


class MoneyCalculator:
    """
    Usage:
        MoneyCalculator.round_money('718.745')                # Decimal('718.75')
        MoneyCalculator.calculate_percentage(5000, '0.06')    # Decimal('300.00')
        MoneyCalculator.split_evenly(750, 8)                  # 7 x 93.75, last 93.75
    """

    TWO_PLACES = Decimal('0.01')
    FOUR_PLACES = Decimal('0.0001')

    @staticmethod
    def to_decimal(value):
        # str() first so floats keep their printed value
        return value if isinstance(value, Decimal) else Decimal(str(value))

    @staticmethod
    def round_money(amount, places=None, rounding=ROUND_HALF_UP):
        if amount is None:
            return ZERO
        return MoneyCalculator.to_decimal(amount).quantize(places or MoneyCalculator.TWO_PLACES, rounding=rounding)

    @staticmethod
    def calculate_percentage(amount, rate, places=None):
        """amount * rate, rounded; 0.00 when either is empty or zero"""
        if not amount or not rate:
            return ZERO
        product = MoneyCalculator.to_decimal(amount) * MoneyCalculator.to_decimal(rate)
        return MoneyCalculator.round_money(product, places)

    @staticmethod
    def safe_divide(numerator, denominator, default=ZERO, places=None):
        if not denominator or MoneyCalculator.to_decimal(denominator) == 0:
            return default
        quotient = MoneyCalculator.to_decimal(numerator or 0) / MoneyCalculator.to_decimal(denominator)
        return MoneyCalculator.round_money(quotient, places)

    @staticmethod
    def percentage_of(part, whole):
        """Share of `whole` that `part` is, in percent (collection rate, coverage, budget use)"""
        ratio = MoneyCalculator.safe_divide(part, whole, places=MoneyCalculator.FOUR_PLACES)
        return MoneyCalculator.round_money(ratio * 100)

    @staticmethod
    def sum_amounts(*amounts):
        return MoneyCalculator.round_money(
            sum((MoneyCalculator.to_decimal(a) for a in amounts if a), ZERO)
        )

    @staticmethod
    def split_evenly(amount, parts):
        """
        `parts` equal 2dp shares of amount, rounded down. The last share
        takes the remainder, so the shares add back to amount and none
        is negative.

            >>> MoneyCalculator.split_evenly(Decimal('100'), 3)
            [Decimal('33.33'), Decimal('33.33'), Decimal('33.34')]
        """
        parts = int(parts)
        if parts <= 0:
            raise ValueError("parts must be a positive integer")

        amount = MoneyCalculator.round_money(amount)
        share = MoneyCalculator.round_money(amount / parts, rounding=ROUND_DOWN)
        return [share] * (parts - 1) + [amount - share * (parts - 1)]

    @staticmethod
    def format_currency(amount, currency='KES'):
        return f"{currency} {MoneyCalculator.round_money(amount):,.2f}"


class InterestCalculator:

    @staticmethod
    def calculate_flat_interest(principal, rate, processing_fee_rate=ZERO):
        """
        Price a loan.

        Args:
            principal: amount lent
            rate: interest for the whole term (0.15 for a small loan)
            processing_fee_rate: fee on the principal, collected at issue

        Returns:
            dict: principal, interest_rate, interest_amount, processing_fee
                  and total_amount (principal + interest; the fee is not
                  repayable through the schedule)
        """
        principal = MoneyCalculator.round_money(principal)
        interest_amount = MoneyCalculator.calculate_percentage(principal, rate)

        return {
            'principal': principal,
            'interest_rate': MoneyCalculator.to_decimal(rate),
            'interest_amount': interest_amount,
            'processing_fee': MoneyCalculator.calculate_percentage(principal, processing_fee_rate),
            'total_amount': principal + interest_amount,
        }
