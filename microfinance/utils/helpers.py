from django.conf import settings
from django.utils import timezone
from datetime import timedelta
from dateutil.relativedelta import relativedelta

from microfinance.utils.money import MoneyCalculator


DEFAULT_SETTINGS = {
    'CURRENCY': 'KES',
    'DORMANCY_MONTHS': 3,
    'BAD_DEBT_DAYS': 365,
    'PAGE_SIZE': 25,
    'CHANGE_FEED_POLL_SECONDS': 15,
}


def get_setting(name):
    """Read a value from settings.MICROFINANCE, falling back to the defaults"""
    return getattr(settings, 'MICROFINANCE', {}).get(name, DEFAULT_SETTINGS[name])


# =============================================================================
# DATE HELPERS
# =============================================================================

def add_periods(start_date, periods, installment_type='weekly'):
    """Move start_date forward by `periods` instalment periods"""
    if installment_type == 'monthly':
        return start_date + relativedelta(months=periods)
    if installment_type == 'daily':
        return start_date + timedelta(days=periods)
    return start_date + timedelta(weeks=periods)


def months_between(earlier, later):
    """Whole calendar months from earlier to later (0 when later <= earlier)"""
    if not earlier or later <= earlier:
        return 0
    delta = relativedelta(later, earlier)
    return delta.years * 12 + delta.months


def risk_level(days_overdue):
    if days_overdue <= 7:
        return 'low'
    if days_overdue <= 30:
        return 'medium'
    if days_overdue <= 90:
        return 'high'
    return 'critical'


def bulk_payment_reference(member_no, when=None):
    """BULK-<unix ms>-<member_no>"""
    when = when or timezone.now()
    return f"BULK-{int(when.timestamp() * 1000)}-{member_no}"


# =============================================================================
# HELPER FUNCTION: BUILD INSTALMENT SCHEDULE
# =============================================================================

def build_installment_schedule(principal, interest, count, issue_date, installment_type='weekly'):
    """
    Split a flat-rate loan into `count` instalments.

    Instalment i is due `i` periods after issue_date. Principal and interest
    are split evenly at 2dp and the last instalment carries the remainder.

    Returns:
        list: dicts with installment_number, due_date, principal_amount,
              interest_amount, total_amount
    """
    principal_shares = MoneyCalculator.split_evenly(principal, count)
    interest_shares = MoneyCalculator.split_evenly(interest, count)

    schedule = []
    for index in range(count):
        number = index + 1
        schedule.append({
            'installment_number': number,
            'due_date': add_periods(issue_date, number, installment_type),
            'principal_amount': principal_shares[index],
            'interest_amount': interest_shares[index],
            'total_amount': principal_shares[index] + interest_shares[index],
        })

    return schedule
