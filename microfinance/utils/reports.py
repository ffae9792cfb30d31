"""
Report Builders
===============

Each builder takes querysets that the caller has already narrowed with
PermissionChecker, and returns plain dicts/lists for templates and exports.
"""

from django.db.models import Sum, Count, Q, Max, Prefetch
from django.utils import timezone
from dateutil.relativedelta import relativedelta
from decimal import Decimal

from microfinance.models import (
    Loan, LoanInstallment, REGISTRATION_FEE, ACTIVATION_FEE,
)
from microfinance.utils.money import MoneyCalculator
from microfinance.utils.helpers import get_setting, months_between, risk_level


ZERO = Decimal('0.00')
RISK_LEVELS = ['low', 'medium', 'high', 'critical']


def with_schedule(loans):
    """Prefetch instalments so the per-loan overdue properties don't query"""
    return loans.select_related('member', 'branch', 'loan_officer', 'group').prefetch_related(
        Prefetch('installments', queryset=LoanInstallment.objects.order_by('installment_number'))
    )


# =============================================================================
# RECEIVE PAYMENTS
# =============================================================================

def build_receive_payments_rows(loans, as_of=None):
    """Collectable loans with instalment amount, next due date and arrears"""
    as_of = as_of or timezone.localdate()
    rows = []
    totals = {'balance': ZERO, 'overdue_amount': ZERO, 'installment_amount': ZERO, 'overdue_count': 0}

    for loan in with_schedule(loans.collectable()).order_by('member__full_name'):
        overdue_amount = loan.get_overdue_amount(as_of)
        row = {
            'loan': loan,
            'installment_amount': loan.installment_amount,
            'next_payment_date': loan.next_payment_date,
            'overdue_amount': overdue_amount,
            'is_overdue': overdue_amount > 0,
            'balance': loan.current_balance,
        }
        rows.append(row)
        totals['balance'] += loan.current_balance
        totals['overdue_amount'] += overdue_amount
        totals['installment_amount'] += row['installment_amount']
        if row['is_overdue']:
            totals['overdue_count'] += 1

    totals['count'] = len(rows)
    return {'rows': rows, 'totals': totals}


# =============================================================================
# OVERDUE
# =============================================================================

def build_overdue_report(loans, as_of=None, risk=None):
    """
    Loans with unpaid instalments past due, graded by days overdue:
    <=7 low, <=30 medium, <=90 high, otherwise critical.
    """
    as_of = as_of or timezone.localdate()
    candidates = loans.exclude(status__in=['repaid', 'bad_debt']).filter(
        approval_status='approved',
        current_balance__gt=0,
    ).with_unpaid_installments_due_before(as_of)

    rows = []
    for loan in with_schedule(candidates):
        days = loan.get_days_overdue(as_of)
        if days <= 0:
            continue
        level = risk_level(days)
        if risk and level != risk:
            continue
        rows.append({
            'loan': loan,
            'member': loan.member,
            'days_overdue': days,
            'overdue_amount': loan.get_overdue_amount(as_of),
            'overdue_installments': len(loan.overdue_installments(as_of)),
            'balance': loan.current_balance,
            'risk_level': level,
        })

    rows.sort(key=lambda row: row['days_overdue'], reverse=True)

    by_risk = {level: {'count': 0, 'amount': ZERO} for level in RISK_LEVELS}
    for row in rows:
        by_risk[row['risk_level']]['count'] += 1
        by_risk[row['risk_level']]['amount'] += row['overdue_amount']

    return {
        'rows': rows,
        'as_of': as_of,
        'by_risk': by_risk,
        'totals': {
            'count': len(rows),
            'overdue_amount': sum((r['overdue_amount'] for r in rows), ZERO),
            'balance': sum((r['balance'] for r in rows), ZERO),
        },
    }


# =============================================================================
# BAD DEBT
# =============================================================================

def build_bad_debt_report(loans, as_of=None):
    """
    Candidates: balance > 0, status active/pending/defaulted, and no payment
    for longer than the bad-debt window (counted from issue when unpaid).
    Loans already written off are listed separately.
    """
    as_of = as_of or timezone.localdate()
    threshold = get_setting('BAD_DEBT_DAYS')

    candidates = loans.filter(
        current_balance__gt=0,
        status__in=['active', 'pending', 'defaulted'],
    ).exclude(approval_status='rejected').with_last_payment_date().select_related('member', 'branch', 'loan_officer')

    rows = []
    for loan in candidates:
        reference_date = loan.last_payment_at or loan.issue_date
        days_since = (as_of - reference_date).days
        if days_since <= threshold:
            continue
        rows.append({
            'loan': loan,
            'member': loan.member,
            'last_payment_date': loan.last_payment_at,
            'days_since_payment': days_since,
            'balance': loan.current_balance,
        })
    rows.sort(key=lambda row: row['days_since_payment'], reverse=True)

    written_off = loans.filter(status='bad_debt').select_related('member', 'branch').order_by('-written_off_date')
    written_off_total = written_off.aggregate(total=Sum('current_balance'))['total'] or ZERO

    return {
        'rows': rows,
        'written_off': written_off,
        'threshold_days': threshold,
        'totals': {
            'count': len(rows),
            'balance': sum((r['balance'] for r in rows), ZERO),
            'written_off_count': written_off.count(),
            'written_off_balance': written_off_total,
        },
    }


# =============================================================================
# DORMANT MEMBERS
# =============================================================================

def build_dormant_report(members, as_of=None):
    """Active members with no activity for the dormancy window"""
    as_of = as_of or timezone.localdate()
    months = get_setting('DORMANCY_MONTHS')
    cutoff = as_of - relativedelta(months=months)

    rows = []
    for member in members.inactive_since(cutoff).select_related('branch', 'group', 'assigned_officer'):
        last_activity = member.last_activity_date or member.created_at.date()
        rows.append({
            'member': member,
            'last_activity_date': last_activity,
            'months_inactive': months_between(last_activity, as_of),
            'days_inactive': (as_of - last_activity).days,
        })
    rows.sort(key=lambda row: row['days_inactive'], reverse=True)

    return {
        'rows': rows,
        'cutoff': cutoff,
        'dormancy_months': months,
        'totals': {'count': len(rows)},
    }


# =============================================================================
# INCOME
# =============================================================================

def build_income_report(loans, payments, members, start_date, end_date):
    """Processing fees, interest collected, registration and activation fees"""
    processing = loans.filter(approval_status='approved').issued_between(start_date, end_date).aggregate(
        total=Sum('processing_fee'), count=Count('id')
    )
    interest = payments.between(start_date, end_date).aggregate(
        total=Sum('interest_portion'), count=Count('id')
    )
    registrations = members.filter(
        registration_fee_paid=True,
        registration_fee_paid_at__gte=start_date,
        registration_fee_paid_at__lte=end_date,
    ).count()
    activations = members.filter(
        activation_fee_paid=True,
        activation_fee_paid_at__gte=start_date,
        activation_fee_paid_at__lte=end_date,
    ).count()

    sources = [
        {
            'source': 'processing_fees',
            'label': 'Processing Fees',
            'count': processing['count'] or 0,
            'amount': processing['total'] or ZERO,
        },
        {
            'source': 'interest',
            'label': 'Interest Payments',
            'count': interest['count'] or 0,
            'amount': interest['total'] or ZERO,
        },
        {
            'source': 'registration_fees',
            'label': 'Registration Fees',
            'count': registrations,
            'amount': REGISTRATION_FEE * registrations,
        },
        {
            'source': 'activation_fees',
            'label': 'Activation Fees',
            'count': activations,
            'amount': ACTIVATION_FEE * activations,
        },
    ]
    total = sum((s['amount'] for s in sources), ZERO)
    for source in sources:
        source['share'] = MoneyCalculator.percentage_of(source['amount'], total)

    return {
        'sources': sources,
        'total': total,
        'start_date': start_date,
        'end_date': end_date,
    }


# =============================================================================
# REALIZABLE ASSETS
# =============================================================================

def build_realizable_report(assets, loans):
    assets = assets.select_related('member', 'loan', 'branch')
    totals = assets.aggregate(
        original_value=Sum('original_value'),
        market_value=Sum('current_market_value'),
        realizable_value=Sum('realizable_value'),
    )
    by_status = {
        row['status']: {'count': row['count'], 'realizable_value': row['value'] or ZERO}
        for row in assets.values('status').annotate(count=Count('id'), value=Sum('realizable_value'))
    }
    outstanding = loans.filter(assets__in=assets).distinct().aggregate(
        total=Sum('current_balance')
    )['total'] or ZERO
    realizable_total = totals['realizable_value'] or ZERO

    return {
        'assets': assets,
        'by_status': by_status,
        'totals': {
            'count': assets.count(),
            'original_value': totals['original_value'] or ZERO,
            'market_value': totals['market_value'] or ZERO,
            'realizable_value': realizable_total,
            'secured_outstanding': outstanding,
            'coverage_pct': MoneyCalculator.percentage_of(realizable_total, outstanding),
        },
    }


# =============================================================================
# LOAN OFFICERS
# =============================================================================

def build_loan_officer_report(officers, loans):
    """Portfolio per officer; loans must already be visibility-filtered"""
    rows = []
    per_officer = {
        row['loan_officer']: row
        for row in loans.values('loan_officer').annotate(
            total_disbursed=Sum('principal_amount', filter=Q(approval_status='approved')),
            total_repayable=Sum('total_amount', filter=Q(approval_status='approved')),
            total_collected=Sum('total_paid'),
            outstanding=Sum('current_balance', filter=~Q(status='repaid') & Q(approval_status='approved')),
            active_count=Count('id', filter=Q(status='active')),
            pending_count=Count('id', filter=Q(approval_status='pending')),
            repaid_count=Count('id', filter=Q(status='repaid')),
            defaulted_count=Count('id', filter=Q(status__in=['defaulted', 'bad_debt'])),
            last_issue=Max('issue_date'),
        )
    }

    for officer in officers:
        data = per_officer.get(officer.pk, {})
        collected = data.get('total_collected') or ZERO
        repayable = data.get('total_repayable') or ZERO
        rows.append({
            'officer': officer,
            'total_disbursed': data.get('total_disbursed') or ZERO,
            'outstanding': data.get('outstanding') or ZERO,
            'total_collected': collected,
            'active_count': data.get('active_count', 0),
            'pending_count': data.get('pending_count', 0),
            'repaid_count': data.get('repaid_count', 0),
            'defaulted_count': data.get('defaulted_count', 0),
            'collection_rate': MoneyCalculator.percentage_of(collected, repayable),
            'last_issue': data.get('last_issue'),
        })

    rows.sort(key=lambda row: row['total_disbursed'], reverse=True)
    return {'rows': rows}


# =============================================================================
# MASTER ROLL
# =============================================================================

def build_master_roll(members):
    """Every member with loan count, outstanding balance and last payment"""
    members = list(members.select_related('branch', 'group').annotate(
        loan_count=Count('loans', filter=Q(loans__deleted_at__isnull=True), distinct=True),
        outstanding=Sum('loans__current_balance', filter=Q(loans__deleted_at__isnull=True)),
    ).order_by('full_name'))

    last_payments = dict(
        Loan.objects.filter(member__in=[member.pk for member in members])
        .values('member')
        .annotate(last=Max('payments__payment_date', filter=Q(payments__deleted_at__isnull=True)))
        .values_list('member', 'last')
    )
    return [
        {
            'member': member,
            'loan_count': member.loan_count,
            'outstanding': member.outstanding or ZERO,
            'last_payment_date': last_payments.get(member.pk),
        }
        for member in members
    ]


# =============================================================================
# DASHBOARD
# =============================================================================

def build_dashboard_stats(members, loans):
    """
    Headline figures for the dashboard.

    collection_rate = repaid / disbursed and default_rate = defaulted / loans,
    both as percentages, 0 when there is nothing to divide by.
    """
    summary = loans.get_portfolio_summary()
    approved = loans.filter(approval_status='approved').get_portfolio_summary()

    return {
        'total_customers': members.count(),
        'total_loans': summary['total_loans'],
        'total_disbursed': approved['total_disbursed'],
        'total_repaid': summary['total_repaid'],
        'outstanding_balance': approved['outstanding_balance'],
        'active_loans': summary['active_loans'],
        'pending_loans': loans.filter(approval_status='pending').count(),
        'defaulted_loans': summary['defaulted_loans'],
        'repaid_loans': summary['repaid_loans'],
        'bad_debt_loans': summary['bad_debt_loans'],
        'collection_rate': MoneyCalculator.percentage_of(summary['total_repaid'], approved['total_disbursed']),
        'default_rate': MoneyCalculator.percentage_of(summary['defaulted_loans'], summary['total_loans']),
        'recent_loans': loans.select_related('member', 'branch').order_by('-created_at')[:5],
    }
