"""
Custom QuerySets and Managers
==============================

Provides reusable query methods for common filtering operations.
Every manager here hides soft-deleted rows, like BaseModel.objects.
"""

from django.apps import apps
from django.db import models
from django.db.models import Q, Sum, Count, Max, OuterRef, Subquery, Value, DecimalField
from django.db.models.functions import TruncMonth, Coalesce
from django.utils import timezone
from decimal import Decimal


COLLECTABLE_LOAN_STATUSES = ['active', 'approved', 'disbursed', 'defaulted']
OUTSTANDING_LOAN_STATUSES = ['active', 'pending', 'approved', 'disbursed', 'defaulted']


class SoftDeleteQuerySetManager(models.Manager):
    """Base manager: binds a QuerySet class and hides soft-deleted rows"""

    queryset_class = models.QuerySet

    def get_queryset(self):
        return self.queryset_class(self.model, using=self._db).filter(deleted_at__isnull=True)


class BranchFilteredQuerySet(models.QuerySet):
    """QuerySet with branch filtering support"""

    def for_branch(self, branch):
        return self.filter(branch=branch)

    def for_branches(self, branches):
        return self.filter(branch__in=branches)


class ActiveInactiveQuerySet(models.QuerySet):
    """QuerySet with active/inactive filtering"""

    def active(self):
        return self.filter(is_active=True)

    def inactive(self):
        return self.filter(is_active=False)


# =============================================================================
# MEMBERS
# =============================================================================

class MemberQuerySet(BranchFilteredQuerySet):
    """Custom QuerySet for Member model"""

    def active(self):
        return self.filter(status='active')

    def dormant(self):
        return self.filter(status='dormant')

    def assigned_to(self, officer):
        return self.filter(assigned_officer=officer)

    def in_group(self, group):
        return self.filter(group=group)

    def search(self, term):
        """Match name, member number, ID number or phone"""
        if not term:
            return self
        return self.filter(
            Q(full_name__icontains=term) |
            Q(member_no__icontains=term) |
            Q(id_number__icontains=term) |
            Q(phone_number__icontains=term)
        )

    def inactive_since(self, cutoff_date):
        """Active members whose last activity is before cutoff_date"""
        return self.active().filter(
            Q(last_activity_date__lt=cutoff_date) |
            Q(last_activity_date__isnull=True, created_at__date__lt=cutoff_date)
        )

    def with_outstanding_balance(self):
        return self.filter(
            loans__deleted_at__isnull=True,
            loans__current_balance__gt=0,
        ).distinct()

    def get_statistics(self):
        return {
            'total': self.count(),
            'active': self.active().count(),
            'dormant': self.dormant().count(),
            'inactive': self.filter(status='inactive').count(),
            'with_balance': self.with_outstanding_balance().count(),
        }


class MemberManager(SoftDeleteQuerySetManager):
    queryset_class = MemberQuerySet

    def active(self):
        return self.get_queryset().active()

    def search(self, term):
        return self.get_queryset().search(term)

    def inactive_since(self, cutoff_date):
        return self.get_queryset().inactive_since(cutoff_date)


# =============================================================================
# LOANS
# =============================================================================

class LoanQuerySet(BranchFilteredQuerySet):
    """Custom QuerySet for Loan model"""

    def active(self):
        return self.filter(status='active')

    def pending_approval(self):
        return self.filter(approval_status='pending')

    def repaid(self):
        return self.filter(status='repaid')

    def defaulted(self):
        return self.filter(status='defaulted')

    def bad_debt(self):
        return self.filter(status='bad_debt')

    def collectable(self):
        """Loans that can still receive payments"""
        return self.filter(
            status__in=COLLECTABLE_LOAN_STATUSES,
            approval_status='approved',
            current_balance__gt=0,
        )

    def with_balance(self):
        return self.filter(current_balance__gt=0)

    def for_member(self, member):
        return self.filter(member=member)

    def for_officer(self, officer):
        return self.filter(loan_officer=officer)

    def issued_between(self, start_date, end_date):
        return self.filter(issue_date__gte=start_date, issue_date__lte=end_date)

    def with_unpaid_installments_due_before(self, day):
        return self.filter(
            installments__due_date__lt=day,
            installments__status__in=['pending', 'partial', 'overdue'],
        ).distinct()

    def with_last_payment_date(self):
        return self.annotate(
            last_payment_at=Max(
                'payments__payment_date',
                filter=Q(payments__deleted_at__isnull=True),
            )
        )

    def get_portfolio_summary(self):
        """Totals and status counts for the loans in this queryset"""
        aggregate_data = self.aggregate(
            total_loans=Count('id'),
            total_disbursed=Sum('principal_amount'),
            total_repayable=Sum('total_amount'),
            total_repaid=Sum('total_paid'),
            outstanding_balance=Sum('current_balance', filter=~Q(status='repaid')),
        )

        return {
            'total_loans': aggregate_data['total_loans'] or 0,
            'total_disbursed': aggregate_data['total_disbursed'] or Decimal('0.00'),
            'total_repayable': aggregate_data['total_repayable'] or Decimal('0.00'),
            'total_repaid': aggregate_data['total_repaid'] or Decimal('0.00'),
            'outstanding_balance': aggregate_data['outstanding_balance'] or Decimal('0.00'),
            'active_loans': self.active().count(),
            'pending_loans': self.filter(status='pending').count(),
            'defaulted_loans': self.defaulted().count(),
            'repaid_loans': self.repaid().count(),
            'bad_debt_loans': self.bad_debt().count(),
        }


class LoanManager(SoftDeleteQuerySetManager):
    queryset_class = LoanQuerySet

    def active(self):
        return self.get_queryset().active()

    def collectable(self):
        return self.get_queryset().collectable()

    def for_member(self, member):
        return self.get_queryset().for_member(member)


# =============================================================================
# PAYMENTS
# =============================================================================

class LoanPaymentQuerySet(models.QuerySet):

    def between(self, start_date, end_date):
        return self.filter(payment_date__gte=start_date, payment_date__lte=end_date)

    def bulk(self):
        return self.filter(payment_reference__startswith='BULK-')

    def totals(self):
        data = self.aggregate(
            amount=Sum('amount'),
            interest=Sum('interest_portion'),
            principal=Sum('principal_portion'),
            count=Count('id'),
        )
        return {
            'amount': data['amount'] or Decimal('0.00'),
            'interest': data['interest'] or Decimal('0.00'),
            'principal': data['principal'] or Decimal('0.00'),
            'count': data['count'] or 0,
        }


class LoanPaymentManager(SoftDeleteQuerySetManager):
    queryset_class = LoanPaymentQuerySet


# =============================================================================
# BRANCHES
# =============================================================================

class BranchQuerySet(ActiveInactiveQuerySet):

    def search(self, term):
        if not term:
            return self
        return self.filter(Q(name__icontains=term) | Q(code__icontains=term) | Q(location__icontains=term))

    def with_portfolio(self):
        """Annotate member_count, loan_count and outstanding (live rows only)"""
        # Summed in a subquery: joining members and loans together would repeat each balance
        balances = (
            apps.get_model('microfinance', 'Loan').objects
            .filter(branch=OuterRef('pk'))
            .order_by()
            .values('branch')
            .annotate(total=Sum('current_balance'))
            .values('total')
        )
        return self.annotate(
            member_count=Count('members', filter=Q(members__deleted_at__isnull=True), distinct=True),
            loan_count=Count('loans', filter=Q(loans__deleted_at__isnull=True), distinct=True),
            outstanding=Coalesce(
                Subquery(balances, output_field=DecimalField(max_digits=14, decimal_places=2)),
                Value(Decimal('0.00')),
                output_field=DecimalField(max_digits=14, decimal_places=2),
            ),
        )


class BranchManager(SoftDeleteQuerySetManager):
    queryset_class = BranchQuerySet

    def active(self):
        return self.get_queryset().active()


# =============================================================================
# GROUPS
# =============================================================================

class MemberGroupQuerySet(BranchFilteredQuerySet, ActiveInactiveQuerySet):

    def for_officer(self, officer):
        return self.filter(loan_officer=officer)

    def by_meeting_day(self, day):
        return self.filter(meeting_day=day)

    def search(self, term):
        if not term:
            return self
        return self.filter(Q(name__icontains=term) | Q(code__icontains=term) | Q(location__icontains=term))


class MemberGroupManager(SoftDeleteQuerySetManager):
    queryset_class = MemberGroupQuerySet

    def active(self):
        return self.get_queryset().active()


# =============================================================================
# EXPENSES
# =============================================================================

class ExpenseQuerySet(BranchFilteredQuerySet):
    """Custom QuerySet for Expense model"""

    def active(self):
        return self.filter(status='active')

    def inactive(self):
        return self.filter(status='inactive')

    def between(self, start_date, end_date):
        return self.filter(expense_date__gte=start_date, expense_date__lte=end_date)

    def in_month(self, year, month):
        return self.filter(expense_date__year=year, expense_date__month=month)

    def total_amount(self):
        return self.aggregate(total=Sum('amount'))['total'] or Decimal('0.00')

    def category_breakdown(self):
        """Amount, count and share of the total per category"""
        grand_total = self.total_amount()
        rows = (
            self.values('category__id', 'category__name')
            .annotate(amount=Sum('amount'), count=Count('id'))
            .order_by('-amount')
        )
        breakdown = []
        for row in rows:
            share = (row['amount'] / grand_total * 100) if grand_total else Decimal('0')
            breakdown.append({
                'category_id': row['category__id'],
                'category': row['category__name'] or 'Uncategorised',
                'amount': row['amount'] or Decimal('0.00'),
                'count': row['count'],
                'share': round(share, 2),
            })
        return breakdown

    def monthly_trend(self):
        rows = (
            self.annotate(month=TruncMonth('expense_date'))
            .values('month')
            .annotate(amount=Sum('amount'), count=Count('id'))
            .order_by('month')
        )
        return [
            {'month': row['month'], 'amount': row['amount'] or Decimal('0.00'), 'count': row['count']}
            for row in rows
        ]

    def get_statistics(self):
        return {
            'total_amount': self.total_amount(),
            'total_count': self.count(),
            'active_amount': self.active().total_amount(),
            'active_count': self.active().count(),
            'inactive_amount': self.inactive().total_amount(),
            'inactive_count': self.inactive().count(),
            'this_month_amount': self.in_month(timezone.now().year, timezone.now().month).total_amount(),
        }


class ExpenseManager(SoftDeleteQuerySetManager):
    queryset_class = ExpenseQuerySet

    def active(self):
        return self.get_queryset().active()
