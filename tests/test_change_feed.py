"""
Change feed counter and the scheduled management commands
"""

import pytest
from datetime import timedelta
from decimal import Decimal
from io import StringIO

from django.core.management import call_command
from django.utils import timezone

from microfinance.models import (
    ChangeFeed, ExpenseCategory, Loan, LoanIncrementLevel, LoanInstallment, Member,
)


class TestChangeFeed:

    def test_starts_at_zero(self, db):
        assert ChangeFeed.current_version() == 0

    def test_tracked_saves_bump_version(self, branch):
        after_branch = ChangeFeed.current_version()
        assert after_branch >= 1

        branch.name = 'Nairobi CBD'
        branch.save()
        assert ChangeFeed.current_version() == after_branch + 1
        assert ChangeFeed.objects.get(key='global').last_model == 'microfinance.Branch'

    def test_payment_bumps_version(self, active_loan, teller):
        before = ChangeFeed.current_version()
        active_loan.record_payment(Decimal('100'), received_by=teller)
        assert ChangeFeed.current_version() > before

    def test_untracked_model_does_not_bump(self, db):
        before = ChangeFeed.current_version()
        ExpenseCategory.objects.create(name='Rent', code='RENT')
        assert ChangeFeed.current_version() == before


class TestSeedCommand:

    def test_seed_is_idempotent(self, db):
        out = StringIO()
        call_command('seed_microfinance', stdout=out)
        call_command('seed_microfinance', stdout=out)

        assert LoanIncrementLevel.objects.count() == 14
        assert ExpenseCategory.objects.count() == 8
        assert '[*] Exists: Level 1' in out.getvalue()

    def test_reset_levels(self, db):
        LoanIncrementLevel.objects.create(level=1, amount=Decimal('4000'))
        call_command('seed_microfinance', '--reset-levels', stdout=StringIO())
        assert LoanIncrementLevel.objects.get(level=1).amount == Decimal('5000')


class TestDormantCommand:

    @pytest.fixture
    def stale(self, make_member):
        return make_member(last_activity_date=timezone.localdate() - timedelta(days=150))

    def test_dry_run_changes_nothing(self, stale):
        out = StringIO()
        call_command('mark_dormant_members', '--dry-run', stdout=out)

        assert stale.member_no in out.getvalue()
        assert Member.objects.get(pk=stale.pk).status == 'active'

    def test_marks_dormant_and_bumps_feed(self, stale, make_member):
        fresh = make_member()
        before = ChangeFeed.current_version()

        call_command('mark_dormant_members', stdout=StringIO())

        assert Member.objects.get(pk=stale.pk).status == 'dormant'
        assert Member.objects.get(pk=fresh.pk).status == 'active'
        assert ChangeFeed.current_version() == before + 1


class TestOverdueCommand:

    @pytest.fixture
    def late_loan(self, member, admin_user):
        return Loan.create_loan(
            member, Decimal('5000'), created_by=admin_user,
            issue_date=timezone.localdate() - timedelta(weeks=3),
        )

    def test_marks_past_due_installments(self, late_loan):
        call_command('mark_overdue_installments', stdout=StringIO())

        statuses = list(LoanInstallment.objects.filter(loan=late_loan).values_list('status', flat=True))
        # weeks 1 and 2 are past due, week 3 falls due today
        assert statuses[:3] == ['overdue', 'overdue', 'pending']

    def test_default_after_days(self, member, admin_user):
        loan = Loan.create_loan(
            member, Decimal('5000'), created_by=admin_user,
            issue_date=timezone.localdate() - timedelta(weeks=12),
        )
        call_command('mark_overdue_installments', '--default-after-days', '14', stdout=StringIO())
        assert Loan.objects.get(pk=loan.pk).status == 'defaulted'

    def test_recent_loan_not_defaulted(self, late_loan):
        call_command('mark_overdue_installments', '--default-after-days', '0', stdout=StringIO())
        assert Loan.objects.get(pk=late_loan.pk).status == 'active'

    def test_negative_days_reported(self, db):
        out = StringIO()
        call_command('mark_overdue_installments', '--default-after-days', '-1', stdout=out)
        assert 'must not be negative' in out.getvalue()
