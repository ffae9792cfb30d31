"""
Loan lifecycle

Covers the increment ladder, creation and pricing, the approval workflow,
defaulting, write-off and soft delete.
"""

import pytest
from datetime import timedelta
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.utils import timezone

from microfinance.models import Branch, Loan, LoanIncrementLevel, Notification, DEFAULT_INCREMENT_LEVELS


def _repay(loan, user):
    loan.record_payment(loan.current_balance, received_by=user)
    loan.refresh_from_db()
    return loan


class TestIncrementLadder:
    """Member.check_loan_eligibility"""

    def test_default_ladder_used_when_table_empty(self, db):
        ladder = LoanIncrementLevel.get_ladder()
        assert len(ladder) == 14
        assert ladder[1] == Decimal('5000')
        assert ladder[14] == Decimal('50000')

    def test_ladder_defaults_are_increasing(self):
        amounts = [DEFAULT_INCREMENT_LEVELS[level] for level in sorted(DEFAULT_INCREMENT_LEVELS)]
        assert amounts == sorted(amounts)

    def test_stored_ladder_overrides_default(self, db):
        LoanIncrementLevel.objects.create(level=1, amount=Decimal('3000'))
        LoanIncrementLevel.objects.create(level=2, amount=Decimal('6000'))
        assert LoanIncrementLevel.get_ladder() == {1: Decimal('3000'), 2: Decimal('6000')}

    def test_first_loan_must_be_level_one_amount(self, member):
        ok, message, level = member.check_loan_eligibility(Decimal('7000'), 'small_loan')
        assert not ok
        assert '5,000.00' in message

        ok, message, level = member.check_loan_eligibility(Decimal('5000'), 'small_loan')
        assert ok
        assert level == 1

    def test_twelve_installments_need_level_three(self, member):
        ok, message, _ = member.check_loan_eligibility(Decimal('5000'), 'big_loan')
        assert not ok
        assert 'level 3' in message

    def test_outstanding_balance_blocks_new_loan(self, member, active_loan):
        ok, message, _ = member.check_loan_eligibility(Decimal('7000'), 'small_loan')
        assert not ok
        assert 'outstanding balance' in message

    def test_written_off_balance_blocks_new_loan(self, member, active_loan):
        Loan.objects.filter(pk=active_loan.pk).update(status='bad_debt')

        ok, message, _ = member.check_loan_eligibility(Decimal('5000'), 'small_loan')
        assert not ok
        assert 'outstanding balance' in message

    def test_next_loan_moves_up_one_level(self, member, active_loan, admin_user, loan_officer):
        _repay(active_loan, admin_user)

        ok, _, level = member.check_loan_eligibility(Decimal('7000'), 'small_loan')
        assert ok and level == 2

        # skipping a rung is refused
        ok, message, _ = member.check_loan_eligibility(Decimal('9000'), 'small_loan')
        assert not ok
        assert 'level 2' in message

        # borrowing no more than before keeps the level
        ok, _, level = member.check_loan_eligibility(Decimal('4000'), 'small_loan')
        assert ok and level is None

    def test_admin_override(self, member):
        ok, message, level = member.check_loan_eligibility(Decimal('20000'), 'big_loan', approver_role='admin')
        assert ok
        assert level == 8

    def test_dormant_member_is_ineligible(self, member):
        member.status = 'dormant'
        member.save()
        ok, message, _ = member.check_loan_eligibility(Decimal('5000'), 'small_loan', approver_role='admin')
        assert not ok
        assert 'reactivate' in message

    def test_unknown_program(self, member):
        ok, message, _ = member.check_loan_eligibility(Decimal('5000'), 'payday')
        assert not ok


class TestLoanCreation:
    """Loan.create_loan"""

    def test_pricing_and_schedule(self, active_loan):
        loan = active_loan
        assert loan.loan_number.startswith('LN-')
        assert loan.interest_amount == Decimal('750.00')
        assert loan.processing_fee == Decimal('300.00')
        assert loan.total_amount == Decimal('5750.00')
        assert loan.current_balance == Decimal('5750.00')
        assert loan.installment_count == 8
        assert loan.increment_level == 1

        installments = list(loan.installments.all())
        assert len(installments) == 8
        assert all(i.total_amount == Decimal('718.75') for i in installments)
        assert loan.due_date == installments[-1].due_date
        assert loan.installment_amount == Decimal('718.75')

    def test_creator_with_approve_permission_auto_approves(self, active_loan, admin_user):
        assert active_loan.approval_status == 'approved'
        assert active_loan.status == 'active'
        assert active_loan.approved_by == admin_user

    def test_officer_loan_waits_for_approval(self, member, loan_officer, branch_admin):
        loan = Loan.create_loan(member, Decimal('5000'), created_by=loan_officer)

        assert loan.approval_status == 'pending'
        assert loan.status == 'pending'
        notification = Notification.objects.get(recipient=branch_admin)
        assert notification.notification_type == 'loan_pending'
        assert notification.loan == loan

    def test_ineligible_amount_raises(self, member, loan_officer):
        with pytest.raises(ValidationError):
            Loan.create_loan(member, Decimal('7000'), created_by=loan_officer)
        assert not Loan.objects.exists()

    def test_creation_touches_member_activity(self, member, admin_user):
        issue = timezone.localdate() - timedelta(days=3)
        member.last_activity_date = issue - timedelta(days=60)
        member.save()

        Loan.create_loan(member, Decimal('5000'), created_by=admin_user, issue_date=issue)
        member.refresh_from_db()
        assert member.last_activity_date == issue

    def test_loan_officer_defaults_to_assigned_officer(self, active_loan, loan_officer):
        assert active_loan.loan_officer == loan_officer

    def test_update_terms_reprices_pending_loan(self, member, loan_officer):
        loan = Loan.create_loan(member, Decimal('5000'), created_by=loan_officer)
        loan.update_terms(loan_officer, Decimal('5000'), 'small_loan', 'monthly')

        loan.refresh_from_db()
        assert loan.installment_type == 'monthly'
        assert loan.installments.count() == 8


class TestApprovalWorkflow:

    @pytest.fixture
    def pending_loan(self, member, loan_officer):
        return Loan.create_loan(
            member, Decimal('5000'), created_by=loan_officer,
            issue_date=timezone.localdate() - timedelta(days=10),
        )

    def test_approve_restarts_schedule_today(self, pending_loan, branch_admin, loan_officer):
        pending_loan.approve(branch_admin)
        pending_loan.refresh_from_db()

        today = timezone.localdate()
        assert pending_loan.status == 'active'
        assert pending_loan.issue_date == today
        assert pending_loan.installments.first().due_date == today + timedelta(weeks=1)
        assert Notification.objects.filter(recipient=loan_officer, notification_type='loan_approved').exists()

    def test_approve_twice_fails(self, pending_loan, branch_admin):
        pending_loan.approve(branch_admin)
        with pytest.raises(ValueError):
            pending_loan.approve(branch_admin)

    def test_reject_needs_reason(self, pending_loan, branch_admin):
        with pytest.raises(ValueError):
            pending_loan.reject(branch_admin, '')

    def test_reject_clears_balance(self, pending_loan, branch_admin, member):
        pending_loan.reject(branch_admin, 'Insufficient guarantors')
        pending_loan.refresh_from_db()

        assert pending_loan.approval_status == 'rejected'
        assert pending_loan.current_balance == Decimal('0.00')
        assert pending_loan.rejection_reason == 'Insufficient guarantors'
        # a rejected application does not block the next one
        assert member.check_loan_eligibility(Decimal('5000'), 'small_loan')[0]


class TestDefaultAndWriteOff:

    @pytest.fixture
    def overdue_loan(self, member, admin_user):
        return Loan.create_loan(
            member, Decimal('5000'), created_by=admin_user,
            issue_date=timezone.localdate() - timedelta(weeks=10),
        )

    def test_cannot_default_before_due_date(self, active_loan):
        with pytest.raises(ValueError):
            active_loan.mark_defaulted()

    def test_default_then_write_off(self, overdue_loan, admin_user):
        overdue_loan.mark_defaulted(admin_user)
        assert overdue_loan.status == 'defaulted'

        overdue_loan.write_off(admin_user, 'Member relocated')
        overdue_loan.refresh_from_db()
        assert overdue_loan.status == 'bad_debt'
        assert overdue_loan.written_off_date == timezone.localdate()
        assert 'Member relocated' in overdue_loan.notes

    def test_write_off_requires_defaulted(self, overdue_loan, admin_user):
        with pytest.raises(ValueError):
            overdue_loan.write_off(admin_user)

    def test_overdue_figures(self, overdue_loan):
        loan = Loan.objects.get(pk=overdue_loan.pk)
        assert loan.is_overdue
        assert len(loan.overdue_installments()) == 8
        assert loan.get_overdue_amount() == Decimal('5750.00')
        assert loan.days_overdue == 63


class TestSoftDelete:

    def test_soft_deleted_loan_hidden(self, active_loan, super_admin):
        active_loan.delete(deleted_by=super_admin)

        assert not Loan.objects.filter(pk=active_loan.pk).exists()
        assert Loan.all_objects.get(pk=active_loan.pk).deleted_by == super_admin

    def test_restore_brings_loan_back(self, active_loan, super_admin):
        active_loan.delete(deleted_by=super_admin)
        active_loan.restore()

        restored = Loan.objects.get(pk=active_loan.pk)
        assert restored.deleted_by is None
        assert not restored.is_deleted

    def test_hard_delete_removes_row(self, db):
        branch = Branch.objects.create(name='Temporary')
        branch.delete(hard=True)
        assert not Branch.all_objects.filter(pk=branch.pk).exists()
