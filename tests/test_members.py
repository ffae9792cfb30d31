"""
Members, groups and branches

Covers generated identifiers, fees, reactivation and activity tracking.
"""

import pytest
from datetime import timedelta
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.utils import timezone

from microfinance.models import Branch, Loan, Member, MemberGroup


class TestIdentifiers:

    def test_member_numbers_are_sequential(self, make_member):
        first = make_member()
        second = make_member()
        assert first.member_no == 'MBR-00001'
        assert second.member_no == 'MBR-00002'

    def test_member_number_survives_soft_delete(self, make_member):
        first = make_member()
        first.delete()
        assert make_member().member_no == 'MBR-00002'

    def test_branch_code_generated_from_name(self, db):
        first = Branch.objects.create(name='Kisumu')
        second = Branch.objects.create(name='Kisii')
        assert first.code == 'KIS01'
        assert second.code == 'KIS02'

    def test_group_code_numbered_within_branch(self, branch, loan_officer):
        first = MemberGroup.objects.create(name='Tumaini', branch=branch)
        second = MemberGroup.objects.create(name='Baraka', branch=branch)
        assert first.code == f'GRP-{branch.code}-001'
        assert second.code == f'GRP-{branch.code}-002'

    def test_last_activity_defaults_to_today(self, make_member):
        assert make_member().last_activity_date == timezone.localdate()


class TestValidation:

    def test_group_from_other_branch_rejected(self, make_member, other_branch):
        foreign_group = MemberGroup.objects.create(name='Pwani', branch=other_branch)
        member = make_member()
        member.group = foreign_group
        with pytest.raises(ValidationError) as exc:
            member.full_clean()
        assert 'group' in exc.value.message_dict

    def test_phone_number_format(self, make_member):
        member = make_member()
        member.phone_number = '07-CALL-ME'
        with pytest.raises(ValidationError):
            member.full_clean()

    def test_staff_role_needs_branch(self, make_user):
        user = make_user('nobranch@example.com', 'teller')
        with pytest.raises(ValidationError) as exc:
            user.full_clean()
        assert 'branch' in exc.value.message_dict


class TestFees:

    def test_registration_fee(self, member):
        ok, message = member.pay_registration_fee(Decimal('400'))
        assert not ok

        ok, message = member.pay_registration_fee()
        assert ok
        member.refresh_from_db()
        assert member.registration_fee_paid
        assert member.registration_fee_paid_at == timezone.localdate()

        ok, message = member.pay_registration_fee()
        assert not ok
        assert 'already' in message

    def test_reactivation_requires_fee(self, member, branch_admin):
        member.status = 'dormant'
        member.save()

        ok, message = member.reactivate(branch_admin, Decimal('499.99'))
        assert not ok
        assert Member.objects.get(pk=member.pk).status == 'dormant'

        ok, message = member.reactivate(branch_admin, Decimal('500'), notes='Paid at counter')
        assert ok
        member.refresh_from_db()
        assert member.status == 'active'
        assert member.activation_fee_paid_at == timezone.localdate()
        assert member.last_activity_date == timezone.localdate()
        assert 'Paid at counter' in member.notes

    def test_active_member_not_reactivated(self, member, branch_admin):
        ok, message = member.reactivate(branch_admin, Decimal('500'))
        assert not ok


class TestActivity:

    def test_touch_activity_never_moves_back(self, member):
        today = timezone.localdate()
        member.touch_activity(today - timedelta(days=30))
        member.refresh_from_db()
        assert member.last_activity_date == today

    def test_inactive_since(self, make_member):
        today = timezone.localdate()
        stale = make_member(last_activity_date=today - timedelta(days=120))
        make_member(last_activity_date=today - timedelta(days=10))
        make_member(last_activity_date=today - timedelta(days=200), status='dormant')

        cutoff = today - timedelta(days=90)
        assert list(Member.objects.inactive_since(cutoff)) == [stale]

    def test_branch_statistics(self, branch, member, active_loan, loan_officer):
        stats = branch.get_statistics()
        assert stats['member_count'] == 1
        assert stats['total_loans'] == 1
        assert stats['total_portfolio'] == Decimal('5000.00')
        assert stats['outstanding_balance'] == Decimal('5750.00')
        assert '1 active member(s) still belong to it' in branch.closure_blockers()
        assert '1 loan(s) still carry a balance' in branch.closure_blockers(deleting=True)
        assert '1 loan(s) still carry a balance' not in branch.closure_blockers()


class TestOutstandingBalance:

    def test_member_without_loans_is_clear(self, member):
        assert not member.has_outstanding_balance()

    def test_written_off_loan_still_counts(self, member, active_loan):
        Loan.objects.filter(pk=active_loan.pk).update(status='bad_debt')
        assert member.has_outstanding_balance()

    def test_excluded_loan_is_ignored(self, member, active_loan):
        assert not member.has_outstanding_balance(exclude_loan=active_loan)
