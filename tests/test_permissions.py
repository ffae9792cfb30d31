"""
Access control

Role defaults, explicit grants and the visibility rules every list applies.
"""

import pytest
from decimal import Decimal

from django.contrib.auth.models import AnonymousUser

from microfinance.models import Member, Loan, LoanPayment, Expense, User, UserPermission
from microfinance.permissions import PermissionChecker, PERMISSIONS, ROLE_DEFAULT_PERMISSIONS, Roles


class TestGrants:

    def test_super_admin_holds_everything(self, super_admin):
        checker = PermissionChecker(super_admin)
        assert checker.get_permissions() == set(PERMISSIONS)
        assert checker.has_permission('users.manage_permissions')

    def test_role_defaults(self, teller, loan_officer, auditor):
        assert PermissionChecker(teller).can_bulk_pay()
        assert not PermissionChecker(teller).can_create_loans()
        assert PermissionChecker(loan_officer).can_create_loans()
        assert not PermissionChecker(loan_officer).can_approve_loans()
        assert PermissionChecker(auditor).has_permission('reports.view.bad_debt')
        assert not PermissionChecker(auditor).has_permission('loans.create')

    def test_every_default_is_a_known_key(self):
        for role in Roles.ALL:
            assert ROLE_DEFAULT_PERMISSIONS[role] <= set(PERMISSIONS), role

    def test_explicit_grant_adds_to_role(self, loan_officer, super_admin):
        UserPermission.objects.create(user=loan_officer, permission='loans.approve', granted_by=super_admin)
        assert PermissionChecker(loan_officer).can_approve_loans()

    def test_inactive_user_holds_nothing(self, teller):
        teller.deactivate(reason='Left the company')
        assert PermissionChecker(teller).get_permissions() == set()

    def test_anonymous(self):
        checker = PermissionChecker(AnonymousUser())
        assert not checker.has_permission('dashboard.view')
        assert checker.filter_members(Member.objects.none()).count() == 0


class TestVisibility:

    @pytest.fixture
    def spread(self, make_member, other_branch, loan_officer, other_officer, admin_user, make_user):
        """Two members in the main branch with different officers, one elsewhere"""
        mine = make_member(full_name='Mine')
        theirs = make_member(full_name='Theirs', assigned_officer=other_officer)
        remote_officer = make_user('remote@example.com', 'loan_officer', other_branch)
        remote = make_member(full_name='Remote', branch=other_branch, assigned_officer=remote_officer)
        loans = [Loan.create_loan(m, Decimal('5000'), created_by=admin_user) for m in (mine, theirs, remote)]
        return {'members': (mine, theirs, remote), 'loans': loans}

    def _names(self, queryset):
        return sorted(queryset.values_list('full_name', flat=True))

    def test_admin_sees_all(self, spread, admin_user):
        checker = PermissionChecker(admin_user)
        assert checker.filter_members(Member.objects.all()).count() == 3
        assert checker.filter_loans(Loan.objects.all()).count() == 3

    def test_branch_roles_see_own_branch(self, spread, branch_admin, teller, auditor):
        for user in (branch_admin, teller, auditor):
            checker = PermissionChecker(user)
            assert self._names(checker.filter_members(Member.objects.all())) == ['Mine', 'Theirs']
            assert checker.filter_loans(Loan.objects.all()).count() == 2

    def test_loan_officer_sees_assigned(self, spread, loan_officer):
        checker = PermissionChecker(loan_officer)
        mine, theirs, remote = spread['members']

        assert self._names(checker.filter_members(Member.objects.all())) == ['Mine']
        assert list(checker.filter_loans(Loan.objects.all())) == [spread['loans'][0]]
        assert checker.can_view_member(mine)
        assert not checker.can_view_member(theirs)

    def test_payments_follow_loans(self, spread, loan_officer, teller):
        for loan in spread['loans']:
            loan.record_payment(Decimal('100'), received_by=teller)

        assert PermissionChecker(loan_officer).filter_payments(LoanPayment.objects.all()).count() == 1
        assert PermissionChecker(teller).filter_payments(LoanPayment.objects.all()).count() == 2

    def test_expenses_of_other_users_hidden_from_officer(self, branch, loan_officer, teller):
        Expense.objects.create(title='Fuel', amount=Decimal('800'), branch=branch, created_by=teller)
        Expense.objects.create(title='Airtime', amount=Decimal('200'), branch=branch, created_by=loan_officer)

        visible = PermissionChecker(loan_officer).filter_expenses(Expense.objects.all())
        assert list(visible.values_list('title', flat=True)) == ['Airtime']
        assert PermissionChecker(teller).filter_expenses(Expense.objects.all()).count() == 2

    def test_users_visible_by_branch(self, branch_admin, teller, other_branch, make_user):
        make_user('far@example.com', 'teller', other_branch)
        visible = PermissionChecker(branch_admin).filter_users(User.objects.all())
        assert set(visible) == {branch_admin, teller}


class TestActions:

    def test_officer_cannot_approve_own_loan(self, member, loan_officer, super_admin, branch_admin):
        UserPermission.objects.create(user=loan_officer, permission='loans.approve', granted_by=super_admin)
        loan = Loan.create_loan(member, Decimal('5000'), created_by=loan_officer)
        # the grant made the creation auto-approve; build a pending one by hand
        loan.approval_status = 'pending'
        assert not PermissionChecker(loan_officer).can_approve_loan(loan)
        assert PermissionChecker(branch_admin).can_approve_loan(loan)

    def test_edit_only_pending_unpaid_loans(self, active_loan, admin_user):
        assert not PermissionChecker(admin_user).can_edit_loan(active_loan)

    def test_branch_admin_cannot_edit_super_admin(self, branch_admin, super_admin, teller):
        checker = PermissionChecker(branch_admin)
        assert not checker.can_edit_user(super_admin)
        assert checker.can_edit_user(teller) == checker.can_manage_users()
