"""
Views through the Django test client

Login, role-gated pages, loan workflow forms, payments, permission grants,
notifications and the change-feed endpoint.
"""

import pytest
from decimal import Decimal

from django.urls import reverse

from microfinance.models import Loan, LoanPayment, Member, Notification, User, UserPermission, ChangeFeed
from conftest import TEST_PASSWORD


def url(name, **kwargs):
    return reverse(f'microfinance:{name}', kwargs=kwargs)


class TestAuthentication:

    def test_anonymous_redirected_to_login(self, client, db):
        response = client.get(url('dashboard'))
        assert response.status_code == 302
        assert url('login') in response['Location']

    def test_login_with_email(self, client, teller):
        response = client.post(url('login'), {'email': 'TELLER@example.com', 'password': TEST_PASSWORD})
        assert response.status_code == 302
        assert response['Location'] == url('dashboard')

    def test_wrong_password(self, client, teller):
        response = client.post(url('login'), {'email': 'teller@example.com', 'password': 'nope'})
        assert response.status_code == 200
        assert b'Invalid email or password' in response.content

    def test_inactive_user_cannot_log_in(self, client, teller):
        teller.deactivate(reason='Suspended')
        response = client.post(url('login'), {'email': 'teller@example.com', 'password': TEST_PASSWORD})
        assert response.status_code == 200


class TestDashboard:

    def test_officer_sees_own_portfolio(self, login, loan_officer, active_loan):
        response = login(loan_officer).get(url('dashboard'))

        assert response.status_code == 200
        assert response.context['stats']['total_loans'] == 1
        assert active_loan.loan_number.encode() in response.content

    def test_nav_follows_grants(self, login, teller):
        response = login(teller).get(url('dashboard'))

        assert url('bulk_payment').encode() in response.content
        assert url('user_list').encode() not in response.content
        assert 'loans.bulk_payment' in response.context['granted']


class TestAccessControl:

    def test_teller_cannot_list_staff(self, login, teller):
        assert login(teller).get(url('user_list')).status_code == 403

    def test_officer_cannot_open_other_officers_loan(self, login, other_officer, active_loan):
        assert login(other_officer).get(url('loan_detail', loan_id=active_loan.id)).status_code == 403

    def test_teller_cannot_create_loans(self, login, teller):
        assert login(teller).get(url('loan_create')).status_code == 403


class TestMemberViews:

    def test_written_off_balance_blocks_delete(self, login, super_admin, member, active_loan):
        Loan.objects.filter(pk=active_loan.pk).update(status='bad_debt')

        response = login(super_admin).post(url('member_delete', member_id=member.id))

        assert response.status_code == 302
        assert response['Location'] == url('member_detail', member_id=member.id)
        assert Member.objects.filter(pk=member.pk).exists()

    def test_member_without_balance_deleted(self, login, super_admin, make_member):
        member = make_member(full_name='Zawadi Njeri')

        response = login(super_admin).post(url('member_delete', member_id=member.id))

        assert response['Location'] == url('member_list')
        assert not Member.objects.filter(pk=member.pk).exists()
        assert Member.all_objects.get(pk=member.pk).deleted_by == super_admin

    @pytest.mark.parametrize('export, content_type', [
        ('csv', 'text/csv'),
        ('xlsx', 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'),
    ])
    def test_member_list_export(self, login, super_admin, member, export, content_type):
        response = login(super_admin).get(url('member_list'), {'export': export})

        assert response.status_code == 200
        assert response['Content-Type'] == content_type
        assert f'members.{export}' in response['Content-Disposition']

    def test_export_needs_permission(self, login, teller, member):
        assert login(teller).get(url('member_list'), {'export': 'xlsx'}).status_code == 403


class TestLoanViews:

    def test_loan_detail(self, login, teller, active_loan):
        response = login(teller).get(url('loan_detail', loan_id=active_loan.id))

        assert response.status_code == 200
        assert len(response.context['installments']) == 8
        assert response.context['payment_form'] is not None

    def test_officer_application_goes_to_approval(self, login, loan_officer, member, branch_admin):
        response = login(loan_officer).post(url('loan_create'), {
            'member': member.id,
            'principal_amount': '5000',
            'loan_program': 'small_loan',
            'installment_type': 'weekly',
        })

        loan = Loan.objects.get(member=member)
        assert response.status_code == 302
        assert response['Location'] == url('loan_detail', loan_id=loan.id)
        assert loan.approval_status == 'pending'

    def test_ineligible_amount_shows_error(self, login, loan_officer, member):
        response = login(loan_officer).post(url('loan_create'), {
            'member': member.id,
            'principal_amount': '9000',
            'loan_program': 'small_loan',
            'installment_type': 'weekly',
        })

        assert response.status_code == 200
        assert not Loan.objects.exists()
        assert 'first loan' in str(response.context['form'].non_field_errors()).lower()

    def test_branch_admin_approves(self, login, loan_officer, member, branch_admin):
        loan = Loan.create_loan(member, Decimal('5000'), created_by=loan_officer)

        response = login(branch_admin).post(url('loan_approve', loan_id=loan.id))

        assert response.status_code == 302
        loan.refresh_from_db()
        assert loan.approval_status == 'approved'
        assert loan.status == 'active'

    def test_reject_requires_reason(self, login, loan_officer, member, branch_admin):
        loan = Loan.create_loan(member, Decimal('5000'), created_by=loan_officer)
        client = login(branch_admin)

        response = client.post(url('loan_reject', loan_id=loan.id), {'reason': ''})
        assert response.status_code == 200
        loan.refresh_from_db()
        assert loan.approval_status == 'pending'


class TestPaymentViews:

    def test_record_payment(self, login, teller, active_loan):
        response = login(teller).post(url('loan_record_payment', loan_id=active_loan.id), {
            'amount': '718.75',
            'payment_method': 'cash',
        })

        assert response.status_code == 302
        active_loan.refresh_from_db()
        assert active_loan.current_balance == Decimal('5031.25')
        assert LoanPayment.objects.get().created_by == teller

    def test_overpayment_rejected_by_form(self, login, teller, active_loan):
        response = login(teller).post(url('loan_record_payment', loan_id=active_loan.id), {
            'amount': '9000',
            'payment_method': 'cash',
        })

        assert response.status_code == 200
        assert 'amount' in response.context['form'].errors
        assert not LoanPayment.objects.exists()

    def test_bulk_payment_for_group(self, login, teller, group, active_loan):
        client = login(teller)
        target = f"{url('bulk_payment')}?group={group.id}"
        field = f'amount_{active_loan.pk}'

        response = client.get(target)
        assert response.status_code == 200
        assert field in response.context['form'].fields

        response = client.post(target, {'total_amount': '1000', 'payment_method': 'cash', field: '1000'})
        assert response.status_code == 302
        payment = LoanPayment.objects.get()
        assert payment.payment_reference.startswith('BULK-')

    def test_receive_payments_desk(self, login, teller, active_loan):
        response = login(teller).get(url('receive_payments'))
        assert response.status_code == 200
        assert response.context['totals']['count'] == 1


class TestStaffViews:

    def test_grant_and_revoke(self, login, super_admin, teller):
        client = login(super_admin)
        target = url('user_permissions', user_id=teller.id)

        response = client.post(target, {'loans.create': 'on', 'reports.export': 'on'})
        assert response.status_code == 302
        assert teller.get_granted_permissions() == {'loans.create', 'reports.export'}
        assert UserPermission.objects.filter(user=teller, granted_by=super_admin).count() == 2

        client.post(target, {'reports.export': 'on'})
        assert teller.get_granted_permissions() == {'reports.export'}

    def test_role_defaults_are_not_stored(self, login, super_admin, teller):
        login(super_admin).post(url('user_permissions', user_id=teller.id), {'loans.view': 'on'})
        assert teller.get_granted_permissions() == set()

    def test_branch_admin_cannot_manage_permissions(self, login, branch_admin, teller):
        response = login(branch_admin).get(url('user_permissions', user_id=teller.id))
        assert response.status_code == 403

    def test_create_teller(self, login, super_admin, branch):
        response = login(super_admin).post(url('user_create'), {
            'full_name': 'Wanjiru Kamau',
            'email': 'Wanjiru@Example.com',
            'phone': '+254712000111',
            'role': 'teller',
            'branch': branch.id,
            'password1': 'Kibanda-2024-x',
            'password2': 'Kibanda-2024-x',
        })

        assert response.status_code == 302
        created = User.objects.get(email='wanjiru@example.com')
        assert created.check_password('Kibanda-2024-x')
        assert created.branch == branch

    def test_weak_password_refused(self, login, super_admin, branch):
        response = login(super_admin).post(url('user_create'), {
            'full_name': 'Wanjiru Kamau',
            'email': 'wanjiru@example.com',
            'role': 'teller',
            'branch': branch.id,
            'password1': 'password',
            'password2': 'password',
        })

        assert response.status_code == 200
        assert 'password2' in response.context['form'].errors
        assert not User.objects.filter(email='wanjiru@example.com').exists()

    def test_teller_needs_branch(self, login, super_admin):
        response = login(super_admin).post(url('user_create'), {
            'full_name': 'No Branch',
            'email': 'nobranch@example.com',
            'role': 'teller',
            'password1': 'Kibanda-2024-x',
            'password2': 'Kibanda-2024-x',
        })

        assert response.status_code == 200
        assert 'branch' in response.context['form'].errors

    def test_cannot_deactivate_self(self, login, super_admin):
        response = login(super_admin).post(url('user_deactivate', user_id=super_admin.id), {'reason': 'x'})
        assert response.status_code == 302
        super_admin.refresh_from_db()
        assert super_admin.is_active


class TestNotificationViews:

    def test_list_and_mark_read(self, login, loan_officer, member, branch_admin):
        loan = Loan.create_loan(member, Decimal('5000'), created_by=loan_officer)
        client = login(branch_admin)

        response = client.get(url('notification_list'), {'show': 'unread'})
        assert response.status_code == 200
        notification = response.context['page_obj'][0]
        assert response.context['unread_notifications'] == 1

        response = client.post(url('notification_mark_read', notification_id=notification.id))
        assert response['Location'] == url('loan_detail', loan_id=loan.id)
        assert Notification.objects.get(pk=notification.pk).is_read

    def test_mark_read_needs_post(self, login, branch_admin):
        notification = Notification.objects.create(recipient=branch_admin, title='Hi', message='Hello')
        response = login(branch_admin).get(url('notification_mark_read', notification_id=notification.id))
        assert response.status_code == 405

    def test_cannot_read_someone_elses(self, login, teller, branch_admin):
        notification = Notification.objects.create(recipient=branch_admin, title='Hi', message='Hello')
        response = login(teller).post(url('notification_mark_read', notification_id=notification.id))
        assert response.status_code == 404

    def test_mark_all_read(self, login, branch_admin):
        for n in range(3):
            Notification.objects.create(recipient=branch_admin, title=f'N{n}', message='x')
        login(branch_admin).post(url('notification_mark_all_read'))
        assert not Notification.objects.filter(is_read=False).exists()


class TestChangeFeedEndpoint:

    def test_version_json(self, login, teller, branch):
        client = login(teller)
        response = client.get(url('change_feed_version'))

        assert response.status_code == 200
        data = response.json()
        assert data['version'] == ChangeFeed.current_version()
        assert data['unread_notifications'] == 0

        branch.save()
        assert client.get(url('change_feed_version')).json()['version'] == data['version'] + 1

    def test_requires_login(self, client, db):
        assert client.get(url('change_feed_version')).status_code == 302
