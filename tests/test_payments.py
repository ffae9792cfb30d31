"""
Loan repayments

Covers distribution across instalments (interest first within each),
validation of amounts and loan state, and bulk collection.
"""

import pytest
from datetime import timedelta
from decimal import Decimal

from django.utils import timezone

from microfinance.forms.loan_forms import BulkPaymentForm
from microfinance.models import Loan, LoanPayment
from microfinance.views.payment_views import _post_bulk_lines


class TestRecordPayment:
    """Loan.record_payment"""

    def test_exact_instalment(self, active_loan, teller):
        payment = active_loan.record_payment(Decimal('718.75'), received_by=teller)

        assert payment.payment_reference.startswith('PAY-')
        assert payment.installment_number == 1
        assert payment.interest_portion == Decimal('93.75')
        assert payment.principal_portion == Decimal('625.00')
        assert active_loan.current_balance == Decimal('5031.25')

        first = active_loan.installments.get(installment_number=1)
        assert first.status == 'paid'
        assert first.paid_date == timezone.localdate()

    def test_partial_payment_settles_interest_first(self, active_loan, teller):
        payment = active_loan.record_payment(Decimal('50'), received_by=teller)

        assert payment.interest_portion == Decimal('50.00')
        assert payment.principal_portion == Decimal('0.00')
        first = active_loan.installments.get(installment_number=1)
        assert first.status == 'partial'
        assert first.remaining_amount == Decimal('668.75')

    def test_payment_spans_instalments(self, active_loan, teller):
        # one full instalment plus 100 of the second
        payment = active_loan.record_payment(Decimal('818.75'), received_by=teller)

        assert payment.interest_portion == Decimal('187.50')
        statuses = list(active_loan.installments.values_list('status', flat=True)[:3])
        assert statuses == ['paid', 'partial', 'pending']

    def test_full_repayment_marks_repaid(self, active_loan, teller, member):
        active_loan.record_payment(Decimal('5750'), received_by=teller)

        loan = Loan.objects.get(pk=active_loan.pk)
        assert loan.status == 'repaid'
        assert loan.current_balance == Decimal('0.00')
        assert loan.total_paid == Decimal('5750.00')
        assert not loan.installments.exclude(status='paid').exists()
        assert sum(p.interest_portion for p in loan.payments.all()) == Decimal('750.00')

    def test_overpayment_refused(self, active_loan, teller):
        with pytest.raises(ValueError, match='exceeds the balance'):
            active_loan.record_payment(Decimal('5750.01'), received_by=teller)
        assert not LoanPayment.objects.exists()

    @pytest.mark.parametrize('amount', [Decimal('0'), Decimal('-10')])
    def test_non_positive_refused(self, active_loan, teller, amount):
        with pytest.raises(ValueError):
            active_loan.record_payment(amount, received_by=teller)

    def test_pending_loan_refused(self, member, loan_officer, teller):
        loan = Loan.create_loan(member, Decimal('5000'), created_by=loan_officer)
        with pytest.raises(ValueError, match='pending'):
            loan.record_payment(Decimal('100'), received_by=teller)

    def test_written_off_loan_refused(self, member, admin_user, teller):
        loan = Loan.create_loan(
            member, Decimal('5000'), created_by=admin_user,
            issue_date=timezone.localdate() - timedelta(weeks=10),
        )
        loan.mark_defaulted()
        loan.write_off(admin_user)
        with pytest.raises(ValueError, match='written off'):
            loan.record_payment(Decimal('100'), received_by=teller)

    def test_defaulted_loan_still_collects(self, member, admin_user, teller):
        loan = Loan.create_loan(
            member, Decimal('5000'), created_by=admin_user,
            issue_date=timezone.localdate() - timedelta(weeks=10),
        )
        loan.mark_defaulted()
        loan.record_payment(Decimal('1000'), received_by=teller)
        assert loan.current_balance == Decimal('4750.00')

    def test_payment_touches_member_activity(self, active_loan, teller, member):
        paid_on = timezone.localdate() + timedelta(days=1)
        active_loan.record_payment(Decimal('100'), received_by=teller, payment_date=paid_on)
        member.refresh_from_db()
        assert member.last_activity_date == paid_on

    def test_custom_reference_kept(self, active_loan, teller):
        payment = active_loan.record_payment(
            Decimal('100'), received_by=teller, payment_reference='QWE123RTY', payment_method='mobile_money'
        )
        assert payment.payment_reference == 'QWE123RTY'
        assert payment.payment_method == 'mobile_money'


class TestBulkPayment:
    """BulkPaymentForm and the all-or-nothing posting"""

    @pytest.fixture
    def loans(self, make_member, group, admin_user):
        first = make_member(group=group)
        second = make_member(group=group)
        return [
            Loan.create_loan(first, Decimal('5000'), created_by=admin_user),
            Loan.create_loan(second, Decimal('5000'), created_by=admin_user),
        ]

    def _data(self, loans, amounts, total):
        data = {'total_amount': str(total), 'payment_method': 'cash'}
        for loan, amount in zip(loans, amounts):
            data[BulkPaymentForm.field_name(loan)] = str(amount)
        return data

    def test_total_must_match_lines(self, loans):
        form = BulkPaymentForm(self._data(loans, ['718.75', '718.75'], '1400'), loans=loans)
        assert not form.is_valid()
        assert 'does not match' in str(form.non_field_errors())

    def test_line_above_balance_rejected(self, loans):
        form = BulkPaymentForm(self._data(loans, ['6000', '0'], '6000'), loans=loans)
        assert not form.is_valid()
        assert BulkPaymentForm.field_name(loans[0]) in form.errors

    def test_needs_at_least_one_line(self, loans):
        form = BulkPaymentForm(self._data(loans, ['', ''], '10'), loans=loans)
        assert not form.is_valid()

    def test_posts_one_payment_per_line(self, loans, teller):
        form = BulkPaymentForm(self._data(loans, ['718.75', '300'], '1018.75'), loans=loans)
        assert form.is_valid(), form.errors

        posted = _post_bulk_lines(teller, form.cleaned_data)

        assert len(posted) == 2
        for payment, loan in zip(posted, loans):
            assert payment.payment_reference.startswith('BULK-')
            assert payment.payment_reference.endswith(loan.member.member_no)
        assert LoanPayment.objects.all().bulk().count() == 2

    def test_refused_line_rolls_back_all(self, loans, teller, branch_admin):
        form = BulkPaymentForm(self._data(loans, ['718.75', '300'], '1018.75'), loans=loans)
        assert form.is_valid()

        # the second loan is written off after the form was filled in
        Loan.objects.filter(pk=loans[1].pk).update(status='bad_debt')
        loans[1].status = 'bad_debt'

        with pytest.raises(ValueError, match=loans[1].loan_number):
            _post_bulk_lines(teller, form.cleaned_data)

        assert not LoanPayment.objects.exists()
        assert Loan.objects.get(pk=loans[0].pk).current_balance == Decimal('5750.00')
