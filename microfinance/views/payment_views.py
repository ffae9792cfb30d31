"""
Payment Views
=============

Loan repayments: the receive-payments desk, single payments, bulk
collection for a member or a whole group, and the payment ledger.

Bulk workflow:
1. Teller picks a member or a group
2. Teller enters the cash counted and an amount per collectable loan
3. Form checks the lines add up to the total (to the cent)
4. Every line is posted as its own LoanPayment inside one transaction;
   a refused line rolls the whole collection back
"""

import logging

from django.shortcuts import render, redirect, get_object_or_404
from django.contrib.auth.decorators import login_required
from django.contrib import messages
from django.core.exceptions import PermissionDenied
from django.core.paginator import Paginator
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from microfinance.models import Loan, LoanPayment, PAYMENT_METHOD_CHOICES
from microfinance.forms.loan_forms import LoanPaymentForm, BulkPaymentForm, BulkPaymentTargetForm
from microfinance.forms.report_forms import DateRangeForm
from microfinance.permissions import PermissionChecker
from microfinance.utils.helpers import get_setting, bulk_payment_reference
from microfinance.utils.reports import build_receive_payments_rows
from microfinance.utils.excel_export import export_to_csv, export_rows_excel

logger = logging.getLogger(__name__)


# =============================================================================
# RECEIVE PAYMENTS DESK
# =============================================================================

@login_required
def receive_payments(request):
    """
    Every collectable loan the user can see, with the instalment due,
    the next due date and arrears
    """
    checker = PermissionChecker(request.user)

    if not checker.can_receive_payments():
        raise PermissionDenied

    loans = checker.filter_loans(Loan.objects.all())

    search = request.GET.get('search', '').strip()
    if search:
        loans = loans.filter(
            Q(loan_number__icontains=search) |
            Q(member__full_name__icontains=search) |
            Q(member__member_no__icontains=search) |
            Q(member__phone_number__icontains=search)
        )

    desk = build_receive_payments_rows(loans, as_of=timezone.localdate())

    context = {
        'page_title': 'Receive Payments',
        'rows': desk['rows'],
        'totals': desk['totals'],
        'search': search,
        'target_form': BulkPaymentTargetForm(checker=checker) if checker.can_bulk_pay() else None,
        'checker': checker,
    }
    return render(request, 'payments/receive.html', context)


# =============================================================================
# SINGLE PAYMENT
# =============================================================================

@login_required
def loan_record_payment(request, loan_id):
    """Post one repayment against a loan from its detail page"""
    checker = PermissionChecker(request.user)

    loan = get_object_or_404(Loan.objects.select_related('member'), id=loan_id)

    if not checker.can_receive_payments() or not checker.can_view_loan(loan):
        messages.error(request, 'You do not have permission to receive payments on this loan.')
        raise PermissionDenied

    if request.method == 'POST':
        form = LoanPaymentForm(request.POST, loan=loan)
        if form.is_valid():
            data = form.cleaned_data
            try:
                payment = loan.record_payment(
                    amount=data['amount'],
                    received_by=request.user,
                    payment_date=data.get('payment_date'),
                    payment_reference=data.get('payment_reference', ''),
                    payment_method=data['payment_method'],
                    notes=data.get('notes', ''),
                )
            except ValueError as e:
                logger.warning(f"Payment refused on {loan.loan_number}: {e}")
                messages.error(request, str(e))
            else:
                messages.success(
                    request,
                    f'Payment {payment.payment_reference} of KES {payment.amount:,.2f} recorded. '
                    f'Balance: KES {loan.current_balance:,.2f}'
                )
                return redirect('microfinance:loan_detail', loan_id=loan.id)
    else:
        form = LoanPaymentForm(loan=loan)

    context = {
        'page_title': f'Payment: {loan.loan_number}',
        'loan': loan,
        'form': form,
    }
    return render(request, 'payments/form.html', context)


# =============================================================================
# BULK PAYMENT
# =============================================================================

def _bulk_targets(checker, target_form):
    """Collectable loans of the chosen member or group, within visibility"""
    loans = checker.filter_loans(Loan.objects.all()).collectable()
    member = target_form.cleaned_data.get('member')
    group = target_form.cleaned_data.get('group')
    if member:
        return loans.filter(member=member), member, None
    return loans.filter(member__group=group), None, group


@login_required
def bulk_payment(request):
    """
    Collect for several loans of one member or one group at once
    """
    checker = PermissionChecker(request.user)

    if not checker.can_bulk_pay():
        messages.error(request, 'You do not have permission to post bulk payments.')
        raise PermissionDenied

    target_form = BulkPaymentTargetForm(request.GET or None, checker=checker)
    if not target_form.is_valid():
        context = {
            'page_title': 'Bulk Payment',
            'target_form': target_form,
        }
        return render(request, 'payments/bulk.html', context)

    loans, member, group = _bulk_targets(checker, target_form)
    loans = list(loans.select_related('member').order_by('member__full_name', 'issue_date'))

    if request.method == 'POST':
        form = BulkPaymentForm(request.POST, loans=loans)
        if form.is_valid():
            data = form.cleaned_data
            try:
                posted = _post_bulk_lines(request.user, data)
            except ValueError as e:
                messages.error(request, f'Bulk payment not posted: {e}')
            else:
                messages.success(
                    request,
                    f'{len(posted)} payment(s) totalling KES {data["total_amount"]:,.2f} posted.'
                )
                return redirect('microfinance:payment_list')
        else:
            messages.error(request, 'Please correct the errors below.')
    else:
        form = BulkPaymentForm(loans=loans)

    context = {
        'page_title': f'Bulk Payment: {member.full_name if member else group.name}',
        'target_form': target_form,
        'form': form,
        'loans': loans,
        'member': member,
        'group': group,
    }
    return render(request, 'payments/bulk.html', context)


def _post_bulk_lines(user, data):
    """
    Post every (loan, amount) line as its own payment, all or nothing.

    Raises:
        ValueError: naming the loan whose payment was refused
    """
    posted = []
    when = timezone.now()
    with transaction.atomic():
        for loan, amount in data['lines']:
            try:
                payment = loan.record_payment(
                    amount=amount,
                    received_by=user,
                    payment_date=data.get('payment_date'),
                    payment_reference=bulk_payment_reference(loan.member.member_no, when),
                    payment_method=data['payment_method'],
                    notes=data.get('notes', ''),
                )
            except ValueError as e:
                logger.warning(f"Bulk line refused on {loan.loan_number}: {e}")
                raise ValueError(f"{loan.loan_number}: {e}") from e
            except Exception:
                logger.error(f"Bulk payment failed on {loan.loan_number}", exc_info=True)
                raise
            posted.append(payment)

    logger.info(f"Bulk payment of {len(posted)} line(s) posted by {user}")
    return posted


# =============================================================================
# PAYMENT LEDGER
# =============================================================================

@login_required
def payment_list(request):
    """Payments within visibility, filtered by date range and method"""
    checker = PermissionChecker(request.user)

    if not checker.has_any_permission('transactions.view', 'loans.receive_payments'):
        raise PermissionDenied

    payments = checker.filter_payments(LoanPayment.objects.all())

    range_form = DateRangeForm(request.GET or None, checker=checker)
    start_date, end_date = range_form.get_range()
    payments = payments.between(start_date, end_date)

    if range_form.is_valid() and range_form.cleaned_data.get('branch'):
        payments = payments.filter(loan__branch=range_form.cleaned_data['branch'])

    method = request.GET.get('payment_method')
    if method:
        payments = payments.filter(payment_method=method)

    if request.GET.get('bulk') == '1':
        payments = payments.bulk()

    search = request.GET.get('search', '').strip()
    if search:
        payments = payments.filter(
            Q(payment_reference__icontains=search) |
            Q(loan__loan_number__icontains=search) |
            Q(loan__member__full_name__icontains=search)
        )

    payments = payments.select_related('loan', 'loan__member', 'created_by').order_by('-payment_date', '-created_at')

    export_format = request.GET.get('export')
    if export_format in ('csv', 'xlsx'):
        if not checker.can_export():
            raise PermissionDenied
        columns = ['Date', 'Reference', 'Loan No', 'Member', 'Amount', 'Interest', 'Principal',
                   'Method', 'Received By']
        rows = [
            [p.payment_date, p.payment_reference, p.loan.loan_number, p.loan.member.full_name,
             p.amount, p.interest_portion, p.principal_portion, p.get_payment_method_display(),
             p.created_by.full_name if p.created_by else '']
            for p in payments
        ]
        if export_format == 'csv':
            return export_to_csv(rows, columns, filename='payments.csv')
        return export_rows_excel(
            'Payments', columns, rows, 'payments.xlsx',
            subtitle=f'{start_date} to {end_date}',
            money_columns=['Amount', 'Interest', 'Principal'],
        )

    paginator = Paginator(payments, get_setting('PAGE_SIZE'))
    page_obj = paginator.get_page(request.GET.get('page'))

    context = {
        'page_title': 'Payments',
        'payments': page_obj,
        'range_form': range_form,
        'totals': payments.totals(),
        'payment_methods': PAYMENT_METHOD_CHOICES,
        'selected_method': method or '',
        'search': search,
        'start_date': start_date,
        'end_date': end_date,
        'checker': checker,
        'total_count': paginator.count,
    }
    return render(request, 'payments/list.html', context)
