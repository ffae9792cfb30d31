"""
Loan Views
==========

Loan applications, approval workflow, default/write-off and deletion.
Repayments live in payment_views.
"""

import logging

from django.shortcuts import render, redirect, get_object_or_404
from django.contrib.auth.decorators import login_required
from django.contrib import messages
from django.core.exceptions import PermissionDenied, ValidationError
from django.core.paginator import Paginator
from django.db.models import Q

from microfinance.models import Loan, Member
from microfinance.forms.loan_forms import (
    LoanCreateForm,
    LoanRejectForm,
    LoanWriteOffForm,
    LoanSearchForm,
    LoanPaymentForm,
)
from microfinance.forms.member_forms import CommunicationLogForm
from microfinance.permissions import PermissionChecker
from microfinance.utils.helpers import get_setting
from microfinance.utils.excel_export import export_to_csv, export_rows_excel

logger = logging.getLogger(__name__)


def _validation_message(error):
    if hasattr(error, 'message_dict'):
        return '; '.join(msg for msgs in error.message_dict.values() for msg in msgs)
    return '; '.join(error.messages)


def _get_visible_loan(checker, loan_id):
    loan = get_object_or_404(
        Loan.objects.select_related('member', 'branch', 'group', 'loan_officer', 'created_by', 'approved_by'),
        id=loan_id
    )
    if not checker.can_view_loan(loan):
        raise PermissionDenied
    return loan


# =============================================================================
# LOAN LIST VIEW
# =============================================================================

@login_required
def loan_list(request):
    """
    Loans visible to the user with search, filters and export

    Permissions:
    - Admin/Super Admin: All loans
    - Branch staff: Loans of their branch
    - Loan Officer: Loans they run, created, or whose member they look after
    """
    checker = PermissionChecker(request.user)

    if not checker.has_permission('loans.view'):
        raise PermissionDenied

    loans = checker.filter_loans(Loan.objects.all())

    search_form = LoanSearchForm(request.GET or None, checker=checker)
    if search_form.is_valid():
        search = search_form.cleaned_data.get('search')
        if search:
            loans = loans.filter(
                Q(loan_number__icontains=search) |
                Q(member__full_name__icontains=search) |
                Q(member__member_no__icontains=search)
            )

        for field in ('status', 'approval_status', 'loan_program'):
            value = search_form.cleaned_data.get(field)
            if value:
                loans = loans.filter(**{field: value})

        branch = search_form.cleaned_data.get('branch')
        if branch:
            loans = loans.for_branch(branch)

        date_from = search_form.cleaned_data.get('date_from')
        if date_from:
            loans = loans.filter(issue_date__gte=date_from)

        date_to = search_form.cleaned_data.get('date_to')
        if date_to:
            loans = loans.filter(issue_date__lte=date_to)

    loans = loans.select_related('member', 'branch', 'loan_officer')

    export_format = request.GET.get('export')
    if export_format in ('csv', 'xlsx'):
        if not checker.can_export():
            raise PermissionDenied
        columns = ['Loan No', 'Member', 'Member No', 'Branch', 'Program', 'Issue Date', 'Principal',
                   'Total', 'Paid', 'Balance', 'Status', 'Approval']
        rows = [
            [l.loan_number, l.member.full_name, l.member.member_no, l.branch.name, l.get_loan_program_display(),
             l.issue_date, l.principal_amount, l.total_amount, l.total_paid, l.current_balance,
             l.get_status_display(), l.get_approval_status_display()]
            for l in loans
        ]
        if export_format == 'csv':
            return export_to_csv(rows, columns, filename='loans.csv')
        return export_rows_excel('Loans', columns, rows, 'loans.xlsx',
                                 money_columns=['Principal', 'Total', 'Paid', 'Balance'])

    paginator = Paginator(loans, get_setting('PAGE_SIZE'))
    page_obj = paginator.get_page(request.GET.get('page'))

    context = {
        'page_title': 'Loans',
        'loans': page_obj,
        'search_form': search_form,
        'summary': checker.filter_loans(Loan.objects.all()).get_portfolio_summary(),
        'checker': checker,
        'total_count': paginator.count,
    }

    return render(request, 'loans/list.html', context)


@login_required
def loan_pending_approvals(request):
    """Applications waiting for a decision"""
    checker = PermissionChecker(request.user)

    if not checker.can_approve_loans():
        raise PermissionDenied

    loans = checker.filter_loans(Loan.objects.all()).pending_approval()
    loans = loans.select_related('member', 'branch', 'created_by').order_by('created_at')

    context = {
        'page_title': 'Pending Approvals',
        'loans': loans,
        'checker': checker,
    }
    return render(request, 'loans/pending.html', context)


# =============================================================================
# LOAN DETAIL VIEW
# =============================================================================

@login_required
def loan_detail(request, loan_id):
    """Loan terms, instalment schedule, payments and communication log"""
    checker = PermissionChecker(request.user)
    loan = _get_visible_loan(checker, loan_id)

    installments = list(loan.installments.order_by('installment_number'))
    can_pay, pay_block_reason = loan.can_receive_payment()

    context = {
        'page_title': f'Loan {loan.loan_number}',
        'loan': loan,
        'installments': [
            {'installment': i, 'status': i.display_status()} for i in installments
        ],
        'payments': loan.payments.select_related('created_by').order_by('-payment_date', '-created_at'),
        'communication_logs': loan.communication_logs.select_related('officer'),
        'communication_form': CommunicationLogForm(member=loan.member, initial={'loan': loan}),
        'payment_form': LoanPaymentForm(loan=loan) if can_pay else None,
        'pay_block_reason': pay_block_reason,
        'overdue_amount': loan.get_overdue_amount(),
        'days_overdue': loan.get_days_overdue(),
        'assets': loan.assets.all(),
        'checker': checker,
        'can_approve': loan.is_pending_approval and checker.can_approve_loan(loan),
    }

    return render(request, 'loans/detail.html', context)


# =============================================================================
# LOAN CREATE / EDIT
# =============================================================================

@login_required
def loan_create(request):
    """
    New loan application

    Permissions: loans.create. Roles that can approve get an active loan
    straight away; everyone else submits it for approval.
    """
    checker = PermissionChecker(request.user)

    if not checker.can_create_loans():
        messages.error(request, 'You do not have permission to create loans.')
        raise PermissionDenied

    initial = {}
    member_id = request.GET.get('member')
    if member_id:
        initial['member'] = member_id

    if request.method == 'POST':
        form = LoanCreateForm(request.POST, checker=checker)

        if form.is_valid():
            data = form.cleaned_data
            try:
                loan = Loan.create_loan(
                    member=data['member'],
                    principal_amount=data['principal_amount'],
                    created_by=request.user,
                    loan_program=data['loan_program'],
                    installment_type=data['installment_type'],
                    issue_date=data.get('issue_date'),
                    loan_officer=data.get('loan_officer'),
                    notes=data.get('notes', ''),
                )
            except ValidationError as e:
                form.add_error(None, _validation_message(e))
                messages.error(request, 'The loan could not be created.')
            else:
                if loan.is_approved:
                    messages.success(request, f'Loan {loan.loan_number} created and activated.')
                else:
                    messages.success(request, f'Loan {loan.loan_number} submitted for approval.')
                return redirect('microfinance:loan_detail', loan_id=loan.id)
        else:
            messages.error(request, 'Please correct the errors below.')
    else:
        form = LoanCreateForm(initial=initial, checker=checker)

    context = {
        'page_title': 'New Loan',
        'form': form,
    }

    return render(request, 'loans/form.html', context)


@login_required
def loan_update(request, loan_id):
    """
    Change the terms of a pending application that has no payments.
    The schedule is rebuilt from the new terms.
    """
    checker = PermissionChecker(request.user)
    loan = _get_visible_loan(checker, loan_id)

    if not checker.can_edit_loan(loan):
        messages.error(request, 'Only pending loans without payments can be edited.')
        raise PermissionDenied

    initial = {
        'member': loan.member_id,
        'principal_amount': loan.principal_amount,
        'loan_program': loan.loan_program,
        'installment_type': loan.installment_type,
        'issue_date': loan.issue_date,
        'loan_officer': loan.loan_officer_id,
        'notes': loan.notes,
    }

    if request.method == 'POST':
        form = LoanCreateForm(request.POST, initial=initial, checker=checker)
        form.fields['member'].disabled = True

        if form.is_valid():
            data = form.cleaned_data
            try:
                loan.update_terms(
                    request.user,
                    principal_amount=data['principal_amount'],
                    loan_program=data['loan_program'],
                    installment_type=data['installment_type'],
                    issue_date=data.get('issue_date'),
                    loan_officer=data.get('loan_officer'),
                    notes=data.get('notes', ''),
                )
            except ValidationError as e:
                form.add_error(None, _validation_message(e))
            else:
                messages.success(request, f'Loan {loan.loan_number} updated.')
                return redirect('microfinance:loan_detail', loan_id=loan.id)
    else:
        form = LoanCreateForm(initial=initial, checker=checker)
        form.fields['member'].disabled = True

    context = {
        'page_title': f'Edit Loan {loan.loan_number}',
        'form': form,
        'loan': loan,
    }
    return render(request, 'loans/form.html', context)


# =============================================================================
# APPROVAL WORKFLOW
# =============================================================================

@login_required
def loan_approve(request, loan_id):
    checker = PermissionChecker(request.user)
    loan = _get_visible_loan(checker, loan_id)

    if not checker.can_approve_loan(loan):
        messages.error(request, 'You cannot approve this loan.')
        raise PermissionDenied

    if request.method == 'POST':
        try:
            loan.approve(request.user)
        except ValueError as e:
            messages.error(request, str(e))
        else:
            messages.success(request, f'Loan {loan.loan_number} approved.')
        return redirect('microfinance:loan_detail', loan_id=loan.id)

    context = {
        'page_title': f'Approve Loan {loan.loan_number}',
        'object': loan,
        'action': 'approve',
    }
    return render(request, 'shared/confirm.html', context)


@login_required
def loan_reject(request, loan_id):
    checker = PermissionChecker(request.user)
    loan = _get_visible_loan(checker, loan_id)

    if not checker.can_approve_loan(loan):
        messages.error(request, 'You cannot reject this loan.')
        raise PermissionDenied

    if request.method == 'POST':
        form = LoanRejectForm(request.POST)
        if form.is_valid():
            try:
                loan.reject(request.user, form.cleaned_data['reason'])
            except ValueError as e:
                messages.error(request, str(e))
            else:
                messages.success(request, f'Loan {loan.loan_number} rejected.')
            return redirect('microfinance:loan_detail', loan_id=loan.id)
    else:
        form = LoanRejectForm()

    context = {
        'page_title': f'Reject Loan {loan.loan_number}',
        'object': loan,
        'form': form,
        'action': 'reject',
    }
    return render(request, 'shared/confirm.html', context)


@login_required
def loan_mark_defaulted(request, loan_id):
    checker = PermissionChecker(request.user)
    loan = _get_visible_loan(checker, loan_id)

    if not checker.has_any_permission('loans.write_off', 'loans.approve'):
        raise PermissionDenied

    if request.method == 'POST':
        try:
            loan.mark_defaulted(request.user)
        except ValueError as e:
            logger.warning(f"Mark defaulted refused for {loan.loan_number}: {e}")
            messages.error(request, str(e))
        else:
            messages.success(request, f'Loan {loan.loan_number} marked as defaulted.')
        return redirect('microfinance:loan_detail', loan_id=loan.id)

    context = {
        'page_title': f'Mark Loan {loan.loan_number} Defaulted',
        'object': loan,
        'action': 'mark defaulted',
    }
    return render(request, 'shared/confirm.html', context)


@login_required
def loan_write_off(request, loan_id):
    """Move a defaulted loan to bad debt"""
    checker = PermissionChecker(request.user)
    loan = _get_visible_loan(checker, loan_id)

    if not checker.can_write_off():
        messages.error(request, 'You do not have permission to write off loans.')
        raise PermissionDenied

    if request.method == 'POST':
        form = LoanWriteOffForm(request.POST)
        if form.is_valid():
            try:
                loan.write_off(request.user, form.cleaned_data['notes'])
            except ValueError as e:
                logger.warning(f"Write-off refused for {loan.loan_number}: {e}")
                messages.error(request, str(e))
            else:
                messages.success(request, f'Loan {loan.loan_number} written off as bad debt.')
            return redirect('microfinance:loan_detail', loan_id=loan.id)
    else:
        form = LoanWriteOffForm()

    context = {
        'page_title': f'Write Off Loan {loan.loan_number}',
        'object': loan,
        'form': form,
        'action': 'write off',
    }
    return render(request, 'shared/confirm.html', context)


@login_required
def loan_delete(request, loan_id):
    """Soft delete; payments are kept"""
    checker = PermissionChecker(request.user)
    loan = _get_visible_loan(checker, loan_id)

    if not checker.can_delete_loans():
        messages.error(request, 'You do not have permission to delete loans.')
        raise PermissionDenied

    if request.method == 'POST':
        loan.delete(deleted_by=request.user)
        messages.success(request, f'Loan {loan.loan_number} deleted.')
        return redirect('microfinance:loan_list')

    context = {
        'page_title': f'Delete Loan {loan.loan_number}',
        'object': loan,
        'action': 'delete',
    }
    return render(request, 'shared/confirm.html', context)


@login_required
def member_loan_eligibility(request, member_id):
    """Where the member sits on the ladder and what they may borrow next"""
    checker = PermissionChecker(request.user)

    member = get_object_or_404(Member, id=member_id)
    if not checker.can_view_member(member):
        raise PermissionDenied

    amount = request.GET.get('amount')
    program = request.GET.get('loan_program', 'small_loan')
    result = None
    if amount:
        try:
            eligible, message, level = member.check_loan_eligibility(amount, program, approver_role=checker.role)
        except (ValueError, ArithmeticError):
            eligible, message, level = False, 'Enter a valid amount', None
        result = {'eligible': eligible, 'message': message, 'level': level}

    context = {
        'page_title': f'Eligibility: {member.full_name}',
        'member': member,
        'history': member.get_loan_history_summary(),
        'result': result,
        'amount': amount,
        'loan_program': program,
    }
    return render(request, 'loans/eligibility.html', context)
