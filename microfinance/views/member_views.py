"""
Member Views
============

Member registration, profile, reactivation, fees and communication logs
"""

import logging

from django.shortcuts import render, redirect, get_object_or_404
from django.contrib.auth.decorators import login_required
from django.contrib import messages
from django.core.exceptions import PermissionDenied, ValidationError
from django.core.paginator import Paginator
from django.db import transaction
from django.utils import timezone

from microfinance.models import Member, Loan, LoanPayment, LoanIncrementLevel
from microfinance.forms.member_forms import (
    MemberForm,
    MemberSearchForm,
    MemberReactivateForm,
    RegistrationFeeForm,
    CommunicationLogForm,
)
from microfinance.permissions import PermissionChecker
from microfinance.utils.helpers import get_setting
from microfinance.utils.excel_export import export_to_csv, export_rows_excel

logger = logging.getLogger(__name__)


# =============================================================================
# MEMBER LIST VIEW
# =============================================================================

@login_required
def member_list(request):
    """
    Paginated member list with search and filters

    Permissions:
    - Admin/Super Admin: All members
    - Branch staff: Members of their branch
    - Loan Officer: Members assigned to them
    """
    checker = PermissionChecker(request.user)

    if not checker.has_permission('members.view'):
        raise PermissionDenied

    members = checker.filter_members(Member.objects.all())

    search_form = MemberSearchForm(request.GET or None, checker=checker)
    if search_form.is_valid():
        members = members.search(search_form.cleaned_data.get('search'))

        status = search_form.cleaned_data.get('status')
        if status:
            members = members.filter(status=status)

        branch = search_form.cleaned_data.get('branch')
        if branch:
            members = members.filter(branch=branch)

        group = search_form.cleaned_data.get('group')
        if group:
            members = members.filter(group=group)

    members = members.select_related('branch', 'group', 'assigned_officer').order_by('full_name')

    export_format = request.GET.get('export')
    if export_format in ('csv', 'xlsx'):
        if not checker.can_export():
            raise PermissionDenied
        columns = ['Member No', 'Name', 'ID Number', 'Phone', 'Branch', 'Group', 'Status']
        rows = [
            [m.member_no, m.full_name, m.id_number, m.phone_number, m.branch.name,
             m.group.name if m.group else '', m.get_status_display()]
            for m in members
        ]
        if export_format == 'csv':
            return export_to_csv(rows, columns, filename='members.csv')
        return export_rows_excel('Members', columns, rows, 'members.xlsx')

    paginator = Paginator(members, get_setting('PAGE_SIZE'))
    page_obj = paginator.get_page(request.GET.get('page'))

    context = {
        'page_title': 'Members',
        'members': page_obj,
        'search_form': search_form,
        'stats': checker.filter_members(Member.objects.all()).get_statistics(),
        'checker': checker,
        'total_count': paginator.count,
    }

    return render(request, 'members/list.html', context)


# =============================================================================
# MEMBER DETAIL VIEW
# =============================================================================

@login_required
def member_detail(request, member_id):
    """
    Member profile: loans, payments, ladder position and communication logs
    """
    checker = PermissionChecker(request.user)

    member = get_object_or_404(
        Member.objects.select_related('branch', 'group', 'assigned_officer'),
        id=member_id
    )

    if not checker.can_view_member(member):
        messages.error(request, 'You do not have permission to view this member.')
        raise PermissionDenied

    loans = checker.filter_loans(Loan.objects.filter(member=member)).order_by('-issue_date')
    payments = LoanPayment.objects.filter(loan__member=member).select_related('loan').order_by('-payment_date')[:10]

    history = member.get_loan_history_summary()
    ladder = LoanIncrementLevel.get_ladder()
    next_level = history['highest_level'] + 1

    context = {
        'page_title': f'Member: {member.full_name}',
        'member': member,
        'loans': loans,
        'recent_payments': payments,
        'history': history,
        'next_level': next_level if next_level in ladder else None,
        'next_level_amount': ladder.get(next_level),
        'communication_logs': member.communication_logs.select_related('officer', 'loan')[:10],
        'communication_form': CommunicationLogForm(member=member),
        'checker': checker,
    }

    return render(request, 'members/detail.html', context)


# =============================================================================
# MEMBER CREATE / UPDATE
# =============================================================================

@login_required
def member_create(request):
    """
    Register a new member

    Permissions: members.create
    """
    checker = PermissionChecker(request.user)

    if not checker.has_permission('members.create'):
        messages.error(request, 'You do not have permission to register members.')
        raise PermissionDenied

    if request.method == 'POST':
        form = MemberForm(request.POST, checker=checker)

        if form.is_valid():
            member = form.save(commit=False)
            member.created_by = request.user
            if member.registration_fee_paid:
                member.registration_fee_paid_at = timezone.localdate()
            if checker.is_loan_officer() and not member.assigned_officer_id:
                member.assigned_officer = request.user
            member.save()

            logger.info(f"Member {member.member_no} registered by {request.user.email}")
            messages.success(request, f'Member {member.full_name} ({member.member_no}) registered successfully!')
            return redirect('microfinance:member_detail', member_id=member.id)
        messages.error(request, 'Please correct the errors below.')
    else:
        form = MemberForm(checker=checker)

    context = {
        'page_title': 'Register Member',
        'form': form,
        'is_create': True,
    }

    return render(request, 'members/form.html', context)


@login_required
def member_update(request, member_id):
    checker = PermissionChecker(request.user)

    member = get_object_or_404(Member, id=member_id)

    if not checker.can_edit_member(member):
        messages.error(request, 'You do not have permission to edit this member.')
        raise PermissionDenied

    was_paid = member.registration_fee_paid

    if request.method == 'POST':
        form = MemberForm(request.POST, instance=member, checker=checker)

        if form.is_valid():
            member = form.save(commit=False)
            if member.registration_fee_paid and not was_paid:
                member.registration_fee_paid_at = timezone.localdate()
            member.save()
            messages.success(request, f'Member {member.full_name} updated successfully!')
            return redirect('microfinance:member_detail', member_id=member.id)
        messages.error(request, 'Please correct the errors below.')
    else:
        form = MemberForm(instance=member, checker=checker)

    context = {
        'page_title': f'Edit Member: {member.full_name}',
        'form': form,
        'member': member,
        'is_create': False,
    }

    return render(request, 'members/form.html', context)


@login_required
def member_delete(request, member_id):
    """Soft delete a member with no outstanding balance"""
    checker = PermissionChecker(request.user)

    member = get_object_or_404(Member, id=member_id)

    if not checker.has_permission('members.delete') or not checker.can_view_member(member):
        messages.error(request, 'You do not have permission to delete members.')
        raise PermissionDenied

    if member.has_outstanding_balance():
        messages.error(request, 'Cannot delete a member with an outstanding loan balance.')
        return redirect('microfinance:member_detail', member_id=member.id)

    if request.method == 'POST':
        member.delete(deleted_by=request.user)
        logger.info(f"Member {member.member_no} deleted by {request.user.email}")
        messages.success(request, f'Member {member.full_name} deleted.')
        return redirect('microfinance:member_list')

    context = {
        'page_title': f'Delete Member: {member.full_name}',
        'object': member,
        'action': 'delete',
    }
    return render(request, 'shared/confirm.html', context)


# =============================================================================
# REACTIVATION & FEES
# =============================================================================

@login_required
@transaction.atomic
def member_reactivate(request, member_id):
    """Dormant members are reactivated on payment of the activation fee"""
    checker = PermissionChecker(request.user)

    member = get_object_or_404(Member, id=member_id)

    if not checker.can_edit_member(member):
        messages.error(request, 'You do not have permission to reactivate this member.')
        raise PermissionDenied

    if request.method == 'POST':
        form = MemberReactivateForm(request.POST)
        if form.is_valid():
            ok, message = member.reactivate(
                request.user,
                form.cleaned_data['fee_amount'],
                form.cleaned_data['notes'],
            )
            if ok:
                messages.success(request, message)
                return redirect('microfinance:member_detail', member_id=member.id)
            messages.error(request, message)
    else:
        form = MemberReactivateForm()

    context = {
        'page_title': f'Reactivate Member: {member.full_name}',
        'member': member,
        'form': form,
    }
    return render(request, 'members/reactivate.html', context)


@login_required
def member_registration_fee(request, member_id):
    checker = PermissionChecker(request.user)

    member = get_object_or_404(Member, id=member_id)

    if not checker.can_edit_member(member):
        raise PermissionDenied

    if request.method != 'POST':
        return redirect('microfinance:member_detail', member_id=member.id)

    form = RegistrationFeeForm(request.POST)
    if form.is_valid():
        ok, message = member.pay_registration_fee(
            form.cleaned_data['amount'],
            form.cleaned_data.get('paid_on'),
        )
        if ok:
            logger.info(f"Registration fee recorded for {member.member_no} by {request.user.email}")
            messages.success(request, message)
        else:
            messages.error(request, message)
    else:
        messages.error(request, 'Enter a valid fee amount.')

    return redirect('microfinance:member_detail', member_id=member.id)


# =============================================================================
# COMMUNICATION LOG
# =============================================================================

@login_required
def member_log_communication(request, member_id):
    """Log a call/visit/SMS against a member (optionally one of their loans)"""
    checker = PermissionChecker(request.user)

    member = get_object_or_404(Member, id=member_id)

    if not checker.has_permission('communications.log') or not checker.can_view_member(member):
        raise PermissionDenied

    if request.method != 'POST':
        return redirect('microfinance:member_detail', member_id=member.id)

    form = CommunicationLogForm(request.POST, member=member)
    if form.is_valid():
        log = form.save(commit=False)
        log.member = member
        log.officer = request.user
        try:
            log.full_clean()
        except ValidationError as e:
            messages.error(request, '; '.join(e.messages))
            return redirect('microfinance:member_detail', member_id=member.id)
        log.save()
        messages.success(request, 'Communication logged.')
    else:
        messages.error(request, 'Could not log communication: ' + '; '.join(
            str(error) for errors in form.errors.values() for error in errors
        ))

    next_url = request.POST.get('next')
    if next_url == 'loan' and form.is_valid() and form.cleaned_data.get('loan'):
        return redirect('microfinance:loan_detail', loan_id=form.cleaned_data['loan'].id)
    return redirect('microfinance:member_detail', member_id=member.id)
