"""
Branch Views
============

Branch register, portfolio figures and the open/close lifecycle.
Admins see every branch; branch-scoped roles see their own.
"""

import logging

from django.shortcuts import render, redirect, get_object_or_404
from django.contrib.auth.decorators import login_required
from django.contrib import messages
from django.core.exceptions import PermissionDenied
from django.core.paginator import Paginator

from microfinance.models import Branch
from microfinance.forms.branch_forms import BranchForm, BranchSearchForm, DeactivateForm
from microfinance.permissions import PermissionChecker
from microfinance.utils.helpers import get_setting
from microfinance.utils.excel_export import export_to_csv, export_rows_excel

logger = logging.getLogger(__name__)


def _get_visible_branch(checker, branch_id):
    branch = get_object_or_404(Branch, id=branch_id)
    if not checker.can_view_branch(branch):
        raise PermissionDenied
    return branch


def _refuse(request, branch, blockers, action):
    messages.error(request, f'Cannot {action} {branch.name}: ' + '; '.join(blockers) + '.')
    return redirect('microfinance:branch_detail', branch_id=branch.id)


# =============================================================================
# REGISTER
# =============================================================================

@login_required
def branch_list(request):
    checker = PermissionChecker(request.user)

    if not checker.has_permission('branches.view'):
        raise PermissionDenied

    branches = checker.filter_branches(Branch.objects.all())

    search_form = BranchSearchForm(request.GET or None)
    if search_form.is_valid():
        branches = branches.search(search_form.cleaned_data.get('search'))
        status = search_form.cleaned_data.get('status')
        if status == 'active':
            branches = branches.active()
        elif status == 'inactive':
            branches = branches.inactive()

    branches = branches.with_portfolio().order_by('name')

    export_format = request.GET.get('export')
    if export_format in ('csv', 'xlsx'):
        if not checker.can_export():
            raise PermissionDenied
        columns = ['Code', 'Name', 'Location', 'Phone', 'Members', 'Loans', 'Outstanding', 'Status']
        rows = [
            [b.code, b.name, b.location, b.phone, b.member_count, b.loan_count, b.outstanding,
             'Active' if b.is_active else 'Inactive']
            for b in branches
        ]
        if export_format == 'csv':
            return export_to_csv(rows, columns, filename='branches.csv')
        return export_rows_excel('Branches', columns, rows, 'branches.xlsx', money_columns=['Outstanding'])

    paginator = Paginator(branches, get_setting('PAGE_SIZE'))
    page_obj = paginator.get_page(request.GET.get('page'))

    context = {
        'page_title': 'Branches',
        'branches': page_obj,
        'search_form': search_form,
        'checker': checker,
        'total_count': paginator.count,
    }
    return render(request, 'branches/list.html', context)


@login_required
def branch_detail(request, branch_id):
    checker = PermissionChecker(request.user)
    branch = _get_visible_branch(checker, branch_id)

    context = {
        'page_title': f'Branch: {branch.name}',
        'branch': branch,
        'statistics': branch.get_statistics(),
        'staff': branch.users.filter(is_active=True).order_by('full_name'),
        'groups': branch.groups.order_by('name')[:10],
        'recent_members': branch.members.order_by('-created_at')[:10],
        'checker': checker,
    }
    return render(request, 'branches/detail.html', context)


# =============================================================================
# CREATE / EDIT
# =============================================================================

@login_required
def branch_create(request):
    checker = PermissionChecker(request.user)

    if not checker.has_permission('branches.create'):
        messages.error(request, 'You do not have permission to create branches.')
        raise PermissionDenied

    form = BranchForm(request.POST or None)
    if request.method == 'POST':
        if form.is_valid():
            branch = form.save()
            logger.info(f"Branch {branch.code} opened by {request.user.email}")
            messages.success(request, f'Branch {branch.name} ({branch.code}) created.')
            return redirect('microfinance:branch_detail', branch_id=branch.id)
        messages.error(request, 'Please correct the errors below.')

    return render(request, 'branches/form.html', {
        'page_title': 'New Branch',
        'form': form,
        'is_create': True,
    })


@login_required
def branch_update(request, branch_id):
    checker = PermissionChecker(request.user)
    branch = _get_visible_branch(checker, branch_id)

    if not checker.can_manage_branches():
        messages.error(request, 'You do not have permission to edit branches.')
        raise PermissionDenied

    form = BranchForm(request.POST or None, instance=branch)
    if request.method == 'POST':
        if form.is_valid():
            branch = form.save()
            messages.success(request, f'Branch {branch.name} updated.')
            return redirect('microfinance:branch_detail', branch_id=branch.id)
        messages.error(request, 'Please correct the errors below.')

    return render(request, 'branches/form.html', {
        'page_title': f'Edit Branch: {branch.name}',
        'form': form,
        'branch': branch,
        'is_create': False,
    })


# =============================================================================
# LIFECYCLE
# =============================================================================

@login_required
def branch_activate(request, branch_id):
    checker = PermissionChecker(request.user)

    if not checker.has_permission('branches.activate'):
        raise PermissionDenied

    branch = _get_visible_branch(checker, branch_id)

    if branch.is_active:
        messages.warning(request, f'{branch.name} is already active.')
        return redirect('microfinance:branch_detail', branch_id=branch.id)

    if request.method == 'POST':
        branch.activate()
        logger.info(f"Branch {branch.code} reopened by {request.user.email}")
        messages.success(request, f'Branch {branch.name} activated.')
        return redirect('microfinance:branch_detail', branch_id=branch.id)

    return render(request, 'shared/confirm.html', {
        'page_title': f'Activate Branch: {branch.name}',
        'object': branch,
        'action': 'activate',
    })


@login_required
def branch_deactivate(request, branch_id):
    """A branch closes only once its staff and active members have moved on"""
    checker = PermissionChecker(request.user)

    if not checker.has_permission('branches.activate'):
        raise PermissionDenied

    branch = _get_visible_branch(checker, branch_id)

    if not branch.is_active:
        messages.warning(request, f'{branch.name} is already inactive.')
        return redirect('microfinance:branch_detail', branch_id=branch.id)

    blockers = branch.closure_blockers()
    if blockers:
        return _refuse(request, branch, blockers, 'deactivate')

    form = DeactivateForm(request.POST or None)
    if request.method == 'POST' and form.is_valid():
        branch.deactivate(request.user, form.cleaned_data['reason'])
        logger.info(f"Branch {branch.code} closed by {request.user.email}")
        messages.success(request, f'Branch {branch.name} deactivated.')
        return redirect('microfinance:branch_detail', branch_id=branch.id)

    return render(request, 'shared/confirm.html', {
        'page_title': f'Deactivate Branch: {branch.name}',
        'object': branch,
        'form': form,
        'action': 'deactivate',
    })


@login_required
def branch_delete(request, branch_id):
    checker = PermissionChecker(request.user)

    if not checker.has_permission('branches.delete'):
        messages.error(request, 'Only administrators can delete branches.')
        raise PermissionDenied

    branch = _get_visible_branch(checker, branch_id)

    blockers = branch.closure_blockers(deleting=True)
    if blockers:
        return _refuse(request, branch, blockers, 'delete')

    if request.method == 'POST':
        branch.delete(deleted_by=request.user)
        logger.info(f"Branch {branch.code} deleted by {request.user.email}")
        messages.success(request, f'Branch {branch.name} deleted.')
        return redirect('microfinance:branch_list')

    return render(request, 'shared/confirm.html', {
        'page_title': f'Delete Branch: {branch.name}',
        'object': branch,
        'action': 'delete',
    })
