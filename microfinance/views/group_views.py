"""
Group Views
===========

Lending group CRUD with role-based permissions
"""

import logging

from django.shortcuts import render, redirect, get_object_or_404
from django.contrib.auth.decorators import login_required
from django.contrib import messages
from django.core.exceptions import PermissionDenied
from django.core.paginator import Paginator

from microfinance.models import MemberGroup, Loan
from microfinance.forms.group_forms import MemberGroupForm, MemberGroupSearchForm
from microfinance.forms.branch_forms import DeactivateForm
from microfinance.permissions import PermissionChecker
from microfinance.utils.helpers import get_setting

logger = logging.getLogger(__name__)


# =============================================================================
# GROUP LIST VIEW
# =============================================================================

@login_required
def group_list(request):
    """
    Display paginated list of groups

    Permissions:
    - Admin/Super Admin: All groups
    - Branch staff: Groups in their branch
    - Loan Officer: Groups they run
    """
    checker = PermissionChecker(request.user)

    if not checker.has_permission('groups.view'):
        raise PermissionDenied

    groups = checker.filter_groups(MemberGroup.objects.all())

    search_form = MemberGroupSearchForm(request.GET or None, checker=checker)
    if search_form.is_valid():
        search = search_form.cleaned_data.get('search')
        if search:
            groups = groups.search(search)

        status = search_form.cleaned_data.get('status')
        if status == 'active':
            groups = groups.active()
        elif status == 'inactive':
            groups = groups.inactive()

        meeting_day = search_form.cleaned_data.get('meeting_day')
        if meeting_day:
            groups = groups.by_meeting_day(meeting_day)

        branch = search_form.cleaned_data.get('branch')
        if branch:
            groups = groups.for_branch(branch)

    groups = groups.select_related('branch', 'loan_officer').order_by('name')

    paginator = Paginator(groups, get_setting('PAGE_SIZE'))
    page_obj = paginator.get_page(request.GET.get('page'))

    context = {
        'page_title': 'Groups',
        'groups': page_obj,
        'search_form': search_form,
        'checker': checker,
        'total_count': paginator.count,
    }

    return render(request, 'groups/list.html', context)


# =============================================================================
# GROUP DETAIL VIEW
# =============================================================================

@login_required
def group_detail(request, group_id):
    checker = PermissionChecker(request.user)

    group = get_object_or_404(
        MemberGroup.objects.select_related('branch', 'loan_officer', 'contact_person'),
        id=group_id
    )

    if not checker.can_view_group(group):
        messages.error(request, 'You do not have permission to view this group.')
        raise PermissionDenied

    members = checker.filter_members(group.members.all()).order_by('full_name')
    loans = checker.filter_loans(Loan.objects.filter(member__group=group)).collectable()

    context = {
        'page_title': f'Group: {group.name}',
        'group': group,
        'members': members,
        'collectable_loans': loans.select_related('member'),
        'statistics': group.get_statistics(),
        'checker': checker,
    }

    return render(request, 'groups/detail.html', context)


# =============================================================================
# GROUP CREATE / UPDATE
# =============================================================================

@login_required
def group_create(request):
    checker = PermissionChecker(request.user)

    if not checker.has_permission('groups.create'):
        messages.error(request, 'You do not have permission to create groups.')
        raise PermissionDenied

    if request.method == 'POST':
        form = MemberGroupForm(request.POST, checker=checker)

        if form.is_valid():
            group = form.save()
            logger.info(f"Group {group.code} created by {request.user.email}")
            messages.success(request, f'Group {group.name} ({group.code}) created successfully!')
            return redirect('microfinance:group_detail', group_id=group.id)
        messages.error(request, 'Please correct the errors below.')
    else:
        form = MemberGroupForm(checker=checker)

    context = {
        'page_title': 'Create Group',
        'form': form,
        'is_create': True,
    }

    return render(request, 'groups/form.html', context)


@login_required
def group_update(request, group_id):
    checker = PermissionChecker(request.user)

    group = get_object_or_404(MemberGroup, id=group_id)

    if not checker.can_edit_group(group):
        messages.error(request, 'You do not have permission to edit this group.')
        raise PermissionDenied

    if request.method == 'POST':
        form = MemberGroupForm(request.POST, instance=group, checker=checker)

        if form.is_valid():
            group = form.save()
            messages.success(request, f'Group {group.name} updated successfully!')
            return redirect('microfinance:group_detail', group_id=group.id)
        messages.error(request, 'Please correct the errors below.')
    else:
        form = MemberGroupForm(instance=group, checker=checker)

    context = {
        'page_title': f'Edit Group: {group.name}',
        'form': form,
        'group': group,
        'is_create': False,
    }

    return render(request, 'groups/form.html', context)


# =============================================================================
# GROUP ACTIVATE / DEACTIVATE / DELETE
# =============================================================================

@login_required
def group_activate(request, group_id):
    checker = PermissionChecker(request.user)

    group = get_object_or_404(MemberGroup, id=group_id)

    if not checker.has_permission('groups.activate') or not checker.can_view_group(group):
        raise PermissionDenied

    if group.is_active:
        messages.warning(request, 'This group is already active.')
        return redirect('microfinance:group_detail', group_id=group.id)

    if request.method == 'POST':
        group.activate()
        messages.success(request, f'Group {group.name} activated.')
        return redirect('microfinance:group_detail', group_id=group.id)

    context = {
        'page_title': f'Activate Group: {group.name}',
        'object': group,
        'action': 'activate',
    }
    return render(request, 'shared/confirm.html', context)


@login_required
def group_deactivate(request, group_id):
    checker = PermissionChecker(request.user)

    group = get_object_or_404(MemberGroup, id=group_id)

    if not checker.has_permission('groups.activate') or not checker.can_view_group(group):
        raise PermissionDenied

    if not group.is_active:
        messages.warning(request, 'This group is already inactive.')
        return redirect('microfinance:group_detail', group_id=group.id)

    form = DeactivateForm(request.POST or None)
    if request.method == 'POST' and form.is_valid():
        group.deactivate(request.user, form.cleaned_data['reason'])
        messages.success(request, f'Group {group.name} deactivated.')
        return redirect('microfinance:group_detail', group_id=group.id)

    context = {
        'page_title': f'Deactivate Group: {group.name}',
        'object': group,
        'form': form,
        'action': 'deactivate',
    }
    return render(request, 'shared/confirm.html', context)


@login_required
def group_delete(request, group_id):
    checker = PermissionChecker(request.user)

    group = get_object_or_404(MemberGroup, id=group_id)

    if not checker.has_permission('groups.delete') or not checker.can_view_group(group):
        messages.error(request, 'You do not have permission to delete groups.')
        raise PermissionDenied

    if not group.can_be_deleted():
        messages.error(request, 'Cannot delete a group that still has active members.')
        return redirect('microfinance:group_detail', group_id=group.id)

    if request.method == 'POST':
        group_name = group.name
        group.delete(deleted_by=request.user)
        logger.info(f"Group {group.code} deleted by {request.user.email}")
        messages.success(request, f'Group {group_name} deleted.')
        return redirect('microfinance:group_list')

    context = {
        'page_title': f'Delete Group: {group.name}',
        'object': group,
        'action': 'delete',
    }
    return render(request, 'shared/confirm.html', context)
