"""
User/Staff Management Views
============================

Staff accounts, their role and branch, activation and per-user
permission grants
"""

import logging

from django.shortcuts import render, redirect, get_object_or_404
from django.contrib.auth.decorators import login_required
from django.contrib import messages
from django.core.exceptions import PermissionDenied
from django.core.paginator import Paginator
from django.db import transaction
from django.db.models import Q, Count, Sum

from microfinance.models import User, UserPermission, Member, Loan
from microfinance.forms.user_forms import (
    UserCreateForm,
    UserUpdateForm,
    UserPermissionsForm,
    UserSearchForm,
)
from microfinance.forms.branch_forms import DeactivateForm
from microfinance.permissions import PermissionChecker, ROLE_DEFAULT_PERMISSIONS, Roles
from microfinance.utils.helpers import get_setting

logger = logging.getLogger(__name__)


def _get_visible_user(checker, user_id):
    target = get_object_or_404(User.objects.select_related('branch'), id=user_id)
    if not checker.filter_users(User.objects.filter(pk=target.pk)).exists():
        raise PermissionDenied
    return target


# =============================================================================
# STAFF/USER LIST VIEW
# =============================================================================

@login_required
def user_list(request):
    """
    List staff with search and filter capabilities

    Permissions: users.view. Branch-scoped roles see their own branch.
    """
    checker = PermissionChecker(request.user)

    if not checker.has_permission('users.view'):
        messages.error(request, 'You do not have permission to view the staff list.')
        raise PermissionDenied

    users = checker.filter_users(User.objects.all()).select_related('branch').annotate(
        member_count=Count('assigned_members', filter=Q(assigned_members__deleted_at__isnull=True), distinct=True)
    ).order_by('full_name')

    form = UserSearchForm(request.GET or None)
    if form.is_valid():
        search = form.cleaned_data.get('search')
        role = form.cleaned_data.get('role')
        branch = form.cleaned_data.get('branch')
        status = form.cleaned_data.get('status')

        if search:
            users = users.filter(
                Q(full_name__icontains=search) |
                Q(email__icontains=search) |
                Q(phone__icontains=search)
            )

        if role:
            users = users.filter(role=role)

        if branch:
            users = users.filter(branch=branch)

        if status == 'active':
            users = users.filter(is_active=True)
        elif status == 'inactive':
            users = users.filter(is_active=False)

    paginator = Paginator(users, get_setting('PAGE_SIZE'))
    page_obj = paginator.get_page(request.GET.get('page'))

    context = {
        'page_title': 'Staff Management',
        'page_obj': page_obj,
        'form': form,
        'total_users': paginator.count,
        'checker': checker,
    }

    return render(request, 'users/list.html', context)


# =============================================================================
# STAFF/USER CREATE VIEW
# =============================================================================

@login_required
def user_create(request):
    """
    Create a new staff account

    Permissions: users.create
    """
    checker = PermissionChecker(request.user)

    if not checker.has_permission('users.create'):
        messages.error(request, 'You do not have permission to create staff accounts.')
        raise PermissionDenied

    if request.method == 'POST':
        form = UserCreateForm(request.POST, checker=checker)
        if form.is_valid():
            user = form.save()
            logger.info(f"User {user.email} ({user.role}) created by {request.user.email}")
            messages.success(
                request,
                f'Staff account for {user.get_full_name()} created successfully!'
            )
            return redirect('microfinance:user_detail', user_id=user.id)
        messages.error(request, 'Please correct the errors below.')
    else:
        form = UserCreateForm(checker=checker)

    context = {
        'page_title': 'Create Staff Account',
        'form': form,
    }

    return render(request, 'users/form.html', context)


# =============================================================================
# STAFF/USER DETAIL VIEW
# =============================================================================

@login_required
def user_detail(request, user_id):
    """
    A staff member with their assigned members, loan portfolio and grants
    """
    checker = PermissionChecker(request.user)

    if not checker.has_permission('users.view') and str(request.user.pk) != str(user_id):
        messages.error(request, 'You do not have permission to view staff details.')
        raise PermissionDenied

    staff_user = _get_visible_user(checker, user_id)

    members = Member.objects.filter(assigned_officer=staff_user).select_related('branch', 'group')
    paginator = Paginator(members.order_by('full_name'), 10)
    members_page = paginator.get_page(request.GET.get('page'))

    loans = Loan.objects.filter(loan_officer=staff_user)
    portfolio = loans.filter(approval_status='approved').aggregate(
        total_disbursed=Sum('principal_amount'),
        outstanding=Sum('current_balance', filter=~Q(status='repaid')),
    )

    context = {
        'page_title': f'Staff Details: {staff_user.get_full_name()}',
        'staff_user': staff_user,
        'members_page': members_page,
        'metrics': {
            'total_members': members.count(),
            'active_members': members.filter(status='active').count(),
            'total_loans': loans.count(),
            'active_loans': loans.filter(status='active').count(),
            'total_disbursed': portfolio['total_disbursed'] or 0,
            'outstanding': portfolio['outstanding'] or 0,
        },
        'role_permissions': sorted(ROLE_DEFAULT_PERMISSIONS.get(staff_user.role, set())),
        'granted_permissions': sorted(staff_user.get_granted_permissions()),
        'can_edit': checker.can_edit_user(staff_user),
        'checker': checker,
    }

    return render(request, 'users/detail.html', context)


# =============================================================================
# USER UPDATE VIEW
# =============================================================================

@login_required
def user_update(request, user_id):
    """
    Edit name, contact, role and branch

    Permissions: users.edit within the editor's reach
    """
    checker = PermissionChecker(request.user)
    staff_user = _get_visible_user(checker, user_id)

    if not checker.can_edit_user(staff_user):
        messages.error(request, 'You do not have permission to edit this user.')
        raise PermissionDenied

    if request.method == 'POST':
        form = UserUpdateForm(request.POST, instance=staff_user, checker=checker)

        if form.is_valid():
            form.save()
            logger.info(f"User {staff_user.email} updated by {request.user.email}")
            messages.success(request, f'User {staff_user.get_full_name()} updated successfully!')
            return redirect('microfinance:user_detail', user_id=staff_user.id)
        messages.error(request, 'Please correct the errors below.')
    else:
        form = UserUpdateForm(instance=staff_user, checker=checker)

    context = {
        'page_title': f'Edit User: {staff_user.get_full_name()}',
        'form': form,
        'staff_user': staff_user,
    }

    return render(request, 'users/form.html', context)


# =============================================================================
# ACTIVATE / DEACTIVATE
# =============================================================================

@login_required
def user_activate(request, user_id):
    checker = PermissionChecker(request.user)
    staff_user = _get_visible_user(checker, user_id)

    if not checker.has_permission('users.activate') or not checker.can_edit_user(staff_user):
        raise PermissionDenied

    if staff_user.is_active:
        messages.warning(request, 'This user is already active.')
        return redirect('microfinance:user_detail', user_id=staff_user.id)

    if request.method == 'POST':
        staff_user.activate()
        logger.info(f"User {staff_user.email} activated by {request.user.email}")
        messages.success(request, f'{staff_user.get_full_name()} can sign in again.')
        return redirect('microfinance:user_detail', user_id=staff_user.id)

    context = {
        'page_title': f'Activate User: {staff_user.get_full_name()}',
        'object': staff_user,
        'action': 'activate',
    }
    return render(request, 'shared/confirm.html', context)


@login_required
def user_deactivate(request, user_id):
    """Deactivated users cannot sign in; their history is kept"""
    checker = PermissionChecker(request.user)
    staff_user = _get_visible_user(checker, user_id)

    if not checker.has_permission('users.activate') or not checker.can_edit_user(staff_user):
        raise PermissionDenied

    if staff_user.pk == request.user.pk:
        messages.error(request, 'You cannot deactivate your own account.')
        return redirect('microfinance:user_detail', user_id=staff_user.id)

    if not staff_user.is_active:
        messages.warning(request, 'This user is already inactive.')
        return redirect('microfinance:user_detail', user_id=staff_user.id)

    form = DeactivateForm(request.POST or None)
    if request.method == 'POST' and form.is_valid():
        staff_user.deactivate(request.user, form.cleaned_data['reason'])
        logger.info(f"User {staff_user.email} deactivated by {request.user.email}")
        messages.success(request, f'{staff_user.get_full_name()} has been deactivated.')
        return redirect('microfinance:user_detail', user_id=staff_user.id)

    context = {
        'page_title': f'Deactivate User: {staff_user.get_full_name()}',
        'object': staff_user,
        'form': form,
        'action': 'deactivate',
    }
    return render(request, 'shared/confirm.html', context)


# =============================================================================
# USER DELETE VIEW
# =============================================================================

@login_required
def user_delete(request, user_id):
    """
    Delete a user account

    Only a super admin may delete, and only once the user's members have
    been reassigned.
    """
    checker = PermissionChecker(request.user)

    if not checker.is_super_admin():
        messages.error(request, 'Only a super admin can delete users.')
        raise PermissionDenied

    staff_user = get_object_or_404(User, id=user_id)

    if staff_user.pk == request.user.pk:
        messages.error(request, 'You cannot delete your own account.')
        return redirect('microfinance:user_detail', user_id=staff_user.id)

    assigned_count = Member.objects.filter(assigned_officer=staff_user).count()
    if assigned_count > 0:
        messages.error(
            request,
            f'Cannot delete user {staff_user.get_full_name()}. '
            f'They have {assigned_count} member(s) assigned to them. '
            f'Please reassign these members first.'
        )
        return redirect('microfinance:user_detail', user_id=staff_user.id)

    if request.method == 'POST':
        user_name = staff_user.get_full_name()
        email = staff_user.email
        staff_user.delete()
        logger.info(f"User {email} deleted by {request.user.email}")
        messages.success(request, f'User {user_name} deleted successfully!')
        return redirect('microfinance:user_list')

    context = {
        'page_title': f'Delete User: {staff_user.get_full_name()}',
        'object': staff_user,
        'action': 'delete',
    }

    return render(request, 'shared/confirm.html', context)


# =============================================================================
# PERMISSION GRANTS
# =============================================================================

@login_required
def user_permissions(request, user_id):
    """
    Grant or revoke individual permissions on top of the user's role.
    Role defaults are shown ticked and locked.
    """
    checker = PermissionChecker(request.user)
    staff_user = _get_visible_user(checker, user_id)

    if not checker.can_manage_permissions() or not checker.can_edit_user(staff_user):
        messages.error(request, 'You do not have permission to manage permissions.')
        raise PermissionDenied

    role_defaults = ROLE_DEFAULT_PERMISSIONS.get(staff_user.role, set())
    granted = staff_user.get_granted_permissions()

    if request.method == 'POST':
        form = UserPermissionsForm(
            request.POST, target=staff_user, role_defaults=role_defaults, granted=granted
        )
        if form.is_valid():
            wanted = form.selected_grants()
            if staff_user.role == Roles.SUPER_ADMIN:
                wanted = set()

            with transaction.atomic():
                revoked = granted - wanted
                added = wanted - granted
                UserPermission.objects.filter(user=staff_user, permission__in=revoked).delete()
                UserPermission.objects.bulk_create([
                    UserPermission(user=staff_user, permission=key, granted_by=request.user)
                    for key in sorted(added)
                ])

            logger.info(
                f"Permissions of {staff_user.email} changed by {request.user.email}: "
                f"+{sorted(added)} -{sorted(revoked)}"
            )
            messages.success(request, f'Permissions for {staff_user.get_full_name()} updated.')
            return redirect('microfinance:user_detail', user_id=staff_user.id)
    else:
        form = UserPermissionsForm(target=staff_user, role_defaults=role_defaults, granted=granted)

    context = {
        'page_title': f'Permissions: {staff_user.get_full_name()}',
        'form': form,
        'staff_user': staff_user,
    }
    return render(request, 'users/permissions.html', context)
