"""
Permission System – Role-based Access Control
==============================================

Roles:   super_admin, admin, branch_admin, loan_officer, teller, auditor

Two layers:
- visibility: which rows a user may see (all / own branch / assigned)
- grants: which actions a user may take, from the role defaults plus any
  explicit UserPermission rows; super_admin holds everything

Every view should:
    checker = PermissionChecker(request.user)
    rows = checker.filter_<things>(Model.objects.all())
    if not checker.has_permission('<key>'):  raise PermissionDenied
"""

from functools import wraps
from django.shortcuts import redirect
from django.contrib import messages
from django.core.exceptions import PermissionDenied
from django.db.models import Q


# =============================================================================
# CONSTANTS
# =============================================================================

class Roles:
    SUPER_ADMIN  = 'super_admin'
    ADMIN        = 'admin'
    BRANCH_ADMIN = 'branch_admin'
    LOAN_OFFICER = 'loan_officer'
    TELLER       = 'teller'
    AUDITOR      = 'auditor'

    ALL = [SUPER_ADMIN, ADMIN, BRANCH_ADMIN, LOAN_OFFICER, TELLER, AUDITOR]


PERMISSIONS = {
    # User Management
    'users.view': 'View Users',
    'users.create': 'Create Users',
    'users.edit': 'Edit Users',
    'users.delete': 'Delete Users',
    'users.manage_permissions': 'Manage User Permissions',
    'users.activate': 'Activate/Deactivate Users',

    # Member Management
    'members.view': 'View Members',
    'members.create': 'Create Members',
    'members.edit': 'Edit Members',
    'members.delete': 'Delete Members',
    'members.search': 'Search Members',
    'groups.view': 'View Groups',
    'groups.create': 'Create Groups',
    'groups.edit': 'Edit Groups',
    'groups.delete': 'Delete Groups',
    'groups.activate': 'Activate/Deactivate Groups',

    # Loan Operations
    'loans.view': 'View Loans',
    'loans.create': 'Create New Loan Application',
    'loans.edit': 'Edit Loans',
    'loans.delete': 'Delete Loans',
    'loans.approve': 'Approve Loans',
    'loans.receive_payments': 'Receive Loan Payments',
    'loans.view_overdue': 'View Overdue Loans',
    'loans.write_off': 'Write Off Loans',
    'loans.bulk_payment': 'Bulk Payment Processing',

    # Financial Management
    'transactions.view': 'View Transactions',
    'expenses.view': 'View Expenses',
    'expenses.create': 'Create Expenses',
    'expenses.edit': 'Edit Expenses',
    'expenses.delete': 'Delete Expenses',
    'income.view': 'View Income',
    'income.create': 'Create Income',
    'income.edit': 'Edit Income',

    # Reports & Analytics
    'reports.view.realizable': 'View Realizable Report',
    'reports.view.dormant': 'View Dormant Members Report',
    'reports.view.bad_debt': 'View Bad Debt Report',
    'reports.export': 'Export Reports',
    'dashboard.view': 'View Dashboard',
    'analytics.view': 'View Analytics',

    # System Administration
    'branches.view': 'View Branches',
    'branches.create': 'Create Branches',
    'branches.edit': 'Edit Branches',
    'branches.delete': 'Delete Branches',
    'branches.activate': 'Activate/Deactivate Branches',
    'settings.view': 'View Settings',
    'settings.edit': 'Edit Settings',
    'security.view': 'View Security Settings',
    'security.edit': 'Edit Security Settings',

    # Communication & Notifications
    'notifications.view': 'View Notifications',
    'communications.log': 'Log Communications',
    'communications.view': 'View Communication Logs',

    # Profile Management
    'profile.view': 'View Own Profile',
    'profile.edit': 'Edit Own Profile',
    'loan_officer.view': 'View Loan Officer Profile',
}

PERMISSION_GROUPS = {
    'users': 'User Management',
    'members': 'Member Management',
    'groups': 'Group Management',
    'loans': 'Loan Operations',
    'transactions': 'Financial Management',
    'expenses': 'Financial Management',
    'income': 'Financial Management',
    'reports': 'Reports & Analytics',
    'dashboard': 'Reports & Analytics',
    'analytics': 'Reports & Analytics',
    'branches': 'System Administration',
    'settings': 'System Administration',
    'security': 'System Administration',
    'notifications': 'Communication',
    'communications': 'Communication',
    'profile': 'Profile',
    'loan_officer': 'Profile',
}


def _keys(*prefixes):
    return {key for key in PERMISSIONS if key.startswith(prefixes)}


_PROFILE = {'profile.view', 'profile.edit', 'notifications.view', 'dashboard.view'}

ROLE_DEFAULT_PERMISSIONS = {
    Roles.SUPER_ADMIN: set(PERMISSIONS),
    Roles.ADMIN: set(PERMISSIONS) - {'users.delete', 'security.edit'},
    Roles.BRANCH_ADMIN: (
        _keys('members.', 'groups.', 'loans.', 'reports.', 'communications.')
        | {'expenses.view', 'expenses.create', 'expenses.edit', 'income.view', 'transactions.view',
           'analytics.view', 'branches.view', 'users.view', 'loan_officer.view'}
        | _PROFILE
    ),
    Roles.LOAN_OFFICER: (
        {'members.view', 'members.create', 'members.edit', 'members.search', 'groups.view',
         'loans.view', 'loans.create', 'loans.receive_payments', 'loans.view_overdue',
         'communications.log', 'communications.view', 'loan_officer.view'}
        | _PROFILE
    ),
    Roles.TELLER: (
        {'members.view', 'members.search', 'groups.view', 'loans.view', 'loans.receive_payments',
         'loans.bulk_payment', 'loans.view_overdue', 'transactions.view'}
        | _PROFILE
    ),
    Roles.AUDITOR: (
        {key for key in PERMISSIONS if key.endswith('.view') and not key.startswith(('settings.', 'security.'))}
        | _keys('reports.')
        | _PROFILE
    ),
}


class Permissions:
    """Role lists for visibility. Views must never hard-code role lists."""

    VIEW_ALL_BRANCHES  = [Roles.SUPER_ADMIN, Roles.ADMIN]
    VIEW_OWN_BRANCH    = [Roles.BRANCH_ADMIN, Roles.TELLER, Roles.AUDITOR]
    VIEW_ASSIGNED_ONLY = [Roles.LOAN_OFFICER]


# =============================================================================
# PERMISSION CHECKER
# =============================================================================

class PermissionChecker:

    def __init__(self, user):
        self.user   = user
        self.authenticated = bool(user is not None and user.is_authenticated)
        self.role   = getattr(user, 'role', None) if self.authenticated else None
        self.branch = getattr(user, 'branch', None) if self.authenticated else None
        self._grants = None

    # ── role helpers ─────────────────────────────────────────────────
    def is_super_admin(self):   return self.role == Roles.SUPER_ADMIN
    def is_admin(self):         return self.role in (Roles.SUPER_ADMIN, Roles.ADMIN)
    def is_branch_admin(self):  return self.role == Roles.BRANCH_ADMIN
    def is_loan_officer(self):  return self.role == Roles.LOAN_OFFICER
    def is_teller(self):        return self.role == Roles.TELLER
    def is_auditor(self):       return self.role == Roles.AUDITOR

    def is_branch_scoped(self):
        return self.role in Permissions.VIEW_OWN_BRANCH and self.branch is not None

    # =========================================================================
    # GRANTS
    # =========================================================================

    def get_permissions(self):
        """Every permission key this user holds"""
        if not self.authenticated or not getattr(self.user, 'is_active', False):
            return set()
        if self._grants is None:
            granted = ROLE_DEFAULT_PERMISSIONS.get(self.role, set())
            self._grants = set(granted) | self.user.get_granted_permissions()
        return self._grants

    def has_permission(self, permission):
        if self.is_super_admin() and self.authenticated:
            return True
        return permission in self.get_permissions()

    def has_any_permission(self, *permissions):
        return any(self.has_permission(p) for p in permissions)

    # ── shortcuts used by views and templates ───────────────────────
    def can_approve_loans(self):        return self.has_permission('loans.approve')
    def can_create_loans(self):         return self.has_permission('loans.create')
    def can_receive_payments(self):     return self.has_permission('loans.receive_payments')
    def can_bulk_pay(self):             return self.has_permission('loans.bulk_payment')
    def can_write_off(self):            return self.has_permission('loans.write_off')
    def can_delete_loans(self):         return self.has_permission('loans.delete')
    def can_export(self):               return self.has_permission('reports.export')
    def can_manage_branches(self):      return self.has_permission('branches.edit')
    def can_manage_users(self):         return self.has_permission('users.edit')
    def can_manage_permissions(self):   return self.has_permission('users.manage_permissions')
    def can_manage_expenses(self):      return self.has_permission('expenses.edit')

    # =========================================================================
    # VIEW / READ
    # =========================================================================

    def can_view_all_branches(self):
        return self.role in Permissions.VIEW_ALL_BRANCHES

    def can_view_branch(self, branch):
        if self.can_view_all_branches():
            return True
        return self.branch is not None and branch.pk == self.branch.pk

    def can_view_member(self, member):
        if self.can_view_all_branches():
            return True
        if self.is_branch_scoped():
            return member.branch_id == self.branch.pk
        if self.is_loan_officer():
            return member.assigned_officer_id == self.user.pk
        return False

    def can_view_loan(self, loan):
        if self.can_view_all_branches():
            return True
        if self.is_branch_scoped():
            return loan.branch_id == self.branch.pk
        if self.is_loan_officer():
            return (
                loan.loan_officer_id == self.user.pk
                or loan.created_by_id == self.user.pk
                or loan.member.assigned_officer_id == self.user.pk
            )
        return False

    def can_view_group(self, group):
        if self.can_view_all_branches():
            return True
        if self.is_branch_scoped():
            return group.branch_id == self.branch.pk
        if self.is_loan_officer():
            return group.loan_officer_id == self.user.pk
        return False

    def can_view_expense(self, expense):
        if self.can_view_all_branches():
            return True
        if self.is_branch_scoped():
            return expense.branch_id == self.branch.pk
        return expense.created_by_id == self.user.pk

    # =========================================================================
    # EDIT
    # =========================================================================

    def can_edit_member(self, member):
        return self.has_permission('members.edit') and self.can_view_member(member)

    def can_edit_group(self, group):
        return self.has_permission('groups.edit') and self.can_view_group(group)

    def can_edit_loan(self, loan):
        if loan.approval_status != 'pending' or loan.total_paid > 0:
            return False
        return self.has_permission('loans.edit') and self.can_view_loan(loan)

    def can_approve_loan(self, loan):
        if not self.can_approve_loans() or not self.can_view_loan(loan):
            return False
        # nobody approves their own application unless they administer the system
        return self.is_admin() or loan.created_by_id != self.user.pk

    def can_edit_user(self, target):
        if not self.can_manage_users():
            return False
        if target.role == Roles.SUPER_ADMIN and not self.is_super_admin():
            return False
        return self.can_view_all_branches() or (self.branch is not None and target.branch_id == self.branch.pk)

    # =========================================================================
    # QUERYSET FILTERS
    # =========================================================================

    def filter_branches(self, queryset):
        if self.can_view_all_branches():
            return queryset
        if self.branch is not None and self.role in Roles.ALL:
            return queryset.filter(pk=self.branch.pk)
        return queryset.none()

    def filter_members(self, queryset):
        if self.can_view_all_branches():
            return queryset
        if self.is_branch_scoped():
            return queryset.filter(branch=self.branch)
        if self.is_loan_officer():
            return queryset.filter(assigned_officer=self.user)
        return queryset.none()

    def filter_loans(self, queryset, prefix=''):
        """prefix lets related querysets reuse the rule, e.g. prefix='loan__'"""
        if self.can_view_all_branches():
            return queryset
        if self.is_branch_scoped():
            return queryset.filter(**{f'{prefix}branch': self.branch})
        if self.is_loan_officer():
            return queryset.filter(
                Q(**{f'{prefix}loan_officer': self.user}) |
                Q(**{f'{prefix}created_by': self.user}) |
                Q(**{f'{prefix}member__assigned_officer': self.user})
            )
        return queryset.none()

    def filter_payments(self, queryset):
        return self.filter_loans(queryset, prefix='loan__')

    def filter_groups(self, queryset):
        if self.can_view_all_branches():
            return queryset
        if self.is_branch_scoped():
            return queryset.filter(branch=self.branch)
        if self.is_loan_officer():
            return queryset.filter(loan_officer=self.user)
        return queryset.none()

    def filter_expenses(self, queryset):
        if self.can_view_all_branches():
            return queryset
        if self.is_branch_scoped():
            return queryset.filter(branch=self.branch)
        if self.authenticated:
            return queryset.filter(created_by=self.user)
        return queryset.none()

    def filter_users(self, queryset):
        if self.can_view_all_branches():
            return queryset
        if self.is_branch_scoped():
            return queryset.filter(branch=self.branch)
        if self.authenticated:
            return queryset.filter(pk=self.user.pk)
        return queryset.none()

    def filter_communication_logs(self, queryset):
        if self.can_view_all_branches():
            return queryset
        if self.is_branch_scoped():
            return queryset.filter(member__branch=self.branch)
        if self.is_loan_officer():
            return queryset.filter(Q(officer=self.user) | Q(member__assigned_officer=self.user))
        return queryset.none()

    def filter_assets(self, queryset):
        if self.can_view_all_branches():
            return queryset
        if self.is_branch_scoped():
            return queryset.filter(branch=self.branch)
        if self.is_loan_officer():
            return queryset.filter(member__assigned_officer=self.user)
        return queryset.none()


# =============================================================================
# DECORATORS
# =============================================================================

def login_required_with_role(allowed_roles=None):
    def decorator(view_func):
        @wraps(view_func)
        def wrapper(request, *args, **kwargs):
            if not request.user.is_authenticated:
                messages.error(request, 'Please log in to access this page.')
                return redirect('microfinance:login')
            if allowed_roles and request.user.role not in allowed_roles:
                messages.error(request, 'You do not have permission to access this page.')
                raise PermissionDenied
            return view_func(request, *args, **kwargs)
        return wrapper
    return decorator


def permission_required(*permission_keys):
    """Require at least one of the given permission keys"""
    def decorator(view_func):
        @wraps(view_func)
        def wrapper(request, *args, **kwargs):
            if not request.user.is_authenticated:
                messages.error(request, 'Please log in to access this page.')
                return redirect('microfinance:login')
            checker = PermissionChecker(request.user)
            if not checker.has_any_permission(*permission_keys):
                messages.error(request, 'You do not have permission to perform this action.')
                raise PermissionDenied
            return view_func(request, *args, **kwargs)
        return wrapper
    return decorator


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def get_user_branches(user):
    from microfinance.models import Branch
    return PermissionChecker(user).filter_branches(Branch.objects.all())


def get_user_members(user):
    from microfinance.models import Member
    return PermissionChecker(user).filter_members(Member.objects.all())
