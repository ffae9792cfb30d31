from django.contrib import admin
from .models import (
    Branch, User, UserPermission, MemberGroup, Member,
    LoanIncrementLevel, Loan, LoanInstallment, LoanPayment,
    CommunicationLog, ExpenseCategory, Expense, ExpenseBudget,
    RealizableAsset, Notification, ChangeFeed,
)

# ==============================================================================
# ORGANISATION
# ==============================================================================

@admin.register(Branch)
class BranchAdmin(admin.ModelAdmin):
    list_display = ['code', 'name', 'location', 'phone', 'is_active', 'created_at']
    list_filter = ['is_active']
    search_fields = ['code', 'name', 'location']
    readonly_fields = ['created_at', 'updated_at', 'deactivated_at', 'deactivated_by']


class UserPermissionInline(admin.TabularInline):
    model = UserPermission
    fk_name = 'user'
    extra = 0
    readonly_fields = ['granted_by', 'created_at']


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ['email', 'full_name', 'role', 'branch', 'is_active', 'last_login']
    list_filter = ['role', 'is_active', 'branch']
    search_fields = ['email', 'full_name', 'phone']
    readonly_fields = ['date_joined', 'last_login', 'created_at', 'updated_at']
    inlines = [UserPermissionInline]

    fieldsets = (
        ('Authentication', {
            'fields': ('email', 'password')
        }),
        ('Personal Info', {
            'fields': ('full_name', 'phone')
        }),
        ('Role', {
            'fields': ('role', 'branch')
        }),
        ('Status', {
            'fields': ('is_active', 'is_staff', 'is_superuser',
                       'deactivated_at', 'deactivated_by', 'deactivation_reason')
        }),
        ('Timestamps', {
            'fields': ('date_joined', 'last_login', 'created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )


@admin.register(UserPermission)
class UserPermissionAdmin(admin.ModelAdmin):
    list_display = ['user', 'permission', 'granted_by', 'created_at']
    list_filter = ['permission']
    search_fields = ['user__email', 'user__full_name', 'permission']


# ==============================================================================
# MEMBERS AND GROUPS
# ==============================================================================

@admin.register(MemberGroup)
class MemberGroupAdmin(admin.ModelAdmin):
    list_display = ['code', 'name', 'branch', 'loan_officer', 'meeting_day', 'is_active']
    list_filter = ['is_active', 'branch', 'meeting_day']
    search_fields = ['code', 'name']
    readonly_fields = ['code', 'created_at', 'updated_at']


@admin.register(Member)
class MemberAdmin(admin.ModelAdmin):
    list_display = ['member_no', 'full_name', 'id_number', 'phone_number', 'branch',
                    'group', 'status', 'registration_fee_paid']
    list_filter = ['status', 'registration_fee_paid', 'branch', 'group']
    search_fields = ['member_no', 'full_name', 'id_number', 'phone_number']
    readonly_fields = ['member_no', 'last_activity_date', 'created_at', 'updated_at']

    fieldsets = (
        ('Identifiers', {
            'fields': ('member_no', 'id_number', 'kra_pin')
        }),
        ('Personal Information', {
            'fields': ('full_name', 'phone_number', 'dob', 'sex', 'marital_status',
                       'profession', 'monthly_income', 'bank_account')
        }),
        ('Address', {
            'fields': ('address', 'location')
        }),
        ('Assignment', {
            'fields': ('branch', 'group', 'assigned_officer')
        }),
        ('Next of Kin', {
            'fields': ('next_of_kin_name', 'next_of_kin_relationship',
                       'next_of_kin_phone', 'next_of_kin_address'),
            'classes': ('collapse',)
        }),
        ('Status', {
            'fields': ('status', 'registration_fee_paid', 'registration_fee_paid_at',
                       'activation_fee_paid', 'activation_fee_paid_at', 'last_activity_date', 'notes')
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )


@admin.register(CommunicationLog)
class CommunicationLogAdmin(admin.ModelAdmin):
    list_display = ['member', 'communication_type', 'officer', 'loan', 'follow_up_date', 'created_at']
    list_filter = ['communication_type']
    search_fields = ['member__full_name', 'member__member_no', 'notes']
    date_hierarchy = 'created_at'


# ==============================================================================
# LOANS
# ==============================================================================

@admin.register(LoanIncrementLevel)
class LoanIncrementLevelAdmin(admin.ModelAdmin):
    list_display = ['level', 'amount', 'is_active']
    list_filter = ['is_active']
    ordering = ['level']


class LoanInstallmentInline(admin.TabularInline):
    model = LoanInstallment
    extra = 0
    readonly_fields = ['installment_number', 'due_date', 'principal_amount', 'interest_amount',
                       'total_amount', 'amount_paid', 'status', 'paid_date']
    can_delete = False


@admin.register(Loan)
class LoanAdmin(admin.ModelAdmin):
    list_display = ['loan_number', 'member', 'branch', 'loan_program', 'principal_amount',
                    'current_balance', 'approval_status', 'status', 'issue_date']
    list_filter = ['status', 'approval_status', 'loan_program', 'installment_type', 'branch']
    search_fields = ['loan_number', 'member__full_name', 'member__member_no']
    readonly_fields = ['loan_number', 'interest_amount', 'processing_fee', 'total_amount',
                       'total_paid', 'current_balance', 'approved_by', 'approved_at',
                       'created_at', 'updated_at']
    date_hierarchy = 'issue_date'
    inlines = [LoanInstallmentInline]

    fieldsets = (
        ('Loan', {
            'fields': ('loan_number', 'member', 'branch', 'group', 'loan_officer')
        }),
        ('Terms', {
            'fields': ('loan_program', 'installment_type', 'principal_amount', 'interest_rate',
                       'installment_count', 'increment_level', 'issue_date', 'due_date')
        }),
        ('Amounts', {
            'fields': ('interest_amount', 'processing_fee', 'total_amount',
                       'total_paid', 'current_balance')
        }),
        ('Workflow', {
            'fields': ('approval_status', 'approved_by', 'approved_at', 'rejection_reason',
                       'status', 'written_off_date', 'notes')
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )


@admin.register(LoanPayment)
class LoanPaymentAdmin(admin.ModelAdmin):
    list_display = ['payment_reference', 'loan', 'amount', 'payment_method', 'payment_date', 'created_by']
    list_filter = ['payment_method', 'payment_date']
    search_fields = ['payment_reference', 'loan__loan_number', 'loan__member__full_name']
    readonly_fields = ['interest_portion', 'principal_portion', 'created_at']
    date_hierarchy = 'payment_date'


# ==============================================================================
# EXPENSES
# ==============================================================================

@admin.register(ExpenseCategory)
class ExpenseCategoryAdmin(admin.ModelAdmin):
    list_display = ['code', 'name', 'budget_limit', 'is_active']
    list_filter = ['is_active']
    search_fields = ['code', 'name']


@admin.register(Expense)
class ExpenseAdmin(admin.ModelAdmin):
    list_display = ['expense_number', 'title', 'category', 'amount', 'expense_date',
                    'branch', 'status', 'priority']
    list_filter = ['status', 'priority', 'payment_method', 'category', 'branch']
    search_fields = ['expense_number', 'title', 'vendor_name', 'invoice_number']
    readonly_fields = ['expense_number', 'created_at', 'updated_at']
    date_hierarchy = 'expense_date'


@admin.register(ExpenseBudget)
class ExpenseBudgetAdmin(admin.ModelAdmin):
    list_display = ['category', 'branch', 'year', 'month', 'budget_amount']
    list_filter = ['year', 'category', 'branch']


# ==============================================================================
# REPORTING
# ==============================================================================

@admin.register(RealizableAsset)
class RealizableAssetAdmin(admin.ModelAdmin):
    list_display = ['member', 'asset_type', 'realizable_value', 'recovery_likelihood', 'status', 'branch']
    list_filter = ['asset_type', 'recovery_likelihood', 'status', 'branch']
    search_fields = ['member__full_name', 'description']


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ['recipient', 'notification_type', 'title', 'is_read', 'created_at']
    list_filter = ['notification_type', 'is_read']
    search_fields = ['recipient__email', 'title', 'message']


@admin.register(ChangeFeed)
class ChangeFeedAdmin(admin.ModelAdmin):
    list_display = ['key', 'version', 'last_model', 'changed_at']
    readonly_fields = ['key', 'version', 'last_model', 'changed_at']
