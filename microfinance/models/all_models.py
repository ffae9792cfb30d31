"""
Microfinance Back Office - Consolidated Models
==============================================

ALL MODELS IN ONE FILE FOR DJANGO MIGRATIONS

Branches, staff users and their permission grants, groups, members,
loans with their instalment schedules and payments, expenses, collateral
assets, communication logs, notifications and the change feed.
"""

from django.contrib.auth.models import AbstractUser, BaseUserManager
from django.db import models, transaction as db_transaction
from django.db.models import F, Max, Sum
from django.utils import timezone
from django.core.validators import RegexValidator, MinValueValidator
from django.core.exceptions import ValidationError
from decimal import Decimal
import logging
import uuid

from .base import BaseModel, CreatedByMixin, ApprovalWorkflowMixin, StatusTrackingMixin
from microfinance.managers import (
    BranchManager, MemberManager, LoanManager, LoanPaymentManager,
    MemberGroupManager, ExpenseManager,
)
from microfinance.utils.money import MoneyCalculator, InterestCalculator
from microfinance.utils.helpers import build_installment_schedule, add_periods


logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION CONSTANTS
# =============================================================================

CURRENCY = 'KES'
REGISTRATION_FEE = Decimal('500.00')
ACTIVATION_FEE = Decimal('500.00')
PROCESSING_FEE_RATE = Decimal('0.06')

LOAN_PROGRAMS = {
    'small_loan': {
        'label': 'Small Loan',
        'interest_rate': Decimal('0.15'),
        'installments': 8,
    },
    'big_loan': {
        'label': 'Big Loan',
        'interest_rate': Decimal('0.20'),
        'installments': 12,
    },
}

LOAN_PROGRAM_CHOICES = [(key, value['label']) for key, value in LOAN_PROGRAMS.items()]

INSTALLMENT_TYPE_CHOICES = [
    ('weekly', 'Weekly'),
    ('monthly', 'Monthly'),
    ('daily', 'Daily'),
]

# Level -> amount a member may borrow when reaching that level
DEFAULT_INCREMENT_LEVELS = {
    1: Decimal('5000'),
    2: Decimal('7000'),
    3: Decimal('9000'),
    4: Decimal('11000'),
    5: Decimal('13000'),
    6: Decimal('15000'),
    7: Decimal('17000'),
    8: Decimal('20000'),
    9: Decimal('25000'),
    10: Decimal('30000'),
    11: Decimal('35000'),
    12: Decimal('40000'),
    13: Decimal('45000'),
    14: Decimal('50000'),
}
FIRST_LOAN_AMOUNT = DEFAULT_INCREMENT_LEVELS[1]
TWELVE_INSTALLMENT_MIN_LEVEL = 3

PAYMENT_METHOD_CHOICES = [
    ('cash', 'Cash'),
    ('bank_transfer', 'Bank Transfer'),
    ('check', 'Check'),
    ('mobile_money', 'Mobile Money'),
    ('credit_card', 'Credit Card'),
    ('debit_card', 'Debit Card'),
    ('other', 'Other'),
]

phone_regex = RegexValidator(
    regex=r'^\+?\d{9,15}$',
    message="Phone number must contain 9 to 15 digits, optionally starting with +"
)


# =============================================================================
# BRANCH MODEL
# =============================================================================

class Branch(BaseModel, StatusTrackingMixin):
    """
    Branch/Office location

    Members, groups, loans, staff and expenses all belong to a branch;
    branch admins, tellers and auditors only see their own branch.
    """

    name = models.CharField(max_length=100)
    code = models.CharField(
        max_length=20,
        unique=True,
        blank=True,
        db_index=True,
        help_text="Unique branch code, generated from the name when left blank"
    )
    address = models.TextField(blank=True)
    location = models.CharField(max_length=150, blank=True)
    phone = models.CharField(max_length=20, blank=True)
    email = models.EmailField(blank=True)

    objects = BranchManager()

    class Meta:
        verbose_name_plural = "Branches"
        ordering = ['name']
        indexes = [
            models.Index(fields=['code']),
            models.Index(fields=['is_active']),
        ]

    def __str__(self):
        return f"{self.name} ({self.code})"

    def save(self, *args, **kwargs):
        if not self.code:
            self.code = self.generate_code(self.name)
        else:
            self.code = self.code.upper()
        super().save(*args, **kwargs)

    @staticmethod
    def generate_code(name):
        """First three letters of the name plus a sequence number (NAI01)"""
        prefix = ''.join(ch for ch in (name or 'BR').upper() if ch.isalnum())[:3] or 'BR'
        sequence = 1
        while Branch.all_objects.filter(code=f"{prefix}{sequence:02d}").exists():
            sequence += 1
        return f"{prefix}{sequence:02d}"

    def clean(self):
        super().clean()
        errors = {}

        if self.code and not self.code.replace('-', '').replace('_', '').isalnum():
            errors['code'] = "Branch code must be alphanumeric (hyphens/underscores allowed)"

        if self.phone and not self.phone.replace('+', '').replace('-', '').replace(' ', '').isdigit():
            errors['phone'] = "Invalid phone number format"

        if errors:
            raise ValidationError(errors)

    def get_statistics(self):
        """member_count, total_loans, total_portfolio and outstanding balance"""
        loans = self.loans.all()
        aggregates = loans.aggregate(
            total_portfolio=Sum('principal_amount'),
            outstanding_balance=Sum('current_balance'),
        )
        return {
            'member_count': self.members.count(),
            'active_member_count': self.members.filter(status='active').count(),
            'total_loans': loans.count(),
            'total_portfolio': aggregates['total_portfolio'] or Decimal('0.00'),
            'outstanding_balance': aggregates['outstanding_balance'] or Decimal('0.00'),
            'staff_count': self.users.filter(is_active=True).count(),
            'group_count': self.groups.count(),
        }

    def closure_blockers(self, deleting=False):
        """
        Reasons this branch cannot be deactivated, or deleted when
        `deleting` (which also needs every loan settled). Empty when it can.
        """
        blockers = []
        staff = self.users.filter(is_active=True).count()
        if staff:
            blockers.append(f"{staff} active staff user(s) must be deactivated or moved first")
        members = self.members.filter(status='active').count()
        if members:
            blockers.append(f"{members} active member(s) still belong to it")
        if deleting:
            open_loans = self.loans.filter(current_balance__gt=0).exclude(approval_status='rejected').count()
            if open_loans:
                blockers.append(f"{open_loans} loan(s) still carry a balance")
        return blockers


# =============================================================================
# USER MODEL & MANAGER
# =============================================================================

class UserManager(BaseUserManager):
    """Email-based user manager"""

    def create_user(self, email, password=None, **extra_fields):
        if not email:
            raise ValueError('Email address is required')
        email = self.normalize_email(email)
        user = self.model(email=email, **extra_fields)
        if password:
            user.set_password(password)
        else:
            user.set_unusable_password()
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('is_active', True)
        extra_fields.setdefault('role', 'super_admin')
        return self.create_user(email, password, **extra_fields)

    def loan_officers(self):
        return self.filter(role='loan_officer', is_active=True)

    def for_branch(self, branch):
        return self.filter(branch=branch, is_active=True)


class User(AbstractUser, StatusTrackingMixin):
    """
    Staff user carrying the profile fields (full name, role, branch)
    """

    ROLE_CHOICES = [
        ('super_admin', 'Super Admin'),
        ('admin', 'Admin'),
        ('branch_admin', 'Branch Admin'),
        ('loan_officer', 'Loan Officer'),
        ('teller', 'Teller'),
        ('auditor', 'Auditor'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    username = None
    email = models.EmailField(unique=True, db_index=True)
    full_name = models.CharField(max_length=150)
    phone = models.CharField(validators=[phone_regex], max_length=17, blank=True)
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default='loan_officer', db_index=True)
    branch = models.ForeignKey(
        Branch,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='users'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = UserManager()
    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['full_name']

    class Meta:
        ordering = ['full_name']
        indexes = [
            models.Index(fields=['role', 'is_active']),
            models.Index(fields=['branch', 'role']),
        ]

    def __str__(self):
        return f"{self.get_full_name()} ({self.get_role_display()})"

    def get_full_name(self):
        return self.full_name or self.email

    def get_short_name(self):
        return (self.full_name or self.email).split(' ')[0]

    def clean(self):
        super().clean()
        errors = {}

        if self.role in ('branch_admin', 'loan_officer', 'teller', 'auditor') and not self.branch_id:
            errors['branch'] = "This role must be assigned to a branch"

        if errors:
            raise ValidationError(errors)

    def get_granted_permissions(self):
        return set(self.permission_grants.values_list('permission', flat=True))


class UserPermission(models.Model):
    """An explicit grant of one permission key to one user"""

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='permission_grants')
    permission = models.CharField(max_length=64)
    granted_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='granted_permissions'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['permission']
        constraints = [
            models.UniqueConstraint(fields=['user', 'permission'], name='unique_user_permission'),
        ]

    def __str__(self):
        return f"{self.user.email}: {self.permission}"


# =============================================================================
# GROUP MODEL
# =============================================================================

class MemberGroup(BaseModel, StatusTrackingMixin):
    """
    Lending group that meets weekly with its loan officer
    """

    MEETING_DAY_CHOICES = [
        ('monday', 'Monday'),
        ('tuesday', 'Tuesday'),
        ('wednesday', 'Wednesday'),
        ('thursday', 'Thursday'),
        ('friday', 'Friday'),
        ('saturday', 'Saturday'),
        ('sunday', 'Sunday'),
    ]

    name = models.CharField(max_length=150)
    code = models.CharField(max_length=20, unique=True, blank=True, db_index=True)
    branch = models.ForeignKey(Branch, on_delete=models.PROTECT, related_name='groups')
    loan_officer = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='managed_groups'
    )
    contact_person = models.ForeignKey(
        'Member',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='contact_for_groups'
    )
    location = models.CharField(max_length=150, blank=True)
    meeting_day = models.CharField(max_length=10, choices=MEETING_DAY_CHOICES, blank=True)
    meeting_time = models.TimeField(null=True, blank=True)
    processing_fee = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )

    objects = MemberGroupManager()

    class Meta:
        verbose_name = 'group'
        ordering = ['name']
        indexes = [
            models.Index(fields=['branch', 'is_active']),
        ]

    def __str__(self):
        return f"{self.name} ({self.code})"

    @property
    def status(self):
        return 'active' if self.is_active else 'inactive'

    def save(self, *args, **kwargs):
        if not self.code:
            self.code = self.generate_group_code()
        super().save(*args, **kwargs)

    def generate_group_code(self):
        """GRP-<branch code>-### numbered within the branch"""
        branch_code = self.branch.code if self.branch_id else 'GEN'
        prefix = f"GRP-{branch_code}-"
        sequence = MemberGroup.all_objects.filter(code__startswith=prefix).count() + 1
        while MemberGroup.all_objects.filter(code=f"{prefix}{sequence:03d}").exists():
            sequence += 1
        return f"{prefix}{sequence:03d}"

    def clean(self):
        super().clean()
        errors = {}

        if self.contact_person_id and self.pk and self.contact_person.group_id != self.pk:
            errors['contact_person'] = "The contact person must be a member of this group"

        if self.loan_officer_id and self.branch_id:
            officer_branch = self.loan_officer.branch_id
            if officer_branch and officer_branch != self.branch_id:
                errors['loan_officer'] = "The loan officer belongs to a different branch"

        if errors:
            raise ValidationError(errors)

    def get_meeting_schedule_text(self):
        if not self.meeting_day:
            return "No meeting day set"
        text = f"Every {self.get_meeting_day_display()}"
        if self.meeting_time:
            text += f" at {self.meeting_time.strftime('%I:%M %p')}"
        return text

    def get_statistics(self):
        loans = Loan.objects.filter(member__group=self)
        return {
            'member_count': self.members.count(),
            'active_members': self.members.filter(status='active').count(),
            'total_loans': loans.count(),
            'outstanding_balance': loans.aggregate(total=Sum('current_balance'))['total'] or Decimal('0.00'),
        }

    def can_be_deleted(self):
        return not self.members.filter(status='active').exists()


# =============================================================================
# MEMBER MODEL
# =============================================================================

class Member(BaseModel, CreatedByMixin):
    """
    Borrowing member (customer)
    """

    STATUS_CHOICES = [
        ('active', 'Active'),
        ('dormant', 'Dormant'),
        ('inactive', 'Inactive'),
    ]

    SEX_CHOICES = [
        ('male', 'Male'),
        ('female', 'Female'),
    ]

    MARITAL_STATUS_CHOICES = [
        ('single', 'Single'),
        ('married', 'Married'),
        ('divorced', 'Divorced'),
        ('widowed', 'Widowed'),
    ]

    member_no = models.CharField(max_length=20, unique=True, blank=True, db_index=True)
    full_name = models.CharField(max_length=150)
    id_number = models.CharField(max_length=30, unique=True)
    phone_number = models.CharField(validators=[phone_regex], max_length=17)
    dob = models.DateField(null=True, blank=True)
    sex = models.CharField(max_length=10, choices=SEX_CHOICES, blank=True)
    marital_status = models.CharField(max_length=10, choices=MARITAL_STATUS_CHOICES, blank=True)
    profession = models.CharField(max_length=100, blank=True)
    monthly_income = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    address = models.TextField(blank=True)
    location = models.CharField(max_length=150, blank=True)
    kra_pin = models.CharField(max_length=20, blank=True)
    bank_account = models.CharField(max_length=50, blank=True)

    branch = models.ForeignKey(Branch, on_delete=models.PROTECT, related_name='members')
    group = models.ForeignKey(
        MemberGroup,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='members'
    )
    assigned_officer = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='assigned_members'
    )

    # Next of kin
    next_of_kin_name = models.CharField(max_length=150, blank=True)
    next_of_kin_relationship = models.CharField(max_length=50, blank=True)
    next_of_kin_phone = models.CharField(max_length=17, blank=True)
    next_of_kin_address = models.TextField(blank=True)

    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='active', db_index=True)
    registration_fee_paid = models.BooleanField(default=False)
    registration_fee_paid_at = models.DateField(null=True, blank=True)
    activation_fee_paid = models.BooleanField(default=False)
    activation_fee_paid_at = models.DateField(null=True, blank=True)
    last_activity_date = models.DateField(null=True, blank=True, db_index=True)
    notes = models.TextField(blank=True)

    objects = MemberManager()

    class Meta:
        ordering = ['full_name']
        indexes = [
            models.Index(fields=['branch', 'status']),
            models.Index(fields=['assigned_officer']),
        ]

    def __str__(self):
        return f"{self.full_name} ({self.member_no})"

    def save(self, *args, **kwargs):
        if not self.member_no:
            self.member_no = self.generate_member_no()
        if self.last_activity_date is None:
            self.last_activity_date = timezone.localdate()
        super().save(*args, **kwargs)

    @staticmethod
    def generate_member_no():
        """MBR-00001, MBR-00002, ..."""
        last = Member.all_objects.filter(
            member_no__startswith='MBR-'
        ).order_by('-member_no').values_list('member_no', flat=True).first()
        next_number = 1
        if last:
            try:
                next_number = int(last.split('-')[1]) + 1
            except (IndexError, ValueError):
                next_number = Member.all_objects.count() + 1
        return f"MBR-{next_number:05d}"

    def clean(self):
        super().clean()
        errors = {}

        if self.dob and self.dob >= timezone.localdate():
            errors['dob'] = "Date of birth must be in the past"

        if self.monthly_income is not None and self.monthly_income < 0:
            errors['monthly_income'] = "Monthly income cannot be negative"

        if self.group_id and self.branch_id and self.group.branch_id != self.branch_id:
            errors['group'] = "The group belongs to a different branch"

        if errors:
            raise ValidationError(errors)

    # ------------------------------------------------------------------
    # Loan history
    # ------------------------------------------------------------------

    @property
    def total_outstanding(self):
        return self.loans.aggregate(total=Sum('current_balance'))['total'] or Decimal('0.00')

    def has_pending_loans(self):
        """True when an active or repaid loan still carries a balance"""
        return self.loans.filter(status__in=['active', 'repaid'], current_balance__gt=0).exists()

    def has_outstanding_balance(self, exclude_loan=None):
        """Any non-rejected loan with money still owed, written-off loans included"""
        loans = self.loans.filter(current_balance__gt=0).exclude(approval_status='rejected')
        if exclude_loan is not None:
            loans = loans.exclude(pk=exclude_loan.pk)
        return loans.exists()

    def get_loan_history_summary(self):
        history = self.loans.filter(approval_status='approved').aggregate(
            max_borrowed=Max('principal_amount'),
            highest_level=Max('increment_level'),
            total_borrowed=Sum('principal_amount'),
            total_paid=Sum('total_paid'),
        )
        return {
            'loan_count': self.loans.filter(approval_status='approved').count(),
            'max_borrowed': history['max_borrowed'] or Decimal('0.00'),
            'highest_level': history['highest_level'] or 0,
            'total_borrowed': history['total_borrowed'] or Decimal('0.00'),
            'total_paid': history['total_paid'] or Decimal('0.00'),
        }

    def check_loan_eligibility(self, amount, loan_program, approver_role=None, exclude_loan=None):
        """
        Apply the increment ladder to a requested amount.

        Returns:
            tuple: (is_eligible, message, level) where level is the ladder
                   level the loan reaches (None when it does not move up)
        """
        amount = MoneyCalculator.round_money(amount)
        program = LOAN_PROGRAMS.get(loan_program)
        if program is None:
            return False, f"Unknown loan program: {loan_program}", None

        if self.status != 'active':
            return False, f"Member is {self.get_status_display().lower()}; reactivate before lending", None

        if self.has_outstanding_balance(exclude_loan=exclude_loan):
            return False, "Member has a loan with an outstanding balance", None

        levels = LoanIncrementLevel.get_ladder()
        history = self.get_loan_history_summary()
        is_first_loan = history['loan_count'] == 0
        current_level = history['highest_level']
        next_level = current_level + 1 if current_level + 1 in levels else current_level

        if approver_role in ('admin', 'super_admin'):
            level = next((lvl for lvl, amt in levels.items() if amt == amount), None)
            return True, "Approved by administrator override", level

        if is_first_loan:
            if amount != levels.get(1, FIRST_LOAN_AMOUNT):
                return False, f"A first loan must be exactly {CURRENCY} {levels.get(1, FIRST_LOAN_AMOUNT):,.2f}", None
            level = 1
        elif amount == levels.get(next_level):
            level = next_level
        elif amount <= history['max_borrowed']:
            level = None
        else:
            return (
                False,
                f"Amount must be {CURRENCY} {levels.get(next_level, Decimal('0')):,.2f} (level {next_level}) "
                f"or not more than the previous maximum of {CURRENCY} {history['max_borrowed']:,.2f}",
                None,
            )

        effective_level = level or current_level or 1
        if program['installments'] > 8 and effective_level < TWELVE_INSTALLMENT_MIN_LEVEL:
            return False, f"12-instalment loans are available from level {TWELVE_INSTALLMENT_MIN_LEVEL}", None

        return True, "Eligible", level

    # ------------------------------------------------------------------
    # Activity & fees
    # ------------------------------------------------------------------

    def touch_activity(self, activity_date=None):
        activity_date = activity_date or timezone.localdate()
        if self.last_activity_date is None or activity_date > self.last_activity_date:
            self.last_activity_date = activity_date
            Member.objects.filter(pk=self.pk).update(last_activity_date=activity_date)

    def pay_registration_fee(self, amount=REGISTRATION_FEE, paid_on=None):
        if self.registration_fee_paid:
            return False, "Registration fee already paid"
        if MoneyCalculator.round_money(amount) < REGISTRATION_FEE:
            return False, f"Registration fee is {CURRENCY} {REGISTRATION_FEE:,.2f}"
        self.registration_fee_paid = True
        self.registration_fee_paid_at = paid_on or timezone.localdate()
        self.save(update_fields=['registration_fee_paid', 'registration_fee_paid_at', 'updated_at'])
        return True, "Registration fee recorded"

    @db_transaction.atomic
    def reactivate(self, reactivated_by, fee_amount, notes=''):
        """
        Bring a dormant (or inactive) member back to active on payment of
        the activation fee.

        Returns:
            tuple: (success, message)
        """
        if self.status == 'active':
            return False, f"{self.full_name} is already active"

        if MoneyCalculator.round_money(fee_amount) < ACTIVATION_FEE:
            logger.warning(f"Reactivation of {self.member_no} refused: fee {fee_amount} below {ACTIVATION_FEE}")
            return False, f"Activation fee of {CURRENCY} {ACTIVATION_FEE:,.2f} is required"

        today = timezone.localdate()
        self.status = 'active'
        self.activation_fee_paid = True
        self.activation_fee_paid_at = today
        self.last_activity_date = today
        if notes:
            self.notes = f"{self.notes}\n{notes}".strip()
        self.save()

        logger.info(f"Member {self.member_no} reactivated by {reactivated_by}")
        return True, f"{self.full_name} reactivated"


# =============================================================================
# LOAN INCREMENT LEVELS
# =============================================================================

class LoanIncrementLevel(models.Model):
    """One rung of the borrowing ladder"""

    level = models.PositiveSmallIntegerField(unique=True)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['level']

    def __str__(self):
        return f"Level {self.level}: {CURRENCY} {self.amount:,.2f}"

    @property
    def allows_twelve_installments(self):
        return self.level >= TWELVE_INSTALLMENT_MIN_LEVEL

    @classmethod
    def get_ladder(cls):
        """{level: amount} from the table, or the built-in ladder when empty"""
        stored = dict(cls.objects.filter(is_active=True).values_list('level', 'amount'))
        return stored or dict(DEFAULT_INCREMENT_LEVELS)


# =============================================================================
# LOAN MODEL
# =============================================================================

class Loan(BaseModel, CreatedByMixin, ApprovalWorkflowMixin):
    """
    Flat-rate loan repaid in equal instalments
    """

    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('approved', 'Approved'),
        ('disbursed', 'Disbursed'),
        ('active', 'Active'),
        ('repaid', 'Repaid'),
        ('completed', 'Completed'),
        ('defaulted', 'Defaulted'),
        ('bad_debt', 'Bad Debt'),
    ]

    loan_number = models.CharField(max_length=20, unique=True, blank=True, db_index=True)
    member = models.ForeignKey(Member, on_delete=models.PROTECT, related_name='loans')
    branch = models.ForeignKey(Branch, on_delete=models.PROTECT, related_name='loans')
    group = models.ForeignKey(
        MemberGroup,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='loans'
    )
    loan_officer = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='officer_loans'
    )

    # Terms
    loan_program = models.CharField(max_length=20, choices=LOAN_PROGRAM_CHOICES, default='small_loan')
    installment_type = models.CharField(max_length=10, choices=INSTALLMENT_TYPE_CHOICES, default='weekly')
    principal_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    interest_rate = models.DecimalField(max_digits=5, decimal_places=4, default=Decimal('0.15'))
    interest_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    processing_fee = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    installment_count = models.PositiveSmallIntegerField(default=8)
    increment_level = models.PositiveSmallIntegerField(null=True, blank=True)
    issue_date = models.DateField(default=timezone.localdate)
    due_date = models.DateField(null=True, blank=True)

    # Running totals
    total_paid = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    current_balance = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending', db_index=True)
    written_off_date = models.DateField(null=True, blank=True)
    notes = models.TextField(blank=True)

    objects = LoanManager()
    all_objects = models.Manager()

    class Meta:
        ordering = ['-issue_date', '-created_at']
        indexes = [
            models.Index(fields=['status', 'branch']),
            models.Index(fields=['member', 'status']),
            models.Index(fields=['loan_officer', 'status']),
            models.Index(fields=['issue_date']),
        ]
        constraints = [
            models.CheckConstraint(
                check=models.Q(principal_amount__gt=0),
                name='loan_principal_positive'
            ),
            models.CheckConstraint(
                check=models.Q(total_paid__gte=0),
                name='loan_total_paid_positive'
            ),
        ]

    def __str__(self):
        return f"{self.loan_number} - {self.member.full_name}"

    def save(self, *args, **kwargs):
        if not self.loan_number:
            self.loan_number = self.generate_loan_number()
        super().save(*args, **kwargs)

    @staticmethod
    def generate_loan_number():
        """LN-YYYYMM-#### numbered within the month"""
        prefix = f"LN-{timezone.localdate().strftime('%Y%m')}-"
        last = Loan.all_objects.filter(
            loan_number__startswith=prefix
        ).order_by('-loan_number').values_list('loan_number', flat=True).first()
        sequence = int(last.rsplit('-', 1)[1]) + 1 if last else 1
        return f"{prefix}{sequence:04d}"

    def clean(self):
        super().clean()
        errors = {}

        if self.loan_program not in LOAN_PROGRAMS:
            errors['loan_program'] = "Unknown loan program"

        if self.principal_amount is not None and self.principal_amount <= 0:
            errors['principal_amount'] = "Principal must be greater than zero"

        if self.member_id and self.branch_id and self.member.branch_id != self.branch_id:
            errors['branch'] = "Loan branch must match the member's branch"

        if errors:
            raise ValidationError(errors)

    # ------------------------------------------------------------------
    # Pricing & schedule
    # ------------------------------------------------------------------

    def calculate_loan_details(self):
        """Fill interest, fee, total, instalment count and due date from the program"""
        program = LOAN_PROGRAMS[self.loan_program]
        pricing = InterestCalculator.calculate_flat_interest(
            self.principal_amount, program['interest_rate'], PROCESSING_FEE_RATE
        )
        self.principal_amount = pricing['principal']
        self.interest_rate = pricing['interest_rate']
        self.interest_amount = pricing['interest_amount']
        self.processing_fee = pricing['processing_fee']
        self.total_amount = pricing['total_amount']
        self.installment_count = program['installments']
        self.current_balance = self.total_amount - self.total_paid
        self.due_date = add_periods(self.issue_date, self.installment_count, self.installment_type)
        return pricing

    def generate_installments(self):
        """(Re)build the instalment rows; only valid before any payment"""
        if self.total_paid > 0:
            raise ValueError("Cannot rebuild the schedule of a loan that has payments")

        self.installments.all().delete()
        rows = build_installment_schedule(
            self.principal_amount,
            self.interest_amount,
            self.installment_count,
            self.issue_date,
            self.installment_type,
        )
        LoanInstallment.objects.bulk_create([
            LoanInstallment(loan=self, **row) for row in rows
        ])

    @classmethod
    @db_transaction.atomic
    def create_loan(cls, member, principal_amount, created_by, loan_program='small_loan',
                    installment_type='weekly', issue_date=None, loan_officer=None, notes=''):
        """
        Validate against the increment ladder, price the loan, build the
        schedule and record the member's activity.

        Raises:
            ValidationError: when the member is not eligible for the amount
        """
        from microfinance.permissions import PermissionChecker

        checker = PermissionChecker(created_by)
        eligible, message, level = member.check_loan_eligibility(
            principal_amount, loan_program, approver_role=checker.role
        )
        if not eligible:
            logger.warning(f"Loan refused for {member.member_no}: {message}")
            raise ValidationError({'principal_amount': message})

        loan = cls(
            member=member,
            branch=member.branch,
            group=member.group,
            loan_officer=loan_officer or member.assigned_officer or created_by,
            loan_program=loan_program,
            installment_type=installment_type,
            principal_amount=principal_amount,
            issue_date=issue_date or timezone.localdate(),
            increment_level=level,
            notes=notes,
            created_by=created_by,
        )
        loan.calculate_loan_details()

        if checker.can_approve_loans():
            loan.approval_status = 'approved'
            loan.approved_by = created_by
            loan.approved_at = timezone.now()
            loan.status = 'active'
        else:
            loan.approval_status = 'pending'
            loan.status = 'pending'

        loan.full_clean(exclude=['loan_number'])
        loan.save()
        loan.generate_installments()
        member.touch_activity(loan.issue_date)

        if loan.approval_status == 'pending':
            Notification.notify_branch_admins(
                loan.branch,
                notification_type='loan_pending',
                title='Loan awaiting approval',
                message=f"{loan.loan_number} for {member.full_name}: {CURRENCY} {loan.principal_amount:,.2f}",
                loan=loan,
            )

        logger.info(f"Loan {loan.loan_number} created for {member.member_no} by {created_by} ({loan.status})")
        return loan

    @db_transaction.atomic
    def update_terms(self, updated_by, principal_amount, loan_program, installment_type,
                     issue_date=None, loan_officer=None, notes=None):
        """
        Re-price a pending application and rebuild its schedule.

        Raises:
            ValidationError: when the new terms break the ladder rules
        """
        from microfinance.permissions import PermissionChecker

        if self.approval_status != 'pending' or self.total_paid > 0:
            raise ValidationError("Only pending loans without payments can be edited")

        checker = PermissionChecker(updated_by)
        eligible, message, level = self.member.check_loan_eligibility(
            principal_amount, loan_program, approver_role=checker.role, exclude_loan=self
        )
        if not eligible:
            raise ValidationError({'principal_amount': message})

        self.principal_amount = principal_amount
        self.loan_program = loan_program
        self.installment_type = installment_type
        self.increment_level = level
        if issue_date:
            self.issue_date = issue_date
        if loan_officer:
            self.loan_officer = loan_officer
        if notes is not None:
            self.notes = notes

        self.calculate_loan_details()
        self.full_clean(exclude=['loan_number'])
        self.save()
        self.generate_installments()
        logger.info(f"Loan {self.loan_number} terms edited by {updated_by}")

    # ------------------------------------------------------------------
    # Workflow
    # ------------------------------------------------------------------

    @db_transaction.atomic
    def approve(self, approved_by):
        """Approve a pending loan; the schedule restarts today when nothing was paid"""
        self.mark_approved(approved_by)
        self.status = 'active'

        today = timezone.localdate()
        if self.total_paid == 0 and self.issue_date < today:
            self.issue_date = today
            self.calculate_loan_details()
            self.generate_installments()

        self.save()
        Notification.notify(
            [self.created_by],
            notification_type='loan_approved',
            title='Loan approved',
            message=f"{self.loan_number} for {self.member.full_name} was approved",
            loan=self,
        )
        logger.info(f"Loan {self.loan_number} approved by {approved_by}")

    @db_transaction.atomic
    def reject(self, rejected_by, reason=''):
        if not reason:
            raise ValueError("A rejection reason is required")
        self.mark_rejected(rejected_by, reason)
        self.status = 'pending'
        # nothing was issued, so nothing is owed
        self.current_balance = Decimal('0.00')
        self.save()
        Notification.notify(
            [self.created_by],
            notification_type='loan_rejected',
            title='Loan rejected',
            message=f"{self.loan_number} for {self.member.full_name} was rejected: {reason}",
            loan=self,
        )
        logger.info(f"Loan {self.loan_number} rejected by {rejected_by}: {reason}")

    def mark_defaulted(self, marked_by=None):
        if self.status != 'active':
            raise ValueError(f"Only active loans can be marked defaulted (status: {self.status})")
        if self.current_balance <= 0:
            raise ValueError("Loan has no outstanding balance")
        if not self.due_date or self.due_date >= timezone.localdate():
            raise ValueError("Loan is not past its due date")
        self.status = 'defaulted'
        self.save(update_fields=['status', 'updated_at'])
        logger.info(f"Loan {self.loan_number} marked defaulted by {marked_by}")

    def write_off(self, written_off_by, notes=''):
        """Move a defaulted loan to bad debt"""
        if self.status != 'defaulted':
            raise ValueError(f"Only defaulted loans can be written off (status: {self.status})")

        today = timezone.localdate()
        self.status = 'bad_debt'
        self.written_off_date = today
        entry = f"[{today.isoformat()}] Written off by {written_off_by}"
        if notes:
            entry += f": {notes}"
        self.notes = f"{self.notes}\n{entry}".strip()
        self.save(update_fields=['status', 'written_off_date', 'notes', 'updated_at'])
        logger.info(f"Loan {self.loan_number} written off by {written_off_by}, balance {self.current_balance}")

    def delete(self, using=None, keep_parents=False, deleted_by=None, hard=False):
        result = super().delete(using=using, keep_parents=keep_parents, deleted_by=deleted_by, hard=hard)
        logger.info(f"Loan {self.loan_number} deleted by {deleted_by}")
        return result

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def can_receive_payment(self):
        if self.is_deleted:
            return False, "Loan has been deleted"
        if self.approval_status != 'approved':
            return False, f"Loan is {self.get_approval_status_display().lower()}"
        if self.status == 'bad_debt':
            return False, "Loan has been written off"
        if self.current_balance <= 0:
            return False, "Loan is fully repaid"
        return True, ""

    @db_transaction.atomic
    def record_payment(self, amount, received_by, payment_date=None, payment_reference='',
                       payment_method='cash', notes=''):
        """
        Apply a payment across unpaid instalments in order.

        Within an instalment the interest share is settled first, which is
        how the income report attributes interest.

        Returns:
            LoanPayment
        """
        loan = Loan.objects.select_for_update().get(pk=self.pk)
        amount = MoneyCalculator.round_money(amount)
        payment_date = payment_date or timezone.localdate()

        ok, reason = loan.can_receive_payment()
        if not ok:
            raise ValueError(reason)
        if amount <= 0:
            raise ValueError("Payment amount must be greater than zero")
        if amount > loan.current_balance:
            raise ValueError(
                f"Payment of {CURRENCY} {amount:,.2f} exceeds the balance of {CURRENCY} {loan.current_balance:,.2f}"
            )

        remaining = amount
        interest_portion = Decimal('0.00')
        first_installment = None

        for installment in loan.installments.exclude(status='paid').order_by('installment_number'):
            if remaining <= 0:
                break
            applied, interest_applied = installment.apply(remaining, payment_date)
            if applied and first_installment is None:
                first_installment = installment.installment_number
            remaining -= applied
            interest_portion += interest_applied

        payment = LoanPayment.objects.create(
            loan=loan,
            amount=amount,
            installment_number=first_installment,
            payment_date=payment_date,
            payment_reference=payment_reference or LoanPayment.generate_reference(),
            payment_method=payment_method,
            interest_portion=interest_portion,
            principal_portion=amount - interest_portion,
            notes=notes,
            created_by=received_by,
        )

        loan.total_paid = F('total_paid') + amount
        loan.current_balance = F('current_balance') - amount
        loan.save(update_fields=['total_paid', 'current_balance', 'updated_at'])
        loan.refresh_from_db(fields=['total_paid', 'current_balance'])

        if loan.current_balance <= 0:
            loan.status = 'repaid'
            loan.save(update_fields=['status', 'updated_at'])

        loan.member.touch_activity(payment_date)

        self.total_paid = loan.total_paid
        self.current_balance = loan.current_balance
        self.status = loan.status

        logger.info(
            f"Payment {payment.payment_reference} of {amount} posted to {loan.loan_number} "
            f"by {received_by}; balance {loan.current_balance}"
        )
        return payment

    # ------------------------------------------------------------------
    # Derived figures (use prefetched instalments when available)
    # ------------------------------------------------------------------

    def _installment_list(self):
        return list(self.installments.all())

    @property
    def installment_amount(self):
        installments = self._installment_list()
        if installments:
            return installments[0].total_amount
        return MoneyCalculator.safe_divide(self.total_amount, self.installment_count)

    @property
    def next_payment_date(self):
        unpaid = [i for i in self._installment_list() if i.status != 'paid']
        return min((i.due_date for i in unpaid), default=None)

    def overdue_installments(self, as_of=None):
        as_of = as_of or timezone.localdate()
        return [i for i in self._installment_list() if i.status != 'paid' and i.due_date < as_of]

    def get_overdue_amount(self, as_of=None):
        return sum((i.remaining_amount for i in self.overdue_installments(as_of)), Decimal('0.00'))

    @property
    def overdue_amount(self):
        return self.get_overdue_amount()

    @property
    def is_overdue(self):
        return self.current_balance > 0 and bool(self.overdue_installments())

    def get_days_overdue(self, as_of=None):
        as_of = as_of or timezone.localdate()
        overdue = self.overdue_installments(as_of)
        if not overdue:
            return 0
        return (as_of - min(i.due_date for i in overdue)).days

    @property
    def days_overdue(self):
        return self.get_days_overdue()

    @property
    def payment_progress_percentage(self):
        return MoneyCalculator.percentage_of(self.total_paid, self.total_amount)

    def get_last_payment_date(self):
        return self.payments.aggregate(last=Max('payment_date'))['last']


# =============================================================================
# LOAN INSTALMENTS
# =============================================================================

class LoanInstallment(models.Model):
    """One scheduled repayment of a loan"""

    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('partial', 'Partially Paid'),
        ('paid', 'Paid'),
        ('overdue', 'Overdue'),
    ]

    loan = models.ForeignKey(Loan, on_delete=models.CASCADE, related_name='installments')
    installment_number = models.PositiveSmallIntegerField()
    due_date = models.DateField(db_index=True)
    principal_amount = models.DecimalField(max_digits=12, decimal_places=2)
    interest_amount = models.DecimalField(max_digits=12, decimal_places=2)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2)
    amount_paid = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='pending')
    paid_date = models.DateField(null=True, blank=True)

    class Meta:
        ordering = ['installment_number']
        constraints = [
            models.UniqueConstraint(fields=['loan', 'installment_number'], name='unique_loan_installment'),
        ]

    def __str__(self):
        return f"{self.loan.loan_number} #{self.installment_number}"

    @property
    def remaining_amount(self):
        return max(self.total_amount - self.amount_paid, Decimal('0.00'))

    @property
    def interest_paid(self):
        return min(self.interest_amount, self.amount_paid)

    def display_status(self, as_of=None):
        """Stored status, with unpaid past-due instalments shown as overdue"""
        as_of = as_of or timezone.localdate()
        if self.status != 'paid' and self.due_date < as_of:
            return 'overdue'
        return self.status

    def apply(self, amount, payment_date):
        """
        Apply up to `amount` to this instalment.

        Returns:
            tuple: (amount applied, interest share of it)
        """
        applied = min(amount, self.remaining_amount)
        if applied <= 0:
            return Decimal('0.00'), Decimal('0.00')

        interest_before = self.interest_paid
        self.amount_paid += applied
        interest_applied = self.interest_paid - interest_before

        if self.amount_paid >= self.total_amount:
            self.status = 'paid'
            self.paid_date = payment_date
        else:
            self.status = 'partial'

        self.save(update_fields=['amount_paid', 'status', 'paid_date'])
        return applied, interest_applied


# =============================================================================
# LOAN PAYMENTS
# =============================================================================

class LoanPayment(BaseModel, CreatedByMixin):
    """Money received against a loan"""

    loan = models.ForeignKey(Loan, on_delete=models.PROTECT, related_name='payments')
    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    installment_number = models.PositiveSmallIntegerField(null=True, blank=True)
    payment_date = models.DateField(default=timezone.localdate, db_index=True)
    payment_reference = models.CharField(max_length=60, db_index=True)
    payment_method = models.CharField(max_length=20, choices=PAYMENT_METHOD_CHOICES, default='cash')
    interest_portion = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    principal_portion = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    notes = models.TextField(blank=True)

    objects = LoanPaymentManager()

    class Meta:
        ordering = ['-payment_date', '-created_at']
        indexes = [
            models.Index(fields=['loan', 'payment_date']),
        ]

    def __str__(self):
        return f"{self.payment_reference}: {CURRENCY} {self.amount:,.2f}"

    @staticmethod
    def generate_reference():
        return f"PAY-{int(timezone.now().timestamp() * 1000)}"


# =============================================================================
# COMMUNICATION LOGS
# =============================================================================

class CommunicationLog(BaseModel):
    """A contact with a member, optionally about one loan"""

    TYPE_CHOICES = [
        ('call', 'Phone Call'),
        ('sms', 'SMS'),
        ('visit', 'Field Visit'),
        ('email', 'Email'),
        ('meeting', 'Meeting'),
        ('other', 'Other'),
    ]

    communication_type = models.CharField(max_length=10, choices=TYPE_CHOICES)
    notes = models.TextField()
    follow_up_date = models.DateField(null=True, blank=True, db_index=True)
    follow_up_notes = models.TextField(blank=True)
    loan = models.ForeignKey(
        Loan,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='communication_logs'
    )
    member = models.ForeignKey(Member, on_delete=models.CASCADE, related_name='communication_logs')
    officer = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        related_name='communication_logs'
    )

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.get_communication_type_display()} with {self.member.full_name}"

    def clean(self):
        super().clean()
        if self.loan_id and self.member_id and self.loan.member_id != self.member_id:
            raise ValidationError({'loan': "The loan does not belong to this member"})


# =============================================================================
# EXPENSES
# =============================================================================

class ExpenseCategory(BaseModel):
    name = models.CharField(max_length=100)
    code = models.CharField(max_length=20, unique=True)
    description = models.TextField(blank=True)
    budget_limit = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Monthly spending limit for the category"
    )
    is_active = models.BooleanField(default=True)

    class Meta:
        verbose_name_plural = 'Expense categories'
        ordering = ['name']

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        self.code = (self.code or '').upper()
        super().save(*args, **kwargs)

    def spent_in_month(self, year, month, branch=None):
        expenses = self.expenses.active().in_month(year, month)
        if branch is not None:
            expenses = expenses.for_branch(branch)
        return expenses.total_amount()


class Expense(BaseModel, CreatedByMixin):
    """Operating expense of a branch"""

    STATUS_CHOICES = [
        ('active', 'Active'),
        ('inactive', 'Inactive'),
    ]

    PRIORITY_CHOICES = [
        ('low', 'Low'),
        ('medium', 'Medium'),
        ('high', 'High'),
        ('urgent', 'Urgent'),
    ]

    expense_number = models.CharField(max_length=20, unique=True, blank=True, db_index=True)
    title = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default=CURRENCY)
    category = models.ForeignKey(
        ExpenseCategory,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='expenses'
    )
    expense_date = models.DateField(default=timezone.localdate, db_index=True)
    due_date = models.DateField(null=True, blank=True)
    vendor_name = models.CharField(max_length=150, blank=True)
    vendor_contact = models.CharField(max_length=100, blank=True)
    invoice_number = models.CharField(max_length=50, blank=True)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='active', db_index=True)
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default='medium')
    payment_method = models.CharField(max_length=20, choices=PAYMENT_METHOD_CHOICES, default='cash')
    payment_date = models.DateField(null=True, blank=True)
    branch = models.ForeignKey(
        Branch,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='expenses'
    )
    department = models.CharField(max_length=100, blank=True)
    tags = models.CharField(max_length=255, blank=True, help_text="Comma-separated tags")
    notes = models.TextField(blank=True)

    objects = ExpenseManager()

    class Meta:
        ordering = ['-expense_date', '-created_at']
        indexes = [
            models.Index(fields=['branch', 'expense_date']),
            models.Index(fields=['category', 'expense_date']),
        ]

    def __str__(self):
        return f"{self.expense_number} - {self.title}"

    def save(self, *args, **kwargs):
        if not self.expense_number:
            self.expense_number = self.generate_expense_number()
        super().save(*args, **kwargs)

    @staticmethod
    def generate_expense_number():
        prefix = f"EXP-{timezone.localdate().strftime('%Y%m')}-"
        last = Expense.all_objects.filter(
            expense_number__startswith=prefix
        ).order_by('-expense_number').values_list('expense_number', flat=True).first()
        sequence = int(last.rsplit('-', 1)[1]) + 1 if last else 1
        return f"{prefix}{sequence:04d}"

    def clean(self):
        super().clean()
        errors = {}

        if self.amount is not None and self.amount <= 0:
            errors['amount'] = "Amount must be greater than zero"

        if self.payment_date and self.expense_date and self.payment_date < self.expense_date:
            errors['payment_date'] = "Payment date cannot be before the expense date"

        if self.category_id and not self.category.is_active:
            errors['category'] = "This category is inactive"

        if errors:
            raise ValidationError(errors)

    @property
    def tag_list(self):
        return [tag.strip() for tag in self.tags.split(',') if tag.strip()]

    def budget_warning(self):
        """Message when this expense takes its category over the monthly limit, else None"""
        if not self.category_id or not self.category.budget_limit or self.amount is None:
            return None
        year, month = self.expense_date.year, self.expense_date.month
        spent = self.category.spent_in_month(year, month)
        if self.pk:
            # The stored version is only in that total when it sits in the same category and month
            counted = self.category.expenses.active().in_month(year, month).filter(pk=self.pk)
            spent -= counted.values_list('amount', flat=True).first() or 0
        projected = spent + self.amount
        if projected > self.category.budget_limit:
            return (
                f"{self.category.name} spending for {self.expense_date:%B %Y} will be "
                f"{CURRENCY} {projected:,.2f}, above the {CURRENCY} {self.category.budget_limit:,.2f} limit"
            )
        return None


class ExpenseBudget(BaseModel):
    """Budget for one category in one branch and month (branch blank = all branches)"""

    category = models.ForeignKey(ExpenseCategory, on_delete=models.CASCADE, related_name='budgets')
    branch = models.ForeignKey(
        Branch,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='expense_budgets'
    )
    year = models.PositiveSmallIntegerField()
    month = models.PositiveSmallIntegerField()
    budget_amount = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        ordering = ['-year', '-month', 'category__name']
        constraints = [
            models.UniqueConstraint(
                fields=['category', 'branch', 'year', 'month'],
                name='unique_expense_budget_period'
            ),
        ]

    def __str__(self):
        return f"{self.category.name} {self.year}-{self.month:02d}"

    def clean(self):
        super().clean()
        errors = {}
        if self.month is not None and not 1 <= self.month <= 12:
            errors['month'] = "Month must be between 1 and 12"
        if self.budget_amount is not None and self.budget_amount < 0:
            errors['budget_amount'] = "Budget cannot be negative"
        if errors:
            raise ValidationError(errors)

    @property
    def spent_amount(self):
        return self.category.spent_in_month(self.year, self.month, self.branch)

    @property
    def remaining_amount(self):
        return self.budget_amount - self.spent_amount

    @property
    def utilisation_percentage(self):
        return MoneyCalculator.percentage_of(self.spent_amount, self.budget_amount)


# =============================================================================
# REALIZABLE ASSETS (COLLATERAL)
# =============================================================================

class RealizableAsset(BaseModel, CreatedByMixin):
    """Collateral that could be realised to recover a loan"""

    ASSET_TYPE_CHOICES = [
        ('land', 'Land'),
        ('building', 'Building'),
        ('vehicle', 'Vehicle'),
        ('equipment', 'Equipment'),
        ('livestock', 'Livestock'),
        ('household', 'Household Items'),
        ('inventory', 'Business Inventory'),
        ('other', 'Other'),
    ]

    LIKELIHOOD_CHOICES = [
        ('high', 'High'),
        ('medium', 'Medium'),
        ('low', 'Low'),
    ]

    STATUS_CHOICES = [
        ('available', 'Available'),
        ('under_review', 'Under Review'),
        ('realized', 'Realized'),
        ('written_off', 'Written Off'),
    ]

    asset_type = models.CharField(max_length=20, choices=ASSET_TYPE_CHOICES)
    description = models.TextField()
    original_value = models.DecimalField(max_digits=14, decimal_places=2)
    current_market_value = models.DecimalField(max_digits=14, decimal_places=2)
    realizable_value = models.DecimalField(max_digits=14, decimal_places=2)
    realization_period = models.PositiveSmallIntegerField(default=3, help_text="Expected months to realise")
    recovery_likelihood = models.CharField(max_length=10, choices=LIKELIHOOD_CHOICES, default='medium')
    risk_factor = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal('0.00'),
        help_text="Percentage discount for realisation risk"
    )
    status = models.CharField(max_length=15, choices=STATUS_CHOICES, default='available')
    loan = models.ForeignKey(
        Loan,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='assets'
    )
    member = models.ForeignKey(Member, on_delete=models.CASCADE, related_name='assets')
    branch = models.ForeignKey(Branch, on_delete=models.PROTECT, related_name='assets')
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.get_asset_type_display()} - {self.member.full_name}"

    def clean(self):
        super().clean()
        errors = {}
        if self.realizable_value is not None and self.current_market_value is not None \
                and self.realizable_value > self.current_market_value:
            errors['realizable_value'] = "Realizable value cannot exceed the current market value"
        if self.risk_factor is not None and not Decimal('0') <= self.risk_factor <= Decimal('100'):
            errors['risk_factor'] = "Risk factor is a percentage between 0 and 100"
        if errors:
            raise ValidationError(errors)

    @property
    def risk_adjusted_value(self):
        discount = MoneyCalculator.calculate_percentage(self.realizable_value, self.risk_factor / 100)
        return self.realizable_value - discount


# =============================================================================
# NOTIFICATIONS
# =============================================================================

class Notification(models.Model):
    TYPE_CHOICES = [
        ('loan_approved', 'Loan Approved'),
        ('loan_rejected', 'Loan Rejected'),
        ('loan_pending', 'Loan Pending'),
        ('info', 'Info'),
        ('warning', 'Warning'),
        ('error', 'Error'),
        ('success', 'Success'),
    ]

    recipient = models.ForeignKey(User, on_delete=models.CASCADE, related_name='notifications')
    notification_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='info')
    title = models.CharField(max_length=200)
    message = models.TextField()
    loan = models.ForeignKey(Loan, on_delete=models.SET_NULL, null=True, blank=True, related_name='notifications')
    is_read = models.BooleanField(default=False, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.title} -> {self.recipient.email}"

    @classmethod
    def notify(cls, recipients, notification_type, title, message, loan=None):
        rows = [
            cls(recipient=user, notification_type=notification_type, title=title, message=message, loan=loan)
            for user in recipients if user is not None
        ]
        return cls.objects.bulk_create(rows)

    @classmethod
    def notify_branch_admins(cls, branch, **kwargs):
        admins = User.objects.filter(branch=branch, role='branch_admin', is_active=True)
        return cls.notify(list(admins), **kwargs)


# =============================================================================
# CHANGE FEED
# =============================================================================

class ChangeFeed(models.Model):
    """
    Single counter bumped on every tracked write; pages poll it and reload
    when it moves.
    """

    key = models.CharField(max_length=20, primary_key=True, default='global')
    version = models.PositiveBigIntegerField(default=0)
    last_model = models.CharField(max_length=50, blank=True)
    changed_at = models.DateTimeField(null=True, blank=True)

    def __str__(self):
        return f"{self.key}@{self.version}"

    @classmethod
    def bump(cls, model_label=''):
        updated = cls.objects.filter(key='global').update(
            version=F('version') + 1,
            last_model=model_label,
            changed_at=timezone.now(),
        )
        if not updated:
            cls.objects.get_or_create(
                key='global',
                defaults={'version': 1, 'last_model': model_label, 'changed_at': timezone.now()},
            )

    @classmethod
    def current_version(cls):
        return cls.objects.filter(key='global').values_list('version', flat=True).first() or 0
