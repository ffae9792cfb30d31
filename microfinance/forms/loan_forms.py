"""
Loan Forms
==========

Loan application, approval workflow and repayment forms
"""

from django import forms
from django.core.exceptions import ValidationError
from django.utils import timezone
from decimal import Decimal

from microfinance.models import (
    Loan, Member, MemberGroup, Branch, User,
    LOAN_PROGRAM_CHOICES, INSTALLMENT_TYPE_CHOICES, PAYMENT_METHOD_CHOICES,
)
from microfinance.utils.money import MoneyCalculator


# CSS Classes for form widgets
TEXT_INPUT_CLASS = 'w-full px-4 py-3 rounded-lg border border-gray-300 bg-white text-gray-900 focus:border-primary-500 focus:ring-2 focus:ring-primary-200 transition-all'
SELECT_CLASS = TEXT_INPUT_CLASS
TEXTAREA_CLASS = TEXT_INPUT_CLASS
DATE_INPUT_CLASS = TEXT_INPUT_CLASS


# =============================================================================
# LOAN APPLICATION
# =============================================================================

class LoanCreateForm(forms.Form):
    """
    New loan for an existing member.

    Pricing, the schedule and the increment ladder are applied by
    Loan.create_loan(); this form only collects the request.
    """

    member = forms.ModelChoiceField(
        queryset=Member.objects.none(),
        widget=forms.Select(attrs={'class': SELECT_CLASS})
    )
    principal_amount = forms.DecimalField(
        max_digits=12,
        decimal_places=2,
        min_value=Decimal('0.01'),
        widget=forms.NumberInput(attrs={
            'class': TEXT_INPUT_CLASS,
            'step': '0.01',
            'placeholder': '5000.00',
        })
    )
    loan_program = forms.ChoiceField(
        choices=LOAN_PROGRAM_CHOICES,
        initial='small_loan',
        widget=forms.Select(attrs={'class': SELECT_CLASS})
    )
    installment_type = forms.ChoiceField(
        choices=INSTALLMENT_TYPE_CHOICES,
        initial='weekly',
        widget=forms.Select(attrs={'class': SELECT_CLASS})
    )
    issue_date = forms.DateField(
        required=False,
        widget=forms.DateInput(attrs={'class': DATE_INPUT_CLASS, 'type': 'date'})
    )
    loan_officer = forms.ModelChoiceField(
        queryset=User.objects.none(),
        required=False,
        empty_label="Member's assigned officer",
        widget=forms.Select(attrs={'class': SELECT_CLASS})
    )
    notes = forms.CharField(
        required=False,
        widget=forms.Textarea(attrs={'class': TEXTAREA_CLASS, 'rows': 3})
    )

    def __init__(self, *args, checker=None, **kwargs):
        super().__init__(*args, **kwargs)
        members = Member.objects.filter(status='active').select_related('branch')
        officers = User.objects.filter(role='loan_officer', is_active=True)
        if checker is not None:
            members = checker.filter_members(members)
            if not checker.can_view_all_branches() and checker.branch is not None:
                officers = officers.filter(branch=checker.branch)
        self.fields['member'].queryset = members.order_by('full_name')
        self.fields['loan_officer'].queryset = officers

    def clean_principal_amount(self):
        return MoneyCalculator.round_money(self.cleaned_data['principal_amount'])

    def clean_issue_date(self):
        issue_date = self.cleaned_data.get('issue_date')
        if issue_date and issue_date > timezone.localdate():
            raise ValidationError("Issue date cannot be in the future.")
        return issue_date


class LoanRejectForm(forms.Form):

    reason = forms.CharField(
        widget=forms.Textarea(attrs={
            'class': TEXTAREA_CLASS,
            'rows': 3,
            'placeholder': 'Why is this application rejected?',
        })
    )


class LoanWriteOffForm(forms.Form):

    notes = forms.CharField(
        required=False,
        widget=forms.Textarea(attrs={'class': TEXTAREA_CLASS, 'rows': 3})
    )
    confirm = forms.BooleanField(
        required=True,
        label='I confirm this loan is unrecoverable'
    )


class LoanSearchForm(forms.Form):
    """Search and filter loans"""

    search = forms.CharField(
        required=False,
        widget=forms.TextInput(attrs={
            'class': TEXT_INPUT_CLASS,
            'placeholder': 'Loan number, member name or member no...',
        })
    )
    status = forms.ChoiceField(
        required=False,
        choices=[('', 'All Status')] + Loan.STATUS_CHOICES,
        widget=forms.Select(attrs={'class': SELECT_CLASS})
    )
    approval_status = forms.ChoiceField(
        required=False,
        choices=[('', 'Any Approval'), ('pending', 'Pending'), ('approved', 'Approved'), ('rejected', 'Rejected')],
        widget=forms.Select(attrs={'class': SELECT_CLASS})
    )
    loan_program = forms.ChoiceField(
        required=False,
        choices=[('', 'All Programs')] + LOAN_PROGRAM_CHOICES,
        widget=forms.Select(attrs={'class': SELECT_CLASS})
    )
    branch = forms.ModelChoiceField(
        queryset=Branch.objects.all(),
        required=False,
        empty_label='All Branches',
        widget=forms.Select(attrs={'class': SELECT_CLASS})
    )
    date_from = forms.DateField(
        required=False,
        widget=forms.DateInput(attrs={'class': DATE_INPUT_CLASS, 'type': 'date'})
    )
    date_to = forms.DateField(
        required=False,
        widget=forms.DateInput(attrs={'class': DATE_INPUT_CLASS, 'type': 'date'})
    )

    def __init__(self, *args, checker=None, **kwargs):
        super().__init__(*args, **kwargs)
        if checker is not None:
            self.fields['branch'].queryset = checker.filter_branches(Branch.objects.all())


# =============================================================================
# REPAYMENTS
# =============================================================================

class LoanPaymentForm(forms.Form):
    """Single repayment against one loan"""

    amount = forms.DecimalField(
        max_digits=12,
        decimal_places=2,
        min_value=Decimal('0.01'),
        widget=forms.NumberInput(attrs={'class': TEXT_INPUT_CLASS, 'step': '0.01'})
    )
    payment_date = forms.DateField(
        required=False,
        widget=forms.DateInput(attrs={'class': DATE_INPUT_CLASS, 'type': 'date'})
    )
    payment_method = forms.ChoiceField(
        choices=PAYMENT_METHOD_CHOICES,
        initial='cash',
        widget=forms.Select(attrs={'class': SELECT_CLASS})
    )
    payment_reference = forms.CharField(
        required=False,
        max_length=60,
        widget=forms.TextInput(attrs={
            'class': TEXT_INPUT_CLASS,
            'placeholder': 'M-Pesa code or receipt number',
        })
    )
    notes = forms.CharField(
        required=False,
        widget=forms.Textarea(attrs={'class': TEXTAREA_CLASS, 'rows': 2})
    )

    def __init__(self, *args, loan=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.loan = loan
        if loan is not None:
            self.fields['amount'].widget.attrs['max'] = str(loan.current_balance)
            self.fields['amount'].initial = min(loan.installment_amount, loan.current_balance)

    def clean_amount(self):
        amount = MoneyCalculator.round_money(self.cleaned_data['amount'])
        if self.loan is not None and amount > self.loan.current_balance:
            raise ValidationError(
                f"Amount exceeds the outstanding balance of KES {self.loan.current_balance:,.2f}."
            )
        return amount

    def clean_payment_date(self):
        payment_date = self.cleaned_data.get('payment_date')
        if payment_date and payment_date > timezone.localdate():
            raise ValidationError("Payment date cannot be in the future.")
        return payment_date


class BulkPaymentForm(forms.Form):
    """
    One amount per collectable loan of a member or group, plus the cash
    total counted at the desk. The total must match the lines to the cent.
    """

    total_amount = forms.DecimalField(
        max_digits=14,
        decimal_places=2,
        min_value=Decimal('0.01'),
        widget=forms.NumberInput(attrs={'class': TEXT_INPUT_CLASS, 'step': '0.01'})
    )
    payment_date = forms.DateField(
        required=False,
        widget=forms.DateInput(attrs={'class': DATE_INPUT_CLASS, 'type': 'date'})
    )
    payment_method = forms.ChoiceField(
        choices=PAYMENT_METHOD_CHOICES,
        initial='cash',
        widget=forms.Select(attrs={'class': SELECT_CLASS})
    )
    notes = forms.CharField(
        required=False,
        widget=forms.Textarea(attrs={'class': TEXTAREA_CLASS, 'rows': 2})
    )

    TOLERANCE = Decimal('0.01')

    def __init__(self, *args, loans=(), **kwargs):
        super().__init__(*args, **kwargs)
        self.loans = list(loans)
        for loan in self.loans:
            self.fields[self.field_name(loan)] = forms.DecimalField(
                required=False,
                max_digits=12,
                decimal_places=2,
                min_value=Decimal('0.00'),
                label=f"{loan.loan_number} - {loan.member.full_name}",
                widget=forms.NumberInput(attrs={
                    'class': TEXT_INPUT_CLASS,
                    'step': '0.01',
                    'max': str(loan.current_balance),
                })
            )

    @staticmethod
    def field_name(loan):
        return f"amount_{loan.pk}"

    def line_fields(self):
        return [self[self.field_name(loan)] for loan in self.loans]

    def clean(self):
        cleaned_data = super().clean()
        lines = []
        for loan in self.loans:
            amount = cleaned_data.get(self.field_name(loan))
            if not amount:
                continue
            amount = MoneyCalculator.round_money(amount)
            if amount > loan.current_balance:
                self.add_error(
                    self.field_name(loan),
                    f"Exceeds the balance of KES {loan.current_balance:,.2f}."
                )
                continue
            lines.append((loan, amount))

        if not lines and not self.errors:
            raise ValidationError("Enter an amount for at least one loan.")

        total = cleaned_data.get('total_amount')
        line_sum = MoneyCalculator.sum_amounts(*[amount for _, amount in lines])
        if total is not None and abs(total - line_sum) > self.TOLERANCE:
            raise ValidationError(
                f"Total KES {total:,.2f} does not match the sum of the lines (KES {line_sum:,.2f})."
            )

        cleaned_data['lines'] = lines
        return cleaned_data


class BulkPaymentTargetForm(forms.Form):
    """Pick whose loans to collect: one member or a whole group"""

    member = forms.ModelChoiceField(
        queryset=Member.objects.none(),
        required=False,
        widget=forms.Select(attrs={'class': SELECT_CLASS})
    )
    group = forms.ModelChoiceField(
        queryset=MemberGroup.objects.none(),
        required=False,
        widget=forms.Select(attrs={'class': SELECT_CLASS})
    )

    def __init__(self, *args, checker=None, **kwargs):
        super().__init__(*args, **kwargs)
        members = Member.objects.all()
        groups = MemberGroup.objects.filter(is_active=True)
        if checker is not None:
            members = checker.filter_members(members)
            groups = checker.filter_groups(groups)
        self.fields['member'].queryset = members.order_by('full_name')
        self.fields['group'].queryset = groups.order_by('name')

    def clean(self):
        cleaned_data = super().clean()
        if not cleaned_data.get('member') and not cleaned_data.get('group'):
            raise ValidationError("Choose a member or a group.")
        return cleaned_data
