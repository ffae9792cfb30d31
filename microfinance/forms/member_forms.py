"""
Member Forms
============

Registration, editing, search, reactivation and communication logging
"""

from django import forms
from django.core.exceptions import ValidationError
from decimal import Decimal

from microfinance.models import (
    Member, MemberGroup, Branch, User, CommunicationLog, Loan,
    REGISTRATION_FEE, ACTIVATION_FEE,
)


# CSS Classes for form widgets
TEXT_INPUT_CLASS = 'w-full px-4 py-3 rounded-lg border border-gray-300 bg-white text-gray-900 focus:border-primary-500 focus:ring-2 focus:ring-primary-200 transition-all'
SELECT_CLASS = TEXT_INPUT_CLASS
TEXTAREA_CLASS = TEXT_INPUT_CLASS
DATE_INPUT_CLASS = TEXT_INPUT_CLASS
CHECKBOX_CLASS = 'w-4 h-4 text-primary-600 rounded border-gray-300 focus:ring-primary-500'


class MemberForm(forms.ModelForm):
    """
    Create/edit a member.

    Branch, group and officer choices are limited to what the user can see;
    branch-scoped staff get their own branch preselected.
    """

    registration_fee_paid = forms.BooleanField(
        required=False,
        label=f'Registration fee (KES {REGISTRATION_FEE:,.0f}) paid',
        widget=forms.CheckboxInput(attrs={'class': CHECKBOX_CLASS}),
    )

    class Meta:
        model = Member
        fields = [
            'full_name', 'id_number', 'phone_number', 'dob', 'sex', 'marital_status',
            'profession', 'monthly_income', 'address', 'location', 'kra_pin', 'bank_account',
            'branch', 'group', 'assigned_officer',
            'next_of_kin_name', 'next_of_kin_relationship', 'next_of_kin_phone', 'next_of_kin_address',
            'registration_fee_paid', 'notes',
        ]

        widgets = {
            'full_name': forms.TextInput(attrs={'class': TEXT_INPUT_CLASS, 'placeholder': 'Full name'}),
            'id_number': forms.TextInput(attrs={'class': TEXT_INPUT_CLASS, 'placeholder': 'National ID number'}),
            'phone_number': forms.TextInput(attrs={'class': TEXT_INPUT_CLASS, 'placeholder': '+2547XXXXXXXX'}),
            'dob': forms.DateInput(attrs={'class': DATE_INPUT_CLASS, 'type': 'date'}),
            'sex': forms.Select(attrs={'class': SELECT_CLASS}),
            'marital_status': forms.Select(attrs={'class': SELECT_CLASS}),
            'profession': forms.TextInput(attrs={'class': TEXT_INPUT_CLASS}),
            'monthly_income': forms.NumberInput(attrs={'class': TEXT_INPUT_CLASS, 'step': '0.01', 'min': '0'}),
            'address': forms.Textarea(attrs={'class': TEXTAREA_CLASS, 'rows': 2}),
            'location': forms.TextInput(attrs={'class': TEXT_INPUT_CLASS}),
            'kra_pin': forms.TextInput(attrs={'class': TEXT_INPUT_CLASS}),
            'bank_account': forms.TextInput(attrs={'class': TEXT_INPUT_CLASS}),
            'branch': forms.Select(attrs={'class': SELECT_CLASS}),
            'group': forms.Select(attrs={'class': SELECT_CLASS}),
            'assigned_officer': forms.Select(attrs={'class': SELECT_CLASS}),
            'next_of_kin_name': forms.TextInput(attrs={'class': TEXT_INPUT_CLASS}),
            'next_of_kin_relationship': forms.TextInput(attrs={'class': TEXT_INPUT_CLASS}),
            'next_of_kin_phone': forms.TextInput(attrs={'class': TEXT_INPUT_CLASS}),
            'next_of_kin_address': forms.Textarea(attrs={'class': TEXTAREA_CLASS, 'rows': 2}),
            'notes': forms.Textarea(attrs={'class': TEXTAREA_CLASS, 'rows': 3}),
        }

    def __init__(self, *args, checker=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.checker = checker

        branches = Branch.objects.filter(is_active=True)
        groups = MemberGroup.objects.filter(is_active=True)
        officers = User.objects.filter(role='loan_officer', is_active=True)

        if checker is not None and not checker.can_view_all_branches():
            branches = checker.filter_branches(branches)
            groups = checker.filter_groups(groups)
            if checker.branch is not None:
                officers = officers.filter(branch=checker.branch)
                self.fields['branch'].initial = checker.branch

        self.fields['branch'].queryset = branches
        self.fields['group'].queryset = groups.select_related('branch')
        self.fields['group'].required = False
        self.fields['assigned_officer'].queryset = officers
        self.fields['assigned_officer'].required = False

        if checker is not None and checker.is_loan_officer() and not self.instance.pk:
            self.fields['assigned_officer'].initial = checker.user

    def clean_id_number(self):
        id_number = self.cleaned_data.get('id_number', '').strip()
        queryset = Member.all_objects.filter(id_number=id_number)
        if self.instance and self.instance.pk:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise ValidationError("A member with this ID number already exists.")
        return id_number

    def clean(self):
        cleaned_data = super().clean()
        branch = cleaned_data.get('branch')
        group = cleaned_data.get('group')
        officer = cleaned_data.get('assigned_officer')

        if group and branch and group.branch_id != branch.pk:
            self.add_error('group', "This group belongs to a different branch.")
        if officer and branch and officer.branch_id and officer.branch_id != branch.pk:
            self.add_error('assigned_officer', "This officer works at a different branch.")

        return cleaned_data


class MemberSearchForm(forms.Form):
    """Search and filter members"""

    search = forms.CharField(
        required=False,
        widget=forms.TextInput(attrs={
            'class': TEXT_INPUT_CLASS,
            'placeholder': 'Name, member no, ID number or phone...',
        })
    )
    status = forms.ChoiceField(
        required=False,
        choices=[('', 'All Status')] + Member.STATUS_CHOICES,
        widget=forms.Select(attrs={'class': SELECT_CLASS})
    )
    branch = forms.ModelChoiceField(
        queryset=Branch.objects.all(),
        required=False,
        empty_label='All Branches',
        widget=forms.Select(attrs={'class': SELECT_CLASS})
    )
    group = forms.ModelChoiceField(
        queryset=MemberGroup.objects.all(),
        required=False,
        empty_label='All Groups',
        widget=forms.Select(attrs={'class': SELECT_CLASS})
    )

    def __init__(self, *args, checker=None, **kwargs):
        super().__init__(*args, **kwargs)
        if checker is not None:
            self.fields['branch'].queryset = checker.filter_branches(Branch.objects.all())
            self.fields['group'].queryset = checker.filter_groups(MemberGroup.objects.all())


class MemberReactivateForm(forms.Form):
    """Dormant/inactive members come back on payment of the activation fee"""

    fee_amount = forms.DecimalField(
        max_digits=10,
        decimal_places=2,
        initial=ACTIVATION_FEE,
        min_value=Decimal('0.00'),
        widget=forms.NumberInput(attrs={'class': TEXT_INPUT_CLASS, 'step': '0.01'})
    )
    notes = forms.CharField(
        required=False,
        widget=forms.Textarea(attrs={'class': TEXTAREA_CLASS, 'rows': 2})
    )

    def clean_fee_amount(self):
        fee = self.cleaned_data['fee_amount']
        if fee < ACTIVATION_FEE:
            raise ValidationError(f"The activation fee is KES {ACTIVATION_FEE:,.2f}.")
        return fee


class RegistrationFeeForm(forms.Form):

    amount = forms.DecimalField(
        max_digits=10,
        decimal_places=2,
        initial=REGISTRATION_FEE,
        widget=forms.NumberInput(attrs={'class': TEXT_INPUT_CLASS, 'step': '0.01'})
    )
    paid_on = forms.DateField(
        required=False,
        widget=forms.DateInput(attrs={'class': DATE_INPUT_CLASS, 'type': 'date'})
    )


class CommunicationLogForm(forms.ModelForm):
    """Call/visit/SMS note against a member, optionally tied to one of their loans"""

    class Meta:
        model = CommunicationLog
        fields = ['communication_type', 'loan', 'notes', 'follow_up_date', 'follow_up_notes']
        widgets = {
            'communication_type': forms.Select(attrs={'class': SELECT_CLASS}),
            'loan': forms.Select(attrs={'class': SELECT_CLASS}),
            'notes': forms.Textarea(attrs={'class': TEXTAREA_CLASS, 'rows': 3}),
            'follow_up_date': forms.DateInput(attrs={'class': DATE_INPUT_CLASS, 'type': 'date'}),
            'follow_up_notes': forms.Textarea(attrs={'class': TEXTAREA_CLASS, 'rows': 2}),
        }

    def __init__(self, *args, member=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.member = member
        if member is not None:
            self.instance.member = member
        loans = Loan.objects.none() if member is None else Loan.objects.filter(member=member)
        self.fields['loan'].queryset = loans
        self.fields['loan'].required = False
