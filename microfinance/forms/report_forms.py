"""
Report Forms
============

Filters for the reports and the collateral (realizable asset) register
"""

from django import forms
from django.core.exceptions import ValidationError
from django.utils import timezone

from microfinance.models import Branch, Loan, Member, RealizableAsset, LOAN_PROGRAM_CHOICES
from microfinance.utils.reports import RISK_LEVELS


# CSS Classes for form widgets
TEXT_INPUT_CLASS = 'w-full px-4 py-3 rounded-lg border border-gray-300 bg-white text-gray-900 focus:border-primary-500 focus:ring-2 focus:ring-primary-200 transition-all'
SELECT_CLASS = TEXT_INPUT_CLASS
TEXTAREA_CLASS = TEXT_INPUT_CLASS
DATE_INPUT_CLASS = TEXT_INPUT_CLASS


class BranchFilterForm(forms.Form):
    """Base for report filters that can narrow to one visible branch"""

    branch = forms.ModelChoiceField(
        queryset=Branch.objects.all(),
        required=False,
        empty_label='All Branches',
        widget=forms.Select(attrs={'class': SELECT_CLASS})
    )

    def __init__(self, *args, checker=None, **kwargs):
        super().__init__(*args, **kwargs)
        if checker is not None:
            self.fields['branch'].queryset = checker.filter_branches(Branch.objects.all())


class OverdueFilterForm(BranchFilterForm):

    risk = forms.ChoiceField(
        required=False,
        choices=[('', 'All Risk Levels')] + [(level, level.title()) for level in RISK_LEVELS],
        widget=forms.Select(attrs={'class': SELECT_CLASS})
    )
    loan_program = forms.ChoiceField(
        required=False,
        choices=[('', 'All Programs')] + LOAN_PROGRAM_CHOICES,
        widget=forms.Select(attrs={'class': SELECT_CLASS})
    )


class DateRangeForm(BranchFilterForm):
    """Date range defaulting to the current month"""

    date_from = forms.DateField(
        required=False,
        widget=forms.DateInput(attrs={'class': DATE_INPUT_CLASS, 'type': 'date'})
    )
    date_to = forms.DateField(
        required=False,
        widget=forms.DateInput(attrs={'class': DATE_INPUT_CLASS, 'type': 'date'})
    )

    def clean(self):
        cleaned_data = super().clean()
        today = timezone.localdate()
        date_from = cleaned_data.get('date_from') or today.replace(day=1)
        date_to = cleaned_data.get('date_to') or today
        if date_from > date_to:
            raise ValidationError("'From' date must be before 'To' date.")
        cleaned_data['date_from'] = date_from
        cleaned_data['date_to'] = date_to
        return cleaned_data

    def get_range(self):
        if self.is_valid():
            return self.cleaned_data['date_from'], self.cleaned_data['date_to']
        today = timezone.localdate()
        return today.replace(day=1), today


class RealizableAssetForm(forms.ModelForm):

    class Meta:
        model = RealizableAsset
        fields = [
            'member', 'loan', 'asset_type', 'description', 'original_value',
            'current_market_value', 'realizable_value', 'realization_period',
            'recovery_likelihood', 'risk_factor', 'status', 'notes',
        ]
        widgets = {
            'member': forms.Select(attrs={'class': SELECT_CLASS}),
            'loan': forms.Select(attrs={'class': SELECT_CLASS}),
            'asset_type': forms.Select(attrs={'class': SELECT_CLASS}),
            'description': forms.Textarea(attrs={'class': TEXTAREA_CLASS, 'rows': 2}),
            'original_value': forms.NumberInput(attrs={'class': TEXT_INPUT_CLASS, 'step': '0.01'}),
            'current_market_value': forms.NumberInput(attrs={'class': TEXT_INPUT_CLASS, 'step': '0.01'}),
            'realizable_value': forms.NumberInput(attrs={'class': TEXT_INPUT_CLASS, 'step': '0.01'}),
            'realization_period': forms.NumberInput(attrs={'class': TEXT_INPUT_CLASS}),
            'recovery_likelihood': forms.Select(attrs={'class': SELECT_CLASS}),
            'risk_factor': forms.NumberInput(attrs={'class': TEXT_INPUT_CLASS, 'step': '0.01'}),
            'status': forms.Select(attrs={'class': SELECT_CLASS}),
            'notes': forms.Textarea(attrs={'class': TEXTAREA_CLASS, 'rows': 2}),
        }

    def __init__(self, *args, checker=None, **kwargs):
        super().__init__(*args, **kwargs)
        members = Member.objects.all()
        loans = Loan.objects.filter(approval_status='approved')
        if checker is not None:
            members = checker.filter_members(members)
            loans = checker.filter_loans(loans)
        self.fields['member'].queryset = members.order_by('full_name')
        self.fields['loan'].queryset = loans.select_related('member')
        self.fields['loan'].required = False

    def clean(self):
        cleaned_data = super().clean()
        member = cleaned_data.get('member')
        loan = cleaned_data.get('loan')
        if member and loan and loan.member_id != member.pk:
            self.add_error('loan', "This loan belongs to a different member.")
        return cleaned_data

    def save(self, commit=True):
        asset = super().save(commit=False)
        asset.branch = asset.member.branch
        if commit:
            asset.save()
        return asset
