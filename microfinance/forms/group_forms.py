"""
Member Group Forms
==================

Forms for managing lending groups
"""

from django import forms
from microfinance.models import MemberGroup, Member, Branch, User

# CSS Classes for form widgets
TEXT_INPUT_CLASS = 'w-full px-4 py-3 rounded-lg border border-gray-300 bg-white text-gray-900 focus:border-primary-500 focus:ring-2 focus:ring-primary-200 transition-all'
SELECT_CLASS = TEXT_INPUT_CLASS
TEXTAREA_CLASS = TEXT_INPUT_CLASS


# =============================================================================
# MEMBER GROUP FORM
# =============================================================================

class MemberGroupForm(forms.ModelForm):
    """Form for creating/updating groups"""

    class Meta:
        model = MemberGroup
        fields = [
            'name', 'branch', 'loan_officer', 'contact_person', 'location',
            'meeting_day', 'meeting_time', 'processing_fee',
        ]

        widgets = {
            'name': forms.TextInput(attrs={
                'class': TEXT_INPUT_CLASS,
                'placeholder': 'e.g., Umoja Women Group',
            }),
            'branch': forms.Select(attrs={'class': SELECT_CLASS}),
            'loan_officer': forms.Select(attrs={'class': SELECT_CLASS}),
            'contact_person': forms.Select(attrs={'class': SELECT_CLASS}),
            'location': forms.TextInput(attrs={
                'class': TEXT_INPUT_CLASS,
                'placeholder': 'e.g., Chief\'s camp, Kibera',
            }),
            'meeting_day': forms.Select(attrs={'class': SELECT_CLASS}),
            'meeting_time': forms.TimeInput(attrs={
                'class': TEXT_INPUT_CLASS,
                'type': 'time',
            }),
            'processing_fee': forms.NumberInput(attrs={
                'class': TEXT_INPUT_CLASS,
                'step': '0.01',
                'min': '0',
            }),
        }

    def __init__(self, *args, checker=None, **kwargs):
        super().__init__(*args, **kwargs)

        branches = Branch.objects.filter(is_active=True)
        officers = User.objects.filter(role='loan_officer', is_active=True)

        if checker is not None and not checker.can_view_all_branches():
            branches = checker.filter_branches(branches)
            if checker.branch is not None:
                officers = officers.filter(branch=checker.branch)
                self.fields['branch'].initial = checker.branch

        self.fields['branch'].queryset = branches
        self.fields['loan_officer'].queryset = officers
        self.fields['loan_officer'].required = False
        self.fields['loan_officer'].empty_label = "Select a loan officer (optional)"

        # Contact person can only be chosen from the group's own members
        if self.instance and self.instance.pk:
            self.fields['contact_person'].queryset = Member.objects.filter(group=self.instance)
        else:
            self.fields['contact_person'].queryset = Member.objects.none()
        self.fields['contact_person'].required = False

    def clean_name(self):
        return self.cleaned_data.get('name', '').strip()


class MemberGroupSearchForm(forms.Form):
    """Search and filter groups"""

    search = forms.CharField(
        required=False,
        widget=forms.TextInput(attrs={
            'class': TEXT_INPUT_CLASS,
            'placeholder': 'Search by name, code or location...',
        })
    )
    status = forms.ChoiceField(
        required=False,
        choices=[('', 'All Status'), ('active', 'Active'), ('inactive', 'Inactive')],
        widget=forms.Select(attrs={'class': SELECT_CLASS})
    )
    meeting_day = forms.ChoiceField(
        required=False,
        choices=[('', 'Any Day')] + MemberGroup.MEETING_DAY_CHOICES,
        widget=forms.Select(attrs={'class': SELECT_CLASS})
    )
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
