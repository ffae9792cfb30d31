"""
Branch Forms
============

Branch register forms, plus the reason prompt shared by every
deactivate screen (branches, groups, staff).
"""

from django import forms
from django.core.exceptions import ValidationError
from microfinance.models import Branch


# CSS Classes for form widgets
TEXT_INPUT_CLASS = 'w-full px-4 py-3 rounded-lg border border-gray-300 bg-white text-gray-900 focus:border-primary-500 focus:ring-2 focus:ring-primary-200 transition-all'
SELECT_CLASS = TEXT_INPUT_CLASS
TEXTAREA_CLASS = TEXT_INPUT_CLASS


class BranchForm(forms.ModelForm):
    """Open or edit a branch; a blank code is generated from the name (NAI01)"""

    class Meta:
        model = Branch
        fields = ['name', 'code', 'location', 'address', 'phone', 'email']
        widgets = {
            'name': forms.TextInput(attrs={'class': TEXT_INPUT_CLASS, 'placeholder': 'e.g. Kisumu Central'}),
            'code': forms.TextInput(attrs={'class': TEXT_INPUT_CLASS, 'placeholder': 'Generated when blank'}),
            'location': forms.TextInput(attrs={'class': TEXT_INPUT_CLASS, 'placeholder': 'Town or market'}),
            'address': forms.Textarea(attrs={'class': TEXTAREA_CLASS, 'rows': 2}),
            'phone': forms.TextInput(attrs={'class': TEXT_INPUT_CLASS, 'placeholder': '+2547XXXXXXXX'}),
            'email': forms.EmailInput(attrs={'class': TEXT_INPUT_CLASS}),
        }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields['code'].required = False

    def _others(self, manager):
        queryset = manager.all()
        if self.instance.pk:
            queryset = queryset.exclude(pk=self.instance.pk)
        return queryset

    def clean_code(self):
        code = (self.cleaned_data.get('code') or '').strip().upper()
        # Deleted branches keep their code; it is never handed out again
        if code and self._others(Branch.all_objects).filter(code=code).exists():
            raise ValidationError(f"Code {code} is already used by another branch.")
        return code

    def clean_name(self):
        name = ' '.join(self.cleaned_data.get('name', '').split())
        if self._others(Branch.objects).filter(name__iexact=name).exists():
            raise ValidationError(f"There is already a branch called {name}.")
        return name


class BranchSearchForm(forms.Form):

    search = forms.CharField(
        required=False,
        widget=forms.TextInput(attrs={
            'class': TEXT_INPUT_CLASS,
            'placeholder': 'Name, code or location...',
        })
    )
    status = forms.ChoiceField(
        required=False,
        choices=[('', 'Open and closed'), ('active', 'Open'), ('inactive', 'Closed')],
        widget=forms.Select(attrs={'class': SELECT_CLASS})
    )


class DeactivateForm(forms.Form):

    reason = forms.CharField(
        required=False,
        widget=forms.Textarea(attrs={
            'class': TEXTAREA_CLASS,
            'rows': 3,
            'placeholder': 'Why is this being deactivated?',
        })
    )
