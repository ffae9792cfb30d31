"""
Expense Forms
=============

Expenses, categories and monthly budgets
"""

from django import forms
from django.core.exceptions import ValidationError
from django.utils import timezone

from microfinance.models import Expense, ExpenseCategory, ExpenseBudget, Branch


# CSS Classes for form widgets
TEXT_INPUT_CLASS = 'w-full px-4 py-3 rounded-lg border border-gray-300 bg-white text-gray-900 focus:border-primary-500 focus:ring-2 focus:ring-primary-200 transition-all'
SELECT_CLASS = TEXT_INPUT_CLASS
TEXTAREA_CLASS = TEXT_INPUT_CLASS
DATE_INPUT_CLASS = TEXT_INPUT_CLASS


def _scoped_branches(checker):
    branches = Branch.objects.filter(is_active=True)
    if checker is not None:
        branches = checker.filter_branches(branches)
    return branches


class ExpenseForm(forms.ModelForm):

    class Meta:
        model = Expense
        fields = [
            'title', 'description', 'amount', 'category', 'expense_date', 'due_date',
            'vendor_name', 'vendor_contact', 'invoice_number', 'priority',
            'payment_method', 'payment_date', 'branch', 'department', 'tags', 'notes',
        ]
        widgets = {
            'title': forms.TextInput(attrs={'class': TEXT_INPUT_CLASS}),
            'description': forms.Textarea(attrs={'class': TEXTAREA_CLASS, 'rows': 3}),
            'amount': forms.NumberInput(attrs={'class': TEXT_INPUT_CLASS, 'step': '0.01', 'min': '0.01'}),
            'category': forms.Select(attrs={'class': SELECT_CLASS}),
            'expense_date': forms.DateInput(attrs={'class': DATE_INPUT_CLASS, 'type': 'date'}),
            'due_date': forms.DateInput(attrs={'class': DATE_INPUT_CLASS, 'type': 'date'}),
            'vendor_name': forms.TextInput(attrs={'class': TEXT_INPUT_CLASS}),
            'vendor_contact': forms.TextInput(attrs={'class': TEXT_INPUT_CLASS}),
            'invoice_number': forms.TextInput(attrs={'class': TEXT_INPUT_CLASS}),
            'priority': forms.Select(attrs={'class': SELECT_CLASS}),
            'payment_method': forms.Select(attrs={'class': SELECT_CLASS}),
            'payment_date': forms.DateInput(attrs={'class': DATE_INPUT_CLASS, 'type': 'date'}),
            'branch': forms.Select(attrs={'class': SELECT_CLASS}),
            'department': forms.TextInput(attrs={'class': TEXT_INPUT_CLASS}),
            'tags': forms.TextInput(attrs={'class': TEXT_INPUT_CLASS, 'placeholder': 'rent, utilities'}),
            'notes': forms.Textarea(attrs={'class': TEXTAREA_CLASS, 'rows': 2}),
        }

    def __init__(self, *args, checker=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields['category'].queryset = ExpenseCategory.objects.filter(is_active=True)
        self.fields['branch'].queryset = _scoped_branches(checker)
        if checker is not None and checker.branch is not None and not self.instance.pk:
            self.fields['branch'].initial = checker.branch
        if checker is not None and checker.is_branch_scoped():
            self.fields['branch'].required = True


class ExpenseSearchForm(forms.Form):

    search = forms.CharField(
        required=False,
        widget=forms.TextInput(attrs={
            'class': TEXT_INPUT_CLASS,
            'placeholder': 'Title, number, vendor or invoice...',
        })
    )
    category = forms.ModelChoiceField(
        queryset=ExpenseCategory.objects.all(),
        required=False,
        empty_label='All Categories',
        widget=forms.Select(attrs={'class': SELECT_CLASS})
    )
    status = forms.ChoiceField(
        required=False,
        choices=[('', 'All Status')] + Expense.STATUS_CHOICES,
        widget=forms.Select(attrs={'class': SELECT_CLASS})
    )
    priority = forms.ChoiceField(
        required=False,
        choices=[('', 'Any Priority')] + Expense.PRIORITY_CHOICES,
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

    def clean(self):
        cleaned_data = super().clean()
        date_from = cleaned_data.get('date_from')
        date_to = cleaned_data.get('date_to')
        if date_from and date_to and date_from > date_to:
            raise ValidationError("'From' date must be before 'To' date.")
        return cleaned_data


class ExpenseCategoryForm(forms.ModelForm):

    class Meta:
        model = ExpenseCategory
        fields = ['name', 'code', 'description', 'budget_limit', 'is_active']
        widgets = {
            'name': forms.TextInput(attrs={'class': TEXT_INPUT_CLASS}),
            'code': forms.TextInput(attrs={'class': TEXT_INPUT_CLASS, 'placeholder': 'e.g. RENT'}),
            'description': forms.Textarea(attrs={'class': TEXTAREA_CLASS, 'rows': 2}),
            'budget_limit': forms.NumberInput(attrs={'class': TEXT_INPUT_CLASS, 'step': '0.01', 'min': '0'}),
        }

    def clean_code(self):
        code = self.cleaned_data.get('code', '').strip().upper()
        queryset = ExpenseCategory.all_objects.filter(code=code)
        if self.instance and self.instance.pk:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise ValidationError("A category with this code already exists.")
        return code


class ExpenseBudgetForm(forms.ModelForm):

    class Meta:
        model = ExpenseBudget
        fields = ['category', 'branch', 'year', 'month', 'budget_amount']
        widgets = {
            'category': forms.Select(attrs={'class': SELECT_CLASS}),
            'branch': forms.Select(attrs={'class': SELECT_CLASS}),
            'year': forms.NumberInput(attrs={'class': TEXT_INPUT_CLASS}),
            'month': forms.NumberInput(attrs={'class': TEXT_INPUT_CLASS, 'min': 1, 'max': 12}),
            'budget_amount': forms.NumberInput(attrs={'class': TEXT_INPUT_CLASS, 'step': '0.01', 'min': '0'}),
        }

    def __init__(self, *args, checker=None, **kwargs):
        super().__init__(*args, **kwargs)
        today = timezone.localdate()
        self.fields['year'].initial = today.year
        self.fields['month'].initial = today.month
        self.fields['category'].queryset = ExpenseCategory.objects.filter(is_active=True)
        self.fields['branch'].queryset = _scoped_branches(checker)
        self.fields['branch'].required = False
        self.fields['branch'].empty_label = 'All branches'
