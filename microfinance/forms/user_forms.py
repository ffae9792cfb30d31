"""
User Management Forms
=====================

Forms for managing staff users, their roles and permission grants
"""

from django import forms
from django.contrib.auth.password_validation import validate_password
from microfinance.models import User, Branch
from microfinance.permissions import PERMISSIONS, PERMISSION_GROUPS, Roles


# =============================================================================
# TAILWIND CSS CLASSES
# =============================================================================

INPUT_CLASS = (
    "w-full px-4 py-3 rounded-lg border border-gray-300 "
    "focus:ring-2 focus:ring-primary-500 focus:border-primary-500 "
    "bg-white text-gray-900"
)

SELECT_CLASS = INPUT_CLASS


def _role_choices(checker):
    """Only a super admin may hand out the super admin role"""
    choices = list(User.ROLE_CHOICES)
    if checker is not None and not checker.is_super_admin():
        choices = [c for c in choices if c[0] != Roles.SUPER_ADMIN]
    if checker is not None and not checker.is_admin():
        choices = [c for c in choices if c[0] != Roles.ADMIN]
    return choices


# =============================================================================
# LOGIN
# =============================================================================

class LoginForm(forms.Form):

    email = forms.EmailField(
        widget=forms.EmailInput(attrs={
            'class': INPUT_CLASS,
            'placeholder': 'you@example.com',
            'autofocus': True,
        })
    )
    password = forms.CharField(
        widget=forms.PasswordInput(attrs={'class': INPUT_CLASS})
    )
    remember_me = forms.BooleanField(required=False)

    def clean_email(self):
        return self.cleaned_data['email'].lower()


# =============================================================================
# USER CREATE / UPDATE
# =============================================================================

STAFF_FIELDS = ['full_name', 'email', 'phone', 'role', 'branch']

STAFF_WIDGETS = {
    'full_name': forms.TextInput(attrs={'class': INPUT_CLASS, 'placeholder': 'First and last name'}),
    'email': forms.EmailInput(attrs={'class': INPUT_CLASS, 'placeholder': 'name@lender.co.ke'}),
    'phone': forms.TextInput(attrs={'class': INPUT_CLASS, 'placeholder': '+2547XXXXXXXX'}),
    'role': forms.Select(attrs={'class': SELECT_CLASS}),
    'branch': forms.Select(attrs={'class': SELECT_CLASS}),
}


class StaffFieldsMixin:
    """
    Role choices limited to what the editor may hand out, branches limited
    to what the editor can see, and one account per email address.
    """

    def setup_staff_fields(self, checker):
        self.fields['role'].choices = _role_choices(checker)
        branches = Branch.objects.active().order_by('name')
        if checker is not None:
            branches = checker.filter_branches(branches)
        self.fields['branch'].queryset = branches
        self.fields['branch'].required = False

    def clean_email(self):
        email = self.cleaned_data.get('email', '').lower()
        taken = User.objects.filter(email=email)
        if self.instance.pk:
            taken = taken.exclude(pk=self.instance.pk)
        if taken.exists():
            raise forms.ValidationError(f"{email} already has an account.")
        return email


class UserCreateForm(StaffFieldsMixin, forms.ModelForm):
    """New staff account with an initial password"""

    password1 = forms.CharField(
        label='Password',
        strip=False,
        widget=forms.PasswordInput(attrs={'class': INPUT_CLASS, 'autocomplete': 'new-password'})
    )
    password2 = forms.CharField(
        label='Repeat password',
        strip=False,
        widget=forms.PasswordInput(attrs={'class': INPUT_CLASS, 'autocomplete': 'new-password'})
    )

    class Meta:
        model = User
        fields = STAFF_FIELDS
        widgets = STAFF_WIDGETS

    def __init__(self, *args, checker=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.setup_staff_fields(checker)

    def clean_password2(self):
        password1 = self.cleaned_data.get('password1')
        password2 = self.cleaned_data.get('password2')
        if password1 and password2 and password1 != password2:
            raise forms.ValidationError("The two passwords differ.")
        return password2

    def _post_clean(self):
        super()._post_clean()
        password = self.cleaned_data.get('password2')
        if password:
            try:
                validate_password(password, self.instance)
            except forms.ValidationError as error:
                self.add_error('password2', error)

    def save(self, commit=True):
        user = super().save(commit=False)
        user.set_password(self.cleaned_data['password1'])
        if commit:
            user.save()
        return user


class UserUpdateForm(StaffFieldsMixin, forms.ModelForm):

    class Meta:
        model = User
        fields = STAFF_FIELDS
        widgets = STAFF_WIDGETS

    def __init__(self, *args, checker=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.setup_staff_fields(checker)


class ProfileForm(forms.ModelForm):
    """Users edit their own name and phone"""

    class Meta:
        model = User
        fields = ['full_name', 'phone']
        widgets = {
            'full_name': forms.TextInput(attrs={'class': INPUT_CLASS}),
            'phone': forms.TextInput(attrs={'class': INPUT_CLASS}),
        }


# =============================================================================
# PERMISSIONS
# =============================================================================

class UserPermissionsForm(forms.Form):
    """
    One checkbox per permission key, grouped by area. Keys the role already
    holds by default are shown as granted and cannot be revoked here.
    """

    def __init__(self, *args, target=None, role_defaults=frozenset(), granted=frozenset(), **kwargs):
        super().__init__(*args, **kwargs)
        self.target = target
        self.role_defaults = set(role_defaults)
        for key, label in PERMISSIONS.items():
            field = forms.BooleanField(
                required=False,
                label=label,
                initial=key in granted or key in self.role_defaults,
            )
            if key in self.role_defaults:
                field.disabled = True
            self.fields[key] = field

    def grouped_fields(self):
        groups = {}
        for key in PERMISSIONS:
            area = PERMISSION_GROUPS.get(key.split('.')[0], 'Other')
            groups.setdefault(area, []).append(self[key])
        return groups

    def selected_grants(self):
        """Explicitly ticked keys beyond the role defaults"""
        return {
            key for key in PERMISSIONS
            if self.cleaned_data.get(key) and key not in self.role_defaults
        }


# =============================================================================
# USER SEARCH FORM
# =============================================================================

class UserSearchForm(forms.Form):
    """
    Form for searching and filtering users
    """

    search = forms.CharField(
        required=False,
        widget=forms.TextInput(attrs={
            'class': INPUT_CLASS,
            'placeholder': 'Search by name, email, or phone...',
        }),
        label='Search'
    )

    role = forms.ChoiceField(
        required=False,
        choices=[('', 'All Roles')] + User.ROLE_CHOICES,
        widget=forms.Select(attrs={'class': SELECT_CLASS}),
        label='Role'
    )

    branch = forms.ModelChoiceField(
        queryset=Branch.objects.filter(is_active=True).order_by('name'),
        required=False,
        widget=forms.Select(attrs={'class': SELECT_CLASS}),
        label='Branch',
        empty_label='All Branches'
    )

    status = forms.ChoiceField(
        required=False,
        choices=[
            ('', 'All Status'),
            ('active', 'Active'),
            ('inactive', 'Inactive'),
        ],
        widget=forms.Select(attrs={'class': SELECT_CLASS}),
        label='Status'
    )
