"""
Authentication Views
====================

Login, logout and the signed-in user's own profile
"""

import logging

from django.shortcuts import render, redirect
from django.contrib.auth import authenticate, login, logout
from django.contrib.auth.decorators import login_required
from django.contrib import messages
from django.utils.http import url_has_allowed_host_and_scheme

from microfinance.forms.user_forms import LoginForm, ProfileForm
from microfinance.permissions import PermissionChecker

logger = logging.getLogger(__name__)


def login_view(request):
    """
    Login view

    GET: Display login form
    POST: Process login
    """
    if request.user.is_authenticated:
        return redirect('microfinance:dashboard')

    if request.method == 'POST':
        form = LoginForm(request.POST)

        if form.is_valid():
            email = form.cleaned_data['email']
            password = form.cleaned_data['password']
            remember_me = form.cleaned_data.get('remember_me', False)

            user = authenticate(request, email=email, password=password)

            if user is not None:
                login(request, user)

                if not remember_me:
                    request.session.set_expiry(0)  # Session expires on browser close

                logger.info(f"User {user.email} logged in")
                messages.success(request, f'Welcome back, {user.get_full_name()}!')

                next_url = request.GET.get('next')
                if next_url and url_has_allowed_host_and_scheme(next_url, allowed_hosts={request.get_host()}):
                    return redirect(next_url)
                return redirect('microfinance:dashboard')

            logger.warning(f"Failed login for {email}")
            form.add_error(None, 'Invalid email or password. Please try again.')
    else:
        form = LoginForm()

    context = {
        'form': form,
        'page_title': 'Login',
    }

    return render(request, 'auth/login.html', context)


@login_required
def logout_view(request):
    """Logout and return to the login page"""
    logger.info(f"User {request.user.email} logged out")
    logout(request)
    messages.success(request, 'You have been logged out.')
    return redirect('microfinance:login')


@login_required
def profile_view(request):
    """Own profile: details, effective permissions and name/phone edit"""
    checker = PermissionChecker(request.user)

    if request.method == 'POST':
        if not checker.has_permission('profile.edit'):
            messages.error(request, 'You do not have permission to edit your profile.')
            return redirect('microfinance:profile')

        form = ProfileForm(request.POST, instance=request.user)
        if form.is_valid():
            form.save()
            messages.success(request, 'Profile updated successfully!')
            return redirect('microfinance:profile')
        messages.error(request, 'Please correct the errors below.')
    else:
        form = ProfileForm(instance=request.user)

    context = {
        'page_title': 'My Profile',
        'form': form,
        'permissions': sorted(checker.get_permissions()),
        'checker': checker,
    }
    return render(request, 'auth/profile.html', context)
