"""
Test configuration and shared fixtures for the back office tests.

This file contains:
- Branches and one staff user per role
- Members assigned to the loan officer
- A logged-in client factory
"""

import pytest
from decimal import Decimal

from microfinance.models import Branch, User, Member, MemberGroup, Loan


TEST_PASSWORD = 'Str0ng-Test-Pass!'


@pytest.fixture(autouse=True)
def fast_password_hashing(settings):
    settings.PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']


@pytest.fixture
def branch(db):
    return Branch.objects.create(name='Nairobi', location='CBD')


@pytest.fixture
def other_branch(db):
    return Branch.objects.create(name='Mombasa', location='Old Town')


def _make_user(email, role, branch=None, **extra):
    return User.objects.create_user(
        email,
        TEST_PASSWORD,
        full_name=extra.pop('full_name', email.split('@')[0].replace('.', ' ').title()),
        role=role,
        branch=branch,
        **extra
    )


@pytest.fixture
def make_user(db):
    """Factory: make_user('x@example.com', 'teller', branch)"""
    return _make_user


@pytest.fixture
def super_admin(db):
    return _make_user('root@example.com', 'super_admin')


@pytest.fixture
def admin_user(db):
    return _make_user('admin@example.com', 'admin')


@pytest.fixture
def branch_admin(branch):
    return _make_user('manager@example.com', 'branch_admin', branch)


@pytest.fixture
def loan_officer(branch):
    return _make_user('officer@example.com', 'loan_officer', branch)


@pytest.fixture
def other_officer(branch):
    return _make_user('officer2@example.com', 'loan_officer', branch)


@pytest.fixture
def teller(branch):
    return _make_user('teller@example.com', 'teller', branch)


@pytest.fixture
def auditor(branch):
    return _make_user('auditor@example.com', 'auditor', branch)


@pytest.fixture
def group(branch, loan_officer):
    return MemberGroup.objects.create(name='Umoja Women', branch=branch, loan_officer=loan_officer,
                                      meeting_day='tuesday')


@pytest.fixture
def make_member(branch, loan_officer):
    """Factory for members of the main branch assigned to the loan officer"""
    counter = {'n': 0}

    def factory(**kwargs):
        counter['n'] += 1
        n = counter['n']
        defaults = {
            'full_name': f'Member {n}',
            'id_number': f'2900{n:04d}',
            'phone_number': f'+2547000{n:05d}',
            'branch': branch,
            'assigned_officer': loan_officer,
        }
        defaults.update(kwargs)
        return Member.objects.create(**defaults)

    return factory


@pytest.fixture
def member(make_member, group):
    return make_member(full_name='Achieng Otieno', group=group)


@pytest.fixture
def active_loan(member, admin_user):
    """A 5000 small loan, approved on creation"""
    return Loan.create_loan(member, Decimal('5000'), created_by=admin_user)


@pytest.fixture
def login(client):
    """Log a user in on the shared test client and return the client"""
    def do_login(user):
        client.force_login(user)
        return client
    return do_login
