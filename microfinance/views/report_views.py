"""
Report Views
============

Overdue, bad debt, dormant members, income, realizable assets, loan
officer performance and the member master roll.

Every report is built from querysets narrowed by PermissionChecker, and
can be downloaded with ?export=xlsx or ?export=csv (reports.export).
"""

import logging

from django.shortcuts import render, redirect, get_object_or_404
from django.contrib import messages
from django.core.exceptions import PermissionDenied
from django.utils import timezone

from microfinance.models import Loan, LoanPayment, Member, RealizableAsset, User
from microfinance.forms.report_forms import (
    BranchFilterForm,
    OverdueFilterForm,
    DateRangeForm,
    RealizableAssetForm,
)
from microfinance.permissions import PermissionChecker, Roles, permission_required
from microfinance.utils.reports import (
    build_overdue_report,
    build_bad_debt_report,
    build_dormant_report,
    build_income_report,
    build_realizable_report,
    build_loan_officer_report,
    build_master_roll,
)
from microfinance.utils.excel_export import export_report

logger = logging.getLogger(__name__)


def _export_requested(request, checker):
    """'xlsx' / 'csv' when the user asked for a download they may take, else None"""
    export_format = request.GET.get('export')
    if export_format not in ('xlsx', 'csv'):
        return None
    if not checker.can_export():
        messages.error(request, 'You do not have permission to export reports.')
        raise PermissionDenied
    return export_format


def _branch_filter(form, queryset, field='branch'):
    if form.is_valid() and form.cleaned_data.get('branch'):
        return queryset.filter(**{field: form.cleaned_data['branch']})
    return queryset


# =============================================================================
# OVERDUE
# =============================================================================

@permission_required('loans.view_overdue')
def overdue_report(request):
    checker = PermissionChecker(request.user)
    today = timezone.localdate()

    filter_form = OverdueFilterForm(request.GET or None, checker=checker)
    loans = _branch_filter(filter_form, checker.filter_loans(Loan.objects.all()))

    risk = None
    if filter_form.is_valid():
        risk = filter_form.cleaned_data.get('risk') or None
        if filter_form.cleaned_data.get('loan_program'):
            loans = loans.filter(loan_program=filter_form.cleaned_data['loan_program'])

    report = build_overdue_report(loans, as_of=today, risk=risk)

    export_format = _export_requested(request, checker)
    if export_format:
        return export_report('overdue', report, export_format, subtitle=f'As of {today}')

    context = {
        'page_title': 'Overdue Loans',
        'report': report,
        'filter_form': filter_form,
        'today': today,
        'checker': checker,
    }
    return render(request, 'reports/overdue.html', context)


# =============================================================================
# BAD DEBT
# =============================================================================

@permission_required('reports.view.bad_debt')
def bad_debt_report(request):
    """Loans with no payment for the bad-debt window, plus written-off loans"""
    checker = PermissionChecker(request.user)
    today = timezone.localdate()

    filter_form = BranchFilterForm(request.GET or None, checker=checker)
    loans = _branch_filter(filter_form, checker.filter_loans(Loan.objects.all()))

    report = build_bad_debt_report(loans, as_of=today)

    export_format = _export_requested(request, checker)
    if export_format:
        return export_report('bad_debt', report, export_format, subtitle=f'As of {today}')

    context = {
        'page_title': 'Bad Debt',
        'report': report,
        'filter_form': filter_form,
        'checker': checker,
    }
    return render(request, 'reports/bad_debt.html', context)


# =============================================================================
# DORMANT MEMBERS
# =============================================================================

@permission_required('reports.view.dormant')
def dormant_report(request):
    """Active members past the dormancy window; reactivation links from here"""
    checker = PermissionChecker(request.user)
    today = timezone.localdate()

    filter_form = BranchFilterForm(request.GET or None, checker=checker)
    members = _branch_filter(filter_form, checker.filter_members(Member.objects.all()))

    report = build_dormant_report(members, as_of=today)

    export_format = _export_requested(request, checker)
    if export_format:
        return export_report('dormant', report, export_format, subtitle=f'Inactive since {report["cutoff"]}')

    context = {
        'page_title': 'Dormant Members',
        'report': report,
        'dormant_members': checker.filter_members(Member.objects.all()).dormant().select_related('branch')[:50],
        'filter_form': filter_form,
        'checker': checker,
    }
    return render(request, 'reports/dormant.html', context)


# =============================================================================
# INCOME
# =============================================================================

@permission_required('income.view')
def income_report(request):
    checker = PermissionChecker(request.user)

    range_form = DateRangeForm(request.GET or None, checker=checker)
    start_date, end_date = range_form.get_range()

    loans = _branch_filter(range_form, checker.filter_loans(Loan.objects.all()))
    payments = _branch_filter(range_form, checker.filter_payments(LoanPayment.objects.all()), field='loan__branch')
    members = _branch_filter(range_form, checker.filter_members(Member.objects.all()))

    report = build_income_report(loans, payments, members, start_date, end_date)

    export_format = _export_requested(request, checker)
    if export_format:
        return export_report('income', report, export_format, subtitle=f'{start_date} to {end_date}')

    context = {
        'page_title': 'Income',
        'report': report,
        'range_form': range_form,
        'checker': checker,
    }
    return render(request, 'reports/income.html', context)


# =============================================================================
# REALIZABLE ASSETS
# =============================================================================

@permission_required('reports.view.realizable')
def realizable_report(request):
    checker = PermissionChecker(request.user)

    filter_form = BranchFilterForm(request.GET or None, checker=checker)
    assets = _branch_filter(filter_form, checker.filter_assets(RealizableAsset.objects.all()))

    status = request.GET.get('status')
    if status:
        assets = assets.filter(status=status)

    report = build_realizable_report(assets, checker.filter_loans(Loan.objects.all()))

    export_format = _export_requested(request, checker)
    if export_format:
        return export_report('realizable', report, export_format)

    context = {
        'page_title': 'Realizable Assets',
        'report': report,
        'filter_form': filter_form,
        'status_choices': RealizableAsset.STATUS_CHOICES,
        'selected_status': status or '',
        'checker': checker,
    }
    return render(request, 'reports/realizable.html', context)


def _get_visible_asset(checker, asset_id):
    asset = get_object_or_404(RealizableAsset.objects.select_related('member', 'loan'), id=asset_id)
    if not checker.filter_assets(RealizableAsset.objects.filter(pk=asset.pk)).exists():
        raise PermissionDenied
    return asset


@permission_required('reports.view.realizable')
def asset_create(request):
    return _asset_form(request, None)


@permission_required('reports.view.realizable')
def asset_update(request, asset_id):
    return _asset_form(request, _get_visible_asset(PermissionChecker(request.user), asset_id))


def _asset_form(request, asset):
    checker = PermissionChecker(request.user)

    if not checker.has_permission('loans.edit'):
        messages.error(request, 'You do not have permission to record collateral.')
        raise PermissionDenied

    initial = {}
    if asset is None and request.GET.get('loan'):
        loan = get_object_or_404(Loan, id=request.GET['loan'])
        initial = {'loan': loan.pk, 'member': loan.member_id}

    if request.method == 'POST':
        form = RealizableAssetForm(request.POST, instance=asset, checker=checker)
        if form.is_valid():
            asset = form.save(commit=False)
            if not asset.created_by_id:
                asset.created_by = request.user
            asset.save()
            messages.success(request, f'Asset "{asset}" saved.')
            return redirect('microfinance:realizable_report')
        messages.error(request, 'Please correct the errors below.')
    else:
        form = RealizableAssetForm(instance=asset, initial=initial, checker=checker)

    context = {
        'page_title': 'Edit Asset' if asset else 'Record Collateral Asset',
        'form': form,
        'asset': asset,
    }
    return render(request, 'reports/asset_form.html', context)


@permission_required('reports.view.realizable')
def asset_delete(request, asset_id):
    checker = PermissionChecker(request.user)
    asset = _get_visible_asset(checker, asset_id)

    if not checker.has_permission('loans.delete'):
        raise PermissionDenied

    if request.method == 'POST':
        asset.delete(deleted_by=request.user)
        logger.info(f"Asset {asset.pk} deleted by {request.user.email}")
        messages.success(request, 'Asset deleted.')
        return redirect('microfinance:realizable_report')

    context = {
        'page_title': 'Delete Asset',
        'object': asset,
        'action': 'delete',
    }
    return render(request, 'shared/confirm.html', context)


# =============================================================================
# LOAN OFFICERS
# =============================================================================

@permission_required('loan_officer.view', 'analytics.view')
def loan_officer_report(request):
    """
    Portfolio per officer. A loan officer sees only their own row.
    """
    checker = PermissionChecker(request.user)

    filter_form = BranchFilterForm(request.GET or None, checker=checker)
    officers = checker.filter_users(User.objects.filter(role=Roles.LOAN_OFFICER, is_active=True))
    officers = _branch_filter(filter_form, officers).select_related('branch')

    loans = _branch_filter(filter_form, checker.filter_loans(Loan.objects.all()))
    report = build_loan_officer_report(officers, loans)

    export_format = _export_requested(request, checker)
    if export_format:
        return export_report('loan_officers', report, export_format)

    context = {
        'page_title': 'Loan Officers',
        'report': report,
        'filter_form': filter_form,
        'checker': checker,
    }
    return render(request, 'reports/loan_officers.html', context)


# =============================================================================
# MASTER ROLL
# =============================================================================

@permission_required('members.view')
def master_roll(request):
    """Every visible member with loan count, outstanding balance and last payment"""
    checker = PermissionChecker(request.user)

    filter_form = BranchFilterForm(request.GET or None, checker=checker)
    members = _branch_filter(filter_form, checker.filter_members(Member.objects.all()))

    rows = build_master_roll(members)

    export_format = _export_requested(request, checker)
    if export_format:
        return export_report('master_roll', rows, export_format)

    context = {
        'page_title': 'Master Roll',
        'rows': rows,
        'filter_form': filter_form,
        'checker': checker,
    }
    return render(request, 'reports/master_roll.html', context)
