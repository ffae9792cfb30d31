"""
Expense Views
=============

Branch operating expenses, expense categories and monthly budgets
"""

import logging

from django.shortcuts import render, redirect, get_object_or_404
from django.contrib.auth.decorators import login_required
from django.contrib import messages
from django.core.exceptions import PermissionDenied
from django.core.paginator import Paginator
from django.db.models import Q
from django.utils import timezone

from microfinance.models import Expense, ExpenseCategory, ExpenseBudget
from microfinance.forms.expense_forms import (
    ExpenseForm,
    ExpenseSearchForm,
    ExpenseCategoryForm,
    ExpenseBudgetForm,
)
from microfinance.permissions import PermissionChecker
from microfinance.utils.helpers import get_setting
from microfinance.utils.excel_export import expenses_table, export_rows_excel, export_to_csv

logger = logging.getLogger(__name__)


def _get_visible_expense(checker, expense_id):
    expense = get_object_or_404(Expense.objects.select_related('category', 'branch'), id=expense_id)
    if not checker.can_view_expense(expense):
        raise PermissionDenied
    return expense


def _filtered_expenses(checker, search_form):
    expenses = checker.filter_expenses(Expense.objects.all())

    if search_form.is_valid():
        data = search_form.cleaned_data

        search = data.get('search')
        if search:
            expenses = expenses.filter(
                Q(title__icontains=search) |
                Q(expense_number__icontains=search) |
                Q(vendor_name__icontains=search) |
                Q(invoice_number__icontains=search)
            )

        for field in ('category', 'status', 'priority'):
            if data.get(field):
                expenses = expenses.filter(**{field: data[field]})

        if data.get('branch'):
            expenses = expenses.for_branch(data['branch'])
        if data.get('date_from'):
            expenses = expenses.filter(expense_date__gte=data['date_from'])
        if data.get('date_to'):
            expenses = expenses.filter(expense_date__lte=data['date_to'])

    return expenses


# =============================================================================
# EXPENSE LIST / STATS
# =============================================================================

@login_required
def expense_list(request):
    checker = PermissionChecker(request.user)

    if not checker.has_permission('expenses.view'):
        raise PermissionDenied

    search_form = ExpenseSearchForm(request.GET or None, checker=checker)
    expenses = _filtered_expenses(checker, search_form).select_related('category', 'branch', 'created_by')

    export_format = request.GET.get('export')
    if export_format in ('csv', 'xlsx'):
        if not checker.can_export():
            raise PermissionDenied
        title, columns, rows, totals, money_columns = expenses_table(expenses)
        if export_format == 'csv':
            return export_to_csv(rows, columns, filename='expenses.csv')
        return export_rows_excel(title, columns, rows, 'expenses.xlsx', totals=totals, money_columns=money_columns)

    paginator = Paginator(expenses, get_setting('PAGE_SIZE'))
    page_obj = paginator.get_page(request.GET.get('page'))

    context = {
        'page_title': 'Expenses',
        'expenses': page_obj,
        'search_form': search_form,
        'total_amount': expenses.total_amount(),
        'checker': checker,
        'total_count': paginator.count,
    }
    return render(request, 'expenses/list.html', context)


@login_required
def expense_stats(request):
    """Totals, category breakdown and monthly trend for the filtered expenses"""
    checker = PermissionChecker(request.user)

    if not checker.has_permission('expenses.view'):
        raise PermissionDenied

    search_form = ExpenseSearchForm(request.GET or None, checker=checker)
    expenses = _filtered_expenses(checker, search_form)

    today = timezone.localdate()
    budgets = ExpenseBudget.objects.filter(year=today.year, month=today.month).select_related('category', 'branch')
    if not checker.can_view_all_branches():
        budgets = budgets.filter(Q(branch=checker.branch) | Q(branch__isnull=True))

    context = {
        'page_title': 'Expense Statistics',
        'search_form': search_form,
        'stats': expenses.get_statistics(),
        'category_breakdown': expenses.category_breakdown(),
        'monthly_trend': expenses.monthly_trend(),
        'budgets': budgets,
        'checker': checker,
    }
    return render(request, 'expenses/stats.html', context)


@login_required
def expense_detail(request, expense_id):
    checker = PermissionChecker(request.user)
    expense = _get_visible_expense(checker, expense_id)

    context = {
        'page_title': f'Expense {expense.expense_number}',
        'expense': expense,
        'checker': checker,
    }
    return render(request, 'expenses/detail.html', context)


# =============================================================================
# EXPENSE CREATE / UPDATE / DELETE
# =============================================================================

@login_required
def expense_create(request):
    checker = PermissionChecker(request.user)

    if not checker.has_permission('expenses.create'):
        messages.error(request, 'You do not have permission to record expenses.')
        raise PermissionDenied

    if request.method == 'POST':
        form = ExpenseForm(request.POST, checker=checker)

        if form.is_valid():
            expense = form.save(commit=False)
            expense.created_by = request.user
            if expense.branch is None and checker.branch is not None:
                expense.branch = checker.branch

            warning = expense.budget_warning()
            expense.save()

            logger.info(f"Expense {expense.expense_number} ({expense.amount}) recorded by {request.user.email}")
            if warning:
                logger.warning(f"Budget exceeded by {expense.expense_number}: {warning}")
                messages.warning(request, warning)
            messages.success(request, f'Expense {expense.expense_number} recorded.')
            return redirect('microfinance:expense_detail', expense_id=expense.id)
        messages.error(request, 'Please correct the errors below.')
    else:
        form = ExpenseForm(checker=checker)

    context = {
        'page_title': 'Record Expense',
        'form': form,
        'is_create': True,
    }
    return render(request, 'expenses/form.html', context)


@login_required
def expense_update(request, expense_id):
    checker = PermissionChecker(request.user)
    expense = _get_visible_expense(checker, expense_id)

    if not checker.can_manage_expenses():
        messages.error(request, 'You do not have permission to edit expenses.')
        raise PermissionDenied

    if request.method == 'POST':
        form = ExpenseForm(request.POST, instance=expense, checker=checker)

        if form.is_valid():
            expense = form.save(commit=False)
            warning = expense.budget_warning()
            expense.save()
            if warning:
                messages.warning(request, warning)
            messages.success(request, f'Expense {expense.expense_number} updated.')
            return redirect('microfinance:expense_detail', expense_id=expense.id)
        messages.error(request, 'Please correct the errors below.')
    else:
        form = ExpenseForm(instance=expense, checker=checker)

    context = {
        'page_title': f'Edit Expense {expense.expense_number}',
        'form': form,
        'expense': expense,
        'is_create': False,
    }
    return render(request, 'expenses/form.html', context)


@login_required
def expense_toggle_status(request, expense_id):
    """Activate an inactive expense or deactivate an active one"""
    checker = PermissionChecker(request.user)
    expense = _get_visible_expense(checker, expense_id)

    if not checker.can_manage_expenses():
        raise PermissionDenied

    if request.method == 'POST':
        expense.status = 'inactive' if expense.status == 'active' else 'active'
        expense.save(update_fields=['status', 'updated_at'])
        messages.success(request, f'Expense {expense.expense_number} is now {expense.get_status_display().lower()}.')

    return redirect('microfinance:expense_detail', expense_id=expense.id)


@login_required
def expense_delete(request, expense_id):
    checker = PermissionChecker(request.user)
    expense = _get_visible_expense(checker, expense_id)

    if not checker.has_permission('expenses.delete'):
        messages.error(request, 'You do not have permission to delete expenses.')
        raise PermissionDenied

    if request.method == 'POST':
        expense.delete(deleted_by=request.user)
        logger.info(f"Expense {expense.expense_number} deleted by {request.user.email}")
        messages.success(request, f'Expense {expense.expense_number} deleted.')
        return redirect('microfinance:expense_list')

    context = {
        'page_title': f'Delete Expense {expense.expense_number}',
        'object': expense,
        'action': 'delete',
    }
    return render(request, 'shared/confirm.html', context)


# =============================================================================
# CATEGORIES
# =============================================================================

@login_required
def expense_category_list(request):
    checker = PermissionChecker(request.user)

    if not checker.has_permission('expenses.view'):
        raise PermissionDenied

    today = timezone.localdate()
    branch = None if checker.can_view_all_branches() else checker.branch
    categories = [
        {
            'category': category,
            'spent_this_month': category.spent_in_month(today.year, today.month, branch=branch),
        }
        for category in ExpenseCategory.objects.all()
    ]

    context = {
        'page_title': 'Expense Categories',
        'categories': categories,
        'checker': checker,
    }
    return render(request, 'expenses/categories.html', context)


@login_required
def expense_category_create(request):
    return _expense_category_form(request, None)


@login_required
def expense_category_update(request, category_id):
    return _expense_category_form(request, get_object_or_404(ExpenseCategory, id=category_id))


def _expense_category_form(request, category):
    checker = PermissionChecker(request.user)

    if not checker.can_manage_expenses():
        raise PermissionDenied

    if request.method == 'POST':
        form = ExpenseCategoryForm(request.POST, instance=category)
        if form.is_valid():
            category = form.save()
            messages.success(request, f'Category {category.name} saved.')
            return redirect('microfinance:expense_category_list')
        messages.error(request, 'Please correct the errors below.')
    else:
        form = ExpenseCategoryForm(instance=category)

    context = {
        'page_title': f'Edit Category: {category.name}' if category else 'New Expense Category',
        'form': form,
        'category': category,
    }
    return render(request, 'expenses/category_form.html', context)


# =============================================================================
# BUDGETS
# =============================================================================

@login_required
def expense_budget_list(request):
    checker = PermissionChecker(request.user)

    if not checker.has_permission('expenses.view'):
        raise PermissionDenied

    budgets = ExpenseBudget.objects.select_related('category', 'branch')
    if not checker.can_view_all_branches():
        budgets = budgets.filter(Q(branch=checker.branch) | Q(branch__isnull=True))

    year = request.GET.get('year')
    if year and year.isdigit():
        budgets = budgets.filter(year=int(year))

    paginator = Paginator(budgets, get_setting('PAGE_SIZE'))
    page_obj = paginator.get_page(request.GET.get('page'))

    context = {
        'page_title': 'Expense Budgets',
        'budgets': page_obj,
        'checker': checker,
    }
    return render(request, 'expenses/budgets.html', context)


@login_required
def expense_budget_create(request):
    return _expense_budget_form(request, None)


@login_required
def expense_budget_update(request, budget_id):
    return _expense_budget_form(request, get_object_or_404(ExpenseBudget, id=budget_id))


def _expense_budget_form(request, budget):
    checker = PermissionChecker(request.user)

    if not checker.can_manage_expenses():
        raise PermissionDenied
    if budget is not None and budget.branch_id and not checker.can_view_branch(budget.branch):
        raise PermissionDenied

    if request.method == 'POST':
        form = ExpenseBudgetForm(request.POST, instance=budget, checker=checker)
        if form.is_valid():
            budget = form.save()
            messages.success(request, f'Budget {budget} saved.')
            return redirect('microfinance:expense_budget_list')
        messages.error(request, 'Please correct the errors below.')
    else:
        form = ExpenseBudgetForm(instance=budget, checker=checker)

    context = {
        'page_title': f'Edit Budget: {budget}' if budget else 'New Budget',
        'form': form,
        'budget': budget,
    }
    return render(request, 'expenses/budget_form.html', context)
