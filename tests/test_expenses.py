"""
Expenses, categories and budgets
"""

import pytest
from datetime import date
from decimal import Decimal

from django.core.exceptions import ValidationError

from microfinance.models import Expense, ExpenseBudget, ExpenseCategory


@pytest.fixture
def rent(db):
    return ExpenseCategory.objects.create(name='Rent', code='rent', budget_limit=Decimal('30000'))


@pytest.fixture
def fuel(db):
    return ExpenseCategory.objects.create(name='Fuel', code='FUEL')


def _expense(category, amount, day, **kwargs):
    return Expense.objects.create(
        title=kwargs.pop('title', f'{category.name} {day:%b}'),
        amount=Decimal(amount),
        category=category,
        expense_date=day,
        **kwargs
    )


class TestExpenseModel:

    def test_numbering_and_code_upper(self, rent):
        expense = _expense(rent, '1000', date(2024, 5, 2))
        assert expense.expense_number.startswith('EXP-')
        assert rent.code == 'RENT'

    def test_amount_must_be_positive(self, rent):
        expense = Expense(title='Nothing', amount=Decimal('0'), category=rent)
        with pytest.raises(ValidationError) as exc:
            expense.full_clean()
        assert 'amount' in exc.value.message_dict

    def test_payment_before_expense_date(self, rent):
        expense = Expense(title='Rent', amount=Decimal('100'), category=rent,
                          expense_date=date(2024, 5, 10), payment_date=date(2024, 5, 1))
        with pytest.raises(ValidationError) as exc:
            expense.full_clean()
        assert 'payment_date' in exc.value.message_dict

    def test_tag_list(self, rent):
        expense = Expense(title='Rent', amount=Decimal('100'), tags='office, nairobi, ,q2')
        assert expense.tag_list == ['office', 'nairobi', 'q2']


class TestBudgets:

    def test_budget_warning_when_limit_exceeded(self, rent):
        _expense(rent, '25000', date(2024, 5, 1))
        new = Expense(title='Deposit', amount=Decimal('6000'), category=rent, expense_date=date(2024, 5, 20))

        warning = new.budget_warning()
        assert warning is not None
        assert '31,000.00' in warning

    def test_no_warning_within_limit_or_other_month(self, rent, fuel):
        _expense(rent, '25000', date(2024, 4, 1))
        assert Expense(title='x', amount=Decimal('6000'), category=rent,
                       expense_date=date(2024, 5, 20)).budget_warning() is None
        assert Expense(title='x', amount=Decimal('99999'), category=fuel,
                       expense_date=date(2024, 5, 20)).budget_warning() is None

    def test_inactive_expenses_do_not_count(self, rent):
        _expense(rent, '25000', date(2024, 5, 1), status='inactive')
        assert rent.spent_in_month(2024, 5) == Decimal('0.00')

    def test_editing_expense_not_double_counted(self, rent):
        expense = _expense(rent, '29000', date(2024, 5, 1))
        expense.amount = Decimal('29500')
        assert expense.budget_warning() is None

    def test_expense_moved_into_full_month(self, rent):
        _expense(rent, '25000', date(2024, 5, 1))
        april = _expense(rent, '4000', date(2024, 4, 10))

        april.expense_date = date(2024, 5, 15)
        april.amount = Decimal('6000')
        warning = april.budget_warning()
        assert warning is not None
        assert '31,000.00' in warning

    def test_expense_moved_from_other_category(self, rent, fuel):
        _expense(rent, '25000', date(2024, 5, 1))
        diesel = _expense(fuel, '6000', date(2024, 5, 3))

        diesel.category = rent
        assert diesel.budget_warning() is not None

    def test_branch_budget_utilisation(self, rent, branch, other_branch):
        _expense(rent, '1500', date(2024, 5, 3), branch=branch)
        _expense(rent, '9999', date(2024, 5, 3), branch=other_branch)
        budget = ExpenseBudget.objects.create(category=rent, branch=branch, year=2024, month=5,
                                              budget_amount=Decimal('6000'))

        assert budget.spent_amount == Decimal('1500.00')
        assert budget.remaining_amount == Decimal('4500.00')
        assert budget.utilisation_percentage == Decimal('25.00')

    def test_budget_month_range(self, rent):
        budget = ExpenseBudget(category=rent, year=2024, month=13, budget_amount=Decimal('1'))
        with pytest.raises(ValidationError):
            budget.full_clean()


class TestStatistics:

    def test_breakdown_and_statistics(self, rent, fuel):
        _expense(rent, '3000', date(2024, 5, 1))
        _expense(fuel, '1000', date(2024, 5, 2))
        _expense(fuel, '500', date(2024, 6, 2), status='inactive')

        expenses = Expense.objects.all()
        breakdown = expenses.category_breakdown()
        assert [row['category'] for row in breakdown] == ['Rent', 'Fuel']
        assert breakdown[0]['share'] == Decimal('66.67')

        stats = expenses.get_statistics()
        assert stats['total_amount'] == Decimal('4500.00')
        assert stats['active_count'] == 2
        assert stats['inactive_amount'] == Decimal('500.00')

        trend = expenses.monthly_trend()
        assert [row['amount'] for row in trend] == [Decimal('4000.00'), Decimal('500.00')]
