"""
Microfinance Back Office - Models Package
=========================================

This file imports and exposes all models for Django.
"""

from .base import (
    BaseModel,
    CreatedByMixin,
    ApprovalWorkflowMixin,
    StatusTrackingMixin,
)

from .all_models import (

    # Constants
    CURRENCY,
    REGISTRATION_FEE,
    ACTIVATION_FEE,
    PROCESSING_FEE_RATE,
    LOAN_PROGRAMS,
    LOAN_PROGRAM_CHOICES,
    INSTALLMENT_TYPE_CHOICES,
    DEFAULT_INCREMENT_LEVELS,
    FIRST_LOAN_AMOUNT,
    TWELVE_INSTALLMENT_MIN_LEVEL,
    PAYMENT_METHOD_CHOICES,

    # Organisation
    Branch,
    User,
    UserManager,
    UserPermission,
    MemberGroup,
    Member,

    # Lending
    LoanIncrementLevel,
    Loan,
    LoanInstallment,
    LoanPayment,
    RealizableAsset,

    # Expenses
    ExpenseCategory,
    Expense,
    ExpenseBudget,

    # Supporting Models
    CommunicationLog,
    Notification,
    ChangeFeed,
)


__all__ = [
    'BaseModel',
    'CreatedByMixin',
    'ApprovalWorkflowMixin',
    'StatusTrackingMixin',

    'CURRENCY',
    'REGISTRATION_FEE',
    'ACTIVATION_FEE',
    'PROCESSING_FEE_RATE',
    'LOAN_PROGRAMS',
    'LOAN_PROGRAM_CHOICES',
    'INSTALLMENT_TYPE_CHOICES',
    'DEFAULT_INCREMENT_LEVELS',
    'FIRST_LOAN_AMOUNT',
    'TWELVE_INSTALLMENT_MIN_LEVEL',
    'PAYMENT_METHOD_CHOICES',

    'Branch',
    'User',
    'UserManager',
    'UserPermission',
    'MemberGroup',
    'Member',

    'LoanIncrementLevel',
    'Loan',
    'LoanInstallment',
    'LoanPayment',
    'RealizableAsset',

    'ExpenseCategory',
    'Expense',
    'ExpenseBudget',

    'CommunicationLog',
    'Notification',
    'ChangeFeed',
]
