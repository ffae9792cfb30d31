"""
Microfinance Utilities Package
==============================

Provides utility functions for:
- Money arithmetic and flat interest (money)
- Dates, settings and instalment schedules (helpers)
- Report builders shared by views and exports (reports)
- Excel/CSV export (Pandas/openpyxl)

Import directly from submodules to avoid circular imports:
    from microfinance.utils.money import MoneyCalculator
    from microfinance.utils.reports import build_overdue_report
    from microfinance.utils.excel_export import export_report
"""
