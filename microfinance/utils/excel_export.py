"""
Excel/CSV Export Utilities using Pandas
========================================

Spreadsheet exports for the back-office reports
"""

from django.http import HttpResponse
from django.utils import timezone
import pandas as pd
from io import BytesIO
from decimal import Decimal

from openpyxl.styles import Font, PatternFill, Alignment
from openpyxl.utils import get_column_letter


HEADER_COLOR = '047857'
TOTALS_COLOR = 'D1FAE5'


def create_excel_response(filename='report.xlsx'):
    """Create an HTTP response for Excel file download"""
    response = HttpResponse(
        content_type='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
    )
    response['Content-Disposition'] = f'attachment; filename="{filename}"'
    return response


def create_csv_response(filename='report.csv'):
    """Create an HTTP response for CSV file download"""
    response = HttpResponse(content_type='text/csv')
    response['Content-Disposition'] = f'attachment; filename="{filename}"'
    return response


def _cell(value):
    if isinstance(value, Decimal):
        return float(value)
    if value is None:
        return ''
    return value


def build_dataframe(columns, rows, totals=None):
    """rows are sequences in column order; totals is an optional dict keyed by column"""
    df = pd.DataFrame([[_cell(v) for v in row] for row in rows], columns=columns)
    if totals:
        totals_row = pd.DataFrame([{col: _cell(totals.get(col, '')) for col in columns}])
        df = pd.concat([df, totals_row], ignore_index=True)
    return df


def export_rows_excel(title, columns, rows, filename, subtitle='', totals=None, money_columns=()):
    """Write one styled sheet with a title block, header row and optional totals row"""
    output = BytesIO()
    writer = pd.ExcelWriter(output, engine='openpyxl')

    df = build_dataframe(columns, rows, totals)
    sheet_name = title[:31]
    df.to_excel(writer, sheet_name=sheet_name, index=False, startrow=3)
    worksheet = writer.sheets[sheet_name]

    last_col = get_column_letter(max(len(columns), 1))
    worksheet.merge_cells(f'A1:{last_col}1')
    worksheet.merge_cells(f'A2:{last_col}2')
    worksheet['A1'] = title.upper()
    worksheet['A1'].font = Font(bold=True, size=16, color=HEADER_COLOR)
    worksheet['A1'].alignment = Alignment(horizontal='center')
    worksheet['A2'] = subtitle or f'Generated: {timezone.now().strftime("%Y-%m-%d %H:%M")}'
    worksheet['A2'].alignment = Alignment(horizontal='center')

    # Header styling
    header_fill = PatternFill(start_color=HEADER_COLOR, end_color=HEADER_COLOR, fill_type='solid')
    header_font = Font(bold=True, color='FFFFFF', size=11)
    for col_num in range(1, len(columns) + 1):
        cell = worksheet.cell(row=4, column=col_num)
        cell.fill = header_fill
        cell.font = header_font
        cell.alignment = Alignment(horizontal='center', vertical='center')

    first_data_row = 5
    last_row = first_data_row + len(df) - 1

    money_indexes = [columns.index(col) + 1 for col in money_columns if col in columns]
    for row in range(first_data_row, last_row + 1):
        for col_num in money_indexes:
            worksheet.cell(row=row, column=col_num).number_format = '#,##0.00'

    if totals and len(df):
        totals_fill = PatternFill(start_color=TOTALS_COLOR, end_color=TOTALS_COLOR, fill_type='solid')
        for col_num in range(1, len(columns) + 1):
            cell = worksheet.cell(row=last_row, column=col_num)
            cell.fill = totals_fill
            cell.font = Font(bold=True, size=11)

    for col_num, col in enumerate(columns, 1):
        width = max([len(str(col))] + [len(str(v)) for v in df[col].tolist()])
        worksheet.column_dimensions[get_column_letter(col_num)].width = min(max(width + 2, 10), 50)

    writer.close()
    output.seek(0)

    response = create_excel_response(filename)
    response.write(output.read())
    return response


def export_to_csv(data, columns, filename='export.csv'):
    """Generic CSV export function"""
    df = build_dataframe(columns, data)

    response = create_csv_response(filename)
    df.to_csv(response, index=False)
    return response


# =============================================================================
# REPORT TABLES
# =============================================================================

def _d(value):
    return value.strftime('%Y-%m-%d') if value else ''


def overdue_table(report):
    columns = ['Loan No', 'Member', 'Member No', 'Branch', 'Officer', 'Days Overdue',
               'Overdue Instalments', 'Overdue Amount', 'Balance', 'Risk']
    rows = [
        [
            r['loan'].loan_number, r['member'].full_name, r['member'].member_no,
            r['loan'].branch.name, r['loan'].loan_officer.get_full_name() if r['loan'].loan_officer else '',
            r['days_overdue'], r['overdue_installments'], r['overdue_amount'], r['balance'],
            r['risk_level'].title(),
        ]
        for r in report['rows']
    ]
    totals = {'Loan No': 'TOTAL', 'Overdue Amount': report['totals']['overdue_amount'],
              'Balance': report['totals']['balance']}
    return 'Overdue Loans', columns, rows, totals, ['Overdue Amount', 'Balance']


def bad_debt_table(report):
    columns = ['Loan No', 'Member', 'Member No', 'Branch', 'Status', 'Last Payment',
               'Days Since Payment', 'Balance']
    rows = [
        [
            r['loan'].loan_number, r['member'].full_name, r['member'].member_no, r['loan'].branch.name,
            r['loan'].get_status_display(), _d(r['last_payment_date']), r['days_since_payment'], r['balance'],
        ]
        for r in report['rows']
    ]
    totals = {'Loan No': 'TOTAL', 'Balance': report['totals']['balance']}
    return 'Bad Debt Candidates', columns, rows, totals, ['Balance']


def dormant_table(report):
    columns = ['Member No', 'Member', 'Phone', 'Branch', 'Group', 'Last Activity', 'Months Inactive']
    rows = [
        [
            r['member'].member_no, r['member'].full_name, r['member'].phone_number, r['member'].branch.name,
            r['member'].group.name if r['member'].group else '', _d(r['last_activity_date']), r['months_inactive'],
        ]
        for r in report['rows']
    ]
    return 'Dormant Members', columns, rows, None, []


def income_table(report):
    columns = ['Source', 'Count', 'Amount', 'Share %']
    rows = [[s['label'], s['count'], s['amount'], s['share']] for s in report['sources']]
    totals = {'Source': 'TOTAL', 'Amount': report['total']}
    return 'Income', columns, rows, totals, ['Amount']


def realizable_table(report):
    columns = ['Asset Type', 'Description', 'Member', 'Loan No', 'Original Value', 'Market Value',
               'Realizable Value', 'Recovery', 'Status']
    rows = [
        [
            a.get_asset_type_display(), a.description, a.member.full_name if a.member else '',
            a.loan.loan_number if a.loan else '', a.original_value, a.current_market_value,
            a.realizable_value, a.get_recovery_likelihood_display(), a.get_status_display(),
        ]
        for a in report['assets']
    ]
    t = report['totals']
    totals = {'Asset Type': 'TOTAL', 'Original Value': t['original_value'],
              'Market Value': t['market_value'], 'Realizable Value': t['realizable_value']}
    return 'Realizable Assets', columns, rows, totals, ['Original Value', 'Market Value', 'Realizable Value']


def loan_officer_table(report):
    columns = ['Officer', 'Email', 'Branch', 'Disbursed', 'Collected', 'Outstanding', 'Active',
               'Pending', 'Repaid', 'Defaulted', 'Collection Rate %']
    rows = [
        [
            r['officer'].get_full_name(), r['officer'].email,
            r['officer'].branch.name if r['officer'].branch else '', r['total_disbursed'],
            r['total_collected'], r['outstanding'], r['active_count'], r['pending_count'],
            r['repaid_count'], r['defaulted_count'], r['collection_rate'],
        ]
        for r in report['rows']
    ]
    return 'Loan Officers', columns, rows, None, ['Disbursed', 'Collected', 'Outstanding']


def master_roll_table(rows):
    columns = ['Member No', 'Member', 'ID Number', 'Phone', 'Branch', 'Group', 'Status', 'Loans',
               'Outstanding', 'Last Payment']
    data = [
        [
            r['member'].member_no, r['member'].full_name, r['member'].id_number, r['member'].phone_number,
            r['member'].branch.name, r['member'].group.name if r['member'].group else '',
            r['member'].get_status_display(), r['loan_count'], r['outstanding'], _d(r['last_payment_date']),
        ]
        for r in rows
    ]
    return 'Master Roll', columns, data, None, ['Outstanding']


def expenses_table(expenses):
    columns = ['Expense No', 'Date', 'Title', 'Category', 'Vendor', 'Branch', 'Method',
               'Invoice', 'Status', 'Amount']
    rows = [
        [
            e.expense_number, _d(e.expense_date), e.title, e.category.name if e.category else '', e.vendor_name,
            e.branch.name if e.branch else '', e.get_payment_method_display(), e.invoice_number,
            e.get_status_display(), e.amount,
        ]
        for e in expenses
    ]
    totals = {'Expense No': 'TOTAL', 'Amount': sum((e.amount for e in expenses), Decimal('0'))}
    return 'Expenses', columns, rows, totals, ['Amount']


REPORT_TABLES = {
    'overdue': overdue_table,
    'bad_debt': bad_debt_table,
    'dormant': dormant_table,
    'income': income_table,
    'realizable': realizable_table,
    'loan_officers': loan_officer_table,
    'master_roll': master_roll_table,
    'expenses': expenses_table,
}


def export_report(report_key, report, export_format='xlsx', subtitle=''):
    """Render a built report as an xlsx or csv download"""
    title, columns, rows, totals, money_columns = REPORT_TABLES[report_key](report)
    stamp = timezone.now().strftime('%Y%m%d_%H%M%S')

    if export_format == 'csv':
        if totals:
            rows = rows + [[totals.get(col, '') for col in columns]]
        return export_to_csv(rows, columns, filename=f'{report_key}_{stamp}.csv')

    return export_rows_excel(
        title, columns, rows, f'{report_key}_{stamp}.xlsx',
        subtitle=subtitle, totals=totals, money_columns=money_columns,
    )
