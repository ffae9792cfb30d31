"""
Report builders

Overdue with risk grading, bad debt, dormant members, income by source,
realizable assets, loan officers, master roll and dashboard figures.
"""

import pytest
from datetime import timedelta
from decimal import Decimal

from django.utils import timezone

from microfinance.models import Loan, LoanPayment, Member, RealizableAsset, User
from microfinance.utils.reports import (
    build_receive_payments_rows,
    build_overdue_report,
    build_bad_debt_report,
    build_dormant_report,
    build_income_report,
    build_realizable_report,
    build_loan_officer_report,
    build_master_roll,
    build_dashboard_stats,
)


def _loan_issued(member, creator, days_ago, amount=Decimal('5000')):
    return Loan.create_loan(
        member, amount, created_by=creator,
        issue_date=timezone.localdate() - timedelta(days=days_ago),
    )


class TestOverdueReport:

    def test_risk_levels_and_ordering(self, make_member, admin_user):
        today = timezone.localdate()
        recent = _loan_issued(make_member(), admin_user, 14)
        old = _loan_issued(make_member(), admin_user, 70)
        _loan_issued(make_member(), admin_user, 3)

        report = build_overdue_report(Loan.objects.all(), as_of=today)

        assert [row['loan'] for row in report['rows']] == [old, recent]
        assert report['rows'][0]['days_overdue'] == 63
        assert report['rows'][0]['risk_level'] == 'high'
        assert report['rows'][1]['days_overdue'] == 7
        assert report['rows'][1]['risk_level'] == 'low'
        assert report['rows'][1]['overdue_amount'] == Decimal('718.75')
        assert report['by_risk']['high']['count'] == 1
        assert report['totals']['count'] == 2

    def test_risk_filter(self, make_member, admin_user):
        _loan_issued(make_member(), admin_user, 14)
        _loan_issued(make_member(), admin_user, 70)

        report = build_overdue_report(Loan.objects.all(), risk='low')
        assert report['totals']['count'] == 1

    def test_paid_up_loan_not_overdue(self, make_member, admin_user, teller):
        loan = _loan_issued(make_member(), admin_user, 14)
        loan.record_payment(Decimal('718.75'), received_by=teller)

        assert build_overdue_report(Loan.objects.all())['rows'] == []

    def test_critical_after_ninety_days(self, make_member, admin_user):
        _loan_issued(make_member(), admin_user, 120)
        row = build_overdue_report(Loan.objects.all())['rows'][0]
        assert row['risk_level'] == 'critical'


class TestReceivePaymentsDesk:

    def test_rows_and_totals(self, make_member, admin_user, loan_officer):
        _loan_issued(make_member(), admin_user, 14)
        _loan_issued(make_member(), admin_user, 0)
        Loan.create_loan(make_member(), Decimal('5000'), created_by=loan_officer)  # pending, not collectable

        desk = build_receive_payments_rows(Loan.objects.all())

        assert desk['totals']['count'] == 2
        assert desk['totals']['overdue_count'] == 1
        assert desk['totals']['balance'] == Decimal('11500.00')
        assert desk['totals']['overdue_amount'] == Decimal('718.75')


class TestBadDebtReport:

    def test_long_silent_loans_are_candidates(self, make_member, admin_user, teller):
        silent = _loan_issued(make_member(), admin_user, 400)
        paying = _loan_issued(make_member(), admin_user, 400)
        paying.record_payment(Decimal('100'), received_by=teller)
        _loan_issued(make_member(), admin_user, 30)

        report = build_bad_debt_report(Loan.objects.all())

        assert [row['loan'] for row in report['rows']] == [silent]
        assert report['rows'][0]['days_since_payment'] == 400
        assert report['threshold_days'] == 365

    def test_written_off_listed_separately(self, make_member, admin_user):
        loan = _loan_issued(make_member(), admin_user, 400)
        loan.mark_defaulted()
        loan.write_off(admin_user)

        report = build_bad_debt_report(Loan.objects.all())
        assert report['rows'] == []
        assert report['totals']['written_off_count'] == 1
        assert report['totals']['written_off_balance'] == Decimal('5750.00')

    def test_threshold_from_settings(self, settings, make_member, admin_user):
        settings.MICROFINANCE = {'BAD_DEBT_DAYS': 20}
        _loan_issued(make_member(), admin_user, 30)
        assert build_bad_debt_report(Loan.objects.all())['totals']['count'] == 1


class TestDormantReport:

    def test_members_past_dormancy_window(self, make_member):
        today = timezone.localdate()
        stale = make_member(last_activity_date=today - timedelta(days=130))
        make_member(last_activity_date=today - timedelta(days=20))

        report = build_dormant_report(Member.objects.all(), as_of=today)

        assert [row['member'] for row in report['rows']] == [stale]
        assert report['rows'][0]['months_inactive'] >= 4
        assert report['dormancy_months'] == 3


class TestIncomeReport:

    def test_sources(self, member, active_loan, teller):
        today = timezone.localdate()
        active_loan.record_payment(Decimal('718.75'), received_by=teller)
        member.pay_registration_fee()

        report = build_income_report(
            Loan.objects.all(), LoanPayment.objects.all(), Member.objects.all(), today, today,
        )
        sources = {s['source']: s for s in report['sources']}

        assert sources['processing_fees']['amount'] == Decimal('300.00')
        assert sources['interest']['amount'] == Decimal('93.75')
        assert sources['registration_fees']['amount'] == Decimal('500.00')
        assert sources['activation_fees']['amount'] == Decimal('0.00')
        assert report['total'] == Decimal('893.75')

    def test_pending_loans_earn_no_fee(self, member, loan_officer):
        today = timezone.localdate()
        Loan.create_loan(member, Decimal('5000'), created_by=loan_officer)
        report = build_income_report(
            Loan.objects.all(), LoanPayment.objects.all(), Member.objects.all(), today, today,
        )
        assert report['total'] == Decimal('0.00')


class TestPortfolioReports:

    def test_realizable_coverage(self, member, active_loan, branch, admin_user):
        RealizableAsset.objects.create(
            asset_type='vehicle', description='Motorbike KMDA 123A',
            original_value=Decimal('120000'), current_market_value=Decimal('80000'),
            realizable_value=Decimal('5750'), member=member, loan=active_loan, branch=branch,
            created_by=admin_user,
        )

        report = build_realizable_report(RealizableAsset.objects.all(), Loan.objects.all())

        assert report['totals']['count'] == 1
        assert report['totals']['secured_outstanding'] == Decimal('5750.00')
        assert report['totals']['coverage_pct'] == Decimal('100.00')
        assert report['by_status']['available']['count'] == 1

    def test_loan_officer_report(self, active_loan, loan_officer, other_officer, teller):
        active_loan.record_payment(Decimal('575'), received_by=teller)

        report = build_loan_officer_report(User.objects.loan_officers(), Loan.objects.all())
        rows = {row['officer']: row for row in report['rows']}

        assert rows[loan_officer]['total_disbursed'] == Decimal('5000.00')
        assert rows[loan_officer]['collection_rate'] == Decimal('10.00')
        assert rows[other_officer]['total_disbursed'] == Decimal('0.00')
        assert report['rows'][0]['officer'] == loan_officer

    def test_master_roll(self, member, active_loan, make_member, teller):
        active_loan.record_payment(Decimal('100'), received_by=teller)
        make_member(full_name='Zawadi Njeri')

        rows = build_master_roll(Member.objects.all())

        assert [row['member'].full_name for row in rows] == ['Achieng Otieno', 'Zawadi Njeri']
        assert rows[0]['loan_count'] == 1
        assert rows[0]['outstanding'] == Decimal('5650.00')
        assert rows[0]['last_payment_date'] == timezone.localdate()
        assert rows[1]['outstanding'] == Decimal('0.00')

    def test_master_roll_skips_deleted_payments(self, member, active_loan, teller):
        payment = active_loan.record_payment(Decimal('100'), received_by=teller)
        LoanPayment.objects.filter(pk=payment.pk).update(deleted_at=timezone.now())

        rows = build_master_roll(Member.objects.all())
        assert rows[0]['last_payment_date'] is None

    def test_dashboard_stats(self, member, active_loan, teller):
        active_loan.record_payment(Decimal('500'), received_by=teller)

        stats = build_dashboard_stats(Member.objects.all(), Loan.objects.all())

        assert stats['total_customers'] == 1
        assert stats['total_loans'] == 1
        assert stats['active_loans'] == 1
        assert stats['total_disbursed'] == Decimal('5000.00')
        assert stats['outstanding_balance'] == Decimal('5250.00')
        assert stats['collection_rate'] == Decimal('10.00')
        assert stats['default_rate'] == Decimal('0.00')
