"""
Management command to refresh instalment statuses

Unpaid instalments past their due date become 'overdue'. With
--default-after-days, active loans whose due date passed more than that many
days ago with a balance outstanding are marked 'defaulted'.

Usage:
    python manage.py mark_overdue_installments
    python manage.py mark_overdue_installments --default-after-days 30
"""

import logging
from datetime import timedelta

from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from microfinance.models import Loan, LoanInstallment, ChangeFeed

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Mark past-due instalments overdue and optionally default long overdue loans'

    def add_arguments(self, parser):
        parser.add_argument(
            '--default-after-days',
            type=int,
            default=None,
            help='Mark active loans defaulted once their due date is this many days past',
        )

    @transaction.atomic
    def handle(self, *args, **options):
        today = timezone.localdate()

        overdue = LoanInstallment.objects.filter(
            due_date__lt=today,
            status__in=['pending', 'partial'],
            loan__deleted_at__isnull=True,
            loan__approval_status='approved',
        ).update(status='overdue')
        if overdue:
            ChangeFeed.bump('microfinance.LoanInstallment')
        self.stdout.write(f'  [+] {overdue} instalment(s) marked overdue')

        days = options['default_after_days']
        if days is None:
            self.stdout.write(self.style.SUCCESS('[SUCCESS] Instalment statuses refreshed'))
            return

        if days < 0:
            self.stdout.write(self.style.ERROR('--default-after-days must not be negative'))
            return

        defaulted = 0
        loans = Loan.objects.filter(
            status='active',
            current_balance__gt=0,
            due_date__lt=today - timedelta(days=days),
        )
        for loan in loans:
            loan.mark_defaulted()
            defaulted += 1
            self.stdout.write(f'  [+] Defaulted: {loan.loan_number}')

        logger.info(f"Marked {overdue} instalments overdue and {defaulted} loans defaulted")
        self.stdout.write(self.style.SUCCESS(f'[SUCCESS] {defaulted} loan(s) marked defaulted'))
