"""
Management command to flag members with no recent activity as dormant

A member is dormant when neither a loan, a payment nor a reactivation has
touched them for MICROFINANCE['DORMANCY_MONTHS'] months.

Usage:
    python manage.py mark_dormant_members
    python manage.py mark_dormant_members --dry-run
"""

import logging

from dateutil.relativedelta import relativedelta
from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from microfinance.models import Member, ChangeFeed
from microfinance.utils.helpers import get_setting

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Mark active members with no activity inside the dormancy window as dormant'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='List the members that would be marked without changing them',
        )

    @transaction.atomic
    def handle(self, *args, **options):
        months = get_setting('DORMANCY_MONTHS')
        cutoff = timezone.localdate() - relativedelta(months=months)

        members = Member.objects.inactive_since(cutoff).order_by('member_no')

        if options['dry_run']:
            for member in members:
                self.stdout.write(f'  [*] Would mark: {member.member_no} - {member.full_name}')
            self.stdout.write(self.style.WARNING(f'\n{members.count()} member(s) inactive since {cutoff}'))
            return

        count = members.update(status='dormant', updated_at=timezone.now())
        if count:
            ChangeFeed.bump('microfinance.Member')
        logger.info(f"Marked {count} members dormant (inactive since {cutoff})")
        self.stdout.write(self.style.SUCCESS(f'[SUCCESS] Marked {count} member(s) dormant'))
