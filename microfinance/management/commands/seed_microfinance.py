"""
Management command to seed reference data for the microfinance back office

This command creates:
- Loan increment levels (the borrowing ladder, levels 1-14)
- Default expense categories

Usage:
    python manage.py seed_microfinance
    python manage.py seed_microfinance --reset-levels  # Overwrite level amounts with the defaults
"""

from django.core.management.base import BaseCommand
from django.db import transaction

from microfinance.models import LoanIncrementLevel, ExpenseCategory, DEFAULT_INCREMENT_LEVELS


DEFAULT_EXPENSE_CATEGORIES = [
    ('OFFICE_SUP', 'Office Supplies', 'Paper, pens, stationery, and other office materials'),
    ('UTILITIES', 'Utilities', 'Electricity, water, internet, phone bills'),
    ('RENT', 'Rent', 'Office and property rental expenses'),
    ('SALARIES', 'Salaries', 'Employee wages and benefits'),
    ('MARKETING', 'Marketing', 'Advertising, promotions, and marketing materials'),
    ('TRAVEL', 'Travel', 'Transportation, accommodation, and travel-related costs'),
    ('EQUIPMENT', 'Equipment', 'Computers, furniture, and office equipment'),
    ('MAINTENANCE', 'Maintenance', 'Repairs, cleaning, and facility maintenance'),
]


class Command(BaseCommand):
    help = 'Seed loan increment levels and default expense categories'

    def add_arguments(self, parser):
        parser.add_argument(
            '--reset-levels',
            action='store_true',
            help='Overwrite existing increment level amounts with the defaults',
        )

    @transaction.atomic
    def handle(self, *args, **options):
        self.stdout.write(self.style.SUCCESS('\n=== Seeding microfinance reference data ===\n'))

        self.seed_increment_levels(options['reset_levels'])
        self.seed_expense_categories()

        self.stdout.write(self.style.SUCCESS('\n[SUCCESS] Reference data seeded successfully!\n'))

    def seed_increment_levels(self, reset):
        self.stdout.write('Creating Loan Increment Levels...')

        for level, amount in sorted(DEFAULT_INCREMENT_LEVELS.items()):
            obj, created = LoanIncrementLevel.objects.get_or_create(
                level=level,
                defaults={'amount': amount, 'is_active': True},
            )
            if created:
                self.stdout.write(f'  [+] Created: Level {level} ({amount:,.2f})')
            elif reset and obj.amount != amount:
                obj.amount = amount
                obj.save(update_fields=['amount'])
                self.stdout.write(self.style.WARNING(f'  [~] Reset: Level {level} ({amount:,.2f})'))
            else:
                self.stdout.write(f'  [*] Exists: Level {level} ({obj.amount:,.2f})')

    def seed_expense_categories(self):
        self.stdout.write('\nCreating Expense Categories...')

        for code, name, description in DEFAULT_EXPENSE_CATEGORIES:
            obj, created = ExpenseCategory.all_objects.get_or_create(
                code=code,
                defaults={'name': name, 'description': description},
            )
            if created:
                self.stdout.write(f'  [+] Created: {code} - {name}')
            else:
                self.stdout.write(f'  [*] Exists: {code} - {obj.name}')
