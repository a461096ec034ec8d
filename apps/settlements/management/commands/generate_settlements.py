"""
Management command to generate merchant settlements for a period.

Re-running for the same period creates nothing new.

Usage:
    python manage.py generate_settlements --start 2024-01-01 --end 2024-01-07
    python manage.py generate_settlements --start 2024-01-01 --end 2024-01-07 --dry-run
"""

from datetime import date

from django.core.management.base import BaseCommand, CommandError

from apps.credits.money import format_cents
from apps.settlements.services import generate_settlements, InvalidPeriodError


def _parse_date(value):
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise CommandError(f'Invalid date: {value!r} (expected YYYY-MM-DD)')


class Command(BaseCommand):
    help = 'Generate settlements for every active merchant for a period'

    def add_arguments(self, parser):
        parser.add_argument('--start', required=True, help='First day of the period (YYYY-MM-DD)')
        parser.add_argument('--end', required=True, help='Last day of the period (YYYY-MM-DD)')
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be created without making changes',
        )

    def handle(self, *args, **options):
        start = _parse_date(options['start'])
        end = _parse_date(options['end'])
        dry_run = options['dry_run']

        try:
            run = generate_settlements(period_start=start, period_end=end, dry_run=dry_run)
        except InvalidPeriodError as e:
            raise CommandError(str(e))

        for settlement in run.settlements:
            self.stdout.write(
                f'  - {settlement.merchant.name} | {settlement.transaction_count} txn | '
                f'gross {format_cents(settlement.gross_cents)} | fees {format_cents(settlement.fees_cents)} | '
                f'net {format_cents(settlement.net_cents)}'
            )

        summary = (
            f'{run.settlements_created} created, {run.skipped_existing} already existed, '
            f'{run.skipped_empty} with no transactions'
        )
        if dry_run:
            self.stdout.write(self.style.WARNING(f'\n--dry-run mode: {summary}. No changes made.'))
        else:
            self.stdout.write(self.style.SUCCESS(f'\n{summary}.'))
