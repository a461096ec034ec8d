"""
Management command to expire stale pending transactions.

Every read or write already expires a stale transaction on contact; this
sweep catches the ones nobody touches again. Safe to run on a schedule.

Usage:
    python manage.py expire_pending_transactions
    python manage.py expire_pending_transactions --dry-run
"""

from django.core.management.base import BaseCommand

from apps.payments.models import PendingTransaction, OPEN_STATUSES
from apps.payments.runtime import ExecutionContext
from apps.payments.services import expire_stale_transactions


class Command(BaseCommand):
    help = 'Expire open pending transactions past their TTL'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be expired without making changes',
        )

    def handle(self, *args, **options):
        ctx = ExecutionContext.live()
        now = ctx.clock.now()

        stale = PendingTransaction.objects.filter(
            mode=ctx.mode,
            status__in=OPEN_STATUSES,
            expires_at__lt=now,
        )
        count = stale.count()

        if count == 0:
            self.stdout.write(self.style.SUCCESS('No stale transactions.'))
            return

        self.stdout.write(f'\nFound {count} stale transaction(s):\n')
        for txn in stale.select_related('merchant'):
            self.stdout.write(
                f'  - {txn.payment_code} | {txn.merchant.name} | {txn.status} | expired at {txn.expires_at}'
            )

        if options['dry_run']:
            self.stdout.write(self.style.WARNING('\n--dry-run mode: No changes made.'))
            return

        expired = expire_stale_transactions(ctx=ctx)
        self.stdout.write(self.style.SUCCESS(f'\nExpired {expired} transaction(s).'))
