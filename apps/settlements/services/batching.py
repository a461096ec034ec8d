"""
Settlement batch service.

For each active merchant, completed live transactions captured within the
period are rolled up into one Settlement:

    gross = sum(final_amount)
    fees  = round_half_up(gross * psp_fee_pct / 100 + count * psp_fee_fixed_cents)
    net   = gross - fees

Merchants with nothing to settle are skipped, and a period that already has
a settlement is left alone, so the batch can be re-run safely.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import List
from uuid import UUID

from django.core.exceptions import ValidationError
from django.db import transaction, IntegrityError
from django.db.models import Count, Sum
from django.utils import timezone

from apps.credits.models import ExecutionMode
from apps.merchants.models import Merchant
from apps.payments.models import PendingTransaction, TransactionStatus
from apps.settlements.models import Settlement, SettlementStatus

from .exceptions import InvalidPeriodError, SettlementNotFoundError, SettlementAlreadyPaidError

logger = logging.getLogger(__name__)


@dataclass
class SettlementRun:
    settlements_created: int = 0
    skipped_existing: int = 0
    skipped_empty: int = 0
    settlements: List[Settlement] = field(default_factory=list)


def calculate_fees(gross_cents: int, transaction_count: int, fee_pct, fee_fixed_cents: int) -> int:
    """Processor fees for a period, rounded half up to the cent."""
    fees = (
        Decimal(gross_cents) * Decimal(str(fee_pct)) / 100
        + Decimal(transaction_count) * Decimal(fee_fixed_cents)
    )
    return int(fees.to_integral_value(rounding=ROUND_HALF_UP))


def settlement_totals(*, merchant: Merchant, period_start: date, period_end: date) -> dict:
    """Gross and count of a merchant's completed live transactions in the period."""
    return PendingTransaction.objects.filter(
        merchant=merchant,
        mode=ExecutionMode.LIVE,
        status=TransactionStatus.COMPLETED,
        captured_at__date__gte=period_start,
        captured_at__date__lte=period_end,
    ).aggregate(
        gross=Sum('final_amount', default=0),
        count=Count('id'),
    )


def generate_settlements(*, period_start: date, period_end: date, dry_run: bool = False) -> SettlementRun:
    """
    Create settlements for every active merchant for a period.

    Args:
        period_start: First day included
        period_end: Last day included
        dry_run: Compute without saving

    Returns:
        SettlementRun: Counts of created, already existing and empty merchants

    Raises:
        InvalidPeriodError: If period_end is before period_start
    """
    if period_end < period_start:
        raise InvalidPeriodError("period_end must not be before period_start")

    run = SettlementRun()
    for merchant in Merchant.objects.filter(is_active=True).order_by('name'):
        exists = Settlement.objects.filter(
            merchant=merchant, period_start=period_start, period_end=period_end
        ).exists()
        if exists:
            logger.info("Settlement exists for %s %s..%s, skipping", merchant.id, period_start, period_end)
            run.skipped_existing += 1
            continue

        totals = settlement_totals(merchant=merchant, period_start=period_start, period_end=period_end)
        if totals['count'] == 0:
            run.skipped_empty += 1
            continue

        fees = calculate_fees(
            totals['gross'], totals['count'], merchant.psp_fee_pct, merchant.psp_fee_fixed_cents
        )
        settlement = Settlement(
            merchant=merchant,
            period_start=period_start,
            period_end=period_end,
            gross_cents=totals['gross'],
            fees_cents=fees,
            net_cents=totals['gross'] - fees,
            transaction_count=totals['count'],
        )

        if not dry_run:
            try:
                with transaction.atomic():
                    settlement.save()
            except IntegrityError:
                # Created by a concurrent run
                run.skipped_existing += 1
                continue

        run.settlements.append(settlement)
        run.settlements_created += 1
        logger.info(
            "Settlement for %s %s..%s: gross=%d fees=%d net=%d count=%d%s",
            merchant.id, period_start, period_end, settlement.gross_cents,
            settlement.fees_cents, settlement.net_cents, settlement.transaction_count,
            ' (dry run)' if dry_run else ''
        )

    return run


@transaction.atomic
def mark_settlement_paid(*, settlement_id: UUID) -> Settlement:
    """
    Raises:
        SettlementNotFoundError: If the settlement does not exist
        SettlementAlreadyPaidError: If it is already paid
    """
    try:
        settlement = Settlement.objects.select_for_update().get(id=settlement_id)
    except (Settlement.DoesNotExist, ValidationError):
        raise SettlementNotFoundError(f"Settlement with ID {settlement_id} not found")

    if settlement.status == SettlementStatus.PAID:
        raise SettlementAlreadyPaidError("Settlement is already paid")

    settlement.status = SettlementStatus.PAID
    settlement.paid_at = timezone.now()
    settlement.save(update_fields=['status', 'paid_at'])
    logger.info("Settlement %s marked paid", settlement.id)
    return settlement
