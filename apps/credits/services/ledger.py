"""
Credit ledger service.

Balances only ever move by deltas applied in the database
(UPDATE ... SET x = x + n), and every change is paired with a CreditEvent
inside the same atomic block. A debit is conditional on the row still
holding enough credit, so two racing redemptions can never take a balance
below zero; the loser gets InsufficientBalanceError.
"""

import logging
from dataclasses import dataclass
from typing import List, NamedTuple, Optional
from uuid import UUID

from django.db import transaction
from django.db.models import F, Sum, QuerySet

from apps.accounts.models import User
from apps.credits.models import CreditBalance, CreditEvent, CreditEventType
from apps.merchants.models import Merchant

from .exceptions import NegativeAmountError, InsufficientBalanceError

logger = logging.getLogger(__name__)


class AvailableCredits(NamedTuple):
    local: int
    network: int


@dataclass(frozen=True)
class RestoredCredits:
    local: int
    network: int

    @property
    def total(self) -> int:
        return self.local + self.network


@dataclass(frozen=True)
class BalanceCheck:
    stored: AvailableCredits
    reconstructed: AvailableCredits

    @property
    def matches(self) -> bool:
        return self.stored == self.reconstructed


def get_available_credits(*, user: User, merchant: Merchant, mode: str) -> AvailableCredits:
    """
    Credit the user can spend at a merchant.

    Local credit is the merchant's own row; network credit is the sum of the
    user's network credit across every merchant.
    """
    local = (
        CreditBalance.objects
        .filter(user=user, merchant=merchant, mode=mode)
        .values_list('local_cents', flat=True)
        .first()
    ) or 0
    network = CreditBalance.objects.filter(user=user, mode=mode).aggregate(
        total=Sum('network_cents', default=0)
    )['total']
    return AvailableCredits(local=local, network=network)


@transaction.atomic
def earn_credits(
    *,
    user: User,
    merchant: Merchant,
    mode: str,
    local_cents: int,
    network_cents: int,
    description: str = '',
    transaction_ref: Optional[UUID] = None,
    grab_ref: Optional[UUID] = None
) -> Optional[CreditEvent]:
    """
    Add earned credit to the user's balance at a merchant.

    Creates the balance row on first earn. Returns the CREDIT_EARNED event,
    or None when nothing was earned.

    Raises:
        NegativeAmountError: If either amount is negative
    """
    if local_cents < 0 or network_cents < 0:
        raise NegativeAmountError("Earned credit must not be negative")
    if local_cents == 0 and network_cents == 0:
        return None

    balance, _ = CreditBalance.objects.get_or_create(user=user, merchant=merchant, mode=mode)
    CreditBalance.objects.filter(pk=balance.pk).update(
        local_cents=F('local_cents') + local_cents,
        network_cents=F('network_cents') + network_cents,
    )

    event = CreditEvent.objects.create(
        user=user,
        merchant=merchant,
        mode=mode,
        event_type=CreditEventType.CREDIT_EARNED,
        local_cents_change=local_cents,
        network_cents_change=network_cents,
        description=description,
        transaction_ref=transaction_ref,
        grab_ref=grab_ref,
    )
    logger.info(
        "Credit earned: user=%s merchant=%s mode=%s local=%d network=%d",
        user.id, merchant.id, mode, local_cents, network_cents
    )
    return event


@transaction.atomic
def spend_credits(
    *,
    user: User,
    merchant: Merchant,
    mode: str,
    local_cents: int,
    network_cents: int,
    description: str = '',
    transaction_ref: Optional[UUID] = None
) -> List[CreditEvent]:
    """
    Debit credit for a redemption.

    This is the authoritative balance check: whatever was shown to the
    customer earlier, the debit only succeeds if the credit is still there
    now. Local credit comes from the merchant's row. Network credit drains
    the merchant's row first, then the user's other rows oldest first.
    One CREDIT_USED event is written per balance row touched.

    Args:
        user: Customer paying
        merchant: Merchant being paid
        mode: ExecutionMode value
        local_cents: Local credit to debit
        network_cents: Network credit to debit
        description: Event description
        transaction_ref: Pending transaction ID, used later by restore_credits()

    Returns:
        The CREDIT_USED events written (empty if nothing was spent)

    Raises:
        NegativeAmountError: If either amount is negative
        InsufficientBalanceError: If the balance no longer covers the debit
    """
    if local_cents < 0 or network_cents < 0:
        raise NegativeAmountError("Spent credit must not be negative")
    if local_cents == 0 and network_cents == 0:
        return []

    balances = list(
        CreditBalance.objects
        .select_for_update()
        .filter(user=user, mode=mode)
        .order_by('created_at')
    )
    # Merchant's own row first, the rest oldest first
    balances.sort(key=lambda b: b.merchant_id != merchant.id)

    # Per-row plan: balance -> [local, network]
    plan = {}
    if local_cents:
        own = next((b for b in balances if b.merchant_id == merchant.id), None)
        if own is None or own.local_cents < local_cents:
            raise InsufficientBalanceError(
                f"Insufficient local credit: need {local_cents}, have {own.local_cents if own else 0}"
            )
        plan[own.pk] = [own, local_cents, 0]

    remaining = network_cents
    for balance in balances:
        if remaining == 0:
            break
        take = min(balance.network_cents, remaining)
        if take <= 0:
            continue
        entry = plan.setdefault(balance.pk, [balance, 0, 0])
        entry[2] = take
        remaining -= take

    if remaining:
        raise InsufficientBalanceError(
            f"Insufficient network credit: need {network_cents}, short by {remaining}"
        )

    events = []
    for balance, local_take, network_take in plan.values():
        updated = (
            CreditBalance.objects
            .filter(
                pk=balance.pk,
                local_cents__gte=local_take,
                network_cents__gte=network_take,
            )
            .update(
                local_cents=F('local_cents') - local_take,
                network_cents=F('network_cents') - network_take,
            )
        )
        if not updated:
            raise InsufficientBalanceError("Credit balance changed during redemption")

        events.append(CreditEvent.objects.create(
            user=user,
            merchant_id=balance.merchant_id,
            mode=mode,
            event_type=CreditEventType.CREDIT_USED,
            local_cents_change=-local_take,
            network_cents_change=-network_take,
            description=description,
            transaction_ref=transaction_ref,
        ))

    logger.info(
        "Credit spent: user=%s merchant=%s mode=%s local=%d network=%d rows=%d",
        user.id, merchant.id, mode, local_cents, network_cents, len(events)
    )
    return events


@transaction.atomic
def restore_credits(*, transaction_ref: UUID, description: str = '') -> RestoredCredits:
    """
    Reverse every CREDIT_USED event recorded for a transaction.

    Each debited row gets its credit back with a matching CREDIT_RESTORED
    event. Calling this again for the same transaction restores nothing.
    """
    events = CreditEvent.objects.filter(transaction_ref=transaction_ref)
    if events.filter(event_type=CreditEventType.CREDIT_RESTORED).exists():
        return RestoredCredits(local=0, network=0)

    restored_local = 0
    restored_network = 0
    for used in events.filter(event_type=CreditEventType.CREDIT_USED).order_by('created_at'):
        local = -used.local_cents_change
        network = -used.network_cents_change
        CreditBalance.objects.filter(
            user_id=used.user_id, merchant_id=used.merchant_id, mode=used.mode
        ).update(
            local_cents=F('local_cents') + local,
            network_cents=F('network_cents') + network,
        )
        CreditEvent.objects.create(
            user_id=used.user_id,
            merchant_id=used.merchant_id,
            mode=used.mode,
            event_type=CreditEventType.CREDIT_RESTORED,
            local_cents_change=local,
            network_cents_change=network,
            description=description,
            transaction_ref=transaction_ref,
        )
        restored_local += local
        restored_network += network

    if restored_local or restored_network:
        logger.info(
            "Credit restored for transaction %s: local=%d network=%d",
            transaction_ref, restored_local, restored_network
        )
    return RestoredCredits(local=restored_local, network=restored_network)


def get_credit_history(
    *,
    user: User,
    mode: str,
    merchant: Optional[Merchant] = None
) -> QuerySet:
    """Credit events for a user, newest first, optionally for one merchant."""
    queryset = CreditEvent.objects.filter(user=user, mode=mode).select_related('merchant')
    if merchant is not None:
        queryset = queryset.filter(merchant=merchant)
    return queryset.order_by('-created_at')


def reconstruct_balance(*, user: User, merchant: Merchant, mode: str) -> AvailableCredits:
    """Rebuild a balance row's value from its event history."""
    totals = CreditEvent.objects.filter(user=user, merchant=merchant, mode=mode).aggregate(
        local=Sum('local_cents_change', default=0),
        network=Sum('network_cents_change', default=0),
    )
    return AvailableCredits(local=totals['local'], network=totals['network'])


def verify_balance(*, user: User, merchant: Merchant, mode: str) -> BalanceCheck:
    """Compare a stored balance row with the sum of its events."""
    row = (
        CreditBalance.objects
        .filter(user=user, merchant=merchant, mode=mode)
        .values_list('local_cents', 'network_cents')
        .first()
    ) or (0, 0)
    check = BalanceCheck(
        stored=AvailableCredits(local=row[0], network=row[1]),
        reconstructed=reconstruct_balance(user=user, merchant=merchant, mode=mode),
    )
    if not check.matches:
        logger.warning(
            "Balance mismatch: user=%s merchant=%s mode=%s stored=%s events=%s",
            user.id, merchant.id, mode, check.stored, check.reconstructed
        )
    return check
