"""
Pending transaction operations.

Each function is one short request/response unit. All row changes, ledger
events and balance deltas for a step happen inside a single atomic block on
a row locked with select_for_update. Stale transactions are expired in their
own committed block before the requested step is refused.

Every function takes an ExecutionContext (`ctx`) supplying the mode, clock,
code generator, realtime notifier and card processor. Simulated and live
runs go through exactly the same code.
"""

import hmac
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from django.core.exceptions import ValidationError
from django.db import DatabaseError, IntegrityError, transaction

from apps.accounts.models import User
from apps.credits.models import ExecutionMode
from apps.credits.money import floor_percent
from apps.credits.services import (
    EarnedCredits,
    RestoredCredits,
    calculate_earned,
    earn_credits,
    get_available_credits,
    restore_credits,
    spend_credits,
    validate_selection,
    NegativeAmountError,
    InvalidSelectionError,
)
from apps.merchants.models import Merchant, Deal, Grab
from apps.merchants.services import (
    ensure_deal_available,
    mark_grab_used,
    resolve_reward_terms,
    validate_grab,
)
from apps.payments.models import (
    PendingTransaction,
    TransactionStatus,
    PaymentFlow,
    PaymentMethod,
    NotificationType,
    OPEN_STATUSES,
)

from .codes import assign_missing_lane_tokens, generate_customer_code, generate_payment_code
from .exceptions import (
    CardDeclinedError,
    InternalProcessingError,
    InvalidCodeError,
    TokenRequiredError,
    TransactionNotFoundError,
)
from .flows import get_flow_policy
from .notifications import notify_merchant
from .state_machine import (
    ensure_status,
    expire,
    expire_if_stale,
    is_stale,
    save_changes,
    snapshot,
    transition,
)

logger = logging.getLogger(__name__)

S = TransactionStatus


@dataclass(frozen=True)
class LaneCandidate:
    token: str
    amount_cents: int
    expires_at: datetime


@dataclass(frozen=True)
class TerminalMatch:
    auto_match: bool
    transaction: Optional[PendingTransaction] = None
    candidates: List[LaneCandidate] = field(default_factory=list)

    @property
    def needs_token(self) -> bool:
        return not self.auto_match


@dataclass(frozen=True)
class CreditSelection:
    transaction: PendingTransaction
    live_net_amount: int
    customer_code: str
    local_available: int
    network_available: int


@dataclass(frozen=True)
class CompletionResult:
    transaction: PendingTransaction
    credits_earned: EarnedCredits
    completed_at: datetime
    already_processed: bool = False


@dataclass(frozen=True)
class ConfirmationResult:
    transaction: PendingTransaction
    net_payable: int
    completion: Optional[CompletionResult] = None


@dataclass(frozen=True)
class VoidResult:
    transaction: PendingTransaction
    voided_at: datetime
    credits_restored: RestoredCredits


# =============================================================================
# Lookups
# =============================================================================

def _open_at_terminal(*, terminal_id: str, ctx, lock: bool = False):
    queryset = PendingTransaction.objects.filter(
        terminal_id=terminal_id,
        mode=ctx.mode,
        status__in=OPEN_STATUSES,
    )
    if lock:
        queryset = queryset.select_for_update()
    return list(queryset.order_by('created_at'))


def _expire_stale(transactions, *, ctx, now: datetime) -> list:
    """Expire the stale ones among locked open transactions; return the rest."""
    fresh = []
    for txn in transactions:
        if is_stale(txn, now):
            expire(txn, ctx=ctx, now=now)
        else:
            fresh.append(txn)
    return fresh


def _find_by_payment_code(*, payment_code: str, ctx, merchant: Optional[Merchant]) -> PendingTransaction:
    """
    Most recent transaction with this payment code.

    Raises:
        TransactionNotFoundError: If no transaction has the code
    """
    queryset = PendingTransaction.objects.filter(payment_code=payment_code, mode=ctx.mode)
    if merchant is not None:
        queryset = queryset.filter(merchant=merchant)
    txn = queryset.order_by('-created_at').first()
    if txn is None:
        raise TransactionNotFoundError("No transaction with this payment code")
    return txn


def _lock(transaction_id, *, ctx) -> PendingTransaction:
    try:
        return (
            PendingTransaction.objects
            .select_for_update()
            .select_related('merchant', 'user')
            .get(pk=transaction_id, mode=ctx.mode)
        )
    except (PendingTransaction.DoesNotExist, ValidationError, ValueError):
        raise TransactionNotFoundError("Transaction not found")


def get_transaction(*, transaction_id: UUID, ctx) -> PendingTransaction:
    """
    Read a transaction, expiring it first if it is stale.

    Raises:
        TransactionNotFoundError: If it does not exist in this mode
    """
    now = ctx.clock.now()
    with transaction.atomic():
        txn = _lock(transaction_id, ctx=ctx)
        if is_stale(txn, now):
            expire(txn, ctx=ctx, now=now)
    return txn


def get_transaction_status(
    *,
    payment_code: str,
    ctx,
    merchant: Optional[Merchant] = None
) -> PendingTransaction:
    """
    Read a transaction by payment code, expiring it first if it is stale.

    Raises:
        TransactionNotFoundError: If no transaction has the code
    """
    txn = _find_by_payment_code(payment_code=payment_code, ctx=ctx, merchant=merchant)
    return get_transaction(transaction_id=txn.id, ctx=ctx)


# =============================================================================
# Create & match
# =============================================================================

def create_pending_transaction(
    *,
    merchant: Merchant,
    amount_cents: int,
    ctx,
    flow: str,
    terminal_id: Optional[str] = None,
    user: Optional[User] = None,
    deal: Optional[Deal] = None,
    grab: Optional[Grab] = None,
    payment_method: str = PaymentMethod.CASH,
    max_retries: int = 3
) -> PendingTransaction:
    """
    Open a new pending transaction for a bill.

    The deal discount (if any) is applied immediately; credit comes later
    from the customer's selection. When this is not the only open bill at
    the terminal, every open bill there gets a lane token, including ones
    created before the terminal became busy.

    Args:
        merchant: Merchant being paid
        amount_cents: Bill before discount and credit
        ctx: Execution context
        flow: PaymentFlow value; must be enabled for this deployment
        terminal_id: Terminal the bill is shown on (required for token_queue)
        user: Customer, when already known
        deal: Deal applying to the bill
        grab: Customer's grab being redeemed; implies deal and user
        payment_method: PaymentMethod value
        max_retries: Attempts if a concurrent create takes the same code

    Returns:
        PendingTransaction: The new transaction, awaiting customer

    Raises:
        FlowDisabledError: If the flow is not enabled
        NegativeAmountError: If the amount is negative
        ValueError: If token_queue is used without a terminal
        DealUnavailableError, GrabNotFoundError, GrabExpiredError,
        GrabAlreadyUsedError: If the deal or grab cannot be used
        CodeExhaustedError: If no free payment code or lane token was found
    """
    policy = get_flow_policy(flow)
    if amount_cents < 0:
        raise NegativeAmountError("Bill amount must not be negative")
    if flow == PaymentFlow.TOKEN_QUEUE and not terminal_id:
        raise ValueError("token_queue transactions need a terminal_id")

    now = ctx.clock.now()

    if grab is not None:
        grab = validate_grab(now=now, qr_token=grab.qr_token, merchant=merchant)
        deal = grab.deal
        user = user or grab.user
    if deal is not None:
        ensure_deal_available(deal=deal, merchant=merchant, now=now)

    terms = resolve_reward_terms(merchant=merchant, deal=deal, grab=grab)
    discount = floor_percent(amount_cents, terms.discount_pct)
    payable = amount_cents - discount

    for attempt in range(max_retries):
        try:
            with transaction.atomic():
                others = []
                if terminal_id:
                    others = _expire_stale(
                        _open_at_terminal(terminal_id=terminal_id, ctx=ctx, lock=True),
                        ctx=ctx, now=now,
                    )

                txn = PendingTransaction(
                    merchant=merchant,
                    terminal_id=terminal_id,
                    user=user,
                    deal=deal,
                    grab=grab,
                    mode=ctx.mode,
                    flow=flow,
                    payment_method=payment_method,
                    original_amount=amount_cents,
                    discount_applied=discount,
                    final_amount=payable,
                    live_net_amount=payable,
                    cashback_pct=terms.cashback_pct,
                    credit_cap=policy.credit_cap,
                    payment_code=generate_payment_code(merchant=merchant, now=now, codes=ctx.codes),
                    created_at=now,
                    expires_at=now + policy.ttl,
                )

                if others:
                    for other in assign_missing_lane_tokens(others, codes=ctx.codes):
                        save_changes(other, ctx=ctx, fields=['lane_token'])
                    assign_missing_lane_tokens([*others, txn], codes=ctx.codes)

                txn.save()
                ctx.notifier.publish_on_commit(snapshot(txn))
        except IntegrityError:
            logger.warning("Code collision creating transaction at %s, retrying", merchant.id)
            continue

        logger.info(
            "Transaction %s created: merchant=%s flow=%s amount=%d terminal=%s lane=%s mode=%s",
            txn.id, merchant.id, flow, amount_cents, terminal_id, txn.lane_token, ctx.mode
        )
        return txn

    raise InternalProcessingError("Could not allocate unique codes for the transaction")


def find_pending_for_terminal(*, merchant: Merchant, terminal_id: str, ctx) -> TerminalMatch:
    """
    What a customer sees when looking up a terminal.

    Authorized bills are already bound and paid for, so they are left out.
    One open bill auto-matches. Several open bills return their lane tokens
    and amounts so the customer can pick theirs.

    Raises:
        TransactionNotFoundError: If nothing is open at the terminal
    """
    now = ctx.clock.now()
    with transaction.atomic():
        open_txns = [
            t for t in _expire_stale(
                _open_at_terminal(terminal_id=terminal_id, ctx=ctx, lock=True),
                ctx=ctx, now=now,
            )
            if t.merchant_id == merchant.id and t.status != S.AUTHORIZED
        ]

    if not open_txns:
        raise TransactionNotFoundError("No open transaction at this terminal")
    if len(open_txns) == 1:
        return TerminalMatch(auto_match=True, transaction=open_txns[0])

    return TerminalMatch(
        auto_match=False,
        candidates=[
            LaneCandidate(token=t.lane_token, amount_cents=t.final_amount, expires_at=t.expires_at)
            for t in open_txns
        ],
    )


def claim_with_token(
    *,
    terminal_id: str,
    user: User,
    ctx,
    token: Optional[str] = None
) -> PendingTransaction:
    """
    Bind the customer to one open bill at a terminal.

    Without a token this only works when exactly one bill is open.

    Raises:
        TransactionNotFoundError: If nothing matches, or the bill is
            already bound to another customer
        TokenRequiredError: If several bills are open and no token was given
    """
    now = ctx.clock.now()
    with transaction.atomic():
        open_txns = _expire_stale(
            _open_at_terminal(terminal_id=terminal_id, ctx=ctx, lock=True),
            ctx=ctx, now=now,
        )
        claimable = [t for t in open_txns if t.status != S.AUTHORIZED]

        if token:
            matches = [t for t in claimable if t.lane_token == token.strip().upper()]
        elif len(claimable) > 1:
            raise TokenRequiredError(
                "Several bills are open at this terminal; a lane token is required",
                candidates=[
                    LaneCandidate(token=t.lane_token, amount_cents=t.final_amount, expires_at=t.expires_at)
                    for t in claimable
                ],
            )
        else:
            matches = claimable

        if not matches:
            logger.warning("Claim at terminal %s found no bill for token %r", terminal_id, token)
            raise TransactionNotFoundError("No open transaction matches this token")

        txn = matches[0]
        if txn.user_id is not None and txn.user_id != user.id:
            raise TransactionNotFoundError("No open transaction matches this token")

        if txn.user_id is None or txn.claimed_at is None:
            txn.user = user
            txn.claimed_at = now
            save_changes(txn, ctx=ctx, fields=['user', 'claimed_at'])
            logger.info("Transaction %s claimed by user %s", txn.id, user.id)

    return txn


# =============================================================================
# Credit selection & confirmation
# =============================================================================

def select_credits(
    *,
    transaction_id: UUID,
    user: User,
    local_cents: int,
    network_cents: int,
    ctx
) -> CreditSelection:
    """
    Record the customer's live credit choice and issue a customer code.

    No credit moves here. The selection is checked against current balances
    and the flow's cap, the live net amount is recomputed, and the change is
    published so the merchant terminal sees it. Each call issues a fresh
    customer code, so only the latest selection can be confirmed.

    Raises:
        TransactionNotFoundError: If the transaction does not exist or
            belongs to another customer
        TransactionExpiredError: If it expired
        ExceedsBalanceError, ExceedsCapError: If the selection is too large
        NegativeAmountError: If either amount is negative
    """
    now = ctx.clock.now()
    expire_if_stale(transaction_id, ctx=ctx, now=now)

    with transaction.atomic():
        txn = _lock(transaction_id, ctx=ctx)
        ensure_status(txn, S.AWAITING_CUSTOMER, S.AWAITING_MERCHANT_CONFIRM)
        if txn.user_id is not None and txn.user_id != user.id:
            raise TransactionNotFoundError("Transaction not found")

        available = get_available_credits(user=user, merchant=txn.merchant, mode=ctx.mode)
        try:
            allocation = validate_selection(
                txn.payable_before_credits,
                local_cents,
                network_cents,
                available.local,
                available.network,
                txn.credit_cap,
            )
        except InvalidSelectionError as e:
            logger.warning("Credit selection rejected for transaction %s: %s", txn.id, e)
            raise

        transition(
            txn,
            S.AWAITING_MERCHANT_CONFIRM,
            ctx=ctx,
            user=user,
            customer_selected_local_credits=allocation.local_used,
            customer_selected_network_credits=allocation.network_used,
            live_net_amount=allocation.remainder,
            customer_code=generate_customer_code(codes=ctx.codes),
            customer_credit_selection_at=now,
        )

    return CreditSelection(
        transaction=txn,
        live_net_amount=txn.live_net_amount,
        customer_code=txn.customer_code,
        local_available=available.local,
        network_available=available.network,
    )


def _commit_selection(txn: PendingTransaction, *, ctx, now: datetime) -> None:
    """Debit the selected credit and move the locked transaction to authorized."""
    spend_credits(
        user=txn.user,
        merchant=txn.merchant,
        mode=ctx.mode,
        local_cents=txn.customer_selected_local_credits,
        network_cents=txn.customer_selected_network_credits,
        description=f"Payment {txn.payment_code}",
        transaction_ref=txn.id,
    )
    used = txn.customer_selected_local_credits + txn.customer_selected_network_credits
    transition(
        txn,
        S.AUTHORIZED,
        ctx=ctx,
        local_credits_used=txn.customer_selected_local_credits,
        network_credits_used=txn.customer_selected_network_credits,
        final_amount=txn.payable_before_credits - used,
        authorized_at=now,
    )
    notify_merchant(
        merchant=txn.merchant,
        notification_type=NotificationType.PAYMENT_AUTHORIZED,
        payload={'transaction_id': str(txn.id), 'payment_code': txn.payment_code,
                 'net_payable': txn.final_amount, 'mode': txn.mode},
    )


def confirm_transaction(*, transaction_id: UUID, code: str, ctx) -> ConfirmationResult:
    """
    Merchant confirms the customer's code; the selected credit is debited.

    A wrong code changes nothing. For flows that capture on confirm the
    transaction also completes in the same atomic unit.

    Returns:
        ConfirmationResult: net_payable is what the customer still owes

    Raises:
        TransactionNotFoundError: If the transaction does not exist
        TransactionExpiredError: If it expired
        InvalidStateError: If no credit selection has been made yet
        InvalidCodeError: If the code does not match
        InsufficientBalanceError: If the credit is no longer there
        CardDeclinedError: If capture on confirm was declined
        InternalProcessingError: On database failure; safe to retry
    """
    now = ctx.clock.now()
    expire_if_stale(transaction_id, ctx=ctx, now=now)

    try:
        with transaction.atomic():
            txn = _lock(transaction_id, ctx=ctx)
            ensure_status(txn, S.AWAITING_MERCHANT_CONFIRM)

            if not txn.customer_code or not hmac.compare_digest(txn.customer_code, str(code).strip()):
                logger.warning("Invalid confirmation code for transaction %s", txn.id)
                raise InvalidCodeError("Confirmation code does not match")

            _commit_selection(txn, ctx=ctx, now=now)

            completion = None
            if get_flow_policy(txn.flow).capture_on_confirm:
                completion = _capture(txn, ctx=ctx, now=now)
    except DatabaseError as e:
        logger.exception("Database error confirming transaction %s", transaction_id)
        raise InternalProcessingError("Confirmation failed, please retry") from e

    return ConfirmationResult(transaction=txn, net_payable=txn.final_amount, completion=completion)


# =============================================================================
# Completion & void
# =============================================================================

def _stored_completion(txn: PendingTransaction) -> CompletionResult:
    return CompletionResult(
        transaction=txn,
        credits_earned=EarnedCredits(
            local=txn.credits_earned_local,
            network=txn.credits_earned_network,
            total=txn.credits_earned_local + txn.credits_earned_network,
        ),
        completed_at=txn.captured_at,
        already_processed=True,
    )


def _capture(txn: PendingTransaction, *, ctx, now: datetime) -> CompletionResult:
    """Charge the remainder if needed, issue cashback, and complete the locked transaction."""
    if txn.payment_method == PaymentMethod.CARD and txn.final_amount > 0:
        result = ctx.card_processor.charge(transaction=txn, amount_cents=txn.final_amount)
        if not result.success:
            logger.warning("Card declined for transaction %s: %s", txn.id, result.message)
            raise CardDeclinedError(result.message or "Card declined")
        txn.processor_reference = result.reference

    earned = EarnedCredits(local=0, network=0, total=0)
    if txn.user_id is not None:
        earned = calculate_earned(txn.final_amount, txn.cashback_pct)
        earn_credits(
            user=txn.user,
            merchant=txn.merchant,
            mode=ctx.mode,
            local_cents=earned.local,
            network_cents=earned.network,
            description=f"Cashback on payment {txn.payment_code}",
            transaction_ref=txn.id,
            grab_ref=txn.grab_id,
        )
        if ctx.mode == ExecutionMode.LIVE:
            txn.user.record_redemption(
                savings_cents=txn.discount_applied + txn.credits_used,
                earned_cents=earned.total,
            )

    if txn.grab_id is not None:
        mark_grab_used(grab=txn.grab, now=now)

    transition(
        txn,
        S.COMPLETED,
        ctx=ctx,
        captured_at=now,
        credits_earned_local=earned.local,
        credits_earned_network=earned.network,
        processor_reference=txn.processor_reference,
    )
    notify_merchant(
        merchant=txn.merchant,
        notification_type=NotificationType.PAYMENT_CONFIRMED,
        payload={'transaction_id': str(txn.id), 'payment_code': txn.payment_code,
                 'final_amount': txn.final_amount, 'mode': txn.mode},
    )
    return CompletionResult(transaction=txn, credits_earned=earned, completed_at=now)


def complete_transaction(
    *,
    payment_code: str,
    ctx,
    merchant: Optional[Merchant] = None
) -> CompletionResult:
    """
    Capture a transaction by payment code.

    Only authorized transactions can be captured: the customer code must
    have been confirmed first. Idempotent: completing an already completed
    transaction returns the stored result with already_processed=True and
    touches nothing.

    Raises:
        TransactionNotFoundError: If no transaction has the code
        TransactionExpiredError: If it expired
        TransactionClosedError: If it was voided
        InvalidStateError: If the customer code has not been confirmed
        CardDeclinedError: If the card charge failed; the transaction stays open
        InternalProcessingError: On database failure; safe to retry
    """
    txn = _find_by_payment_code(payment_code=payment_code, ctx=ctx, merchant=merchant)
    if txn.status == S.COMPLETED:
        logger.info("Transaction %s already completed", txn.id)
        return _stored_completion(txn)

    now = ctx.clock.now()
    expire_if_stale(txn.id, ctx=ctx, now=now)

    try:
        with transaction.atomic():
            txn = _lock(txn.id, ctx=ctx)
            if txn.status == S.COMPLETED:
                return _stored_completion(txn)
            ensure_status(txn, S.AUTHORIZED)
            return _capture(txn, ctx=ctx, now=now)
    except DatabaseError as e:
        logger.exception("Database error completing transaction %s", txn.id)
        raise InternalProcessingError("Completion failed, please retry") from e


def void_transaction(
    *,
    payment_code: str,
    ctx,
    reason: str = '',
    merchant: Optional[Merchant] = None
) -> VoidResult:
    """
    Cancel an open transaction.

    If credit was already debited (authorized), it is restored with
    CREDIT_RESTORED events before the transaction is marked voided.

    Raises:
        TransactionNotFoundError: If no transaction has the code
        TransactionExpiredError: If it expired
        TransactionClosedError: If it was completed or voided
        InternalProcessingError: On database failure; safe to retry
    """
    txn = _find_by_payment_code(payment_code=payment_code, ctx=ctx, merchant=merchant)
    now = ctx.clock.now()
    expire_if_stale(txn.id, ctx=ctx, now=now)

    try:
        with transaction.atomic():
            txn = _lock(txn.id, ctx=ctx)
            ensure_status(txn, *OPEN_STATUSES)

            restored = RestoredCredits(local=0, network=0)
            if txn.status == S.AUTHORIZED:
                restored = restore_credits(
                    transaction_ref=txn.id,
                    description=f"Payment {txn.payment_code} voided",
                )

            transition(txn, S.VOIDED, ctx=ctx, voided_at=now, void_reason=reason[:255])
            notify_merchant(
                merchant=txn.merchant,
                notification_type=NotificationType.TRANSACTION_VOIDED,
                payload={'transaction_id': str(txn.id), 'payment_code': txn.payment_code,
                         'reason': txn.void_reason, 'credits_restored': restored.total,
                         'mode': txn.mode},
            )
    except DatabaseError as e:
        logger.exception("Database error voiding transaction %s", txn.id)
        raise InternalProcessingError("Void failed, please retry") from e

    return VoidResult(transaction=txn, voided_at=now, credits_restored=restored)


def expire_stale_transactions(*, ctx) -> int:
    """Expire every open transaction past its TTL. Returns how many were expired."""
    now = ctx.clock.now()
    stale_ids = list(
        PendingTransaction.objects
        .filter(mode=ctx.mode, status__in=OPEN_STATUSES, expires_at__lt=now)
        .values_list('id', flat=True)
    )

    expired = 0
    for transaction_id in stale_ids:
        with transaction.atomic():
            txn = _lock(transaction_id, ctx=ctx)
            if is_stale(txn, now):
                expire(txn, ctx=ctx, now=now)
                expired += 1

    if expired:
        logger.info("Expired %d stale %s transaction(s)", expired, ctx.mode)
    return expired
