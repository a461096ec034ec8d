"""
Pending transaction state machine.

    awaiting_customer         -> awaiting_merchant_confirm | voided | expired
    awaiting_merchant_confirm -> awaiting_merchant_confirm | authorized | completed | voided | expired
    authorized                -> completed | voided | expired

completed, voided and expired are terminal. Every status change goes through
transition(), which bumps the row version and publishes a snapshot once the
surrounding database transaction commits.
"""

import logging
from datetime import datetime

from django.db import transaction

from apps.payments.models import PendingTransaction, TransactionStatus, TERMINAL_STATUSES
from apps.credits.services import restore_credits

from .exceptions import (
    InvalidStateError,
    TransactionClosedError,
    TransactionExpiredError,
    TransactionNotFoundError,
)

logger = logging.getLogger(__name__)

S = TransactionStatus

ALLOWED_TRANSITIONS = {
    S.AWAITING_CUSTOMER: {S.AWAITING_MERCHANT_CONFIRM, S.VOIDED, S.EXPIRED},
    S.AWAITING_MERCHANT_CONFIRM: {
        S.AWAITING_MERCHANT_CONFIRM, S.AUTHORIZED, S.COMPLETED, S.VOIDED, S.EXPIRED
    },
    S.AUTHORIZED: {S.COMPLETED, S.VOIDED, S.EXPIRED},
    S.COMPLETED: set(),
    S.VOIDED: set(),
    S.EXPIRED: set(),
}


def can_transition(from_status: str, to_status: str) -> bool:
    return to_status in ALLOWED_TRANSITIONS.get(from_status, set())


def snapshot(txn: PendingTransaction) -> dict:
    """
    Full public state of a transaction for realtime subscribers.

    Confirmation codes are left out; they are relayed between people.
    """
    return {
        'id': str(txn.id),
        'version': txn.version,
        'status': txn.status,
        'mode': txn.mode,
        'flow': txn.flow,
        'merchant_id': str(txn.merchant_id),
        'terminal_id': txn.terminal_id,
        'lane_token': txn.lane_token,
        'user_id': str(txn.user_id) if txn.user_id else None,
        'original_amount': txn.original_amount,
        'discount_applied': txn.discount_applied,
        'final_amount': txn.final_amount,
        'live_net_amount': txn.live_net_amount,
        'customer_selected_local_credits': txn.customer_selected_local_credits,
        'customer_selected_network_credits': txn.customer_selected_network_credits,
        'local_credits_used': txn.local_credits_used,
        'network_credits_used': txn.network_credits_used,
        'expires_at': txn.expires_at.isoformat(),
        'captured_at': txn.captured_at.isoformat() if txn.captured_at else None,
        'voided_at': txn.voided_at.isoformat() if txn.voided_at else None,
    }


def save_changes(txn: PendingTransaction, *, ctx, fields) -> None:
    """Persist changed fields, bump the version, and publish after commit."""
    txn.version += 1
    txn.save(update_fields=list(fields) + ['version'])
    ctx.notifier.publish_on_commit(snapshot(txn))


def transition(txn: PendingTransaction, to_status: str, *, ctx, **changes) -> PendingTransaction:
    """
    Move a locked transaction to a new status, applying field changes with it.

    Raises:
        InvalidStateError: If the transition is not allowed
    """
    from_status = txn.status
    if not can_transition(from_status, to_status):
        logger.warning(
            "Rejected transition for transaction %s: %s -> %s",
            txn.id, from_status, to_status
        )
        raise InvalidStateError(f"Cannot move transaction from {from_status} to {to_status}")

    for name, value in changes.items():
        setattr(txn, name, value)
    txn.status = to_status
    save_changes(txn, ctx=ctx, fields=['status', *changes])

    logger.info("Transaction %s: %s -> %s", txn.id, from_status, to_status)
    return txn


def ensure_status(txn: PendingTransaction, *allowed: str) -> None:
    """
    Raise the error matching why a transaction cannot be acted on.

    Raises:
        TransactionExpiredError: If it has expired
        TransactionClosedError: If it was completed or voided
        InvalidStateError: If it is open but in the wrong state
    """
    if txn.status in allowed:
        return
    if txn.status == S.EXPIRED:
        raise TransactionExpiredError("Transaction has expired")
    if txn.status in TERMINAL_STATUSES:
        raise TransactionClosedError(f"Transaction is already {txn.status}")
    raise InvalidStateError(f"Transaction is {txn.status}")


def is_stale(txn: PendingTransaction, now: datetime) -> bool:
    return txn.is_open and now > txn.expires_at


def expire(txn: PendingTransaction, *, ctx, now: datetime) -> PendingTransaction:
    """
    Expire a locked, stale transaction.

    An authorized transaction has already had its credit debited, so the
    debit is reversed before the row is marked expired.
    """
    if txn.status == S.AUTHORIZED:
        restore_credits(transaction_ref=txn.id, description='Transaction expired')
    return transition(txn, S.EXPIRED, ctx=ctx, expired_at=now)


def expire_if_stale(transaction_id, *, ctx, now: datetime) -> None:
    """
    Commit the expiry of a stale transaction, then refuse to go on.

    Runs in its own atomic block so the expired status survives the
    exception raised for the caller.

    Raises:
        TransactionNotFoundError: If the transaction does not exist
        TransactionExpiredError: If it was stale
    """
    with transaction.atomic():
        try:
            txn = PendingTransaction.objects.select_for_update().get(pk=transaction_id, mode=ctx.mode)
        except PendingTransaction.DoesNotExist:
            raise TransactionNotFoundError("Transaction not found")
        if not is_stale(txn, now):
            return
        expire(txn, ctx=ctx, now=now)

    raise TransactionExpiredError("Transaction has expired")
