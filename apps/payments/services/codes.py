"""Payment codes, customer codes and lane tokens."""

from datetime import datetime, timedelta
from typing import Iterable, Set

from django.conf import settings
from django.db.models import Q

from apps.merchants.models import Merchant
from apps.payments.models import PendingTransaction, OPEN_STATUSES

from .exceptions import CodeExhaustedError

# No 0/O or 1/I, so tokens survive being read aloud
LANE_TOKEN_ALPHABET = 'ABCDEFGHJKLMNPQRSTUVWXYZ23456789'


def generate_payment_code(
    *,
    merchant: Merchant,
    now: datetime,
    codes,
    max_retries: int = 10
) -> str:
    """
    Numeric payment code not open, nor recently used, at this merchant.

    Raises:
        CodeExhaustedError: If no free code was found
    """
    since = now - timedelta(hours=settings.PAYMENT_CODE_REUSE_HOURS)
    for attempt in range(max_retries):
        code = codes.digits(settings.PAYMENT_CODE_LENGTH)
        in_use = PendingTransaction.objects.filter(
            Q(status__in=OPEN_STATUSES) | Q(created_at__gte=since),
            merchant=merchant,
            payment_code=code,
        ).exists()
        if not in_use:
            return code

    raise CodeExhaustedError(f"Failed to generate a unique payment code after {max_retries} attempts")


def generate_customer_code(*, codes) -> str:
    return codes.digits(settings.PAYMENT_CODE_LENGTH)


def generate_lane_token(*, taken: Set[str], codes, max_retries: int = 20) -> str:
    """
    Raises:
        CodeExhaustedError: If no token distinct from `taken` was found
    """
    for attempt in range(max_retries):
        token = codes.choice(settings.LANE_TOKEN_LENGTH, LANE_TOKEN_ALPHABET)
        if token not in taken:
            return token

    raise CodeExhaustedError(f"Failed to generate a free lane token after {max_retries} attempts")


def assign_missing_lane_tokens(transactions: Iterable[PendingTransaction], *, codes) -> list:
    """Give every transaction without a lane token a distinct one. Returns those changed."""
    transactions = list(transactions)
    taken = {t.lane_token for t in transactions if t.lane_token}
    changed = []
    for txn in transactions:
        if txn.lane_token:
            continue
        txn.lane_token = generate_lane_token(taken=taken, codes=codes)
        taken.add(txn.lane_token)
        changed.append(txn)
    return changed
