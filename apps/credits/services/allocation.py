"""
Credit allocation policy.

Pure functions, no database access. Two modes exist on the spend side:

* allocate() recomputes the best application of credit to a bill: local
  first, then network, never above the cap.
* validate_selection() checks a customer's explicit choice and rejects it
  outright if it is above either balance or above the cap. It never trims
  a selection to fit.

calculate_earned() is the earn side, splitting cashback into local and
network credit without losing or inventing a cent.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Union

from django.conf import settings

from apps.credits.money import floor_fraction, floor_percent

from .exceptions import NegativeAmountError, ExceedsBalanceError, ExceedsCapError

Fraction = Union[Decimal, str]


@dataclass(frozen=True)
class Allocation:
    local_used: int
    network_used: int
    remainder: int

    @property
    def credits_used(self) -> int:
        return self.local_used + self.network_used


@dataclass(frozen=True)
class EarnedCredits:
    local: int
    network: int
    total: int


def _require_non_negative(**amounts) -> None:
    for name, value in amounts.items():
        if value < 0:
            raise NegativeAmountError(f"{name} must not be negative (got {value})")


def credit_cap(bill_cents: int, cap_fraction: Optional[Fraction] = None) -> int:
    """
    Maximum credit spendable on a bill.

    Args:
        bill_cents: Bill amount
        cap_fraction: Fraction of the bill in (0, 1], or None for no cap

    Raises:
        NegativeAmountError: If the bill is negative
        ValueError: If cap_fraction is outside (0, 1]
    """
    _require_non_negative(bill_cents=bill_cents)
    if cap_fraction is None:
        return bill_cents

    fraction = Decimal(str(cap_fraction))
    if not (Decimal('0') < fraction <= Decimal('1')):
        raise ValueError(f"Credit cap must be in (0, 1], got {cap_fraction}")
    return floor_fraction(bill_cents, fraction)


def allocate(
    bill_cents: int,
    local_available: int,
    network_available: int,
    cap_fraction: Optional[Fraction] = None
) -> Allocation:
    """
    Apply as much credit as allowed to a bill, local credit first.

    Raises:
        NegativeAmountError: If any input is negative
    """
    _require_non_negative(
        bill_cents=bill_cents,
        local_available=local_available,
        network_available=network_available,
    )
    cap = credit_cap(bill_cents, cap_fraction)

    local_used = min(local_available, cap)
    network_used = min(network_available, cap - local_used)

    return Allocation(
        local_used=local_used,
        network_used=network_used,
        remainder=bill_cents - local_used - network_used,
    )


def validate_selection(
    bill_cents: int,
    local_requested: int,
    network_requested: int,
    local_available: int,
    network_available: int,
    cap_fraction: Optional[Fraction] = None
) -> Allocation:
    """
    Check a customer's explicit credit selection against balances and cap.

    Returns the allocation exactly as requested.

    Raises:
        NegativeAmountError: If any input is negative
        ExceedsBalanceError: If either part is more than the customer holds
        ExceedsCapError: If the total is above the cap
    """
    _require_non_negative(
        bill_cents=bill_cents,
        local_requested=local_requested,
        network_requested=network_requested,
        local_available=local_available,
        network_available=network_available,
    )

    if local_requested > local_available:
        raise ExceedsBalanceError(
            f"Requested {local_requested} local credit but only {local_available} available"
        )
    if network_requested > network_available:
        raise ExceedsBalanceError(
            f"Requested {network_requested} network credit but only {network_available} available"
        )

    cap = credit_cap(bill_cents, cap_fraction)
    if local_requested + network_requested > cap:
        raise ExceedsCapError(
            f"Requested {local_requested + network_requested} credit but the cap is {cap}"
        )

    return Allocation(
        local_used=local_requested,
        network_used=network_requested,
        remainder=bill_cents - local_requested - network_requested,
    )


def calculate_earned(
    final_cents: int,
    cashback_pct: Union[Decimal, int, str],
    local_share_pct: Optional[int] = None
) -> EarnedCredits:
    """
    Cashback earned on a completed bill.

    total = floor(final * pct / 100); local = floor(total * share / 100);
    network takes whatever is left so the two halves always sum to total.

    Raises:
        NegativeAmountError: If the amount or percentage is negative
    """
    if local_share_pct is None:
        local_share_pct = settings.LOCAL_CREDIT_SHARE_PCT
    pct = Decimal(str(cashback_pct))
    _require_non_negative(final_cents=final_cents, cashback_pct=pct)

    total = floor_percent(final_cents, pct)
    local = floor_percent(total, local_share_pct)
    return EarnedCredits(local=local, network=total - local, total=total)
