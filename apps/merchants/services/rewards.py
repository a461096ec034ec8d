"""
Reward terms lookup.

Cashback and discount rates come from the deal when one applies, otherwise
from the merchant profile, otherwise from the platform default.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from django.conf import settings

from apps.merchants.models import Merchant, Deal, Grab, RewardMode

from .exceptions import DealUnavailableError


@dataclass(frozen=True)
class RewardTerms:
    cashback_pct: Decimal
    discount_pct: Decimal
    deal: Optional[Deal] = None


def ensure_deal_available(*, deal: Deal, merchant: Merchant, now: datetime) -> None:
    """
    Raises:
        DealUnavailableError: If the deal is inactive, ended, or not the merchant's
    """
    if deal.merchant_id != merchant.id:
        raise DealUnavailableError("Deal does not belong to this merchant")
    if not deal.is_active:
        raise DealUnavailableError("Deal is no longer active")
    if deal.ends_at is not None and deal.ends_at <= now:
        raise DealUnavailableError("Deal has ended")


def resolve_reward_terms(
    *,
    merchant: Merchant,
    deal: Optional[Deal] = None,
    grab: Optional[Grab] = None
) -> RewardTerms:
    """
    Work out the cashback and discount percentages for a bill.

    A grab implies its deal. A DISCOUNT-only deal never overrides cashback.
    """
    if grab is not None and deal is None:
        deal = grab.deal

    cashback = merchant.default_cashback_pct
    if cashback is None:
        cashback = Decimal(str(settings.DEFAULT_CASHBACK_PCT))
    discount = Decimal('0')

    if deal is not None:
        if deal.reward_mode in (RewardMode.CASHBACK, RewardMode.BOTH) and deal.cashback_pct:
            cashback = deal.cashback_pct
        if deal.reward_mode in (RewardMode.DISCOUNT, RewardMode.BOTH) and deal.discount_pct:
            discount = deal.discount_pct

    return RewardTerms(cashback_pct=Decimal(cashback), discount_pct=Decimal(discount), deal=deal)
