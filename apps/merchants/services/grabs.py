"""
Grab management service.

A grab reserves a deal for one customer; the merchant redeems it in store by
the customer's 6-digit PIN or by scanning its QR token.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from django.db import transaction, IntegrityError
from django.db.models import Case, When, Value

from apps.accounts.models import User
from apps.merchants.models import Deal, Grab, GrabStatus, Merchant

from .exceptions import (
    GrabNotFoundError,
    GrabExpiredError,
    GrabAlreadyUsedError,
)
from .rewards import ensure_deal_available

logger = logging.getLogger(__name__)

GRAB_LIFETIME = timedelta(hours=24)
PIN_LENGTH = 6


def grab_deal(
    *,
    user: User,
    deal: Deal,
    now: datetime,
    codes,
    max_retries: int = 5
) -> Grab:
    """
    Reserve a deal for a customer.

    Returns the customer's existing live grab for the deal if there is one.
    The grab expires after 24 hours or when the deal ends, whichever is first.

    Args:
        user: Customer grabbing the deal
        deal: Deal to grab
        now: Current time from the caller's clock
        codes: Code generator providing digits() and token()
        max_retries: Attempts at a PIN not already live at the merchant

    Raises:
        DealUnavailableError: If the deal cannot be grabbed
        RuntimeError: If no free PIN could be generated
    """
    ensure_deal_available(deal=deal, merchant=deal.merchant, now=now)

    existing = (
        Grab.objects
        .filter(user=user, deal=deal, status=GrabStatus.LOCKED, expires_at__gt=now)
        .first()
    )
    if existing is not None:
        return existing

    expires_at = now + GRAB_LIFETIME
    if deal.ends_at is not None and deal.ends_at < expires_at:
        expires_at = deal.ends_at

    for attempt in range(max_retries):
        pin = codes.digits(PIN_LENGTH)
        pin_taken = Grab.objects.filter(
            merchant_id=deal.merchant_id,
            pin=pin,
            status=GrabStatus.LOCKED,
            expires_at__gt=now,
        ).exists()
        if pin_taken:
            continue

        try:
            with transaction.atomic():
                grab = Grab.objects.create(
                    deal=deal,
                    merchant_id=deal.merchant_id,
                    user=user,
                    pin=pin,
                    qr_token=codes.token(32),
                    expires_at=expires_at,
                )
        except IntegrityError:
            # qr_token collision
            continue

        logger.info("Grab %s created for deal %s", grab.id, deal.id)
        return grab

    raise RuntimeError(f"Failed to generate a free grab PIN after {max_retries} attempts")


def validate_grab(
    *,
    now: datetime,
    pin: Optional[str] = None,
    qr_token: Optional[str] = None,
    merchant: Optional[Merchant] = None
) -> Grab:
    """
    Look up a grab presented at the counter and check it can be redeemed.

    A grab found past its expiry is flipped to EXPIRED before the error is
    raised, so the stored status never lags behind the clock.

    Raises:
        ValueError: If neither pin nor qr_token is given
        GrabNotFoundError: If nothing matches
        GrabExpiredError: If the grab has expired
        GrabAlreadyUsedError: If the grab was already redeemed
    """
    if not pin and not qr_token:
        raise ValueError("Either pin or qr_token is required")

    queryset = Grab.objects.select_related('deal', 'merchant', 'user')
    if merchant is not None:
        queryset = queryset.filter(merchant=merchant)

    if qr_token:
        grab = queryset.filter(qr_token=qr_token).first()
    else:
        # PINs are only unique among live grabs, prefer the live one
        grab = (
            queryset
            .filter(pin=pin)
            .order_by(
                Case(When(status=GrabStatus.LOCKED, then=Value(0)), default=Value(1)),
                '-created_at',
            )
            .first()
        )

    if grab is None:
        raise GrabNotFoundError("Grab not found")

    if grab.status == GrabStatus.LOCKED and grab.expires_at <= now:
        Grab.objects.filter(pk=grab.pk, status=GrabStatus.LOCKED).update(status=GrabStatus.EXPIRED)
        grab.status = GrabStatus.EXPIRED
        raise GrabExpiredError("Grab has expired")

    if grab.status == GrabStatus.EXPIRED:
        raise GrabExpiredError("Grab has expired")

    if grab.status != GrabStatus.LOCKED:
        raise GrabAlreadyUsedError(f"Grab has already been {grab.status.lower()}")

    logger.info(
        "Grab %s validated by %s for merchant %s",
        grab.id, 'QR' if qr_token else 'PIN', grab.merchant_id
    )
    return grab


def mark_grab_used(*, grab: Grab, now: datetime) -> bool:
    """Consume a live grab. Returns False if it was no longer LOCKED."""
    updated = (
        Grab.objects
        .filter(pk=grab.pk, status=GrabStatus.LOCKED)
        .update(status=GrabStatus.USED, used_at=now)
    )
    if updated:
        grab.status = GrabStatus.USED
        grab.used_at = now
    return bool(updated)
