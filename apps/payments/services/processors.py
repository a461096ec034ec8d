"""
Card processor seam.

The payments core only needs to know whether a charge succeeded. Real
gateway integrations subclass CardProcessor and are selected with the
CARD_PROCESSOR setting.
"""

import logging
from dataclasses import dataclass

from django.conf import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChargeResult:
    success: bool
    reference: str = ''
    message: str = ''


class CardProcessor:
    def charge(self, *, transaction, amount_cents: int) -> ChargeResult:
        raise NotImplementedError


class MockCardProcessor(CardProcessor):
    """Approves everything up to MOCK_CARD_DECLINE_ABOVE_CENTS."""

    def __init__(self, decline_above_cents: int = None):
        if decline_above_cents is None:
            decline_above_cents = settings.MOCK_CARD_DECLINE_ABOVE_CENTS
        self.decline_above_cents = decline_above_cents

    def charge(self, *, transaction, amount_cents: int) -> ChargeResult:
        if amount_cents > self.decline_above_cents:
            logger.warning("Mock card charge declined for %s: %d cents", transaction.id, amount_cents)
            return ChargeResult(success=False, message='Card declined')
        return ChargeResult(success=True, reference=f"mock_{transaction.id.hex[:16]}")


class SimulatedCardProcessor(CardProcessor):
    """Always approves, with a deterministic reference."""

    def charge(self, *, transaction, amount_cents: int) -> ChargeResult:
        return ChargeResult(success=True, reference=f"sim_{transaction.payment_code}_{amount_cents}")
