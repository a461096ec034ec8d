"""
Settlements app services layer.

Periodic gross/fee/net rollup of completed transactions per merchant.
"""

from .exceptions import (
    SettlementsServiceError,
    InvalidPeriodError,
    SettlementNotFoundError,
    SettlementAlreadyPaidError,
)

from .batching import (
    SettlementRun,
    calculate_fees,
    settlement_totals,
    generate_settlements,
    mark_settlement_paid,
)


__all__ = [
    # Exceptions
    'SettlementsServiceError',
    'InvalidPeriodError',
    'SettlementNotFoundError',
    'SettlementAlreadyPaidError',

    # Batching
    'SettlementRun',
    'calculate_fees',
    'settlement_totals',
    'generate_settlements',
    'mark_settlement_paid',
]
