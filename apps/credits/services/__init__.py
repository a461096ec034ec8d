"""
Credits app services layer.

Allocation policy (pure arithmetic) and the credit ledger (balances plus
the append-only event log).
"""

from .exceptions import (
    CreditsServiceError,
    NegativeAmountError,
    InvalidSelectionError,
    ExceedsBalanceError,
    ExceedsCapError,
    InsufficientBalanceError,
)

from .allocation import (
    Allocation,
    EarnedCredits,
    credit_cap,
    allocate,
    validate_selection,
    calculate_earned,
)

from .ledger import (
    AvailableCredits,
    RestoredCredits,
    BalanceCheck,
    get_available_credits,
    earn_credits,
    spend_credits,
    restore_credits,
    get_credit_history,
    reconstruct_balance,
    verify_balance,
)


__all__ = [
    # Exceptions
    'CreditsServiceError',
    'NegativeAmountError',
    'InvalidSelectionError',
    'ExceedsBalanceError',
    'ExceedsCapError',
    'InsufficientBalanceError',

    # Allocation
    'Allocation',
    'EarnedCredits',
    'credit_cap',
    'allocate',
    'validate_selection',
    'calculate_earned',

    # Ledger
    'AvailableCredits',
    'RestoredCredits',
    'BalanceCheck',
    'get_available_credits',
    'earn_credits',
    'spend_credits',
    'restore_credits',
    'get_credit_history',
    'reconstruct_balance',
    'verify_balance',
]
