"""
Domain-specific exceptions for credits app.

Each error carries a stable machine `code` that views pass through to
clients unchanged.
"""


class CreditsServiceError(Exception):
    """Base exception for all credits service errors."""
    code = 'CREDITS_ERROR'
    retryable = False


class NegativeAmountError(CreditsServiceError):
    """Raised when a bill, balance or credit amount is negative."""
    code = 'NEGATIVE_AMOUNT'


class InvalidSelectionError(CreditsServiceError):
    """Raised when a live credit selection cannot be honoured as requested."""
    code = 'INVALID_SELECTION'


class ExceedsBalanceError(InvalidSelectionError):
    """Raised when the selection is more than the customer holds."""
    code = 'EXCEEDS_BALANCE'


class ExceedsCapError(InvalidSelectionError):
    """Raised when the selection is more than the flow's credit cap allows."""
    code = 'EXCEEDS_CAP'


class InsufficientBalanceError(CreditsServiceError):
    """Raised by the ledger when a debit finds less credit than it needs."""
    code = 'INSUFFICIENT_BALANCE'
