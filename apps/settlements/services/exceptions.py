"""Domain-specific exceptions for settlements app."""


class SettlementsServiceError(Exception):
    """Base exception for all settlements service errors."""
    code = 'SETTLEMENT_ERROR'
    retryable = False


class InvalidPeriodError(SettlementsServiceError):
    """Raised when period_end is before period_start."""
    code = 'INVALID_PERIOD'


class SettlementNotFoundError(SettlementsServiceError):
    """Raised when a settlement does not exist."""
    code = 'NOT_FOUND'


class SettlementAlreadyPaidError(SettlementsServiceError):
    """Raised when marking an already paid settlement as paid."""
    code = 'ALREADY_CLOSED'
