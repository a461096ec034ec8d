"""
Domain-specific exceptions for payments app.

Every error carries a stable machine `code` for clients and a `retryable`
flag telling automated callers whether repeating the same request can
succeed. Views map codes to HTTP statuses; messages are for humans.
"""


class PaymentsServiceError(Exception):
    """Base exception for all payments service errors."""
    code = 'PAYMENT_ERROR'
    retryable = False


class TransactionNotFoundError(PaymentsServiceError):
    """Raised when no transaction matches the ID, code or token given."""
    code = 'NOT_FOUND'


class TransactionExpiredError(PaymentsServiceError):
    """Raised after a stale transaction has been flipped to expired."""
    code = 'EXPIRED'


class TransactionClosedError(PaymentsServiceError):
    """Raised when acting on a transaction already completed or voided."""
    code = 'ALREADY_CLOSED'


class InvalidStateError(PaymentsServiceError):
    """Raised when the requested transition is not allowed from the current state."""
    code = 'INVALID_STATE'


class InvalidCodeError(PaymentsServiceError):
    """Raised when the confirmation code does not match."""
    code = 'INVALID_CODE'


class TokenRequiredError(PaymentsServiceError):
    """Raised when several bills are open at a terminal and no lane token was given."""
    code = 'TOKEN_REQUIRED'

    def __init__(self, message, candidates=None):
        super().__init__(message)
        self.candidates = candidates or []


class FlowDisabledError(PaymentsServiceError):
    """Raised when the payment flow is not enabled for this deployment."""
    code = 'FLOW_DISABLED'


class CardDeclinedError(PaymentsServiceError):
    """Raised when the card processor refuses the charge."""
    code = 'CARD_DECLINED'


class InternalProcessingError(PaymentsServiceError):
    """Raised when the database fails mid-transition. Safe to retry."""
    code = 'INTERNAL_ERROR'
    retryable = True


class CodeExhaustedError(InternalProcessingError):
    """Raised when no free payment code or lane token could be drawn."""
