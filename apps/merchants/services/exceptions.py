"""
Domain-specific exceptions for merchants app.

These exceptions represent business rule violations and should be
caught in views and converted to appropriate HTTP responses.
"""


class MerchantsServiceError(Exception):
    """Base exception for all merchants service errors."""
    code = 'MERCHANT_ERROR'
    retryable = False


class MerchantNotFoundError(MerchantsServiceError):
    """Raised when a merchant does not exist or is inactive."""
    code = 'NOT_FOUND'


class MerchantAccessDeniedError(MerchantsServiceError):
    """Raised when a user lacks the required role at a merchant."""
    code = 'FORBIDDEN'


class DealUnavailableError(MerchantsServiceError):
    """Raised when a deal is inactive, ended, or belongs to another merchant."""
    code = 'DEAL_UNAVAILABLE'


class GrabNotFoundError(MerchantsServiceError):
    """Raised when no grab matches the PIN or QR token."""
    code = 'NOT_FOUND'


class GrabExpiredError(MerchantsServiceError):
    """Raised when a grab is past its expiry."""
    code = 'EXPIRED'


class GrabAlreadyUsedError(MerchantsServiceError):
    """Raised when a grab was already redeemed or expired."""
    code = 'ALREADY_CLOSED'
