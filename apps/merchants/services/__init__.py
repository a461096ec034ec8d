"""
Merchants app services layer.

Merchant profiles, staff authorization, reward terms and deal grabs.
"""

from .exceptions import (
    MerchantsServiceError,
    MerchantNotFoundError,
    MerchantAccessDeniedError,
    DealUnavailableError,
    GrabNotFoundError,
    GrabExpiredError,
    GrabAlreadyUsedError,
)

from .access import (
    get_merchant,
    get_staff_role,
    has_merchant_access,
    require_merchant_access,
)

from .rewards import (
    RewardTerms,
    ensure_deal_available,
    resolve_reward_terms,
)

from .grabs import (
    grab_deal,
    validate_grab,
    mark_grab_used,
)


__all__ = [
    # Exceptions
    'MerchantsServiceError',
    'MerchantNotFoundError',
    'MerchantAccessDeniedError',
    'DealUnavailableError',
    'GrabNotFoundError',
    'GrabExpiredError',
    'GrabAlreadyUsedError',

    # Access
    'get_merchant',
    'get_staff_role',
    'has_merchant_access',
    'require_merchant_access',

    # Rewards
    'RewardTerms',
    'ensure_deal_available',
    'resolve_reward_terms',

    # Grabs
    'grab_deal',
    'validate_grab',
    'mark_grab_used',
]
