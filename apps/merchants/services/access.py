"""
Merchant staff authorization.

Everything outside this module treats access as an opaque yes/no question:
is this user allowed to act for merchant X with at least role Y.
"""

from typing import Optional
from uuid import UUID

from django.core.exceptions import ValidationError

from apps.accounts.models import User
from apps.merchants.models import Merchant, MerchantStaff, StaffRole, ROLE_RANK

from .exceptions import MerchantNotFoundError, MerchantAccessDeniedError


def get_merchant(*, merchant_id: UUID, active_only: bool = True) -> Merchant:
    """
    Get a merchant by ID.

    Raises:
        MerchantNotFoundError: If merchant doesn't exist (or is inactive
            when active_only is set)
    """
    queryset = Merchant.objects.all()
    if active_only:
        queryset = queryset.filter(is_active=True)
    try:
        return queryset.get(id=merchant_id)
    except (Merchant.DoesNotExist, ValidationError, ValueError):
        raise MerchantNotFoundError(f"Merchant with ID {merchant_id} not found")


def get_staff_role(*, user: Optional[User], merchant: Merchant) -> Optional[str]:
    """Return the user's role at the merchant, or None."""
    if user is None or not user.is_authenticated:
        return None
    if merchant.owner_id is not None and merchant.owner_id == user.id:
        return StaffRole.OWNER
    return (
        MerchantStaff.objects
        .filter(merchant=merchant, user=user)
        .values_list('role', flat=True)
        .first()
    )


def has_merchant_access(
    *,
    user: Optional[User],
    merchant: Merchant,
    role: str = StaffRole.CASHIER
) -> bool:
    """
    Check whether a user may act for a merchant with at least the given role.

    Superusers are always allowed. The merchant's owner of record counts as
    an owner even without a staff row.
    """
    if user is None or not user.is_authenticated:
        return False
    if user.is_superuser:
        return True

    held = get_staff_role(user=user, merchant=merchant)
    if held is None:
        return False
    return ROLE_RANK[StaffRole(held)] >= ROLE_RANK[StaffRole(role)]


def require_merchant_access(
    *,
    user: Optional[User],
    merchant: Merchant,
    role: str = StaffRole.CASHIER
) -> None:
    """
    Raises:
        MerchantAccessDeniedError: If has_merchant_access() is False
    """
    if not has_merchant_access(user=user, merchant=merchant, role=role):
        raise MerchantAccessDeniedError(
            f"User does not have {role} access to {merchant.name}"
        )
