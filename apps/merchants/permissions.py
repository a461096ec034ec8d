from rest_framework import permissions

from apps.merchants.models import Merchant, StaffRole
from apps.merchants.services import has_merchant_access


class IsMerchantStaff(permissions.BasePermission):
    """
    Permission: User must hold at least `merchant_role` at the object's merchant.

    Works for Merchant instances and for any object with a `merchant` attribute.
    Views may set `merchant_role` to require more than cashier. Platform
    staff pass for every merchant.
    """

    def has_object_permission(self, request, view, obj):
        if request.user.is_staff:
            return True
        merchant = obj if isinstance(obj, Merchant) else getattr(obj, 'merchant', None)
        if merchant is None:
            return False
        role = getattr(view, 'merchant_role', StaffRole.CASHIER)
        return has_merchant_access(user=request.user, merchant=merchant, role=role)
