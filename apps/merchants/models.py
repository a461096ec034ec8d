from django.conf import settings
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models
from decimal import Decimal
import uuid


PERCENT_VALIDATORS = [MinValueValidator(Decimal('0')), MaxValueValidator(Decimal('100'))]


class StaffRole(models.TextChoices):
    CASHIER = 'cashier', 'Cashier'
    MANAGER = 'manager', 'Manager'
    OWNER = 'owner', 'Owner'


# Higher rank includes every permission of the lower ones
ROLE_RANK = {
    StaffRole.CASHIER: 1,
    StaffRole.MANAGER: 2,
    StaffRole.OWNER: 3,
}


class RewardMode(models.TextChoices):
    DISCOUNT = 'DISCOUNT', 'Discount'
    CASHBACK = 'CASHBACK', 'Cashback'
    BOTH = 'BOTH', 'Discount and cashback'


class GrabStatus(models.TextChoices):
    LOCKED = 'LOCKED', 'Locked'
    USED = 'USED', 'Used'
    EXPIRED = 'EXPIRED', 'Expired'


class Merchant(models.Model):
    """A participating shop. Fee and reward defaults live on the profile."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=200)
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='owned_merchants'
    )

    # Rewards
    default_cashback_pct = models.DecimalField(
        max_digits=5, decimal_places=2, null=True, blank=True, validators=PERCENT_VALIDATORS
    )
    default_discount_pct = models.DecimalField(
        max_digits=5, decimal_places=2, null=True, blank=True, validators=PERCENT_VALIDATORS
    )
    allow_pin_fallback = models.BooleanField(default=True)

    # Payment service provider fees, applied at settlement
    psp_fee_pct = models.DecimalField(
        max_digits=5, decimal_places=2, default=Decimal('0.00'), validators=PERCENT_VALIDATORS
    )
    psp_fee_fixed_cents = models.PositiveIntegerField(default=0)

    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'merchants'
        ordering = ['name']
        indexes = [
            models.Index(fields=['is_active'], name='merchants_active_idx'),
        ]

    def __str__(self):
        return self.name


class MerchantStaff(models.Model):
    """Role a user holds at a merchant."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    merchant = models.ForeignKey(Merchant, on_delete=models.CASCADE, related_name='staff')
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='merchant_roles'
    )
    role = models.CharField(max_length=20, choices=StaffRole.choices, default=StaffRole.CASHIER)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'merchant_staff'
        unique_together = [['merchant', 'user']]

    def __str__(self):
        return f"{self.user} @ {self.merchant} ({self.role})"


class Deal(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    merchant = models.ForeignKey(Merchant, on_delete=models.CASCADE, related_name='deals')
    title = models.CharField(max_length=200)
    reward_mode = models.CharField(max_length=10, choices=RewardMode.choices, default=RewardMode.CASHBACK)
    cashback_pct = models.DecimalField(
        max_digits=5, decimal_places=2, null=True, blank=True, validators=PERCENT_VALIDATORS
    )
    discount_pct = models.DecimalField(
        max_digits=5, decimal_places=2, null=True, blank=True, validators=PERCENT_VALIDATORS
    )
    ends_at = models.DateTimeField(null=True, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'deals'
        ordering = ['-created_at']

    def __str__(self):
        return self.title


class Grab(models.Model):
    """A customer's reservation of a deal, redeemed in store by PIN or QR token."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    deal = models.ForeignKey(Deal, on_delete=models.CASCADE, related_name='grabs')
    merchant = models.ForeignKey(Merchant, on_delete=models.CASCADE, related_name='grabs')
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='grabs'
    )
    pin = models.CharField(max_length=6, db_index=True)
    qr_token = models.CharField(max_length=64, unique=True)
    status = models.CharField(max_length=10, choices=GrabStatus.choices, default=GrabStatus.LOCKED)
    expires_at = models.DateTimeField()
    used_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'grabs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['merchant', 'pin'], name='grabs_merchant_pin_idx'),
            models.Index(fields=['status', 'expires_at'], name='grabs_status_expiry_idx'),
        ]

    def __str__(self):
        return f"{self.deal} - {self.pin} ({self.status})"
