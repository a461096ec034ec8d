from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone
import uuid

from apps.credits.models import ExecutionMode


class PaymentFlow(models.TextChoices):
    TOKEN_QUEUE = 'token_queue', 'Terminal queue with lane tokens'
    MERCHANT_ENTRY = 'merchant_entry', 'Merchant keys the amount'
    QR_SCAN = 'qr_scan', 'Customer scans merchant QR'
    GRAB_PIN = 'grab_pin', 'Deal grab redemption'


class TransactionStatus(models.TextChoices):
    AWAITING_CUSTOMER = 'awaiting_customer', 'Awaiting customer'
    AWAITING_MERCHANT_CONFIRM = 'awaiting_merchant_confirm', 'Awaiting merchant confirmation'
    AUTHORIZED = 'authorized', 'Authorized'
    COMPLETED = 'completed', 'Completed'
    VOIDED = 'voided', 'Voided'
    EXPIRED = 'expired', 'Expired'


OPEN_STATUSES = (
    TransactionStatus.AWAITING_CUSTOMER,
    TransactionStatus.AWAITING_MERCHANT_CONFIRM,
    TransactionStatus.AUTHORIZED,
)

TERMINAL_STATUSES = (
    TransactionStatus.COMPLETED,
    TransactionStatus.VOIDED,
    TransactionStatus.EXPIRED,
)


class PaymentMethod(models.TextChoices):
    CASH = 'cash', 'Cash'
    CARD = 'card', 'Card'


class NotificationType(models.TextChoices):
    PAYMENT_AUTHORIZED = 'PAYMENT_AUTHORIZED', 'Payment authorized'
    PAYMENT_CONFIRMED = 'PAYMENT_CONFIRMED', 'Payment confirmed'
    TRANSACTION_VOIDED = 'TRANSACTION_VOIDED', 'Transaction voided'


class PendingTransaction(models.Model):
    """
    One in-person payment attempt.

    Status only changes through services.state_machine. Rows are never
    deleted; completed, voided and expired rows stay for audit and settlement.

    Amounts are cents. original_amount is the bill as keyed; discount_applied
    comes off first; the customer's credit then comes off that, leaving
    final_amount. customer_selected_* is the live, uncommitted choice while
    *_credits_used is what was actually debited.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    merchant = models.ForeignKey(
        'merchants.Merchant',
        on_delete=models.PROTECT,
        related_name='pending_transactions'
    )
    terminal_id = models.CharField(max_length=64, null=True, blank=True)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='pending_transactions'
    )
    deal = models.ForeignKey(
        'merchants.Deal',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='transactions'
    )
    grab = models.ForeignKey(
        'merchants.Grab',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='transactions'
    )

    mode = models.CharField(max_length=10, choices=ExecutionMode.choices, default=ExecutionMode.LIVE)
    flow = models.CharField(max_length=20, choices=PaymentFlow.choices)
    payment_method = models.CharField(max_length=10, choices=PaymentMethod.choices, default=PaymentMethod.CASH)
    status = models.CharField(
        max_length=30,
        choices=TransactionStatus.choices,
        default=TransactionStatus.AWAITING_CUSTOMER
    )

    # Amounts (cents)
    original_amount = models.BigIntegerField()
    discount_applied = models.BigIntegerField(default=0)
    final_amount = models.BigIntegerField()
    live_net_amount = models.BigIntegerField()
    customer_selected_local_credits = models.BigIntegerField(default=0)
    customer_selected_network_credits = models.BigIntegerField(default=0)
    local_credits_used = models.BigIntegerField(default=0)
    network_credits_used = models.BigIntegerField(default=0)
    credits_earned_local = models.BigIntegerField(default=0)
    credits_earned_network = models.BigIntegerField(default=0)

    # Terms fixed at creation
    cashback_pct = models.DecimalField(max_digits=5, decimal_places=2)
    credit_cap = models.DecimalField(max_digits=4, decimal_places=3, null=True, blank=True)

    # Codes
    payment_code = models.CharField(max_length=12)
    customer_code = models.CharField(max_length=12, null=True, blank=True)
    lane_token = models.CharField(max_length=8, null=True, blank=True)

    processor_reference = models.CharField(max_length=100, blank=True)
    void_reason = models.CharField(max_length=255, blank=True)
    version = models.PositiveIntegerField(default=1)

    # Timestamps
    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    expires_at = models.DateTimeField()
    claimed_at = models.DateTimeField(null=True, blank=True)
    customer_credit_selection_at = models.DateTimeField(null=True, blank=True)
    authorized_at = models.DateTimeField(null=True, blank=True)
    captured_at = models.DateTimeField(null=True, blank=True)
    voided_at = models.DateTimeField(null=True, blank=True)
    expired_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'pending_transactions'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['merchant', 'payment_code'], name='pending_txn_code_idx'),
            models.Index(fields=['terminal_id', 'status'], name='pending_txn_terminal_idx'),
            models.Index(fields=['status', 'expires_at'], name='pending_txn_expiry_idx'),
            models.Index(fields=['merchant', 'status', 'captured_at'], name='pending_txn_capture_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['merchant', 'payment_code'],
                condition=Q(status__in=OPEN_STATUSES),
                name='unique_open_payment_code_per_merchant'
            ),
            models.UniqueConstraint(
                fields=['terminal_id', 'lane_token'],
                condition=Q(status__in=OPEN_STATUSES, lane_token__isnull=False),
                name='unique_open_lane_token_per_terminal'
            ),
            models.CheckConstraint(
                condition=Q(original_amount__gte=0) & Q(final_amount__gte=0) & Q(discount_applied__gte=0),
                name='pending_transaction_amounts_non_negative'
            ),
            models.CheckConstraint(
                condition=Q(local_credits_used__gte=0) & Q(network_credits_used__gte=0),
                name='pending_transaction_credits_non_negative'
            ),
        ]

    def __str__(self):
        return f"{self.payment_code} @ {self.merchant_id} ({self.status})"

    @property
    def payable_before_credits(self):
        """Bill after the deal discount, before any credit."""
        return self.original_amount - self.discount_applied

    @property
    def credits_used(self):
        return self.local_credits_used + self.network_credits_used

    @property
    def is_open(self):
        return self.status in OPEN_STATUSES


class MerchantNotification(models.Model):
    """Durable notice for the merchant dashboard."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    merchant = models.ForeignKey(
        'merchants.Merchant',
        on_delete=models.CASCADE,
        related_name='notifications'
    )
    notification_type = models.CharField(max_length=30, choices=NotificationType.choices)
    payload = models.JSONField(default=dict)
    is_read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'merchant_notifications'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['merchant', 'is_read'], name='merchant_notif_unread_idx'),
        ]

    def __str__(self):
        return f"{self.notification_type} for {self.merchant_id}"
