from django.conf import settings
from django.db import models
from django.db.models import Q
import uuid


class ExecutionMode(models.TextChoices):
    LIVE = 'live', 'Live'
    SIMULATED = 'simulated', 'Simulated'


class CreditEventType(models.TextChoices):
    CREDIT_EARNED = 'CREDIT_EARNED', 'Credit earned'
    CREDIT_USED = 'CREDIT_USED', 'Credit used'
    CREDIT_RESTORED = 'CREDIT_RESTORED', 'Credit restored'


class CreditBalance(models.Model):
    """
    A user's credit at one merchant.

    local_cents is spendable only at this merchant; network_cents is spendable
    anywhere. Rows are created lazily on first earn and never deleted.
    Balances change only through the ledger service, as deltas.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='credit_balances'
    )
    merchant = models.ForeignKey(
        'merchants.Merchant',
        on_delete=models.PROTECT,
        related_name='credit_balances'
    )
    mode = models.CharField(max_length=10, choices=ExecutionMode.choices, default=ExecutionMode.LIVE)
    local_cents = models.BigIntegerField(default=0)
    network_cents = models.BigIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'credit_balances'
        ordering = ['created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['user', 'merchant', 'mode'],
                name='unique_credit_balance_per_user_merchant_mode'
            ),
            models.CheckConstraint(
                condition=Q(local_cents__gte=0),
                name='credit_balance_local_non_negative'
            ),
            models.CheckConstraint(
                condition=Q(network_cents__gte=0),
                name='credit_balance_network_non_negative'
            ),
        ]

    def __str__(self):
        return f"{self.user} @ {self.merchant}: {self.local_cents}/{self.network_cents}"

    @property
    def total_cents(self):
        return self.local_cents + self.network_cents


class CreditEvent(models.Model):
    """
    Append-only audit record of every balance change.

    Summing the changes for a (user, merchant, mode) reproduces the balance.
    References to the transaction and grab are plain UUIDs so the log
    survives whatever happens to those rows.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='credit_events'
    )
    merchant = models.ForeignKey(
        'merchants.Merchant',
        on_delete=models.PROTECT,
        related_name='credit_events'
    )
    mode = models.CharField(max_length=10, choices=ExecutionMode.choices, default=ExecutionMode.LIVE)
    event_type = models.CharField(max_length=20, choices=CreditEventType.choices)
    local_cents_change = models.BigIntegerField(default=0)
    network_cents_change = models.BigIntegerField(default=0)
    description = models.CharField(max_length=255, blank=True)
    transaction_ref = models.UUIDField(null=True, blank=True, db_index=True)
    grab_ref = models.UUIDField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'credit_events'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', 'merchant', 'mode'], name='credit_events_owner_idx'),
            models.Index(fields=['event_type', 'created_at'], name='credit_events_type_idx'),
        ]

    def __str__(self):
        return f"{self.event_type} {self.local_cents_change:+d}/{self.network_cents_change:+d}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Credit events are append-only and cannot be modified")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Credit events are append-only and cannot be deleted")
