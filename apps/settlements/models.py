from django.db import models
from django.db.models import Q, F
import uuid


class SettlementStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    PAID = 'paid', 'Paid'


class Settlement(models.Model):
    """
    A merchant's payout for one period.

    At most one per (merchant, period_start, period_end). Amounts are cents;
    net_cents = gross_cents - fees_cents.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    merchant = models.ForeignKey(
        'merchants.Merchant',
        on_delete=models.PROTECT,
        related_name='settlements'
    )
    period_start = models.DateField()
    period_end = models.DateField()
    gross_cents = models.BigIntegerField()
    fees_cents = models.BigIntegerField()
    net_cents = models.BigIntegerField()
    transaction_count = models.PositiveIntegerField()
    status = models.CharField(max_length=10, choices=SettlementStatus.choices, default=SettlementStatus.PENDING)
    paid_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'merchant_settlements'
        ordering = ['-period_end', 'merchant__name']
        constraints = [
            models.UniqueConstraint(
                fields=['merchant', 'period_start', 'period_end'],
                name='unique_settlement_per_merchant_period'
            ),
            models.CheckConstraint(
                condition=Q(period_end__gte=F('period_start')),
                name='settlement_period_ordered'
            ),
        ]

    def __str__(self):
        return f"{self.merchant} {self.period_start}..{self.period_end} ({self.status})"
