"""Durable merchant notifications, written only once the triggering change commits."""

import logging

from django.db import DatabaseError, transaction
from django.db.models import QuerySet

from apps.merchants.models import Merchant
from apps.payments.models import MerchantNotification

logger = logging.getLogger(__name__)


def notify_merchant(*, merchant: Merchant, notification_type: str, payload: dict) -> None:
    """Queue a MerchantNotification to be created after the current commit."""

    def create():
        try:
            MerchantNotification.objects.create(
                merchant=merchant,
                notification_type=notification_type,
                payload=payload,
            )
        except DatabaseError:
            logger.exception(
                "Failed to store %s notification for merchant %s",
                notification_type, merchant.id
            )

    transaction.on_commit(create)


def list_notifications(*, merchant: Merchant, unread_only: bool = False) -> QuerySet:
    queryset = MerchantNotification.objects.filter(merchant=merchant)
    if unread_only:
        queryset = queryset.filter(is_read=False)
    return queryset.order_by('-created_at')


def mark_notifications_read(*, merchant: Merchant, notification_ids=None) -> int:
    queryset = MerchantNotification.objects.filter(merchant=merchant, is_read=False)
    if notification_ids is not None:
        queryset = queryset.filter(id__in=notification_ids)
    return queryset.update(is_read=True)
