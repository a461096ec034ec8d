# ==========================================
# apps/payments/admin.py
# ==========================================

from django.contrib import admin
from apps.credits.money import format_cents
from apps.payments.models import PendingTransaction, MerchantNotification


@admin.register(PendingTransaction)
class PendingTransactionAdmin(admin.ModelAdmin):
    """
    Read-only view of payment attempts.

    Status must only change through the payments services, so nothing
    here is editable.
    """

    list_display = [
        'payment_code',
        'merchant',
        'user',
        'flow',
        'status',
        'mode',
        'amount_display',
        'final_display',
        'created_at',
    ]
    list_filter = ['status', 'flow', 'mode', 'payment_method', 'created_at']
    search_fields = ['payment_code', 'terminal_id', 'merchant__name', 'user__email']
    date_hierarchy = 'created_at'
    ordering = ['-created_at']

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    def amount_display(self, obj):
        return format_cents(obj.original_amount)
    amount_display.short_description = 'Bill'
    amount_display.admin_order_field = 'original_amount'

    def final_display(self, obj):
        return format_cents(obj.final_amount)
    final_display.short_description = 'Final'
    final_display.admin_order_field = 'final_amount'


@admin.register(MerchantNotification)
class MerchantNotificationAdmin(admin.ModelAdmin):
    list_display = ['notification_type', 'merchant', 'is_read', 'created_at']
    list_filter = ['notification_type', 'is_read']
    search_fields = ['merchant__name']
    readonly_fields = ['merchant', 'notification_type', 'payload', 'created_at']
