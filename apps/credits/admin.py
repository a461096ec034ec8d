# ==========================================
# apps/credits/admin.py
# ==========================================

from django.contrib import admin
from apps.credits.models import CreditBalance, CreditEvent


@admin.register(CreditBalance)
class CreditBalanceAdmin(admin.ModelAdmin):
    """Balances are read-only here; they only move through the ledger service."""

    list_display = ['user', 'merchant', 'mode', 'local_cents', 'network_cents', 'updated_at']
    list_filter = ['mode']
    search_fields = ['user__email', 'merchant__name']
    readonly_fields = ['user', 'merchant', 'mode', 'local_cents', 'network_cents', 'created_at', 'updated_at']

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(CreditEvent)
class CreditEventAdmin(admin.ModelAdmin):
    list_display = ['event_type', 'user', 'merchant', 'mode', 'local_cents_change',
                    'network_cents_change', 'created_at']
    list_filter = ['event_type', 'mode', 'created_at']
    search_fields = ['user__email', 'merchant__name', 'description']
    date_hierarchy = 'created_at'

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
