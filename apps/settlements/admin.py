# ==========================================
# apps/settlements/admin.py
# ==========================================

from django.contrib import admin
from django.utils import timezone

from apps.credits.money import format_cents
from apps.settlements.models import Settlement, SettlementStatus


@admin.register(Settlement)
class SettlementAdmin(admin.ModelAdmin):
    """Admin interface for settlements."""

    list_display = [
        'merchant',
        'period_start',
        'period_end',
        'transaction_count',
        'gross_display',
        'fees_display',
        'net_display',
        'status',
    ]
    list_filter = ['status', 'period_end']
    search_fields = ['merchant__name']
    readonly_fields = [
        'merchant', 'period_start', 'period_end', 'gross_cents', 'fees_cents',
        'net_cents', 'transaction_count', 'paid_at', 'created_at',
    ]
    date_hierarchy = 'period_end'
    actions = ['mark_paid']

    def gross_display(self, obj):
        return format_cents(obj.gross_cents)
    gross_display.short_description = 'Gross'

    def fees_display(self, obj):
        return format_cents(obj.fees_cents)
    fees_display.short_description = 'Fees'

    def net_display(self, obj):
        return format_cents(obj.net_cents)
    net_display.short_description = 'Net'

    @admin.action(description='Mark selected settlements as paid')
    def mark_paid(self, request, queryset):
        count = queryset.filter(status=SettlementStatus.PENDING).update(
            status=SettlementStatus.PAID,
            paid_at=timezone.now(),
        )
        self.message_user(request, f'Marked {count} settlement(s) as paid.')
