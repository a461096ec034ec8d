# ==========================================
# apps/merchants/admin.py
# ==========================================

from django.contrib import admin
from apps.merchants.models import Merchant, MerchantStaff, Deal, Grab


class MerchantStaffInline(admin.TabularInline):
    """Inline admin for merchant staff roles."""
    model = MerchantStaff
    extra = 0
    fields = ['user', 'role', 'created_at']
    readonly_fields = ['created_at']


@admin.register(Merchant)
class MerchantAdmin(admin.ModelAdmin):
    """Admin interface for merchants."""

    list_display = [
        'name',
        'owner',
        'default_cashback_pct',
        'psp_fee_pct',
        'psp_fee_fixed_cents',
        'is_active',
        'created_at',
    ]
    list_filter = ['is_active', 'allow_pin_fallback', 'created_at']
    search_fields = ['name', 'owner__email']
    readonly_fields = ['created_at', 'updated_at']
    inlines = [MerchantStaffInline]
    ordering = ['name']

    fieldsets = (
        ('Basic Information', {
            'fields': ('name', 'owner', 'is_active')
        }),
        ('Rewards', {
            'fields': ('default_cashback_pct', 'default_discount_pct', 'allow_pin_fallback')
        }),
        ('Settlement Fees', {
            'fields': ('psp_fee_pct', 'psp_fee_fixed_cents')
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )


@admin.register(Deal)
class DealAdmin(admin.ModelAdmin):
    list_display = ['title', 'merchant', 'reward_mode', 'cashback_pct', 'discount_pct', 'ends_at', 'is_active']
    list_filter = ['reward_mode', 'is_active']
    search_fields = ['title', 'merchant__name']


@admin.register(Grab)
class GrabAdmin(admin.ModelAdmin):
    list_display = ['deal', 'user', 'merchant', 'status', 'expires_at', 'used_at']
    list_filter = ['status']
    search_fields = ['pin', 'user__email', 'deal__title']
    readonly_fields = ['pin', 'qr_token', 'created_at', 'used_at']
