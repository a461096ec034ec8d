from rest_framework import serializers

from apps.credits.money import format_cents
from apps.merchants.serializers import MerchantMinimalSerializer
from .models import CreditBalance, CreditEvent


class CreditBalanceSerializer(serializers.ModelSerializer):
    merchant = MerchantMinimalSerializer(read_only=True)
    total_cents = serializers.IntegerField(read_only=True)
    total_display = serializers.SerializerMethodField()

    class Meta:
        model = CreditBalance
        fields = ['id', 'merchant', 'mode', 'local_cents', 'network_cents',
                  'total_cents', 'total_display', 'updated_at']
        read_only_fields = fields

    def get_total_display(self, obj):
        return format_cents(obj.total_cents)


class CreditEventSerializer(serializers.ModelSerializer):
    merchant = MerchantMinimalSerializer(read_only=True)

    class Meta:
        model = CreditEvent
        fields = [
            'id',
            'merchant',
            'mode',
            'event_type',
            'local_cents_change',
            'network_cents_change',
            'description',
            'transaction_ref',
            'grab_ref',
            'created_at',
        ]
        read_only_fields = fields
