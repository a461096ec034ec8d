from rest_framework import serializers

from apps.credits.money import format_cents
from apps.merchants.serializers import MerchantMinimalSerializer
from .models import Settlement


class SettlementSerializer(serializers.ModelSerializer):
    merchant = MerchantMinimalSerializer(read_only=True)
    net_display = serializers.SerializerMethodField()

    class Meta:
        model = Settlement
        fields = [
            'id',
            'merchant',
            'period_start',
            'period_end',
            'gross_cents',
            'fees_cents',
            'net_cents',
            'net_display',
            'transaction_count',
            'status',
            'paid_at',
            'created_at',
        ]
        read_only_fields = fields

    def get_net_display(self, obj):
        return format_cents(obj.net_cents)


class GenerateSettlementsSerializer(serializers.Serializer):
    period_start = serializers.DateField()
    period_end = serializers.DateField()
    dry_run = serializers.BooleanField(default=False)

    def validate(self, attrs):
        if attrs['period_end'] < attrs['period_start']:
            raise serializers.ValidationError({'period_end': 'Must not be before period_start.'})
        return attrs
