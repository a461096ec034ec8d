from rest_framework import serializers

from apps.accounts.serializers import UserMinimalSerializer
from .models import Merchant, Deal, Grab


class MerchantMinimalSerializer(serializers.ModelSerializer):
    class Meta:
        model = Merchant
        fields = ['id', 'name']
        read_only_fields = fields


class DealSerializer(serializers.ModelSerializer):
    class Meta:
        model = Deal
        fields = ['id', 'title', 'reward_mode', 'cashback_pct', 'discount_pct', 'ends_at']
        read_only_fields = fields


class GrabSerializer(serializers.ModelSerializer):
    """Grab as shown to the cashier after validation."""

    deal = DealSerializer(read_only=True)
    user = UserMinimalSerializer(read_only=True)
    merchant = MerchantMinimalSerializer(read_only=True)

    class Meta:
        model = Grab
        fields = ['id', 'deal', 'user', 'merchant', 'status', 'expires_at', 'used_at']
        read_only_fields = fields


class ValidateGrabSerializer(serializers.Serializer):
    """Input for grab validation: merchant plus exactly one of pin / qr_token."""

    merchant = serializers.UUIDField()
    pin = serializers.RegexField(r'^\d{6}$', required=False)
    qr_token = serializers.CharField(max_length=64, required=False)

    def validate(self, attrs):
        if bool(attrs.get('pin')) == bool(attrs.get('qr_token')):
            raise serializers.ValidationError('Provide exactly one of pin or qr_token.')
        return attrs
