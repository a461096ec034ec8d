from rest_framework import serializers

from apps.credits.money import format_cents, parse_amount
from .models import (
    PendingTransaction,
    MerchantNotification,
    PaymentFlow,
    PaymentMethod,
)


class TransactionSerializer(serializers.ModelSerializer):
    """Merchant-facing view of a transaction. Never exposes the customer code."""

    final_amount_display = serializers.SerializerMethodField()

    class Meta:
        model = PendingTransaction
        fields = [
            'id',
            'merchant',
            'terminal_id',
            'lane_token',
            'payment_code',
            'status',
            'flow',
            'mode',
            'payment_method',
            'original_amount',
            'discount_applied',
            'final_amount',
            'final_amount_display',
            'live_net_amount',
            'customer_selected_local_credits',
            'customer_selected_network_credits',
            'local_credits_used',
            'network_credits_used',
            'credits_earned_local',
            'credits_earned_network',
            'cashback_pct',
            'credit_cap',
            'version',
            'created_at',
            'expires_at',
            'customer_credit_selection_at',
            'authorized_at',
            'captured_at',
            'voided_at',
            'void_reason',
        ]
        read_only_fields = fields

    def get_final_amount_display(self, obj):
        return format_cents(obj.final_amount)


class CustomerTransactionSerializer(serializers.ModelSerializer):
    """What the paying customer sees."""

    class Meta:
        model = PendingTransaction
        fields = [
            'id',
            'merchant',
            'lane_token',
            'status',
            'flow',
            'mode',
            'original_amount',
            'discount_applied',
            'final_amount',
            'live_net_amount',
            'customer_selected_local_credits',
            'customer_selected_network_credits',
            'credit_cap',
            'version',
            'expires_at',
        ]
        read_only_fields = fields


class CreateTransactionSerializer(serializers.Serializer):
    """Input for opening a bill. `amount` is a decimal string, e.g. '20.00'."""

    merchant = serializers.UUIDField()
    amount = serializers.CharField(max_length=20)
    flow = serializers.ChoiceField(choices=PaymentFlow.choices)
    terminal_id = serializers.CharField(max_length=64, required=False, allow_blank=False)
    deal = serializers.UUIDField(required=False)
    grab = serializers.UUIDField(required=False)
    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices, default=PaymentMethod.CASH)

    def validate_amount(self, value):
        try:
            cents = parse_amount(value)
        except ValueError as e:
            raise serializers.ValidationError(str(e))
        if cents < 0:
            raise serializers.ValidationError('Amount must not be negative.')
        return cents

    def validate(self, attrs):
        if attrs['flow'] == PaymentFlow.TOKEN_QUEUE and not attrs.get('terminal_id'):
            raise serializers.ValidationError({'terminal_id': 'Required for the token_queue flow.'})
        return attrs


class ClaimSerializer(serializers.Serializer):
    token = serializers.CharField(max_length=8, required=False, allow_blank=True)


class SelectCreditsSerializer(serializers.Serializer):
    local_cents = serializers.IntegerField(min_value=0)
    network_cents = serializers.IntegerField(min_value=0)


class ConfirmSerializer(serializers.Serializer):
    code = serializers.RegexField(r'^\d{4,12}$')


class PaymentCodeSerializer(serializers.Serializer):
    merchant = serializers.UUIDField()
    payment_code = serializers.RegexField(r'^\d{4,12}$')


class VoidSerializer(PaymentCodeSerializer):
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')


class MerchantNotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = MerchantNotification
        fields = ['id', 'notification_type', 'payload', 'is_read', 'created_at']
        read_only_fields = fields


class MarkReadSerializer(serializers.Serializer):
    merchant = serializers.UUIDField()
    ids = serializers.ListField(child=serializers.UUIDField(), required=False)
