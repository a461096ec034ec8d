# Generated manually for the rewards platform

import uuid
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


OPEN_STATUSES = ('awaiting_customer', 'awaiting_merchant_confirm', 'authorized')


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('merchants', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='PendingTransaction',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('terminal_id', models.CharField(blank=True, max_length=64, null=True)),
                ('mode', models.CharField(choices=[('live', 'Live'), ('simulated', 'Simulated')], default='live', max_length=10)),
                ('flow', models.CharField(choices=[('token_queue', 'Terminal queue with lane tokens'), ('merchant_entry', 'Merchant keys the amount'), ('qr_scan', 'Customer scans merchant QR'), ('grab_pin', 'Deal grab redemption')], max_length=20)),
                ('payment_method', models.CharField(choices=[('cash', 'Cash'), ('card', 'Card')], default='cash', max_length=10)),
                ('status', models.CharField(choices=[('awaiting_customer', 'Awaiting customer'), ('awaiting_merchant_confirm', 'Awaiting merchant confirmation'), ('authorized', 'Authorized'), ('completed', 'Completed'), ('voided', 'Voided'), ('expired', 'Expired')], default='awaiting_customer', max_length=30)),
                ('original_amount', models.BigIntegerField()),
                ('discount_applied', models.BigIntegerField(default=0)),
                ('final_amount', models.BigIntegerField()),
                ('live_net_amount', models.BigIntegerField()),
                ('customer_selected_local_credits', models.BigIntegerField(default=0)),
                ('customer_selected_network_credits', models.BigIntegerField(default=0)),
                ('local_credits_used', models.BigIntegerField(default=0)),
                ('network_credits_used', models.BigIntegerField(default=0)),
                ('credits_earned_local', models.BigIntegerField(default=0)),
                ('credits_earned_network', models.BigIntegerField(default=0)),
                ('cashback_pct', models.DecimalField(decimal_places=2, max_digits=5)),
                ('credit_cap', models.DecimalField(blank=True, decimal_places=3, max_digits=4, null=True)),
                ('payment_code', models.CharField(max_length=12)),
                ('customer_code', models.CharField(blank=True, max_length=12, null=True)),
                ('lane_token', models.CharField(blank=True, max_length=8, null=True)),
                ('processor_reference', models.CharField(blank=True, max_length=100)),
                ('void_reason', models.CharField(blank=True, max_length=255)),
                ('version', models.PositiveIntegerField(default=1)),
                ('created_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('expires_at', models.DateTimeField()),
                ('claimed_at', models.DateTimeField(blank=True, null=True)),
                ('customer_credit_selection_at', models.DateTimeField(blank=True, null=True)),
                ('authorized_at', models.DateTimeField(blank=True, null=True)),
                ('captured_at', models.DateTimeField(blank=True, null=True)),
                ('voided_at', models.DateTimeField(blank=True, null=True)),
                ('expired_at', models.DateTimeField(blank=True, null=True)),
                ('deal', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='transactions', to='merchants.deal')),
                ('grab', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='transactions', to='merchants.grab')),
                ('merchant', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='pending_transactions', to='merchants.merchant')),
                ('user', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='pending_transactions', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'pending_transactions',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['merchant', 'payment_code'], name='pending_txn_code_idx'),
                    models.Index(fields=['terminal_id', 'status'], name='pending_txn_terminal_idx'),
                    models.Index(fields=['status', 'expires_at'], name='pending_txn_expiry_idx'),
                    models.Index(fields=['merchant', 'status', 'captured_at'], name='pending_txn_capture_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('status__in', OPEN_STATUSES)), fields=('merchant', 'payment_code'), name='unique_open_payment_code_per_merchant'),
                    models.UniqueConstraint(condition=models.Q(('lane_token__isnull', False), ('status__in', OPEN_STATUSES)), fields=('terminal_id', 'lane_token'), name='unique_open_lane_token_per_terminal'),
                    models.CheckConstraint(condition=models.Q(('original_amount__gte', 0), ('final_amount__gte', 0), ('discount_applied__gte', 0)), name='pending_transaction_amounts_non_negative'),
                    models.CheckConstraint(condition=models.Q(('local_credits_used__gte', 0), ('network_credits_used__gte', 0)), name='pending_transaction_credits_non_negative'),
                ],
            },
        ),
        migrations.CreateModel(
            name='MerchantNotification',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('notification_type', models.CharField(choices=[('PAYMENT_AUTHORIZED', 'Payment authorized'), ('PAYMENT_CONFIRMED', 'Payment confirmed'), ('TRANSACTION_VOIDED', 'Transaction voided')], max_length=30)),
                ('payload', models.JSONField(default=dict)),
                ('is_read', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('merchant', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='notifications', to='merchants.merchant')),
            ],
            options={
                'db_table': 'merchant_notifications',
                'ordering': ['-created_at'],
                'indexes': [models.Index(fields=['merchant', 'is_read'], name='merchant_notif_unread_idx')],
            },
        ),
    ]
