# Generated manually for the rewards platform

import uuid
from decimal import Decimal
from django.conf import settings
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import migrations, models
import django.db.models.deletion


PERCENT_VALIDATORS = [MinValueValidator(Decimal('0')), MaxValueValidator(Decimal('100'))]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Merchant',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(max_length=200)),
                ('default_cashback_pct', models.DecimalField(blank=True, decimal_places=2, max_digits=5, null=True, validators=PERCENT_VALIDATORS)),
                ('default_discount_pct', models.DecimalField(blank=True, decimal_places=2, max_digits=5, null=True, validators=PERCENT_VALIDATORS)),
                ('allow_pin_fallback', models.BooleanField(default=True)),
                ('psp_fee_pct', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=5, validators=PERCENT_VALIDATORS)),
                ('psp_fee_fixed_cents', models.PositiveIntegerField(default=0)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('owner', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='owned_merchants', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'merchants',
                'ordering': ['name'],
                'indexes': [models.Index(fields=['is_active'], name='merchants_active_idx')],
            },
        ),
        migrations.CreateModel(
            name='MerchantStaff',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('role', models.CharField(choices=[('cashier', 'Cashier'), ('manager', 'Manager'), ('owner', 'Owner')], default='cashier', max_length=20)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('merchant', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='staff', to='merchants.merchant')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='merchant_roles', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'merchant_staff',
                'unique_together': {('merchant', 'user')},
            },
        ),
        migrations.CreateModel(
            name='Deal',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('title', models.CharField(max_length=200)),
                ('reward_mode', models.CharField(choices=[('DISCOUNT', 'Discount'), ('CASHBACK', 'Cashback'), ('BOTH', 'Discount and cashback')], default='CASHBACK', max_length=10)),
                ('cashback_pct', models.DecimalField(blank=True, decimal_places=2, max_digits=5, null=True, validators=PERCENT_VALIDATORS)),
                ('discount_pct', models.DecimalField(blank=True, decimal_places=2, max_digits=5, null=True, validators=PERCENT_VALIDATORS)),
                ('ends_at', models.DateTimeField(blank=True, null=True)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('merchant', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='deals', to='merchants.merchant')),
            ],
            options={
                'db_table': 'deals',
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='Grab',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('pin', models.CharField(db_index=True, max_length=6)),
                ('qr_token', models.CharField(max_length=64, unique=True)),
                ('status', models.CharField(choices=[('LOCKED', 'Locked'), ('USED', 'Used'), ('EXPIRED', 'Expired')], default='LOCKED', max_length=10)),
                ('expires_at', models.DateTimeField()),
                ('used_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('deal', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='grabs', to='merchants.deal')),
                ('merchant', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='grabs', to='merchants.merchant')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='grabs', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'grabs',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['merchant', 'pin'], name='grabs_merchant_pin_idx'),
                    models.Index(fields=['status', 'expires_at'], name='grabs_status_expiry_idx'),
                ],
            },
        ),
    ]
