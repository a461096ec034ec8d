# Generated manually for the rewards platform

import uuid
from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


MODE_CHOICES = [('live', 'Live'), ('simulated', 'Simulated')]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('merchants', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='CreditBalance',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('mode', models.CharField(choices=MODE_CHOICES, default='live', max_length=10)),
                ('local_cents', models.BigIntegerField(default=0)),
                ('network_cents', models.BigIntegerField(default=0)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('merchant', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='credit_balances', to='merchants.merchant')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='credit_balances', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'credit_balances',
                'ordering': ['created_at'],
                'constraints': [
                    models.UniqueConstraint(fields=('user', 'merchant', 'mode'), name='unique_credit_balance_per_user_merchant_mode'),
                    models.CheckConstraint(condition=models.Q(('local_cents__gte', 0)), name='credit_balance_local_non_negative'),
                    models.CheckConstraint(condition=models.Q(('network_cents__gte', 0)), name='credit_balance_network_non_negative'),
                ],
            },
        ),
        migrations.CreateModel(
            name='CreditEvent',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('mode', models.CharField(choices=MODE_CHOICES, default='live', max_length=10)),
                ('event_type', models.CharField(choices=[('CREDIT_EARNED', 'Credit earned'), ('CREDIT_USED', 'Credit used'), ('CREDIT_RESTORED', 'Credit restored')], max_length=20)),
                ('local_cents_change', models.BigIntegerField(default=0)),
                ('network_cents_change', models.BigIntegerField(default=0)),
                ('description', models.CharField(blank=True, max_length=255)),
                ('transaction_ref', models.UUIDField(blank=True, db_index=True, null=True)),
                ('grab_ref', models.UUIDField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('merchant', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='credit_events', to='merchants.merchant')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='credit_events', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'credit_events',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['user', 'merchant', 'mode'], name='credit_events_owner_idx'),
                    models.Index(fields=['event_type', 'created_at'], name='credit_events_type_idx'),
                ],
            },
        ),
    ]
