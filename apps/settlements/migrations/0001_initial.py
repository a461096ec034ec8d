# Generated manually for the rewards platform

import uuid
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('merchants', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Settlement',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('period_start', models.DateField()),
                ('period_end', models.DateField()),
                ('gross_cents', models.BigIntegerField()),
                ('fees_cents', models.BigIntegerField()),
                ('net_cents', models.BigIntegerField()),
                ('transaction_count', models.PositiveIntegerField()),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('paid', 'Paid')], default='pending', max_length=10)),
                ('paid_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('merchant', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='settlements', to='merchants.merchant')),
            ],
            options={
                'db_table': 'merchant_settlements',
                'ordering': ['-period_end', 'merchant__name'],
                'constraints': [
                    models.UniqueConstraint(fields=('merchant', 'period_start', 'period_end'), name='unique_settlement_per_merchant_period'),
                    models.CheckConstraint(condition=models.Q(('period_end__gte', models.F('period_start'))), name='settlement_period_ordered'),
                ],
            },
        ),
    ]
