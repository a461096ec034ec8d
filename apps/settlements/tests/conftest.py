import pytest
from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from apps.accounts.models import User
from apps.credits.models import ExecutionMode
from apps.merchants.models import Merchant, MerchantStaff, StaffRole
from apps.payments.models import PendingTransaction, PaymentFlow, TransactionStatus


@pytest.fixture
def merchant(db):
    return Merchant.objects.create(
        name='Chai Point',
        psp_fee_pct=Decimal('2.00'),
        psp_fee_fixed_cents=30,
    )


@pytest.fixture
def quiet_merchant(db):
    return Merchant.objects.create(name='Quiet Shop')


@pytest.fixture
def make_completed(db):
    """Create a completed transaction captured at noon UTC on `day`."""
    counter = {'n': 0}

    def _make(merchant, final_amount, day, mode=ExecutionMode.LIVE, status=TransactionStatus.COMPLETED):
        counter['n'] += 1
        captured = datetime(day.year, day.month, day.day, 12, 0, tzinfo=dt_timezone.utc)
        return PendingTransaction.objects.create(
            merchant=merchant,
            mode=mode,
            flow=PaymentFlow.MERCHANT_ENTRY,
            status=status,
            original_amount=final_amount,
            final_amount=final_amount,
            live_net_amount=final_amount,
            cashback_pct=Decimal('5'),
            payment_code=f'{counter["n"]:06d}',
            created_at=captured - timedelta(minutes=2),
            expires_at=captured + timedelta(minutes=3),
            captured_at=captured if status == TransactionStatus.COMPLETED else None,
        )
    return _make


@pytest.fixture
def admin_user(db):
    return User.objects.create_superuser(email='admin@example.com', password='TestPass123!')


@pytest.fixture
def manager(db, merchant):
    user = User.objects.create_user(email='manager@example.com', password='TestPass123!')
    MerchantStaff.objects.create(merchant=merchant, user=user, role=StaffRole.MANAGER)
    return user


@pytest.fixture
def cashier(db, merchant):
    user = User.objects.create_user(email='cashier@example.com', password='TestPass123!')
    MerchantStaff.objects.create(merchant=merchant, user=user, role=StaffRole.CASHIER)
    return user


def _client(user):
    client = APIClient()
    refresh = RefreshToken.for_user(user)
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
    return client


@pytest.fixture
def admin_client(admin_user):
    return _client(admin_user)


@pytest.fixture
def manager_client(manager):
    return _client(manager)


@pytest.fixture
def cashier_client(cashier):
    return _client(cashier)
