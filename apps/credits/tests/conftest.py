import pytest
from datetime import timedelta
from django.utils import timezone
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from apps.accounts.models import User
from apps.credits.models import CreditBalance, ExecutionMode
from apps.merchants.models import Merchant


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def customer(db):
    return User.objects.create_user(
        email='customer@example.com',
        password='TestPass123!',
        display_name='Customer',
    )


@pytest.fixture
def merchant(db):
    return Merchant.objects.create(name='Chai Point')


@pytest.fixture
def other_merchant(db):
    return Merchant.objects.create(name='Bakery Corner')


@pytest.fixture
def third_merchant(db):
    return Merchant.objects.create(name='Corner Books')


@pytest.fixture
def make_balance(db):
    """Create a live balance row; `age_days` backdates it for drain-order tests."""
    def _make(user, merchant, local=0, network=0, mode=ExecutionMode.LIVE, age_days=0):
        balance = CreditBalance.objects.create(
            user=user,
            merchant=merchant,
            mode=mode,
            local_cents=local,
            network_cents=network,
        )
        if age_days:
            CreditBalance.objects.filter(pk=balance.pk).update(
                created_at=timezone.now() - timedelta(days=age_days)
            )
            balance.refresh_from_db()
        return balance
    return _make


@pytest.fixture
def authenticated_client(customer):
    client = APIClient()
    refresh = RefreshToken.for_user(customer)
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
    return client
