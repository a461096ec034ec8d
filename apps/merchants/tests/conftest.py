import pytest
from datetime import timedelta
from decimal import Decimal
from django.utils import timezone
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from apps.accounts.models import User
from apps.merchants.models import Merchant, MerchantStaff, StaffRole, Deal, Grab, RewardMode


@pytest.fixture
def api_client():
    """Return an unauthenticated API client."""
    return APIClient()


@pytest.fixture
def owner(db):
    """Create and return the merchant owner."""
    return User.objects.create_user(
        email='owner@example.com',
        password='TestPass123!',
        display_name='Shop Owner',
    )


@pytest.fixture
def cashier(db):
    """Create and return a cashier user (staff row added by `merchant`)."""
    return User.objects.create_user(
        email='cashier@example.com',
        password='TestPass123!',
        display_name='Cashier',
    )


@pytest.fixture
def customer(db):
    """Create and return a customer."""
    return User.objects.create_user(
        email='customer@example.com',
        password='TestPass123!',
        display_name='Customer',
    )


@pytest.fixture
def merchant(db, owner, cashier):
    """Create a merchant owned by `owner` with `cashier` on staff."""
    merchant = Merchant.objects.create(
        name='Chai Point',
        owner=owner,
        default_cashback_pct=Decimal('5.00'),
        psp_fee_pct=Decimal('2.00'),
        psp_fee_fixed_cents=30,
    )
    MerchantStaff.objects.create(merchant=merchant, user=cashier, role=StaffRole.CASHIER)
    return merchant


@pytest.fixture
def other_merchant(db):
    return Merchant.objects.create(name='Bakery Corner')


@pytest.fixture
def deal(db, merchant):
    return Deal.objects.create(
        merchant=merchant,
        title='10% off and 8% back',
        reward_mode=RewardMode.BOTH,
        cashback_pct=Decimal('8.00'),
        discount_pct=Decimal('10.00'),
        ends_at=timezone.now() + timedelta(days=7),
    )


@pytest.fixture
def grab(db, deal, customer):
    return Grab.objects.create(
        deal=deal,
        merchant=deal.merchant,
        user=customer,
        pin='123456',
        qr_token='qr-token-abc',
        expires_at=timezone.now() + timedelta(hours=24),
    )


@pytest.fixture
def cashier_client(api_client, cashier):
    """Return API client authenticated as cashier."""
    refresh = RefreshToken.for_user(cashier)
    api_client.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
    return api_client


@pytest.fixture
def customer_client(customer):
    """Return API client authenticated as customer."""
    client = APIClient()
    refresh = RefreshToken.for_user(customer)
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
    return client
