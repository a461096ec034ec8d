import pytest
from decimal import Decimal
from django.utils import timezone
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from apps.accounts.models import User
from apps.credits.models import CreditBalance, ExecutionMode
from apps.merchants.models import Merchant, MerchantStaff, StaffRole
from apps.payments.models import PaymentFlow
from apps.payments.realtime import TransactionChangeNotifier
from apps.payments.runtime import ExecutionContext, FrozenClock, SeededCodeGenerator
from apps.payments.services import MockCardProcessor, create_pending_transaction


@pytest.fixture
def notifier():
    """Fresh notifier so subscriptions never leak between tests."""
    return TransactionChangeNotifier()


@pytest.fixture
def clock():
    return FrozenClock(timezone.now().replace(microsecond=0))


@pytest.fixture
def ctx(clock, notifier):
    """Live-mode context with a controllable clock and deterministic codes."""
    return ExecutionContext(
        mode=ExecutionMode.LIVE,
        clock=clock,
        codes=SeededCodeGenerator(42),
        notifier=notifier,
        card_processor=MockCardProcessor(decline_above_cents=100_000),
    )


@pytest.fixture
def sim_ctx(notifier):
    return ExecutionContext.simulated(seed=7, notifier=notifier)


@pytest.fixture
def cashier(db):
    return User.objects.create_user(
        email='cashier@example.com',
        password='TestPass123!',
        display_name='Cashier',
    )


@pytest.fixture
def customer(db):
    return User.objects.create_user(
        email='customer@example.com',
        password='TestPass123!',
        display_name='Customer',
    )


@pytest.fixture
def other_customer(db):
    return User.objects.create_user(
        email='other@example.com',
        password='TestPass123!',
        display_name='Other Customer',
    )


@pytest.fixture
def merchant(db, cashier):
    merchant = Merchant.objects.create(name='Chai Point', default_cashback_pct=Decimal('5.00'))
    MerchantStaff.objects.create(merchant=merchant, user=cashier, role=StaffRole.CASHIER)
    return merchant


@pytest.fixture
def funded_customer(customer, merchant):
    """Customer holding 1200 local and 600 network credit at `merchant`."""
    CreditBalance.objects.create(
        user=customer,
        merchant=merchant,
        mode=ExecutionMode.LIVE,
        local_cents=1200,
        network_cents=600,
    )
    return customer


@pytest.fixture
def make_transaction(merchant, ctx):
    """Open a bill; defaults to a 2000-cent token_queue bill at terminal T1."""
    def _make(amount_cents=2000, flow=PaymentFlow.TOKEN_QUEUE, terminal_id='T1', context=None, **kwargs):
        if flow != PaymentFlow.TOKEN_QUEUE and terminal_id == 'T1':
            terminal_id = None
        return create_pending_transaction(
            merchant=kwargs.pop('merchant', merchant),
            amount_cents=amount_cents,
            ctx=context or ctx,
            flow=flow,
            terminal_id=terminal_id,
            **kwargs,
        )
    return _make


@pytest.fixture
def balance_of(db):
    """(local, network) held by a user at a merchant."""
    def _balance(user, merchant, mode=ExecutionMode.LIVE):
        row = CreditBalance.objects.get(user=user, merchant=merchant, mode=mode)
        return row.local_cents, row.network_cents
    return _balance


def client_for(user):
    client = APIClient()
    refresh = RefreshToken.for_user(user)
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
    return client


@pytest.fixture
def cashier_client(cashier):
    return client_for(cashier)


@pytest.fixture
def customer_client(customer):
    return client_for(customer)


@pytest.fixture
def other_customer_client(other_customer):
    return client_for(other_customer)
