"""
Ledger service tests.

Tests cover:
- Earning credit, including lazy balance creation
- Atomic spending with the commit-time balance check
- Network credit drain order across merchants
- Restoring credit for a voided or expired transaction
- Reconstructing balances from the event log
- Mode segregation
"""

import pytest
import uuid

from apps.credits.models import CreditBalance, CreditEvent, CreditEventType, ExecutionMode
from apps.credits.services import (
    get_available_credits,
    earn_credits,
    spend_credits,
    restore_credits,
    get_credit_history,
    reconstruct_balance,
    verify_balance,
    NegativeAmountError,
    InsufficientBalanceError,
)

LIVE = ExecutionMode.LIVE
SIMULATED = ExecutionMode.SIMULATED


@pytest.mark.django_db
class TestEarnCredits:

    def test_first_earn_creates_balance(self, customer, merchant):
        event = earn_credits(
            user=customer, merchant=merchant, mode=LIVE,
            local_cents=38, network_cents=17, description='Cashback',
        )

        balance = CreditBalance.objects.get(user=customer, merchant=merchant, mode=LIVE)
        assert balance.local_cents == 38
        assert balance.network_cents == 17
        assert event.event_type == CreditEventType.CREDIT_EARNED
        assert event.local_cents_change == 38

    def test_earn_accumulates(self, customer, merchant):
        earn_credits(user=customer, merchant=merchant, mode=LIVE, local_cents=10, network_cents=5)
        earn_credits(user=customer, merchant=merchant, mode=LIVE, local_cents=20, network_cents=0)

        balance = CreditBalance.objects.get(user=customer, merchant=merchant, mode=LIVE)
        assert (balance.local_cents, balance.network_cents) == (30, 5)
        assert CreditEvent.objects.filter(user=customer).count() == 2

    def test_earning_nothing_writes_nothing(self, customer, merchant):
        assert earn_credits(
            user=customer, merchant=merchant, mode=LIVE, local_cents=0, network_cents=0
        ) is None
        assert not CreditEvent.objects.exists()

    def test_negative_earn_rejected(self, customer, merchant):
        with pytest.raises(NegativeAmountError):
            earn_credits(user=customer, merchant=merchant, mode=LIVE, local_cents=-1, network_cents=0)


@pytest.mark.django_db
class TestAvailableCredits:

    def test_network_pooled_across_merchants(self, customer, merchant, other_merchant, make_balance):
        make_balance(customer, merchant, local=100, network=50)
        make_balance(customer, other_merchant, local=999, network=70)

        available = get_available_credits(user=customer, merchant=merchant, mode=LIVE)

        assert available.local == 100
        assert available.network == 120

    def test_no_rows(self, customer, merchant):
        assert get_available_credits(user=customer, merchant=merchant, mode=LIVE) == (0, 0)

    def test_modes_are_segregated(self, customer, merchant, make_balance):
        make_balance(customer, merchant, local=100, network=50, mode=SIMULATED)

        assert get_available_credits(user=customer, merchant=merchant, mode=LIVE) == (0, 0)
        assert get_available_credits(user=customer, merchant=merchant, mode=SIMULATED) == (100, 50)


@pytest.mark.django_db
class TestSpendCredits:

    def test_spend_local_and_network_from_own_row(self, customer, merchant, make_balance):
        make_balance(customer, merchant, local=500, network=300)

        events = spend_credits(
            user=customer, merchant=merchant, mode=LIVE,
            local_cents=200, network_cents=100,
        )

        balance = CreditBalance.objects.get(user=customer, merchant=merchant)
        assert (balance.local_cents, balance.network_cents) == (300, 200)
        assert len(events) == 1
        assert events[0].local_cents_change == -200
        assert events[0].network_cents_change == -100

    def test_network_drains_own_row_then_oldest(
        self, customer, merchant, other_merchant, third_merchant, make_balance
    ):
        make_balance(customer, third_merchant, network=100, age_days=1)
        make_balance(customer, other_merchant, network=100, age_days=5)
        make_balance(customer, merchant, network=50)
        ref = uuid.uuid4()

        events = spend_credits(
            user=customer, merchant=merchant, mode=LIVE,
            local_cents=0, network_cents=200, transaction_ref=ref,
        )

        drained = {e.merchant_id: -e.network_cents_change for e in events}
        assert drained == {merchant.id: 50, other_merchant.id: 100, third_merchant.id: 50}
        assert CreditBalance.objects.get(merchant=third_merchant).network_cents == 50
        assert all(e.transaction_ref == ref for e in events)

    def test_insufficient_local_rolls_back(self, customer, merchant, make_balance):
        make_balance(customer, merchant, local=100, network=1000)

        with pytest.raises(InsufficientBalanceError):
            spend_credits(user=customer, merchant=merchant, mode=LIVE, local_cents=101, network_cents=10)

        balance = CreditBalance.objects.get(user=customer, merchant=merchant)
        assert (balance.local_cents, balance.network_cents) == (100, 1000)
        assert not CreditEvent.objects.exists()

    def test_insufficient_network_rolls_back(self, customer, merchant, other_merchant, make_balance):
        make_balance(customer, merchant, local=100, network=10)
        make_balance(customer, other_merchant, network=10)

        with pytest.raises(InsufficientBalanceError):
            spend_credits(user=customer, merchant=merchant, mode=LIVE, local_cents=50, network_cents=30)

        assert CreditBalance.objects.get(merchant=merchant).local_cents == 100
        assert CreditBalance.objects.get(merchant=other_merchant).network_cents == 10
        assert not CreditEvent.objects.exists()

    def test_local_credit_never_taken_from_other_merchant(self, customer, merchant, other_merchant, make_balance):
        make_balance(customer, other_merchant, local=1000)

        with pytest.raises(InsufficientBalanceError):
            spend_credits(user=customer, merchant=merchant, mode=LIVE, local_cents=1, network_cents=0)

    def test_zero_spend_is_noop(self, customer, merchant):
        assert spend_credits(user=customer, merchant=merchant, mode=LIVE, local_cents=0, network_cents=0) == []

    def test_negative_spend_rejected(self, customer, merchant):
        with pytest.raises(NegativeAmountError):
            spend_credits(user=customer, merchant=merchant, mode=LIVE, local_cents=0, network_cents=-1)

    def test_simulated_spend_leaves_live_untouched(self, customer, merchant, make_balance):
        make_balance(customer, merchant, local=100)
        make_balance(customer, merchant, local=100, mode=SIMULATED)

        spend_credits(user=customer, merchant=merchant, mode=SIMULATED, local_cents=60, network_cents=0)

        assert CreditBalance.objects.get(merchant=merchant, mode=LIVE).local_cents == 100
        assert CreditBalance.objects.get(merchant=merchant, mode=SIMULATED).local_cents == 40


@pytest.mark.django_db
class TestRestoreCredits:

    def test_restore_reverses_every_row(self, customer, merchant, other_merchant, make_balance):
        make_balance(customer, merchant, local=100, network=20)
        make_balance(customer, other_merchant, network=80, age_days=2)
        ref = uuid.uuid4()
        spend_credits(
            user=customer, merchant=merchant, mode=LIVE,
            local_cents=100, network_cents=90, transaction_ref=ref,
        )

        restored = restore_credits(transaction_ref=ref, description='Voided')

        assert restored.local == 100
        assert restored.network == 90
        assert restored.total == 190
        own = CreditBalance.objects.get(merchant=merchant)
        other = CreditBalance.objects.get(merchant=other_merchant)
        assert (own.local_cents, own.network_cents) == (100, 20)
        assert other.network_cents == 80

    def test_restore_is_idempotent(self, customer, merchant, make_balance):
        make_balance(customer, merchant, local=100)
        ref = uuid.uuid4()
        spend_credits(user=customer, merchant=merchant, mode=LIVE, local_cents=40, network_cents=0, transaction_ref=ref)

        restore_credits(transaction_ref=ref)
        second = restore_credits(transaction_ref=ref)

        assert second.total == 0
        assert CreditBalance.objects.get(merchant=merchant).local_cents == 100
        assert CreditEvent.objects.filter(event_type=CreditEventType.CREDIT_RESTORED).count() == 1

    def test_restore_unknown_ref(self):
        assert restore_credits(transaction_ref=uuid.uuid4()).total == 0


@pytest.mark.django_db
class TestHistoryAndReconstruction:

    def test_history_newest_first_and_filtered(self, customer, merchant, other_merchant):
        earn_credits(user=customer, merchant=merchant, mode=LIVE, local_cents=10, network_cents=0)
        earn_credits(user=customer, merchant=other_merchant, mode=LIVE, local_cents=20, network_cents=0)

        history = list(get_credit_history(user=customer, mode=LIVE))
        assert [e.local_cents_change for e in history] == [20, 10]

        mine = list(get_credit_history(user=customer, mode=LIVE, merchant=merchant))
        assert [e.local_cents_change for e in mine] == [10]

    def test_reconstruct_matches_stored(self, customer, merchant):
        ref = uuid.uuid4()
        earn_credits(user=customer, merchant=merchant, mode=LIVE, local_cents=300, network_cents=120)
        spend_credits(user=customer, merchant=merchant, mode=LIVE, local_cents=100, network_cents=20, transaction_ref=ref)
        restore_credits(transaction_ref=ref)
        spend_credits(user=customer, merchant=merchant, mode=LIVE, local_cents=50, network_cents=0)

        assert reconstruct_balance(user=customer, merchant=merchant, mode=LIVE) == (250, 120)
        check = verify_balance(user=customer, merchant=merchant, mode=LIVE)
        assert check.matches

    def test_verify_detects_drift(self, customer, merchant):
        earn_credits(user=customer, merchant=merchant, mode=LIVE, local_cents=300, network_cents=0)
        CreditBalance.objects.filter(user=customer, merchant=merchant).update(local_cents=999)

        check = verify_balance(user=customer, merchant=merchant, mode=LIVE)

        assert not check.matches
        assert check.stored.local == 999
        assert check.reconstructed.local == 300


@pytest.mark.django_db
class TestCreditEventAppendOnly:

    def test_event_cannot_be_modified(self, customer, merchant):
        event = earn_credits(user=customer, merchant=merchant, mode=LIVE, local_cents=1, network_cents=0)
        event.description = 'tampered'

        with pytest.raises(ValueError):
            event.save()

    def test_event_cannot_be_deleted(self, customer, merchant):
        event = earn_credits(user=customer, merchant=merchant, mode=LIVE, local_cents=1, network_cents=0)

        with pytest.raises(ValueError):
            event.delete()
