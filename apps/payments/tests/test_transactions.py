"""
Service layer tests for the pending transaction lifecycle.

Tests cover:
- Opening bills and lane token assignment
- Terminal lookup and claiming with lane tokens
- Live credit selection
- Merchant confirmation and capture on confirm
- Idempotent completion, card declines and grab redemption
- Voiding with credit restoration
- Expiry on contact and the sweep
- Simulated mode segregation
"""

import pytest
from datetime import timedelta
from decimal import Decimal

from apps.credits.models import CreditBalance, CreditEvent, CreditEventType, ExecutionMode
from apps.credits.services import (
    ExceedsBalanceError,
    ExceedsCapError,
    NegativeAmountError,
    InsufficientBalanceError,
)
from apps.merchants.models import Deal, Grab, GrabStatus, RewardMode
from apps.payments.models import (
    PendingTransaction,
    TransactionStatus,
    PaymentFlow,
    PaymentMethod,
    MerchantNotification,
    NotificationType,
)
from apps.payments.runtime import ExecutionContext, SeededCodeGenerator, simulated_request_context
from apps.payments.services.processors import MockCardProcessor
from apps.payments.services import (
    get_transaction,
    get_transaction_status,
    find_pending_for_terminal,
    claim_with_token,
    select_credits,
    confirm_transaction,
    complete_transaction,
    void_transaction,
    expire_stale_transactions,
    # Exceptions
    TransactionNotFoundError,
    TransactionExpiredError,
    TransactionClosedError,
    InvalidStateError,
    InvalidCodeError,
    TokenRequiredError,
    FlowDisabledError,
    CardDeclinedError,
    InternalProcessingError,
    CodeExhaustedError,
)

S = TransactionStatus


def select_and_confirm(txn, user, ctx, local=0, network=0):
    selection = select_credits(
        transaction_id=txn.id, user=user, local_cents=local, network_cents=network, ctx=ctx
    )
    return confirm_transaction(transaction_id=txn.id, code=selection.customer_code, ctx=ctx)


# =============================================================================
# Create
# =============================================================================

@pytest.mark.django_db
class TestCreatePendingTransaction:

    def test_new_bill_awaits_customer(self, make_transaction, ctx):
        txn = make_transaction(amount_cents=2000)

        assert txn.status == S.AWAITING_CUSTOMER
        assert txn.original_amount == 2000
        assert txn.final_amount == 2000
        assert txn.live_net_amount == 2000
        assert txn.credit_cap == Decimal('0.5')
        assert txn.cashback_pct == Decimal('5.00')
        assert len(txn.payment_code) == 6 and txn.payment_code.isdigit()
        assert txn.created_at == ctx.clock.now()
        assert txn.expires_at == ctx.clock.now() + timedelta(seconds=120)
        assert txn.mode == ExecutionMode.LIVE

    def test_uncapped_flow(self, make_transaction):
        txn = make_transaction(flow=PaymentFlow.MERCHANT_ENTRY)

        assert txn.credit_cap is None
        assert txn.terminal_id is None

    def test_deal_discount_applied_up_front(self, make_transaction, merchant):
        deal = Deal.objects.create(
            merchant=merchant, title='10% off', reward_mode=RewardMode.DISCOUNT,
            discount_pct=Decimal('10'),
        )
        txn = make_transaction(amount_cents=1999, deal=deal)

        assert txn.discount_applied == 199
        assert txn.final_amount == 1800
        assert txn.payable_before_credits == 1800

    def test_negative_amount_rejected(self, make_transaction):
        with pytest.raises(NegativeAmountError):
            make_transaction(amount_cents=-1)

    def test_token_queue_requires_terminal(self, make_transaction):
        with pytest.raises(ValueError):
            make_transaction(terminal_id=None)

    def test_disabled_flow_rejected(self, make_transaction, settings):
        settings.ENABLED_PAYMENT_FLOWS = ['merchant_entry']

        with pytest.raises(FlowDisabledError):
            make_transaction(flow=PaymentFlow.TOKEN_QUEUE)

    def test_single_bill_has_no_lane_token(self, make_transaction):
        assert make_transaction().lane_token is None

    def test_second_bill_tokens_both(self, make_transaction):
        first = make_transaction(amount_cents=2000)
        second = make_transaction(amount_cents=850)
        first.refresh_from_db()

        assert first.lane_token
        assert second.lane_token
        assert first.lane_token != second.lane_token
        assert first.version == 2

    def test_other_terminal_unaffected(self, make_transaction):
        first = make_transaction(terminal_id='T1')
        make_transaction(terminal_id='T2')
        first.refresh_from_db()

        assert first.lane_token is None

    def test_stale_bill_at_terminal_is_expired(self, make_transaction, clock):
        stale = make_transaction()
        clock.advance(seconds=121)
        fresh = make_transaction()
        stale.refresh_from_db()

        assert stale.status == S.EXPIRED
        assert fresh.lane_token is None


# =============================================================================
# Terminal lookup & claim
# =============================================================================

@pytest.mark.django_db
class TestTerminalMatching:

    def test_single_bill_auto_matches(self, make_transaction, merchant, ctx):
        txn = make_transaction()

        match = find_pending_for_terminal(merchant=merchant, terminal_id='T1', ctx=ctx)

        assert match.auto_match
        assert not match.needs_token
        assert match.transaction.id == txn.id

    def test_several_bills_need_token(self, make_transaction, merchant, ctx):
        make_transaction(amount_cents=2000)
        make_transaction(amount_cents=850)

        match = find_pending_for_terminal(merchant=merchant, terminal_id='T1', ctx=ctx)

        assert match.needs_token
        assert sorted(c.amount_cents for c in match.candidates) == [850, 2000]
        assert all(c.token for c in match.candidates)

    def test_nothing_open(self, merchant, ctx):
        with pytest.raises(TransactionNotFoundError):
            find_pending_for_terminal(merchant=merchant, terminal_id='T1', ctx=ctx)

    def test_authorized_bill_is_not_a_candidate(self, make_transaction, customer, merchant, ctx):
        paid = make_transaction(amount_cents=2000)
        waiting = make_transaction(amount_cents=850)
        PendingTransaction.objects.filter(pk=paid.pk).update(status=S.AUTHORIZED)

        match = find_pending_for_terminal(merchant=merchant, terminal_id='T1', ctx=ctx)
        claimed = claim_with_token(terminal_id='T1', user=customer, ctx=ctx)

        assert match.auto_match
        assert match.transaction.id == waiting.id
        assert claimed.id == waiting.id

    def test_claim_single_without_token(self, make_transaction, customer, ctx):
        txn = make_transaction()

        claimed = claim_with_token(terminal_id='T1', user=customer, ctx=ctx)

        assert claimed.id == txn.id
        assert claimed.user_id == customer.id
        assert claimed.claimed_at == ctx.clock.now()

    def test_claim_without_token_when_busy(self, make_transaction, customer, ctx):
        make_transaction()
        make_transaction()

        with pytest.raises(TokenRequiredError) as exc_info:
            claim_with_token(terminal_id='T1', user=customer, ctx=ctx)

        assert len(exc_info.value.candidates) == 2

    def test_claim_each_bill_by_its_token(self, make_transaction, customer, other_customer, ctx):
        first = make_transaction(amount_cents=2000)
        second = make_transaction(amount_cents=850)
        first.refresh_from_db()

        mine = claim_with_token(terminal_id='T1', user=customer, ctx=ctx, token=first.lane_token.lower())
        theirs = claim_with_token(terminal_id='T1', user=other_customer, ctx=ctx, token=second.lane_token)

        assert mine.id == first.id
        assert theirs.id == second.id

    def test_token_claimed_by_someone_else(self, make_transaction, customer, other_customer, ctx):
        first = make_transaction()
        make_transaction()
        first.refresh_from_db()
        claim_with_token(terminal_id='T1', user=customer, ctx=ctx, token=first.lane_token)

        with pytest.raises(TransactionNotFoundError):
            claim_with_token(terminal_id='T1', user=other_customer, ctx=ctx, token=first.lane_token)

    def test_token_from_another_terminal(self, make_transaction, customer, ctx):
        make_transaction(terminal_id='T1')
        make_transaction(terminal_id='T1')
        elsewhere = make_transaction(terminal_id='T2')
        make_transaction(terminal_id='T2')
        taken = set(PendingTransaction.objects.filter(terminal_id='T1').values_list('lane_token', flat=True))
        foreign = next(t for t in ('ZZZZ', 'YYYY') if t not in taken)
        PendingTransaction.objects.filter(pk=elsewhere.pk).update(lane_token=foreign)

        with pytest.raises(TransactionNotFoundError):
            claim_with_token(terminal_id='T1', user=customer, ctx=ctx, token=foreign)

    def test_unknown_token(self, make_transaction, customer, ctx):
        make_transaction()
        make_transaction()

        with pytest.raises(TransactionNotFoundError):
            claim_with_token(terminal_id='T1', user=customer, ctx=ctx, token='0000')


# =============================================================================
# Credit selection
# =============================================================================

@pytest.mark.django_db
class TestSelectCredits:

    def test_selection_updates_live_net_without_debit(self, make_transaction, funded_customer, merchant, ctx, balance_of):
        txn = make_transaction(amount_cents=2000)

        selection = select_credits(
            transaction_id=txn.id, user=funded_customer, local_cents=1000, network_cents=0, ctx=ctx
        )

        assert selection.live_net_amount == 1000
        assert selection.local_available == 1200
        assert selection.network_available == 600
        assert len(selection.customer_code) == 6
        txn.refresh_from_db()
        assert txn.status == S.AWAITING_MERCHANT_CONFIRM
        assert txn.customer_selected_local_credits == 1000
        assert txn.local_credits_used == 0
        assert balance_of(funded_customer, merchant) == (1200, 600)
        assert not CreditEvent.objects.exists()

    def test_selection_above_cap_rejected(self, make_transaction, funded_customer, ctx):
        txn = make_transaction(amount_cents=2000)

        with pytest.raises(ExceedsCapError):
            select_credits(transaction_id=txn.id, user=funded_customer, local_cents=800, network_cents=300, ctx=ctx)

        txn.refresh_from_db()
        assert txn.status == S.AWAITING_CUSTOMER
        assert txn.live_net_amount == 2000

    def test_selection_above_balance_rejected(self, make_transaction, funded_customer, ctx):
        txn = make_transaction(amount_cents=5000)

        with pytest.raises(ExceedsBalanceError):
            select_credits(transaction_id=txn.id, user=funded_customer, local_cents=0, network_cents=700, ctx=ctx)

    def test_reselect_issues_new_code(self, make_transaction, funded_customer, ctx):
        txn = make_transaction(amount_cents=2000)

        first = select_credits(transaction_id=txn.id, user=funded_customer, local_cents=100, network_cents=0, ctx=ctx)
        second = select_credits(transaction_id=txn.id, user=funded_customer, local_cents=300, network_cents=200, ctx=ctx)

        assert second.live_net_amount == 1500
        assert second.transaction.version == first.transaction.version + 1
        if first.customer_code != second.customer_code:
            with pytest.raises(InvalidCodeError):
                confirm_transaction(transaction_id=txn.id, code=first.customer_code, ctx=ctx)

    def test_other_customers_bill(self, make_transaction, customer, other_customer, ctx):
        txn = make_transaction()
        claim_with_token(terminal_id='T1', user=customer, ctx=ctx)

        with pytest.raises(TransactionNotFoundError):
            select_credits(transaction_id=txn.id, user=other_customer, local_cents=0, network_cents=0, ctx=ctx)

    def test_unknown_transaction(self, customer, ctx):
        with pytest.raises(TransactionNotFoundError):
            select_credits(
                transaction_id='00000000-0000-0000-0000-000000000000',
                user=customer, local_cents=0, network_cents=0, ctx=ctx,
            )


# =============================================================================
# Confirmation
# =============================================================================

@pytest.mark.django_db
class TestConfirmTransaction:

    def test_wrong_code_changes_nothing(self, make_transaction, funded_customer, merchant, ctx, balance_of):
        txn = make_transaction(flow=PaymentFlow.MERCHANT_ENTRY)
        selection = select_credits(transaction_id=txn.id, user=funded_customer, local_cents=500, network_cents=0, ctx=ctx)
        wrong = '000000' if selection.customer_code != '000000' else '111111'

        with pytest.raises(InvalidCodeError):
            confirm_transaction(transaction_id=txn.id, code=wrong, ctx=ctx)

        txn.refresh_from_db()
        assert txn.status == S.AWAITING_MERCHANT_CONFIRM
        assert balance_of(funded_customer, merchant) == (1200, 600)

    def test_confirm_before_selection(self, make_transaction, ctx):
        txn = make_transaction(flow=PaymentFlow.MERCHANT_ENTRY)

        with pytest.raises(InvalidStateError):
            confirm_transaction(transaction_id=txn.id, code='123456', ctx=ctx)

    def test_confirm_authorizes_and_debits(
        self, make_transaction, funded_customer, merchant, ctx, balance_of, django_capture_on_commit_callbacks
    ):
        txn = make_transaction(amount_cents=2000, flow=PaymentFlow.MERCHANT_ENTRY)

        with django_capture_on_commit_callbacks(execute=True):
            result = select_and_confirm(txn, funded_customer, ctx, local=1200, network=600)

        assert result.completion is None
        assert result.net_payable == 200
        txn.refresh_from_db()
        assert txn.status == S.AUTHORIZED
        assert txn.local_credits_used == 1200
        assert txn.network_credits_used == 600
        assert txn.final_amount == 200
        assert txn.authorized_at == ctx.clock.now()
        assert balance_of(funded_customer, merchant) == (0, 0)
        assert MerchantNotification.objects.filter(
            merchant=merchant, notification_type=NotificationType.PAYMENT_AUTHORIZED
        ).exists()

    def test_capture_on_confirm_completes(self, make_transaction, funded_customer, merchant, ctx, balance_of):
        txn = make_transaction(amount_cents=2000)
        claim_with_token(terminal_id='T1', user=funded_customer, ctx=ctx)

        result = select_and_confirm(txn, funded_customer, ctx, local=1000)

        assert result.completion is not None
        assert result.completion.credits_earned.total == 50
        txn.refresh_from_db()
        assert txn.status == S.COMPLETED
        assert txn.final_amount == 1000
        assert balance_of(funded_customer, merchant) == (200 + 35, 600 + 15)

    def test_balance_spent_elsewhere_before_confirm(self, make_transaction, funded_customer, merchant, ctx):
        txn = make_transaction(flow=PaymentFlow.MERCHANT_ENTRY)
        selection = select_credits(transaction_id=txn.id, user=funded_customer, local_cents=1000, network_cents=0, ctx=ctx)
        CreditBalance.objects.filter(user=funded_customer, merchant=merchant).update(local_cents=100)

        with pytest.raises(InsufficientBalanceError):
            confirm_transaction(transaction_id=txn.id, code=selection.customer_code, ctx=ctx)

        txn.refresh_from_db()
        assert txn.status == S.AWAITING_MERCHANT_CONFIRM


# =============================================================================
# Completion
# =============================================================================

@pytest.mark.django_db
class TestCompleteTransaction:

    def test_complete_authorized(self, make_transaction, funded_customer, merchant, ctx, balance_of):
        txn = make_transaction(amount_cents=2000, flow=PaymentFlow.MERCHANT_ENTRY)
        select_and_confirm(txn, funded_customer, ctx, local=1200, network=600)

        result = complete_transaction(payment_code=txn.payment_code, ctx=ctx, merchant=merchant)

        assert not result.already_processed
        assert result.credits_earned.total == 10
        assert (result.credits_earned.local, result.credits_earned.network) == (7, 3)
        assert result.completed_at == ctx.clock.now()
        assert balance_of(funded_customer, merchant) == (7, 3)

        funded_customer.refresh_from_db()
        assert funded_customer.total_redemptions == 1
        assert funded_customer.total_savings_cents == 1800
        assert funded_customer.lifetime_credits_earned_cents == 10

    def test_complete_twice_is_idempotent(self, make_transaction, funded_customer, merchant, ctx, balance_of):
        txn = make_transaction(amount_cents=2000, flow=PaymentFlow.MERCHANT_ENTRY)
        select_and_confirm(txn, funded_customer, ctx, local=500)

        first = complete_transaction(payment_code=txn.payment_code, ctx=ctx, merchant=merchant)
        balance_after_first = balance_of(funded_customer, merchant)
        events_after_first = CreditEvent.objects.count()
        second = complete_transaction(payment_code=txn.payment_code, ctx=ctx, merchant=merchant)

        assert second.already_processed
        assert second.credits_earned == first.credits_earned
        assert second.completed_at == first.completed_at
        assert balance_of(funded_customer, merchant) == balance_after_first
        assert CreditEvent.objects.count() == events_after_first

    def test_complete_before_code_confirmed_rejected(
        self, make_transaction, funded_customer, merchant, ctx, balance_of
    ):
        txn = make_transaction(amount_cents=2000, flow=PaymentFlow.MERCHANT_ENTRY)
        select_credits(transaction_id=txn.id, user=funded_customer, local_cents=500, network_cents=0, ctx=ctx)

        with pytest.raises(InvalidStateError):
            complete_transaction(payment_code=txn.payment_code, ctx=ctx, merchant=merchant)

        txn.refresh_from_db()
        assert txn.status == S.AWAITING_MERCHANT_CONFIRM
        assert balance_of(funded_customer, merchant) == (1200, 600)
        assert not CreditEvent.objects.filter(transaction_ref=txn.id).exists()

    def test_free_checkout_skips_card_charge(self, make_transaction, funded_customer, merchant, ctx, balance_of):
        ctx.card_processor = MockCardProcessor(decline_above_cents=-1)
        txn = make_transaction(
            amount_cents=1800, flow=PaymentFlow.MERCHANT_ENTRY, payment_method=PaymentMethod.CARD
        )
        select_and_confirm(txn, funded_customer, ctx, local=1200, network=600)

        result = complete_transaction(payment_code=txn.payment_code, ctx=ctx, merchant=merchant)

        txn.refresh_from_db()
        assert txn.status == S.COMPLETED
        assert txn.final_amount == 0
        assert txn.processor_reference == ''
        assert result.credits_earned.total == 0
        assert balance_of(funded_customer, merchant) == (0, 0)
        assert CreditEvent.objects.filter(
            transaction_ref=txn.id, event_type=CreditEventType.CREDIT_USED
        ).exists()

    def test_complete_without_customer(self, make_transaction, merchant, ctx):
        txn = make_transaction(flow=PaymentFlow.MERCHANT_ENTRY)

        with pytest.raises(InvalidStateError):
            complete_transaction(payment_code=txn.payment_code, ctx=ctx, merchant=merchant)

    def test_complete_voided(self, make_transaction, merchant, ctx):
        txn = make_transaction(flow=PaymentFlow.MERCHANT_ENTRY)
        void_transaction(payment_code=txn.payment_code, ctx=ctx, merchant=merchant)

        with pytest.raises(TransactionClosedError):
            complete_transaction(payment_code=txn.payment_code, ctx=ctx, merchant=merchant)

    def test_unknown_payment_code(self, merchant, ctx):
        with pytest.raises(TransactionNotFoundError):
            complete_transaction(payment_code='999999', ctx=ctx, merchant=merchant)

    def test_card_decline_keeps_transaction_open(self, make_transaction, funded_customer, merchant, ctx):
        txn = make_transaction(
            amount_cents=200_000, flow=PaymentFlow.MERCHANT_ENTRY, payment_method=PaymentMethod.CARD
        )
        select_and_confirm(txn, funded_customer, ctx)

        with pytest.raises(CardDeclinedError):
            complete_transaction(payment_code=txn.payment_code, ctx=ctx, merchant=merchant)

        txn.refresh_from_db()
        assert txn.status == S.AUTHORIZED
        assert not CreditEvent.objects.filter(event_type=CreditEventType.CREDIT_EARNED).exists()

    def test_card_charge_records_reference(self, make_transaction, funded_customer, merchant, ctx):
        txn = make_transaction(
            amount_cents=2000, flow=PaymentFlow.MERCHANT_ENTRY, payment_method=PaymentMethod.CARD
        )
        select_and_confirm(txn, funded_customer, ctx)

        complete_transaction(payment_code=txn.payment_code, ctx=ctx, merchant=merchant)

        txn.refresh_from_db()
        assert txn.processor_reference.startswith('mock_')

    def test_grab_redemption(self, make_transaction, customer, merchant, ctx, balance_of):
        deal = Deal.objects.create(
            merchant=merchant, title='10% off, 8% back', reward_mode=RewardMode.BOTH,
            cashback_pct=Decimal('8'), discount_pct=Decimal('10'),
        )
        grab = Grab.objects.create(
            deal=deal, merchant=merchant, user=customer, pin='424242', qr_token='grab-qr',
            expires_at=ctx.clock.now() + timedelta(hours=1),
        )

        txn = make_transaction(amount_cents=2000, flow=PaymentFlow.GRAB_PIN, grab=grab)
        assert txn.user_id == customer.id
        assert txn.final_amount == 1800

        select_and_confirm(txn, customer, ctx)
        result = complete_transaction(payment_code=txn.payment_code, ctx=ctx, merchant=merchant)

        assert result.credits_earned.total == 144
        assert balance_of(customer, merchant) == (100, 44)
        grab.refresh_from_db()
        assert grab.status == GrabStatus.USED

    def test_status_lookup_by_code(self, make_transaction, merchant, ctx):
        txn = make_transaction()

        found = get_transaction_status(payment_code=txn.payment_code, ctx=ctx, merchant=merchant)

        assert found.id == txn.id


# =============================================================================
# Void
# =============================================================================

@pytest.mark.django_db
class TestVoidTransaction:

    def test_void_authorized_restores_credit(self, make_transaction, funded_customer, merchant, ctx, balance_of):
        txn = make_transaction(amount_cents=2000, flow=PaymentFlow.MERCHANT_ENTRY)
        select_and_confirm(txn, funded_customer, ctx, local=1000, network=500)

        result = void_transaction(payment_code=txn.payment_code, ctx=ctx, merchant=merchant, reason='Changed mind')

        assert result.credits_restored.total == 1500
        assert result.voided_at == ctx.clock.now()
        txn.refresh_from_db()
        assert txn.status == S.VOIDED
        assert txn.void_reason == 'Changed mind'
        assert balance_of(funded_customer, merchant) == (1200, 600)

    def test_void_before_debit(self, make_transaction, merchant, ctx):
        txn = make_transaction()

        result = void_transaction(payment_code=txn.payment_code, ctx=ctx, merchant=merchant)

        assert result.credits_restored.total == 0
        assert result.transaction.status == S.VOIDED

    def test_void_completed_rejected(self, make_transaction, funded_customer, merchant, ctx):
        txn = make_transaction(flow=PaymentFlow.MERCHANT_ENTRY)
        select_and_confirm(txn, funded_customer, ctx)
        complete_transaction(payment_code=txn.payment_code, ctx=ctx, merchant=merchant)

        with pytest.raises(TransactionClosedError):
            void_transaction(payment_code=txn.payment_code, ctx=ctx, merchant=merchant)


# =============================================================================
# Expiry
# =============================================================================

@pytest.mark.django_db
class TestExpiry:

    def test_select_after_expiry(self, make_transaction, funded_customer, ctx, clock):
        txn = make_transaction()
        clock.advance(seconds=121)

        with pytest.raises(TransactionExpiredError):
            select_credits(transaction_id=txn.id, user=funded_customer, local_cents=0, network_cents=0, ctx=ctx)

        txn.refresh_from_db()
        assert txn.status == S.EXPIRED
        assert txn.expired_at == clock.now()

    def test_confirm_after_expiry(self, make_transaction, funded_customer, ctx, clock):
        txn = make_transaction(flow=PaymentFlow.MERCHANT_ENTRY)
        selection = select_credits(transaction_id=txn.id, user=funded_customer, local_cents=100, network_cents=0, ctx=ctx)
        clock.advance(seconds=301)

        with pytest.raises(TransactionExpiredError):
            confirm_transaction(transaction_id=txn.id, code=selection.customer_code, ctx=ctx)

        txn.refresh_from_db()
        assert txn.status == S.EXPIRED

    def test_expired_stays_expired(self, make_transaction, merchant, ctx, clock):
        txn = make_transaction()
        clock.advance(seconds=121)
        with pytest.raises(TransactionExpiredError):
            void_transaction(payment_code=txn.payment_code, ctx=ctx, merchant=merchant)

        with pytest.raises(TransactionExpiredError):
            void_transaction(payment_code=txn.payment_code, ctx=ctx, merchant=merchant)
        with pytest.raises(TransactionExpiredError):
            complete_transaction(payment_code=txn.payment_code, ctx=ctx, merchant=merchant)

        txn.refresh_from_db()
        assert txn.status == S.EXPIRED

    def test_expiring_authorized_restores_credit(self, make_transaction, funded_customer, merchant, ctx, clock, balance_of):
        txn = make_transaction(flow=PaymentFlow.MERCHANT_ENTRY)
        select_and_confirm(txn, funded_customer, ctx, local=1000)
        assert balance_of(funded_customer, merchant) == (200, 600)
        clock.advance(seconds=301)

        with pytest.raises(TransactionExpiredError):
            complete_transaction(payment_code=txn.payment_code, ctx=ctx, merchant=merchant)

        assert balance_of(funded_customer, merchant) == (1200, 600)

    def test_read_expires_without_raising(self, make_transaction, ctx, clock):
        txn = make_transaction()
        clock.advance(seconds=121)

        read = get_transaction(transaction_id=txn.id, ctx=ctx)

        assert read.status == S.EXPIRED

    def test_not_stale_at_exact_expiry(self, make_transaction, ctx, clock):
        txn = make_transaction()
        clock.advance(seconds=120)

        assert get_transaction(transaction_id=txn.id, ctx=ctx).status == S.AWAITING_CUSTOMER

    def test_sweep(self, make_transaction, ctx, clock):
        make_transaction(terminal_id='T1')
        make_transaction(terminal_id='T2')
        keeper = make_transaction(flow=PaymentFlow.MERCHANT_ENTRY)
        clock.advance(seconds=200)

        assert expire_stale_transactions(ctx=ctx) == 2
        assert expire_stale_transactions(ctx=ctx) == 0
        keeper.refresh_from_db()
        assert keeper.status == S.AWAITING_CUSTOMER


# =============================================================================
# Simulated mode
# =============================================================================

@pytest.mark.django_db
class TestSimulatedMode:

    def test_simulated_run_uses_segregated_ledger(self, make_transaction, funded_customer, merchant, sim_ctx, balance_of):
        CreditBalance.objects.create(
            user=funded_customer, merchant=merchant, mode=ExecutionMode.SIMULATED,
            local_cents=500, network_cents=0,
        )
        txn = make_transaction(amount_cents=2000, flow=PaymentFlow.MERCHANT_ENTRY, context=sim_ctx)
        assert txn.mode == ExecutionMode.SIMULATED

        select_and_confirm(txn, funded_customer, sim_ctx, local=500)
        result = complete_transaction(payment_code=txn.payment_code, ctx=sim_ctx, merchant=merchant)

        assert result.credits_earned.total == 75
        assert balance_of(funded_customer, merchant, ExecutionMode.SIMULATED) == (52, 23)
        assert balance_of(funded_customer, merchant) == (1200, 600)

        funded_customer.refresh_from_db()
        assert funded_customer.total_redemptions == 0

    def test_live_context_cannot_see_simulated(self, make_transaction, merchant, sim_ctx, ctx):
        txn = make_transaction(flow=PaymentFlow.MERCHANT_ENTRY, context=sim_ctx)

        with pytest.raises(TransactionNotFoundError):
            get_transaction(transaction_id=txn.id, ctx=ctx)
        with pytest.raises(TransactionNotFoundError):
            complete_transaction(payment_code=txn.payment_code, ctx=ctx, merchant=merchant)

    def test_simulated_context_is_deterministic(self, notifier):
        first = ExecutionContext.simulated(seed=3, notifier=notifier)
        second = ExecutionContext.simulated(seed=3, notifier=notifier)

        assert first.clock.now() == second.clock.now()
        assert first.codes.digits(6) == second.codes.digits(6)
        assert first.is_simulated

    def test_simulated_card_always_approves(self, make_transaction, funded_customer, merchant, sim_ctx):
        txn = make_transaction(
            amount_cents=500_000, flow=PaymentFlow.MERCHANT_ENTRY,
            payment_method=PaymentMethod.CARD, context=sim_ctx,
        )
        select_and_confirm(txn, funded_customer, sim_ctx)

        complete_transaction(payment_code=txn.payment_code, ctx=sim_ctx, merchant=merchant)

        txn.refresh_from_db()
        assert txn.processor_reference == f'sim_{txn.payment_code}_500000'

    def test_request_contexts_keep_drawing_fresh_codes(self, make_transaction):
        txns = [
            make_transaction(flow=PaymentFlow.MERCHANT_ENTRY, context=simulated_request_context())
            for _ in range(12)
        ]

        assert len({t.payment_code for t in txns}) == 12
        assert [t.created_at for t in txns] == sorted(t.created_at for t in txns)
        assert txns[-1].created_at > txns[0].created_at


class RepeatingCodes(SeededCodeGenerator):
    """Always draws the same digits."""

    def digits(self, length):
        return '1' * length


@pytest.mark.django_db
class TestCodeExhaustion:

    def test_exhausted_payment_codes_raise_service_error(self, make_transaction, merchant, ctx):
        ctx.codes = RepeatingCodes()
        make_transaction(flow=PaymentFlow.MERCHANT_ENTRY)

        with pytest.raises(CodeExhaustedError) as exc_info:
            make_transaction(flow=PaymentFlow.MERCHANT_ENTRY)

        assert isinstance(exc_info.value, InternalProcessingError)
        assert exc_info.value.retryable
        assert PendingTransaction.objects.filter(merchant=merchant).count() == 1
