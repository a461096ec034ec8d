"""
Settlement batch tests.

Tests cover:
- Fee arithmetic and rounding
- Which transactions count towards a period
- Skipping empty merchants and existing settlements
- Marking a settlement paid
"""

import pytest
from datetime import date

from apps.credits.models import ExecutionMode
from apps.payments.models import TransactionStatus
from apps.settlements.models import Settlement, SettlementStatus
from apps.settlements.services import (
    calculate_fees,
    generate_settlements,
    mark_settlement_paid,
    InvalidPeriodError,
    SettlementNotFoundError,
    SettlementAlreadyPaidError,
)

PERIOD_START = date(2024, 3, 4)
PERIOD_END = date(2024, 3, 10)


class TestCalculateFees:

    def test_percentage_plus_fixed(self):
        assert calculate_fees(10000, 3, '2.00', 30) == 290

    def test_rounds_half_up(self):
        assert calculate_fees(150, 0, '1', 0) == 2
        assert calculate_fees(1001, 0, '2.5', 0) == 25

    def test_no_fees(self):
        assert calculate_fees(10000, 5, '0', 0) == 0


@pytest.mark.django_db
class TestGenerateSettlements:

    def test_rolls_up_completed_live_transactions(self, merchant, make_completed):
        make_completed(merchant, 6000, date(2024, 3, 4))
        make_completed(merchant, 4000, date(2024, 3, 10))

        run = generate_settlements(period_start=PERIOD_START, period_end=PERIOD_END)

        assert run.settlements_created == 1
        settlement = Settlement.objects.get(merchant=merchant)
        assert settlement.gross_cents == 10000
        assert settlement.transaction_count == 2
        assert settlement.fees_cents == 260
        assert settlement.net_cents == 9740
        assert settlement.status == SettlementStatus.PENDING

    def test_excludes_outside_window_other_modes_and_open(self, merchant, make_completed):
        make_completed(merchant, 1000, date(2024, 3, 5))
        make_completed(merchant, 9999, date(2024, 3, 3))
        make_completed(merchant, 9999, date(2024, 3, 11))
        make_completed(merchant, 9999, date(2024, 3, 5), mode=ExecutionMode.SIMULATED)
        make_completed(merchant, 9999, date(2024, 3, 5), status=TransactionStatus.VOIDED)

        generate_settlements(period_start=PERIOD_START, period_end=PERIOD_END)

        settlement = Settlement.objects.get(merchant=merchant)
        assert settlement.gross_cents == 1000
        assert settlement.transaction_count == 1

    def test_skips_merchant_with_nothing(self, merchant, quiet_merchant, make_completed):
        make_completed(merchant, 1000, date(2024, 3, 5))

        run = generate_settlements(period_start=PERIOD_START, period_end=PERIOD_END)

        assert run.skipped_empty == 1
        assert not Settlement.objects.filter(merchant=quiet_merchant).exists()

    def test_rerun_creates_nothing(self, merchant, make_completed):
        make_completed(merchant, 1000, date(2024, 3, 5))
        generate_settlements(period_start=PERIOD_START, period_end=PERIOD_END)

        run = generate_settlements(period_start=PERIOD_START, period_end=PERIOD_END)

        assert run.settlements_created == 0
        assert run.skipped_existing == 1
        assert Settlement.objects.count() == 1

    def test_dry_run_saves_nothing(self, merchant, make_completed):
        make_completed(merchant, 1000, date(2024, 3, 5))

        run = generate_settlements(period_start=PERIOD_START, period_end=PERIOD_END, dry_run=True)

        assert run.settlements_created == 1
        assert run.settlements[0].net_cents == 1000 - 50
        assert not Settlement.objects.exists()

    def test_inactive_merchant_skipped(self, merchant, make_completed):
        make_completed(merchant, 1000, date(2024, 3, 5))
        merchant.is_active = False
        merchant.save()

        run = generate_settlements(period_start=PERIOD_START, period_end=PERIOD_END)

        assert run.settlements_created == 0

    def test_reversed_period(self):
        with pytest.raises(InvalidPeriodError):
            generate_settlements(period_start=PERIOD_END, period_end=PERIOD_START)


@pytest.mark.django_db
class TestMarkSettlementPaid:

    def test_mark_paid(self, merchant, make_completed):
        make_completed(merchant, 1000, date(2024, 3, 5))
        settlement = generate_settlements(period_start=PERIOD_START, period_end=PERIOD_END).settlements[0]

        paid = mark_settlement_paid(settlement_id=settlement.id)

        assert paid.status == SettlementStatus.PAID
        assert paid.paid_at is not None

    def test_mark_paid_twice(self, merchant, make_completed):
        make_completed(merchant, 1000, date(2024, 3, 5))
        settlement = generate_settlements(period_start=PERIOD_START, period_end=PERIOD_END).settlements[0]
        mark_settlement_paid(settlement_id=settlement.id)

        with pytest.raises(SettlementAlreadyPaidError):
            mark_settlement_paid(settlement_id=settlement.id)

    def test_unknown_settlement(self):
        with pytest.raises(SettlementNotFoundError):
            mark_settlement_paid(settlement_id='not-a-uuid')
