"""Tests for derived metrics."""

from decimal import Decimal

from family_fund.ledger import (
    account_shortfall,
    adjust_actual_balance,
    apply_transaction,
    family_shortfall,
    summarize,
    total_actual,
    total_target,
)
from family_fund.models.fund import TransactionType

from tests.conftest import MUMMY_ID, VAIBHAV_ID


class TestShortfall:
    """Shortfall = SPEND - PAPA_TOPUP per account."""

    def test_fresh_fund_has_no_shortfall(self, state):
        assert account_shortfall(state, MUMMY_ID) == Decimal("0")
        assert family_shortfall(state) == Decimal("0")

    def test_deposits_do_not_count(self, state):
        apply_transaction(state, MUMMY_ID, TransactionType.DEPOSIT, 5000, "Interest")
        assert account_shortfall(state, MUMMY_ID) == Decimal("0")

    def test_unknown_account_is_zero(self, state):
        assert account_shortfall(state, "nope") == Decimal("0")

    def test_surplus_does_not_offset_other_account(self, state):
        """Test family shortfall only sums positive per-account shortfalls."""
        apply_transaction(state, MUMMY_ID, TransactionType.PAPA_TOPUP, 9000, "Advance")
        apply_transaction(state, VAIBHAV_ID, TransactionType.SPEND, 3000, "Books")

        assert account_shortfall(state, MUMMY_ID) == Decimal("-9000")
        assert account_shortfall(state, VAIBHAV_ID) == Decimal("3000")
        assert family_shortfall(state) == Decimal("3000")

    def test_adjustments_do_not_move_shortfall(self, state):
        apply_transaction(state, VAIBHAV_ID, TransactionType.SPEND, 3000, "Books")
        adjust_actual_balance(state, VAIBHAV_ID, 100000, "Bank says so")
        assert account_shortfall(state, VAIBHAV_ID) == Decimal("3000")


class TestSummary:
    """Tests for the dashboard read model."""

    def test_totals(self, state):
        apply_transaction(state, MUMMY_ID, TransactionType.SPEND, 4000, "x")
        assert total_target(state) == Decimal("300000")
        assert total_actual(state) == Decimal("296000")

    def test_summarize(self, state):
        apply_transaction(state, MUMMY_ID, TransactionType.SPEND, 4000, "x")

        summary = summarize(state)

        mummy = next(a for a in summary.accounts if a.account_id == MUMMY_ID)
        assert mummy.shortfall == Decimal("4000")
        assert mummy.target_gap == Decimal("4000")
        assert mummy.is_fully_covered is False
        vaibhav = next(a for a in summary.accounts if a.account_id == VAIBHAV_ID)
        assert vaibhav.is_fully_covered is True
        assert summary.family_shortfall == Decimal("4000")
        assert summary.total_actual == Decimal("296000")

    def test_summary_serializes_money_as_numbers(self, state):
        data = summarize(state).model_dump(mode="json")
        assert data["total_target"] == 300000
