"""
Derived Metrics

Nothing here is stored. Shortfall and totals are recomputed from the fund
state on every read, so they can never drift from the ledger.

Shortfall = unreimbursed spending = sum(SPEND) - sum(PAPA_TOPUP).
Mandate (target) changes do not affect it, and neither do DEPOSITs.
"""

from decimal import Decimal
from typing import Iterable

from pydantic import BaseModel, Field

from family_fund.models.fund import (
    AccountName,
    FundState,
    Money,
    Transaction,
    TransactionType,
)


class AccountSummary(BaseModel):
    """Read model for one account card on the dashboard."""

    account_id: str
    name: AccountName
    target_balance: Money
    actual_balance: Money
    shortfall: Money = Field(
        ...,
        description="Unreimbursed spending; negative means surplus"
    )
    target_gap: Money = Field(
        ...,
        description="target_balance - actual_balance"
    )

    @property
    def is_fully_covered(self) -> bool:
        return self.shortfall <= 0


class FundSummary(BaseModel):
    """Family-level totals."""

    accounts: list[AccountSummary] = Field(default_factory=list)
    total_target: Money
    total_actual: Money
    family_shortfall: Money = Field(
        ...,
        description="Sum of positive per-account shortfalls"
    )


def shortfall_of(transactions: Iterable[Transaction]) -> Decimal:
    spent = Decimal(0)
    reimbursed = Decimal(0)
    for tx in transactions:
        if tx.type is TransactionType.SPEND:
            spent += tx.amount
        elif tx.type is TransactionType.PAPA_TOPUP:
            reimbursed += tx.amount
    return spent - reimbursed


def account_shortfall(state: FundState, account_id: str) -> Decimal:
    """Shortfall for one account (unknown ids have no transactions, so 0)."""
    return shortfall_of(state.transactions_for(account_id))


def family_shortfall(state: FundState) -> Decimal:
    """
    What the family still owes across all accounts.

    A surplus on one account does not offset a shortfall on another.
    """
    return sum(
        (max(Decimal(0), account_shortfall(state, account.id)) for account in state.accounts),
        Decimal(0),
    )


def total_target(state: FundState) -> Decimal:
    return sum((account.target_balance for account in state.accounts), Decimal(0))


def total_actual(state: FundState) -> Decimal:
    return sum((account.actual_balance for account in state.accounts), Decimal(0))


def summarize(state: FundState) -> FundSummary:
    summaries = [
        AccountSummary(
            account_id=account.id,
            name=account.name,
            target_balance=account.target_balance,
            actual_balance=account.actual_balance,
            shortfall=account_shortfall(state, account.id),
            target_gap=account.target_balance - account.actual_balance,
        )
        for account in state.accounts
    ]
    return FundSummary(
        accounts=summaries,
        total_target=total_target(state),
        total_actual=total_actual(state),
        family_shortfall=family_shortfall(state),
    )
