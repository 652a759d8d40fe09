"""
Ledger Query Engine

DESIGN DECISION: Queries are DETERMINISTIC filters over the fund state.
Nothing is estimated or cached: every result is computed from the records
that are actually in the ledger at the moment the query runs.

Supported filters:
- free-text search over description and account name
- account, transaction type
- inclusive date range (UTC calendar days)
- newest-first / oldest-first ordering and an optional limit
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional

import pandas as pd
from pydantic import BaseModel, Field, model_validator

from family_fund.models.fund import (
    ActualBalanceAdjustmentHistory,
    FundState,
    Money,
    TargetBalanceHistory,
    Transaction,
    TransactionType,
)


CSV_COLUMNS = ["id", "createdAt", "accountName", "type", "amount", "description"]


class QueryExecutionError(Exception):
    """Error during query execution."""
    pass


class SortOrder(str, Enum):
    NEWEST_FIRST = "newest"
    OLDEST_FIRST = "oldest"


class LedgerQuery(BaseModel):
    """Filters for the transaction ledger view."""

    search: Optional[str] = Field(
        None,
        description="Case-insensitive match on description or account name"
    )
    account_id: Optional[str] = None
    tx_type: Optional[TransactionType] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    sort_order: SortOrder = SortOrder.NEWEST_FIRST
    limit: Optional[int] = Field(None, ge=1)

    @model_validator(mode="after")
    def validate_date_range(self) -> 'LedgerQuery':
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("date_from must not be after date_to")
        return self

    def describe(self) -> str:
        parts = ["Transactions"]
        if self.account_id:
            parts.append(f"account: {self.account_id}")
        if self.tx_type:
            parts.append(f"type: {self.tx_type.value}")
        if self.search:
            parts.append(f"matching '{self.search}'")
        if self.date_from and self.date_to:
            parts.append(f"from {self.date_from} to {self.date_to}")
        elif self.date_from:
            parts.append(f"since {self.date_from}")
        elif self.date_to:
            parts.append(f"until {self.date_to}")
        return " | ".join(parts)


class LedgerQueryResult(BaseModel):
    """Matched transactions plus per-type totals over the full match."""

    query_description: str
    transactions: list[Transaction] = Field(default_factory=list)
    total_matched: int = Field(
        0,
        description="Matches before the limit was applied"
    )
    total_spent: Money = Decimal(0)
    total_deposited: Money = Decimal(0)
    total_topped_up: Money = Decimal(0)

    @property
    def data_found(self) -> bool:
        return self.total_matched > 0

    @property
    def net_balance_effect(self) -> Decimal:
        return self.total_deposited + self.total_topped_up - self.total_spent


def _newest_first(records: Iterable, timestamp_attr: str) -> list:
    return sorted(records, key=lambda r: getattr(r, timestamp_attr), reverse=True)


class LedgerQueryExecutor:
    """
    Runs ledger queries against a fund state.

    GUARANTEES:
    - Only returns records that exist in the state
    - Totals always cover every match, not just the returned page
    """

    def __init__(self, state: FundState):
        self._state = state

    def _matches(self, tx: Transaction, query: LedgerQuery) -> bool:
        if query.account_id and tx.account_id != query.account_id:
            return False
        if query.tx_type and tx.type is not query.tx_type:
            return False
        created = tx.created_at.date()
        if query.date_from and created < query.date_from:
            return False
        if query.date_to and created > query.date_to:
            return False
        if query.search:
            needle = query.search.strip().lower()
            haystack = f"{tx.description} {tx.account_name.value}".lower()
            if needle not in haystack:
                return False
        return True

    def execute(self, query: Optional[LedgerQuery] = None) -> LedgerQueryResult:
        query = query or LedgerQuery()
        try:
            matched = [tx for tx in self._state.transactions if self._matches(tx, query)]
        except (AttributeError, TypeError) as e:
            raise QueryExecutionError(f"Ledger query failed: {e}")

        matched.sort(
            key=lambda tx: tx.created_at,
            reverse=query.sort_order is SortOrder.NEWEST_FIRST,
        )

        totals = {tx_type: Decimal(0) for tx_type in TransactionType}
        for tx in matched:
            totals[tx.type] += tx.amount

        page = matched[:query.limit] if query.limit else matched

        return LedgerQueryResult(
            query_description=query.describe(),
            transactions=page,
            total_matched=len(matched),
            total_spent=totals[TransactionType.SPEND],
            total_deposited=totals[TransactionType.DEPOSIT],
            total_topped_up=totals[TransactionType.PAPA_TOPUP],
        )

    def target_history(self, account_id: Optional[str] = None) -> list[TargetBalanceHistory]:
        """Target changes, newest first."""
        records = [
            h for h in self._state.target_history
            if account_id is None or h.account_id == account_id
        ]
        return _newest_first(records, "changed_at")

    def adjustment_history(
        self,
        account_id: Optional[str] = None,
    ) -> list[ActualBalanceAdjustmentHistory]:
        """Manual balance corrections, newest first."""
        records = [
            h for h in self._state.adjustment_history
            if account_id is None or h.account_id == account_id
        ]
        return _newest_first(records, "adjusted_at")


def transactions_to_csv(transactions: Iterable[Transaction]) -> str:
    """Render transactions as CSV text using the wire field names as headers."""
    rows = [
        {**tx.to_record(), "amount": str(tx.amount)}
        for tx in transactions
    ]
    return pd.DataFrame(rows, columns=CSV_COLUMNS).to_csv(index=False)
