"""Ledger query package."""

from family_fund.queries.executor import (
    LedgerQuery,
    LedgerQueryExecutor,
    LedgerQueryResult,
    QueryExecutionError,
    SortOrder,
    transactions_to_csv,
)

__all__ = [
    "LedgerQuery",
    "LedgerQueryExecutor",
    "LedgerQueryResult",
    "QueryExecutionError",
    "SortOrder",
    "transactions_to_csv",
]
