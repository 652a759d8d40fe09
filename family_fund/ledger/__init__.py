"""
Ledger Package

The bookkeeping core: balance mutations, history records and derived
metrics. Pure functions over an explicitly passed FundState.
"""

from family_fund.ledger.changes import (
    ChangeKind,
    FundChange,
    RecordWrite,
    WriteAction,
)
from family_fund.ledger.errors import (
    AccountNotFoundError,
    FundError,
    InsufficientBalanceError,
    NotFoundError,
    TransactionNotFoundError,
    ValidationError,
)
from family_fund.ledger.metrics import (
    AccountSummary,
    FundSummary,
    account_shortfall,
    family_shortfall,
    summarize,
    total_actual,
    total_target,
)
from family_fund.ledger.operations import (
    GLOBAL_UPDATE_PREFIX,
    MAX_FAMILY_REASON_LENGTH,
    adjust_actual_balance,
    apply_transaction,
    balance_effect,
    bulk_delete_transactions,
    delete_transaction,
    reset_all,
    reversal_effect,
    split_family_target,
    transaction_window,
    update_family_target,
    update_target_balance,
)

__all__ = [
    # Changes
    "ChangeKind",
    "FundChange",
    "RecordWrite",
    "WriteAction",
    # Errors
    "AccountNotFoundError",
    "FundError",
    "InsufficientBalanceError",
    "NotFoundError",
    "TransactionNotFoundError",
    "ValidationError",
    # Metrics
    "AccountSummary",
    "FundSummary",
    "account_shortfall",
    "family_shortfall",
    "summarize",
    "total_actual",
    "total_target",
    # Operations
    "GLOBAL_UPDATE_PREFIX",
    "MAX_FAMILY_REASON_LENGTH",
    "adjust_actual_balance",
    "apply_transaction",
    "balance_effect",
    "bulk_delete_transactions",
    "delete_transaction",
    "reset_all",
    "reversal_effect",
    "split_family_target",
    "transaction_window",
    "update_family_target",
    "update_target_balance",
]
