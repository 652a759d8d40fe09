"""
Data Models Package

This package contains all Pydantic models used in the Family Fund Ledger.
All data flowing through the system must conform to these schemas.
"""

from family_fund.models.fund import (
    BASELINE_BALANCES,
    COLLECTION_MODELS,
    Account,
    AccountName,
    ActualBalanceAdjustmentHistory,
    AnyRecord,
    FundCollection,
    FundRecord,
    FundState,
    Money,
    TargetBalanceHistory,
    Transaction,
    TransactionType,
    baseline_accounts,
    new_record_id,
    utc_now,
)
from family_fund.models.validation import ValidationIssue, ValidationResult
from family_fund.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Fund models
    "BASELINE_BALANCES",
    "COLLECTION_MODELS",
    "Account",
    "AccountName",
    "ActualBalanceAdjustmentHistory",
    "AnyRecord",
    "FundCollection",
    "FundRecord",
    "FundState",
    "Money",
    "TargetBalanceHistory",
    "Transaction",
    "TransactionType",
    "baseline_accounts",
    "new_record_id",
    "utc_now",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Validation models
    "ValidationIssue",
    "ValidationResult",
]
