"""
Audit Models for the Family Fund Ledger

Every operation on the fund emits an audit event to the structured log.
This provides:
1. Traceability of every balance change, including rejected ones
2. Debugging information when the remote mirror misbehaves
3. A correlation id tying together all events of one user action

DESIGN DECISION: These events are the operational log. The user-facing
audit trail (target history, adjustment history) lives in the fund state
itself; this model never replaces it.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Ledger
    TRANSACTION_RECORDED = "transaction_recorded"
    TRANSACTION_REJECTED = "transaction_rejected"
    TRANSACTION_DELETED = "transaction_deleted"
    TRANSACTIONS_BULK_DELETED = "transactions_bulk_deleted"

    # Admin
    TARGET_BALANCE_UPDATED = "target_balance_updated"
    FAMILY_TARGET_UPDATED = "family_target_updated"
    ACTUAL_BALANCE_ADJUSTED = "actual_balance_adjusted"
    FUND_RESET = "fund_reset"

    # Persistence
    STATE_LOADED = "state_loaded"
    REMOTE_SYNC_FAILED = "remote_sync_failed"
    CHANGE_ROLLED_BACK = "change_rolled_back"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    entity_id is a plain string because account ids ("1", "2") are not UUIDs.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'account', 'transaction')"
    )
    entity_id: Optional[str] = None

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate all events of one user action"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_recorded(...)
        event = AuditEventBuilder.remote_sync_failed(...)

    Amounts are passed as strings so Decimals render exactly in the log.
    """

    @staticmethod
    def transaction_recorded(
        transaction_id: str,
        account_id: str,
        tx_type: str,
        amount: str,
        new_balance: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_RECORDED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"{tx_type} of ₹{amount} recorded",
            details={
                "account_id": account_id,
                "type": tx_type,
                "amount": amount,
                "new_actual_balance": new_balance,
            },
            is_user_action=True,
        )

    @staticmethod
    def transaction_rejected(
        account_id: str,
        tx_type: str,
        amount: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"{tx_type} of ₹{amount} rejected",
            error_message=reason,
            details={
                "type": tx_type,
                "amount": amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def transactions_deleted(
        transaction_ids: list[str],
        balance_deltas: dict[str, str],
        bulk: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        event_type = (
            AuditEventType.TRANSACTIONS_BULK_DELETED
            if bulk
            else AuditEventType.TRANSACTION_DELETED
        )
        return AuditEvent(
            event_type=event_type,
            entity_type="transaction",
            entity_id=transaction_ids[0] if len(transaction_ids) == 1 else None,
            correlation_id=correlation_id,
            description=f"{len(transaction_ids)} transaction(s) deleted and reversed",
            details={
                "transaction_ids": transaction_ids,
                "balance_deltas": balance_deltas,
            },
            is_user_action=True,
        )

    @staticmethod
    def target_updated(
        account_id: str,
        old_target: str,
        new_target: str,
        reason: str,
        family_wide: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        event_type = (
            AuditEventType.FAMILY_TARGET_UPDATED
            if family_wide
            else AuditEventType.TARGET_BALANCE_UPDATED
        )
        return AuditEvent(
            event_type=event_type,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Target changed from ₹{old_target} to ₹{new_target}",
            details={
                "old_target_balance": old_target,
                "new_target_balance": new_target,
                "reason": reason,
            },
            is_user_action=True,
        )

    @staticmethod
    def actual_adjusted(
        account_id: str,
        old_actual: str,
        new_actual: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACTUAL_BALANCE_ADJUSTED,
            severity=AuditSeverity.WARNING,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Actual balance overridden from ₹{old_actual} to ₹{new_actual}",
            details={
                "old_actual_balance": old_actual,
                "new_actual_balance": new_actual,
                "reason": reason,
            },
            is_user_action=True,
        )

    @staticmethod
    def fund_reset(
        removed_records: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.FUND_RESET,
            severity=AuditSeverity.WARNING,
            entity_type="fund",
            correlation_id=correlation_id,
            description="Fund reset to baseline; ledger and history wiped",
            details={
                "removed_records": removed_records,
            },
            is_user_action=True,
        )

    @staticmethod
    def state_loaded(
        source: str,
        accounts: int,
        transactions: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATE_LOADED,
            entity_type="fund",
            description=f"Fund state loaded from {source}",
            details={
                "source": source,
                "accounts": accounts,
                "transactions": transactions,
            },
        )

    @staticmethod
    def remote_sync_failed(
        change_kind: str,
        completed_writes: int,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMOTE_SYNC_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="fund",
            correlation_id=correlation_id,
            description=f"Remote mirror failed during {change_kind}",
            error_message=error_message,
            details={
                "change_kind": change_kind,
                "completed_writes": completed_writes,
            },
        )

    @staticmethod
    def change_rolled_back(
        change_kind: str,
        remote_compensated: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CHANGE_ROLLED_BACK,
            severity=AuditSeverity.WARNING,
            entity_type="fund",
            correlation_id=correlation_id,
            description=f"{change_kind} rolled back after remote failure",
            details={
                "change_kind": change_kind,
                "remote_compensated": remote_compensated,
            },
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
