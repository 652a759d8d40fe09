"""
Audit Logger

DESIGN DECISION: Every operation on the fund is logged, including the ones
the ledger rejects. This provides:
1. Traceability of every balance change
2. Debugging capability when the remote mirror fails
3. Correlation ids to tie one user action's events together

The audit logger:
- Is async so it slots into the service's async flow
- Never raises: a logging failure must not undo a bookkeeping change
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from family_fund.models.audit import AuditEvent, AuditEventBuilder


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """Route structlog output through the standard library at the given level."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper(), logging.INFO))


class AuditLogger:
    """
    Central audit logging service.

    Events go to the structured local log. The fund's own history logs are
    the persistent audit trail; this is the operational one.
    """

    def __init__(self, logger_name: str = "family_fund.audit"):
        self._logger = structlog.get_logger(logger_name)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns True if the event was written.
        """
        log_dict = event.to_log_dict()

        try:
            if event.severity.value in ("error", "critical"):
                self._logger.error("audit_event", **log_dict)
            elif event.severity.value == "warning":
                self._logger.warning("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
        except Exception as e:
            # Logging must never break the bookkeeping flow
            logging.getLogger(__name__).error("audit_log_failed: %s", e)
            return False

        return True

    async def log_transaction_recorded(
        self,
        transaction_id: str,
        account_id: str,
        tx_type: str,
        amount: str,
        new_balance: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a new ledger entry."""
        await self.log(AuditEventBuilder.transaction_recorded(
            transaction_id=transaction_id,
            account_id=account_id,
            tx_type=tx_type,
            amount=amount,
            new_balance=new_balance,
            correlation_id=correlation_id,
        ))

    async def log_transaction_rejected(
        self,
        account_id: str,
        tx_type: str,
        amount: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a transaction the ledger refused."""
        await self.log(AuditEventBuilder.transaction_rejected(
            account_id=account_id,
            tx_type=tx_type,
            amount=amount,
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_transactions_deleted(
        self,
        transaction_ids: list[str],
        balance_deltas: dict[str, str],
        bulk: bool = False,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transactions_deleted(
            transaction_ids=transaction_ids,
            balance_deltas=balance_deltas,
            bulk=bulk,
            correlation_id=correlation_id,
        ))

    async def log_target_updated(
        self,
        account_id: str,
        old_target: str,
        new_target: str,
        reason: str,
        family_wide: bool = False,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.target_updated(
            account_id=account_id,
            old_target=old_target,
            new_target=new_target,
            reason=reason,
            family_wide=family_wide,
            correlation_id=correlation_id,
        ))

    async def log_actual_adjusted(
        self,
        account_id: str,
        old_actual: str,
        new_actual: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.actual_adjusted(
            account_id=account_id,
            old_actual=old_actual,
            new_actual=new_actual,
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_fund_reset(
        self,
        removed_records: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.fund_reset(
            removed_records=removed_records,
            correlation_id=correlation_id,
        ))

    async def log_state_loaded(self, source: str, accounts: int, transactions: int) -> None:
        await self.log(AuditEventBuilder.state_loaded(
            source=source,
            accounts=accounts,
            transactions=transactions,
        ))

    async def log_remote_sync_failed(
        self,
        change_kind: str,
        completed_writes: int,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a remote mirror failure."""
        await self.log(AuditEventBuilder.remote_sync_failed(
            change_kind=change_kind,
            completed_writes=completed_writes,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_change_rolled_back(
        self,
        change_kind: str,
        remote_compensated: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.change_rolled_back(
            change_kind=change_kind,
            remote_compensated=remote_compensated,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., recording a spend).
    """
    return uuid4()
