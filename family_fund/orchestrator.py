"""
Fund Service

This module ties together all the components and defines the
end-to-end flow for every change to the family fund:

    validate → apply to the in-memory state → save the local snapshot
             → mirror each write to the remote store → audit

DESIGN DECISION: The local snapshot is the source of truth and is written
atomically, so a balance and the ledger/history record explaining it are
always persisted together. The remote store (Google Sheets) has no
transactions, so a write sequence that fails halfway is compensated by
replaying the inverse of the writes that did land.

What happens after a remote failure is configurable:
- rollback (default): undo the change locally and remotely, then raise
- keep_local: keep the change locally and report it as not mirrored
"""

from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, ConfigDict

from family_fund import ledger
from family_fund.audit import AuditLogger, create_correlation_id
from family_fund.config import AppSettings, get_settings
from family_fund.ledger import (
    AccountSummary,
    FundChange,
    FundError,
    FundSummary,
    RecordWrite,
    WriteAction,
)
from family_fund.models.fund import (
    Account,
    ActualBalanceAdjustmentHistory,
    FundCollection,
    FundState,
    TargetBalanceHistory,
    Transaction,
    TransactionType,
)
from family_fund.queries import LedgerQuery, LedgerQueryExecutor, LedgerQueryResult
from family_fund.services.storage import (
    FundStorageInterface,
    GoogleSheetsClient,
    GoogleSheetsFundStorage,
    LocalStateStore,
    RemoteUnavailableError,
    StorageError,
)


logger = structlog.get_logger(__name__)

ROLLBACK = "rollback"
KEEP_LOCAL = "keep_local"


class RemoteStatus(str, Enum):
    """What happened to a change on the remote store."""
    DISABLED = "disabled"   # no remote configured, or degraded to local-only
    SYNCED = "synced"
    FAILED = "failed"       # kept locally, remote is behind


class OperationOutcome(BaseModel):
    """Result of one service operation."""
    model_config = ConfigDict(frozen=True)

    change: FundChange
    correlation_id: UUID
    remote_status: RemoteStatus
    remote_error: Optional[str] = None

    @property
    def remote_synced(self) -> bool:
        return self.remote_status is RemoteStatus.SYNCED


def _balance_deltas(change: FundChange) -> dict[str, str]:
    deltas = {}
    for write in change.writes:
        if write.collection is FundCollection.ACCOUNTS and write.action is WriteAction.UPDATE:
            delta = write.after.actual_balance - write.before.actual_balance
            deltas[write.record_id] = str(delta)
    return deltas


class FundService:
    """
    The family fund as the UI sees it.

    Owns the fund state and is the only thing that mutates it. Every
    mutating method is async, takes an optional correlation_id, and
    returns an OperationOutcome.
    """

    def __init__(
        self,
        local_store: LocalStateStore,
        remote: Optional[FundStorageInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
        failure_policy: str = ROLLBACK,
        state: Optional[FundState] = None,
    ):
        if failure_policy not in (ROLLBACK, KEEP_LOCAL):
            raise ValueError(f"Unknown remote failure policy: {failure_policy}")
        self._local = local_store
        self._remote = remote
        self._audit = audit_logger or AuditLogger()
        self._policy = failure_policy
        self._state = state
        self._remote_configured = remote is not None
        self._unsynced = False

    # =========================================================================
    # LOADING
    # =========================================================================

    @property
    def state(self) -> FundState:
        if self._state is None:
            raise RuntimeError("FundService.initialize() has not been called")
        return self._state

    @property
    def remote_enabled(self) -> bool:
        return self._remote is not None

    @property
    def has_unsynced_changes(self) -> bool:
        """True while the remote store is behind the local snapshot."""
        return self._unsynced

    async def initialize(self) -> FundState:
        """
        Load the fund state.

        Order of preference:
        1. The local snapshot, if it is flagged as not yet mirrored
           (it is pushed to the remote store once that is reachable)
        2. The remote store, if reachable (seeded from the local snapshot
           or the baseline when it holds no accounts yet)
        3. The local snapshot
        4. The baseline accounts

        An unreachable remote degrades the service to local-only mode.
        """
        source = "local"
        local_state = self._local.load()
        self._unsynced = local_state is not None and self._local.has_unsynced_changes()

        if self._remote is not None:
            try:
                if not await self._remote.health_check():
                    raise RemoteUnavailableError("health check failed")
                if self._unsynced:
                    self._state = local_state
                    await self._remote.replace_state(self._state)
                    self._unsynced = False
                    source = "resynced_remote"
                else:
                    remote_state = await self._remote.load_state()
                    if remote_state.accounts:
                        self._state = remote_state
                        source = "remote"
                    else:
                        self._state = local_state or FundState.baseline()
                        self._unsynced = True
                        await self._remote.replace_state(self._state)
                        self._unsynced = False
                        source = "seeded_remote"
            except StorageError as e:
                logger.warning("remote_unavailable_degrading", error=str(e))
                await self._audit.log_error(
                    error_type="RemoteUnavailable",
                    error_message=str(e),
                    details={"phase": "initialize"},
                )
                self._remote = None

        if self._state is None:
            if local_state is not None:
                self._state = local_state
            else:
                self._state = FundState.baseline()
                source = "baseline"

        self._local.save(self._state, unsynced=self._unsynced)
        await self._audit.log_state_loaded(
            source=source,
            accounts=len(self._state.accounts),
            transactions=len(self._state.transactions),
        )
        return self._state

    async def sync_remote(self) -> None:
        """
        Overwrite the remote store with the local state.

        Clears the unsynced flag on success.

        Raises:
            RemoteUnavailableError: no remote store is connected
            StorageError: the remote store rejected the push (flag is kept)
        """
        if self._remote is None:
            raise RemoteUnavailableError("No remote store is connected")
        await self._remote.replace_state(self.state)
        self._unsynced = False
        self._local.save(self._state)
        logger.info("remote_resynced", transactions=len(self._state.transactions))

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    async def _compensate(self, completed: list[RecordWrite]) -> bool:
        """Undo remote writes that already landed, newest first."""
        try:
            for write in reversed(completed):
                await self._remote.apply_write(write.inverse())
        except StorageError as e:
            logger.error("remote_compensation_failed", error=str(e))
            return False
        return True

    async def _persist(self, change: FundChange, correlation_id: UUID) -> OperationOutcome:
        """
        Save a change that has already been applied to the state.

        Raises:
            StorageError: local snapshot could not be written (change undone)
            RemoteUnavailableError: remote mirror failed under the rollback policy
        """
        if change.is_empty:
            return OperationOutcome(
                change=change,
                correlation_id=correlation_id,
                remote_status=RemoteStatus.SYNCED if self._remote is not None else RemoteStatus.DISABLED,
            )

        # Flagged until the mirror completes, so a crash or failure mid-mirror
        # makes the next startup push this snapshot instead of trusting the remote
        pending = self._remote_configured
        try:
            self._local.save(self._state, unsynced=pending)
        except StorageError:
            change.inverse().apply_to(self._state)
            raise

        if self._remote is None:
            self._unsynced = pending
            return OperationOutcome(
                change=change,
                correlation_id=correlation_id,
                remote_status=RemoteStatus.DISABLED,
            )

        completed: list[RecordWrite] = []
        try:
            for write in change.writes:
                await self._remote.apply_write(write)
                completed.append(write)
        except StorageError as e:
            await self._audit.log_remote_sync_failed(
                change_kind=change.kind.value,
                completed_writes=len(completed),
                error_message=str(e),
                correlation_id=correlation_id,
            )
            if self._policy == KEEP_LOCAL:
                self._unsynced = True
                return OperationOutcome(
                    change=change,
                    correlation_id=correlation_id,
                    remote_status=RemoteStatus.FAILED,
                    remote_error=str(e),
                )

            compensated = await self._compensate(completed)
            change.inverse().apply_to(self._state)
            self._unsynced = self._unsynced or not compensated
            self._local.save(self._state, unsynced=self._unsynced)
            await self._audit.log_change_rolled_back(
                change_kind=change.kind.value,
                remote_compensated=compensated,
                correlation_id=correlation_id,
            )
            raise RemoteUnavailableError(
                f"Remote store rejected {change.kind.value}; change was rolled back: {e}"
            ) from e

        if not self._unsynced:
            self._local.save(self._state)
        return OperationOutcome(
            change=change,
            correlation_id=correlation_id,
            remote_status=RemoteStatus.SYNCED,
        )

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    async def apply_transaction(
        self,
        account_id: str,
        tx_type: TransactionType,
        amount,
        description: str,
        correlation_id: Optional[UUID] = None,
    ) -> OperationOutcome:
        """Record a SPEND, DEPOSIT or PAPA_TOPUP."""
        correlation_id = correlation_id or create_correlation_id()
        try:
            change = ledger.apply_transaction(
                self.state, account_id, tx_type, amount, description
            )
        except FundError as e:
            await self._audit.log_transaction_rejected(
                account_id=account_id,
                tx_type=str(getattr(tx_type, "value", tx_type)),
                amount=str(amount),
                reason=str(e),
                correlation_id=correlation_id,
            )
            raise

        outcome = await self._persist(change, correlation_id)
        transaction = change.created(FundCollection.TRANSACTIONS)[0]
        account = change.updated(FundCollection.ACCOUNTS)[0]
        await self._audit.log_transaction_recorded(
            transaction_id=transaction.id,
            account_id=account.id,
            tx_type=transaction.type.value,
            amount=str(transaction.amount),
            new_balance=str(account.actual_balance),
            correlation_id=correlation_id,
        )
        return outcome

    async def delete_transaction(
        self,
        transaction_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> OperationOutcome:
        """Delete one transaction and reverse its balance effect."""
        correlation_id = correlation_id or create_correlation_id()
        change = ledger.delete_transaction(self.state, transaction_id)
        outcome = await self._persist(change, correlation_id)
        await self._audit.log_transactions_deleted(
            transaction_ids=[transaction_id],
            balance_deltas=_balance_deltas(change),
            correlation_id=correlation_id,
        )
        return outcome

    async def bulk_delete_transactions(
        self,
        start_date,
        end_date,
        correlation_id: Optional[UUID] = None,
    ) -> OperationOutcome:
        """Delete every transaction in an inclusive date range."""
        correlation_id = correlation_id or create_correlation_id()
        change = ledger.bulk_delete_transactions(self.state, start_date, end_date)
        outcome = await self._persist(change, correlation_id)
        if not change.is_empty:
            await self._audit.log_transactions_deleted(
                transaction_ids=[tx.id for tx in change.deleted(FundCollection.TRANSACTIONS)],
                balance_deltas=_balance_deltas(change),
                bulk=True,
                correlation_id=correlation_id,
            )
        return outcome

    # =========================================================================
    # TARGETS AND ADJUSTMENTS
    # =========================================================================

    async def _log_target_writes(
        self,
        change: FundChange,
        family_wide: bool,
        correlation_id: UUID,
    ) -> None:
        for history in change.created(FundCollection.TARGET_HISTORY):
            await self._audit.log_target_updated(
                account_id=history.account_id,
                old_target=str(history.old_target_balance),
                new_target=str(history.new_target_balance),
                reason=history.reason,
                family_wide=family_wide,
                correlation_id=correlation_id,
            )

    async def update_target_balance(
        self,
        account_id: str,
        new_target,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> OperationOutcome:
        correlation_id = correlation_id or create_correlation_id()
        change = ledger.update_target_balance(self.state, account_id, new_target, reason)
        outcome = await self._persist(change, correlation_id)
        await self._log_target_writes(change, False, correlation_id)
        return outcome

    async def update_family_target(
        self,
        new_total,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> OperationOutcome:
        """Set the family target, split 2:1 between Mummy and Vaibhav."""
        correlation_id = correlation_id or create_correlation_id()
        change = ledger.update_family_target(self.state, new_total, reason)
        outcome = await self._persist(change, correlation_id)
        await self._log_target_writes(change, True, correlation_id)
        return outcome

    async def adjust_actual_balance(
        self,
        account_id: str,
        new_actual,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> OperationOutcome:
        """Correct an account's actual balance without creating a transaction."""
        correlation_id = correlation_id or create_correlation_id()
        change = ledger.adjust_actual_balance(self.state, account_id, new_actual, reason)
        outcome = await self._persist(change, correlation_id)
        history = change.created(FundCollection.ADJUSTMENT_HISTORY)[0]
        await self._audit.log_actual_adjusted(
            account_id=history.account_id,
            old_actual=str(history.old_actual_balance),
            new_actual=str(history.new_actual_balance),
            reason=history.adjustment_reason,
            correlation_id=correlation_id,
        )
        return outcome

    async def reset_all(self, correlation_id: Optional[UUID] = None) -> OperationOutcome:
        """Wipe the ledger and both history logs and restore the baseline."""
        correlation_id = correlation_id or create_correlation_id()
        change = ledger.reset_all(self.state)
        outcome = await self._persist(change, correlation_id)
        removed = sum(
            len(change.deleted(collection))
            for collection in (
                FundCollection.TRANSACTIONS,
                FundCollection.TARGET_HISTORY,
                FundCollection.ADJUSTMENT_HISTORY,
            )
        )
        await self._audit.log_fund_reset(removed_records=removed, correlation_id=correlation_id)
        return outcome

    # =========================================================================
    # READS
    # =========================================================================

    def get_account_by_id(self, account_id: str) -> Optional[Account]:
        return self.state.get_account(account_id)

    def accounts(self) -> list[Account]:
        return list(self.state.accounts)

    def account_summary(self, account_id: str) -> Optional[AccountSummary]:
        for summary in self.summary().accounts:
            if summary.account_id == account_id:
                return summary
        return None

    def account_shortfall(self, account_id: str) -> Decimal:
        return ledger.account_shortfall(self.state, account_id)

    def family_shortfall(self) -> Decimal:
        return ledger.family_shortfall(self.state)

    def summary(self) -> FundSummary:
        return ledger.summarize(self.state)

    def query_transactions(self, query: Optional[LedgerQuery] = None) -> LedgerQueryResult:
        return LedgerQueryExecutor(self.state).execute(query)

    def target_history(self, account_id: Optional[str] = None) -> list[TargetBalanceHistory]:
        return LedgerQueryExecutor(self.state).target_history(account_id)

    def adjustment_history(
        self,
        account_id: Optional[str] = None,
    ) -> list[ActualBalanceAdjustmentHistory]:
        return LedgerQueryExecutor(self.state).adjustment_history(account_id)

    def transactions(self) -> list[Transaction]:
        """All transactions, newest first."""
        return self.query_transactions().transactions

    async def health_check(self) -> dict[str, bool]:
        """Report which stores are usable."""
        status = {"local": True, "remote": False}
        try:
            self._local.load()
        except StorageError:
            status["local"] = False
        if self._remote is not None:
            status["remote"] = await self._remote.health_check()
        return status


def create_fund_service(
    settings: Optional[AppSettings] = None,
    remote: Optional[FundStorageInterface] = None,
) -> FundService:
    """
    Factory function to create the fund service.

    Args:
        settings: Application settings (defaults to the environment).
        remote: Remote store to mirror to. When omitted and remote_enabled
                is set, a Google Sheets store is built; if that fails the
                service runs local-only.

    Call `await service.initialize()` before use.
    """
    settings = settings or get_settings().app
    audit_logger = AuditLogger()

    if remote is None and settings.remote_enabled:
        try:
            remote = GoogleSheetsFundStorage(GoogleSheetsClient())
        except Exception as e:
            # Storage not configured - continue without it
            logger.warning("remote_storage_not_configured", error=str(e))
            remote = None

    return FundService(
        local_store=LocalStateStore(settings.local_state_file),
        remote=remote,
        audit_logger=audit_logger,
        failure_policy=settings.remote_failure_policy,
    )
