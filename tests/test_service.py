"""Tests for the fund service: persistence, remote mirroring and compensation."""

from datetime import date
from decimal import Decimal

import pytest

from family_fund.audit import AuditLogger
from family_fund.config import AppSettings
from family_fund.ledger import InsufficientBalanceError, WriteAction
from family_fund.models.audit import AuditEventType
from family_fund.models.fund import FundCollection, FundState, TransactionType
from family_fund.orchestrator import (
    FundService,
    RemoteStatus,
    create_fund_service,
)
from family_fund.services.storage import (
    InMemoryFundStorage,
    LocalStateStore,
    RemoteUnavailableError,
    StorageError,
)

from tests.conftest import MUMMY_ID, VAIBHAV_ID, normalized


class RecordingAuditLogger(AuditLogger):
    """Keeps events in memory instead of only logging them."""

    def __init__(self):
        super().__init__()
        self.events = []

    async def log(self, event):
        self.events.append(event)
        return True

    def types(self) -> list[AuditEventType]:
        return [event.event_type for event in self.events]


class FlakyStorage(InMemoryFundStorage):
    """In-memory store that refuses chosen writes."""

    def __init__(self, fail_on=(), healthy: bool = True):
        super().__init__()
        self.fail_on = set(fail_on)
        self.healthy = healthy

    async def apply_write(self, write):
        if (write.collection, write.action) in self.fail_on:
            raise RemoteUnavailableError(f"refused {write.action.value} on {write.collection.value}")
        await super().apply_write(write)

    async def health_check(self) -> bool:
        return self.healthy


class BrokenLocalStore(LocalStateStore):
    """Snapshot store whose saves fail once armed."""

    armed = False

    def save(self, state, unsynced=False):
        if self.armed:
            raise StorageError("disk full")
        super().save(state, unsynced=unsynced)


def make_service(tmp_path, remote=None, policy="rollback", store_cls=LocalStateStore):
    audit = RecordingAuditLogger()
    service = FundService(
        local_store=store_cls(tmp_path / "fund.json"),
        remote=remote,
        audit_logger=audit,
        failure_policy=policy,
    )
    return service, audit


class TestInitialize:
    """Tests for loading the fund at startup."""

    @pytest.mark.asyncio
    async def test_fresh_start_uses_baseline(self, tmp_path):
        service, audit = make_service(tmp_path)

        state = await service.initialize()

        assert [a.id for a in state.accounts] == [MUMMY_ID, VAIBHAV_ID]
        assert (tmp_path / "fund.json").exists()
        assert audit.events[-1].details["source"] == "baseline"

    @pytest.mark.asyncio
    async def test_loads_local_snapshot(self, tmp_path, state):
        state.put(
            FundCollection.ACCOUNTS,
            state.get_account(MUMMY_ID).model_copy(update={"actual_balance": Decimal("7")}),
        )
        LocalStateStore(tmp_path / "fund.json").save(state)
        service, _ = make_service(tmp_path)

        await service.initialize()

        assert service.get_account_by_id(MUMMY_ID).actual_balance == Decimal("7")

    @pytest.mark.asyncio
    async def test_empty_remote_is_seeded(self, tmp_path):
        remote = InMemoryFundStorage()
        service, _ = make_service(tmp_path, remote=remote)

        await service.initialize()

        assert len(remote.raw_rows(FundCollection.ACCOUNTS)) == 2
        assert service.remote_enabled

    @pytest.mark.asyncio
    async def test_remote_wins_over_local(self, tmp_path, state):
        LocalStateStore(tmp_path / "fund.json").save(state)
        remote_state = FundState.baseline()
        remote_state.put(
            FundCollection.ACCOUNTS,
            remote_state.get_account(VAIBHAV_ID).model_copy(update={"actual_balance": Decimal("42")}),
        )
        remote = InMemoryFundStorage()
        await remote.replace_state(remote_state)
        service, _ = make_service(tmp_path, remote=remote)

        await service.initialize()

        assert service.get_account_by_id(VAIBHAV_ID).actual_balance == Decimal("42")
        # Local snapshot is refreshed from the remote copy
        assert LocalStateStore(tmp_path / "fund.json").load().get_account(VAIBHAV_ID).actual_balance == Decimal("42")

    @pytest.mark.asyncio
    async def test_unhealthy_remote_degrades_to_local(self, tmp_path):
        service, audit = make_service(tmp_path, remote=FlakyStorage(healthy=False))

        await service.initialize()

        assert service.remote_enabled is False
        assert AuditEventType.SYSTEM_ERROR in audit.types()
        outcome = await service.apply_transaction(MUMMY_ID, TransactionType.SPEND, 10, "x")
        assert outcome.remote_status is RemoteStatus.DISABLED

    @pytest.mark.asyncio
    async def test_state_before_initialize_raises(self, tmp_path):
        service, _ = make_service(tmp_path)
        with pytest.raises(RuntimeError):
            service.state

    def test_unknown_policy_rejected(self, tmp_path):
        with pytest.raises(ValueError):
            make_service(tmp_path, policy="hope")


class TestOperations:
    """Tests for the service's mutating operations."""

    @pytest.mark.asyncio
    async def test_transaction_is_saved_and_mirrored(self, tmp_path):
        remote = InMemoryFundStorage()
        service, audit = make_service(tmp_path, remote=remote)
        await service.initialize()

        outcome = await service.apply_transaction(MUMMY_ID, TransactionType.SPEND, 4000, "Groceries")

        assert outcome.remote_synced
        assert LocalStateStore(tmp_path / "fund.json").load().get_account(MUMMY_ID).actual_balance == Decimal("196000")
        assert normalized(await remote.load_state()) == normalized(service.state)
        assert audit.types()[-1] == AuditEventType.TRANSACTION_RECORDED
        assert not LocalStateStore(tmp_path / "fund.json").has_unsynced_changes()

    @pytest.mark.asyncio
    async def test_rejected_transaction_is_audited(self, tmp_path):
        service, audit = make_service(tmp_path)
        await service.initialize()
        before = service.state.to_document()

        with pytest.raises(InsufficientBalanceError):
            await service.apply_transaction(VAIBHAV_ID, TransactionType.SPEND, 999999, "Car")

        assert service.state.to_document() == before
        assert audit.types()[-1] == AuditEventType.TRANSACTION_REJECTED

    @pytest.mark.asyncio
    async def test_correlation_id_is_propagated(self, tmp_path):
        service, audit = make_service(tmp_path)
        await service.initialize()

        outcome = await service.update_family_target(600000, "Raise")

        target_events = [e for e in audit.events if e.event_type == AuditEventType.FAMILY_TARGET_UPDATED]
        assert len(target_events) == 2
        assert {e.correlation_id for e in target_events} == {outcome.correlation_id}

    @pytest.mark.asyncio
    async def test_delete_and_bulk_delete(self, tmp_path):
        service, audit = make_service(tmp_path)
        await service.initialize()
        await service.apply_transaction(MUMMY_ID, TransactionType.SPEND, 100, "a")
        await service.apply_transaction(VAIBHAV_ID, TransactionType.SPEND, 200, "b")
        first = service.transactions()[-1]

        await service.delete_transaction(first.id)
        assert audit.types()[-1] == AuditEventType.TRANSACTION_DELETED

        today = service.transactions()[0].created_at.date()
        outcome = await service.bulk_delete_transactions(today, today)
        assert service.transactions() == []
        assert audit.types()[-1] == AuditEventType.TRANSACTIONS_BULK_DELETED
        assert len(outcome.change.deleted(FundCollection.TRANSACTIONS)) == 1

    @pytest.mark.asyncio
    async def test_empty_bulk_delete_is_not_audited(self, tmp_path):
        service, audit = make_service(tmp_path)
        await service.initialize()
        count = len(audit.events)

        outcome = await service.bulk_delete_transactions(date(2000, 1, 1), date(2000, 1, 2))

        assert outcome.change.is_empty
        assert len(audit.events) == count

    @pytest.mark.asyncio
    async def test_adjust_and_reset(self, tmp_path):
        service, audit = make_service(tmp_path)
        await service.initialize()
        await service.apply_transaction(MUMMY_ID, TransactionType.SPEND, 100, "a")
        await service.adjust_actual_balance(VAIBHAV_ID, 5, "Bank")
        await service.update_target_balance(VAIBHAV_ID, 7, "Lower")
        assert len(service.adjustment_history()) == 1
        assert len(service.target_history(VAIBHAV_ID)) == 1

        await service.reset_all()

        assert service.transactions() == []
        assert service.summary().total_actual == Decimal("300000")
        assert audit.events[-1].event_type == AuditEventType.FUND_RESET
        assert audit.events[-1].details["removed_records"] == 3

    @pytest.mark.asyncio
    async def test_reads(self, tmp_path):
        service, _ = make_service(tmp_path)
        await service.initialize()
        await service.apply_transaction(MUMMY_ID, TransactionType.SPEND, 4000, "a")

        assert service.account_shortfall(MUMMY_ID) == Decimal("4000")
        assert service.family_shortfall() == Decimal("4000")
        assert service.account_summary(MUMMY_ID).target_gap == Decimal("4000")
        assert service.account_summary("nope") is None
        assert service.get_account_by_id("nope") is None
        assert await service.health_check() == {"local": True, "remote": False}


class TestRemoteFailure:
    """Tests for what happens when the remote mirror fails halfway."""

    @pytest.mark.asyncio
    async def test_rollback_undoes_local_and_remote(self, tmp_path):
        remote = FlakyStorage()
        service, audit = make_service(tmp_path, remote=remote)
        await service.initialize()
        before = normalized(service.state)
        # Account update lands, transaction create fails
        remote.fail_on = {(FundCollection.TRANSACTIONS, WriteAction.CREATE)}

        with pytest.raises(RemoteUnavailableError):
            await service.apply_transaction(MUMMY_ID, TransactionType.SPEND, 4000, "x")

        assert normalized(service.state) == before
        assert normalized(LocalStateStore(tmp_path / "fund.json").load()) == before
        assert normalized(await remote.load_state()) == before
        assert AuditEventType.REMOTE_SYNC_FAILED in audit.types()
        rolled_back = audit.events[-1]
        assert rolled_back.event_type == AuditEventType.CHANGE_ROLLED_BACK
        assert rolled_back.details["remote_compensated"] is True

    @pytest.mark.asyncio
    async def test_rollback_when_compensation_fails(self, tmp_path):
        remote = FlakyStorage()
        service, audit = make_service(tmp_path, remote=remote)
        await service.initialize()
        before = normalized(service.state)
        # History row lands, account update fails, and so does removing the history row
        remote.fail_on = {
            (FundCollection.ACCOUNTS, WriteAction.UPDATE),
            (FundCollection.ADJUSTMENT_HISTORY, WriteAction.DELETE),
        }

        with pytest.raises(RemoteUnavailableError):
            await service.adjust_actual_balance(MUMMY_ID, 1, "x")

        assert normalized(service.state) == before
        assert audit.events[-1].details["remote_compensated"] is False
        assert len(remote.raw_rows(FundCollection.ADJUSTMENT_HISTORY)) == 1

    @pytest.mark.asyncio
    async def test_keep_local_policy(self, tmp_path):
        remote = FlakyStorage()
        service, audit = make_service(tmp_path, remote=remote, policy="keep_local")
        await service.initialize()
        remote.fail_on = {(FundCollection.TRANSACTIONS, WriteAction.CREATE)}

        outcome = await service.apply_transaction(MUMMY_ID, TransactionType.SPEND, 4000, "x")

        assert outcome.remote_status is RemoteStatus.FAILED
        assert "refused" in outcome.remote_error
        assert service.get_account_by_id(MUMMY_ID).actual_balance == Decimal("196000")
        assert len(service.transactions()) == 1
        assert AuditEventType.CHANGE_ROLLED_BACK not in audit.types()

    @pytest.mark.asyncio
    async def test_local_save_failure_undoes_change(self, tmp_path):
        service, _ = make_service(tmp_path, store_cls=BrokenLocalStore)
        await service.initialize()
        before = normalized(service.state)
        service._local.armed = True

        with pytest.raises(StorageError):
            await service.update_family_target(900000, "x")

        assert normalized(service.state) == before


class TestUnsyncedChanges:
    """Tests for local changes the remote store never received."""

    @pytest.mark.asyncio
    async def test_keep_local_change_survives_restart(self, tmp_path):
        remote = FlakyStorage()
        service, _ = make_service(tmp_path, remote=remote, policy="keep_local")
        await service.initialize()
        # Account update lands remotely, the transaction row does not
        remote.fail_on = {(FundCollection.TRANSACTIONS, WriteAction.CREATE)}
        await service.apply_transaction(MUMMY_ID, TransactionType.SPEND, 4000, "Groceries")
        assert service.has_unsynced_changes
        assert LocalStateStore(tmp_path / "fund.json").has_unsynced_changes()

        remote.fail_on = set()
        restarted, audit = make_service(tmp_path, remote=remote, policy="keep_local")
        await restarted.initialize()

        assert restarted.get_account_by_id(MUMMY_ID).actual_balance == Decimal("196000")
        assert len(restarted.transactions()) == 1
        assert restarted.account_shortfall(MUMMY_ID) == Decimal("4000")
        assert normalized(await remote.load_state()) == normalized(restarted.state)
        assert not restarted.has_unsynced_changes
        assert not LocalStateStore(tmp_path / "fund.json").has_unsynced_changes()
        assert audit.events[-1].details["source"] == "resynced_remote"

    @pytest.mark.asyncio
    async def test_offline_changes_are_pushed_on_restart(self, tmp_path):
        remote = FlakyStorage(healthy=False)
        await remote.replace_state(FundState.baseline())
        service, _ = make_service(tmp_path, remote=remote)
        await service.initialize()

        outcome = await service.apply_transaction(VAIBHAV_ID, TransactionType.SPEND, 1500, "Books")

        assert outcome.remote_status is RemoteStatus.DISABLED
        assert service.has_unsynced_changes

        remote.healthy = True
        restarted, _ = make_service(tmp_path, remote=remote)
        await restarted.initialize()

        assert len(remote.raw_rows(FundCollection.TRANSACTIONS)) == 1
        assert restarted.get_account_by_id(VAIBHAV_ID).actual_balance == Decimal("98500")

    @pytest.mark.asyncio
    async def test_flag_is_kept_while_remote_is_down(self, tmp_path):
        remote = FlakyStorage()
        service, _ = make_service(tmp_path, remote=remote, policy="keep_local")
        await service.initialize()
        remote.fail_on = {(FundCollection.TRANSACTIONS, WriteAction.CREATE)}
        await service.apply_transaction(MUMMY_ID, TransactionType.SPEND, 4000, "x")

        remote.healthy = False
        restarted, _ = make_service(tmp_path, remote=remote, policy="keep_local")
        await restarted.initialize()

        assert not restarted.remote_enabled
        assert restarted.has_unsynced_changes
        assert LocalStateStore(tmp_path / "fund.json").has_unsynced_changes()

    @pytest.mark.asyncio
    async def test_failed_compensation_marks_unsynced(self, tmp_path):
        remote = FlakyStorage()
        service, _ = make_service(tmp_path, remote=remote)
        await service.initialize()
        remote.fail_on = {
            (FundCollection.ACCOUNTS, WriteAction.UPDATE),
            (FundCollection.ADJUSTMENT_HISTORY, WriteAction.DELETE),
        }
        with pytest.raises(RemoteUnavailableError):
            await service.adjust_actual_balance(MUMMY_ID, 1, "x")

        assert service.has_unsynced_changes

        remote.fail_on = set()
        restarted, _ = make_service(tmp_path, remote=remote)
        await restarted.initialize()

        assert remote.raw_rows(FundCollection.ADJUSTMENT_HISTORY) == []

    @pytest.mark.asyncio
    async def test_clean_rollback_leaves_no_flag(self, tmp_path):
        remote = FlakyStorage()
        service, _ = make_service(tmp_path, remote=remote)
        await service.initialize()
        remote.fail_on = {(FundCollection.TRANSACTIONS, WriteAction.CREATE)}

        with pytest.raises(RemoteUnavailableError):
            await service.apply_transaction(MUMMY_ID, TransactionType.SPEND, 4000, "x")

        assert not service.has_unsynced_changes
        assert not LocalStateStore(tmp_path / "fund.json").has_unsynced_changes()

    @pytest.mark.asyncio
    async def test_sync_remote_pushes_local_state(self, tmp_path):
        remote = FlakyStorage()
        service, _ = make_service(tmp_path, remote=remote, policy="keep_local")
        await service.initialize()
        remote.fail_on = {(FundCollection.TRANSACTIONS, WriteAction.CREATE)}
        await service.apply_transaction(MUMMY_ID, TransactionType.SPEND, 4000, "x")

        await service.sync_remote()

        assert not service.has_unsynced_changes
        assert not LocalStateStore(tmp_path / "fund.json").has_unsynced_changes()
        assert normalized(await remote.load_state()) == normalized(service.state)

    @pytest.mark.asyncio
    async def test_sync_remote_needs_a_remote(self, tmp_path):
        service, _ = make_service(tmp_path)
        await service.initialize()
        with pytest.raises(RemoteUnavailableError):
            await service.sync_remote()


class TestFactory:
    """Tests for create_fund_service."""

    @pytest.mark.asyncio
    async def test_local_only_by_default(self, tmp_path):
        settings = AppSettings(local_state_path=str(tmp_path / "data.json"))

        service = create_fund_service(settings)
        await service.initialize()

        assert service.remote_enabled is False
        assert (tmp_path / "data.json").exists()

    @pytest.mark.asyncio
    async def test_explicit_remote_and_policy(self, tmp_path):
        settings = AppSettings(
            local_state_path=str(tmp_path / "data.json"),
            remote_failure_policy="keep_local",
        )
        remote = FlakyStorage(fail_on={(FundCollection.TRANSACTIONS, WriteAction.CREATE)})

        service = create_fund_service(settings, remote=remote)
        await service.initialize()
        outcome = await service.apply_transaction(MUMMY_ID, TransactionType.DEPOSIT, 1, "x")

        assert outcome.remote_status is RemoteStatus.FAILED


class TestAuditLogger:
    """Tests for the structlog-backed audit logger."""

    @pytest.mark.asyncio
    async def test_log_returns_true(self):
        from family_fund.models.audit import AuditEventBuilder

        logger = AuditLogger()
        event = AuditEventBuilder.state_loaded(source="baseline", accounts=2, transactions=0)
        assert await logger.log(event) is True
