"""Tests for the storage layer (no network)."""

import os
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from family_fund.ledger import apply_transaction, update_family_target
from family_fund.models.fund import (
    AccountName,
    FundCollection,
    FundState,
    Transaction,
    TransactionType,
)
from family_fund.services.storage import (
    DuplicateError,
    GoogleSheetsFundStorage,
    InMemoryFundStorage,
    LocalStateStore,
    RecordNotFoundError,
    StorageError,
)
from family_fund.services.storage.google_sheets import (
    COLLECTION_COLUMNS,
    record_to_row,
    row_to_record,
)

from tests.conftest import MUMMY_ID, normalized


class FakeWorksheet:
    """Just enough of gspread.Worksheet for the storage class."""

    def __init__(self, header: list[str]):
        self.rows = [list(header)]

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def append_row(self, values, value_input_option=None):
        self.rows.append(list(values))

    def update(self, range_name, values, value_input_option=None):
        row_number = int(range_name[1:])
        self.rows[row_number - 1] = list(values[0])

    def delete_rows(self, index):
        del self.rows[index - 1]

    def clear(self):
        self.rows = []


class FakeSheetsClient:
    def __init__(self):
        self.sheets = {
            collection: FakeWorksheet(COLLECTION_COLUMNS[collection])
            for collection in FundCollection
        }

    def get_sheet(self, collection):
        return self.sheets[collection]

    def get_spreadsheet(self):
        return object()


def _transaction(**overrides) -> Transaction:
    data = dict(
        account_id=MUMMY_ID,
        account_name=AccountName.MUMMY,
        type=TransactionType.SPEND,
        amount=Decimal("4000"),
        description="Groceries",
        created_at=datetime(2024, 6, 15, 10, 0, tzinfo=timezone.utc),
    )
    data.update(overrides)
    return Transaction(**data)


class TestInMemoryStorage:
    """Tests for the in-memory store."""

    @pytest.mark.asyncio
    async def test_create_get_list(self):
        storage = InMemoryFundStorage()
        tx = _transaction()

        await storage.create_record(FundCollection.TRANSACTIONS, tx)

        assert await storage.get_record(FundCollection.TRANSACTIONS, tx.id) == tx
        assert await storage.list_records(FundCollection.TRANSACTIONS) == [tx]

    @pytest.mark.asyncio
    async def test_rows_use_wire_shape(self):
        storage = InMemoryFundStorage()
        await storage.create_record(FundCollection.TRANSACTIONS, _transaction())
        row = storage.raw_rows(FundCollection.TRANSACTIONS)[0]
        assert row["accountId"] == MUMMY_ID
        assert row["amount"] == 4000

    @pytest.mark.asyncio
    async def test_duplicate_create_rejected(self):
        storage = InMemoryFundStorage()
        tx = _transaction()
        await storage.create_record(FundCollection.TRANSACTIONS, tx)
        with pytest.raises(DuplicateError):
            await storage.create_record(FundCollection.TRANSACTIONS, tx)

    @pytest.mark.asyncio
    async def test_update_missing_rejected(self):
        storage = InMemoryFundStorage()
        with pytest.raises(RecordNotFoundError):
            await storage.update_record(FundCollection.TRANSACTIONS, _transaction())

    @pytest.mark.asyncio
    async def test_delete_reports_presence(self):
        storage = InMemoryFundStorage()
        tx = _transaction()
        await storage.create_record(FundCollection.TRANSACTIONS, tx)
        assert await storage.delete_record(FundCollection.TRANSACTIONS, tx.id) is True
        assert await storage.delete_record(FundCollection.TRANSACTIONS, tx.id) is False

    @pytest.mark.asyncio
    async def test_replace_and_load_state(self, state):
        apply_transaction(state, MUMMY_ID, TransactionType.SPEND, 10, "x")
        storage = InMemoryFundStorage()

        await storage.replace_state(state)
        loaded = await storage.load_state()

        assert normalized(loaded) == normalized(state)

    @pytest.mark.asyncio
    async def test_apply_write(self, state):
        storage = InMemoryFundStorage()
        await storage.replace_state(state)
        change = apply_transaction(state, MUMMY_ID, TransactionType.SPEND, 10, "x")

        for write in change.writes:
            await storage.apply_write(write)

        assert normalized(await storage.load_state()) == normalized(state)


class TestLocalStateStore:
    """Tests for the atomic snapshot file."""

    def test_missing_file_loads_none(self, tmp_path):
        store = LocalStateStore(tmp_path / "fund.json")
        assert store.exists() is False
        assert store.load() is None

    def test_save_and_load(self, tmp_path, state):
        update_family_target(state, 450000, "x")
        apply_transaction(state, MUMMY_ID, TransactionType.SPEND, "99.50", "Tea")
        store = LocalStateStore(tmp_path / "fund.json")

        store.save(state)
        loaded = store.load()

        assert loaded.to_document() == state.to_document()
        assert loaded.transactions[0].amount == Decimal("99.50")

    def test_file_uses_wire_field_names(self, tmp_path, state):
        store = LocalStateStore(tmp_path / "fund.json")
        store.save(state)
        text = store.path.read_text(encoding="utf-8")
        assert '"targetBalance"' in text
        assert '"adjustmentHistory"' in text

    def test_save_leaves_no_temp_files(self, tmp_path, state):
        store = LocalStateStore(tmp_path / "fund.json")
        store.save(state)
        store.save(state)
        assert os.listdir(tmp_path) == ["fund.json"]

    def test_save_creates_parent_directories(self, tmp_path, state):
        store = LocalStateStore(tmp_path / "nested" / "dir" / "fund.json")
        store.save(state)
        assert store.exists()

    def test_unsynced_flag(self, tmp_path, state):
        store = LocalStateStore(tmp_path / "fund.json")
        assert store.has_unsynced_changes() is False

        store.save(state, unsynced=True)
        assert store.has_unsynced_changes() is True
        assert store.load().to_document() == state.to_document()

        store.save(state)
        assert store.has_unsynced_changes() is False

    def test_corrupt_file_raises(self, tmp_path):
        path = tmp_path / "fund.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(StorageError):
            LocalStateStore(path).load()

    def test_clear(self, tmp_path, state):
        store = LocalStateStore(tmp_path / "fund.json")
        store.save(state)
        store.clear()
        store.clear()
        assert store.exists() is False


class TestSheetRows:
    """Tests for record <-> row conversion."""

    def test_row_round_trip(self):
        tx = _transaction(amount=Decimal("4000.50"))
        row = record_to_row(FundCollection.TRANSACTIONS, tx)
        assert row[0] == tx.id
        assert all(isinstance(cell, str) for cell in row)
        assert row_to_record(FundCollection.TRANSACTIONS, row) == tx

    def test_short_rows_fail_validation_not_indexing(self):
        """Test a row with trimmed trailing cells is padded, then validated."""
        row = ["1", "Mummy", "200000", "200000"]
        with pytest.raises(ValueError, match="updatedAt"):
            row_to_record(FundCollection.ACCOUNTS, row)

    def test_naive_sheet_timestamps_become_utc(self):
        row = ["1", "Mummy", "200000", "196000", "2024-06-15T10:00:00"]
        account = row_to_record(FundCollection.ACCOUNTS, row)
        assert account.updated_at == datetime(2024, 6, 15, 10, 0, tzinfo=timezone.utc)
        assert account.actual_balance == Decimal("196000")


class TestGoogleSheetsStorage:
    """Tests for the Sheets store against a fake worksheet."""

    @pytest.mark.asyncio
    async def test_crud(self):
        storage = GoogleSheetsFundStorage(FakeSheetsClient())
        tx = _transaction()

        await storage.create_record(FundCollection.TRANSACTIONS, tx)
        assert await storage.get_record(FundCollection.TRANSACTIONS, tx.id) == tx

        edited = tx.model_copy(update={"description": "Vegetables"})
        await storage.update_record(FundCollection.TRANSACTIONS, edited)
        assert (await storage.list_records(FundCollection.TRANSACTIONS))[0].description == "Vegetables"

        assert await storage.delete_record(FundCollection.TRANSACTIONS, tx.id) is True
        assert await storage.list_records(FundCollection.TRANSACTIONS) == []

    @pytest.mark.asyncio
    async def test_duplicate_create_rejected(self):
        storage = GoogleSheetsFundStorage(FakeSheetsClient())
        tx = _transaction()
        await storage.create_record(FundCollection.TRANSACTIONS, tx)
        with pytest.raises(DuplicateError):
            await storage.create_record(FundCollection.TRANSACTIONS, tx)

    @pytest.mark.asyncio
    async def test_update_missing_rejected(self):
        storage = GoogleSheetsFundStorage(FakeSheetsClient())
        with pytest.raises(RecordNotFoundError):
            await storage.update_record(FundCollection.TRANSACTIONS, _transaction())

    @pytest.mark.asyncio
    async def test_clear_keeps_header(self):
        client = FakeSheetsClient()
        storage = GoogleSheetsFundStorage(client)
        await storage.create_record(FundCollection.TRANSACTIONS, _transaction())

        removed = await storage.clear_collection(FundCollection.TRANSACTIONS)

        assert removed == 1
        assert client.sheets[FundCollection.TRANSACTIONS].rows == [
            COLLECTION_COLUMNS[FundCollection.TRANSACTIONS]
        ]

    @pytest.mark.asyncio
    async def test_state_round_trip(self, state):
        storage = GoogleSheetsFundStorage(FakeSheetsClient())
        apply_transaction(state, MUMMY_ID, TransactionType.SPEND, "12.25", "Bus")

        await storage.replace_state(state)

        assert normalized(await storage.load_state()) == normalized(state)
        assert await storage.health_check() is True
