"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for the remote store.
This allows us to:
1. Mirror the fund to Google Sheets today and a real database later
2. Use in-memory storage for testing and offline runs
3. Keep the ledger decoupled from storage

The interface is plain CRUD per collection - we're not building an ORM.
Each of the four collections (accounts, transactions, target history,
adjustment history) supports list / get / create / update / delete / clear.
"""

from abc import ABC, abstractmethod
from typing import Optional

from family_fund.ledger.changes import RecordWrite, WriteAction
from family_fund.models.fund import (
    AnyRecord,
    FundCollection,
    FundState,
)


class FundStorageInterface(ABC):
    """
    Abstract interface for fund record storage.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def list_records(self, collection: FundCollection) -> list[AnyRecord]:
        """
        List every record in a collection.

        Raises:
            RemoteUnavailableError: If the backend can't be reached
        """
        pass

    @abstractmethod
    async def get_record(
        self,
        collection: FundCollection,
        record_id: str,
    ) -> Optional[AnyRecord]:
        """
        Retrieve a record by its ID.

        Returns:
            The record if found, None otherwise
        """
        pass

    @abstractmethod
    async def create_record(
        self,
        collection: FundCollection,
        record: AnyRecord,
    ) -> bool:
        """
        Insert a new record.

        Raises:
            DuplicateError: If a record with the same id exists
            RemoteUnavailableError: If the write fails
        """
        pass

    @abstractmethod
    async def update_record(
        self,
        collection: FundCollection,
        record: AnyRecord,
    ) -> bool:
        """
        Replace an existing record (matched by id).

        Raises:
            RecordNotFoundError: If the record doesn't exist
            RemoteUnavailableError: If the write fails
        """
        pass

    @abstractmethod
    async def delete_record(
        self,
        collection: FundCollection,
        record_id: str,
    ) -> bool:
        """
        Delete a record by ID.

        Returns:
            True if a record was deleted, False if there was none
        """
        pass

    @abstractmethod
    async def clear_collection(self, collection: FundCollection) -> int:
        """
        Delete every record in a collection.

        Returns:
            Number of records removed
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Return True if the backend is reachable."""
        pass

    async def load_state(self) -> FundState:
        """Read all four collections into one fund state."""
        return FundState(
            accounts=await self.list_records(FundCollection.ACCOUNTS),
            transactions=await self.list_records(FundCollection.TRANSACTIONS),
            target_history=await self.list_records(FundCollection.TARGET_HISTORY),
            adjustment_history=await self.list_records(FundCollection.ADJUSTMENT_HISTORY),
        )

    async def replace_state(self, state: FundState) -> None:
        """Overwrite the store with a full fund state (used for seeding)."""
        for collection in FundCollection:
            await self.clear_collection(collection)
            for record in state.records(collection):
                await self.create_record(collection, record)

    async def apply_write(self, write: RecordWrite) -> None:
        """Mirror a single ledger write."""
        if write.action is WriteAction.CREATE:
            await self.create_record(write.collection, write.after)
        elif write.action is WriteAction.UPDATE:
            await self.update_record(write.collection, write.after)
        else:
            await self.delete_record(write.collection, write.record_id)


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class RecordNotFoundError(StorageError):
    """Record not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate record."""
    pass


class RemoteUnavailableError(StorageError):
    """Could not reach the storage backend, or it refused a write."""
    pass
