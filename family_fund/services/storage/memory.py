"""
In-Memory Storage Implementation

Keeps records in their wire shape (camelCase dicts), so anything that
round-trips here round-trips through a real backend too. Used by the tests
and as the mirror when no remote store is configured but a caller still
wants one.
"""

from typing import Optional

from family_fund.models.fund import (
    COLLECTION_MODELS,
    AnyRecord,
    FundCollection,
)
from family_fund.services.storage.interface import (
    DuplicateError,
    FundStorageInterface,
    RecordNotFoundError,
)


class InMemoryFundStorage(FundStorageInterface):

    def __init__(self):
        self._rows: dict[FundCollection, dict[str, dict]] = {
            collection: {} for collection in FundCollection
        }

    def _to_record(self, collection: FundCollection, row: dict) -> AnyRecord:
        return COLLECTION_MODELS[collection].model_validate(row)

    async def list_records(self, collection: FundCollection) -> list[AnyRecord]:
        return [
            self._to_record(collection, row)
            for row in self._rows[collection].values()
        ]

    async def get_record(
        self,
        collection: FundCollection,
        record_id: str,
    ) -> Optional[AnyRecord]:
        row = self._rows[collection].get(record_id)
        return self._to_record(collection, row) if row is not None else None

    async def create_record(self, collection: FundCollection, record: AnyRecord) -> bool:
        if record.id in self._rows[collection]:
            raise DuplicateError(f"{collection.value} record already exists: {record.id}")
        self._rows[collection][record.id] = record.to_record()
        return True

    async def update_record(self, collection: FundCollection, record: AnyRecord) -> bool:
        if record.id not in self._rows[collection]:
            raise RecordNotFoundError(f"{collection.value} record not found: {record.id}")
        self._rows[collection][record.id] = record.to_record()
        return True

    async def delete_record(self, collection: FundCollection, record_id: str) -> bool:
        return self._rows[collection].pop(record_id, None) is not None

    async def clear_collection(self, collection: FundCollection) -> int:
        removed = len(self._rows[collection])
        self._rows[collection].clear()
        return removed

    async def health_check(self) -> bool:
        return True

    def raw_rows(self, collection: FundCollection) -> list[dict]:
        """Stored rows exactly as a backend would see them."""
        return list(self._rows[collection].values())
