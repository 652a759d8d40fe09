"""
Fund Changes

DESIGN DECISION: A ledger operation does not poke at the fund state directly.
It computes a FundChange (an ordered list of record writes, each carrying the
before- and after-image of one record) and then applies it.

This gives us:
1. One code path for the local aggregate and the remote mirror
2. An exact inverse for free (swap before/after, reverse the order)
3. A natural unit for compensation when the remote mirror fails halfway
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from family_fund.models.fund import AnyRecord, FundCollection, FundState


class WriteAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


_INVERSE_ACTION = {
    WriteAction.CREATE: WriteAction.DELETE,
    WriteAction.UPDATE: WriteAction.UPDATE,
    WriteAction.DELETE: WriteAction.CREATE,
}


class ChangeKind(str, Enum):
    """Which operation produced a change."""
    TRANSACTION_APPLIED = "transaction_applied"
    TRANSACTION_DELETED = "transaction_deleted"
    TRANSACTIONS_BULK_DELETED = "transactions_bulk_deleted"
    TARGET_UPDATED = "target_updated"
    FAMILY_TARGET_UPDATED = "family_target_updated"
    ACTUAL_BALANCE_ADJUSTED = "actual_balance_adjusted"
    FUND_RESET = "fund_reset"


class RecordWrite(BaseModel):
    """
    One write against one collection.

    CREATE has only an after-image, DELETE only a before-image,
    UPDATE has both.
    """
    model_config = ConfigDict(frozen=True)

    collection: FundCollection
    action: WriteAction
    before: Optional[AnyRecord] = None
    after: Optional[AnyRecord] = None

    @property
    def record_id(self) -> str:
        record = self.after if self.after is not None else self.before
        return record.id

    def inverse(self) -> 'RecordWrite':
        return RecordWrite(
            collection=self.collection,
            action=_INVERSE_ACTION[self.action],
            before=self.after,
            after=self.before,
        )

    def apply_to(self, state: FundState) -> None:
        if self.action is WriteAction.DELETE:
            state.remove(self.collection, self.record_id)
        else:
            state.put(self.collection, self.after)


class FundChange(BaseModel):
    """The ordered writes performed by a single ledger operation."""
    model_config = ConfigDict(frozen=True)

    kind: ChangeKind
    writes: list[RecordWrite] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.writes

    def created(self, collection: FundCollection) -> list[AnyRecord]:
        """After-images of the records this change created in a collection."""
        return [
            w.after for w in self.writes
            if w.collection is collection and w.action is WriteAction.CREATE
        ]

    def deleted(self, collection: FundCollection) -> list[AnyRecord]:
        return [
            w.before for w in self.writes
            if w.collection is collection and w.action is WriteAction.DELETE
        ]

    def updated(self, collection: FundCollection) -> list[AnyRecord]:
        return [
            w.after for w in self.writes
            if w.collection is collection and w.action is WriteAction.UPDATE
        ]

    def inverse(self) -> 'FundChange':
        """The change that undoes this one when applied after it."""
        return FundChange(
            kind=self.kind,
            writes=[w.inverse() for w in reversed(self.writes)],
        )

    def apply_to(self, state: FundState) -> None:
        for write in self.writes:
            write.apply_to(state)
