"""
Core Data Models for the Family Fund Ledger

These models define the record shapes for everything the ledger stores:
1. Accounts (one per family member)
2. Transactions (the spend/deposit/top-up ledger)
3. Target balance history (mandate changes)
4. Actual balance adjustment history (manual corrections)

DESIGN DECISION: Records are immutable pydantic models. An account "update"
produces a new Account instance; the old one is kept by whoever needs the
before-image (see ledger.changes). Field names are snake_case in Python and
camelCase on the wire, so any backing store sees exactly
Account{id,name,targetBalance,actualBalance,updatedAt} and friends.

Money is held as Decimal and written out as a plain JSON number.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional, Union
from uuid import uuid4

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    model_validator,
)
from pydantic.alias_generators import to_camel


MAX_TEXT_LENGTH = 500


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_record_id() -> str:
    """Generate a unique record identifier."""
    return uuid4().hex


def _money_to_json(value: Decimal) -> Union[int, float]:
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def _ensure_utc(value: datetime) -> datetime:
    # Stores that drop the offset (e.g. spreadsheet cells) hand back naive values
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


Money = Annotated[
    Decimal,
    PlainSerializer(_money_to_json, when_used="json"),
]

UtcDatetime = Annotated[datetime, AfterValidator(_ensure_utc)]


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class AccountName(str, Enum):
    """
    The two family members who hold an account.

    The family split (see ledger.operations.split_family_target) is keyed on
    these names; everything else keys accounts by id.
    """
    MUMMY = "Mummy"
    VAIBHAV = "Vaibhav"


class TransactionType(str, Enum):
    """Kinds of balance-affecting transactions."""
    SPEND = "SPEND"
    DEPOSIT = "DEPOSIT"
    PAPA_TOPUP = "PAPA_TOPUP"  # Reimbursement; reduces shortfall


class FundCollection(str, Enum):
    """The four collections that together make up one fund state."""
    ACCOUNTS = "accounts"
    TRANSACTIONS = "transactions"
    TARGET_HISTORY = "targetHistory"
    ADJUSTMENT_HISTORY = "adjustmentHistory"


# =============================================================================
# RECORDS
# =============================================================================

class FundRecord(BaseModel):
    """
    Base class for every persisted record.

    Records are frozen: history is append-only and transactions are never
    edited, only deleted.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        frozen=True,
    )

    id: str = Field(
        default_factory=new_record_id,
        min_length=1,
        description="Unique record identifier"
    )

    def to_record(self) -> dict:
        """Serialize to the wire shape (camelCase keys, JSON-safe values)."""
        return self.model_dump(mode="json", by_alias=True)


class Account(FundRecord):
    """
    A family member's account.

    target_balance is the mandated amount (what Papa says it should hold),
    actual_balance is the real bank-equivalent balance.
    """

    name: AccountName = Field(
        ...,
        description="Which family member owns this account"
    )
    target_balance: Money = Field(
        default=Decimal("0"),
        description="Mandated balance in INR"
    )
    actual_balance: Money = Field(
        default=Decimal("0"),
        description="Current real balance in INR"
    )
    updated_at: UtcDatetime = Field(
        default_factory=utc_now,
        description="Last time either balance changed"
    )


class Transaction(FundRecord):
    """
    A single ledger entry.

    account_name is denormalized so the ledger reads without a join.
    """

    account_id: str = Field(
        ...,
        min_length=1,
        description="Owning account id"
    )
    account_name: AccountName
    type: TransactionType
    amount: Money = Field(
        ...,
        gt=0,
        description="Amount in INR (always positive, direction comes from type)"
    )
    description: str = Field(
        ...,
        min_length=1,
        max_length=MAX_TEXT_LENGTH,
    )
    created_at: UtcDatetime = Field(default_factory=utc_now)


class TargetBalanceHistory(FundRecord):
    """One change of an account's target balance."""

    account_id: str = Field(..., min_length=1)
    account_name: AccountName
    old_target_balance: Money
    new_target_balance: Money
    change_amount: Money = Field(
        ...,
        description="new_target_balance - old_target_balance"
    )
    reason: str = Field(..., min_length=1, max_length=MAX_TEXT_LENGTH)
    changed_at: UtcDatetime = Field(default_factory=utc_now)


class ActualBalanceAdjustmentHistory(FundRecord):
    """A manual correction of an account's actual balance."""

    account_id: str = Field(..., min_length=1)
    account_name: AccountName
    old_actual_balance: Money
    new_actual_balance: Money
    adjustment_reason: str = Field(..., min_length=1, max_length=MAX_TEXT_LENGTH)
    adjusted_at: UtcDatetime = Field(default_factory=utc_now)


AnyRecord = Union[
    Account,
    Transaction,
    TargetBalanceHistory,
    ActualBalanceAdjustmentHistory,
]

COLLECTION_MODELS: dict[FundCollection, type[FundRecord]] = {
    FundCollection.ACCOUNTS: Account,
    FundCollection.TRANSACTIONS: Transaction,
    FundCollection.TARGET_HISTORY: TargetBalanceHistory,
    FundCollection.ADJUSTMENT_HISTORY: ActualBalanceAdjustmentHistory,
}


# =============================================================================
# BASELINE
# =============================================================================

BASELINE_BALANCES: dict[AccountName, tuple[str, Decimal]] = {
    AccountName.MUMMY: ("1", Decimal("200000")),
    AccountName.VAIBHAV: ("2", Decimal("100000")),
}


def baseline_accounts(now: Optional[datetime] = None) -> list[Account]:
    """The accounts a fresh (or reset) fund starts with."""
    timestamp = now or utc_now()
    return [
        Account(
            id=account_id,
            name=name,
            target_balance=balance,
            actual_balance=balance,
            updated_at=timestamp,
        )
        for name, (account_id, balance) in BASELINE_BALANCES.items()
    ]


# =============================================================================
# AGGREGATE
# =============================================================================

class FundState(BaseModel):
    """
    The whole fund: accounts plus the ledger and both history logs.

    This is the single owned aggregate. Ledger operations receive it
    explicitly and mutate it only through put/remove, so every change is
    expressible as a list of record writes.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    accounts: list[Account] = Field(default_factory=list)
    transactions: list[Transaction] = Field(default_factory=list)
    target_history: list[TargetBalanceHistory] = Field(default_factory=list)
    adjustment_history: list[ActualBalanceAdjustmentHistory] = Field(default_factory=list)

    @model_validator(mode='after')
    def validate_unique_accounts(self) -> 'FundState':
        """Account ids and names must both be unique."""
        ids = [account.id for account in self.accounts]
        names = [account.name for account in self.accounts]
        if len(set(ids)) != len(ids):
            raise ValueError("Duplicate account id in fund state")
        if len(set(names)) != len(names):
            raise ValueError("Duplicate account name in fund state")
        return self

    @classmethod
    def baseline(cls, now: Optional[datetime] = None) -> 'FundState':
        """A fresh fund with baseline accounts and empty logs."""
        return cls(accounts=baseline_accounts(now))

    def records(self, collection: FundCollection) -> list:
        """The live list backing a collection."""
        if collection is FundCollection.ACCOUNTS:
            return self.accounts
        if collection is FundCollection.TRANSACTIONS:
            return self.transactions
        if collection is FundCollection.TARGET_HISTORY:
            return self.target_history
        return self.adjustment_history

    def find(self, collection: FundCollection, record_id: str) -> Optional[AnyRecord]:
        for record in self.records(collection):
            if record.id == record_id:
                return record
        return None

    def put(self, collection: FundCollection, record: AnyRecord) -> None:
        """Insert a record, or replace the one with the same id in place."""
        records = self.records(collection)
        for idx, existing in enumerate(records):
            if existing.id == record.id:
                records[idx] = record
                return
        records.append(record)

    def remove(self, collection: FundCollection, record_id: str) -> bool:
        records = self.records(collection)
        for idx, existing in enumerate(records):
            if existing.id == record_id:
                del records[idx]
                return True
        return False

    def get_account(self, account_id: str) -> Optional[Account]:
        return self.find(FundCollection.ACCOUNTS, account_id)

    def get_account_by_name(self, name: AccountName) -> Optional[Account]:
        for account in self.accounts:
            if account.name == name:
                return account
        return None

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        return self.find(FundCollection.TRANSACTIONS, transaction_id)

    def transactions_for(self, account_id: str) -> list[Transaction]:
        return [tx for tx in self.transactions if tx.account_id == account_id]

    def snapshot(self) -> 'FundState':
        """Independent copy (records are frozen, so copying the lists suffices)."""
        return FundState(
            accounts=list(self.accounts),
            transactions=list(self.transactions),
            target_history=list(self.target_history),
            adjustment_history=list(self.adjustment_history),
        )

    def to_document(self) -> dict:
        """Serialize the whole state as one JSON-safe document."""
        return self.model_dump(mode="json", by_alias=True)
