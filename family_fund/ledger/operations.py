"""
Ledger Operations

The bookkeeping rules for the family fund. Each operation:
1. Validates every precondition (raising before anything changes)
2. Builds a FundChange describing the record writes
3. Applies that change to the fund state it was given
4. Returns the change so callers can persist, mirror or undo it

There is no hidden state here: the FundState is always passed in.
"""

from collections import defaultdict
from datetime import date, datetime, time, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional, Union

from family_fund.ledger.changes import (
    ChangeKind,
    FundChange,
    RecordWrite,
    WriteAction,
)
from family_fund.ledger.errors import (
    AccountNotFoundError,
    InsufficientBalanceError,
    TransactionNotFoundError,
    ValidationError,
)
from family_fund.models.fund import (
    Account,
    AccountName,
    ActualBalanceAdjustmentHistory,
    FundCollection,
    MAX_TEXT_LENGTH,
    FundState,
    TargetBalanceHistory,
    Transaction,
    TransactionType,
    baseline_accounts,
    new_record_id,
    utc_now,
)


GLOBAL_UPDATE_PREFIX = "[Global Update]"
# Family reasons are stored as "<prefix> <reason>"
MAX_FAMILY_REASON_LENGTH = MAX_TEXT_LENGTH - len(GLOBAL_UPDATE_PREFIX) - 1

# Fixed family policy: Mummy holds two thirds of the family target
MUMMY_SHARE_NUMERATOR = Decimal(2)
MUMMY_SHARE_DENOMINATOR = Decimal(3)

MoneyInput = Union[Decimal, int, float, str]
DateInput = Union[date, datetime, str]


# =============================================================================
# INPUT COERCION
# =============================================================================

def _to_money(value: MoneyInput, field: str) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(field, "must be a number")
    try:
        if isinstance(value, Decimal):
            amount = value
        elif isinstance(value, (int, float, str)):
            amount = Decimal(str(value).strip())
        else:
            raise ValidationError(field, "must be a number")
    except InvalidOperation:
        raise ValidationError(field, f"not a valid number: {value!r}")
    if not amount.is_finite():
        raise ValidationError(field, "must be a finite number")
    return amount


def _to_positive_money(value: MoneyInput, field: str) -> Decimal:
    amount = _to_money(value, field)
    if amount <= 0:
        raise ValidationError(field, "must be greater than zero")
    return amount


def _to_text(value: Optional[str], field: str, max_length: int = MAX_TEXT_LENGTH) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(field, "is required")
    if len(text) > max_length:
        raise ValidationError(field, f"must be at most {max_length} characters")
    return text


def _to_transaction_type(value: Union[TransactionType, str]) -> TransactionType:
    try:
        return TransactionType(value)
    except ValueError:
        raise ValidationError("type", f"unknown transaction type: {value!r}")


def _to_date(value: DateInput, field: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        raise ValidationError(field, f"not a valid date: {value!r}")


def _require_account(state: FundState, account_id: str) -> Account:
    account = state.get_account(account_id)
    if account is None:
        raise AccountNotFoundError(account_id)
    return account


# =============================================================================
# BALANCE ARITHMETIC
# =============================================================================

def balance_effect(tx_type: TransactionType, amount: Decimal) -> Decimal:
    """Signed change a transaction makes to its account's actual balance."""
    if tx_type is TransactionType.SPEND:
        return -amount
    return amount


def reversal_effect(transaction: Transaction) -> Decimal:
    """Signed change that exactly undoes a transaction."""
    return -balance_effect(transaction.type, transaction.amount)


def split_family_target(new_total: MoneyInput) -> tuple[Decimal, Decimal]:
    """
    Split a family target 2:1 between Mummy and Vaibhav.

    Mummy's portion is rounded half-up to a whole rupee and Vaibhav gets the
    remainder, so the two always add back up to new_total exactly.
    """
    total = _to_money(new_total, "new_total")
    mummy = (total * MUMMY_SHARE_NUMERATOR / MUMMY_SHARE_DENOMINATOR).quantize(
        Decimal("1"), rounding=ROUND_HALF_UP
    )
    return mummy, total - mummy


def transaction_window(start_date: DateInput, end_date: DateInput) -> tuple[datetime, datetime]:
    """Inclusive UTC window from the start of start_date to the end of end_date."""
    start = _to_date(start_date, "start_date")
    end = _to_date(end_date, "end_date")
    if start > end:
        raise ValidationError("start_date", "must not be after end_date")
    return (
        datetime.combine(start, time.min, tzinfo=timezone.utc),
        datetime.combine(end, time.max, tzinfo=timezone.utc),
    )


def _account_update(before: Account, after: Account) -> RecordWrite:
    return RecordWrite(
        collection=FundCollection.ACCOUNTS,
        action=WriteAction.UPDATE,
        before=before,
        after=after,
    )


def _commit(state: FundState, kind: ChangeKind, writes: list[RecordWrite]) -> FundChange:
    change = FundChange(kind=kind, writes=writes)
    change.apply_to(state)
    return change


# =============================================================================
# TRANSACTIONS
# =============================================================================

def apply_transaction(
    state: FundState,
    account_id: str,
    tx_type: Union[TransactionType, str],
    amount: MoneyInput,
    description: str,
    now: Optional[datetime] = None,
) -> FundChange:
    """
    Record a SPEND, DEPOSIT or PAPA_TOPUP against an account.

    Raises:
        ValidationError: amount not positive, description empty, bad type
        AccountNotFoundError: no such account
        InsufficientBalanceError: SPEND larger than the actual balance
    """
    amount = _to_positive_money(amount, "amount")
    description = _to_text(description, "description")
    tx_type = _to_transaction_type(tx_type)
    account = _require_account(state, account_id)

    if tx_type is TransactionType.SPEND and amount > account.actual_balance:
        raise InsufficientBalanceError(account.id, amount, account.actual_balance)

    timestamp = now or utc_now()
    transaction = Transaction(
        id=new_record_id(),
        account_id=account.id,
        account_name=account.name,
        type=tx_type,
        amount=amount,
        description=description,
        created_at=timestamp,
    )
    updated = account.model_copy(update={
        "actual_balance": account.actual_balance + balance_effect(tx_type, amount),
        "updated_at": timestamp,
    })

    return _commit(state, ChangeKind.TRANSACTION_APPLIED, [
        _account_update(account, updated),
        RecordWrite(
            collection=FundCollection.TRANSACTIONS,
            action=WriteAction.CREATE,
            after=transaction,
        ),
    ])


def delete_transaction(
    state: FundState,
    transaction_id: str,
    now: Optional[datetime] = None,
) -> FundChange:
    """
    Remove a transaction and undo its balance effect.

    Reversal is never blocked by the account's current balance.
    """
    transaction = state.get_transaction(transaction_id)
    if transaction is None:
        raise TransactionNotFoundError(transaction_id)
    account = _require_account(state, transaction.account_id)

    updated = account.model_copy(update={
        "actual_balance": account.actual_balance + reversal_effect(transaction),
        "updated_at": now or utc_now(),
    })

    return _commit(state, ChangeKind.TRANSACTION_DELETED, [
        _account_update(account, updated),
        RecordWrite(
            collection=FundCollection.TRANSACTIONS,
            action=WriteAction.DELETE,
            before=transaction,
        ),
    ])


def bulk_delete_transactions(
    state: FundState,
    start_date: DateInput,
    end_date: DateInput,
    now: Optional[datetime] = None,
) -> FundChange:
    """
    Remove every transaction created within [start_date, end_date].

    Reversals are summed per account and written as one balance update per
    account. Returns an empty change when nothing falls in the range.
    """
    window_start, window_end = transaction_window(start_date, end_date)
    doomed = [
        tx for tx in state.transactions
        if window_start <= tx.created_at <= window_end
    ]
    if not doomed:
        return FundChange(kind=ChangeKind.TRANSACTIONS_BULK_DELETED)

    deltas: dict[str, Decimal] = defaultdict(Decimal)
    for tx in doomed:
        deltas[tx.account_id] += reversal_effect(tx)

    timestamp = now or utc_now()
    writes = []
    for account_id, delta in deltas.items():
        account = state.get_account(account_id)
        if account is None:
            # Orphaned rows are still removed, there is no balance to fix
            continue
        writes.append(_account_update(account, account.model_copy(update={
            "actual_balance": account.actual_balance + delta,
            "updated_at": timestamp,
        })))
    writes.extend(
        RecordWrite(
            collection=FundCollection.TRANSACTIONS,
            action=WriteAction.DELETE,
            before=tx,
        )
        for tx in doomed
    )

    return _commit(state, ChangeKind.TRANSACTIONS_BULK_DELETED, writes)


# =============================================================================
# TARGETS AND ADJUSTMENTS
# =============================================================================

def _target_writes(
    account: Account,
    new_target: Decimal,
    reason: str,
    timestamp: datetime,
) -> list[RecordWrite]:
    history = TargetBalanceHistory(
        id=new_record_id(),
        account_id=account.id,
        account_name=account.name,
        old_target_balance=account.target_balance,
        new_target_balance=new_target,
        change_amount=new_target - account.target_balance,
        reason=reason,
        changed_at=timestamp,
    )
    updated = account.model_copy(update={
        "target_balance": new_target,
        "updated_at": timestamp,
    })
    return [
        RecordWrite(
            collection=FundCollection.TARGET_HISTORY,
            action=WriteAction.CREATE,
            after=history,
        ),
        _account_update(account, updated),
    ]


def update_target_balance(
    state: FundState,
    account_id: str,
    new_target: MoneyInput,
    reason: str,
    now: Optional[datetime] = None,
) -> FundChange:
    """Set one account's mandated balance, recording the change."""
    new_target = _to_money(new_target, "new_target")
    reason = _to_text(reason, "reason")
    account = _require_account(state, account_id)

    return _commit(
        state,
        ChangeKind.TARGET_UPDATED,
        _target_writes(account, new_target, reason, now or utc_now()),
    )


def update_family_target(
    state: FundState,
    new_total: MoneyInput,
    reason: str,
    now: Optional[datetime] = None,
) -> FundChange:
    """
    Set the total family target and split it 2:1 across both accounts.

    Each account gets its own history entry, with the reason marked as a
    global update.
    """
    mummy_portion, vaibhav_portion = split_family_target(new_total)
    reason = _to_text(reason, "reason", max_length=MAX_FAMILY_REASON_LENGTH)

    portions = {
        AccountName.MUMMY: mummy_portion,
        AccountName.VAIBHAV: vaibhav_portion,
    }
    accounts = {}
    for name in portions:
        account = state.get_account_by_name(name)
        if account is None:
            raise AccountNotFoundError(name.value)
        accounts[name] = account

    timestamp = now or utc_now()
    marked_reason = f"{GLOBAL_UPDATE_PREFIX} {reason}"
    writes = []
    for name, portion in portions.items():
        writes.extend(_target_writes(accounts[name], portion, marked_reason, timestamp))

    return _commit(state, ChangeKind.FAMILY_TARGET_UPDATED, writes)


def adjust_actual_balance(
    state: FundState,
    account_id: str,
    new_actual: MoneyInput,
    reason: str,
    now: Optional[datetime] = None,
) -> FundChange:
    """
    Force an account's actual balance to match the real bank balance.

    This bypasses the ledger: no transaction is created, only an
    adjustment history record.
    """
    new_actual = _to_money(new_actual, "new_actual")
    reason = _to_text(reason, "reason")
    account = _require_account(state, account_id)

    timestamp = now or utc_now()
    history = ActualBalanceAdjustmentHistory(
        id=new_record_id(),
        account_id=account.id,
        account_name=account.name,
        old_actual_balance=account.actual_balance,
        new_actual_balance=new_actual,
        adjustment_reason=reason,
        adjusted_at=timestamp,
    )
    updated = account.model_copy(update={
        "actual_balance": new_actual,
        "updated_at": timestamp,
    })

    return _commit(state, ChangeKind.ACTUAL_BALANCE_ADJUSTED, [
        RecordWrite(
            collection=FundCollection.ADJUSTMENT_HISTORY,
            action=WriteAction.CREATE,
            after=history,
        ),
        _account_update(account, updated),
    ])


# =============================================================================
# RESET
# =============================================================================

def reset_all(state: FundState, now: Optional[datetime] = None) -> FundChange:
    """
    Wipe the ledger and both history logs and restore baseline accounts.

    Irreversible from the user's point of view; the returned change is
    only used to mirror the wipe to the remote store.
    """
    writes = []
    for collection in (
        FundCollection.TRANSACTIONS,
        FundCollection.TARGET_HISTORY,
        FundCollection.ADJUSTMENT_HISTORY,
    ):
        writes.extend(
            RecordWrite(collection=collection, action=WriteAction.DELETE, before=record)
            for record in state.records(collection)
        )

    baseline = baseline_accounts(now or utc_now())
    baseline_ids = {account.id for account in baseline}
    writes.extend(
        RecordWrite(collection=FundCollection.ACCOUNTS, action=WriteAction.DELETE, before=account)
        for account in state.accounts
        if account.id not in baseline_ids
    )
    for account in baseline:
        existing = state.get_account(account.id)
        if existing is None:
            writes.append(RecordWrite(
                collection=FundCollection.ACCOUNTS,
                action=WriteAction.CREATE,
                after=account,
            ))
        else:
            writes.append(_account_update(existing, account))

    return _commit(state, ChangeKind.FUND_RESET, writes)
