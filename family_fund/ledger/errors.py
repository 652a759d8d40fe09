"""
Ledger Errors

Every ledger operation validates all of its preconditions before it touches
the fund state, so any of these errors means nothing was changed.
"""

from decimal import Decimal


class FundError(Exception):
    """Base exception for ledger operations."""
    pass


class ValidationError(FundError):
    """Input rejected before any mutation (bad amount, empty reason, ...)."""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class InsufficientBalanceError(FundError):
    """A SPEND asked for more than the account actually holds."""

    def __init__(self, account_id: str, requested: Decimal, available: Decimal):
        self.account_id = account_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient balance in account {account_id}: "
            f"requested {requested}, available {available}"
        )


class NotFoundError(FundError):
    """Referenced record does not exist."""
    pass


class AccountNotFoundError(NotFoundError):

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")


class TransactionNotFoundError(NotFoundError):

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction not found: {transaction_id}")
