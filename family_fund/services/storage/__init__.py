"""
Storage Services Package

Provides the abstract remote-store interface with Google Sheets and
in-memory implementations, plus the local snapshot file store.
"""

from family_fund.services.storage.interface import (
    DuplicateError,
    FundStorageInterface,
    RecordNotFoundError,
    RemoteUnavailableError,
    StorageError,
)
from family_fund.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsFundStorage,
)
from family_fund.services.storage.local_file import LocalStateStore
from family_fund.services.storage.memory import InMemoryFundStorage

__all__ = [
    # Interfaces
    "FundStorageInterface",
    # Exceptions
    "DuplicateError",
    "RecordNotFoundError",
    "RemoteUnavailableError",
    "StorageError",
    # Implementations
    "GoogleSheetsClient",
    "GoogleSheetsFundStorage",
    "InMemoryFundStorage",
    "LocalStateStore",
]
