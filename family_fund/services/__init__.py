"""Services package."""

from family_fund.services.storage import (
    DuplicateError,
    FundStorageInterface,
    GoogleSheetsClient,
    GoogleSheetsFundStorage,
    InMemoryFundStorage,
    LocalStateStore,
    RecordNotFoundError,
    RemoteUnavailableError,
    StorageError,
)

__all__ = [
    "DuplicateError",
    "FundStorageInterface",
    "GoogleSheetsClient",
    "GoogleSheetsFundStorage",
    "InMemoryFundStorage",
    "LocalStateStore",
    "RecordNotFoundError",
    "RemoteUnavailableError",
    "StorageError",
]
