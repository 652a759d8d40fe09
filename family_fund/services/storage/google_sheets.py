"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the remote store because:
1. The family can look at the ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (a household ledger is tiny)
- No transactions (the service compensates failed write sequences)
- Limited query capabilities (we filter in Python)

One worksheet per collection. Column headers are the wire field names, so
the sheet shows exactly Account{id,name,targetBalance,...} and so on.
"""

from typing import Optional

import gspread
from google.oauth2.service_account import Credentials
from pydantic import ValidationError as PydanticValidationError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from family_fund.config import GoogleSheetsSettings, get_settings
from family_fund.models.fund import (
    COLLECTION_MODELS,
    AnyRecord,
    FundCollection,
)
from family_fund.services.storage.interface import (
    DuplicateError,
    FundStorageInterface,
    RecordNotFoundError,
    RemoteUnavailableError,
)


COLLECTION_COLUMNS: dict[FundCollection, list[str]] = {
    FundCollection.ACCOUNTS: [
        "id",
        "name",
        "targetBalance",
        "actualBalance",
        "updatedAt",
    ],
    FundCollection.TRANSACTIONS: [
        "id",
        "accountId",
        "accountName",
        "type",
        "amount",
        "description",
        "createdAt",
    ],
    FundCollection.TARGET_HISTORY: [
        "id",
        "accountId",
        "accountName",
        "oldTargetBalance",
        "newTargetBalance",
        "changeAmount",
        "reason",
        "changedAt",
    ],
    FundCollection.ADJUSTMENT_HISTORY: [
        "id",
        "accountId",
        "accountName",
        "oldActualBalance",
        "newActualBalance",
        "adjustmentReason",
        "adjustedAt",
    ],
}

_remote_retry = retry(
    retry=retry_if_exception_type(RemoteUnavailableError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


def record_to_row(collection: FundCollection, record: AnyRecord) -> list[str]:
    """Convert a record to a spreadsheet row (all cells as text)."""
    data = record.to_record()
    return [str(data[column]) for column in COLLECTION_COLUMNS[collection]]


def row_to_record(collection: FundCollection, row: list) -> AnyRecord:
    """Convert a spreadsheet row back to a record."""
    columns = COLLECTION_COLUMNS[collection]
    # Sheets trims trailing empty cells
    padded = list(row) + [""] * (len(columns) - len(row))
    return COLLECTION_MODELS[collection].model_validate(dict(zip(columns, padded)))


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @_remote_retry
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise RemoteUnavailableError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise RemoteUnavailableError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise RemoteUnavailableError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
            except gspread.exceptions.APIError as e:
                raise RemoteUnavailableError(f"Failed to open spreadsheet: {e}")
        return self._spreadsheet

    def _sheet_name(self, collection: FundCollection) -> str:
        return {
            FundCollection.ACCOUNTS: self._settings.accounts_sheet_name,
            FundCollection.TRANSACTIONS: self._settings.transactions_sheet_name,
            FundCollection.TARGET_HISTORY: self._settings.target_history_sheet_name,
            FundCollection.ADJUSTMENT_HISTORY: self._settings.adjustment_history_sheet_name,
        }[collection]

    def get_sheet(self, collection: FundCollection) -> gspread.Worksheet:
        """Get or create the worksheet for a collection."""
        spreadsheet = self.get_spreadsheet()
        title = self._sheet_name(collection)
        columns = COLLECTION_COLUMNS[collection]
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=1000,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet


class GoogleSheetsFundStorage(FundStorageInterface):
    """
    Google Sheets implementation of fund storage.

    Records are stored one per row; the first column is always the id.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _data_rows(self, collection: FundCollection) -> tuple[gspread.Worksheet, list[list]]:
        try:
            sheet = self._client.get_sheet(collection)
            return sheet, sheet.get_all_values()[1:]  # Skip header
        except RemoteUnavailableError:
            raise
        except Exception as e:
            raise RemoteUnavailableError(f"Failed to read {collection.value}: {e}")

    def _find_row(self, rows: list[list], record_id: str) -> Optional[int]:
        """1-based sheet row number of a record (header is row 1)."""
        for idx, row in enumerate(rows, start=2):
            if row and row[0] == record_id:
                return idx
        return None

    async def list_records(self, collection: FundCollection) -> list[AnyRecord]:
        _, rows = self._data_rows(collection)
        records = []
        for row in rows:
            if not row or not row[0]:  # Skip empty rows
                continue
            try:
                records.append(row_to_record(collection, row))
            except PydanticValidationError as e:
                raise RemoteUnavailableError(
                    f"Malformed {collection.value} row {row[0]}: {e}"
                )
        return records

    async def get_record(
        self,
        collection: FundCollection,
        record_id: str,
    ) -> Optional[AnyRecord]:
        _, rows = self._data_rows(collection)
        for row in rows:
            if row and row[0] == record_id:
                return row_to_record(collection, row)
        return None

    @_remote_retry
    async def create_record(self, collection: FundCollection, record: AnyRecord) -> bool:
        sheet, rows = self._data_rows(collection)
        if self._find_row(rows, record.id) is not None:
            raise DuplicateError(f"{collection.value} record already exists: {record.id}")
        try:
            sheet.append_row(record_to_row(collection, record), value_input_option="RAW")
            return True
        except Exception as e:
            raise RemoteUnavailableError(f"Failed to create {collection.value} record: {e}")

    @_remote_retry
    async def update_record(self, collection: FundCollection, record: AnyRecord) -> bool:
        sheet, rows = self._data_rows(collection)
        row_number = self._find_row(rows, record.id)
        if row_number is None:
            raise RecordNotFoundError(f"{collection.value} record not found: {record.id}")
        try:
            sheet.update(
                range_name=f"A{row_number}",
                values=[record_to_row(collection, record)],
                value_input_option="RAW",
            )
            return True
        except Exception as e:
            raise RemoteUnavailableError(f"Failed to update {collection.value} record: {e}")

    @_remote_retry
    async def delete_record(self, collection: FundCollection, record_id: str) -> bool:
        sheet, rows = self._data_rows(collection)
        row_number = self._find_row(rows, record_id)
        if row_number is None:
            return False
        try:
            sheet.delete_rows(row_number)
            return True
        except Exception as e:
            raise RemoteUnavailableError(f"Failed to delete {collection.value} record: {e}")

    @_remote_retry
    async def clear_collection(self, collection: FundCollection) -> int:
        sheet, rows = self._data_rows(collection)
        removed = sum(1 for row in rows if row and row[0])
        try:
            sheet.clear()
            sheet.append_row(COLLECTION_COLUMNS[collection])
            return removed
        except Exception as e:
            raise RemoteUnavailableError(f"Failed to clear {collection.value}: {e}")

    async def health_check(self) -> bool:
        try:
            self._client.get_spreadsheet()
            return True
        except RemoteUnavailableError:
            return False
