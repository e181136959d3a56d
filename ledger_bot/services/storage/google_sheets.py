"""
Google Sheets Ledger Storage

DESIGN DECISION: Google Sheets is the default backend because:
1. The user can read and fix the ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (fine for a personal ledger)
- No native filtering: we read every row and filter in Python
- Cells come back as formatted strings ("R$ 10,50"), so amounts are
  re-parsed on read and rows that don't parse are skipped
- Reads may lag behind writes made moments earlier
"""

import asyncio
from typing import Optional

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from ledger_bot.config.settings import GoogleSheetsSettings
from ledger_bot.models.transaction import AppendAck, Dimension, Transaction
from ledger_bot.services.storage.interface import (
    LedgerStore,
    StoreError,
    StoreErrorKind,
    collect_amounts,
    label_matches,
)


logger = structlog.get_logger(__name__)


# Column layout of the ledger sheet (row 1 holds these headers)
LEDGER_COLUMNS = [
    "timestamp",
    "description",
    "amount",
    "category",
    "payment_type",
    "idempotency_key",
]

DIMENSION_COLUMNS = {
    Dimension.CATEGORY: "category",
    Dimension.PAYMENT_TYPE: "payment_type",
}


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and retries the initial connection.
    """

    def __init__(self, settings: GoogleSheetsSettings):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
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
                raise StoreError(
                    StoreErrorKind.READ_FAILED,
                    f"Google credentials file not found: {self._settings.credentials_path}",
                )
            except Exception as e:
                raise StoreError(
                    StoreErrorKind.READ_FAILED,
                    f"Failed to connect to Google Sheets: {e}",
                )

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
                raise StoreError(
                    StoreErrorKind.READ_FAILED,
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}",
                )
        return self._spreadsheet

    def get_ledger_sheet(self) -> gspread.Worksheet:
        """Get or create the ledger worksheet."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(self._settings.ledger_sheet_name)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=self._settings.ledger_sheet_name,
                rows=1000,
                cols=len(LEDGER_COLUMNS),
            )
            sheet.append_row(LEDGER_COLUMNS, value_input_option="RAW")
        return sheet


def _status_code(error: gspread.exceptions.APIError) -> Optional[int]:
    response = getattr(error, "response", None)
    return getattr(response, "status_code", None)


class GoogleSheetsLedgerStore(LedgerStore):
    """
    Google Sheets implementation of the ledger.

    One transaction per row. Columns are located by header name on read,
    so the user may reorder or add columns in the sheet.

    Cells are written RAW: user text is stored as typed, never evaluated
    as a formula or reinterpreted as a number or date.

    gspread is synchronous, so every sheet call runs in a worker thread.
    """

    def __init__(self, client: GoogleSheetsClient):
        self._client = client

    def _transaction_to_row(self, transaction: Transaction) -> list:
        """Convert a Transaction to a spreadsheet row."""
        return [
            transaction.timestamp.isoformat(),
            transaction.description,
            transaction.amount,
            transaction.category,
            transaction.payment_type,
            transaction.idempotency_key or "",
        ]

    def _read_rows(self) -> tuple[list[str], list[list[str]]]:
        """Return (header, data rows) of the ledger sheet."""
        try:
            all_values = self._client.get_ledger_sheet().get_all_values()
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(StoreErrorKind.READ_FAILED, f"Failed to read ledger: {e}")

        if not all_values:
            return [], []
        header = [cell.strip().lower() for cell in all_values[0]]
        return header, all_values[1:]

    def _ensure_header(self, sheet: gspread.Worksheet, header: list[str]) -> None:
        """
        Put LEDGER_COLUMNS in row 1 if the sheet has no header.

        Covers a worksheet that already existed empty, and one whose
        first row is data. Existing rows are shifted down, not overwritten.
        """
        if "amount" in header:
            return
        logger.warning("ledger_header_missing", backend="google_sheets", first_row=header)
        sheet.insert_row(LEDGER_COLUMNS, index=1, value_input_option="RAW")

    def _append_sync(self, transaction: Transaction) -> AppendAck:
        header, rows = self._read_rows()

        key = transaction.idempotency_key
        if key and "idempotency_key" in header:
            idx = header.index("idempotency_key")
            if any(len(row) > idx and row[idx] == key for row in rows):
                return AppendAck(stored=False, duplicate=True)

        try:
            sheet = self._client.get_ledger_sheet()
            self._ensure_header(sheet, header)
            sheet.append_row(
                self._transaction_to_row(transaction),
                value_input_option="RAW",
            )
        except StoreError:
            raise
        except gspread.exceptions.APIError as e:
            status = _status_code(e)
            kind = (
                StoreErrorKind.BACKEND_REJECTED
                if status is not None and 400 <= status < 500
                else StoreErrorKind.WRITE_FAILED
            )
            raise StoreError(kind, f"Google Sheets rejected the row: {e}")
        except Exception as e:
            raise StoreError(StoreErrorKind.WRITE_FAILED, f"Failed to append row: {e}")

        return AppendAck(stored=True)

    def _query_sync(self, dimension: Dimension, value: str) -> list[float]:
        header, rows = self._read_rows()
        if not header and not rows:
            return []

        column = DIMENSION_COLUMNS[dimension]
        missing = [name for name in (column, "amount") if name not in header]
        if missing:
            raise StoreError(
                StoreErrorKind.READ_FAILED,
                f"Ledger sheet is missing columns: {', '.join(missing)}",
            )

        label_idx = header.index(column)
        amount_idx = header.index("amount")

        raw_amounts = []
        for row in rows:
            if len(row) <= max(label_idx, amount_idx):
                continue  # Skip short/empty rows
            if label_matches(row[label_idx], value):
                raw_amounts.append(row[amount_idx])

        amounts = collect_amounts(raw_amounts)
        if len(amounts) < len(raw_amounts):
            logger.warning(
                "malformed_rows_skipped",
                backend="google_sheets",
                skipped=len(raw_amounts) - len(amounts),
            )
        return amounts

    async def append(self, transaction: Transaction) -> AppendAck:
        """Append a transaction as a new row."""
        return await asyncio.to_thread(self._append_sync, transaction)

    async def query(self, dimension: Dimension, value: str) -> list[float]:
        """Filter all rows client-side and return their amounts."""
        return await asyncio.to_thread(self._query_sync, dimension, value)
