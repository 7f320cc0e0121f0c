"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the persistent backend because:
1. The user can view and back up their history directly in Sheets
2. No database setup required
3. Easy to export/migrate later

TRADEOFFS:
- The whole record set is rewritten on every save (a personal ledger
  holds a few hundred rows at most)
- No transactions; the ledger's in-memory state stays authoritative

Account balances are stored as a JSON object per row, so adding or
deleting an account key never changes the sheet's columns.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Sequence
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from gspread.utils import rowcol_to_a1
from tenacity import retry, stop_after_attempt, wait_exponential

from networth.config import get_settings
from networth.models.audit import AuditEvent, AuditEventType, AuditSeverity
from networth.models.record import AssetRecord
from networth.services.storage.interface import (
    AuditStorageInterface,
    RecordStorageInterface,
    StorageConnectionError,
    StorageError,
)


logger = structlog.get_logger(__name__)


# Column mappings for Records sheet
RECORD_COLUMNS = [
    "id",
    "date",
    "total",
    "gain",
    "income",
    "mpf",
    "note",
    "assets_json",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

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
                raise StorageConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise StorageConnectionError(f"Failed to connect to Google Sheets: {e}")

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
                raise StorageConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create_sheet(
        self,
        title: str,
        columns: list[str],
        rows: int,
    ) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_records_sheet(self) -> gspread.Worksheet:
        """Get or create the Records worksheet."""
        return self._get_or_create_sheet(
            self._settings.records_sheet_name, RECORD_COLUMNS, rows=1000
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000
        )

    def get_import_sheet(self) -> gspread.Worksheet:
        """Get the worksheet the tabular importer reads from."""
        spreadsheet = self.get_spreadsheet()
        try:
            return spreadsheet.worksheet(self._settings.import_sheet_name)
        except gspread.WorksheetNotFound:
            raise StorageError(
                f"Import sheet not found: {self._settings.import_sheet_name}"
            )


class GoogleSheetsRecordStorage(RecordStorageInterface):
    """
    Google Sheets implementation of record storage.

    One record per row. `total` and `gain` are written for people reading
    the sheet; on load they are ignored and derived again.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _record_to_row(self, record: AssetRecord) -> list:
        """Convert an AssetRecord to a spreadsheet row."""
        return [
            record.id,
            record.date.isoformat(),
            str(record.total),
            str(record.gain),
            str(record.income),
            str(record.mpf),
            record.note or "",
            json.dumps({key: str(value) for key, value in record.assets.items()}),
        ]

    def _row_to_record(self, row: list) -> AssetRecord:
        """Convert a spreadsheet row to an AssetRecord."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        assets_json = safe_get(7)
        assets = {
            key: Decimal(value)
            for key, value in (json.loads(assets_json) if assets_json else {}).items()
        }

        return AssetRecord(
            id=safe_get(0),
            date=date.fromisoformat(safe_get(1)),
            gain=Decimal(safe_get(3, "0")),
            income=Decimal(safe_get(4, "0")),
            mpf=Decimal(safe_get(5, "0")),
            note=safe_get(6) or None,
            assets=assets,
        )

    async def load_records(self) -> list[AssetRecord]:
        """Load every record row, skipping rows that cannot be parsed."""
        try:
            sheet = self._client.get_records_sheet()
            all_rows = sheet.get_all_values()[1:]  # Skip header
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to load records: {e}")

        records = []
        for row_number, row in enumerate(all_rows, start=2):
            if not row or not row[0]:  # Skip empty rows
                continue
            try:
                records.append(self._row_to_record(row))
            except Exception as e:
                logger.warning(
                    "record_row_skipped",
                    row_number=row_number,
                    error=str(e),
                )
        return records

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def save_records(self, records: Sequence[AssetRecord]) -> bool:
        """
        Rewrite the Records sheet with `records`.

        Rows are overwritten in place from A1 and only the leftover rows
        below are cleared afterwards, so a failed write never leaves the
        sheet empty.
        """
        try:
            sheet = self._client.get_records_sheet()
            rows = [RECORD_COLUMNS] + [self._record_to_row(r) for r in records]

            if len(rows) > sheet.row_count:
                sheet.add_rows(len(rows) - sheet.row_count)
            sheet.update(range_name="A1", values=rows, value_input_option="RAW")

            if sheet.row_count > len(rows):
                start = rowcol_to_a1(len(rows) + 1, 1)
                end = rowcol_to_a1(sheet.row_count, len(RECORD_COLUMNS))
                sheet.batch_clear([f"{start}:{end}"])
            return True
        except Exception as e:
            raise StorageError(f"Failed to save records: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=safe_get(5) or None,
            correlation_id=UUID(safe_get(6)) if safe_get(6) else None,
            description=safe_get(7),
            details=json.loads(safe_get(8)) if safe_get(8) else {},
            error_message=safe_get(9) or None,
            is_user_action=safe_get(10).lower() == "true",
        )

    def _read_events(self) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        events = []
        for row in sheet.get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except Exception:
                continue
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Get events by entity."""
        try:
            events = [
                e for e in self._read_events()
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        try:
            events = self._read_events()
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
