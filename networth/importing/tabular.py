"""
Tabular Import Source

Turns rows that are already tabular (a list of dicts, or a worksheet read
through gspread) into an ImportBatch.

DESIGN DECISION: The column policy is fixed and explicit:
- `date` is required (ISO string or date)
- `income`, `mpf` and `note` are record fields
- `id`, `total` and `gain` are ignored; the ledger derives them
- every other column is an account key

There are no guessing heuristics. A cell that cannot be read raises
ImportParseError naming the row and column; nothing is silently fixed.
"""

import datetime as dt
from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping, Optional

import gspread

from networth.models.record import AssetRecord, ImportBatch


RECORD_COLUMNS = {"date", "income", "mpf", "note"}
DERIVED_COLUMNS = {"id", "total", "gain"}


class ImportParseError(ValueError):
    """A row could not be turned into a record."""

    def __init__(self, message: str, row_number: int, column: Optional[str] = None):
        self.row_number = row_number
        self.column = column
        where = f"row {row_number}" + (f", column {column!r}" if column else "")
        super().__init__(f"{where}: {message}")


class ImportSourceInterface(ABC):
    """Anything that can produce records for the ledger to import."""

    @abstractmethod
    def read(self) -> ImportBatch:
        """
        Produce the records and the account keys detected while reading.

        Raises:
            ImportParseError: If the input cannot be read
        """
        pass


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _parse_amount(value: Any, row_number: int, column: str) -> Decimal:
    if isinstance(value, bool):
        raise ImportParseError(f"not a number: {value!r}", row_number, column)
    text = str(value) if isinstance(value, (int, float, Decimal)) else str(value).strip().replace(",", "")
    try:
        amount = Decimal(text)
    except InvalidOperation:
        raise ImportParseError(f"not a number: {value!r}", row_number, column)
    if not amount.is_finite():
        raise ImportParseError(f"not a finite number: {value!r}", row_number, column)
    return amount


def _parse_date(value: Any, row_number: int) -> dt.date:
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    if _is_blank(value):
        raise ImportParseError("missing date", row_number, "date")
    try:
        return dt.date.fromisoformat(str(value).strip())
    except ValueError:
        raise ImportParseError(f"not an ISO date: {value!r}", row_number, "date")


class TabularImportSource(ImportSourceInterface):
    """
    Import records from header-keyed rows.

    Header names are matched case-insensitively for the reserved columns;
    account keys keep the header text as written (minus surrounding
    whitespace).
    """

    def __init__(self, rows: Iterable[Mapping[str, Any]], first_row_number: int = 2):
        self._rows = list(rows)
        self._first_row_number = first_row_number

    @classmethod
    def from_worksheet(cls, worksheet: gspread.Worksheet) -> "TabularImportSource":
        """Read every row below the header of `worksheet`."""
        return cls(worksheet.get_all_records())

    def read(self) -> ImportBatch:
        records = []
        detected: dict[str, None] = {}

        for row_number, row in enumerate(self._rows, start=self._first_row_number):
            if all(_is_blank(v) for v in row.values()):
                continue

            fields: dict[str, Any] = {}
            assets: dict[str, Decimal] = {}
            for header, value in row.items():
                column = str(header).strip()
                reserved = column.lower()
                if not column or reserved in DERIVED_COLUMNS:
                    continue
                if reserved in RECORD_COLUMNS:
                    fields[reserved] = value
                    continue
                if _is_blank(value):
                    continue
                assets[column] = _parse_amount(value, row_number, column)
                detected.setdefault(column, None)

            record = AssetRecord(
                date=_parse_date(fields.get("date"), row_number),
                assets=assets,
                income=(
                    Decimal("0") if _is_blank(fields.get("income"))
                    else _parse_amount(fields["income"], row_number, "income")
                ),
                mpf=(
                    Decimal("0") if _is_blank(fields.get("mpf"))
                    else _parse_amount(fields["mpf"], row_number, "mpf")
                ),
                note=None if _is_blank(fields.get("note")) else str(fields["note"]).strip(),
            )
            records.append(record)

        return ImportBatch(records=records, detected_keys=list(detected))
