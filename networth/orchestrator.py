"""
Main Orchestrator for the Net-Worth Ledger

Wires configuration, storage, audit logging and the ledger together,
and defines the end-to-end import flow:
    source -> ImportBatch -> ledger.import_batch -> detached save

DESIGN DECISION: Nothing here holds ledger rules. The orchestrator only
picks collaborators; every state change still goes through LedgerState.
"""

import logging
from typing import Optional
from uuid import UUID

import structlog

from networth.audit import AuditLogger, create_correlation_id
from networth.config import get_settings, validate_all_settings
from networth.importing import ImportSourceInterface, TabularImportSource
from networth.ledger import LedgerState
from networth.models.record import ImportBatch
from networth.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRecordStorage,
    InMemoryRecordStorage,
    RecordStorageInterface,
)


logger = structlog.get_logger(__name__)


def configure_logging() -> None:
    """Apply the configured level to the stdlib loggers structlog writes to."""
    logging.basicConfig(
        format="%(message)s",
        level=get_settings().app.log_level,
    )


def create_storage_components(
    use_storage: bool = True,
) -> tuple[RecordStorageInterface, AuditLogger, Optional[GoogleSheetsClient]]:
    """
    Factory function to create the ledger's collaborators.

    Args:
        use_storage: Whether to use the configured persistent backend.
                    Set to False for testing without storage.

    Returns:
        (record_storage, audit_logger, sheets_client)
    """
    if use_storage and get_settings().app.uses_google_sheets:
        status = validate_all_settings()
        if not status["google_sheets"]:
            logger.warning(
                "storage_not_configured",
                error=status.get("google_sheets_error"),
            )
            return InMemoryRecordStorage(), AuditLogger(), None

        try:
            sheets_client = GoogleSheetsClient()
            record_storage = GoogleSheetsRecordStorage(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
            return record_storage, audit_logger, sheets_client
        except Exception as e:
            # Storage not configured - continue without it
            logger.warning("storage_not_configured", error=str(e))

    return InMemoryRecordStorage(), AuditLogger(), None


async def open_ledger(use_storage: bool = True) -> LedgerState:
    """Create collaborators and load the ledger from storage."""
    configure_logging()
    record_storage, audit_logger, _ = create_storage_components(use_storage)
    return await LedgerState.load(record_storage, audit_logger)


def create_sheet_import_source(client: GoogleSheetsClient) -> TabularImportSource:
    """Importer reading the configured import worksheet."""
    return TabularImportSource.from_worksheet(client.get_import_sheet())


def run_import(
    ledger: LedgerState,
    source: ImportSourceInterface,
    correlation_id: Optional[UUID] = None,
) -> ImportBatch:
    """
    Read a batch from `source` and import it into `ledger`.

    If the source fails to parse, the ledger is left untouched and the
    error propagates to the caller.
    """
    correlation_id = correlation_id or create_correlation_id()
    batch = source.read()
    ledger.import_batch(batch, correlation_id=correlation_id)
    return batch
