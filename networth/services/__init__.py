"""Services package."""

from networth.services.background import drain_pending, run_detached, wait_for_background
from networth.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRecordStorage,
    InMemoryAuditStorage,
    InMemoryRecordStorage,
    RecordStorageInterface,
    StorageConnectionError,
    StorageError,
)

__all__ = [
    # Background dispatch
    "drain_pending",
    "run_detached",
    "wait_for_background",
    # Storage services
    "AuditStorageInterface",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsRecordStorage",
    "InMemoryAuditStorage",
    "InMemoryRecordStorage",
    "RecordStorageInterface",
    "StorageConnectionError",
    "StorageError",
]
