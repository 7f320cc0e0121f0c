"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the persistent backend; in-memory storage backs tests and
storage-less runs.
"""

from networth.services.storage.interface import (
    AuditStorageInterface,
    RecordStorageInterface,
    StorageConnectionError,
    StorageError,
)
from networth.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryRecordStorage,
)
from networth.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRecordStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "RecordStorageInterface",
    # Exceptions
    "StorageConnectionError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryRecordStorage",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsRecordStorage",
]
