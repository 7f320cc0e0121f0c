"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep the ledger decoupled from how records are persisted

The ledger only needs two things from record storage: load everything
once at startup, and replace everything after each change.
"""

from abc import ABC, abstractmethod
from typing import Sequence

from networth.models.audit import AuditEvent
from networth.models.record import AssetRecord


class RecordStorageInterface(ABC):
    """
    Abstract interface for record storage.

    Any storage implementation (Google Sheets, SQLite, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def load_records(self) -> list[AssetRecord]:
        """
        Load every persisted record.

        Returns:
            The records, or an empty list if nothing has been saved yet.
            "No data" is never an error.

        Raises:
            StorageError: If the backend cannot be read
        """
        pass

    @abstractmethod
    async def save_records(self, records: Sequence[AssetRecord]) -> bool:
        """
        Replace the persisted record set with `records`.

        Args:
            records: The full record set, in chronological order

        Returns:
            True if saved successfully

        Raises:
            StorageError: If save fails
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity, in chronological order.

        Args:
            entity_type: Type of entity (e.g., 'record', 'asset_key')
            entity_id: The entity's ID
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events (newest first).
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class StorageConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
