"""
Audit Models for the Net-Worth Ledger

Every ledger mutation is logged for audit purposes.
This provides:
1. Traceability of every change to records and account keys
2. Debugging information when persistence goes wrong
3. Ability to reconstruct history

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


DESCRIPTION_MAX_LENGTH = 500
# Longest key or id quoted in a description; the full value stays in entity_id.
DESCRIPTION_VALUE_MAX_LENGTH = 80


def _short(value: str, limit: int = DESCRIPTION_VALUE_MAX_LENGTH) -> str:
    """Shorten a user-supplied value for use inside a description."""
    text = str(value)
    if len(text) <= limit:
        return text
    return text[:limit - 3] + "..."


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Loading
    RECORDS_LOADED = "records_loaded"

    # Record mutations
    RECORD_ADDED = "record_added"
    RECORD_UPDATED = "record_updated"
    RECORD_DELETED = "record_deleted"
    RECORD_NOT_FOUND = "record_not_found"

    # Account keys
    KEY_ADDED = "key_added"
    KEY_DELETE_REQUESTED = "key_delete_requested"
    KEY_DELETED = "key_deleted"
    KEY_DELETE_CANCELLED = "key_delete_cancelled"

    # Import
    RECORDS_IMPORTED = "records_imported"

    # Persistence
    SAVE_FAILED = "save_failed"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    Every ledger mutation creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'record', 'asset_key', 'ledger')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate events caused by one user action"
    )

    description: str = Field(
        ...,
        max_length=DESCRIPTION_MAX_LENGTH,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.record_added(record_id, date, total)
        event = AuditEventBuilder.key_deleted(key, affected_records)
    """

    @staticmethod
    def records_loaded(
        record_count: int,
        key_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORDS_LOADED,
            entity_type="ledger",
            correlation_id=correlation_id,
            description=f"Loaded {record_count} records",
            details={
                "record_count": record_count,
                "key_count": key_count,
            },
        )

    @staticmethod
    def record_added(
        record_id: str,
        record_date: str,
        total: str,
        new_keys: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_ADDED,
            entity_type="record",
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"Record added for {_short(record_date)}",
            details={
                "date": record_date,
                "total": total,
                "new_keys": new_keys,
            },
            is_user_action=True,
        )

    @staticmethod
    def record_updated(
        record_id: str,
        record_date: str,
        total: str,
        new_keys: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_UPDATED,
            entity_type="record",
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"Record updated for {_short(record_date)}",
            details={
                "date": record_date,
                "total": total,
                "new_keys": new_keys,
            },
            is_user_action=True,
        )

    @staticmethod
    def record_deleted(
        record_id: str,
        removed: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_DELETED,
            entity_type="record",
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"Record deleted: {_short(record_id)}",
            details={"removed": removed},
            is_user_action=True,
        )

    @staticmethod
    def record_not_found(
        record_id: str,
        operation: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_NOT_FOUND,
            severity=AuditSeverity.WARNING,
            entity_type="record",
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"No record with id {_short(record_id)}; {operation} had no effect",
            details={"operation": operation},
            is_user_action=True,
        )

    @staticmethod
    def key_added(
        key: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.KEY_ADDED,
            entity_type="asset_key",
            entity_id=key,
            correlation_id=correlation_id,
            description=f"Account key added: {_short(key)}",
            is_user_action=True,
        )

    @staticmethod
    def key_delete_requested(
        key: str,
        request_id: UUID,
        affected_records: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.KEY_DELETE_REQUESTED,
            entity_type="asset_key",
            entity_id=key,
            correlation_id=correlation_id,
            description=f"Deletion of account key {_short(key)} awaiting confirmation",
            details={
                "request_id": str(request_id),
                "affected_records": affected_records,
            },
            is_user_action=True,
        )

    @staticmethod
    def key_deleted(
        key: str,
        affected_records: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.KEY_DELETED,
            severity=AuditSeverity.WARNING,
            entity_type="asset_key",
            entity_id=key,
            correlation_id=correlation_id,
            description=f"Account key deleted from all records: {_short(key)}",
            details={"affected_records": affected_records},
            is_user_action=True,
        )

    @staticmethod
    def key_delete_cancelled(
        key: str,
        request_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.KEY_DELETE_CANCELLED,
            entity_type="asset_key",
            entity_id=key,
            correlation_id=correlation_id,
            description=f"Deletion of account key {_short(key)} cancelled",
            details={"request_id": str(request_id)},
            is_user_action=True,
        )

    @staticmethod
    def records_imported(
        record_count: int,
        detected_keys: list[str],
        new_keys: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORDS_IMPORTED,
            entity_type="ledger",
            correlation_id=correlation_id,
            description=f"Imported {record_count} records",
            details={
                "record_count": record_count,
                "detected_keys": detected_keys,
                "new_keys": new_keys,
            },
            is_user_action=True,
        )

    @staticmethod
    def save_failed(
        record_count: int,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="ledger",
            correlation_id=correlation_id,
            description="Failed to persist records",
            details={"record_count": record_count},
            error_message=error_message,
        )
