"""
Data Models Package

This package contains all Pydantic models used by the net-worth ledger.
All data flowing through the system must conform to these schemas.
"""

from networth.models.record import (
    AssetRecord,
    ImportBatch,
    LedgerSnapshot,
    PendingKeyDeletion,
    asset_keys_in,
    delete_key_message,
)
from networth.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "AssetRecord",
    "ImportBatch",
    "LedgerSnapshot",
    "PendingKeyDeletion",
    "asset_keys_in",
    "delete_key_message",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
