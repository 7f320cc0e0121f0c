"""
In-Memory Storage

Used in tests and when no persistent backend is configured. Records are
kept as an immutable tuple so later mutations of the ledger cannot leak
into what was "saved".
"""

from typing import Sequence

from networth.models.audit import AuditEvent
from networth.models.record import AssetRecord
from networth.services.storage.interface import (
    AuditStorageInterface,
    RecordStorageInterface,
    StorageError,
)


class InMemoryRecordStorage(RecordStorageInterface):
    """Keeps the last saved record set in memory."""

    def __init__(self, records: Sequence[AssetRecord] = ()):
        self._records: tuple[AssetRecord, ...] = tuple(records)
        self.save_count = 0
        self.fail_saves = False

    @property
    def records(self) -> tuple[AssetRecord, ...]:
        return self._records

    async def load_records(self) -> list[AssetRecord]:
        return list(self._records)

    async def save_records(self, records: Sequence[AssetRecord]) -> bool:
        if self.fail_saves:
            raise StorageError("In-memory storage configured to fail saves")
        self._records = tuple(records)
        self.save_count += 1
        return True


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
