"""
Audit Logger

DESIGN DECISION: Every ledger mutation is logged.
This provides:
1. Complete traceability of record and account key changes
2. Debugging capability when persistence fails
3. User can see the history of their edits

The audit logger:
- Is synchronous for callers; storage writes run detached
- Gracefully handles failures (doesn't break the ledger if logging fails)
- Supports correlation IDs to trace related events
"""

from typing import Callable, Optional
from uuid import UUID, uuid4

import structlog

from networth.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from networth.models.record import AssetRecord
from networth.services.background import run_detached
from networth.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage, if one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    @property
    def storage(self) -> Optional[AuditStorageInterface]:
        return self._storage

    def log(self, event: AuditEvent) -> None:
        """
        Log an audit event.

        Always logs locally. Persists to storage, detached, if available.
        Never raises: the ledger change being audited has already happened.
        """
        try:
            log_dict = event.to_log_dict()

            if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
                self._logger.error("audit_event", **log_dict)
            elif event.severity == AuditSeverity.WARNING:
                self._logger.warning("audit_event", **log_dict)
            elif event.severity == AuditSeverity.DEBUG:
                self._logger.debug("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)

            if self._storage:
                run_detached(self._persist(event))
        except Exception as e:
            self._logger.error(
                "audit_log_failed",
                error=str(e),
                event_type=event.event_type.value,
            )

    def _emit(self, build: Callable[..., AuditEvent], **kwargs) -> None:
        """Build an event and log it; a build failure is logged, not raised."""
        try:
            event = build(**kwargs)
        except Exception as e:
            self._logger.error(
                "audit_event_failed",
                builder=getattr(build, "__name__", repr(build)),
                error=str(e),
            )
            return
        self.log(event)

    async def _persist(self, event: AuditEvent) -> bool:
        try:
            return await self._storage.append_event(event)
        except Exception as e:
            # Log failure but don't raise
            self._logger.error(
                "audit_storage_failed",
                error=str(e),
                event_id=str(event.event_id),
            )
            return False

    def log_records_loaded(
        self,
        record_count: int,
        key_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self._emit(
            AuditEventBuilder.records_loaded,
            record_count=record_count,
            key_count=key_count,
            correlation_id=correlation_id,
        )

    def log_record_added(
        self,
        record: AssetRecord,
        new_keys: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a record appended to the ledger."""
        self._emit(
            AuditEventBuilder.record_added,
            record_id=record.id,
            record_date=record.date.isoformat(),
            total=str(record.total),
            new_keys=new_keys,
            correlation_id=correlation_id,
        )

    def log_record_updated(
        self,
        record: AssetRecord,
        new_keys: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self._emit(
            AuditEventBuilder.record_updated,
            record_id=record.id,
            record_date=record.date.isoformat(),
            total=str(record.total),
            new_keys=new_keys,
            correlation_id=correlation_id,
        )

    def log_record_deleted(
        self,
        record_id: str,
        removed: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self._emit(
            AuditEventBuilder.record_deleted,
            record_id=record_id,
            removed=removed,
            correlation_id=correlation_id,
        )

    def log_record_not_found(
        self,
        record_id: str,
        operation: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an update or delete that matched no record."""
        self._emit(
            AuditEventBuilder.record_not_found,
            record_id=record_id,
            operation=operation,
            correlation_id=correlation_id,
        )

    def log_key_added(
        self,
        key: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self._emit(
            AuditEventBuilder.key_added,
            key=key,
            correlation_id=correlation_id,
        )

    def log_key_delete_requested(
        self,
        key: str,
        request_id: UUID,
        affected_records: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self._emit(
            AuditEventBuilder.key_delete_requested,
            key=key,
            request_id=request_id,
            affected_records=affected_records,
            correlation_id=correlation_id,
        )

    def log_key_deleted(
        self,
        key: str,
        affected_records: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self._emit(
            AuditEventBuilder.key_deleted,
            key=key,
            affected_records=affected_records,
            correlation_id=correlation_id,
        )

    def log_key_delete_cancelled(
        self,
        key: str,
        request_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self._emit(
            AuditEventBuilder.key_delete_cancelled,
            key=key,
            request_id=request_id,
            correlation_id=correlation_id,
        )

    def log_records_imported(
        self,
        record_count: int,
        detected_keys: list[str],
        new_keys: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self._emit(
            AuditEventBuilder.records_imported,
            record_count=record_count,
            detected_keys=detected_keys,
            new_keys=new_keys,
            correlation_id=correlation_id,
        )

    def log_save_failed(
        self,
        record_count: int,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a failed write of the record set."""
        self._emit(
            AuditEventBuilder.save_failed,
            record_count=record_count,
            error_message=error_message,
            correlation_id=correlation_id,
        )


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a user action (e.g., an import) and pass it
    to every ledger call that action makes.
    """
    return uuid4()
