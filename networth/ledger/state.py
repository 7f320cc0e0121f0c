"""
Ledger State

The single owner of the record set and the account key registry.

DESIGN DECISION: Every mutation funnels through `_publish`, which runs
the gain recalculation and then swaps records and registry together.
Callers never set `total` or `gain`; they only hand in records and keys.

DESIGN DECISION: Mutations are synchronous and always complete. Saving
the record set is dispatched detached after the in-memory change, so a
storage failure is logged and audited but never rolls the ledger back.
If several mutations happen before a pending save runs, only the newest
record set is written.

Deleting an account key is destructive (it strips the key from every
record), so it is a two-phase call: `request_delete_key` returns a
pending intent, and nothing changes until `confirm_delete_key`.
"""

from typing import Callable, Iterable, Optional, Sequence
from uuid import UUID

import structlog

from networth.audit import AuditLogger
from networth.ledger.engine import recalculate_gains
from networth.ledger.registry import AssetKeyRegistry
from networth.models.record import (
    AssetRecord,
    ImportBatch,
    LedgerSnapshot,
    PendingKeyDeletion,
    asset_keys_in,
    delete_key_message,
)
from networth.services.background import run_detached
from networth.services.storage import RecordStorageInterface


logger = structlog.get_logger(__name__)


class LedgerState:
    """
    Holds `(records, asset_keys)` and exposes the mutation operations.

    Records are kept in chronological order with correct gains at all
    times. The registry always contains every key used by any record.
    """

    def __init__(
        self,
        records: Iterable[AssetRecord] = (),
        asset_keys: Iterable[str] = (),
        storage: Optional[RecordStorageInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        records = list(records)
        self._storage = storage
        self._audit_logger = audit_logger or AuditLogger()
        self._records: tuple[AssetRecord, ...] = tuple(recalculate_gains(records))
        self._registry = AssetKeyRegistry(keys=tuple(asset_keys)).merge(
            asset_keys_in(records)
        )
        self._pending: dict[UUID, PendingKeyDeletion] = {}
        self._generation = 0

    @classmethod
    async def load(
        cls,
        storage: RecordStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ) -> "LedgerState":
        """
        Build the ledger from whatever `storage` has persisted.

        The registry starts as the keys used by the loaded records, in the
        order they are first seen.
        """
        records = await storage.load_records()
        ledger = cls(records, storage=storage, audit_logger=audit_logger)
        ledger._audit_logger.log_records_loaded(
            record_count=len(ledger.records),
            key_count=len(ledger.registry),
        )
        return ledger

    # =========================================================================
    # READ SIDE
    # =========================================================================

    @property
    def records(self) -> tuple[AssetRecord, ...]:
        return self._records

    @property
    def asset_keys(self) -> tuple[str, ...]:
        return self._registry.keys

    @property
    def registry(self) -> AssetKeyRegistry:
        return self._registry

    @property
    def pending_deletions(self) -> tuple[PendingKeyDeletion, ...]:
        return tuple(self._pending.values())

    def get_record(self, record_id: str) -> Optional[AssetRecord]:
        for record in self._records:
            if record.id == record_id:
                return record
        return None

    def snapshot(self) -> LedgerSnapshot:
        """Read-only view for dashboards and charts."""
        return LedgerSnapshot(records=self._records, asset_keys=self._registry.keys)

    # =========================================================================
    # RECORD MUTATIONS
    # =========================================================================

    def add_record(
        self,
        record: AssetRecord,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Append a record and register any new account keys it uses."""
        new_keys = self._registry.new_keys(record.assets)
        self._publish(
            [*self._records, record],
            self._registry.merge(record.assets),
        )
        self._audit_logger.log_record_added(record, new_keys, correlation_id)

    def update_record(
        self,
        record: AssetRecord,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        Replace the record(s) sharing `record.id`.

        New account keys are registered even when no record matches.

        Returns:
            True if a record was replaced
        """
        new_keys = self._registry.new_keys(record.assets)
        registry = self._registry.merge(record.assets)

        if not any(r.id == record.id for r in self._records):
            self._registry = registry
            self._audit_logger.log_record_not_found(record.id, "update", correlation_id)
            return False

        self._publish(
            [record if r.id == record.id else r for r in self._records],
            registry,
        )
        self._audit_logger.log_record_updated(record, new_keys, correlation_id)
        return True

    def delete_record(
        self,
        record_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        Remove the record(s) with `record_id`.

        The registry is not pruned: keys only the deleted record used stay
        registered.

        Returns:
            True if anything was removed
        """
        remaining = [r for r in self._records if r.id != record_id]
        removed = len(self._records) - len(remaining)

        if not removed:
            self._audit_logger.log_record_not_found(record_id, "delete", correlation_id)
            return False

        self._publish(remaining, self._registry)
        self._audit_logger.log_record_deleted(record_id, removed, correlation_id)
        return True

    def import_records(
        self,
        records: Sequence[AssetRecord],
        detected_keys: Sequence[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Append an imported batch.

        No deduplication by id or date is done; that is the import
        source's responsibility. Detected keys are registered first, then
        any key the batch uses that the source failed to report.
        """
        registry = self._registry.merge(detected_keys).merge(asset_keys_in(records))
        new_keys = list(registry.keys[len(self._registry):])

        self._publish([*self._records, *records], registry)
        self._audit_logger.log_records_imported(
            record_count=len(records),
            detected_keys=list(detected_keys),
            new_keys=new_keys,
            correlation_id=correlation_id,
        )

    def import_batch(
        self,
        batch: ImportBatch,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.import_records(batch.records, batch.detected_keys, correlation_id)

    # =========================================================================
    # ACCOUNT KEY MUTATIONS
    # =========================================================================

    def add_key(
        self,
        key: str,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        Register an account key. Records are not touched.

        Returns:
            True if the key was new

        Raises:
            InvalidAssetKeyError: If the key is blank
        """
        registry = self._registry.add(key)
        if registry is self._registry:
            return False

        self._registry = registry
        self._audit_logger.log_key_added(key, correlation_id)
        return True

    def request_delete_key(
        self,
        key: str,
        correlation_id: Optional[UUID] = None,
    ) -> PendingKeyDeletion:
        """
        First phase of deleting an account key.

        Nothing changes until the returned request is passed to
        `confirm_delete_key`. Show `pending.message` to the user.

        Only the newest request per key stays open; an earlier one for the
        same key can no longer be confirmed.
        """
        pending = PendingKeyDeletion(
            key=key,
            message=delete_key_message(key),
            affected_records=sum(1 for r in self._records if key in r.assets),
        )
        for request_id, earlier in list(self._pending.items()):
            if earlier.key == key:
                del self._pending[request_id]
                logger.info(
                    "key_delete_request_replaced",
                    request_id=str(request_id),
                    replaced_by=str(pending.request_id),
                )
        self._pending[pending.request_id] = pending
        self._audit_logger.log_key_delete_requested(
            key=key,
            request_id=pending.request_id,
            affected_records=pending.affected_records,
            correlation_id=correlation_id,
        )
        return pending

    def confirm_delete_key(
        self,
        pending: PendingKeyDeletion,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        Second phase: remove the key from the registry and every record.

        Each affected record's total follows its remaining assets, then
        gains are recalculated.

        Returns:
            False if the request is unknown or was already resolved
        """
        if self._pending.pop(pending.request_id, None) is None:
            logger.warning(
                "key_delete_request_unknown",
                key=pending.key,
                request_id=str(pending.request_id),
            )
            return False

        key = pending.key
        affected = sum(1 for r in self._records if key in r.assets)
        self._publish(
            [r.without_key(key) for r in self._records],
            self._registry.remove(key),
        )
        self._audit_logger.log_key_deleted(key, affected, correlation_id)
        return True

    def cancel_delete_key(
        self,
        pending: PendingKeyDeletion,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Drop a deletion request. The ledger is left unchanged."""
        if self._pending.pop(pending.request_id, None) is not None:
            self._audit_logger.log_key_delete_cancelled(
                key=pending.key,
                request_id=pending.request_id,
                correlation_id=correlation_id,
            )

    def delete_key(
        self,
        key: str,
        confirm: Callable[[str], bool],
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        Delete an account key behind a yes/no prompt.

        `confirm` receives the confirmation message and returns the
        user's answer. Declining leaves everything unchanged.

        Returns:
            True if the key was deleted
        """
        pending = self.request_delete_key(key, correlation_id)
        if confirm(pending.message):
            return self.confirm_delete_key(pending, correlation_id)
        self.cancel_delete_key(pending, correlation_id)
        return False

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _publish(
        self,
        records: Iterable[AssetRecord],
        registry: AssetKeyRegistry,
    ) -> None:
        """Recalculate, swap in the new state, and schedule a save."""
        self._records = tuple(recalculate_gains(records))
        self._registry = registry
        self._generation += 1

        if self._storage is not None:
            run_detached(self._save(self._generation, self._records))

    async def _save(
        self,
        generation: int,
        records: tuple[AssetRecord, ...],
    ) -> None:
        if generation != self._generation:
            logger.debug(
                "save_superseded",
                generation=generation,
                current_generation=self._generation,
            )
            return

        try:
            await self._storage.save_records(records)
        except Exception as e:
            self._audit_logger.log_save_failed(
                record_count=len(records),
                error_message=str(e),
            )
