"""Tests for LedgerState mutations, persistence and audit trail."""

import asyncio
import time
import pytest
from datetime import date
from decimal import Decimal

from networth.audit import AuditLogger
from networth.ledger import InvalidAssetKeyError, LedgerState
from networth.models.audit import AuditEventBuilder, AuditEventType
from networth.models.record import AssetRecord, ImportBatch
from networth.services.background import drain_pending, wait_for_background
from networth.services.storage import InMemoryAuditStorage, InMemoryRecordStorage


def make_record(record_id: str, day: str, **assets) -> AssetRecord:
    return AssetRecord(id=record_id, date=date.fromisoformat(day), assets=assets)


class SlowRecordStorage(InMemoryRecordStorage):
    def __init__(self, delay: float):
        super().__init__()
        self.delay = delay

    async def save_records(self, records):
        await asyncio.sleep(self.delay)
        return await super().save_records(records)


@pytest.fixture
def storage() -> InMemoryRecordStorage:
    return InMemoryRecordStorage()


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def ledger(storage, audit_storage) -> LedgerState:
    """Two monthly records tracking account A (gains 0, 50)."""
    ledger = LedgerState(storage=storage, audit_logger=AuditLogger(audit_storage))
    ledger.add_record(make_record("r1", "2024-01-01", A=100))
    ledger.add_record(make_record("r2", "2024-02-01", A=150))
    wait_for_background()
    return ledger


def event_types(audit_storage: InMemoryAuditStorage) -> list[AuditEventType]:
    wait_for_background()
    return [e.event_type for e in audit_storage.events]


class TestConstruction:

    def test_empty_ledger(self):
        ledger = LedgerState()
        assert ledger.records == ()
        assert ledger.asset_keys == ()

    def test_initial_records_recalculated_and_registered(self):
        """Test the registry covers keys used by the initial records."""
        ledger = LedgerState(
            records=[make_record("b", "2024-02-01", B=5), make_record("a", "2024-01-01", A=1)],
            asset_keys=["Z"],
        )
        assert [r.id for r in ledger.records] == ["a", "b"]
        assert [r.gain for r in ledger.records] == [0, 4]
        assert ledger.asset_keys == ("Z", "B", "A")

    def test_load_from_storage(self):
        """Test loading derives keys from records in first-seen order."""
        storage = InMemoryRecordStorage([
            make_record("b", "2024-02-01", HSBC=10, Cash=1),
            make_record("a", "2024-01-01", CITI=3),
        ])
        ledger = asyncio.run(LedgerState.load(storage))
        assert [r.id for r in ledger.records] == ["a", "b"]
        assert ledger.asset_keys == ("HSBC", "Cash", "CITI")
        assert ledger.records[1].gain == 8

    def test_load_empty_storage(self):
        ledger = asyncio.run(LedgerState.load(InMemoryRecordStorage()))
        assert ledger.records == ()
        assert ledger.asset_keys == ()

    def test_load_audits(self, audit_storage):
        async def scenario():
            await LedgerState.load(InMemoryRecordStorage(), AuditLogger(audit_storage))
            await drain_pending()

        asyncio.run(scenario())
        assert event_types(audit_storage) == [AuditEventType.RECORDS_LOADED]


class TestRecordMutations:

    def test_add_records_recalculates(self, ledger):
        """Two records give gains 0 then 50."""
        assert [r.gain for r in ledger.records] == [0, 50]
        assert ledger.asset_keys == ("A",)

    def test_add_out_of_order(self, ledger):
        ledger.add_record(make_record("r0", "2023-12-01", A=80))
        assert [r.id for r in ledger.records] == ["r0", "r1", "r2"]
        assert [r.gain for r in ledger.records] == [0, 20, 50]

    def test_add_ignores_supplied_gain(self, ledger):
        record = make_record("r3", "2024-03-01", A=150).model_copy(update={"gain": Decimal("999")})
        ledger.add_record(record)
        assert ledger.get_record("r3").gain == 0

    def test_add_merges_keys_in_first_seen_order(self, ledger):
        ledger.add_record(make_record("r3", "2024-03-01", Fund=1, A=2, Cash=3))
        assert ledger.asset_keys == ("A", "Fund", "Cash")

    def test_update_replaces_by_id(self, ledger):
        ledger.update_record(make_record("r1", "2024-01-01", A=120))
        assert [r.total for r in ledger.records] == [120, 150]
        assert [r.gain for r in ledger.records] == [0, 30]

    def test_update_can_move_record_in_time(self, ledger):
        assert ledger.update_record(make_record("r1", "2024-03-01", A=100)) is True
        assert [r.id for r in ledger.records] == ["r2", "r1"]
        assert [r.gain for r in ledger.records] == [0, -50]

    def test_update_registers_new_keys(self, ledger):
        ledger.update_record(make_record("r2", "2024-02-01", A=150, B=1))
        assert ledger.asset_keys == ("A", "B")

    def test_update_missing_id_leaves_records_untouched(self, ledger, storage, audit_storage):
        """Updating an unknown id only merges its keys."""
        before = ledger.records
        saves = storage.save_count

        assert ledger.update_record(make_record("ghost", "2024-05-01", A=1, New=2)) is False

        assert ledger.records is before
        assert all(a is b for a, b in zip(ledger.records, before))
        assert ledger.asset_keys == ("A", "New")
        wait_for_background()
        assert storage.save_count == saves
        assert event_types(audit_storage)[-1] == AuditEventType.RECORD_NOT_FOUND

    def test_delete_record(self, ledger):
        assert ledger.delete_record("r1") is True
        assert [r.id for r in ledger.records] == ["r2"]
        assert ledger.records[0].gain == 0

    def test_delete_does_not_prune_registry(self, ledger):
        ledger.add_record(make_record("r3", "2024-03-01", Only=5))
        ledger.delete_record("r3")
        assert ledger.asset_keys == ("A", "Only")

    def test_delete_missing_id_is_noop(self, ledger, storage):
        before = ledger.records
        saves = storage.save_count
        assert ledger.delete_record("ghost") is False
        assert ledger.records is before
        wait_for_background()
        assert storage.save_count == saves

    def test_add_then_delete_restores_records(self, ledger):
        before = ledger.records
        ledger.add_record(make_record("mid", "2024-01-15", A=500))
        assert ledger.records != before
        ledger.delete_record("mid")
        assert ledger.records == before

    def test_very_long_record_id(self, ledger, audit_storage):
        """Update and delete complete for ids longer than an audit description."""
        record_id = "x" * 600
        ledger.add_record(make_record(record_id, "2024-03-01", A=175))

        assert ledger.update_record(make_record(record_id, "2024-03-01", A=180)) is True
        assert ledger.get_record(record_id).total == 180
        assert ledger.delete_record(record_id) is True
        assert ledger.delete_record(record_id) is False
        assert [r.id for r in ledger.records] == ["r1", "r2"]

        assert event_types(audit_storage)[-4:] == [
            AuditEventType.RECORD_ADDED,
            AuditEventType.RECORD_UPDATED,
            AuditEventType.RECORD_DELETED,
            AuditEventType.RECORD_NOT_FOUND,
        ]
        assert audit_storage.events[-2].entity_id == record_id

    def test_duplicate_ids_all_matched(self):
        """Records sharing an id are updated and deleted together."""
        ledger = LedgerState()
        ledger.add_record(make_record("dup", "2024-01-01", A=1))
        ledger.add_record(make_record("dup", "2024-02-01", A=2))
        ledger.update_record(make_record("dup", "2024-03-01", A=3))
        assert [r.total for r in ledger.records] == [3, 3]
        ledger.delete_record("dup")
        assert ledger.records == ()


class TestImport:

    def test_import_merges_and_recalculates(self, ledger):
        """Import one record with a new key into the two-month ledger."""
        ledger.import_records(
            [make_record("r3", "2024-03-01", B=20)],
            detected_keys=["B"],
        )
        assert ledger.asset_keys == ("A", "B")
        assert [r.gain for r in ledger.records] == [0, 50, -130]

    def test_import_does_not_deduplicate(self, ledger):
        ledger.import_records([make_record("r1", "2024-01-01", A=100)], detected_keys=["A"])
        assert len(ledger.records) == 3
        assert [r.id for r in ledger.records] == ["r1", "r1", "r2"]

    def test_import_registers_unused_detected_keys(self, ledger):
        ledger.import_records([], detected_keys=["Z", "A", "Y"])
        assert ledger.asset_keys == ("A", "Z", "Y")

    def test_import_registers_keys_missing_from_detected(self, ledger):
        """Keys a source forgot to report are still registered."""
        ledger.import_records([make_record("r3", "2024-03-01", Q=1)], detected_keys=[])
        assert "Q" in ledger.registry

    def test_import_batch(self, ledger, audit_storage):
        batch = ImportBatch(
            records=[make_record("r3", "2024-03-01", B=20)],
            detected_keys=["B"],
        )
        ledger.import_batch(batch)
        assert len(ledger.records) == 3
        wait_for_background()
        event = audit_storage.events[-1]
        assert event.event_type == AuditEventType.RECORDS_IMPORTED
        assert event.details["new_keys"] == ["B"]


class TestKeyMutations:

    def test_add_key(self, ledger):
        before = ledger.records
        assert ledger.add_key("Cash") is True
        assert ledger.asset_keys == ("A", "Cash")
        assert ledger.records is before

    def test_add_key_twice(self, ledger):
        ledger.add_key("X")
        assert ledger.add_key("X") is False
        assert ledger.asset_keys.count("X") == 1

    def test_add_blank_key(self, ledger):
        with pytest.raises(InvalidAssetKeyError):
            ledger.add_key("")

    def test_add_key_does_not_save(self, ledger, storage):
        saves = storage.save_count
        ledger.add_key("Cash")
        wait_for_background()
        assert storage.save_count == saves

    def test_request_changes_nothing(self, ledger):
        before_records, before_keys = ledger.records, ledger.asset_keys
        pending = ledger.request_delete_key("A")
        assert pending.key == "A"
        assert pending.affected_records == 2
        assert '"A"' in pending.message
        assert ledger.records is before_records
        assert ledger.asset_keys == before_keys
        assert ledger.pending_deletions == (pending,)

    def test_confirm_delete_key(self, ledger):
        """After deletion, no record holds the key and totals match assets."""
        ledger.import_records([make_record("r3", "2024-03-01", B=20)], detected_keys=["B"])

        pending = ledger.request_delete_key("A")
        assert ledger.confirm_delete_key(pending) is True

        r1, r2, r3 = ledger.records
        assert (r1.assets, r1.total) == ({}, 0)
        assert (r2.assets, r2.total) == ({}, 0)
        assert (r3.assets, r3.total) == ({"B": Decimal("20")}, 20)
        assert [r.gain for r in ledger.records] == [0, 0, 20]
        assert ledger.asset_keys == ("B",)
        assert ledger.pending_deletions == ()
        for record in ledger.records:
            assert "A" not in record.assets
            assert record.total == sum(record.assets.values(), Decimal("0"))

    def test_confirm_twice_is_noop(self, ledger):
        pending = ledger.request_delete_key("A")
        ledger.confirm_delete_key(pending)
        ledger.add_record(make_record("r3", "2024-03-01", A=1))
        assert ledger.confirm_delete_key(pending) is False
        assert ledger.get_record("r3").assets == {"A": Decimal("1")}

    def test_cancel_delete_key(self, ledger, audit_storage):
        before = ledger.records
        pending = ledger.request_delete_key("A")
        ledger.cancel_delete_key(pending)
        assert ledger.records is before
        assert ledger.asset_keys == ("A",)
        assert ledger.confirm_delete_key(pending) is False
        assert event_types(audit_storage)[-2:] == [
            AuditEventType.KEY_DELETE_REQUESTED,
            AuditEventType.KEY_DELETE_CANCELLED,
        ]

    def test_delete_key_with_confirmation(self, ledger):
        prompts = []

        def confirm(message: str) -> bool:
            prompts.append(message)
            return True

        assert ledger.delete_key("A", confirm) is True
        assert prompts == [
            'Are you sure you want to delete the column "A"? '
            'This will remove "A" data from ALL records.'
        ]
        assert ledger.asset_keys == ()
        assert [r.total for r in ledger.records] == [0, 0]

    def test_delete_key_declined(self, ledger, storage):
        before = ledger.records
        saves = storage.save_count
        assert ledger.delete_key("A", lambda message: False) is False
        assert ledger.records is before
        assert ledger.asset_keys == ("A",)
        assert ledger.pending_deletions == ()
        wait_for_background()
        assert storage.save_count == saves

    def test_delete_unregistered_key(self, ledger):
        """Deleting a key nobody uses still completes."""
        assert ledger.delete_key("Nope", lambda message: True) is True
        assert ledger.asset_keys == ("A",)
        assert [r.total for r in ledger.records] == [100, 150]

    def test_new_request_replaces_earlier_one_for_same_key(self, ledger):
        """Repeated requests for one key keep a single open request."""
        first = ledger.request_delete_key("A")
        second = ledger.request_delete_key("A")
        other = ledger.request_delete_key("B")

        assert ledger.pending_deletions == (second, other)
        assert ledger.confirm_delete_key(first) is False
        assert ledger.asset_keys == ("A",)
        assert ledger.confirm_delete_key(second) is True
        assert ledger.asset_keys == ()

    def test_repeated_requests_do_not_accumulate(self, ledger):
        for _ in range(50):
            ledger.request_delete_key("A")
        assert len(ledger.pending_deletions) == 1

    def test_very_long_key_is_added_and_deleted(self, ledger, audit_storage):
        """Keys longer than an audit description still complete every step."""
        key = "K" * 600
        assert ledger.add_key(key) is True
        assert ledger.asset_keys == ("A", key)

        ledger.add_record(make_record("r3", "2024-03-01", **{key: 5}))
        assert ledger.delete_key(key, lambda message: True) is True
        assert ledger.asset_keys == ("A",)
        assert ledger.get_record("r3").assets == {}

        assert event_types(audit_storage)[-3:] == [
            AuditEventType.RECORD_ADDED,
            AuditEventType.KEY_DELETE_REQUESTED,
            AuditEventType.KEY_DELETED,
        ]
        [event] = [e for e in audit_storage.events if e.event_type == AuditEventType.KEY_ADDED]
        assert event.entity_id == key
        assert len(event.description) <= 500


class TestPersistence:

    def test_each_change_saves_latest_records(self, ledger, storage):
        assert storage.save_count >= 1
        assert storage.records == ledger.records

        saves = storage.save_count
        ledger.delete_record("r1")
        wait_for_background()
        assert storage.save_count == saves + 1
        assert [r.id for r in storage.records] == ["r2"]

    def test_save_failure_keeps_in_memory_state(self, ledger, storage, audit_storage):
        """A failed save is audited and never rolls the ledger back."""
        storage.fail_saves = True
        ledger.add_record(make_record("r3", "2024-03-01", A=175))
        wait_for_background()

        assert [r.id for r in ledger.records] == ["r1", "r2", "r3"]
        assert [r.id for r in storage.records] == ["r1", "r2"]
        failures = [
            e for e in audit_storage.events
            if e.event_type == AuditEventType.SAVE_FAILED
        ]
        assert len(failures) == 1
        assert "fail saves" in failures[0].error_message

    def test_ledger_without_storage(self):
        ledger = LedgerState()
        ledger.add_record(make_record("r1", "2024-01-01", A=1))
        assert len(ledger.records) == 1

    def test_superseded_saves_are_skipped(self):
        """Inside an event loop only the newest record set is written."""
        storage = InMemoryRecordStorage()

        async def scenario() -> LedgerState:
            ledger = LedgerState(storage=storage)
            ledger.add_record(make_record("r1", "2024-01-01", A=100))
            ledger.add_record(make_record("r2", "2024-02-01", A=150))
            ledger.delete_record("r1")
            await drain_pending()
            return ledger

        ledger = asyncio.run(scenario())
        assert storage.save_count == 1
        assert storage.records == ledger.records

    def test_mutation_does_not_wait_for_slow_storage(self):
        """Without a running loop the save still happens off the caller's path."""
        storage = SlowRecordStorage(delay=0.5)
        ledger = LedgerState(storage=storage)

        started = time.monotonic()
        ledger.add_record(make_record("r1", "2024-01-01", A=100))
        assert time.monotonic() - started < 0.25
        assert storage.records == ()

        wait_for_background(timeout=5)
        assert storage.records == ledger.records

    def test_wait_for_background_times_out(self):
        storage = SlowRecordStorage(delay=0.5)
        LedgerState(storage=storage).add_record(make_record("r1", "2024-01-01", A=1))
        with pytest.raises(TimeoutError):
            wait_for_background(timeout=0.05)
        wait_for_background(timeout=5)
        assert storage.save_count == 1


class TestAuditTrail:

    def test_mutations_are_audited(self, ledger, audit_storage):
        ledger.update_record(make_record("r1", "2024-01-01", A=90))
        ledger.delete_record("r2")
        ledger.add_key("Cash")
        assert event_types(audit_storage) == [
            AuditEventType.RECORD_ADDED,
            AuditEventType.RECORD_ADDED,
            AuditEventType.RECORD_UPDATED,
            AuditEventType.RECORD_DELETED,
            AuditEventType.KEY_ADDED,
        ]

    def test_correlation_id_propagates(self, ledger, audit_storage):
        from networth.audit import create_correlation_id

        correlation_id = create_correlation_id()
        ledger.delete_key("A", lambda message: True, correlation_id=correlation_id)
        wait_for_background()
        tail = audit_storage.events[-2:]
        assert [e.event_type for e in tail] == [
            AuditEventType.KEY_DELETE_REQUESTED,
            AuditEventType.KEY_DELETED,
        ]
        assert all(e.correlation_id == correlation_id for e in tail)

    def test_snapshot_is_read_only_view(self, ledger):
        snapshot = ledger.snapshot()
        assert snapshot.records == ledger.records
        assert snapshot.asset_keys == ("A",)
        assert snapshot.net_worth == 150
        ledger.delete_record("r2")
        assert len(snapshot.records) == 2

    def test_audit_failure_does_not_break_mutation(self, ledger, audit_storage, monkeypatch):
        """An event that cannot be built is logged locally; the change stands."""
        def broken_builder(**kwargs):
            raise ValueError("description too long")

        monkeypatch.setattr(AuditEventBuilder, "key_added", staticmethod(broken_builder))
        before = event_types(audit_storage)

        assert ledger.add_key("Cash") is True
        assert ledger.asset_keys == ("A", "Cash")
        assert event_types(audit_storage) == before

    def test_snapshot_records_cannot_be_edited(self, ledger, storage):
        """Writing through a snapshot's assets fails and leaves the ledger alone."""
        snapshot = ledger.snapshot()
        with pytest.raises(TypeError):
            snapshot.records[0].assets["A"] = Decimal("1000000")
        with pytest.raises(TypeError):
            snapshot.records[1].assets["Z"] = Decimal("1")

        assert ledger.records[0].assets == {"A": Decimal("100")}
        assert [r.total for r in ledger.records] == [100, 150]
        assert storage.records[1].assets == {"A": Decimal("150")}
