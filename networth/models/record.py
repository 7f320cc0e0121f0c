"""
Core Data Models for the Net-Worth Ledger

These models define the strict schemas for all data held by the ledger.
They are designed to:
1. Keep derived figures consistent by construction
2. Provide clear validation error messages
3. Be serializable for storage and logging

DESIGN DECISION: An account breakdown is an explicit mapping
(account key -> balance), never a dynamically shaped object. The set of
known account keys is tracked separately by the key registry.

DESIGN DECISION: `total` is a computed field. There is no way to construct
a record whose total disagrees with its assets. `gain` is a stored field,
but only the recalculation engine writes it. `assets` is a read-only
mapping, so records handed out in snapshots cannot be edited in place.
"""

import datetime as dt
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_serializer,
    field_validator,
    model_validator,
)


ZERO = Decimal("0")


def _new_record_id() -> str:
    return str(uuid4())


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def delete_key_message(key: str) -> str:
    """Confirmation text shown before an account key is deleted."""
    return (
        f'Are you sure you want to delete the column "{key}"? '
        f'This will remove "{key}" data from ALL records.'
    )


# =============================================================================
# RECORD
# =============================================================================

class AssetRecord(BaseModel):
    """
    One dated snapshot of account balances.

    `assets` only holds accounts tracked in this period. A missing key
    means "not tracked", which is different from a zero balance.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(
        default_factory=_new_record_id,
        min_length=1,
        description="Opaque record identifier"
    )
    date: dt.date = Field(
        ...,
        description="Calendar date of the snapshot"
    )
    assets: Mapping[str, Decimal] = Field(
        default_factory=lambda: MappingProxyType({}),
        description="Balance per account key"
    )
    gain: Decimal = Field(
        default=ZERO,
        description="Change in total since the previous record (engine-owned)"
    )
    income: Decimal = Field(
        default=ZERO,
        description="Income for the period"
    )
    mpf: Decimal = Field(
        default=ZERO,
        description="Pension fund contribution for the period"
    )
    note: Optional[str] = Field(
        default=None,
        description="Free text note"
    )

    @model_validator(mode="before")
    @classmethod
    def drop_supplied_total(cls, data: Any) -> Any:
        """The total is always derived from assets."""
        if isinstance(data, dict) and "total" in data:
            data = {k: v for k, v in data.items() if k != "total"}
        return data

    @field_validator("assets")
    @classmethod
    def validate_asset_keys(cls, v: Mapping[str, Decimal]) -> Mapping[str, Decimal]:
        for key in v:
            if not key.strip():
                raise ValueError("Account keys must be non-empty")
        return MappingProxyType(dict(v))

    @field_serializer("assets")
    def serialize_assets(self, v: Mapping[str, Decimal]) -> dict[str, Decimal]:
        return dict(v)

    @computed_field
    @property
    def total(self) -> Decimal:
        """Sum of every balance in this record."""
        return sum(self.assets.values(), ZERO)

    def without_key(self, key: str) -> "AssetRecord":
        """Copy of this record with `key` removed from its assets."""
        if key not in self.assets:
            return self
        remaining = {k: v for k, v in self.assets.items() if k != key}
        return self.model_copy(update={"assets": MappingProxyType(remaining)})


# =============================================================================
# IMPORT
# =============================================================================

class ImportBatch(BaseModel):
    """
    Records produced by an import source, plus the account keys it saw.

    CONTRACT: every account key used by `records` appears in
    `detected_keys`.
    """

    records: list[AssetRecord] = Field(default_factory=list)
    detected_keys: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_detected_keys(self) -> "ImportBatch":
        detected = set(self.detected_keys)
        missing = []
        for record in self.records:
            for key in record.assets:
                if key not in detected and key not in missing:
                    missing.append(key)
        if missing:
            raise ValueError(
                f"Imported records use undetected account keys: {missing}"
            )
        return self


# =============================================================================
# KEY DELETION
# =============================================================================

class PendingKeyDeletion(BaseModel):
    """
    A requested, not yet confirmed, account key deletion.

    Deleting a key strips it from every record, so the ledger hands this
    back to the caller and waits for an explicit confirm or cancel.
    """
    model_config = ConfigDict(frozen=True)

    request_id: UUID = Field(default_factory=uuid4)
    key: str
    message: str
    affected_records: int = Field(default=0, ge=0)
    requested_at: dt.datetime = Field(default_factory=_utcnow)


# =============================================================================
# READ-ONLY VIEW
# =============================================================================

class LedgerSnapshot(BaseModel):
    """
    Read-only view of the ledger handed to dashboards and charts.

    Records are in chronological order with correct gains.
    """
    model_config = ConfigDict(frozen=True)

    records: tuple[AssetRecord, ...] = ()
    asset_keys: tuple[str, ...] = ()
    taken_at: dt.datetime = Field(default_factory=_utcnow)

    @property
    def latest(self) -> Optional[AssetRecord]:
        return self.records[-1] if self.records else None

    @property
    def net_worth(self) -> Decimal:
        """Total of the most recent record, 0 for an empty ledger."""
        return self.latest.total if self.records else ZERO

    @property
    def cumulative_gain(self) -> Decimal:
        return sum((r.gain for r in self.records), ZERO)

    @property
    def total_income(self) -> Decimal:
        return sum((r.income for r in self.records), ZERO)

    @property
    def total_mpf(self) -> Decimal:
        return sum((r.mpf for r in self.records), ZERO)

    def balances_for(self, key: str) -> list[tuple[dt.date, Optional[Decimal]]]:
        """
        Balance series for one account, for charting.

        Periods where the account is not tracked yield None rather than 0.
        """
        return [(r.date, r.assets.get(key)) for r in self.records]


def asset_keys_in(records: Iterable[AssetRecord]) -> list[str]:
    """Account keys used by `records`, in first-seen order."""
    seen: dict[str, None] = {}
    for record in records:
        for key in record.assets:
            seen.setdefault(key, None)
    return list(seen)
