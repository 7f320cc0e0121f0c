"""
Account Key Registry

The ordered set of every account key the ledger knows about, whether or
not any record currently uses it.

DESIGN DECISION: The registry is an immutable value. Every change returns
a new registry so the ledger can swap records and keys in one step.
Keys are only ever removed through `remove`; merging never drops a key.
"""

from typing import Iterable, Iterator

from pydantic import BaseModel, ConfigDict, field_validator

from networth.ledger.errors import InvalidAssetKeyError
from networth.models.record import AssetRecord, asset_keys_in


class AssetKeyRegistry(BaseModel):
    """Ordered, duplicate-free tuple of account keys."""
    model_config = ConfigDict(frozen=True)

    keys: tuple[str, ...] = ()

    @field_validator("keys")
    @classmethod
    def validate_unique(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if len(set(v)) != len(v):
            raise ValueError("Account keys must be unique")
        return v

    @classmethod
    def from_records(cls, records: Iterable[AssetRecord]) -> "AssetKeyRegistry":
        """Registry holding the keys used by `records`, in first-seen order."""
        return cls(keys=tuple(asset_keys_in(records)))

    def __contains__(self, key: object) -> bool:
        return key in self.keys

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys)

    def __len__(self) -> int:
        return len(self.keys)

    def new_keys(self, candidates: Iterable[str]) -> list[str]:
        """Candidates not yet registered, in first-encountered order."""
        unseen: dict[str, None] = {}
        for key in candidates:
            if key not in self.keys:
                unseen.setdefault(key, None)
        return list(unseen)

    def merge(self, candidates: Iterable[str]) -> "AssetKeyRegistry":
        """
        Append unseen candidates after the existing keys.

        Existing order is kept; returns self when nothing is new.
        """
        unseen = self.new_keys(candidates)
        if not unseen:
            return self
        return AssetKeyRegistry(keys=self.keys + tuple(unseen))

    def add(self, key: str) -> "AssetKeyRegistry":
        if not isinstance(key, str) or not key.strip():
            raise InvalidAssetKeyError(f"Invalid account key: {key!r}")
        return self.merge([key])

    def remove(self, key: str) -> "AssetKeyRegistry":
        if key not in self.keys:
            return self
        return AssetKeyRegistry(keys=tuple(k for k in self.keys if k != key))
