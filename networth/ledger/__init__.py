"""
Ledger Package

The state-transition core: the key registry, the gain recalculation
engine, and the ledger state that keeps them consistent.
"""

from networth.ledger.engine import recalculate_gains
from networth.ledger.errors import InvalidAssetKeyError, LedgerError
from networth.ledger.registry import AssetKeyRegistry
from networth.ledger.state import LedgerState

__all__ = [
    "AssetKeyRegistry",
    "InvalidAssetKeyError",
    "LedgerError",
    "LedgerState",
    "recalculate_gains",
]
