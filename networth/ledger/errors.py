"""Exceptions raised by the ledger."""


class LedgerError(Exception):
    """Base exception for ledger operations."""
    pass


class InvalidAssetKeyError(LedgerError, ValueError):
    """Account key is blank or not a string."""
    pass
