"""Import sources that feed batches of records into the ledger."""

from networth.importing.tabular import (
    ImportParseError,
    ImportSourceInterface,
    TabularImportSource,
)

__all__ = [
    "ImportParseError",
    "ImportSourceInterface",
    "TabularImportSource",
]
