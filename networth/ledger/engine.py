"""
Gain Recalculation Engine

`recalculate_gains` is the only code path that assigns `gain`.
The ledger calls it after every change to the record set.
"""

from typing import Iterable

from networth.models.record import ZERO, AssetRecord


def recalculate_gains(records: Iterable[AssetRecord]) -> list[AssetRecord]:
    """
    Sort records chronologically and set each record's gain.

    The sort is stable: records sharing a date keep their input order.
    The first record gains 0; every later record gains its total minus
    the total of the record before it. Totals are read, not recomputed.

    Records whose gain is already correct are returned as the same
    object, so recalculating twice yields identical output.
    """
    ordered = sorted(records, key=lambda r: r.date)

    result: list[AssetRecord] = []
    previous_total = None
    for record in ordered:
        gain = ZERO if previous_total is None else record.total - previous_total
        if record.gain != gain:
            record = record.model_copy(update={"gain": gain})
        result.append(record)
        previous_total = record.total

    return result
