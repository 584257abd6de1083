from __future__ import annotations

from typing import Callable, Iterable

from .errors import CancelledError, InvariantViolation
from .pruneClasses import UNMAPPED
from .remap import FORGOTTEN, RemapTable


def remap_record(rec, table: RemapTable) -> None:
    """
    Rewrite the record's own and mate reference ids in place.

    A forgotten id becomes UNMAPPED. Flag bits are left alone, so a record may
    still claim a mapped mate while its mate reference is UNMAPPED; keeping the
    flags consistent is up to whoever consumes the output.
    """
    ref_id = rec.reference_id
    if ref_id != UNMAPPED:
        new = table.lookup(ref_id)
        rec.reference_id = UNMAPPED if new == FORGOTTEN else new

    mate_ref_id = rec.next_reference_id
    if mate_ref_id != UNMAPPED:
        new = table.lookup(mate_ref_id)
        rec.next_reference_id = UNMAPPED if new == FORGOTTEN else new


def rewrite_records(
    records: Iterable,
    sink,
    table: RemapTable,
    *,
    progress: Callable[[int], None] | None = None,
    progress_interval: int = 0,
    should_stop: Callable[[], bool] | None = None,
) -> int:
    """Second pass: remap and write every record in source order. Returns records written."""
    n = 0
    it = iter(records)
    while True:
        if should_stop is not None and should_stop():
            raise CancelledError("rewrite cancelled", records=n)
        try:
            rec = next(it)
        except StopIteration:
            break
        try:
            remap_record(rec, table)
        except InvariantViolation as e:
            e.records = n + 1
            raise
        sink.write(rec)
        n += 1
        if progress is not None and progress_interval and n % progress_interval == 0:
            progress(n)
    return n
