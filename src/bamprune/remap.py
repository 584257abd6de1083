from __future__ import annotations

from array import array
from typing import List, Sequence, Tuple

from .errors import InvariantViolation
from .pruneClasses import UNMAPPED, RefEntry
from .usage import UsageSet

FORGOTTEN = -2


class RemapTable:
    """Old identifier -> new identifier, or FORGOTTEN. Read-only once built."""
    __slots__ = ("_table",)

    def __init__(self, table: array):
        self._table = table

    def __len__(self) -> int:
        return len(self._table)

    def lookup(self, ref_id: int) -> int:
        if ref_id == UNMAPPED:
            return UNMAPPED
        if not 0 <= ref_id < len(self._table):
            raise InvariantViolation(f"reference id {ref_id} outside dictionary of {len(self._table)}")
        return self._table[ref_id]

    __getitem__ = lookup

    def is_identity(self) -> bool:
        return all(new == old for old, new in enumerate(self._table))


def build_remap(
    dictionary: Sequence[RefEntry],
    usage: UsageSet,
    keep_mate_only: bool = True,
) -> Tuple[List[RefEntry], RemapTable]:
    """
    Walk the original dictionary in order, keeping references used directly
    (and, with keep_mate_only, those used only by mates). Kept entries get
    consecutive new identifiers, so relative order survives.
    """
    n = len(dictionary)
    if usage.used_direct.size != n or usage.used_by_mate.size != n:
        raise InvariantViolation(
            f"usage set sized for {usage.used_direct.size} references, dictionary has {n}"
        )

    table = array("q", [FORGOTTEN]) * n
    new_dictionary: List[RefEntry] = []
    for ref_id, entry in enumerate(dictionary):
        if ref_id in usage.used_direct or (keep_mate_only and ref_id in usage.used_by_mate):
            table[ref_id] = len(new_dictionary)
            new_dictionary.append(entry)

    return new_dictionary, RemapTable(table)
