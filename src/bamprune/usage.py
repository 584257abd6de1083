from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, Optional, Tuple

from .errors import CancelledError, InvariantViolation
from .pruneClasses import UNMAPPED


class RefBitset:
    """N-bit set of reference identifiers backed by a bytearray."""
    __slots__ = ("size", "_bits", "_frozen")

    def __init__(self, size: int):
        self.size = size
        self._bits = bytearray((size + 7) // 8)
        self._frozen = False

    def add(self, ref_id: int) -> None:
        if self._frozen:
            raise InvariantViolation("usage set is frozen")
        if not 0 <= ref_id < self.size:
            raise InvariantViolation(f"reference id {ref_id} outside dictionary of {self.size}")
        self._bits[ref_id >> 3] |= 1 << (ref_id & 7)

    def __contains__(self, ref_id: int) -> bool:
        if not 0 <= ref_id < self.size:
            return False
        return bool(self._bits[ref_id >> 3] & (1 << (ref_id & 7)))

    def __iter__(self) -> Iterator[int]:
        for byte_i, byte in enumerate(self._bits):
            if not byte:
                continue
            for bit in range(8):
                if byte & (1 << bit):
                    yield (byte_i << 3) | bit

    def __len__(self) -> int:
        return sum(bin(b).count("1") for b in self._bits)

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen


@dataclass
class UsageSet:
    used_direct: RefBitset
    used_by_mate: RefBitset

    @classmethod
    def empty(cls, n_refs: int) -> "UsageSet":
        return cls(RefBitset(n_refs), RefBitset(n_refs))

    def freeze(self) -> None:
        self.used_direct.freeze()
        self.used_by_mate.freeze()


def refs_to_mark(
    own_mapped: bool,
    ref_id: int,
    mate_mapped: bool,
    mate_ref_id: int,
) -> Tuple[Optional[int], Optional[int]]:
    """
    Decide which identifiers a record marks.
    Returns (direct, by_mate); either may be None.
    """
    direct = ref_id if own_mapped else None
    by_mate = None
    if mate_mapped and (mate_ref_id != ref_id or not own_mapped):
        by_mate = mate_ref_id
    return direct, by_mate


def is_mapped(rec) -> bool:
    return not rec.is_unmapped and rec.reference_id != UNMAPPED


def mate_is_mapped(rec) -> bool:
    # single-end reads carry no mate flag, so check pairing first
    return bool(rec.is_paired) and not rec.mate_is_unmapped and rec.next_reference_id != UNMAPPED


def analyze_usage(
    records: Iterable,
    n_refs: int,
    *,
    progress: Callable[[int], None] | None = None,
    progress_interval: int = 0,
    should_stop: Callable[[], bool] | None = None,
) -> Tuple[UsageSet, int]:
    """
    First pass: collect which references are used directly and which only by mates.
    Returns the frozen UsageSet and the number of records seen.
    """
    usage = UsageSet.empty(n_refs)
    n = 0
    it = iter(records)
    while True:
        if should_stop is not None and should_stop():
            raise CancelledError("analysis cancelled", records=n)
        try:
            rec = next(it)
        except StopIteration:
            break
        n += 1
        direct, by_mate = refs_to_mark(
            is_mapped(rec), rec.reference_id, mate_is_mapped(rec), rec.next_reference_id
        )
        try:
            if direct is not None:
                usage.used_direct.add(direct)
            if by_mate is not None:
                usage.used_by_mate.add(by_mate)
        except InvariantViolation as e:
            e.records = n
            raise
        if progress is not None and progress_interval and n % progress_interval == 0:
            progress(n)

    usage.freeze()
    return usage, n
