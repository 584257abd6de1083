from __future__ import annotations

import sys
from typing import Dict, Iterator, List, Optional, Sequence

import pysam

from .errors import FlushError, OpenError, ReadError, SeekError, WriteError
from .pruneClasses import RefEntry

STDIO = "-"


class BamSource:
    """
    Sequential BAM reader that can be restarted from the first record.

    A path is restarted by reopening it. Standard input (path None or "-") can
    only be restarted when it is seekable, e.g. redirected from a regular file.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = None if path in (None, STDIO) else str(path)
        self._stream = sys.stdin.buffer if self.path is None else None
        self._bam: Optional[pysam.AlignmentFile] = None

    @property
    def name(self) -> str:
        return self.path or "<stdin>"

    @property
    def can_restart(self) -> bool:
        if self._stream is None:
            return True
        try:
            return self._stream.seekable()
        except (OSError, ValueError):
            return False

    def open(self) -> "BamSource":
        target = self.path if self._stream is None else self._stream
        try:
            self._bam = pysam.AlignmentFile(target, "rb", check_sq=False)
        except (OSError, ValueError) as e:
            raise OpenError(f"could not open BAM input {self.name}: {e}") from e
        return self

    def _require_open(self) -> pysam.AlignmentFile:
        if self._bam is None:
            raise OpenError(f"BAM input {self.name} is not open")
        return self._bam

    @property
    def header(self) -> Dict:
        return self._require_open().header.to_dict()

    @property
    def dictionary(self) -> List[RefEntry]:
        bam = self._require_open()
        by_name = {sq.get("SN"): sq for sq in self.header.get("SQ", [])}
        return [
            RefEntry.from_sq(by_name.get(name) or {"SN": name, "LN": length})
            for name, length in zip(bam.references, bam.lengths)
        ]

    def records(self) -> Iterator[pysam.AlignedSegment]:
        it = self._require_open().fetch(until_eof=True)
        while True:
            try:
                rec = next(it)
            except StopIteration:
                return
            except (OSError, ValueError) as e:
                raise ReadError(f"could not read record from {self.name}: {e}") from e
            yield rec

    def restart(self) -> "BamSource":
        if not self.can_restart:
            raise SeekError(f"{self.name} cannot be rewound for a second pass")
        self.close()
        if self._stream is not None:
            try:
                self._stream.seek(0)
            except (OSError, ValueError) as e:
                raise SeekError(f"could not rewind {self.name}: {e}") from e
        return self.open()

    def close(self) -> None:
        if self._bam is not None:
            self._bam.close()
            self._bam = None


def build_header(template: Dict, dictionary: Sequence[RefEntry]) -> Dict:
    """Copy of the template header with its @SQ lines replaced by ``dictionary``."""
    header = {k: v for k, v in template.items() if k != "SQ"}
    if dictionary:
        header["SQ"] = [e.to_sq() for e in dictionary]
    return header


class BamSink:
    """BAM writer; path None or "-" writes to standard output."""

    def __init__(self, path: Optional[str], header: Dict):
        self.path = STDIO if path is None else str(path)
        self.header = header
        self._out: Optional[pysam.AlignmentFile] = None

    def open(self) -> "BamSink":
        try:
            self._out = pysam.AlignmentFile(self.path, "wb", header=self.header)
        except (OSError, ValueError) as e:
            raise OpenError(f"could not open BAM output {self.path}: {e}") from e
        return self

    def write(self, rec) -> None:
        try:
            self._out.write(rec)
        except (OSError, ValueError) as e:
            raise WriteError(f"could not write record to {self.path}: {e}") from e

    def close(self) -> None:
        if self._out is None:
            return
        out, self._out = self._out, None
        try:
            out.close()
        except OSError as e:
            raise FlushError(f"could not flush BAM output {self.path}: {e}") from e

