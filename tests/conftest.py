import copy

import pysam
import pytest

from bamprune.errors import ReadError, WriteError
from bamprune.pruneClasses import RefEntry

U = -1


class FakeRecord:
    """Just the fields the forget engine looks at."""

    def __init__(self, name, ref, mate=U, *, unmapped=None, mate_unmapped=None, paired=True):
        self.query_name = name
        self.reference_id = ref
        self.next_reference_id = mate
        self.is_unmapped = (ref == U) if unmapped is None else unmapped
        self.mate_is_unmapped = (mate == U) if mate_unmapped is None else mate_unmapped
        self.is_paired = paired

    def __repr__(self):
        return f"FakeRecord({self.query_name!r}, {self.reference_id}, {self.next_reference_id})"


class FakeSource:
    def __init__(self, dictionary, records, *, seekable=True, fail_pass=None, fail_at=None, name="fake.bam"):
        self._dictionary = [RefEntry(n, l) for n, l in dictionary]
        self._records = records
        self.seekable = seekable
        self.fail_pass = fail_pass
        self.fail_at = fail_at
        self.name = name
        self.passes = 0
        self.opened = False

    @property
    def can_restart(self):
        return self.seekable

    def open(self):
        self.opened = True
        self.passes += 1
        return self

    def restart(self):
        return self.open()

    def close(self):
        self.opened = False

    @property
    def dictionary(self):
        return list(self._dictionary)

    @property
    def header(self):
        return {"HD": {"VN": "1.6", "SO": "coordinate"}, "SQ": [e.to_sq() for e in self._dictionary]}

    def records(self):
        for i, rec in enumerate(self._records):
            if self.passes == self.fail_pass and i == self.fail_at:
                raise ReadError("truncated record")
            yield copy.copy(rec)


class FakeSink:
    def __init__(self, path, header, *, fail_at=None):
        self.path = path
        self.header = header
        self.fail_at = fail_at
        self.written = []
        self.opened = False
        self.closed = False

    def open(self):
        self.opened = True
        return self

    def write(self, rec):
        if self.fail_at is not None and len(self.written) == self.fail_at:
            raise WriteError("disk full")
        self.written.append(rec)

    def close(self):
        self.closed = True

    @property
    def names(self):
        return [sq["SN"] for sq in self.header.get("SQ", [])]


class SinkFactory:
    def __init__(self, **kw):
        self.kw = kw
        self.sink = None

    def __call__(self, path, header):
        self.sink = FakeSink(path, header, **self.kw)
        return self.sink


@pytest.fixture
def sinks():
    return SinkFactory()


def write_bam(path, dictionary, reads, header_extra=None):
    """
    Write a small BAM. ``reads`` are tuples (name, ref, pos, mate_ref, mate_pos, flag).
    """
    header = {"HD": {"VN": "1.6", "SO": "unsorted"}}
    if dictionary:
        header["SQ"] = [{"SN": n, "LN": l} for n, l in dictionary]
    if header_extra:
        header.update(header_extra)
    with pysam.AlignmentFile(str(path), "wb", header=header) as out:
        for name, ref, pos, mate_ref, mate_pos, flag in reads:
            a = pysam.AlignedSegment(out.header)
            a.query_name = name
            a.query_sequence = "ACGTACGTAC"
            a.query_qualities = pysam.qualitystring_to_array("IIIIIIIIII")
            a.flag = flag
            a.reference_id = ref
            a.reference_start = pos
            a.next_reference_id = mate_ref
            a.next_reference_start = mate_pos
            if flag & 0x4:
                a.mapping_quality = 0
            else:
                a.mapping_quality = 60
                a.cigartuples = [(0, 10)]
            out.write(a)
    return path


def read_bam(path):
    """(reference names, [(name, ref, mate_ref, flag)]) of a BAM."""
    with pysam.AlignmentFile(str(path), "rb", check_sq=False) as bam:
        names = list(bam.references)
        reads = [
            (r.query_name, r.reference_id, r.next_reference_id, r.flag)
            for r in bam.fetch(until_eof=True)
        ]
        header = bam.header.to_dict()
    return names, reads, header


@pytest.fixture
def bam_writer(tmp_path):
    def _write(name, dictionary, reads, **kw):
        return write_bam(tmp_path / name, dictionary, reads, **kw)
    return _write
