import pytest

from bamprune.errors import InvariantViolation, WriteError
from bamprune.pruneClasses import RefEntry
from bamprune.remap import build_remap
from bamprune.rewrite import remap_record, rewrite_records
from bamprune.usage import analyze_usage

from conftest import U, FakeRecord, FakeSink


def _table(records, n, keep=True):
    usage, _ = analyze_usage(records, n)
    _, table = build_remap([RefEntry(f"c{i}", 10) for i in range(n)], usage, keep)
    return table


def test_remap_record_own_and_mate():
    records = [FakeRecord("r1", 0, 2), FakeRecord("r2", 2, 0), FakeRecord("r3", 3, U)]
    table = _table(records, 4)
    r1, r3 = records[0], records[2]
    remap_record(r1, table)
    remap_record(r3, table)
    assert (r1.reference_id, r1.next_reference_id) == (0, 1)
    assert (r3.reference_id, r3.next_reference_id) == (2, U)


def test_forgotten_mate_becomes_unmapped_but_flags_stay():
    rec = FakeRecord("r1", U, 1)
    table = _table([rec], 2, keep=False)
    remap_record(rec, table)
    assert rec.next_reference_id == U
    assert rec.mate_is_unmapped is False


def test_kept_mate_only_reference_is_renumbered():
    rec = FakeRecord("r1", U, 1)
    table = _table([rec], 2, keep=True)
    remap_record(rec, table)
    assert rec.next_reference_id == 0


def test_rewrite_keeps_every_record_in_order():
    records = [FakeRecord(f"r{i}", i % 2 * 3, U) for i in range(7)] + [FakeRecord("u", U, U)]
    table = _table(records, 4)
    sink = FakeSink(None, {})
    seen = []
    n = rewrite_records(records, sink, table, progress=seen.append, progress_interval=3)
    assert n == len(records) == len(sink.written)
    assert [r.query_name for r in sink.written] == [r.query_name for r in records]
    assert {r.reference_id for r in sink.written} == {0, 1, U}
    assert seen == [3, 6]


def test_rewrite_write_error_propagates():
    records = [FakeRecord(f"r{i}", 0) for i in range(3)]
    sink = FakeSink(None, {}, fail_at=1)
    with pytest.raises(WriteError):
        rewrite_records(records, sink, _table(records, 1))
    assert len(sink.written) == 1


def test_rewrite_out_of_range_id():
    table = _table([FakeRecord("a", 0)], 1)
    with pytest.raises(InvariantViolation) as ei:
        rewrite_records([FakeRecord("a", 0), FakeRecord("b", 4)], FakeSink(None, {}), table)
    assert ei.value.records == 2
