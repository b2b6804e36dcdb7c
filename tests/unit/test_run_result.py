from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from person_import.models.run_result import (
    BatchStatsAccumulator,
    RunState,
    RunStats,
    RunSummary,
    WriteOutcome,
    records_per_second,
)


@pytest.mark.parametrize(
    "processed,elapsed,expected",
    [(2500, 2.0, 1250), (10, 4.0, 3), (9, 2.0, 5), (100, 0.0, 0), (0, 3.0, 0)],
)
def test_records_per_second_rounds_half_up(processed, elapsed, expected):
    assert records_per_second(processed, elapsed) == expected


def test_record_write_accounts_inserted_and_failed():
    stats = RunStats()
    stats.record_write(WriteOutcome(inserted=998, failed=2))
    stats.record_write(WriteOutcome(inserted=0, failed=1000, error="connection lost"))
    assert stats.processed_records == 998
    assert stats.error_count == 1002


def test_whole_batch_failed_flag():
    assert WriteOutcome(0, 10, "boom").whole_batch_failed
    assert not WriteOutcome(9, 1).whole_batch_failed
    assert not WriteOutcome(0, 0).whole_batch_failed


def test_elapsed_seconds_never_negative():
    stats = RunStats()
    assert stats.elapsed_seconds() == 0.0
    stats.start()
    assert stats.elapsed_seconds(now=stats.start_time - timedelta(seconds=5)) == 0.0
    assert stats.elapsed_seconds(now=stats.start_time + timedelta(seconds=3)) == 3.0


def test_finalize_builds_summary():
    stats = RunStats(total_rows=10, processed_records=9, error_count=1)
    stats.start_time = datetime.now(UTC) - timedelta(seconds=2)
    stats.batches.add_batch_time(0.5)
    s = stats.finalize(state=RunState.DONE, filename="people.csv", file_size_bytes=2048)
    assert s.success
    assert (s.total_records, s.processed_records, s.errors) == (10, 9, 1)
    assert s.total_batches == 1
    assert s.p95_batch_seconds == 0.5
    assert s.elapsed_seconds >= 2.0


def test_batch_stats_p95():
    acc = BatchStatsAccumulator()
    for t in [0.1] * 19 + [1.0]:
        acc.add_batch_time(t)
    n, avg, p95 = acc.get_stats()
    assert n == 20
    assert avg == pytest.approx(0.145)
    assert 0.1 <= p95 <= 1.0


def _summary(**kw) -> RunSummary:
    base = dict(
        state=RunState.DONE,
        total_records=10,
        processed_records=9,
        errors=1,
        elapsed_seconds=12.345,
        avg_records_per_second=1,
        filename="people.csv",
        file_size_bytes=1_258_291,
    )
    base.update(kw)
    return RunSummary(**base)


def test_to_response_success_shape():
    resp = _summary().to_response()
    assert resp == {
        "success": True,
        "totalRecords": 10,
        "processedRecords": 9,
        "errors": 1,
        "processingTime": "12.3s",
        "avgRecordsPerSecond": 1,
        "filename": "people.csv",
        "fileSize": "1.2 MB",
    }


def test_to_response_failure_shape():
    resp = _summary(state=RunState.FAILED, error="people.csv: connection reset").to_response()
    assert resp == {
        "success": False,
        "error": "people.csv: connection reset",
        "totalRecords": 10,
        "processedRecords": 9,
        "errors": 1,
    }


def test_terminal_states():
    assert RunState.DONE.terminal and RunState.FAILED.terminal
    assert not RunState.BATCH_FLUSH.terminal
