from __future__ import annotations

import math
import statistics
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

"""Run result models for the CSV -> PostgreSQL person importer.

RunStats is the single mutable accumulator of one pipeline run. It is owned by
the pipeline and lent to the validator and the sink call sites only. At stream
end it is frozen into a RunSummary, which is what the boundary layer renders.
"""

__all__ = [
    "BatchMetrics",
    "BatchStatsAccumulator",
    "RunState",
    "RunStats",
    "RunSummary",
    "WriteOutcome",
    "records_per_second",
]


class RunState(Enum):
    """Pipeline lifecycle.

    State transitions: idle → streaming → (batch_flush → streaming)* →
    finalizing → done, or streaming|batch_flush → failed on a stream fault.
    done and failed are terminal.
    """
    IDLE = "idle"
    STREAMING = "streaming"
    BATCH_FLUSH = "batch_flush"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (RunState.DONE, RunState.FAILED)


@dataclass(frozen=True)
class WriteOutcome:
    """Result of one batch write. inserted + failed == batch size."""
    inserted: int
    failed: int
    error: str | None = None  # whole-batch failure message

    @property
    def whole_batch_failed(self) -> bool:
        return self.inserted == 0 and self.error is not None


@dataclass(frozen=True)
class BatchMetrics:
    """Metrics data for a single batch write."""
    batch_size: int  # Number of records in this batch
    elapsed_seconds: float  # Time spent on execute_values + COMMIT
    start_time: float  # Start timestamp (time.time())
    end_time: float  # End timestamp (time.time())


class BatchStatsAccumulator:
    """Collects individual batch timings and calculates summary statistics."""

    def __init__(self) -> None:
        self.batch_times: list[float] = []

    def add_batch_time(self, elapsed_seconds: float) -> None:
        self.batch_times.append(elapsed_seconds)

    def get_stats(self) -> tuple[int, float, float]:
        """Calculate batch statistics.

        Returns:
            tuple: (total_batches, avg_batch_seconds, p95_batch_seconds)
        """
        if not self.batch_times:
            return (0, 0.0, 0.0)

        total_batches = len(self.batch_times)
        avg_batch_seconds = statistics.mean(self.batch_times)

        if total_batches == 1:
            p95_batch_seconds = self.batch_times[0]
        else:
            p95_batch_seconds = statistics.quantiles(
                self.batch_times, n=20, method='inclusive'
            )[18]  # 95th percentile (19th out of 20 quantiles, 0-indexed)

        return (total_batches, avg_batch_seconds, p95_batch_seconds)


def records_per_second(processed: int, elapsed_seconds: float) -> int:
    """Average throughput rounded half up; 0 when no time has elapsed."""
    if elapsed_seconds <= 0:
        return 0
    return int(math.floor(processed / elapsed_seconds + 0.5))


@dataclass
class RunStats:
    """Per-run counters. Never shared between runs."""
    total_rows: int = 0
    processed_records: int = 0
    error_count: int = 0
    start_time: datetime | None = None
    batches: BatchStatsAccumulator = field(default_factory=BatchStatsAccumulator)

    def start(self) -> None:
        self.start_time = datetime.now(UTC)

    def record_row(self) -> None:
        self.total_rows += 1

    def record_rejection(self) -> None:
        self.error_count += 1

    def record_write(self, outcome: WriteOutcome) -> None:
        self.processed_records += outcome.inserted
        self.error_count += outcome.failed

    def elapsed_seconds(self, now: datetime | None = None) -> float:
        if self.start_time is None:
            return 0.0
        end = now or datetime.now(UTC)
        return max((end - self.start_time).total_seconds(), 0.0)

    def finalize(
        self,
        *,
        state: RunState,
        filename: str,
        file_size_bytes: int,
        error: str | None = None,
        error_log_path: str | None = None,
    ) -> RunSummary:
        elapsed = self.elapsed_seconds()
        total_batches, avg_batch, p95_batch = self.batches.get_stats()
        return RunSummary(
            state=state,
            total_records=self.total_rows,
            processed_records=self.processed_records,
            errors=self.error_count,
            elapsed_seconds=elapsed,
            avg_records_per_second=records_per_second(self.processed_records, elapsed),
            filename=filename,
            file_size_bytes=file_size_bytes,
            error=error,
            total_batches=total_batches,
            avg_batch_seconds=avg_batch,
            p95_batch_seconds=p95_batch,
            error_log_path=error_log_path,
        )


@dataclass(frozen=True)
class RunSummary:
    """Immutable outcome of a single ingestion run."""
    state: RunState
    total_records: int
    processed_records: int
    errors: int
    elapsed_seconds: float
    avg_records_per_second: int
    filename: str
    file_size_bytes: int
    error: str | None = None  # stream fault / unexpected fault message
    total_batches: int = 0
    avg_batch_seconds: float = 0.0
    p95_batch_seconds: float = 0.0
    error_log_path: str | None = None

    @property
    def success(self) -> bool:
        return self.state == RunState.DONE

    @property
    def file_size_mb(self) -> float:
        return self.file_size_bytes / 1024 / 1024

    def to_response(self) -> dict[str, Any]:
        """JSON-shaped summary handed to the boundary layer."""
        if not self.success:
            return {
                "success": False,
                "error": self.error or "import failed",
                "totalRecords": self.total_records,
                "processedRecords": self.processed_records,
                "errors": self.errors,
            }
        return {
            "success": True,
            "totalRecords": self.total_records,
            "processedRecords": self.processed_records,
            "errors": self.errors,
            "processingTime": f"{self.elapsed_seconds:.1f}s",
            "avgRecordsPerSecond": self.avg_records_per_second,
            "filename": self.filename,
            "fileSize": f"{self.file_size_mb:.1f} MB",
        }
