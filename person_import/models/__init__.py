"""Domain models for the CSV -> PostgreSQL person importer."""

from .error_record import ErrorRecord
from .record import COLUMNS, REQUIRED_COLUMNS, RawRow, Record, Rejected
from .run_result import (
    BatchMetrics,
    BatchStatsAccumulator,
    RunState,
    RunStats,
    RunSummary,
    WriteOutcome,
)

__all__ = [
    # Record models
    "COLUMNS",
    "REQUIRED_COLUMNS",
    "RawRow",
    "Record",
    "Rejected",
    # Run models
    "BatchMetrics",
    "BatchStatsAccumulator",
    "RunState",
    "RunStats",
    "RunSummary",
    "WriteOutcome",
    # Error log
    "ErrorRecord",
]
