from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any, Protocol

from ..db.batch_insert import BatchInsertError, batch_insert
from ..models.record import COLUMNS, Record
from ..models.run_result import BatchMetrics, WriteOutcome

"""Sink writers: one durable bulk write per batch.

write() never raises. A partially failed batch (conflicting rows skipped by
the database) and a wholly failed batch (connection lost, bad SQL) both come
back as a WriteOutcome; the pipeline decides what to count.
"""

__all__ = [
    "DryRunSinkWriter",
    "PostgresSinkWriter",
    "SinkWriter",
]

logger = logging.getLogger(__name__)


class SinkWriter(Protocol):
    def write(self, batch: Sequence[Record]) -> WriteOutcome: ...


class PostgresSinkWriter:
    """Unordered bulk insert into PostgreSQL, one transaction per batch.

    Rows rejected by a unique constraint are skipped (ON CONFLICT DO NOTHING)
    and counted as failed; the rest of the batch is committed.
    """

    def __init__(
        self,
        cursor: Any,
        table: str,
        *,
        page_size: int = 1000,
        metrics_callback: Callable[[BatchMetrics], None] | None = None,
    ) -> None:
        self._cursor = cursor
        self.table = table
        self.page_size = page_size
        self.metrics_callback = metrics_callback

    def _rollback(self) -> None:
        try:
            self._cursor.execute("ROLLBACK")
        except Exception as e:
            # 接続断の場合 ROLLBACK も失敗する。次バッチで再度失敗として計上される
            logger.debug("rollback failed table=%s: %s", self.table, e)

    def write(self, batch: Sequence[Record]) -> WriteOutcome:
        size = len(batch)
        if size == 0:
            return WriteOutcome(inserted=0, failed=0)
        try:
            result = batch_insert(
                self._cursor,
                self.table,
                COLUMNS,
                (r.as_row() for r in batch),
                returning="id",
                skip_conflicts=True,
                page_size=self.page_size,
                metrics_callback=self.metrics_callback,
            )
            self._cursor.execute("COMMIT")
        except BatchInsertError as e:
            self._rollback()
            return WriteOutcome(inserted=0, failed=size, error=str(e))
        except Exception as e:
            self._rollback()
            return WriteOutcome(inserted=0, failed=size, error=f"commit failed: {e}")

        inserted = min(result.inserted_rows, size)
        return WriteOutcome(inserted=inserted, failed=size - inserted)


class DryRunSinkWriter:
    """No database: every record counts as inserted (mock mode)."""

    def __init__(self) -> None:
        self.batches_written = 0

    def write(self, batch: Sequence[Record]) -> WriteOutcome:
        if not batch:
            return WriteOutcome(inserted=0, failed=0)
        self.batches_written += 1
        logger.debug("dry-run batch=%d size=%d", self.batches_written, len(batch))
        return WriteOutcome(inserted=len(batch), failed=0)
