from __future__ import annotations

import logging
import time
from collections.abc import Sequence

from ..csvsource.parser import parse_rows
from ..csvsource.source import CsvSource, StreamFault
from ..logging.error_log import ErrorLogBuffer
from ..models.error_record import FILE_LEVEL_ROW, ErrorRecord
from ..models.record import Record, Rejected
from ..models.run_result import RunState, RunStats, RunSummary, WriteOutcome
from .backpressure import BackpressureController
from .batcher import DEFAULT_BATCH_SIZE, Batcher
from .progress import RowProgress
from .sink import SinkWriter
from .validator import validate

"""Streaming ingestion pipeline for one uploaded file.

Pull-based: rows are pulled from the parser one at a time, validated and
accumulated. When the batch is full the source is paused, the batch is
written, the source is resumed and pulling continues. At most one batch is
in memory and at most one write is in flight.

State machine:
    idle → streaming → (batch_flush → streaming)* → finalizing → done
    streaming | batch_flush | finalizing → failed

Row rejections and batch failures are counted and logged; they never end the
run. A StreamFault (or any unexpected exception) ends it in ``failed`` with
the counts gathered so far. The source handle is released on every path.
"""

__all__ = [
    "IngestionPipeline",
    "PipelineStateError",
]

logger = logging.getLogger(__name__)

STREAM_FAULT = "STREAM_FAULT"
UNEXPECTED_ERROR = "UNEXPECTED_ERROR"
BATCH_WRITE_ERROR = "BATCH_WRITE_ERROR"
RECORD_CONFLICT = "RECORD_CONFLICT"

_TRANSITIONS: dict[RunState, frozenset[RunState]] = {
    RunState.IDLE: frozenset({RunState.STREAMING}),
    RunState.STREAMING: frozenset({RunState.BATCH_FLUSH, RunState.FINALIZING, RunState.FAILED}),
    RunState.BATCH_FLUSH: frozenset({RunState.STREAMING, RunState.FAILED}),
    RunState.FINALIZING: frozenset({RunState.DONE, RunState.FAILED}),
    RunState.DONE: frozenset(),
    RunState.FAILED: frozenset(),
}


class PipelineStateError(RuntimeError):
    """Illegal state transition (e.g. running a finished pipeline again)."""


class IngestionPipeline:
    def __init__(
        self,
        source: CsvSource,
        sink: SinkWriter,
        *,
        filename: str,
        file_size_bytes: int = 0,
        batch_size: int = DEFAULT_BATCH_SIZE,
        error_log: ErrorLogBuffer | None = None,
        progress: RowProgress | None = None,
    ) -> None:
        self.source = source
        self.sink = sink
        self.filename = filename
        self.file_size_bytes = file_size_bytes
        self.error_log = error_log if error_log is not None else ErrorLogBuffer()
        self.progress = progress

        self.stats = RunStats()
        self.batcher = Batcher(batch_size)
        self.backpressure = BackpressureController(source)
        self.state = RunState.IDLE
        self.history: list[RunState] = [RunState.IDLE]
        self.flush_sizes: list[int] = []
        self._rows_reported = 0

    # -- state ------------------------------------------------------------

    def _transition(self, new: RunState) -> None:
        if new not in _TRANSITIONS[self.state]:
            raise PipelineStateError(f"illegal transition {self.state.value} -> {new.value}")
        logger.debug("state %s -> %s", self.state.value, new.value)
        self.state = new
        self.history.append(new)

    # -- error log ----------------------------------------------------------

    def _log_error(self, row: int, error_type: str, message: str) -> None:
        self.error_log.append(ErrorRecord.create(self.filename, row, error_type, message))

    def _flush_error_log(self) -> str | None:
        try:
            path = self.error_log.flush()
        except OSError as e:
            # エラーログ書き込み失敗で取り込み全体を失敗させない
            logger.warning("error log flush failed: %s", e)
            return None
        return str(path) if path is not None else None

    # -- batches ------------------------------------------------------------

    def _write(self, batch: Sequence[Record]) -> WriteOutcome:
        started = time.time()
        try:
            outcome = self.sink.write(batch)
        except Exception as e:  # 想定外の例外もバッチ失敗として計上
            outcome = WriteOutcome(inserted=0, failed=len(batch), error=str(e))
        self.stats.batches.add_batch_time(time.time() - started)
        return outcome

    def _flush(self, *, final: bool) -> None:
        batch = self.batcher.drain()
        if not batch:
            return
        batch_no = len(self.flush_sizes) + 1
        if not final:
            self._transition(RunState.BATCH_FLUSH)
        else:
            logger.info("final batch: %d records", len(batch))

        # 最終バッチはソース終端済みなので pause/resume 不要
        with self.backpressure.flushing(suspend=not final):
            outcome = self._write(batch)

        self.stats.record_write(outcome)
        self.flush_sizes.append(len(batch))
        if outcome.whole_batch_failed:
            logger.error("batch %d failed (%d records): %s", batch_no, len(batch), outcome.error)
            self._log_error(FILE_LEVEL_ROW, BATCH_WRITE_ERROR, f"batch {batch_no}: {outcome.error}")
        elif outcome.failed:
            logger.warning("batch %d: %d of %d records rejected by the store", batch_no, outcome.failed, len(batch))
            self._log_error(
                FILE_LEVEL_ROW,
                RECORD_CONFLICT,
                f"batch {batch_no}: {outcome.failed} of {len(batch)} records not inserted",
            )
        else:
            logger.info("batch %d committed: %d records (total %d)", batch_no, outcome.inserted, self.stats.processed_records)

        self._report_progress()
        self._flush_error_log()

        if not final:
            self._transition(RunState.STREAMING)

    def _report_progress(self) -> None:
        if self.progress is None:
            return
        self.progress.advance(
            self.stats.total_rows - self._rows_reported,
            processed=self.stats.processed_records,
            errors=self.stats.error_count,
        )
        self._rows_reported = self.stats.total_rows

    # -- run ----------------------------------------------------------------

    def _stream(self) -> None:
        for raw in parse_rows(self.source):
            result = validate(raw, self.stats)
            if isinstance(result, Rejected):
                logger.debug("row %d rejected: %s", result.row, result.reason)
                self._log_error(result.row, result.error_type, result.reason)
                continue
            if self.batcher.add(result):
                self._flush(final=False)

    def _fail(self, error_type: str, message: str) -> RunSummary:
        pending = len(self.batcher.drain())
        if pending:
            logger.warning("discarding %d pending records not yet written", pending)
        self._log_error(FILE_LEVEL_ROW, error_type, message)
        self._transition(RunState.FAILED)
        return self._finish(error=message)

    def _finish(self, error: str | None = None) -> RunSummary:
        # 最終 flush 後の不正行分も反映
        if self.stats.total_rows != self._rows_reported:
            self._report_progress()
        log_path = self._flush_error_log()
        summary = self.stats.finalize(
            state=self.state,
            filename=self.filename,
            file_size_bytes=self.file_size_bytes,
            error=error,
            error_log_path=log_path,
        )
        logger.info(
            "import %s: total=%d processed=%d errors=%d elapsed=%.1fs",
            self.state.value,
            summary.total_records,
            summary.processed_records,
            summary.errors,
            summary.elapsed_seconds,
        )
        return summary

    def run(self) -> RunSummary:
        """Drive the whole import and return its summary. Never raises for
        row, batch or stream faults; raises PipelineStateError if called twice.
        """
        if self.state is not RunState.IDLE:
            raise PipelineStateError(f"pipeline already {self.state.value}")
        self._transition(RunState.STREAMING)
        self.stats.start()
        logger.info("import started: %s", self.filename)

        try:
            try:
                self._stream()
            finally:
                self.source.close()
            self._transition(RunState.FINALIZING)
            self._flush(final=True)
        except StreamFault as e:
            logger.error(
                "stream fault after %d rows (%d lines read): %s", self.stats.total_rows, self.source.lines_read, e
            )
            return self._fail(STREAM_FAULT, str(e))
        except Exception as e:
            logger.exception("unexpected error after %d rows", self.stats.total_rows)
            return self._fail(UNEXPECTED_ERROR, str(e) or type(e).__name__)

        self._transition(RunState.DONE)
        return self._finish()
