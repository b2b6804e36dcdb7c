from __future__ import annotations

import logging
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path

from ..csvsource.source import CsvSource
from ..logging.error_log import ErrorLogBuffer
from ..models.error_record import FILE_LEVEL_ROW, ErrorRecord
from ..models.run_result import RunState, RunStats, RunSummary
from .batcher import DEFAULT_BATCH_SIZE
from .pipeline import IngestionPipeline
from .progress import RowProgress
from .sink import SinkWriter

"""Upload boundary: spooled temp file lifecycle around one pipeline run.

The upload layer owns the temporary file: it creates it (``stage_upload``),
the pipeline reads it through a CsvSource, and ``ingest_upload`` removes it
afterwards whether the run finished, failed or blew up. Failing to remove it
is logged and never changes the outcome returned to the caller.
"""

__all__ = [
    "CLEANUP_ERROR",
    "UploadError",
    "UploadedFile",
    "ingest_upload",
    "release_upload",
    "stage_upload",
]

logger = logging.getLogger(__name__)

CLEANUP_ERROR = "CLEANUP_ERROR"
OPEN_ERROR = "OPEN_ERROR"


class UploadError(Exception):
    pass


@dataclass(frozen=True)
class UploadedFile:
    path: Path  # spooled temp file
    original_name: str  # 元ファイル名 (レスポンス/ログ用)
    size: int  # bytes


def stage_upload(src: Path, spool_dir: Path | None = None) -> UploadedFile:
    """Copy ``src`` into a new temp file, as an HTTP upload layer would."""
    if not src.is_file():
        raise UploadError(f"input file not found: {src}")
    if spool_dir is not None:
        spool_dir.mkdir(parents=True, exist_ok=True)
    with src.open("rb") as fin, tempfile.NamedTemporaryFile(
        mode="wb", prefix="upload-", suffix=".csv", dir=spool_dir, delete=False
    ) as fout:
        shutil.copyfileobj(fin, fout)
        tmp_path = Path(fout.name)
    size = tmp_path.stat().st_size
    logger.info("staged %s -> %s (%d bytes)", src.name, tmp_path, size)
    return UploadedFile(path=tmp_path, original_name=src.name, size=size)


def release_upload(upload: UploadedFile, error_log: ErrorLogBuffer | None = None) -> bool:
    """Delete the spooled file. Idempotent; never raises.

    Returns True when this call removed the file.
    """
    try:
        upload.path.unlink()
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning("could not remove temp file %s: %s", upload.path, e)
        if error_log is not None:
            error_log.append(ErrorRecord.create(upload.original_name, FILE_LEVEL_ROW, CLEANUP_ERROR, str(e)))
            try:
                error_log.flush()
            except OSError:
                logger.warning("error log flush failed while recording cleanup error")
        return False
    logger.info("temp file removed: %s", upload.path.name)
    return True


def _open_failure(upload: UploadedFile, message: str, error_log: ErrorLogBuffer) -> RunSummary:
    error_log.append(ErrorRecord.create(upload.original_name, FILE_LEVEL_ROW, OPEN_ERROR, message))
    try:
        log_path = error_log.flush()
    except OSError:
        log_path = None
    return RunStats().finalize(
        state=RunState.FAILED,
        filename=upload.original_name,
        file_size_bytes=upload.size,
        error=message,
        error_log_path=str(log_path) if log_path else None,
    )


def ingest_upload(
    upload: UploadedFile,
    sink: SinkWriter,
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
    encoding: str = "utf-8",
    error_log: ErrorLogBuffer | None = None,
    progress: RowProgress | None = None,
) -> RunSummary:
    """Run one import over a spooled upload and remove the spool file."""
    error_log = error_log if error_log is not None else ErrorLogBuffer()
    try:
        try:
            source = CsvSource.open(upload.path, encoding=encoding)
        except (OSError, LookupError) as e:
            logger.error("cannot open upload %s: %s", upload.original_name, e)
            return _open_failure(upload, f"cannot open upload: {e}", error_log)
        try:
            pipeline = IngestionPipeline(
                source,
                sink,
                filename=upload.original_name,
                file_size_bytes=upload.size,
                batch_size=batch_size,
                error_log=error_log,
                progress=progress,
            )
        except Exception:
            source.close()
            raise
        return pipeline.run()
    finally:
        release_upload(upload, error_log)
