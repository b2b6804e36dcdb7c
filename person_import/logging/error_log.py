from __future__ import annotations

import logging
from datetime import UTC, datetime
from pathlib import Path

from ..models.error_record import ErrorRecord

"""Error log generation & buffering.

- JSON Lines 固定スキーマ (追加キー禁止)
- 実行ごとに `logs/errors-YYYYMMDD-HHMMSS.log` (UTC) を生成 (必要時のみ)
- バッファリングし、バッチ flush ごと / 上限到達時 / 実行終了時に追記

The buffer never holds more than ``max_buffered`` records, so a file full of
rejected rows does not grow memory. When the log cannot be written, an
automatic flush drops the buffered records with a warning instead of raising.
"""

__all__ = [
    "ErrorLogBuffer",
    "ErrorRecord",
]

LOGS_DIR = Path("./logs")
TIMESTAMP_FMT = "%Y%m%d-%H%M%S"
DEFAULT_MAX_BUFFERED = 1000

logger = logging.getLogger(__name__)


class ErrorLogBuffer:
    """In-memory buffer for error records. Flush appends JSON Lines.

    - ファイルパスは初回 flush で決定
    - 1 実行 1 バッファ (スレッド間共有しない)
    """

    def __init__(self, logs_dir: Path | None = None, max_buffered: int = DEFAULT_MAX_BUFFERED) -> None:
        self._records: list[ErrorRecord] = []
        self._file_path: Path | None = None
        self._logs_dir = logs_dir if logs_dir is not None else LOGS_DIR
        self.max_buffered = max(1, max_buffered)
        self.total_records = 0

    @property
    def file_path(self) -> Path:
        if self._file_path is None:
            self._logs_dir.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._file_path = self._logs_dir / f"errors-{stamp}.log"
        return self._file_path

    @property
    def written(self) -> bool:
        """True once at least one record reached disk."""
        return self._file_path is not None and self._file_path.exists()

    def append(self, record: ErrorRecord) -> None:
        self._records.append(record)
        self.total_records += 1
        if len(self._records) >= self.max_buffered:
            try:
                self.flush()
            except OSError as e:
                # 書けないログは捨てる (バッファ上限を守る)
                logger.warning("error log flush failed, dropping %d records: %s", len(self._records), e)
                self._records.clear()

    def __len__(self) -> int:  # pragma: no cover (trivial)
        return len(self._records)

    def flush(self) -> Path | None:
        """Append buffered records to the log file.

        Returns the file path, or None when nothing has ever been written
        (空のときはファイルを作らない).
        """
        if not self._records:
            return self._file_path
        fp = self.file_path
        with fp.open("a", encoding="utf-8") as f:
            for r in self._records:
                f.write(r.to_json_line() + "\n")
        self._records.clear()
        return fp
