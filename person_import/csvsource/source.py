from __future__ import annotations

from pathlib import Path
from typing import IO, Any

"""Pausable text source for the CSV parser.

CsvSource wraps a text stream (normally the spooled upload) and is what the
parser reads from. The pipeline pauses it while a batch is being written; any
read attempted while paused is a programming error and raises
SourcePausedError instead of silently buffering more input.

The source does not own the spool file on disk. ``close()`` releases the
stream handle exactly once; deleting the file is the upload layer's job.
"""

__all__ = [
    "CsvSource",
    "SourcePausedError",
    "StreamFault",
]


class StreamFault(Exception):
    """The input stream became unreadable (bad framing, decoding, I/O)."""


class SourcePausedError(RuntimeError):
    """Read attempted while the source is paused for a batch flush."""


class CsvSource:
    """File-like wrapper with pause/resume and single release.

    Only the subset of the text file protocol that ``csv.reader`` and
    callers need is implemented (``read``, ``readline`` and iteration).
    """

    mode = "r"

    def __init__(self, stream: IO[str], *, name: str = "<stream>") -> None:
        self._stream = stream
        self.name = name
        self._paused = False
        self._released = False
        self.lines_read = 0

    @classmethod
    def open(cls, path: Path, encoding: str = "utf-8") -> CsvSource:
        # newline="" は csv モジュールの要件 (クォート内改行を保持)
        fh = path.open("r", encoding=encoding, newline="")
        return cls(fh, name=path.name)

    # -- pause / resume -------------------------------------------------

    @property
    def paused(self) -> bool:
        return self._paused

    def pause(self) -> bool:
        """Pause reading. Returns False if already paused."""
        if self._paused:
            return False
        self._paused = True
        return True

    def resume(self) -> bool:
        """Resume reading. Returns False if not paused."""
        if not self._paused:
            return False
        self._paused = False
        return True

    # -- reading --------------------------------------------------------

    def _check_readable(self) -> None:
        if self._released:
            raise ValueError(f"source already released: {self.name}")
        if self._paused:
            raise SourcePausedError(f"source paused: {self.name}")

    def readline(self, size: int = -1) -> str:
        self._check_readable()
        line = self._stream.readline(size)
        if line:
            self.lines_read += 1
        return line

    def read(self, size: int = -1) -> str:
        self._check_readable()
        return self._stream.read(size)

    def __iter__(self) -> CsvSource:
        return self

    def __next__(self) -> str:
        line = self.readline()
        if not line:
            raise StopIteration
        return line

    # -- release --------------------------------------------------------

    @property
    def released(self) -> bool:
        return self._released

    def close(self) -> None:
        """Release the underlying stream handle. Safe to call repeatedly."""
        if self._released:
            return
        self._released = True
        self._stream.close()

    def __enter__(self) -> CsvSource:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
