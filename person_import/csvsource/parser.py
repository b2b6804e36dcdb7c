from __future__ import annotations

import csv
import logging
from collections.abc import Iterator, Sequence

from ..models.record import COLUMNS, RawRow
from .source import CsvSource, StreamFault

"""Streaming CSV parser.

The input has no header row; every non-blank line is a person row in COLUMNS
order. Records are framed by ``csv.reader`` straight off the source and handed
out one RawRow at a time, so a row is counted as soon as it has been read and
memory does not depend on file size.

Row-level problems (short rows, blank fields) are left to the validator.
Structural problems (unterminated quoting, undecodable bytes, I/O errors on
the stream) are raised as StreamFault and end the run. Rows yielded before the
fault stay yielded.
"""

__all__ = [
    "COLUMNS",
    "parse_rows",
]

logger = logging.getLogger(__name__)

# csv.Error / デコード失敗 / I/O 失敗はすべてストリーム障害扱い
_STREAM_ERRORS: tuple[type[BaseException], ...] = (
    csv.Error,
    UnicodeDecodeError,
    OSError,
)


def _is_blank(fields: list[str]) -> bool:
    return not fields or (len(fields) == 1 and not fields[0].strip())


def parse_rows(source: CsvSource, columns: Sequence[str] = COLUMNS) -> Iterator[RawRow]:
    """Lazily yield RawRow dicts from ``source``.

    Parameters
    ----------
    source: 読み込み元 (pause 中の読み込みは SourcePausedError)
    columns: 固定列スキーマ

    Raises
    ------
    StreamFault: the stream itself cannot be parsed or read
    """
    width = len(columns)
    # strict: 閉じられていないクォートは EOF で csv.Error
    reader = csv.reader(source, strict=True)
    try:
        for fields in reader:
            if _is_blank(fields):
                continue
            # 余分な列は捨て、足りない列は空文字で validator へ
            fields = fields[:width]
            fields += [""] * (width - len(fields))
            yield dict(zip(columns, fields, strict=True))
    except _STREAM_ERRORS as e:
        raise StreamFault(f"{source.name} line {reader.line_num}: {e}") from e
    logger.debug("parsed %d lines from %s", reader.line_num, source.name)
