from .parser import COLUMNS, parse_rows
from .source import CsvSource, SourcePausedError, StreamFault

__all__ = [
    "COLUMNS",
    "CsvSource",
    "SourcePausedError",
    "StreamFault",
    "parse_rows",
]
