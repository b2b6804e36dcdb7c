from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

"""Record model for the CSV -> PostgreSQL person importer.

RawRow is the parser output (column name -> string, fixed schema). It is
consumed by the validator and never stored. Record is the normalized unit of
work that travels through a batch into the sink. Rejected is the validator's
answer for a row that cannot become a Record.
"""

__all__ = [
    "COLUMNS",
    "REQUIRED_COLUMNS",
    "RawRow",
    "Record",
    "Rejected",
]

# 入力ファイルはヘッダ行なし。列順は固定。
COLUMNS: tuple[str, ...] = ("id", "firstname", "lastname", "email", "email2", "profession")
REQUIRED_COLUMNS: tuple[str, ...] = ("id", "firstname", "email")

RawRow = dict[str, str]


@dataclass(frozen=True)
class Record:
    """Validated, normalized person record.

    Only constructed when id, firstname and email were present and non-empty.
    Optional fields are always present as empty strings rather than omitted.
    """
    id: int
    firstname: str
    email: str
    lastname: str = ""
    email2: str = ""
    profession: str = ""

    def as_row(self) -> tuple[Any, ...]:
        """Values in COLUMNS order (insert tuple)."""
        return tuple(getattr(self, c) for c in COLUMNS)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Rejected:
    """A row that did not become a Record.

    Attributes:
        row: 1-based ordinal of the data row within the input
        error_type: MISSING_REQUIRED_FIELD or INVALID_ID
        reason: Human readable description for the error log
    """
    row: int
    error_type: str
    reason: str
