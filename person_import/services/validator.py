from __future__ import annotations

import re

from ..models.record import REQUIRED_COLUMNS, RawRow, Record, Rejected
from ..models.run_result import RunStats

"""Row validation & normalization.

Every row seen bumps RunStats.total_rows; every rejection bumps error_count.
Nothing else is mutated.

Rejection kinds:
- MISSING_REQUIRED_FIELD: id / firstname / email absent or blank after trim
- INVALID_ID: id present but not an integer literal, or outside BIGINT
- INVALID_CHARACTER: a field contains NUL (PostgreSQL text cannot hold it)
"""

__all__ = [
    "INVALID_CHARACTER",
    "INVALID_ID",
    "MISSING_REQUIRED_FIELD",
    "normalize_row",
    "validate",
]

MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"
INVALID_ID = "INVALID_ID"
INVALID_CHARACTER = "INVALID_CHARACTER"

_INT_RE = re.compile(r"^[+-]?\d+$")
# people.id は BIGINT
BIGINT_MIN = -(2**63)
BIGINT_MAX = 2**63 - 1
_BIGINT_DIGITS = len(str(BIGINT_MAX))


def _text(raw: RawRow, col: str) -> str:
    value = raw.get(col)
    return value.strip() if isinstance(value, str) else ""


def normalize_row(raw: RawRow, row: int) -> Record | Rejected:
    """Turn one RawRow into a Record, or explain why not."""
    nul_fields = [c for c, v in raw.items() if isinstance(v, str) and "\x00" in v]
    if nul_fields:
        return Rejected(
            row=row,
            error_type=INVALID_CHARACTER,
            reason=f"NUL character in field(s): {', '.join(nul_fields)}",
        )

    missing = [c for c in REQUIRED_COLUMNS if not _text(raw, c)]
    if missing:
        return Rejected(
            row=row,
            error_type=MISSING_REQUIRED_FIELD,
            reason=f"missing required field(s): {', '.join(missing)}",
        )

    raw_id = _text(raw, "id")
    # int() は "1_000" も受け付けるため正規表現で先に絞る
    if not _INT_RE.match(raw_id):
        return Rejected(row=row, error_type=INVALID_ID, reason=f"id is not an integer: {raw_id!r}")
    # 桁数で先に弾く (巨大な桁数は int() 自体が ValueError)
    digits = raw_id.lstrip("+-").lstrip("0")
    sign = -1 if raw_id.startswith("-") else 1
    record_id = sign * int(digits or "0") if len(digits) <= _BIGINT_DIGITS else None
    if record_id is None or not BIGINT_MIN <= record_id <= BIGINT_MAX:
        return Rejected(row=row, error_type=INVALID_ID, reason=f"id out of BIGINT range: {raw_id[:32]}")

    return Record(
        id=record_id,
        firstname=_text(raw, "firstname"),
        lastname=_text(raw, "lastname"),
        email=_text(raw, "email").lower(),
        email2=_text(raw, "email2").lower(),
        profession=_text(raw, "profession"),
    )


def validate(raw: RawRow, stats: RunStats) -> Record | Rejected:
    """Validate one row and account for it in ``stats``."""
    stats.record_row()
    result = normalize_row(raw, stats.total_rows)
    if isinstance(result, Rejected):
        stats.record_rejection()
    return result
