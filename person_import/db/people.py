from __future__ import annotations

from typing import Any

from ..models.record import COLUMNS
from .batch_insert import check_identifier

"""People table helpers: DDL and the read side (latest records / count)."""

__all__ = [
    "count_records",
    "ensure_table",
    "list_recent",
]


def ensure_table(cursor: Any, table: str) -> None:
    """CREATE TABLE IF NOT EXISTS for the person schema (id is the primary key)."""
    check_identifier(table)
    cursor.execute(
        f"""
        CREATE TABLE IF NOT EXISTS {table} (
            "id" BIGINT PRIMARY KEY,
            "firstname" TEXT NOT NULL,
            "lastname" TEXT NOT NULL DEFAULT '',
            "email" TEXT NOT NULL,
            "email2" TEXT NOT NULL DEFAULT '',
            "profession" TEXT NOT NULL DEFAULT ''
        )
        """
    )
    cursor.execute("COMMIT")


def list_recent(cursor: Any, table: str, limit: int = 10) -> list[dict[str, Any]]:
    """Most recent records, highest id first."""
    check_identifier(table)
    if limit < 1:
        return []
    cols_sql = ",".join(f'"{c}"' for c in COLUMNS)
    cursor.execute(f'SELECT {cols_sql} FROM {table} ORDER BY "id" DESC LIMIT %s', (limit,))
    return [dict(zip(COLUMNS, row, strict=False)) for row in cursor.fetchall()]


def count_records(cursor: Any, table: str) -> int:
    check_identifier(table)
    cursor.execute(f"SELECT count(*) FROM {table}")
    row = cursor.fetchone()
    return int(row[0]) if row else 0
