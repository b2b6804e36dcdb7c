from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from psycopg2.extras import execute_values

from ..models.run_result import BatchMetrics

"""DB batch insert.

psycopg2.extras.execute_values を用いたバッチ INSERT。

``skip_conflicts=True`` appends ``ON CONFLICT DO NOTHING`` so that one row
violating a unique constraint does not abort the others (unordered bulk
semantics). Combined with ``returning`` the caller can tell how many rows were
actually written: rows skipped by a conflict are not returned.

Transaction control (COMMIT / ROLLBACK) is the caller's responsibility.
"""

__all__ = [
    "BatchInsertError",
    "InsertResult",
    "batch_insert",
    "check_identifier",
]


class BatchInsertError(Exception):
    pass


@dataclass(frozen=True)
class InsertResult:
    inserted_rows: int
    returned_values: list[tuple[Any, ...]] | None = None


def check_identifier(name: str) -> str:
    """Allow only [A-Za-z0-9_] table/column names (optionally schema qualified)."""
    parts = name.split(".")
    if not name or any(not p or not p.replace("_", "").isalnum() for p in parts):
        raise BatchInsertError(f"invalid identifier: {name!r}")
    return name


def batch_insert(
    cursor: Any,
    table: str,
    columns: Sequence[str],
    rows: Iterable[Sequence[Any]],
    returning: str | None = None,
    skip_conflicts: bool = False,
    page_size: int = 1000,
    metrics_callback: Callable[[BatchMetrics], None] | None = None,
) -> InsertResult:
    """Perform batched INSERT using psycopg2.extras.execute_values.

    Parameters
    ----------
    cursor: psycopg2 cursor
    table: 対象テーブル名 (check_identifier で検証)
    columns: 挿入列
    rows: 行シーケンス
    returning: RETURNING 句に使う列名 (None なら RETURNING なし)
    skip_conflicts: True の場合 ON CONFLICT DO NOTHING (制約違反行のみスキップ)
    page_size: execute_values の page_size (性能調整)
    metrics_callback: Optional callback receiving BatchMetrics for timing.
        Not invoked when ``rows`` is empty (the function returns early).

    Returns
    -------
    InsertResult. With ``returning`` set, ``inserted_rows`` is the number of
    rows the database reported back (conflicting rows excluded); otherwise
    it is the number of rows sent.
    """
    rows_list = list(rows)
    if not rows_list:
        return InsertResult(inserted_rows=0, returned_values=[] if returning else None)

    check_identifier(table)
    for c in columns:
        check_identifier(c)
    cols_sql = ",".join(f'"{c}"' for c in columns)
    sql = f"INSERT INTO {table} ({cols_sql}) VALUES %s"
    if skip_conflicts:
        sql += " ON CONFLICT DO NOTHING"
    if returning:
        sql += f' RETURNING "{check_identifier(returning)}"'

    start_time = time.time()
    try:
        # fetch=True: 全ページ分の RETURNING 結果を集約して返す
        returned = execute_values(
            cursor, sql, rows_list, page_size=page_size, fetch=bool(returning)
        )
    except Exception as e:
        raise BatchInsertError(str(e)) from e
    finally:
        end_time = time.time()
        if metrics_callback is not None:
            metrics_callback(
                BatchMetrics(
                    batch_size=len(rows_list),
                    elapsed_seconds=end_time - start_time,
                    start_time=start_time,
                    end_time=end_time,
                )
            )

    if returning:
        returned_list = [tuple(r) for r in (returned or [])]
        return InsertResult(inserted_rows=len(returned_list), returned_values=returned_list)
    return InsertResult(inserted_rows=len(rows_list), returned_values=None)
