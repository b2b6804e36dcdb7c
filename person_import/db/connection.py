from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import psycopg2

from ..config.loader import DatabaseConfig

"""PostgreSQL connection handling.

接続情報の解決優先順位 (.env を最優先):
    1. `.env` で読み込まれた環境変数 (CLI 起動時に override=True で読み込み済み)
         - DATABASE_URL / PGDSN があれば DSN 全体をそのまま使用
         - 個別 PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE
    2. config/import.yml の database セクション (不足分のフォールバック)
"""

__all__ = [
    "DatabaseUnavailable",
    "db_connection",
    "resolve_dsn",
]

logger = logging.getLogger(__name__)


class DatabaseUnavailable(Exception):
    """psycopg2.connect failed."""


def resolve_dsn(db_cfg: DatabaseConfig) -> str:
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


@contextmanager
def db_connection(db_cfg: DatabaseConfig) -> Iterator[Any]:  # pragma: no cover (thin wrapper)
    """Yield a psycopg2 cursor; the connection is closed on exit.

    Commits are issued per batch by the sink writer, so nothing is committed
    here. Anything left open at exit is rolled back.
    """
    try:
        conn = psycopg2.connect(resolve_dsn(db_cfg))
    except psycopg2.Error as e:
        raise DatabaseUnavailable(str(e).strip()) from e
    conn.autocommit = False
    cur = conn.cursor()
    try:
        yield cur
    finally:
        try:
            cur.close()
        except psycopg2.Error:
            logger.debug("cursor close failed", exc_info=True)
        try:
            if not conn.closed:
                conn.rollback()
            conn.close()
        except psycopg2.Error:
            logger.debug("connection close failed", exc_info=True)
