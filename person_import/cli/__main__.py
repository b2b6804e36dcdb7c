from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path
from typing import Any

import psycopg2
from dotenv import load_dotenv

from ..config.loader import DEFAULT_CONFIG_PATH, ConfigError, ImportConfig, load_config
from ..db.batch_insert import BatchInsertError
from ..db.connection import DatabaseUnavailable, db_connection
from ..db.people import count_records, ensure_table, list_recent
from ..logging.error_log import ErrorLogBuffer
from ..logging.init import log_summary, set_debug, setup_logging
from ..models.run_result import BatchMetrics, RunSummary
from ..services.progress import RowProgress
from ..services.sink import DryRunSinkWriter, PostgresSinkWriter, SinkWriter
from ..services.summary import render_summary_line
from ..services.upload import UploadError, ingest_upload, stage_upload

"""CLI entrypoint.

    python -m person_import.cli import people.csv [--json] [--create-table]
    python -m person_import.cli list [--limit 10]

Exit codes: 0 all rows imported, 2 finished with rejected rows / failed
batches, 1 fatal (config, input file, database connection, stream fault).
DISABLE_DB_CONNECT=1 runs the import without a database (dry run).
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env; its values win over the existing environment."""
    try:
        if path.exists():
            load_dotenv(dotenv_path=path, override=override)
    except OSError as e:  # pragma: no cover
        print(f"WARNING: failed to load .env via python-dotenv: {e}")


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="person_import", description="CSV -> PostgreSQL person importer")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Path to import.yml")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    imp = sub.add_parser("import", help="Import a CSV file of person records")
    imp.add_argument("file", type=Path, help="CSV file (no header; id,firstname,lastname,email,email2,profession)")
    imp.add_argument("--json", action="store_true", help="Print the JSON response after the SUMMARY line")
    imp.add_argument("--create-table", action="store_true", help="CREATE TABLE IF NOT EXISTS before importing")

    lst = sub.add_parser("list", help="Show the most recent records and the total count")
    lst.add_argument("--limit", type=int, default=10)
    return p.parse_args(argv)


def _exit_code(summary: RunSummary) -> int:
    if not summary.success:
        return EXIT_FATAL
    if summary.errors > 0:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


def _run_import(args: argparse.Namespace, cfg: ImportConfig, sink: SinkWriter) -> RunSummary:
    spool = Path(cfg.spool_directory) if cfg.spool_directory else None
    upload = stage_upload(args.file, spool)
    with RowProgress(description=f"Importing {upload.original_name}") as progress:
        return ingest_upload(
            upload,
            sink,
            batch_size=cfg.batch_size,
            encoding=cfg.encoding,
            error_log=ErrorLogBuffer(Path(cfg.logs_directory)),
            progress=progress,
        )


def _cmd_import(args: argparse.Namespace, cfg: ImportConfig, logger: Any) -> int:
    if not args.file.is_file():
        logger.error(f"input file not found: {args.file}")
        return EXIT_FATAL

    def _batch_metrics(m: BatchMetrics) -> None:
        logger.debug(f"batch_insert size={m.batch_size} elapsed={m.elapsed_seconds:.3f}s")

    # DB 接続制御: テスト等で完全に無効化したい場合 DISABLE_DB_CONNECT=1
    try:
        if os.getenv("DISABLE_DB_CONNECT") == "1":
            logger.debug("DB connect disabled via DISABLE_DB_CONNECT=1 -> dry run")
            summary = _run_import(args, cfg, DryRunSinkWriter())
        else:
            with db_connection(cfg.database) as cur:
                if args.create_table:
                    ensure_table(cur, cfg.table)
                sink = PostgresSinkWriter(
                    cur, cfg.table, page_size=cfg.batch_size, metrics_callback=_batch_metrics
                )
                summary = _run_import(args, cfg, sink)
    except DatabaseUnavailable as e:
        logger.error(f"database connection failed: {e}")
        return EXIT_FATAL
    except (UploadError, BatchInsertError, psycopg2.Error) as e:
        logger.error(f"import: {e}")
        return EXIT_FATAL

    log_summary(render_summary_line(summary)[len("SUMMARY "):])
    if summary.error_log_path:
        logger.info(f"error log: {summary.error_log_path}")
    if args.json:
        print(json.dumps(summary.to_response(), ensure_ascii=False))
    return _exit_code(summary)


def _cmd_list(args: argparse.Namespace, cfg: ImportConfig, logger: Any) -> int:
    try:
        with db_connection(cfg.database) as cur:
            records = list_recent(cur, cfg.table, args.limit)
            total = count_records(cur, cfg.table)
    except Exception as e:
        logger.error(f"list: {e}")
        return EXIT_FATAL
    print(json.dumps({"records": records, "total": total, "showing": len(records)}, ensure_ascii=False))
    return EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # 空リスト [] が与えられた場合に sys.argv[1:] が混入しないよう None のときのみ読む
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"), override=True)

    if args.debug:
        set_debug(True)
        logger.debug("debug mode enabled")

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if args.command == "list":
        return _cmd_list(args, cfg, logger)
    return _cmd_import(args, cfg, logger)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
