from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from person_import.cli import main as cli_main
from person_import.db.connection import DatabaseUnavailable

"""Exit code contract: 0 clean, 2 completed with errors, 1 fatal."""


@pytest.fixture(autouse=True)
def dry_run(monkeypatch, clean_logging):
    monkeypatch.setenv("DISABLE_DB_CONNECT", "1")


def test_exit_code_fatal_missing_config(temp_workdir: Path, write_csv, person_lines, capsys):
    src = write_csv(person_lines(3))
    code = cli_main(["import", str(src)])
    assert code == 1
    assert "ERROR config:" in capsys.readouterr().out


def test_exit_code_fatal_missing_input(write_config, capsys):
    code = cli_main(["import", "data/missing.csv"])
    assert code == 1
    assert "ERROR input file not found" in capsys.readouterr().out


def test_exit_code_all_success(write_config, write_csv, person_lines, capsys):
    src = write_csv(person_lines(25))
    assert cli_main(["import", str(src)]) == 0
    out = capsys.readouterr().out
    assert "SUMMARY file=people.csv total=25 processed=25 errors=0" in out


def test_exit_code_partial_failure(write_config, write_csv, person_lines, temp_workdir: Path, capsys):
    src = write_csv(person_lines(10, blank_email=(5,)))
    assert cli_main(["import", str(src)]) == 2
    out = capsys.readouterr().out
    assert "errors=1" in out
    assert list((temp_workdir / "logs").glob("errors-*.log"))


def test_exit_code_stream_fault(write_config, write_csv, capsys):
    src = write_csv("")
    src.write_bytes(b"1,Ada,,ada@example.com,,\n2,\xff\xfe,,b@example.com,,\n")
    assert cli_main(["import", str(src)]) == 1
    assert "state=failed" in capsys.readouterr().out


def test_exit_code_database_unavailable(write_config, write_csv, person_lines, monkeypatch, capsys):
    monkeypatch.delenv("DISABLE_DB_CONNECT")
    src = write_csv(person_lines(3))
    with patch("person_import.cli.__main__.db_connection", side_effect=DatabaseUnavailable("refused")):
        assert cli_main(["import", str(src)]) == 1
    assert "ERROR database connection failed: refused" in capsys.readouterr().out


def test_spool_file_removed_after_import(write_config, write_csv, person_lines, temp_workdir: Path, sample_config_yaml):
    spool = temp_workdir / "spool"
    write_config.write_text(sample_config_yaml + f"spool_directory: {spool}\n", encoding="utf-8")
    src = write_csv(person_lines(3))
    assert cli_main(["import", str(src)]) == 0
    assert spool.is_dir()
    assert list(spool.iterdir()) == []
    assert src.exists()
