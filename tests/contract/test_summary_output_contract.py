from __future__ import annotations

import json
import re
from pathlib import Path

import pytest

from person_import.cli import main as cli_main

SUMMARY_RE = re.compile(
    r"^SUMMARY file=(?P<file>\S+) total=(?P<total>\d+) processed=(?P<processed>\d+) "
    r"errors=(?P<errors>\d+) batches=(?P<batches>\d+) elapsed_sec=[0-9.]+ "
    r"throughput_rps=\d+ size_mb=\d+\.\d state=(?P<state>done|failed)$"
)


@pytest.fixture(autouse=True)
def dry_run(monkeypatch, clean_logging):
    monkeypatch.setenv("DISABLE_DB_CONNECT", "1")


def _summary_lines(out: str) -> list[re.Match[str]]:
    return [m for m in (SUMMARY_RE.match(line) for line in out.splitlines()) if m]


def test_single_summary_line(write_config, write_csv, person_lines, capsys):
    src = write_csv(person_lines(2500))
    cli_main(["import", str(src)])
    matches = _summary_lines(capsys.readouterr().out)
    assert len(matches) == 1
    m = matches[0]
    assert m["file"] == "people.csv"
    assert (m["total"], m["processed"], m["errors"]) == ("2500", "2500", "0")
    assert m["batches"] == "3"
    assert m["state"] == "done"


def test_json_response(write_config, write_csv, person_lines, capsys):
    src = write_csv(person_lines(10, blank_email=(5,)))
    cli_main(["import", str(src), "--json"])
    last = capsys.readouterr().out.strip().splitlines()[-1]
    resp = json.loads(last)
    assert set(resp) == {
        "success",
        "totalRecords",
        "processedRecords",
        "errors",
        "processingTime",
        "avgRecordsPerSecond",
        "filename",
        "fileSize",
    }
    assert resp["success"] is True
    assert (resp["totalRecords"], resp["processedRecords"], resp["errors"]) == (10, 9, 1)
    assert re.fullmatch(r"\d+\.\ds", resp["processingTime"])
    assert re.fullmatch(r"\d+\.\d MB", resp["fileSize"])


def test_error_log_lines_fixed_schema(write_config, write_csv, person_lines, temp_workdir: Path):
    src = write_csv(person_lines(10, blank_email=(2, 7)) + ["x,Bad,,bad@example.com,,\n"])
    cli_main(["import", str(src)])
    (log,) = list((temp_workdir / "logs").glob("errors-*.log"))
    entries = [json.loads(line) for line in log.read_text(encoding="utf-8").splitlines()]
    assert [e["row"] for e in entries] == [2, 7, 11]
    assert [e["error_type"] for e in entries] == ["MISSING_REQUIRED_FIELD", "MISSING_REQUIRED_FIELD", "INVALID_ID"]
    for e in entries:
        assert set(e) == {"timestamp", "file", "row", "error_type", "message"}
