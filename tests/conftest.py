# Shared pytest fixtures
from __future__ import annotations

import io
import tempfile
from collections.abc import Callable
from pathlib import Path

import pytest

from person_import.csvsource.source import CsvSource
from person_import.logging.init import reset_logging


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """table: people
batch_size: 1000
encoding: utf-8
logs_directory: ./logs
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


def _person_line(i: int, email: str | None = None) -> str:
    email = f"user{i}@example.com" if email is None else email
    return f"{i},First{i},Last{i},{email},,Engineer\n"


@pytest.fixture()
def person_lines() -> Callable[..., list[str]]:
    """person_lines(n, blank_email=(5,)) -> n CSV lines with ids 1..n."""

    def _lines(n: int, blank_email: tuple[int, ...] = ()) -> list[str]:
        return [_person_line(i, "" if i in blank_email else None) for i in range(1, n + 1)]

    return _lines


@pytest.fixture()
def write_csv(temp_workdir: Path) -> Callable[..., Path]:
    """Write a headerless person CSV into ./data and return its path."""

    def _write(lines: list[str] | str, name: str = "people.csv") -> Path:
        text = lines if isinstance(lines, str) else "".join(lines)
        path = temp_workdir / "data" / name
        path.write_text(text, encoding="utf-8", newline="")
        return path

    return _write


@pytest.fixture()
def make_source() -> Callable[[str], CsvSource]:
    def _make(text: str, name: str = "people.csv") -> CsvSource:
        return CsvSource(io.StringIO(text, newline=""), name=name)

    return _make


@pytest.fixture()
def clean_logging():
    reset_logging()
    yield
    reset_logging()
