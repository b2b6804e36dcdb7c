from __future__ import annotations

import pytest

from person_import.db.batch_insert import BatchInsertError, InsertResult, batch_insert, check_identifier


class DummyCursor:
    def __init__(self) -> None:
        self.queries: list[str] = []
        self.rows: list[list] = []
        self.returned: list[tuple] | None = None


# execute_values を差し替えて psycopg2 の実接続なしでロジックを検証
@pytest.fixture(autouse=True)
def patch_execute_values(monkeypatch):
    import person_import.db.batch_insert as bi

    def fake_execute_values(cursor, sql, rows, page_size=1000, fetch=False):
        cursor.queries.append(sql)
        cursor.rows.extend(rows)
        if fetch:
            return cursor.returned if cursor.returned is not None else [(r[0],) for r in rows]
        return None

    monkeypatch.setattr(bi, "execute_values", fake_execute_values)
    return fake_execute_values


def test_batch_insert_basic():
    cur = DummyCursor()
    res = batch_insert(cur, table="people", columns=["id", "firstname"], rows=[[1, "Ada"], [2, "Alan"]])
    assert isinstance(res, InsertResult)
    assert res.inserted_rows == 2
    assert res.returned_values is None
    assert cur.queries == ['INSERT INTO people ("id","firstname") VALUES %s']


def test_batch_insert_skip_conflicts_and_returning():
    cur = DummyCursor()
    cur.returned = [(1,)]  # id=2 は既存キーと衝突して返らない
    res = batch_insert(
        cur, table="people", columns=["id"], rows=[[1], [2]], returning="id", skip_conflicts=True
    )
    assert cur.queries[0].endswith('VALUES %s ON CONFLICT DO NOTHING RETURNING "id"')
    assert res.inserted_rows == 1
    assert res.returned_values == [(1,)]


def test_batch_insert_empty_rows():
    cur = DummyCursor()
    calls = []
    res = batch_insert(cur, table="people", columns=["id"], rows=[], metrics_callback=calls.append)
    assert res.inserted_rows == 0
    assert cur.queries == []
    assert calls == []


def test_batch_insert_wraps_driver_errors(monkeypatch):
    import person_import.db.batch_insert as bi

    def boom(*args, **kwargs):
        raise RuntimeError("server closed the connection unexpectedly")

    monkeypatch.setattr(bi, "execute_values", boom)
    with pytest.raises(BatchInsertError, match="server closed"):
        batch_insert(DummyCursor(), table="people", columns=["id"], rows=[[1]])


def test_batch_insert_metrics_callback_called_on_failure(monkeypatch):
    import person_import.db.batch_insert as bi

    def boom(*args, **kwargs):
        raise RuntimeError("deadlock detected")

    monkeypatch.setattr(bi, "execute_values", boom)
    captured = []
    with pytest.raises(BatchInsertError):
        batch_insert(DummyCursor(), table="people", columns=["id"], rows=[[1], [2]], metrics_callback=captured.append)
    assert len(captured) == 1
    assert captured[0].batch_size == 2
    assert captured[0].elapsed_seconds >= 0


def test_batch_insert_with_metrics_callback():
    captured = []
    batch_insert(DummyCursor(), table="people", columns=["id"], rows=[[1], [2], [3]], metrics_callback=captured.append)
    assert len(captured) == 1
    m = captured[0]
    assert m.batch_size == 3
    assert m.end_time >= m.start_time


@pytest.mark.parametrize("name", ["people", "public.people", "people_2024"])
def test_check_identifier_accepts(name):
    assert check_identifier(name) == name


@pytest.mark.parametrize("name", ["", "people;drop", 'pe"ople', "a..b", "a b"])
def test_check_identifier_rejects(name):
    with pytest.raises(BatchInsertError):
        check_identifier(name)
