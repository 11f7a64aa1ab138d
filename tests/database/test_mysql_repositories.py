from __future__ import annotations

from datetime import date, datetime, time

import pytest

from src.site_gate.site_gate.core.exceptions import ExitDeniedError, NotOnSiteError
from src.site_gate.site_gate.custody.model import BorrowFilter
from src.site_gate.site_gate.custody.mysql_custody_repository import MySQLBorrowRepository
from src.site_gate.site_gate.visits.mysql_visit_repository import MySQLVisitRepository


class ScriptedCursor:
    """Answers each SELECT with the next scripted result set."""

    def __init__(self, results=(), rowcount=1, lastrowid=None):
        self.results = list(results)
        self.rowcount = rowcount
        self.lastrowid = lastrowid
        self.executed: list[tuple[str, tuple]] = []
        self._last: list = []

    def execute(self, sql, params=()):
        self.executed.append((" ".join(sql.split()), params))
        if sql.lstrip().upper().startswith("SELECT"):
            self._last = self.results.pop(0)

    def fetchone(self):
        return self._last[0] if self._last else None

    def fetchall(self):
        return self._last

    def close(self):
        pass


class ScriptedConn:
    def __init__(self, cur):
        self.cur = cur
        self.committed = self.rolled_back = False

    def cursor(self, dictionary=True):
        return self.cur

    def commit(self):
        self.committed = True

    def rollback(self):
        self.rolled_back = True

    def close(self):
        pass


class ScriptedFactory:
    def __init__(self, cur):
        self.conn = ScriptedConn(cur)

    def connect(self):
        return self.conn


def test_close_locks_visit_and_rejects_unremarked_borrow():
    cur = ScriptedCursor(results=[[{"status": "ON_SITE"}], [{"record_id": 5, "item_code": "H1"}, {"record_id": 9, "item_code": "LATE"}]])
    factory = ScriptedFactory(cur)

    with pytest.raises(ExitDeniedError) as ei:
        MySQLVisitRepository(factory).close(visit_id=3, check_out_time=datetime(2025, 3, 3, 17), exit_remarks={5: "lost"})

    assert cur.executed[0][0].endswith("FOR UPDATE")
    assert [v.item_code for v in ei.value.violations] == ["LATE"]
    assert not any(sql.startswith("UPDATE") for sql, _ in cur.executed)
    assert factory.conn.rolled_back and not factory.conn.committed


def test_close_updates_when_every_open_record_has_a_remark():
    cur = ScriptedCursor(results=[[{"status": "ON_SITE"}], [{"record_id": 5, "item_code": "H1"}]])
    factory = ScriptedFactory(cur)

    assert MySQLVisitRepository(factory).close(visit_id=3, check_out_time=datetime(2025, 3, 3, 17), exit_remarks={5: "lost"})
    assert [sql.split()[0] for sql, _ in cur.executed] == ["SELECT", "SELECT", "UPDATE", "UPDATE"]
    assert factory.conn.committed


def test_close_of_left_visit_returns_false():
    cur = ScriptedCursor(results=[[{"status": "LEFT"}]])

    assert not MySQLVisitRepository(ScriptedFactory(cur)).close(visit_id=3, check_out_time=datetime(2025, 3, 3), exit_remarks={})
    assert len(cur.executed) == 1


def test_borrow_insert_matching_no_open_visit_raises():
    cur = ScriptedCursor(rowcount=0)
    factory = ScriptedFactory(cur)

    with pytest.raises(NotOnSiteError):
        MySQLBorrowRepository(factory).create(
            worker_pk=1, visit_id=3, category_id=1, item_code="H1", borrow_date=date(2025, 3, 3), borrow_time=time(9),
        )

    sql, params = cur.executed[0]
    assert sql.startswith("INSERT INTO borrow_records") and "status=%s" in sql
    assert params[-3:] == (3, 1, "ON_SITE")
    assert factory.conn.rolled_back


def test_list_records_by_day_has_no_limit():
    cur = ScriptedCursor(results=[[]])

    MySQLBorrowRepository(ScriptedFactory(cur)).list_records(BorrowFilter(worker_pk=1, on_day=date(2025, 3, 2), limit=None))

    sql, params = cur.executed[0]
    assert "br.borrow_date=%s OR br.return_date=%s" in sql
    assert "LIMIT" not in sql
    assert params == (1, date(2025, 3, 2), date(2025, 3, 2))
