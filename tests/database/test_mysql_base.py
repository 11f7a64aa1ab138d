from __future__ import annotations

from datetime import time, timedelta

import mysql.connector
import pytest
from mysql.connector import errorcode

from src.site_gate.site_gate.core.exceptions import DuplicateRecordError
from src.site_gate.site_gate.database.bootstrap import _iter_sql_statements, _strip_create_db_and_use
from src.site_gate.site_gate.database.mysql_base import _duplicate_key_name, db_cursor, normalize_mysql_time


class FakeCursor:
    def __init__(self):
        self.closed = False

    def close(self):
        self.closed = True


class FakeConn:
    def __init__(self):
        self.committed = self.rolled_back = self.closed = False
        self.cur = FakeCursor()

    def cursor(self, dictionary=True):
        return self.cur

    def commit(self):
        self.committed = True

    def rollback(self):
        self.rolled_back = True

    def close(self):
        self.closed = True


class FakeFactory:
    def __init__(self):
        self.conn = FakeConn()

    def connect(self):
        return self.conn


def test_db_cursor_commits_on_success():
    factory = FakeFactory()
    with db_cursor(factory) as (conn, cur):
        assert cur is factory.conn.cur

    assert factory.conn.committed and factory.conn.closed and factory.conn.cur.closed


def test_duplicate_entry_becomes_domain_error_with_key():
    factory = FakeFactory()
    msg = "Duplicate entry '3-1' for key 'visits.uq_open_visit'"

    with pytest.raises(DuplicateRecordError) as ei:
        with db_cursor(factory):
            raise mysql.connector.IntegrityError(msg=msg, errno=errorcode.ER_DUP_ENTRY)

    assert ei.value.details["key"] == "uq_open_visit"
    assert factory.conn.rolled_back and not factory.conn.committed


def test_other_errors_roll_back_and_propagate():
    factory = FakeFactory()
    with pytest.raises(RuntimeError):
        with db_cursor(factory):
            raise RuntimeError("boom")
    assert factory.conn.rolled_back and factory.conn.closed


@pytest.mark.parametrize(
    "msg,key",
    [
        ("Duplicate entry 'C7-1' for key 'uq_open_card'", "uq_open_card"),
        ("Duplicate entry 'x' for key 'visits.uq_open_visit'", "uq_open_visit"),
        ("something else", ""),
    ],
)
def test_duplicate_key_name(msg, key):
    assert _duplicate_key_name(msg) == key


@pytest.mark.parametrize(
    "value,expected",
    [
        (None, None),
        (time(8, 30), time(8, 30)),
        (timedelta(hours=9, minutes=10, seconds=5), time(9, 10, 5)),
        ("08:30", time(8, 30)),
        ("17:45:30", time(17, 45, 30)),
    ],
)
def test_normalize_mysql_time(value, expected):
    assert normalize_mysql_time(value) == expected


def test_normalize_mysql_time_rejects_garbage():
    with pytest.raises(ValueError):
        normalize_mysql_time("0830")
    with pytest.raises(TypeError):
        normalize_mysql_time(830)


def test_sql_splitter_respects_quotes():
    sql = "CREATE DATABASE x;\nUSE x;\nINSERT INTO t VALUES ('a;b');\nSELECT 1"
    assert list(_iter_sql_statements(_strip_create_db_and_use(sql))) == ["INSERT INTO t VALUES ('a;b')", "SELECT 1"]
