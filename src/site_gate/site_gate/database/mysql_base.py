from __future__ import annotations

from contextlib import contextmanager
from datetime import time, timedelta
from typing import Any, Dict, List, Optional, Sequence

import mysql.connector
from mysql.connector import errorcode

from ..core.exceptions import DuplicateRecordError
from .connection import DatabaseConnection


@contextmanager
def db_cursor(conn_factory: DatabaseConnection, *, dictionary: bool = True):
    """One connection, one transaction: commit on success, rollback on error.

    Unique-key violations surface as DuplicateRecordError carrying the key
    name so services can translate a lost race into the matching rule.
    """
    conn = conn_factory.connect()
    try:
        cur = conn.cursor(dictionary=dictionary)
        try:
            yield conn, cur
            conn.commit()
        finally:
            cur.close()
    except mysql.connector.IntegrityError as e:
        conn.rollback()
        if e.errno == errorcode.ER_DUP_ENTRY:
            raise DuplicateRecordError(str(e.msg), details={"key": _duplicate_key_name(e.msg)}) from e
        raise
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def _duplicate_key_name(msg: str) -> str:
    # "Duplicate entry 'x' for key 'visits.uq_open_visit'"
    marker = "for key '"
    if marker not in (msg or ""):
        return ""
    return msg.split(marker, 1)[1].rstrip("'").split(".")[-1]


def fetchone(cur) -> Optional[Dict[str, Any]]:
    row = cur.fetchone()
    return row if row else None


def fetchall(cur) -> List[Dict[str, Any]]:
    rows = cur.fetchall()
    return list(rows or [])


def in_clause(values: Sequence[Any]) -> str:
    return ",".join(["%s"] * len(values))


def normalize_mysql_time(value: Any) -> Optional[time]:
    """Coerce a TIME column to `datetime.time`.

    The pure-Python connector hands TIME back as a timedelta since midnight;
    rows read through other paths may already be `time` or "HH:MM[:SS]".
    """
    if value is None or isinstance(value, time):
        return value

    if isinstance(value, timedelta):
        secs = int(value.total_seconds()) % 86400
        return time(secs // 3600, secs % 3600 // 60, secs % 60)

    if isinstance(value, str):
        h, sep, rest = value.strip().partition(":")
        if not sep:
            raise ValueError(f"Invalid time string: {value!r}")
        m, _, s = rest.partition(":")
        return time(int(h), int(m), int(s or 0))

    raise TypeError(f"Unsupported MySQL TIME value type: {type(value)!r}")
