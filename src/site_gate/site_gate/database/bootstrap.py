"""Schema and demo-data bootstrap used by `create_app` and the scripts."""

from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from werkzeug.security import generate_password_hash

from .connection import DBConfig, open_connection

logger = logging.getLogger(__name__)

_CREATE_DB = re.compile(r"(?im)^\s*CREATE\s+DATABASE\b.*?;\s*$")
_USE_DB = re.compile(r"(?im)^\s*USE\b.*?;\s*$")


@contextmanager
def _session(target: DBConfig, *, with_database: bool = True, dictionary: bool = False):
    conn = open_connection(target, with_database=with_database)
    try:
        cur = conn.cursor(dictionary=dictionary)
        yield cur
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def _strip_create_db_and_use(sql: str) -> str:
    # The target database comes from DB_CONFIG, not from the file.
    return _USE_DB.sub("", _CREATE_DB.sub("", sql))


def _iter_sql_statements(sql: str) -> Iterator[str]:
    """Split on ';' outside quoted literals."""
    quote = None
    start = 0
    i = 0
    while i < len(sql):
        ch = sql[i]
        if ch == "\\" and quote:
            i += 2
            continue
        if quote:
            if ch == quote:
                quote = None
        elif ch in "'\"":
            quote = ch
        elif ch == ";":
            stmt = sql[start:i].strip()
            if stmt:
                yield stmt
            start = i + 1
        i += 1

    tail = sql[start:].strip()
    if tail:
        yield tail


def ensure_database_exists(db_config: dict) -> None:
    target = DBConfig.from_dict(db_config)
    with _session(target, with_database=False) as cur:
        cur.execute(
            f"CREATE DATABASE IF NOT EXISTS `{target.database}` CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci"
        )


def _run_sql_file(target: DBConfig, path: Path) -> int:
    statements = list(_iter_sql_statements(_strip_create_db_and_use(Path(path).read_text(encoding="utf-8"))))
    with _session(target) as cur:
        for stmt in statements:
            cur.execute(stmt)
    return len(statements)


def apply_schema(db_config: dict, *, schema_path: Path) -> None:
    target = DBConfig.from_dict(db_config)
    ensure_database_exists(db_config)
    count = _run_sql_file(target, schema_path)
    logger.info("schema applied to %s@%s/%s (%s statements)", target.user, target.host, target.database, count)


def apply_seed_sql(db_config: dict, *, seed_path: Path) -> None:
    count = _run_sql_file(DBConfig.from_dict(db_config), seed_path)
    logger.info("seed applied (%s statements)", count)


def ensure_guard_account(db_config: dict, *, username: str, password: str, full_name: str, site_code: str) -> None:
    """Create or reset a guard login bound to a site."""
    with _session(DBConfig.from_dict(db_config), dictionary=True) as cur:
        cur.execute("SELECT site_id FROM sites WHERE site_code=%s", (site_code,))
        row = cur.fetchone()
        if not row:
            raise RuntimeError(f"Missing sites row for site_code={site_code}")

        cur.execute(
            "INSERT INTO guards (full_name, username, password_hash, site_id) VALUES (%s, %s, %s, %s) "
            "ON DUPLICATE KEY UPDATE full_name=VALUES(full_name), password_hash=VALUES(password_hash), "
            "site_id=VALUES(site_id), is_active=1",
            (full_name, username, generate_password_hash(password), int(row["site_id"])),
        )
    logger.info("guard account ready username=%s site=%s", username, site_code)


def list_tables(db_config: dict) -> list[str]:
    with _session(DBConfig.from_dict(db_config)) as cur:
        cur.execute("SHOW TABLES")
        return [row[0] for row in cur.fetchall()]
