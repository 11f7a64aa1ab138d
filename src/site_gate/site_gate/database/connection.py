from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import mysql.connector


@dataclass(frozen=True)
class DBConfig:
    host: str
    port: int
    user: str
    password: str
    database: str

    @classmethod
    def from_dict(cls, db_config: dict) -> "DBConfig":
        return cls(
            host=str(db_config.get("host") or "localhost"),
            port=int(db_config.get("port") or 3306),
            user=str(db_config.get("user") or "root"),
            password=str(db_config.get("password") or ""),
            database=str(db_config.get("database") or "site_gate_db"),
        )


def open_connection(config: DBConfig, *, with_database: bool = True):
    """A fresh connection with autocommit off; callers own commit/rollback."""
    kwargs = {
        "host": config.host,
        "port": config.port,
        "user": config.user,
        "password": config.password,
        "autocommit": False,
        "charset": "utf8mb4",
    }
    if with_database:
        kwargs["database"] = config.database
    return mysql.connector.connect(**kwargs)


class DatabaseConnection:
    """Process-wide connection factory.

    Each repository call opens a short-lived connection and runs as its own
    transaction, so gates never share a session.
    """

    _instance: Optional["DatabaseConnection"] = None

    def __init__(self, config: DBConfig):
        self._config = config

    @classmethod
    def get_instance(cls, config: DBConfig) -> "DatabaseConnection":
        if cls._instance is None or cls._instance.config != config:
            cls._instance = DatabaseConnection(config)
        return cls._instance

    @property
    def config(self) -> DBConfig:
        return self._config

    def connect(self, *, with_database: bool = True):
        return open_connection(self._config, with_database=with_database)
