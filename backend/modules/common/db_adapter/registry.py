"""Adapter registry for database-specific report expressions."""
from __future__ import annotations
from typing import Dict

from .base_adapter import BaseDbAdapter
from .generic_adapter import GenericAdapter
from .mssql_adapter import SqlServerAdapter
from .mysql_adapter import MysqlAdapter
from .oracle_adapter import OracleAdapter
from .postgres_adapter import PostgresAdapter
from .sqlite_adapter import SqliteAdapter


_ADAPTERS: Dict[str, BaseDbAdapter] = {
    "ORACLE": OracleAdapter(),
    "POSTGRESQL": PostgresAdapter(),
    "MYSQL": MysqlAdapter(),
    "MSSQL": SqlServerAdapter(),
    "SQL_SERVER": SqlServerAdapter(),
    "SQLITE": SqliteAdapter(),
    "GENERIC": GenericAdapter(),
}

# SQLAlchemy dialect names -> adapter keys
_DIALECTS = {
    "postgresql": "POSTGRESQL",
    "oracle": "ORACLE",
    "mysql": "MYSQL",
    "mariadb": "MYSQL",
    "mssql": "MSSQL",
    "sqlite": "SQLITE",
}


def get_db_adapter(db_type: str) -> BaseDbAdapter:
    db_key = (db_type or "GENERIC").upper()
    return _ADAPTERS.get(db_key, GenericAdapter())


def detect_db_type(engine) -> str:
    """Map an SQLAlchemy engine (or connection) to an adapter key."""
    dialect_name = getattr(getattr(engine, "dialect", None), "name", "") or ""
    return _DIALECTS.get(dialect_name.lower(), "GENERIC")


def get_adapter_for_engine(engine) -> BaseDbAdapter:
    return get_db_adapter(detect_db_type(engine))
