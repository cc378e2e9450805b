import os
from typing import Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine

from backend.modules.common.db_adapter.registry import get_adapter_for_engine
from backend.modules.logger import error, info
from backend.modules.reports.report_config import ReportEngineConfig

_engine: Optional[Engine] = None


def _sqlite_pragmas(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_report_engine(database_url: str) -> Engine:
    """Build an engine for ``database_url``; sqlite files get their directory created."""
    if database_url.startswith("sqlite:///"):
        db_path = database_url[len("sqlite:///"):]
        db_dir = os.path.dirname(db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)
        engine = create_engine(database_url, connect_args={"check_same_thread": False})
        event.listen(engine, "connect", _sqlite_pragmas)
    else:
        engine = create_engine(database_url, pool_pre_ping=True)
    return engine


def get_engine(config: Optional[ReportEngineConfig] = None) -> Engine:
    """Return the shared engine, creating it on first use."""
    global _engine
    if _engine is None:
        config = config or ReportEngineConfig.from_env()
        try:
            _engine = create_report_engine(config.database_url)
            info(f"[dbconnect] Engine created for dialect {_engine.dialect.name}")
        except Exception as exc:
            error(f"[dbconnect] Error creating engine: {exc}")
            raise
    return _engine


def check_connection(engine: Engine) -> bool:
    try:
        with engine.connect() as conn:
            conn.execute(text(get_adapter_for_engine(engine).ping_sql()))
        return True
    except Exception as exc:
        error(f"[dbconnect] Connection check failed: {exc}")
        return False


def dispose_engine() -> None:
    global _engine
    if _engine is not None:
        _engine.dispose()
        _engine = None
