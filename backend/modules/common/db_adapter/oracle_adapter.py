"""Oracle adapter implementation."""
from __future__ import annotations

from sqlalchemy import Date, func, literal_column
from sqlalchemy.sql.elements import ColumnElement

from .base_adapter import BaseDbAdapter


class OracleAdapter(BaseDbAdapter):
    db_type = "ORACLE"

    def ping_sql(self) -> str:
        return "SELECT 1 FROM DUAL"

    def to_date(self, expr: ColumnElement) -> ColumnElement:
        return func.trunc(expr, type_=Date)

    def to_month(self, expr: ColumnElement) -> ColumnElement:
        return func.trunc(expr, literal_column("'MM'"), type_=Date)
