"""SQL Server adapter implementation."""
from __future__ import annotations

from sqlalchemy import Date, func
from sqlalchemy.sql.elements import ColumnElement

from .base_adapter import BaseDbAdapter


class SqlServerAdapter(BaseDbAdapter):
    db_type = "MSSQL"

    def to_month(self, expr: ColumnElement) -> ColumnElement:
        return func.datefromparts(func.year(expr), func.month(expr), 1, type_=Date)
