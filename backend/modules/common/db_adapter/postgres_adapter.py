"""PostgreSQL adapter implementation."""
from __future__ import annotations

from sqlalchemy import Date, cast, func, literal_column
from sqlalchemy.sql.elements import ColumnElement

from .base_adapter import BaseDbAdapter


class PostgresAdapter(BaseDbAdapter):
    db_type = "POSTGRESQL"

    def to_date(self, expr: ColumnElement) -> ColumnElement:
        return cast(expr, Date)

    def to_month(self, expr: ColumnElement) -> ColumnElement:
        return cast(func.date_trunc(literal_column("'month'"), expr), Date)
