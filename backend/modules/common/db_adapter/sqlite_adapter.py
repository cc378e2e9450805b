"""SQLite adapter implementation."""
from __future__ import annotations

from sqlalchemy import Date, func, literal_column
from sqlalchemy.sql.elements import ColumnElement

from .base_adapter import BaseDbAdapter


class SqliteAdapter(BaseDbAdapter):
    db_type = "SQLITE"

    # SQLite has no DATE type; date() yields 'YYYY-MM-DD' text which the Date
    # result processor parses back into a date.
    def to_date(self, expr: ColumnElement) -> ColumnElement:
        return func.date(expr, type_=Date)

    def to_month(self, expr: ColumnElement) -> ColumnElement:
        return func.date(expr, literal_column("'start of month'"), type_=Date)
