"""MySQL adapter implementation."""
from __future__ import annotations

from sqlalchemy import Date, func, literal_column
from sqlalchemy.sql.elements import ColumnElement

from .base_adapter import BaseDbAdapter


class MysqlAdapter(BaseDbAdapter):
    db_type = "MYSQL"

    def to_date(self, expr: ColumnElement) -> ColumnElement:
        return func.date(expr, type_=Date)

    def to_month(self, expr: ColumnElement) -> ColumnElement:
        return func.str_to_date(func.date_format(expr, literal_column("'%Y-%m-01'")), literal_column("'%Y-%m-%d'"), type_=Date)
