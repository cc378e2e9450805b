"""
Base database adapter contract for report query compilation.

Adapters supply the dialect-specific pieces of a report query that SQLAlchemy
Core does not render portably: derived date expressions and numeric casts.
"""
from __future__ import annotations

from sqlalchemy import Date, Numeric, cast
from sqlalchemy.sql.elements import ColumnElement


class BaseDbAdapter:
    db_type: str = "GENERIC"

    def ping_sql(self) -> str:
        return "SELECT 1"

    def truncate_date(self, expr: ColumnElement, transform: str) -> ColumnElement:
        if transform == "date":
            return self.to_date(expr)
        if transform == "month":
            return self.to_month(expr)
        raise ValueError(f"Unsupported date transform '{transform}'")

    def to_date(self, expr: ColumnElement) -> ColumnElement:
        return cast(expr, Date)

    def to_month(self, expr: ColumnElement) -> ColumnElement:
        raise NotImplementedError

    def to_numeric(self, expr: ColumnElement) -> ColumnElement:
        return cast(expr, Numeric(asdecimal=False))
