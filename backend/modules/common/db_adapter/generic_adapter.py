"""Generic adapter implementation for unknown database types."""
from __future__ import annotations

from sqlalchemy import Date, cast, func, literal_column
from sqlalchemy.sql.elements import ColumnElement

from .base_adapter import BaseDbAdapter


class GenericAdapter(BaseDbAdapter):
    db_type = "GENERIC"

    def to_month(self, expr: ColumnElement) -> ColumnElement:
        # ANSI-ish fallback; most engines that reach here speak date_trunc
        return cast(func.date_trunc(literal_column("'month'"), expr), Date)
