"""
Report Query Executor

Runs a compiled query plan against the operational database and returns
plain row dictionaries keyed by column label, plus the total row count of
the unpaginated result.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from backend.modules.common.db_adapter.registry import get_adapter_for_engine
from backend.modules.logger import debug, error
from backend.modules.reports.data_sources import get_data_source
from backend.modules.reports.query_compiler import compile_plan
from backend.modules.reports.query_plan import QueryPlan
from backend.modules.reports.report_errors import AggregationTypeError, ReportServiceError
from backend.modules.reports.report_models import AggregateFunction, ColumnType


@dataclass
class QueryResult:
    columns: List[str]
    rows: List[Dict[str, Any]] = field(default_factory=list)
    total_row_count: int = 0


class ReportQueryExecutor:
    """Executes query plans against a SQLAlchemy engine."""

    def __init__(self, engine: Engine, adapter=None):
        self.engine = engine
        self.adapter = adapter or get_adapter_for_engine(engine)

    def execute(self, plan: QueryPlan, limit: Optional[int] = None, offset: int = 0) -> QueryResult:
        if limit is not None and limit < 0:
            raise ReportServiceError("limit must not be negative", code="INVALID_PAGINATION")
        if offset < 0:
            raise ReportServiceError("offset must not be negative", code="INVALID_PAGINATION")

        source = get_data_source(plan.data_source)
        compiled = compile_plan(plan, source, self.adapter)
        statement = compiled.select
        if limit is not None:
            statement = statement.limit(limit)
        if offset:
            statement = statement.offset(offset)

        debug(f"[ReportQueryExecutor] Executing plan on {plan.data_source} (limit={limit}, offset={offset})")
        try:
            with self.engine.connect() as conn:
                raw_rows = [dict(row._mapping) for row in conn.execute(statement)]
                total = conn.execute(compiled.count).scalar_one()
        except SQLAlchemyError as exc:
            error(f"[ReportQueryExecutor] Query on {plan.data_source} failed: {exc}", exc_info=True)
            raise ReportServiceError(
                "Failed to execute report query",
                status_code=500,
                code="REPORT_QUERY_FAILED",
                details={"dataSource": plan.data_source},
            ) from exc

        rows = [self._normalize_row(plan, row) for row in raw_rows]
        return QueryResult(columns=list(plan.labels), rows=rows, total_row_count=int(total))

    def _normalize_row(self, plan: QueryPlan, row: Dict[str, Any]) -> Dict[str, Any]:
        normalized = {}
        for projection in plan.projections:
            value = row.get(projection.label)
            aggregate = projection.aggregate
            if aggregate is AggregateFunction.COUNT:
                value = int(value or 0)
            elif aggregate is not None and projection.field.type is ColumnType.NUMBER:
                value = _numeric(value, projection.field.name, aggregate.value)
            elif projection.field.type is ColumnType.NUMBER:
                value = _plain_number(value)
            elif projection.field.type is ColumnType.DATE:
                value = _as_date(value)
            normalized[projection.label] = value
        return normalized


def _plain_number(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    return value


def _numeric(value: Any, field_name: str, aggregate: str) -> Any:
    """Aggregates over number fields must come back as finite numbers or null."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise AggregationTypeError(field_name, aggregate)
    if isinstance(value, (Decimal, str)):
        try:
            value = float(value)
        except (ValueError, ArithmeticError):
            raise AggregationTypeError(field_name, aggregate)
    if not isinstance(value, (int, float)):
        raise AggregationTypeError(field_name, aggregate)
    if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
        raise AggregationTypeError(field_name, aggregate)
    return value


def _as_date(value: Any) -> Any:
    # sqlite hands back plain strings for some date expressions
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return value
        return parsed.date() if len(value) == 10 else parsed
    return value
