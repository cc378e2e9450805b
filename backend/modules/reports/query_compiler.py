"""
Compiles a ``QueryPlan`` into SQLAlchemy Core statements.

Every value in the plan becomes a bound parameter; every identifier is a
column object taken from the data source's table definition.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

from sqlalchemy import and_, func, select
from sqlalchemy.sql import Select
from sqlalchemy.sql.elements import ColumnElement

from backend.modules.common.db_adapter.base_adapter import BaseDbAdapter

from .data_sources import DataSource, FieldRef
from .query_plan import (
    And,
    Between,
    Contains,
    Eq,
    Gt,
    Gte,
    In,
    Lt,
    Lte,
    Ne,
    Predicate,
    Projection,
    QueryPlan,
)
from .report_models import AggregateFunction, SortDirection

_LIKE_ESCAPE = "\\"


@dataclass(frozen=True)
class CompiledQuery:
    select: Select
    count: Select


def escape_like(value: str) -> str:
    return (
        value.replace(_LIKE_ESCAPE, _LIKE_ESCAPE * 2)
        .replace("%", _LIKE_ESCAPE + "%")
        .replace("_", _LIKE_ESCAPE + "_")
    )


class PlanCompiler:
    def __init__(self, source: DataSource, adapter: BaseDbAdapter):
        self.source = source
        self.adapter = adapter
        self.table = source.table

    def field(self, ref: FieldRef) -> ColumnElement:
        column = self.table.c[ref.base]
        if ref.transform:
            return self.adapter.truncate_date(column, ref.transform)
        return column

    def projection(self, projection: Projection) -> ColumnElement:
        expr = self.field(projection.field)
        aggregate = projection.aggregate
        if aggregate is None:
            return expr.label(projection.label)
        if aggregate is AggregateFunction.SUM:
            expr = func.sum(self.adapter.to_numeric(expr))
        elif aggregate is AggregateFunction.AVG:
            expr = func.avg(self.adapter.to_numeric(expr))
        elif aggregate is AggregateFunction.COUNT:
            expr = func.count(expr)
        elif aggregate is AggregateFunction.MIN:
            expr = func.min(expr)
        elif aggregate is AggregateFunction.MAX:
            expr = func.max(expr)
        else:
            raise ValueError(f"Unsupported aggregate '{aggregate}'")
        return expr.label(projection.label)

    def predicate(self, predicate: Predicate) -> ColumnElement:
        if isinstance(predicate, And):
            return and_(*[self.predicate(p) for p in predicate.predicates])
        expr = self.field(predicate.field)
        if isinstance(predicate, Eq):
            return expr == predicate.value
        if isinstance(predicate, Ne):
            return expr != predicate.value
        if isinstance(predicate, Gt):
            return expr > predicate.value
        if isinstance(predicate, Gte):
            return expr >= predicate.value
        if isinstance(predicate, Lt):
            return expr < predicate.value
        if isinstance(predicate, Lte):
            return expr <= predicate.value
        if isinstance(predicate, Contains):
            return expr.ilike(f"%{escape_like(predicate.value)}%", escape=_LIKE_ESCAPE)
        if isinstance(predicate, In):
            return expr.in_(list(predicate.values))
        if isinstance(predicate, Between):
            return expr.between(predicate.low, predicate.high)
        raise TypeError(f"Unsupported predicate {type(predicate).__name__}")

    def compile(self, plan: QueryPlan) -> CompiledQuery:
        labelled: Dict[str, ColumnElement] = {}
        for projection in plan.projections:
            labelled[projection.label] = self.projection(projection)

        where = self.predicate(plan.where)
        base = select(*labelled.values()).select_from(self.table).where(where)
        if plan.group_by:
            base = base.group_by(*[self.field(ref) for ref in plan.group_by])

        ordered = base
        for key in plan.sort_by:
            target = labelled[key.label] if key.label else self.field(key.field)
            ordered = ordered.order_by(target.desc() if key.direction is SortDirection.DESC else target.asc())

        if plan.is_aggregate:
            count = select(func.count()).select_from(base.subquery("report_rows"))
        else:
            count = select(func.count()).select_from(self.table).where(where)
        return CompiledQuery(select=ordered, count=count)


def compile_plan(plan: QueryPlan, source: DataSource, adapter: BaseDbAdapter) -> CompiledQuery:
    return PlanCompiler(source, adapter).compile(plan)
