"""
Structured query plans.

A ``QueryPlan`` describes what to select, filter, group and sort as typed
data. It never contains query text: identifiers are catalog-checked field
names and values travel separately so the data-access layer can bind them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Sequence, Tuple, Union

from .data_sources import DataSource, FieldRef, get_data_source
from .filter_resolver import ResolvedFilter
from .report_models import (
    AggregateFunction,
    FilterOperator,
    ReportTemplate,
    SortDirection,
    validate_template,
)


@dataclass(frozen=True)
class Eq:
    field: FieldRef
    value: Any


@dataclass(frozen=True)
class Ne:
    field: FieldRef
    value: Any


@dataclass(frozen=True)
class Gt:
    field: FieldRef
    value: Any


@dataclass(frozen=True)
class Gte:
    field: FieldRef
    value: Any


@dataclass(frozen=True)
class Lt:
    field: FieldRef
    value: Any


@dataclass(frozen=True)
class Lte:
    field: FieldRef
    value: Any


@dataclass(frozen=True)
class Contains:
    """Case-insensitive substring match."""

    field: FieldRef
    value: str


@dataclass(frozen=True)
class In:
    field: FieldRef
    values: Tuple[Any, ...]


@dataclass(frozen=True)
class Between:
    """Inclusive range."""

    field: FieldRef
    low: Any
    high: Any


@dataclass(frozen=True)
class And:
    predicates: Tuple["Predicate", ...]


Predicate = Union[Eq, Ne, Gt, Gte, Lt, Lte, Contains, In, Between, And]

_COMPARISONS = {
    FilterOperator.EQ: Eq,
    FilterOperator.NE: Ne,
    FilterOperator.GT: Gt,
    FilterOperator.GTE: Gte,
    FilterOperator.LT: Lt,
    FilterOperator.LTE: Lte,
    FilterOperator.CONTAINS: Contains,
}


@dataclass(frozen=True)
class Projection:
    field: FieldRef
    label: str
    aggregate: Optional[AggregateFunction] = None


@dataclass(frozen=True)
class SortKey:
    direction: SortDirection
    label: Optional[str] = None
    field: Optional[FieldRef] = None


@dataclass(frozen=True)
class QueryPlan:
    data_source: str
    projections: Tuple[Projection, ...]
    where: And
    group_by: Tuple[FieldRef, ...] = field(default_factory=tuple)
    sort_by: Tuple[SortKey, ...] = field(default_factory=tuple)

    @property
    def is_aggregate(self) -> bool:
        return bool(self.group_by) or any(p.aggregate for p in self.projections)

    @property
    def labels(self) -> Tuple[str, ...]:
        return tuple(p.label for p in self.projections)


def build_predicate(resolved: ResolvedFilter) -> Predicate:
    operator = resolved.operator
    if operator is FilterOperator.BETWEEN:
        low, high = resolved.value
        return Between(resolved.field_ref, low, high)
    if operator is FilterOperator.IN:
        return In(resolved.field_ref, tuple(resolved.value))
    return _COMPARISONS[operator](resolved.field_ref, resolved.value)


def build_query_plan(
    template: ReportTemplate,
    resolved_filters: Sequence[ResolvedFilter],
    tenant_id: str,
    source: Optional[DataSource] = None,
) -> QueryPlan:
    source = source or get_data_source(template.data_source)
    validate_template(template, source)

    projections = [
        Projection(source.resolve_field(col.field), col.label, col.aggregate)
        for col in template.columns
    ]
    plain_fields = {p.field.name for p in projections if not p.aggregate}
    for group_field in template.group_by:
        if group_field not in plain_fields:
            projections.append(Projection(source.resolve_field(group_field), group_field))

    tenant_ref = FieldRef(name=source.tenant_field, base=source.tenant_field, type=source.field_type(source.tenant_field))
    predicates = [Eq(tenant_ref, tenant_id)]
    predicates.extend(build_predicate(item) for item in resolved_filters)

    sort_keys = []
    for sort in template.sort_by:
        target = _match_projection(projections, sort.field)
        if target is not None:
            sort_keys.append(SortKey(direction=sort.direction, label=target.label))
        else:
            sort_keys.append(SortKey(direction=sort.direction, field=source.resolve_field(sort.field)))

    return QueryPlan(
        data_source=source.name,
        projections=tuple(projections),
        where=And(tuple(predicates)),
        group_by=tuple(source.resolve_field(name) for name in template.group_by),
        sort_by=tuple(sort_keys),
    )


def _match_projection(projections: Sequence[Projection], name: str) -> Optional[Projection]:
    for projection in projections:
        if projection.label == name:
            return projection
    for projection in projections:
        if projection.field.name == name:
            return projection
    return None
