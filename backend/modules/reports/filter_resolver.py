"""
Merges caller-supplied filter values with template defaults.

The template's declared filters are the only allow-list of queryable
fields: an undeclared caller key is rejected, a declared filter with neither
a caller value nor a default is dropped (filtering is opt-in).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .data_sources import DataSource, FieldRef
from .report_errors import FilterValidationError
from .report_models import ColumnType, FilterOperator, ReportFilter

_END_OF_DAY = time(23, 59, 59, 999999)


@dataclass(frozen=True)
class ResolvedFilter:
    field: str
    operator: FilterOperator
    value: Any
    field_ref: FieldRef
    raw_value: Any = None


def resolve_filters(
    declared: Sequence[ReportFilter],
    caller_filters: Optional[Mapping[str, Any]],
    source: DataSource,
) -> List[ResolvedFilter]:
    caller_filters = dict(caller_filters or {})
    declared_fields = {flt.field for flt in declared}
    for key in caller_filters:
        if key not in declared_fields:
            raise FilterValidationError(key, "field is not a declared filter of this template")

    resolved: List[ResolvedFilter] = []
    for report_filter in declared:
        raw = caller_filters.get(report_filter.field)
        if raw is None:
            raw = report_filter.default_value
        if raw is None:
            continue
        field_ref = source.resolve_field(report_filter.field)
        value = _coerce_for_operator(report_filter.field, report_filter.operator, raw, field_ref)
        resolved.append(
            ResolvedFilter(
                field=report_filter.field,
                operator=report_filter.operator,
                value=value,
                field_ref=field_ref,
                raw_value=raw,
            )
        )
    return resolved


def to_parameters(resolved: Sequence[ResolvedFilter]) -> Dict[str, Any]:
    """JSON-safe record of the values a report was generated with."""
    parameters: Dict[str, Any] = {}
    for item in resolved:
        parameters[item.field] = _json_safe(item.value)
    return parameters


def _json_safe(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


def _coerce_for_operator(field_name: str, operator: FilterOperator, raw: Any, field_ref: FieldRef) -> Any:
    if operator is FilterOperator.BETWEEN:
        if not isinstance(raw, (list, tuple)) or len(raw) != 2:
            raise FilterValidationError(field_name, "'between' requires exactly two bounds")
        low = _coerce_scalar(field_name, raw[0], field_ref)
        high = _coerce_scalar(field_name, raw[1], field_ref, upper_bound=True)
        if low > high:
            raise FilterValidationError(field_name, "'between' lower bound is greater than upper bound")
        return (low, high)

    if operator is FilterOperator.IN:
        values = list(raw) if isinstance(raw, (list, tuple, set, frozenset)) else [raw]
        if not values:
            raise FilterValidationError(field_name, "'in' requires at least one value")
        return [_coerce_scalar(field_name, value, field_ref) for value in values]

    if isinstance(raw, (list, tuple, set, dict)):
        raise FilterValidationError(field_name, f"'{operator.value}' requires a single value")

    if operator is FilterOperator.CONTAINS:
        if not isinstance(raw, str) or not raw:
            raise FilterValidationError(field_name, "'contains' requires a non-empty string")
        if field_ref.type is not ColumnType.STRING:
            raise FilterValidationError(field_name, "'contains' only applies to string fields")
        return raw

    # lte and gt both compare against the end of a bare date
    upper_bound = operator in (FilterOperator.LTE, FilterOperator.GT)
    return _coerce_scalar(field_name, raw, field_ref, upper_bound=upper_bound)


def _coerce_scalar(field_name: str, value: Any, field_ref: FieldRef, upper_bound: bool = False) -> Any:
    if value is None:
        raise FilterValidationError(field_name, "value must not be null")
    field_type = field_ref.type
    if field_type is ColumnType.NUMBER:
        return _to_number(field_name, value)
    if field_type is ColumnType.DATE:
        return _to_date(field_name, value, truncated=field_ref.transform is not None, upper_bound=upper_bound)
    if field_type is ColumnType.BOOLEAN:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("true", "false"):
            return value.strip().lower() == "true"
        raise FilterValidationError(field_name, "expected a boolean")
    if not isinstance(value, str):
        raise FilterValidationError(field_name, "expected a string")
    return value


def _to_number(field_name: str, value: Any):
    if isinstance(value, bool):
        raise FilterValidationError(field_name, "expected a number")
    if isinstance(value, int):
        return value
    if isinstance(value, (float, Decimal)):
        number = float(value)
    elif isinstance(value, str):
        try:
            parsed = Decimal(value.strip())
        except InvalidOperation:
            raise FilterValidationError(field_name, f"'{value}' is not a number")
        if not parsed.is_finite():
            raise FilterValidationError(field_name, "expected a finite number")
        if parsed == parsed.to_integral_value() and "." not in value and "e" not in value.lower():
            return int(parsed)
        number = float(parsed)
    else:
        raise FilterValidationError(field_name, "expected a number")
    if math.isnan(number) or math.isinf(number):
        raise FilterValidationError(field_name, "expected a finite number")
    return number


def _to_date(field_name: str, value: Any, truncated: bool, upper_bound: bool):
    date_only = False
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
        date_only = True
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise FilterValidationError(field_name, f"'{value}' is not an ISO-8601 date")
        date_only = len(text) == 10
    else:
        raise FilterValidationError(field_name, "expected a date")

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    if truncated:
        return parsed.date()
    if date_only and upper_bound:
        # a bare upper-bound date covers that whole day
        return datetime.combine(parsed.date(), _END_OF_DAY)
    return parsed
