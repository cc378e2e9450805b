"""
Report template and generated-artifact models.

Templates are plain data. ``validate_template`` is the single place that
checks a template against the data source catalog; every field a template
references must be known there before it can reach the query layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from .report_errors import AggregationTypeError, TemplateValidationError

if TYPE_CHECKING:
    from .data_sources import DataSource


class ColumnType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"


class AggregateFunction(str, Enum):
    SUM = "sum"
    AVG = "avg"
    COUNT = "count"
    MIN = "min"
    MAX = "max"


class FilterOperator(str, Enum):
    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    CONTAINS = "contains"
    IN = "in"
    BETWEEN = "between"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class ReportFormat(str, Enum):
    EXCEL = "excel"
    PDF = "pdf"
    CSV = "csv"
    JSON = "json"


class TemplateCategory(str, Enum):
    CLINICAL = "clinical"
    FINANCIAL = "financial"
    OPERATIONAL = "operational"
    HR = "hr"


NUMERIC_AGGREGATES = {AggregateFunction.SUM, AggregateFunction.AVG}
ORDERED_AGGREGATES = {AggregateFunction.MIN, AggregateFunction.MAX}


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in the metadata tables."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _enum_value(enum_cls, value, what: str, field_name: Optional[str] = None):
    try:
        return enum_cls(value)
    except ValueError:
        raise TemplateValidationError(f"Unsupported {what} '{value}'", field=field_name)


@dataclass
class ReportColumn:
    field: str
    label: str
    # None until validate_template fills it in from the catalog
    type: Optional[ColumnType] = None
    aggregate: Optional[AggregateFunction] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReportColumn":
        field_name = data.get("field")
        aggregate = data.get("aggregate")
        declared = data.get("type")
        return cls(
            field=field_name,
            label=data.get("label") or field_name,
            type=_enum_value(ColumnType, declared, "column type", field_name) if declared else None,
            aggregate=_enum_value(AggregateFunction, aggregate, "aggregate", field_name) if aggregate else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        payload = {"field": self.field, "label": self.label}
        if self.type:
            payload["type"] = self.type.value
        if self.aggregate:
            payload["aggregate"] = self.aggregate.value
        return payload


@dataclass
class ReportFilter:
    field: str
    operator: FilterOperator
    default_value: Any = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReportFilter":
        field_name = data.get("field")
        return cls(
            field=field_name,
            operator=_enum_value(FilterOperator, data.get("operator"), "filter operator", field_name),
            default_value=data.get("defaultValue"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"field": self.field, "operator": self.operator.value, "defaultValue": self.default_value}


@dataclass
class ReportSort:
    field: str
    direction: SortDirection = SortDirection.ASC

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReportSort":
        field_name = data.get("field")
        return cls(
            field=field_name,
            direction=_enum_value(SortDirection, (data.get("direction") or "asc").lower(), "sort direction", field_name),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"field": self.field, "direction": self.direction.value}


@dataclass
class ReportTemplate:
    id: Optional[str]
    tenant_id: str
    name: str
    data_source: str
    columns: List[ReportColumn]
    filters: List[ReportFilter] = field(default_factory=list)
    group_by: List[str] = field(default_factory=list)
    sort_by: List[ReportSort] = field(default_factory=list)
    category: TemplateCategory = TemplateCategory.OPERATIONAL
    description: Optional[str] = None
    chart_type: Optional[str] = None
    is_system: bool = False
    is_active: bool = True
    created_by: Optional[str] = None

    @property
    def is_grouped(self) -> bool:
        return bool(self.group_by)

    @property
    def has_aggregates(self) -> bool:
        return any(col.aggregate for col in self.columns)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReportTemplate":
        return cls(
            id=data.get("id"),
            tenant_id=data.get("tenantId"),
            name=data.get("name"),
            data_source=data.get("dataSource"),
            columns=[ReportColumn.from_dict(col) for col in data.get("columns") or []],
            filters=[ReportFilter.from_dict(flt) for flt in data.get("filters") or []],
            group_by=list(data.get("groupBy") or []),
            sort_by=[ReportSort.from_dict(srt) for srt in data.get("sortBy") or []],
            category=_enum_value(TemplateCategory, data.get("category") or "operational", "category"),
            description=data.get("description"),
            chart_type=data.get("chartType"),
            is_system=bool(data.get("isSystem", False)),
            is_active=bool(data.get("isActive", True)),
            created_by=data.get("createdBy"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tenantId": self.tenant_id,
            "name": self.name,
            "category": self.category.value,
            "description": self.description,
            "dataSource": self.data_source,
            "columns": [col.to_dict() for col in self.columns],
            "filters": [flt.to_dict() for flt in self.filters],
            "groupBy": list(self.group_by),
            "sortBy": [srt.to_dict() for srt in self.sort_by],
            "chartType": self.chart_type,
            "isSystem": self.is_system,
            "isActive": self.is_active,
            "createdBy": self.created_by,
        }


@dataclass
class GeneratedReport:
    id: str
    template_id: str
    tenant_id: str
    name: str
    format: ReportFormat
    parameters: Dict[str, Any]
    row_count: int
    generated_by: str
    generated_at: datetime
    expires_at: datetime
    file_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "templateId": self.template_id,
            "name": self.name,
            "format": self.format.value,
            "parameters": self.parameters,
            "filePath": self.file_path,
            "rowCount": self.row_count,
            "generatedBy": self.generated_by,
            "generatedAt": self.generated_at.isoformat(),
            "expiresAt": self.expires_at.isoformat(),
        }


class ScheduleFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass
class ReportSchedule:
    id: str
    template_id: str
    tenant_id: str
    frequency: ScheduleFrequency
    time: str
    recipients: List[str]
    format: ReportFormat
    next_run_at: datetime
    day_of_week: Optional[int] = None
    day_of_month: Optional[int] = None
    filters: Dict[str, Any] = field(default_factory=dict)
    last_run_at: Optional[datetime] = None
    is_active: bool = True
    created_by: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "templateId": self.template_id,
            "frequency": self.frequency.value,
            "dayOfWeek": self.day_of_week,
            "dayOfMonth": self.day_of_month,
            "time": self.time,
            "recipients": list(self.recipients),
            "format": self.format.value,
            "filters": self.filters,
            "lastRunAt": self.last_run_at.isoformat() if self.last_run_at else None,
            "nextRunAt": self.next_run_at.isoformat(),
            "isActive": self.is_active,
            "createdBy": self.created_by,
        }


def validate_template(template: ReportTemplate, source: "DataSource") -> None:
    """Check a template's shape and every field it references against ``source``."""
    if not template.columns:
        raise TemplateValidationError("Template must declare at least one column", field="columns")

    seen_labels = set()
    for column in template.columns:
        if not column.label:
            raise TemplateValidationError("Column label is required", field=column.field)
        if column.label in seen_labels:
            raise TemplateValidationError(f"Duplicate column label '{column.label}'", field=column.label)
        seen_labels.add(column.label)

        field_ref = source.resolve_field(column.field)
        if column.aggregate in NUMERIC_AGGREGATES and field_ref.type is not ColumnType.NUMBER:
            raise AggregationTypeError(column.field, column.aggregate.value)
        if column.aggregate in ORDERED_AGGREGATES and field_ref.type not in (ColumnType.NUMBER, ColumnType.DATE):
            raise AggregationTypeError(
                column.field,
                column.aggregate.value,
                f"'{column.aggregate.value}' needs a number or date field, '{column.field}' is {field_ref.type.value}",
            )

        expected = _result_type(column, field_ref.type)
        if column.type is None:
            column.type = expected
        elif column.type is not expected:
            raise TemplateValidationError(
                f"Column '{column.label}' is declared {column.type.value} but '{column.field}' yields {expected.value}",
                field=column.field,
            )

    for report_filter in template.filters:
        source.resolve_field(report_filter.field)

    plain_fields = {col.field for col in template.columns if not col.aggregate}
    for group_field in template.group_by:
        source.resolve_field(group_field)
        # unprojected groupBy fields are selected under their own name
        if group_field not in plain_fields and group_field in seen_labels:
            raise TemplateValidationError(
                f"groupBy field '{group_field}' collides with a column label",
                field=group_field,
            )

    plain_columns = [col for col in template.columns if not col.aggregate]
    if template.group_by:
        missing = [col.field for col in plain_columns if col.field not in template.group_by]
        if missing:
            raise TemplateValidationError(
                f"Columns {missing} must be aggregated or listed in groupBy",
                field=missing[0],
            )
    elif template.has_aggregates and plain_columns:
        raise TemplateValidationError(
            "Without groupBy, either every column is aggregated or none is",
            field=plain_columns[0].field,
        )

    projected = {col.label for col in template.columns} | {col.field for col in template.columns}
    for sort in template.sort_by:
        if sort.field in projected:
            continue
        source.resolve_field(sort.field)
        if (template.group_by or template.has_aggregates) and sort.field not in template.group_by:
            raise TemplateValidationError(
                f"Sort field '{sort.field}' must be a column or a groupBy field",
                field=sort.field,
            )


def _result_type(column: ReportColumn, field_type: ColumnType) -> ColumnType:
    if column.aggregate in NUMERIC_AGGREGATES or column.aggregate is AggregateFunction.COUNT:
        return ColumnType.NUMBER
    return field_type
