"""Request payloads accepted by the report services."""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ValidationError, field_validator

from backend.modules.reports.report_errors import RequestValidationError


class GenerateReportRequest(BaseModel):
    templateId: str
    filters: Dict[str, Any] = {}
    format: Literal["excel", "pdf", "csv", "json"] = "json"


class PreviewReportRequest(BaseModel):
    templateId: str
    filters: Dict[str, Any] = {}
    limit: Optional[int] = 100
    offset: int = 0

    @field_validator("limit", "offset")
    @classmethod
    def _non_negative(cls, value):
        if value is not None and value < 0:
            raise ValueError("must not be negative")
        return value


class ColumnDefinition(BaseModel):
    field: str
    label: str
    type: Optional[Literal["string", "number", "date", "boolean"]] = None
    aggregate: Optional[Literal["sum", "avg", "count", "min", "max"]] = None


class FilterDefinition(BaseModel):
    field: str
    operator: Literal["eq", "ne", "gt", "gte", "lt", "lte", "contains", "in", "between"]
    defaultValue: Any = None


class SortDefinition(BaseModel):
    field: str
    direction: Literal["asc", "desc"] = "asc"


class TemplateDefinition(BaseModel):
    name: str
    category: Literal["clinical", "financial", "operational", "hr"] = "operational"
    description: Optional[str] = None
    dataSource: str
    columns: List[ColumnDefinition]
    filters: List[FilterDefinition] = []
    groupBy: List[str] = []
    sortBy: List[SortDefinition] = []
    chartType: Optional[Literal["bar", "line", "pie", "table"]] = None

    @field_validator("name")
    @classmethod
    def _name_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name is required")
        return value


class ScheduleDefinition(BaseModel):
    templateId: str
    frequency: Literal["daily", "weekly", "monthly"]
    dayOfWeek: Optional[int] = None
    dayOfMonth: Optional[int] = None
    time: str
    recipients: List[str]
    format: Literal["excel", "pdf", "csv"] = "pdf"
    filters: Dict[str, Any] = {}
    isActive: bool = True

    @field_validator("recipients")
    @classmethod
    def _recipients(cls, value: List[str]) -> List[str]:
        cleaned = [addr.strip() for addr in value if addr and addr.strip()]
        if not cleaned:
            raise ValueError("at least one recipient is required")
        for addr in cleaned:
            if "@" not in addr or addr.startswith("@") or addr.endswith("@"):
                raise ValueError(f"'{addr}' is not an e-mail address")
        return cleaned


def parse_payload(model, payload, error_cls=RequestValidationError):
    """Validate ``payload`` into ``model``, raising ``error_cls`` on failure."""
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        raise error_cls(f"{field}: {first.get('msg')}" if field else first.get("msg"), field=field) from exc
