from typing import Any, Dict, Optional


class ReportServiceError(Exception):
    """Domain-specific exception for report engine failures."""

    def __init__(self, message: str, status_code: int = 400, code: str = "REPORT_ERROR", details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.details = details or {}


class TemplateNotFound(ReportServiceError):
    def __init__(self, template_id: str):
        super().__init__(
            "Report template not found or inactive",
            status_code=404,
            code="TEMPLATE_NOT_FOUND",
            details={"templateId": template_id},
        )


class TemplateValidationError(ReportServiceError):
    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message,
            status_code=400,
            code="TEMPLATE_INVALID",
            details={"field": field} if field else None,
        )


class SystemTemplateReadOnly(ReportServiceError):
    def __init__(self, template_id: str):
        super().__init__(
            "System templates cannot be modified",
            status_code=403,
            code="SYSTEM_TEMPLATE_READ_ONLY",
            details={"templateId": template_id},
        )


class FilterValidationError(ReportServiceError):
    def __init__(self, field: str, message: str):
        super().__init__(
            f"Invalid filter '{field}': {message}",
            status_code=400,
            code="FILTER_INVALID",
            details={"field": field},
        )
        self.field = field


class UnknownDataSource(ReportServiceError):
    """Raised when a template names a data source with no physical mapping."""

    def __init__(self, data_source: str):
        super().__init__(
            "Report data source is not configured",
            status_code=500,
            code="UNKNOWN_DATA_SOURCE",
            details={"dataSource": data_source},
        )


class AggregationTypeError(ReportServiceError):
    def __init__(self, field: str, aggregate: str, message: Optional[str] = None):
        super().__init__(
            message or f"Cannot apply '{aggregate}' to non-numeric field '{field}'",
            status_code=400,
            code="AGGREGATION_TYPE_ERROR",
            details={"field": field, "aggregate": aggregate},
        )


class ExportError(ReportServiceError):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=500, code="EXPORT_FAILED", details=details)


class ArtifactNotFound(ReportServiceError):
    def __init__(self, report_id: str, reason: str = "Report file not available"):
        super().__init__(
            reason,
            status_code=404,
            code="ARTIFACT_NOT_FOUND",
            details={"reportId": report_id},
        )


class ScheduleNotFound(ReportServiceError):
    def __init__(self, schedule_id: str):
        super().__init__(
            "Schedule not found",
            status_code=404,
            code="SCHEDULE_NOT_FOUND",
            details={"scheduleId": schedule_id},
        )


class ScheduleValidationError(ReportServiceError):
    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message,
            status_code=400,
            code="SCHEDULE_INVALID",
            details={"field": field} if field else None,
        )


class RequestValidationError(ReportServiceError):
    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message,
            status_code=400,
            code="REQUEST_INVALID",
            details={"field": field} if field else None,
        )
