"""
Dynamic report engine: templates, filters, query plans, exports and schedules.
"""
from .report_errors import ReportServiceError
from .report_formatters import FormatterRegistry, default_formatter_registry
from .report_models import ReportFormat, ReportTemplate
from .report_service import ArtifactDownload, GenerateResult, PreviewResult, ReportService
from .report_store import ReportStore
from .schedule_calculator import next_run_at
from .schedule_service import ScheduleService
from .template_store import TemplateStore

__all__ = [
    'ReportServiceError',
    'FormatterRegistry',
    'default_formatter_registry',
    'ReportFormat',
    'ReportTemplate',
    'ArtifactDownload',
    'GenerateResult',
    'PreviewResult',
    'ReportService',
    'ReportStore',
    'next_run_at',
    'ScheduleService',
    'TemplateStore',
]
