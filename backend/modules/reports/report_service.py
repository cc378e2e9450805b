"""
Report generation service.

Ties the pieces together: template lookup, filter resolution, planning,
execution, rendering and persistence. Every call runs under the caller's
identity so log lines are attributed to whoever generated the report.
"""

import os
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.engine import Engine

from backend.modules.logger import error, info, user_context
from backend.modules.reports.data_sources import get_data_source
from backend.modules.reports.filter_resolver import resolve_filters, to_parameters
from backend.modules.reports.query_plan import build_query_plan
from backend.modules.reports.report_config import ReportEngineConfig
from backend.modules.reports.report_errors import ArtifactNotFound, ExportError, ReportServiceError
from backend.modules.reports.report_executor import QueryResult, ReportQueryExecutor
from backend.modules.reports.report_formatters import FormatterRegistry, default_formatter_registry
from backend.modules.reports.report_models import GeneratedReport, ReportFormat, ReportTemplate, utcnow
from backend.modules.reports.report_schemas import GenerateReportRequest, PreviewReportRequest, parse_payload
from backend.modules.reports.report_store import ReportStore
from backend.modules.reports.template_store import TemplateStore

MAX_PREVIEW_ROWS = 1000
DEFAULT_PREVIEW_ROWS = 100


@dataclass
class GenerateResult:
    report_id: str
    row_count: int
    file_path: Optional[str]
    generated_at: datetime
    expires_at: datetime
    name: str = ""
    data: Optional[List[Dict[str, Any]]] = None
    columns: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reportId": self.report_id,
            "name": self.name,
            "rowCount": self.row_count,
            "filePath": self.file_path,
            "columns": self.columns,
            "data": self.data,
            "generatedAt": self.generated_at.isoformat(),
            "expiresAt": self.expires_at.isoformat(),
        }


@dataclass
class PreviewResult:
    columns: List[str]
    rows: List[Dict[str, Any]]
    total_row_count: int
    limit: Optional[int]
    offset: int


@dataclass
class ArtifactDownload:
    path: str
    content_type: str
    filename: str


def safe_filename(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9]", "_", name or "report")


class ReportService:
    """Generate, preview and serve reports for one report database."""

    def __init__(
        self,
        engine: Engine,
        config: Optional[ReportEngineConfig] = None,
        formatters: Optional[FormatterRegistry] = None,
        templates: Optional[TemplateStore] = None,
        store: Optional[ReportStore] = None,
        executor: Optional[ReportQueryExecutor] = None,
    ):
        self.engine = engine
        self.config = config or ReportEngineConfig.from_env()
        self.formatters = formatters or default_formatter_registry()
        self.templates = templates or TemplateStore(engine)
        self.store = store or ReportStore(engine, self.config.output_directory)
        self.executor = executor or ReportQueryExecutor(engine)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------
    def generate_report(
        self,
        template_id: str,
        filters: Optional[Dict[str, Any]],
        format: str,
        tenant_id: str,
        generated_by: str,
        now: Optional[datetime] = None,
    ) -> GenerateResult:
        with user_context(generated_by):
            formatter = self.formatters.get(format)
            template = self.templates.get_active_template(template_id, tenant_id)
            info(f"[ReportService] Generating '{template.name}' ({formatter.format.value}) for tenant {tenant_id}")

            result, parameters = self._run(template, filters, tenant_id)

            generated_at = now or utcnow()
            report = GeneratedReport(
                id=str(uuid.uuid4()),
                template_id=template.id,
                tenant_id=tenant_id,
                name=template.name,
                format=formatter.format,
                parameters=parameters,
                row_count=len(result.rows),
                generated_by=generated_by,
                generated_at=generated_at,
                expires_at=generated_at + timedelta(days=self.config.retention_days),
            )

            content = None
            if formatter.produces_file:
                try:
                    content = formatter.render(result.columns, result.rows, template.name)
                except ExportError:
                    raise
                except Exception as exc:
                    error(f"[ReportService] Failed to render {formatter.format.value} for report {report.id}: {exc}", exc_info=True)
                    raise ExportError(
                        f"Failed to render {formatter.format.value} report",
                        details={"templateId": template.id},
                    ) from exc

            self.store.save(report, content, formatter.extension)
            info(f"[ReportService] Report {report.id} generated with {report.row_count} rows")

            return GenerateResult(
                report_id=report.id,
                name=report.name,
                row_count=report.row_count,
                file_path=report.file_path,
                generated_at=report.generated_at,
                expires_at=report.expires_at,
                data=None if formatter.produces_file else result.rows,
                columns=result.columns,
            )

    def generate_from_request(self, payload, tenant_id: str, generated_by: str) -> GenerateResult:
        request = parse_payload(GenerateReportRequest, payload)
        return self.generate_report(
            template_id=request.templateId,
            filters=request.filters,
            format=request.format,
            tenant_id=tenant_id,
            generated_by=generated_by,
        )

    # ------------------------------------------------------------------
    # Preview
    # ------------------------------------------------------------------
    def preview_report(
        self,
        template_id: str,
        filters: Optional[Dict[str, Any]],
        tenant_id: str,
        limit: Optional[int] = DEFAULT_PREVIEW_ROWS,
        offset: int = 0,
    ) -> PreviewResult:
        """Run a template without persisting anything."""
        template = self.templates.get_active_template(template_id, tenant_id)
        effective_limit = self._clamp_preview_limit(limit)
        result, _ = self._run(template, filters, tenant_id, limit=effective_limit, offset=offset)
        return PreviewResult(
            columns=result.columns,
            rows=result.rows,
            total_row_count=result.total_row_count,
            limit=effective_limit,
            offset=offset,
        )

    def preview_from_request(self, payload, tenant_id: str) -> PreviewResult:
        request = parse_payload(PreviewReportRequest, payload)
        return self.preview_report(
            template_id=request.templateId,
            filters=request.filters,
            tenant_id=tenant_id,
            limit=request.limit,
            offset=request.offset,
        )

    # ------------------------------------------------------------------
    # Artifacts
    # ------------------------------------------------------------------
    def open_artifact(self, report_id: str, tenant_id: str) -> ArtifactDownload:
        report = self.store.get(report_id, tenant_id)
        if report is None:
            raise ArtifactNotFound(report_id, "Report not found")
        if report.format is ReportFormat.JSON or not report.file_path:
            raise ArtifactNotFound(report_id, "Report has no downloadable file")
        if not os.path.isfile(report.file_path):
            raise ArtifactNotFound(report_id)

        formatter = self.formatters.get(report.format)
        return ArtifactDownload(
            path=report.file_path,
            content_type=formatter.content_type,
            filename=f"{safe_filename(report.name)}.{formatter.extension}",
        )

    def list_generated_reports(
        self,
        tenant_id: str,
        template_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Dict[str, Any]:
        if limit < 1 or offset < 0:
            raise ReportServiceError("Invalid pagination", code="INVALID_PAGINATION")
        reports, total = self.store.list_for_tenant(tenant_id, template_id=template_id, limit=limit, offset=offset)
        return {
            "data": [report.to_dict() for report in reports],
            "total": total,
            "limit": limit,
            "offset": offset,
        }

    def cleanup_expired_reports(self, now: Optional[datetime] = None) -> int:
        return self.store.reap_expired(now)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _run(
        self,
        template: ReportTemplate,
        filters: Optional[Dict[str, Any]],
        tenant_id: str,
        limit: Optional[int] = None,
        offset: int = 0,
    ):
        source = get_data_source(template.data_source)
        resolved = resolve_filters(template.filters, filters, source)
        plan = build_query_plan(template, resolved, tenant_id, source)
        result: QueryResult = self.executor.execute(plan, limit=limit, offset=offset)
        return result, to_parameters(resolved)

    def _clamp_preview_limit(self, limit: Optional[int]) -> int:
        if limit is None:
            return DEFAULT_PREVIEW_ROWS
        return max(0, min(int(limit), MAX_PREVIEW_ROWS))
