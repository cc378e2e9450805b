"""
Generated report persistence.

An artifact lives at ``<output_dir>/<tenant_id>/<report_id>.<ext>``; the
``generated_reports`` row carrying its metadata is only written once the
file is complete, so a row never points at a partial file.
"""

import os
import re
from contextlib import suppress
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from backend.database.report_tables import generated_reports
from backend.modules.logger import error, info, warning
from backend.modules.reports.report_errors import ExportError
from backend.modules.reports.report_models import GeneratedReport, ReportFormat, utcnow

_SAFE_SEGMENT = re.compile(r"^[A-Za-z0-9_.-]+$")


def _path_segment(value: str, what: str) -> str:
    value = str(value)
    if not _SAFE_SEGMENT.match(value) or value in (".", ".."):
        raise ExportError(f"Unsafe {what} for artifact path", details={what: value})
    return value


class ReportStore:
    """Artifact files plus their ``generated_reports`` metadata rows."""

    def __init__(self, engine: Engine, output_directory: str):
        self.engine = engine
        self.output_directory = os.path.abspath(output_directory)

    def artifact_path(self, tenant_id: str, report_id: str, extension: str) -> str:
        return os.path.join(
            self.output_directory,
            _path_segment(tenant_id, "tenantId"),
            f"{_path_segment(report_id, 'reportId')}.{extension}",
        )

    def save(self, report: GeneratedReport, content: Optional[bytes] = None, extension: Optional[str] = None) -> GeneratedReport:
        """
        Persist ``content`` (if any) and then the metadata row.

        Either both land or neither does: a failed insert removes the file,
        a failed write leaves no row behind.
        """
        path = None
        if content is not None:
            path = self.artifact_path(report.tenant_id, report.id, extension or report.format.value)
            part_path = f"{path}.part"
            try:
                os.makedirs(os.path.dirname(path), exist_ok=True)
                with open(part_path, "wb") as fh:
                    fh.write(content)
                os.replace(part_path, path)
            except OSError as exc:
                with suppress(OSError):
                    os.remove(part_path)
                error(f"[ReportStore] Failed to write artifact for report {report.id}: {exc}")
                raise ExportError("Failed to write report file", details={"reportId": report.id}) from exc
            report.file_path = path

        try:
            with self.engine.begin() as conn:
                conn.execute(
                    generated_reports.insert().values(
                        id=report.id,
                        template_id=report.template_id,
                        tenant_id=report.tenant_id,
                        name=report.name,
                        format=report.format.value,
                        parameters=report.parameters,
                        file_path=report.file_path,
                        row_count=report.row_count,
                        generated_by=report.generated_by,
                        generated_at=report.generated_at,
                        expires_at=report.expires_at,
                    )
                )
        except SQLAlchemyError as exc:
            if path:
                with suppress(OSError):
                    os.remove(path)
            report.file_path = None
            error(f"[ReportStore] Failed to record report {report.id}: {exc}", exc_info=True)
            raise ExportError("Failed to record generated report", details={"reportId": report.id}) from exc

        info(f"[ReportStore] Stored report {report.id} ({report.format.value}, {report.row_count} rows)")
        return report

    def get(self, report_id: str, tenant_id: str) -> Optional[GeneratedReport]:
        stmt = select(generated_reports).where(
            generated_reports.c.id == report_id,
            generated_reports.c.tenant_id == tenant_id,
        )
        with self.engine.connect() as conn:
            row = conn.execute(stmt).mappings().first()
        return _to_report(row) if row else None

    def list_for_tenant(
        self,
        tenant_id: str,
        template_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[GeneratedReport], int]:
        conditions = [generated_reports.c.tenant_id == tenant_id]
        if template_id:
            conditions.append(generated_reports.c.template_id == template_id)

        stmt = (
            select(generated_reports)
            .where(*conditions)
            .order_by(generated_reports.c.generated_at.desc(), generated_reports.c.id)
            .limit(limit)
            .offset(offset)
        )
        count_stmt = select(func.count()).select_from(generated_reports).where(*conditions)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()
            total = conn.execute(count_stmt).scalar_one()
        return [_to_report(row) for row in rows], int(total)

    def reap_expired(self, now: Optional[datetime] = None) -> int:
        """
        Delete every report whose ``expires_at`` is before ``now``.

        Files are removed before their rows; a file that is already gone is
        not an error. Returns the number of rows this call deleted, so a
        second run over the same state returns 0.
        """
        now = now or utcnow()
        stmt = select(generated_reports.c.id, generated_reports.c.file_path).where(
            generated_reports.c.expires_at < now
        )
        with self.engine.connect() as conn:
            expired = conn.execute(stmt).all()

        deleted = 0
        for report_id, file_path in expired:
            if file_path:
                try:
                    os.remove(file_path)
                except FileNotFoundError:
                    pass
                except OSError as exc:
                    # row stays so the next sweep retries the file
                    warning(f"[ReportStore] Could not remove {file_path}: {exc}")
                    continue
            with self.engine.begin() as conn:
                result = conn.execute(delete(generated_reports).where(generated_reports.c.id == report_id))
                deleted += result.rowcount or 0

        if deleted:
            info(f"[ReportStore] Cleaned up {deleted} expired reports")
        return deleted


def _to_report(row) -> GeneratedReport:
    return GeneratedReport(
        id=row["id"],
        template_id=row["template_id"],
        tenant_id=row["tenant_id"],
        name=row["name"],
        format=ReportFormat(row["format"]),
        parameters=row["parameters"] or {},
        row_count=row["row_count"],
        generated_by=row["generated_by"],
        generated_at=row["generated_at"],
        expires_at=row["expires_at"],
        file_path=row["file_path"],
    )
