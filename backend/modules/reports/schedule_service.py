"""
Report schedules: CRUD plus firing of due schedules.

A schedule that fails keeps its ``next_run_at`` and is picked up again on
the next poll; the others in the same sweep still run.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import delete, select, update
from sqlalchemy.engine import Engine

from backend.database.report_tables import report_schedules
from backend.modules.logger import error, info
from backend.modules.reports.report_errors import ReportServiceError, ScheduleNotFound, ScheduleValidationError
from backend.modules.reports.report_mailer import ReportMailer
from backend.modules.reports.report_models import ReportFormat, ReportSchedule, ScheduleFrequency, utcnow
from backend.modules.reports.report_schemas import ScheduleDefinition, parse_payload
from backend.modules.reports.report_service import GenerateResult, ReportService
from backend.modules.reports.schedule_calculator import next_run_at

SchedulePayload = Union[ScheduleDefinition, Dict[str, Any]]

SYSTEM_USER = "system"


class ScheduleService:
    def __init__(self, engine: Engine, report_service: ReportService, mailer: Optional[ReportMailer] = None):
        self.engine = engine
        self.report_service = report_service
        self.mailer = mailer or ReportMailer(report_service.config.smtp)

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------
    def create_schedule(
        self,
        tenant_id: str,
        payload: SchedulePayload,
        created_by: str,
        now: Optional[datetime] = None,
    ) -> ReportSchedule:
        definition = self._validated(payload, tenant_id)
        now = now or utcnow()
        schedule = ReportSchedule(
            id=str(uuid.uuid4()),
            template_id=definition.templateId,
            tenant_id=tenant_id,
            frequency=ScheduleFrequency(definition.frequency),
            time=definition.time,
            recipients=list(definition.recipients),
            format=ReportFormat(definition.format),
            next_run_at=next_run_at(
                definition.frequency, definition.dayOfWeek, definition.dayOfMonth, definition.time, now
            ),
            day_of_week=definition.dayOfWeek,
            day_of_month=definition.dayOfMonth,
            filters=dict(definition.filters),
            is_active=definition.isActive,
            created_by=created_by,
        )
        with self.engine.begin() as conn:
            conn.execute(
                report_schedules.insert().values(
                    id=schedule.id,
                    tenant_id=tenant_id,
                    created_by=created_by,
                    created_at=now,
                    updated_at=now,
                    last_run_at=None,
                    **_schedule_values(schedule),
                )
            )
        info(f"[ScheduleService] Created {schedule.frequency.value} schedule {schedule.id} for template {schedule.template_id}")
        return schedule

    def update_schedule(
        self,
        schedule_id: str,
        tenant_id: str,
        payload: SchedulePayload,
        now: Optional[datetime] = None,
    ) -> ReportSchedule:
        existing = self.get_schedule(schedule_id, tenant_id)
        definition = self._validated(payload, tenant_id)
        now = now or utcnow()
        existing.template_id = definition.templateId
        existing.frequency = ScheduleFrequency(definition.frequency)
        existing.day_of_week = definition.dayOfWeek
        existing.day_of_month = definition.dayOfMonth
        existing.time = definition.time
        existing.recipients = list(definition.recipients)
        existing.format = ReportFormat(definition.format)
        existing.filters = dict(definition.filters)
        existing.is_active = definition.isActive
        existing.next_run_at = next_run_at(
            existing.frequency, existing.day_of_week, existing.day_of_month, existing.time, now
        )
        with self.engine.begin() as conn:
            conn.execute(
                update(report_schedules)
                .where(report_schedules.c.id == schedule_id, report_schedules.c.tenant_id == tenant_id)
                .values(updated_at=now, **_schedule_values(existing))
            )
        info(f"[ScheduleService] Updated schedule {schedule_id}")
        return existing

    def delete_schedule(self, schedule_id: str, tenant_id: str) -> None:
        with self.engine.begin() as conn:
            result = conn.execute(
                delete(report_schedules).where(
                    report_schedules.c.id == schedule_id,
                    report_schedules.c.tenant_id == tenant_id,
                )
            )
        if not result.rowcount:
            raise ScheduleNotFound(schedule_id)
        info(f"[ScheduleService] Deleted schedule {schedule_id}")

    def get_schedule(self, schedule_id: str, tenant_id: Optional[str] = None) -> ReportSchedule:
        conditions = [report_schedules.c.id == schedule_id]
        if tenant_id is not None:
            conditions.append(report_schedules.c.tenant_id == tenant_id)
        with self.engine.connect() as conn:
            row = conn.execute(select(report_schedules).where(*conditions)).mappings().first()
        if row is None:
            raise ScheduleNotFound(schedule_id)
        return _to_schedule(row)

    def list_schedules(self, tenant_id: str, template_id: Optional[str] = None) -> List[ReportSchedule]:
        conditions = [report_schedules.c.tenant_id == tenant_id]
        if template_id:
            conditions.append(report_schedules.c.template_id == template_id)
        stmt = select(report_schedules).where(*conditions).order_by(report_schedules.c.next_run_at)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()
        return [_to_schedule(row) for row in rows]

    # ------------------------------------------------------------------
    # Firing
    # ------------------------------------------------------------------
    def run_schedule(self, schedule_id: str, now: Optional[datetime] = None) -> GenerateResult:
        now = now or utcnow()
        schedule = self.get_schedule(schedule_id)
        if not schedule.is_active:
            raise ScheduleNotFound(schedule_id)

        result = self.report_service.generate_report(
            template_id=schedule.template_id,
            filters=schedule.filters,
            format=schedule.format.value,
            tenant_id=schedule.tenant_id,
            generated_by=SYSTEM_USER,
            now=now,
        )

        schedule.last_run_at = now
        schedule.next_run_at = next_run_at(
            schedule.frequency, schedule.day_of_week, schedule.day_of_month, schedule.time, now
        )
        with self.engine.begin() as conn:
            conn.execute(
                update(report_schedules)
                .where(report_schedules.c.id == schedule.id)
                .values(last_run_at=schedule.last_run_at, next_run_at=schedule.next_run_at, updated_at=now)
            )

        self._deliver(schedule, result)
        return result

    def run_due_schedules(self, now: Optional[datetime] = None) -> Dict[str, int]:
        now = now or utcnow()
        stmt = (
            select(report_schedules.c.id)
            .where(report_schedules.c.is_active.is_(True), report_schedules.c.next_run_at <= now)
            .order_by(report_schedules.c.next_run_at)
        )
        with self.engine.connect() as conn:
            due = conn.execute(stmt).scalars().all()

        info(f"[ScheduleService] Found {len(due)} scheduled reports to run")
        succeeded = 0
        for schedule_id in due:
            try:
                self.run_schedule(schedule_id, now)
                succeeded += 1
            except Exception as exc:
                error(f"[ScheduleService] Failed to run schedule {schedule_id}: {exc}", exc_info=True)
        return {"due": len(due), "succeeded": succeeded, "failed": len(due) - succeeded}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _validated(self, payload: SchedulePayload, tenant_id: str) -> ScheduleDefinition:
        definition = parse_payload(ScheduleDefinition, payload, ScheduleValidationError)
        # raises TemplateNotFound for another tenant's or an inactive template
        self.report_service.templates.get_active_template(definition.templateId, tenant_id)
        return definition

    def _deliver(self, schedule: ReportSchedule, result: GenerateResult) -> None:
        if not self.mailer.enabled:
            return
        download = self.report_service.open_artifact(result.report_id, schedule.tenant_id)
        with open(download.path, "rb") as fh:
            content = fh.read()
        try:
            self.mailer.send_report(
                recipients=schedule.recipients,
                subject=f"Scheduled Report: {result.name}",
                body=(
                    f"Please find attached the scheduled report generated on "
                    f"{result.generated_at.strftime('%Y-%m-%d %H:%M:%S')} UTC.\n\nRows: {result.row_count}"
                ),
                attachment_content=content,
                attachment_filename=download.filename,
                mime_type=download.content_type,
            )
        except ReportServiceError:
            error(f"[ScheduleService] Report {result.report_id} generated but delivery failed for schedule {schedule.id}")
            raise


def _schedule_values(schedule: ReportSchedule) -> Dict[str, Any]:
    return {
        "template_id": schedule.template_id,
        "frequency": schedule.frequency.value,
        "day_of_week": schedule.day_of_week,
        "day_of_month": schedule.day_of_month,
        "run_time": schedule.time,
        "recipients": list(schedule.recipients),
        "format": schedule.format.value,
        "filters": schedule.filters,
        "next_run_at": schedule.next_run_at,
        "is_active": schedule.is_active,
    }


def _to_schedule(row) -> ReportSchedule:
    return ReportSchedule(
        id=row["id"],
        template_id=row["template_id"],
        tenant_id=row["tenant_id"],
        frequency=ScheduleFrequency(row["frequency"]),
        time=row["run_time"],
        recipients=list(row["recipients"] or []),
        format=ReportFormat(row["format"]),
        next_run_at=row["next_run_at"],
        day_of_week=row["day_of_week"],
        day_of_month=row["day_of_month"],
        filters=row["filters"] or {},
        last_run_at=row["last_run_at"],
        is_active=row["is_active"],
        created_by=row["created_by"],
    )
