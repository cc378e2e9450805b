"""
Template persistence.

Every write validates the template against the data source catalog, so a
stored template can always be planned. System templates are read-only.
"""

import uuid
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import and_, select, update
from sqlalchemy.engine import Engine

from backend.database.report_tables import report_templates
from backend.modules.logger import info
from backend.modules.reports.data_sources import DATA_SOURCES
from backend.modules.reports.query_compiler import escape_like
from backend.modules.reports.report_errors import (
    SystemTemplateReadOnly,
    TemplateNotFound,
    TemplateValidationError,
)
from backend.modules.reports.report_models import ReportTemplate, TemplateCategory, utcnow, validate_template
from backend.modules.reports.report_schemas import TemplateDefinition, parse_payload
from backend.modules.reports.system_templates import get_system_report_templates

TemplatePayload = Union[TemplateDefinition, Dict[str, Any]]


class TemplateStore:
    def __init__(self, engine: Engine):
        self.engine = engine

    def get_active_template(self, template_id: str, tenant_id: str) -> ReportTemplate:
        stmt = select(report_templates).where(
            report_templates.c.id == template_id,
            report_templates.c.tenant_id == tenant_id,
            report_templates.c.is_active.is_(True),
        )
        with self.engine.connect() as conn:
            row = conn.execute(stmt).mappings().first()
        if row is None:
            raise TemplateNotFound(template_id)
        return _to_template(row)

    def list_templates(
        self,
        tenant_id: str,
        category: Optional[str] = None,
        search: Optional[str] = None,
    ) -> List[ReportTemplate]:
        conditions = [report_templates.c.tenant_id == tenant_id, report_templates.c.is_active.is_(True)]
        if category:
            conditions.append(report_templates.c.category == category)
        if search:
            conditions.append(report_templates.c.name.ilike(f"%{escape_like(search)}%", escape="\\"))
        stmt = select(report_templates).where(and_(*conditions)).order_by(report_templates.c.name)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()
        return [_to_template(row) for row in rows]

    def create_template(self, tenant_id: str, payload: TemplatePayload, created_by: str) -> ReportTemplate:
        definition = parse_payload(TemplateDefinition, payload, TemplateValidationError)
        template = ReportTemplate.from_dict(
            dict(definition.model_dump(), tenantId=tenant_id, createdBy=created_by)
        )
        template.id = str(uuid.uuid4())
        return self._insert(template)

    def update_template(self, template_id: str, tenant_id: str, payload: TemplatePayload) -> ReportTemplate:
        existing = self.get_active_template(template_id, tenant_id)
        if existing.is_system:
            raise SystemTemplateReadOnly(template_id)

        definition = parse_payload(TemplateDefinition, payload, TemplateValidationError)
        template = ReportTemplate.from_dict(
            dict(definition.model_dump(), id=template_id, tenantId=tenant_id, createdBy=existing.created_by)
        )
        validate_template(template, _source_for(template))

        with self.engine.begin() as conn:
            self._check_unique_name(conn, template, exclude_id=template_id)
            conn.execute(
                update(report_templates)
                .where(report_templates.c.id == template_id, report_templates.c.tenant_id == tenant_id)
                .values(**_template_values(template), updated_at=utcnow())
            )
        info(f"[TemplateStore] Updated template {template_id}")
        return template

    def deactivate_template(self, template_id: str, tenant_id: str) -> None:
        existing = self.get_active_template(template_id, tenant_id)
        if existing.is_system:
            raise SystemTemplateReadOnly(template_id)
        with self.engine.begin() as conn:
            conn.execute(
                update(report_templates)
                .where(report_templates.c.id == template_id, report_templates.c.tenant_id == tenant_id)
                .values(is_active=False, updated_at=utcnow())
            )
        info(f"[TemplateStore] Deactivated template {template_id}")

    def seed_system_templates(self, tenant_id: str, created_by: str) -> int:
        """Insert the built-in templates this tenant does not have yet."""
        stmt = select(report_templates.c.name).where(
            report_templates.c.tenant_id == tenant_id,
            report_templates.c.is_system.is_(True),
        )
        with self.engine.connect() as conn:
            existing = set(conn.execute(stmt).scalars().all())

        created = 0
        for template in get_system_report_templates(tenant_id, created_by):
            if template.name in existing:
                continue
            template.id = str(uuid.uuid4())
            self._insert(template)
            created += 1
        if created:
            info(f"[TemplateStore] Seeded {created} system templates for tenant {tenant_id}")
        return created

    def _insert(self, template: ReportTemplate) -> ReportTemplate:
        validate_template(template, _source_for(template))
        now = utcnow()
        with self.engine.begin() as conn:
            self._check_unique_name(conn, template)
            conn.execute(
                report_templates.insert().values(
                    id=template.id,
                    tenant_id=template.tenant_id,
                    created_by=template.created_by,
                    created_at=now,
                    updated_at=now,
                    **_template_values(template),
                )
            )
        info(f"[TemplateStore] Created template {template.id} ({template.name})")
        return template

    def _check_unique_name(self, conn, template: ReportTemplate, exclude_id: Optional[str] = None) -> None:
        conditions = [
            report_templates.c.tenant_id == template.tenant_id,
            report_templates.c.name == template.name,
            report_templates.c.is_active.is_(True),
        ]
        if exclude_id:
            conditions.append(report_templates.c.id != exclude_id)
        duplicate = conn.execute(select(report_templates.c.id).where(and_(*conditions))).first()
        if duplicate is not None:
            raise TemplateValidationError(f"A template named '{template.name}' already exists", field="name")


def _template_values(template: ReportTemplate) -> Dict[str, Any]:
    payload = template.to_dict()
    return {
        "name": template.name,
        "category": template.category.value,
        "description": template.description,
        "data_source": template.data_source,
        "definition": {
            "columns": payload["columns"],
            "filters": payload["filters"],
            "groupBy": payload["groupBy"],
            "sortBy": payload["sortBy"],
        },
        "chart_type": template.chart_type,
        "is_system": template.is_system,
        "is_active": template.is_active,
    }


def _to_template(row) -> ReportTemplate:
    definition = row["definition"] or {}
    return ReportTemplate.from_dict(
        {
            "id": row["id"],
            "tenantId": row["tenant_id"],
            "name": row["name"],
            "category": row["category"] or TemplateCategory.OPERATIONAL.value,
            "description": row["description"],
            "dataSource": row["data_source"],
            "columns": definition.get("columns"),
            "filters": definition.get("filters"),
            "groupBy": definition.get("groupBy"),
            "sortBy": definition.get("sortBy"),
            "chartType": row["chart_type"],
            "isSystem": row["is_system"],
            "isActive": row["is_active"],
            "createdBy": row["created_by"],
        }
    )


def _source_for(template: ReportTemplate):
    source = DATA_SOURCES.get(template.data_source)
    if source is None:
        raise TemplateValidationError(f"Unknown data source '{template.data_source}'", field="dataSource")
    return source
