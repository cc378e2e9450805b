"""Metadata tables owned by the report engine."""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)
from sqlalchemy.engine import Engine

from backend.modules.logger import info

REPORT_METADATA = MetaData()

report_templates = Table(
    "report_templates",
    REPORT_METADATA,
    Column("id", String(36), primary_key=True),
    Column("tenant_id", String(64), nullable=False, index=True),
    Column("name", String(200), nullable=False),
    Column("category", String(20), nullable=False),
    Column("description", Text),
    Column("data_source", String(64), nullable=False),
    # columns / filters / groupBy / sortBy in their camelCase wire shape
    Column("definition", JSON, nullable=False),
    Column("chart_type", String(20)),
    Column("is_system", Boolean, nullable=False, default=False),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("created_by", String(64)),
    Column("created_at", DateTime, nullable=False),
    Column("updated_at", DateTime, nullable=False),
)

report_schedules = Table(
    "report_schedules",
    REPORT_METADATA,
    Column("id", String(36), primary_key=True),
    Column("template_id", String(36), nullable=False, index=True),
    Column("tenant_id", String(64), nullable=False, index=True),
    Column("frequency", String(10), nullable=False),
    Column("day_of_week", Integer),
    Column("day_of_month", Integer),
    Column("run_time", String(5), nullable=False),
    Column("recipients", JSON, nullable=False),
    Column("format", String(10), nullable=False),
    Column("filters", JSON),
    Column("last_run_at", DateTime),
    Column("next_run_at", DateTime, nullable=False),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("created_by", String(64)),
    Column("created_at", DateTime, nullable=False),
    Column("updated_at", DateTime, nullable=False),
)
Index("ix_report_schedules_due", report_schedules.c.is_active, report_schedules.c.next_run_at)

generated_reports = Table(
    "generated_reports",
    REPORT_METADATA,
    Column("id", String(36), primary_key=True),
    Column("template_id", String(36), nullable=False, index=True),
    Column("tenant_id", String(64), nullable=False, index=True),
    Column("name", String(200), nullable=False),
    Column("format", String(10), nullable=False),
    Column("parameters", JSON),
    Column("file_path", String(500)),
    Column("row_count", Integer, nullable=False, default=0),
    Column("generated_by", String(64), nullable=False),
    Column("generated_at", DateTime, nullable=False),
    Column("expires_at", DateTime, nullable=False, index=True),
)


def ensure_report_tables(engine: Engine) -> None:
    REPORT_METADATA.create_all(engine)
    info("[report_tables] Report metadata tables verified")
