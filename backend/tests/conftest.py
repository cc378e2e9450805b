"""Shared fixtures: a SQLite report database seeded with a small hospital dataset."""
import os
import sys
import tempfile
from datetime import datetime

import pytest

WORKSPACE_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if WORKSPACE_ROOT not in sys.path:
    sys.path.insert(0, WORKSPACE_ROOT)

os.environ.setdefault("LOG_FILE", os.path.join(tempfile.gettempdir(), "hms_reports_tests.log"))

from sqlalchemy import create_engine  # noqa: E402

from backend.database.report_tables import ensure_report_tables  # noqa: E402
from backend.modules.reports.data_sources import DATA_SOURCES, SOURCE_METADATA  # noqa: E402
from backend.modules.reports.report_config import ReportEngineConfig, SmtpConfig  # noqa: E402
from backend.modules.reports.report_service import ReportService  # noqa: E402
from backend.modules.reports.template_store import TemplateStore  # noqa: E402

TENANT = "tenant-a"
OTHER_TENANT = "tenant-b"

PAYMENTS = [
    {"id": "pay-1", "tenantId": TENANT, "paidAt": datetime(2024, 1, 5, 10, 0), "amount": 1250.50, "mode": "cash"},
    {"id": "pay-2", "tenantId": TENANT, "paidAt": datetime(2024, 1, 5, 15, 30), "amount": 200.00, "mode": "card"},
    {"id": "pay-3", "tenantId": TENANT, "paidAt": datetime(2024, 1, 6, 9, 0), "amount": 300.25, "mode": "cash"},
    {"id": "pay-4", "tenantId": TENANT, "paidAt": datetime(2024, 2, 10, 12, 0), "amount": 100.00, "mode": "cash"},
    {"id": "pay-9", "tenantId": OTHER_TENANT, "paidAt": datetime(2024, 1, 5, 11, 0), "amount": 9999.00, "mode": "cash"},
]

PATIENTS = [
    {"id": "pat-1", "tenantId": TENANT, "createdAt": datetime(2024, 1, 5, 8, 0), "firstName": "Asha", "lastName": "Rao", "gender": "F", "city": "Pune"},
    {"id": "pat-2", "tenantId": TENANT, "createdAt": datetime(2024, 1, 5, 12, 0), "firstName": "Ravi", "lastName": "Kumar", "gender": "M", "city": "Mumbai"},
    {"id": "pat-3", "tenantId": TENANT, "createdAt": datetime(2024, 1, 6, 9, 30), "firstName": "Pat", "lastName": 'O"Brien, Jr', "gender": "M", "city": "Pune"},
    {"id": "pat-4", "tenantId": TENANT, "createdAt": datetime(2024, 1, 7, 10, 0), "firstName": "Meera", "lastName": "Shah", "gender": "F", "city": "Delhi"},
    {"id": "pat-5", "tenantId": TENANT, "createdAt": datetime(2024, 1, 7, 18, 45), "firstName": "Sunil", "lastName": "Patil", "gender": "M", "city": "Pune"},
    {"id": "pat-9", "tenantId": OTHER_TENANT, "createdAt": datetime(2024, 1, 5, 9, 0), "firstName": "Other", "lastName": "Tenant", "gender": "F", "city": "Pune"},
]

INVOICES = [
    {"id": "inv-1", "tenantId": TENANT, "createdAt": datetime(2024, 1, 5, 9, 0), "patientId": "pat-1", "total": 1000.0, "paid": 1000.0, "balance": 0.0, "status": "paid"},
    {"id": "inv-2", "tenantId": TENANT, "createdAt": datetime(2024, 1, 5, 13, 0), "patientId": "pat-2", "total": 500.0, "paid": 200.0, "balance": 300.0, "status": "partial"},
    {"id": "inv-3", "tenantId": TENANT, "createdAt": datetime(2024, 1, 6, 10, 0), "patientId": "pat-3", "total": 800.0, "paid": 0.0, "balance": 800.0, "status": "unpaid"},
]


def payments_detail_template():
    return {
        "name": "Payments Detail",
        "category": "financial",
        "dataSource": "payments",
        "columns": [
            {"field": "paidAt", "label": "Paid At", "type": "date"},
            {"field": "amount", "label": "Amount", "type": "number"},
            {"field": "mode", "label": "Mode", "type": "string"},
        ],
        "filters": [
            {"field": "paidAt", "operator": "between", "defaultValue": None},
            {"field": "mode", "operator": "eq", "defaultValue": None},
        ],
        "sortBy": [{"field": "paidAt", "direction": "asc"}],
    }


def revenue_by_mode_template():
    return {
        "name": "Revenue by Mode",
        "category": "financial",
        "dataSource": "payments",
        "columns": [
            {"field": "mode", "label": "Mode", "type": "string"},
            {"field": "amount", "label": "Total", "type": "number", "aggregate": "sum"},
            {"field": "id", "label": "Payments", "type": "number", "aggregate": "count"},
        ],
        "filters": [{"field": "paidAt", "operator": "between", "defaultValue": None}],
        "groupBy": ["mode"],
        "sortBy": [{"field": "Mode", "direction": "asc"}],
    }


def daily_revenue_template():
    return {
        "name": "Daily Revenue",
        "category": "financial",
        "dataSource": "payments",
        "columns": [
            {"field": "paidAt::date", "label": "Date", "type": "date"},
            {"field": "amount", "label": "Total", "type": "number", "aggregate": "sum"},
        ],
        "groupBy": ["paidAt::date"],
        "sortBy": [{"field": "paidAt::date", "direction": "asc"}],
    }


def patient_search_template():
    return {
        "name": "Patient Search",
        "category": "clinical",
        "dataSource": "patients",
        "columns": [
            {"field": "firstName", "label": "First Name"},
            {"field": "lastName", "label": "Last Name"},
            {"field": "city", "label": "City"},
        ],
        "filters": [
            {"field": "firstName", "operator": "contains", "defaultValue": None},
            {"field": "city", "operator": "in", "defaultValue": None},
        ],
        "sortBy": [{"field": "firstName", "direction": "asc"}],
    }


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'reports.db'}")
    SOURCE_METADATA.create_all(engine)
    ensure_report_tables(engine)
    with engine.begin() as conn:
        conn.execute(DATA_SOURCES["payments"].table.insert(), [dict(row, createdAt=row["paidAt"]) for row in PAYMENTS])
        conn.execute(DATA_SOURCES["patients"].table.insert(), PATIENTS)
        conn.execute(DATA_SOURCES["billing"].table.insert(), INVOICES)
    yield engine
    engine.dispose()


@pytest.fixture
def config(tmp_path):
    return ReportEngineConfig(
        database_url="sqlite://",
        output_directory=str(tmp_path / "generated_reports"),
        retention_days=7,
        smtp=SmtpConfig(),
    )


@pytest.fixture
def template_store(engine):
    return TemplateStore(engine)


@pytest.fixture
def service(engine, config, template_store):
    return ReportService(engine, config=config, templates=template_store)


@pytest.fixture
def templates(template_store):
    """Create the test templates for TENANT and return their ids by short name."""
    created = {
        "detail": template_store.create_template(TENANT, payments_detail_template(), "alice"),
        "by_mode": template_store.create_template(TENANT, revenue_by_mode_template(), "alice"),
        "daily": template_store.create_template(TENANT, daily_revenue_template(), "alice"),
        "patients": template_store.create_template(TENANT, patient_search_template(), "alice"),
    }
    return {key: template.id for key, template in created.items()}
