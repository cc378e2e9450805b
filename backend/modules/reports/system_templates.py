"""Built-in hospital report templates seeded for every tenant."""

from typing import List

from backend.modules.reports.report_models import ReportTemplate


def _between(field):
    return {"field": field, "operator": "between", "defaultValue": None}


_SYSTEM_TEMPLATES = [
    {
        "name": "Daily Patient Census",
        "description": "Daily count of patient registrations and visits",
        "category": "clinical",
        "dataSource": "patients",
        "columns": [
            {"field": "createdAt::date", "label": "Date", "type": "date"},
            {"field": "id", "label": "Total Patients", "type": "number", "aggregate": "count"},
        ],
        "filters": [_between("createdAt")],
        "groupBy": ["createdAt::date"],
        "sortBy": [{"field": "createdAt::date", "direction": "desc"}],
        "chartType": "line",
    },
    {
        "name": "Monthly Revenue Summary",
        "description": "Total revenue collected by month",
        "category": "financial",
        "dataSource": "payments",
        "columns": [
            {"field": "paidAt::month", "label": "Month", "type": "date"},
            {"field": "amount", "label": "Total Amount", "type": "number", "aggregate": "sum"},
            {"field": "mode", "label": "Payment Mode", "type": "string"},
        ],
        "filters": [_between("paidAt")],
        "groupBy": ["paidAt::month", "mode"],
        "sortBy": [{"field": "paidAt::month", "direction": "desc"}],
        "chartType": "bar",
    },
    {
        "name": "OPD Statistics",
        "description": "OPD encounter statistics by date",
        "category": "clinical",
        "dataSource": "opd_encounters",
        "columns": [
            {"field": "visitDate::date", "label": "Visit Date", "type": "date"},
            {"field": "id", "label": "Total Encounters", "type": "number", "aggregate": "count"},
            {"field": "status", "label": "Status", "type": "string"},
        ],
        "filters": [
            _between("visitDate"),
            {"field": "type", "operator": "eq", "defaultValue": "opd"},
        ],
        "groupBy": ["visitDate::date", "status"],
        "sortBy": [{"field": "visitDate::date", "direction": "desc"}],
        "chartType": "table",
    },
    {
        "name": "IPD Occupancy Report",
        "description": "IPD bed occupancy statistics",
        "category": "operational",
        "dataSource": "admissions",
        "columns": [
            {"field": "admissionDate::date", "label": "Admission Date", "type": "date"},
            {"field": "id", "label": "Total Admissions", "type": "number", "aggregate": "count"},
            {"field": "status", "label": "Status", "type": "string"},
        ],
        "filters": [_between("admissionDate")],
        "groupBy": ["admissionDate::date", "status"],
        "sortBy": [{"field": "admissionDate::date", "direction": "desc"}],
        "chartType": "bar",
    },
    {
        "name": "Pharmacy Sales Report",
        "description": "Pharmacy sales summary",
        "category": "financial",
        "dataSource": "pharmacy_sales",
        "columns": [
            {"field": "createdAt::date", "label": "Sale Date", "type": "date"},
            {"field": "total", "label": "Total Sales", "type": "number", "aggregate": "sum"},
            {"field": "paymentMode", "label": "Payment Mode", "type": "string"},
        ],
        "filters": [_between("createdAt")],
        "groupBy": ["createdAt::date", "paymentMode"],
        "sortBy": [{"field": "createdAt::date", "direction": "desc"}],
        "chartType": "bar",
    },
    {
        "name": "Outstanding Dues Report",
        "description": "Invoices with pending balance",
        "category": "financial",
        "dataSource": "billing",
        "columns": [
            {"field": "createdAt::date", "label": "Invoice Date", "type": "date"},
            {"field": "total", "label": "Total Amount", "type": "number", "aggregate": "sum"},
            {"field": "balance", "label": "Outstanding Balance", "type": "number", "aggregate": "sum"},
        ],
        "filters": [
            {"field": "balance", "operator": "gt", "defaultValue": 0},
            _between("createdAt"),
        ],
        "groupBy": ["createdAt::date"],
        "sortBy": [{"field": "createdAt::date", "direction": "desc"}],
        "chartType": "table",
    },
    {
        "name": "Doctor-wise Revenue",
        "description": "Revenue generated by each doctor",
        "category": "financial",
        "dataSource": "doctor_revenues",
        "columns": [
            {"field": "doctorId", "label": "Doctor ID", "type": "string"},
            {"field": "revenueAmount", "label": "Total Revenue", "type": "number", "aggregate": "sum"},
            {"field": "shareAmount", "label": "Doctor Share", "type": "number", "aggregate": "sum"},
        ],
        "filters": [
            _between("createdAt"),
            {"field": "status", "operator": "eq", "defaultValue": "approved"},
        ],
        "groupBy": ["doctorId"],
        "sortBy": [{"field": "Total Revenue", "direction": "desc"}],
        "chartType": "pie",
    },
    {
        "name": "Commission Report",
        "description": "Referral commission summary",
        "category": "financial",
        "dataSource": "commissions",
        "columns": [
            {"field": "createdAt::date", "label": "Date", "type": "date"},
            {"field": "referralSourceId", "label": "Referral Source", "type": "string"},
            {"field": "commissionAmount", "label": "Commission Amount", "type": "number", "aggregate": "sum"},
            {"field": "status", "label": "Status", "type": "string"},
        ],
        "filters": [
            _between("createdAt"),
            {"field": "status", "operator": "in", "defaultValue": ["pending", "approved"]},
        ],
        "groupBy": ["createdAt::date", "referralSourceId", "status"],
        "sortBy": [{"field": "createdAt::date", "direction": "desc"}],
        "chartType": "table",
    },
    {
        "name": "Employee Attendance Report",
        "description": "Employee attendance summary",
        "category": "hr",
        "dataSource": "attendance",
        "columns": [
            {"field": "punchTime::date", "label": "Date", "type": "date"},
            {"field": "userId", "label": "Employee", "type": "string"},
            {"field": "punchType", "label": "Punch Type", "type": "string"},
            {"field": "id", "label": "Count", "type": "number", "aggregate": "count"},
        ],
        "filters": [_between("punchTime")],
        "groupBy": ["punchTime::date", "userId", "punchType"],
        "sortBy": [{"field": "punchTime::date", "direction": "desc"}],
        "chartType": "table",
    },
]


def get_system_report_templates(tenant_id: str, created_by: str) -> List[ReportTemplate]:
    templates = []
    for definition in _SYSTEM_TEMPLATES:
        payload = dict(definition, tenantId=tenant_id, createdBy=created_by, isSystem=True, isActive=True)
        templates.append(ReportTemplate.from_dict(payload))
    return templates
