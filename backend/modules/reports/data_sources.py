"""
Code-owned catalog of reportable data sources.

A template names a logical data source; this module is the only place that
maps it to a physical table and lists the fields that may be queried. Caller
input never reaches a table or column name without passing through here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from sqlalchemy import Boolean, Column, DateTime, MetaData, Numeric, String, Table

from backend.modules.logger import error

from .report_errors import TemplateValidationError, UnknownDataSource
from .report_models import ColumnType

SOURCE_METADATA = MetaData()

DERIVED_SEPARATOR = "::"

# date truncations that may be applied to a date field, e.g. "createdAt::date"
DERIVED_TRANSFORMS = {"date", "month"}

_SQL_TYPES = {
    ColumnType.STRING: lambda: String(255),
    ColumnType.NUMBER: lambda: Numeric(14, 2, asdecimal=False),
    ColumnType.DATE: lambda: DateTime(),
    ColumnType.BOOLEAN: lambda: Boolean(),
}


@dataclass(frozen=True)
class FieldRef:
    """A resolved field reference: the physical column plus an optional truncation."""

    name: str
    base: str
    type: ColumnType
    transform: Optional[str] = None


class DataSource:
    def __init__(self, name: str, table_name: str, fields: Dict[str, ColumnType], tenant_field: str = "tenantId"):
        self.name = name
        self.table_name = table_name
        self.fields = dict(fields)
        self.tenant_field = tenant_field
        columns = [Column("id", String(36), primary_key=True), Column(tenant_field, String(36), index=True)]
        for field_name, field_type in self.fields.items():
            if field_name in ("id", tenant_field):
                continue
            columns.append(Column(field_name, _SQL_TYPES[field_type]()))
        self.table = Table(table_name, SOURCE_METADATA, *columns)

    def field_type(self, name: str) -> ColumnType:
        if name == "id" or name == self.tenant_field:
            return self.fields.get(name, ColumnType.STRING)
        return self.fields[name]

    def has_field(self, name: str) -> bool:
        return name in self.fields or name in ("id", self.tenant_field)

    def resolve_field(self, ref: str) -> FieldRef:
        if not ref or not isinstance(ref, str):
            raise TemplateValidationError("Field name is required")
        base, _, transform = ref.partition(DERIVED_SEPARATOR)
        if base == self.tenant_field:
            raise TemplateValidationError(f"Field '{ref}' is reserved", field=ref)
        if not self.has_field(base):
            raise TemplateValidationError(
                f"Unknown field '{base}' for data source '{self.name}'", field=ref
            )
        base_type = self.field_type(base)
        if not transform:
            return FieldRef(name=ref, base=base, type=base_type)
        if transform not in DERIVED_TRANSFORMS or base_type is not ColumnType.DATE:
            raise TemplateValidationError(f"Unsupported derived field '{ref}'", field=ref)
        return FieldRef(name=ref, base=base, type=ColumnType.DATE, transform=transform)


S = ColumnType.STRING
N = ColumnType.NUMBER
D = ColumnType.DATE
B = ColumnType.BOOLEAN

DATA_SOURCES: Dict[str, DataSource] = {
    source.name: source
    for source in [
        DataSource("patients", "patients", {
            "id": S, "createdAt": D, "firstName": S, "lastName": S, "gender": S,
            "dateOfBirth": D, "bloodGroup": S, "city": S, "isActive": B,
        }),
        DataSource("appointments", "appointments", {
            "id": S, "createdAt": D, "appointmentDate": D, "doctorId": S,
            "patientId": S, "status": S, "type": S,
        }),
        DataSource("billing", "invoices", {
            "id": S, "createdAt": D, "patientId": S, "total": N, "paid": N,
            "balance": N, "status": S,
        }),
        DataSource("payments", "payments", {
            "id": S, "createdAt": D, "paidAt": D, "invoiceId": S, "patientId": S,
            "amount": N, "mode": S,
        }),
        DataSource("lab_orders", "orders", {
            "id": S, "createdAt": D, "patientId": S, "doctorId": S, "orderType": S,
            "priority": S, "status": S,
        }),
        DataSource("pharmacy_sales", "pharmacy_sales", {
            "id": S, "createdAt": D, "patientId": S, "total": N, "paymentMode": S,
        }),
        DataSource("admissions", "admissions", {
            "id": S, "createdAt": D, "admissionDate": D, "dischargeDate": D,
            "patientId": S, "wardId": S, "bedId": S, "status": S,
        }),
        DataSource("opd_encounters", "encounters", {
            "id": S, "createdAt": D, "visitDate": D, "patientId": S, "doctorId": S,
            "type": S, "status": S,
        }),
        DataSource("employees", "employees", {
            "id": S, "createdAt": D, "joiningDate": D, "department": S,
            "designation": S, "status": S,
        }),
        DataSource("attendance", "attendance_logs", {
            "id": S, "createdAt": D, "punchTime": D, "userId": S, "punchType": S,
        }),
        DataSource("ipd_charges", "ipd_charges", {
            "id": S, "createdAt": D, "admissionId": S, "chargeType": S,
            "quantity": N, "amount": N,
        }),
        DataSource("commissions", "commissions", {
            "id": S, "createdAt": D, "referralSourceId": S, "commissionAmount": N,
            "status": S,
        }),
        DataSource("doctor_revenues", "doctor_revenues", {
            "id": S, "createdAt": D, "doctorId": S, "revenueAmount": N,
            "shareAmount": N, "status": S,
        }),
    ]
}


def get_data_source(name: str) -> DataSource:
    source = DATA_SOURCES.get(name)
    if source is None:
        error(f"[DataSources] Template references unmapped data source '{name}'")
        raise UnknownDataSource(name)
    return source
