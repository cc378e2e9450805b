"""End-to-end tests for report generation, preview and template management."""
import csv
import os
from datetime import date, datetime, timedelta
from unittest.mock import patch

import pytest
from openpyxl import load_workbook

from backend.modules.reports.report_errors import (
    ArtifactNotFound,
    ExportError,
    FilterValidationError,
    ReportServiceError,
    RequestValidationError,
    SystemTemplateReadOnly,
    TemplateNotFound,
    TemplateValidationError,
)
from backend.modules.reports.report_service import MAX_PREVIEW_ROWS, safe_filename

from conftest import OTHER_TENANT, TENANT, payments_detail_template

NOW = datetime(2024, 3, 1, 12, 0)


def _generated_count(service, tenant_id=TENANT):
    return service.list_generated_reports(tenant_id)["total"]


class TestGenerate:
    def test_csv_artifact(self, service, templates):
        result = service.generate_report(
            templates["by_mode"], {"paidAt": ["2024-01-01", "2024-01-31"]}, "csv", TENANT, "alice", now=NOW
        )
        assert result.row_count == 2
        assert result.data is None
        assert result.expires_at == NOW + timedelta(days=7)
        with open(result.file_path, newline="") as fh:
            rows = list(csv.reader(fh))
        assert rows[0] == ["Mode", "Total", "Payments"]
        assert [(mode, float(total), int(count)) for mode, total, count in rows[1:]] == [
            ("card", 200.0, 1),
            ("cash", 1550.75, 2),
        ]

    def test_excel_artifact(self, service, templates):
        result = service.generate_report(templates["detail"], {"mode": "cash"}, "excel", TENANT, "alice")
        assert result.file_path.endswith(".xlsx")
        ws = load_workbook(result.file_path).active
        assert [cell.value for cell in ws[1]] == ["Paid At", "Amount", "Mode"]
        assert ws["B2"].value == 1250.5
        assert ws.max_row == 4

    def test_pdf_artifact(self, service, templates):
        result = service.generate_report(templates["daily"], {}, "pdf", TENANT, "alice")
        with open(result.file_path, "rb") as fh:
            assert fh.read(4) == b"%PDF"

    def test_json_returns_rows_without_file(self, service, templates):
        result = service.generate_report(templates["by_mode"], None, "json", TENANT, "alice")
        assert result.file_path is None
        assert result.columns == ["Mode", "Total", "Payments"]
        assert result.data == [
            {"Mode": "card", "Total": 200, "Payments": 1},
            {"Mode": "cash", "Total": 1650.75, "Payments": 3},
        ]
        assert _generated_count(service) == 1

    def test_parameters_recorded(self, service, templates):
        service.generate_report(
            templates["detail"], {"paidAt": ["2024-01-05", "2024-01-05"]}, "csv", TENANT, "alice"
        )
        listed = service.list_generated_reports(TENANT)["data"][0]
        assert listed["parameters"] == {"paidAt": ["2024-01-05T00:00:00", "2024-01-05T23:59:59.999999"]}
        assert listed["rowCount"] == 2
        assert listed["generatedBy"] == "alice"

    def test_empty_result_still_generates(self, service, templates):
        result = service.generate_report(templates["detail"], {"mode": "upi"}, "csv", TENANT, "alice")
        assert result.row_count == 0
        with open(result.file_path) as fh:
            assert fh.read() == "Paid At,Amount,Mode\n"

    def test_unknown_template(self, service, templates):
        with pytest.raises(TemplateNotFound):
            service.generate_report("missing", {}, "csv", TENANT, "alice")

    def test_other_tenants_template_is_not_found(self, service, templates):
        with pytest.raises(TemplateNotFound):
            service.generate_report(templates["detail"], {}, "csv", OTHER_TENANT, "bob")

    def test_unsupported_format(self, service, templates):
        with pytest.raises(ExportError):
            service.generate_report(templates["detail"], {}, "docx", TENANT, "alice")
        assert _generated_count(service) == 0

    def test_bad_filter_persists_nothing(self, service, templates):
        with pytest.raises(FilterValidationError):
            service.generate_report(templates["detail"], {"amount": 5}, "csv", TENANT, "alice")
        assert _generated_count(service) == 0

    def test_render_failure_is_export_error(self, service, templates):
        formatter = service.formatters.get("csv")
        with patch.object(formatter, "render", side_effect=RuntimeError("boom")):
            with pytest.raises(ExportError):
                service.generate_report(templates["detail"], {}, "csv", TENANT, "alice")
        assert _generated_count(service) == 0

    def test_from_request(self, service, templates):
        result = service.generate_from_request(
            {"templateId": templates["detail"], "filters": {"mode": "card"}, "format": "csv"}, TENANT, "alice"
        )
        assert result.row_count == 1

    def test_from_request_rejects_bad_payload(self, service):
        with pytest.raises(RequestValidationError) as exc_info:
            service.generate_from_request({"format": "csv"}, TENANT, "alice")
        assert exc_info.value.details == {"field": "templateId"}


class TestArtifacts:
    def test_open_artifact(self, service, templates):
        result = service.generate_report(templates["detail"], {}, "csv", TENANT, "alice")
        download = service.open_artifact(result.report_id, TENANT)
        assert download.path == result.file_path
        assert download.content_type == "text/csv"
        assert download.filename == "Payments_Detail.csv"

    def test_other_tenant_cannot_open(self, service, templates):
        result = service.generate_report(templates["detail"], {}, "csv", TENANT, "alice")
        with pytest.raises(ArtifactNotFound):
            service.open_artifact(result.report_id, OTHER_TENANT)

    def test_json_report_has_no_file(self, service, templates):
        result = service.generate_report(templates["detail"], {}, "json", TENANT, "alice")
        with pytest.raises(ArtifactNotFound) as exc_info:
            service.open_artifact(result.report_id, TENANT)
        assert exc_info.value.status_code == 404

    def test_deleted_file(self, service, templates):
        result = service.generate_report(templates["detail"], {}, "csv", TENANT, "alice")
        os.remove(result.file_path)
        with pytest.raises(ArtifactNotFound):
            service.open_artifact(result.report_id, TENANT)

    def test_cleanup_expired(self, service, templates):
        old = service.generate_report(templates["detail"], {}, "csv", TENANT, "alice", now=NOW - timedelta(days=10))
        fresh = service.generate_report(templates["detail"], {}, "csv", TENANT, "alice", now=NOW)
        assert service.cleanup_expired_reports(NOW) == 1
        assert not os.path.exists(old.file_path)
        assert os.path.exists(fresh.file_path)
        assert service.cleanup_expired_reports(NOW) == 0

    def test_listing_pagination(self, service, templates):
        for _ in range(3):
            service.generate_report(templates["detail"], {}, "json", TENANT, "alice")
        page = service.list_generated_reports(TENANT, limit=2, offset=2)
        assert page["total"] == 3
        assert len(page["data"]) == 1
        with pytest.raises(ReportServiceError):
            service.list_generated_reports(TENANT, limit=0)


def test_safe_filename():
    assert safe_filename("Doctor-wise Revenue (Q1)") == "Doctor_wise_Revenue__Q1_"


class TestPreview:
    def test_preview_pages_without_persisting(self, service, templates):
        preview = service.preview_report(templates["detail"], {}, TENANT, limit=2, offset=1)
        assert [row["Amount"] for row in preview.rows] == [200, 300.25]
        assert preview.total_row_count == 4
        assert preview.limit == 2
        assert _generated_count(service) == 0

    def test_limit_is_clamped(self, service, templates):
        preview = service.preview_report(templates["detail"], {}, TENANT, limit=10 ** 6)
        assert preview.limit == MAX_PREVIEW_ROWS
        assert len(preview.rows) == 4

    def test_preview_from_request_rejects_negative_offset(self, service, templates):
        with pytest.raises(RequestValidationError):
            service.preview_from_request({"templateId": templates["detail"], "offset": -1}, TENANT)

    def test_preview_from_request(self, service, templates):
        preview = service.preview_from_request(
            {"templateId": templates["patients"], "filters": {"city": ["Pune"]}, "limit": 10}, TENANT
        )
        assert preview.columns == ["First Name", "Last Name", "City"]
        assert preview.total_row_count == 3


class TestSystemTemplates:
    def test_seed_is_idempotent(self, service, template_store):
        assert template_store.seed_system_templates(TENANT, "system") == 9
        assert template_store.seed_system_templates(TENANT, "system") == 0
        assert len(template_store.list_templates(TENANT)) == 9
        assert template_store.list_templates(OTHER_TENANT) == []

    def test_monthly_revenue_summary(self, service, template_store):
        template_store.seed_system_templates(TENANT, "system")
        monthly = template_store.list_templates(TENANT, search="Monthly Revenue")[0]
        preview = service.preview_report(monthly.id, {}, TENANT)
        assert preview.columns == ["Month", "Total Amount", "Payment Mode"]
        assert preview.total_row_count == 3
        assert preview.rows[0] == {"Month": date(2024, 2, 1), "Total Amount": 100, "Payment Mode": "cash"}

    def test_daily_census(self, service, template_store):
        template_store.seed_system_templates(TENANT, "system")
        census = template_store.list_templates(TENANT, search="Census")[0]
        preview = service.preview_report(census.id, {"createdAt": ["2024-01-05", "2024-01-06"]}, TENANT)
        assert preview.rows == [
            {"Date": date(2024, 1, 6), "Total Patients": 1},
            {"Date": date(2024, 1, 5), "Total Patients": 2},
        ]

    def test_system_templates_are_read_only(self, template_store):
        template_store.seed_system_templates(TENANT, "system")
        system = template_store.list_templates(TENANT, category="financial")[0]
        with pytest.raises(SystemTemplateReadOnly):
            template_store.update_template(system.id, TENANT, payments_detail_template())
        with pytest.raises(SystemTemplateReadOnly):
            template_store.deactivate_template(system.id, TENANT)


class TestTemplateStore:
    def test_duplicate_name_rejected(self, template_store, templates):
        with pytest.raises(TemplateValidationError):
            template_store.create_template(TENANT, payments_detail_template(), "alice")

    def test_same_name_allowed_for_other_tenant(self, template_store, templates):
        created = template_store.create_template(OTHER_TENANT, payments_detail_template(), "bob")
        assert created.tenant_id == OTHER_TENANT

    def test_unknown_field_rejected(self, template_store):
        payload = payments_detail_template()
        payload["columns"].append({"field": "ssn", "label": "SSN"})
        with pytest.raises(TemplateValidationError):
            template_store.create_template(TENANT, payload, "alice")

    def test_unknown_data_source_rejected(self, template_store):
        payload = dict(payments_detail_template(), dataSource="salaries")
        with pytest.raises(TemplateValidationError) as exc_info:
            template_store.create_template(TENANT, payload, "alice")
        assert exc_info.value.details == {"field": "dataSource"}

    def test_blank_name_rejected(self, template_store):
        payload = dict(payments_detail_template(), name="   ")
        with pytest.raises(TemplateValidationError):
            template_store.create_template(TENANT, payload, "alice")

    def test_update_and_deactivate(self, service, template_store, templates):
        payload = dict(payments_detail_template(), name="Cash Payments")
        payload["filters"] = [{"field": "mode", "operator": "eq", "defaultValue": "cash"}]
        template_store.update_template(templates["detail"], TENANT, payload)

        preview = service.preview_report(templates["detail"], {}, TENANT)
        assert preview.total_row_count == 3

        template_store.deactivate_template(templates["detail"], TENANT)
        with pytest.raises(TemplateNotFound):
            service.preview_report(templates["detail"], {}, TENANT)

    def test_list_filters(self, template_store, templates):
        names = [t.name for t in template_store.list_templates(TENANT, category="financial")]
        assert names == ["Daily Revenue", "Payments Detail", "Revenue by Mode"]
        assert [t.name for t in template_store.list_templates(TENANT, search="revenue")] == [
            "Daily Revenue",
            "Revenue by Mode",
        ]


class TestFilterDefaults:
    def test_empty_filters_match_explicit_defaults(self, service, template_store):
        payload = dict(payments_detail_template(), name="Large Cash Payments")
        payload["filters"] = [
            {"field": "mode", "operator": "eq", "defaultValue": "cash"},
            {"field": "amount", "operator": "gte", "defaultValue": 200},
            {"field": "paidAt", "operator": "between", "defaultValue": None},
        ]
        template_id = template_store.create_template(TENANT, payload, "alice").id

        implicit = service.preview_report(template_id, {}, TENANT)
        explicit = service.preview_report(template_id, {"mode": "cash", "amount": 200}, TENANT)

        assert implicit.total_row_count == explicit.total_row_count == 2
        assert implicit.rows == explicit.rows
