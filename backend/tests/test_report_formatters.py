"""Tests for the export formatters."""
import csv
import io
import json
from datetime import date, datetime

import pytest
from openpyxl import load_workbook
from reportlab.pdfbase.pdfmetrics import stringWidth

from backend.modules.reports.report_errors import ExportError
from backend.modules.reports.report_formatters import (
    CsvFormatter,
    ExcelFormatter,
    FormatterRegistry,
    JsonFormatter,
    PdfFormatter,
    default_formatter_registry,
)
from backend.modules.reports.report_models import ReportFormat

COLUMNS = ["Name", "Amount", "Paid On", "Note"]
ROWS = [
    {"Name": "Asha Rao", "Amount": 1250.5, "Paid On": date(2024, 1, 5), "Note": "first, visit"},
    {"Name": 'Pat O"Brien, Jr', "Amount": 200, "Paid On": datetime(2024, 1, 6, 9, 30), "Note": "line1\nline2"},
    {"Name": "Ravi Kumar", "Amount": None, "Paid On": None, "Note": None},
]


class TestCsv:
    def test_parses_back_to_the_same_cells(self):
        content = CsvFormatter().render(COLUMNS, ROWS, "Payments").decode("utf-8")
        parsed = list(csv.reader(io.StringIO(content)))
        assert parsed[0] == COLUMNS
        assert parsed[1] == ["Asha Rao", "1250.5", "2024-01-05", "first, visit"]
        assert parsed[2] == ['Pat O"Brien, Jr', "200", "2024-01-06 09:30:00", "line1\nline2"]
        assert parsed[3] == ["Ravi Kumar", "", "", ""]

    def test_header_only_when_empty(self):
        content = CsvFormatter().render(COLUMNS, [], "Payments").decode("utf-8")
        assert content == "Name,Amount,Paid On,Note\n"

    def test_column_order_follows_columns_not_row_keys(self):
        content = CsvFormatter().render(["B", "A"], [{"A": 1, "B": 2}], "t").decode("utf-8")
        assert content.splitlines() == ["B,A", "2,1"]

    @pytest.mark.parametrize("text", [",", "\"", "\n", "a,\"b\"\nc"])
    def test_special_characters_parse_back(self, text):
        content = CsvFormatter().render(["Note", "Id"], [{"Note": text, "Id": "p-1"}], "t").decode("utf-8")
        parsed = list(csv.reader(io.StringIO(content)))
        assert parsed == [["Note", "Id"], [text, "p-1"]]


class TestExcel:
    def test_workbook_layout(self):
        content = ExcelFormatter().render(COLUMNS, ROWS, "Payments")
        ws = load_workbook(io.BytesIO(content)).active
        assert ws.title == "Report"
        assert [cell.value for cell in ws[1]] == COLUMNS
        assert all(cell.font.bold for cell in ws[1])
        assert ws["A2"].value == "Asha Rao"
        assert ws["B2"].value == 1250.5
        assert ws["B4"].value is None
        assert ws.max_row == 4

    def test_column_width_is_capped(self):
        content = ExcelFormatter().render(["Text"], [{"Text": "x" * 200}], "Long")
        ws = load_workbook(io.BytesIO(content)).active
        assert ws.column_dimensions["A"].width == 50

    def test_formula_like_text_stays_text(self):
        content = ExcelFormatter().render(["=Label"], [{"=Label": "=1+1"}, {"=Label": "=HYPERLINK(\"http://x.test\")"}], "t")
        ws = load_workbook(io.BytesIO(content)).active
        assert ws["A1"].data_type == "s"
        assert ws["A2"].data_type == "s"
        assert ws["A2"].value == "=1+1"
        assert ws["A3"].value == "=HYPERLINK(\"http://x.test\")"

    def test_control_characters_are_dropped(self):
        content = ExcelFormatter().render(["Name"], [{"Name": "Asha\x01Rao\x1f"}, {"Name": "tab\there"}], "t")
        ws = load_workbook(io.BytesIO(content)).active
        assert ws["A2"].value == "AshaRao"
        assert ws["A3"].value == "tab\there"


class TestJson:
    def test_structured_payload(self):
        payload = json.loads(JsonFormatter().render(COLUMNS, ROWS[:1], "Payments"))
        assert payload["title"] == "Payments"
        assert payload["columns"] == COLUMNS
        assert payload["rows"][0]["Amount"] == 1250.5
        assert payload["rows"][0]["Paid On"] == "2024-01-05"
        assert payload["rowCount"] == 1

    def test_does_not_produce_a_file(self):
        assert JsonFormatter().produces_file is False


class TestPdf:
    def test_renders_pdf_bytes(self):
        content = PdfFormatter().render(COLUMNS, ROWS, "Payments <Jan>")
        assert content.startswith(b"%PDF")

    def test_many_rows_span_pages(self):
        rows = [{"Name": f"Patient {i}", "Amount": i, "Paid On": None, "Note": ""} for i in range(200)]
        content = PdfFormatter().render(COLUMNS, rows, "Payments")
        assert content.startswith(b"%PDF")
        assert len(content) > len(PdfFormatter().render(COLUMNS, rows[:1], "Payments"))

    def test_long_values_are_truncated(self):
        formatter = PdfFormatter()
        fitted = formatter._fit("x" * 500, 100)
        assert fitted.endswith("...")
        assert len(fitted) < 500

    def test_short_values_untouched(self):
        assert PdfFormatter()._fit("cash", 100) == "cash"

    def test_truncation_keeps_the_longest_fitting_prefix(self):
        formatter = PdfFormatter()
        text = "abcdefghij" * 20000
        fitted = formatter._fit(text, 100)
        kept = len(fitted) - 3
        limit = 100 - formatter.cell_padding
        assert fitted == text[:kept] + "..."
        assert stringWidth(fitted, "Helvetica", formatter.font_size) <= limit
        longer = text[: kept + 1] + "..."
        assert stringWidth(longer, "Helvetica", formatter.font_size) > limit


class TestRegistry:
    def test_default_registry_covers_all_formats(self):
        registry = default_formatter_registry()
        assert set(registry.formats()) == set(ReportFormat)
        assert isinstance(registry.get("csv"), CsvFormatter)
        assert isinstance(registry.get(ReportFormat.PDF), PdfFormatter)

    def test_unknown_format(self):
        with pytest.raises(ExportError):
            default_formatter_registry().get("docx")

    def test_unregistered_format(self):
        registry = FormatterRegistry([CsvFormatter()])
        with pytest.raises(ExportError):
            registry.get("pdf")

    def test_register_adds_format(self):
        registry = FormatterRegistry()
        registry.register(JsonFormatter())
        assert registry.formats() == [ReportFormat.JSON]
