"""
Export formatters for generated reports.

Each formatter turns ordered columns and row dictionaries into the bytes of
one artifact. Formatters never reorder, drop or coerce values; only dates
get a display representation, and worksheets drop the control characters
Excel cannot store.
"""

import csv
import io
import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence

from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from backend.modules.reports.report_errors import ExportError
from backend.modules.reports.report_models import ReportFormat

Rows = Sequence[Dict[str, Any]]


def _display(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    return value


def _cell_value(value: Any) -> Any:
    """Drop control characters a worksheet cannot hold; the visible text is unchanged."""
    if isinstance(value, str):
        return ILLEGAL_CHARACTERS_RE.sub("", value)
    return value


class ReportFormatter:
    format: ReportFormat
    extension: str = ""
    content_type: str = "application/octet-stream"
    produces_file: bool = True

    def render(self, columns: List[str], rows: Rows, title: str) -> bytes:
        raise NotImplementedError


class ExcelFormatter(ReportFormatter):
    format = ReportFormat.EXCEL
    extension = "xlsx"
    content_type = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

    max_column_width = 50

    def render(self, columns: List[str], rows: Rows, title: str) -> bytes:
        wb = Workbook()
        ws = wb.active
        ws.title = "Report"

        self._append(ws, [_cell_value(col) for col in columns])
        header_font = Font(bold=True)
        for cell in ws[1]:
            cell.font = header_font

        widths = [len(str(col)) for col in columns]
        for row in rows:
            values = [_cell_value(row.get(col)) for col in columns]
            self._append(ws, values)
            for idx, value in enumerate(values):
                if value is not None:
                    widths[idx] = max(widths[idx], len(str(_display(value))))

        for idx, width in enumerate(widths, start=1):
            ws.column_dimensions[get_column_letter(idx)].width = min(width + 2, self.max_column_width)

        output = io.BytesIO()
        wb.save(output)
        return output.getvalue()

    @staticmethod
    def _append(ws, values: List[Any]) -> None:
        ws.append(values)
        for cell in ws[ws.max_row]:
            # text that looks like a formula stays text
            if isinstance(cell.value, str) and cell.data_type == "f":
                cell.data_type = "s"


class CsvFormatter(ReportFormatter):
    format = ReportFormat.CSV
    extension = "csv"
    content_type = "text/csv"

    def render(self, columns: List[str], rows: Rows, title: str) -> bytes:
        output = io.StringIO()
        writer = csv.writer(output, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
        writer.writerow(columns)
        for row in rows:
            writer.writerow(["" if row.get(col) is None else _display(row.get(col)) for col in columns])
        return output.getvalue().encode("utf-8")


class PdfFormatter(ReportFormatter):
    """Landscape A4 table with a repeated header and a record-count footer."""

    format = ReportFormat.PDF
    extension = "pdf"
    content_type = "application/pdf"

    column_width = 100
    margin = 0.5 * inch
    font_name = "Helvetica"
    font_size = 8
    cell_padding = 6

    def render(self, columns: List[str], rows: Rows, title: str) -> bytes:
        page_size = landscape(A4)
        usable_width = page_size[0] - 2 * self.margin
        col_width = min(self.column_width, usable_width / max(len(columns), 1))

        output = io.BytesIO()
        doc = SimpleDocTemplate(
            output,
            pagesize=page_size,
            leftMargin=self.margin,
            rightMargin=self.margin,
            topMargin=self.margin,
            bottomMargin=self.margin,
            title=title,
        )
        styles = getSampleStyleSheet()
        elements = [
            Paragraph(_escape_markup(title), styles["Title"]),
            Paragraph(f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}", styles["Normal"]),
            Spacer(1, 12),
        ]

        table_data = [[self._fit(str(col), col_width, bold=True) for col in columns]]
        for row in rows:
            table_data.append([self._fit(self._text(row.get(col)), col_width) for col in columns])

        table = Table(table_data, colWidths=[col_width] * len(columns), repeatRows=1)
        table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, 0), colors.grey),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('FONTNAME', (0, 1), (-1, -1), self.font_name),
            ('FONTSIZE', (0, 0), (-1, -1), self.font_size),
            ('ALIGN', (0, 0), (-1, -1), 'LEFT'),
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
            ('LEFTPADDING', (0, 0), (-1, -1), self.cell_padding / 2),
            ('RIGHTPADDING', (0, 0), (-1, -1), self.cell_padding / 2),
            ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.whitesmoke]),
            ('GRID', (0, 0), (-1, -1), 0.5, colors.black),
        ]))
        elements.append(table)

        total = len(rows)

        def _footer(canvas, document):
            canvas.saveState()
            canvas.setFont(self.font_name, self.font_size)
            canvas.drawString(self.margin, self.margin / 2, f"Total Records: {total}")
            canvas.drawRightString(page_size[0] - self.margin, self.margin / 2, f"Page {document.page}")
            canvas.restoreState()

        try:
            doc.build(elements, onFirstPage=_footer, onLaterPages=_footer)
        except Exception as exc:
            raise ExportError(f"Failed to render PDF: {exc}") from exc
        return output.getvalue()

    def _text(self, value: Any) -> str:
        if value is None:
            return ""
        return str(_display(value))

    def _fit(self, text: str, col_width: float, bold: bool = False) -> str:
        """Truncate ``text`` so it fits the fixed column width on one line."""
        font = "Helvetica-Bold" if bold else self.font_name
        limit = col_width - self.cell_padding
        text = text.replace("\n", " ")
        if stringWidth(text, font, self.font_size) <= limit:
            return text
        ellipsis = "..."
        low, high = 0, len(text)
        while low < high:
            mid = (low + high + 1) // 2
            if stringWidth(text[:mid] + ellipsis, font, self.font_size) <= limit:
                low = mid
            else:
                high = mid - 1
        return text[:low] + ellipsis


class JsonFormatter(ReportFormatter):
    """Structured pass-through; the rows go back to the caller, not to disk."""

    format = ReportFormat.JSON
    extension = "json"
    content_type = "application/json"
    produces_file = False

    def render(self, columns: List[str], rows: Rows, title: str) -> bytes:
        payload = {"title": title, "columns": list(columns), "rows": list(rows), "rowCount": len(rows)}
        return json.dumps(payload, default=_json_default).encode("utf-8")


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return str(value)


def _escape_markup(text: str) -> str:
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


class FormatterRegistry:
    """Maps each report format to the formatter that renders it."""

    def __init__(self, formatters: Optional[Iterable[ReportFormatter]] = None):
        self._formatters: Dict[ReportFormat, ReportFormatter] = {}
        for formatter in formatters or ():
            self.register(formatter)

    def register(self, formatter: ReportFormatter) -> None:
        self._formatters[formatter.format] = formatter

    def get(self, report_format) -> ReportFormatter:
        try:
            key = ReportFormat(report_format)
        except ValueError:
            raise ExportError(f"Unsupported output format: {report_format}")
        formatter = self._formatters.get(key)
        if formatter is None:
            raise ExportError(f"No formatter registered for {key.value}")
        return formatter

    def formats(self) -> List[ReportFormat]:
        return list(self._formatters)


def default_formatter_registry() -> FormatterRegistry:
    return FormatterRegistry([ExcelFormatter(), PdfFormatter(), CsvFormatter(), JsonFormatter()])
