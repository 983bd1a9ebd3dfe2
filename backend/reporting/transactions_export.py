"""Render transaction exports as CSV or PDF documents."""

from __future__ import annotations

import csv
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from io import BytesIO, StringIO
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.pdfgen.canvas import Canvas
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from shared.models import Transaction, TransactionType


CSV_COLUMNS = (
    "date",
    "description",
    "amount",
    "type",
    "category",
    "subcategory",
    "balance",
    "reference",
    "is_recurring",
    "tags",
    "statement_id",
)

PDF_DISPLAY_LIMIT = 500


@dataclass(slots=True)
class TransactionsReportData:
    """Input payload for transaction export rendering."""

    title: str
    currency: str
    transactions: list[Transaction]
    filters_label: str = ""


def _format_amount(value: Decimal, currency: str) -> str:
    return f"{value.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP):,.2f} {currency}"


def render_transactions_csv(transactions: list[Transaction]) -> bytes:
    """Return UTF-8 CSV bytes, one row per transaction."""

    buffer = StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_COLUMNS)
    for item in transactions:
        writer.writerow(
            [
                item.date.isoformat(),
                item.description,
                str(item.amount),
                item.type.value,
                item.category or "",
                item.subcategory or "",
                "" if item.balance is None else str(item.balance),
                item.reference or "",
                "true" if item.is_recurring else "false",
                ";".join(item.tags),
                str(item.statement_id),
            ]
        )
    return buffer.getvalue().encode("utf-8")


def _totals(transactions: list[Transaction]) -> tuple[Decimal, Decimal]:
    credits = sum(
        (abs(item.amount) for item in transactions if item.type == TransactionType.CREDIT),
        Decimal("0"),
    )
    debits = sum(
        (abs(item.amount) for item in transactions if item.type == TransactionType.DEBIT),
        Decimal("0"),
    )
    return credits, debits


class _FooterCanvas(Canvas):
    def __init__(self, *args, generated_on: str, **kwargs):
        super().__init__(*args, **kwargs)
        self._generated_on = generated_on
        self._saved_page_states: list[dict] = []

    def showPage(self) -> None:  # noqa: N802 (ReportLab API)
        self._saved_page_states.append(dict(self.__dict__))
        self._startPage()

    def save(self) -> None:
        page_count = len(self._saved_page_states)
        for state in self._saved_page_states:
            self.__dict__.update(state)
            self._draw_footer(page_count=page_count)
            super().showPage()
        super().save()

    def _draw_footer(self, *, page_count: int) -> None:
        self.setFont("Helvetica", 8)
        self.setFillColor(colors.HexColor("#8A8F98"))
        self.drawString(20 * mm, 10 * mm, f"Generated on {self._generated_on}")
        self.drawRightString(190 * mm, 10 * mm, f"Page {self._pageNumber}/{page_count}")


def _build_summary_table(data: TransactionsReportData) -> Table:
    styles = getSampleStyleSheet()
    card_style = ParagraphStyle(
        name="SummaryCard",
        parent=styles["BodyText"],
        fontSize=10,
        leading=14,
        textColor=colors.HexColor("#1F2937"),
    )
    credits, debits = _totals(data.transactions)
    cells = [
        [
            Paragraph("<b>Transactions</b><br/>" + str(len(data.transactions)), card_style),
            Paragraph("<b>Credits</b><br/>" + escape(_format_amount(credits, data.currency)), card_style),
            Paragraph("<b>Debits</b><br/>" + escape(_format_amount(debits, data.currency)), card_style),
        ]
    ]
    table = Table(cells, colWidths=[58 * mm, 58 * mm, 58 * mm])
    table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, -1), colors.HexColor("#F4F6F8")),
                ("BOX", (0, 0), (-1, -1), 0.6, colors.HexColor("#DDE2E8")),
                ("INNERGRID", (0, 0), (-1, -1), 0.4, colors.HexColor("#DDE2E8")),
                ("LEFTPADDING", (0, 0), (-1, -1), 8),
                ("RIGHTPADDING", (0, 0), (-1, -1), 8),
                ("TOPPADDING", (0, 0), (-1, -1), 8),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 8),
            ]
        )
    )
    return table


def _build_transactions_table(data: TransactionsReportData) -> Table:
    def _truncate_text(value: str, max_length: int = 40) -> str:
        if len(value) <= max_length:
            return value
        return value[: max_length - 1].rstrip() + "…"

    table_data = [["Date", "Description", "Category", "Amount"]]
    if not data.transactions:
        table_data.append(["-", "No transactions", "-", _format_amount(Decimal("0"), data.currency)])
    else:
        for item in data.transactions[:PDF_DISPLAY_LIMIT]:
            signed = -abs(item.amount) if item.type == TransactionType.DEBIT else abs(item.amount)
            table_data.append(
                [
                    item.date.isoformat(),
                    _truncate_text(item.description or ""),
                    item.category or "-",
                    _format_amount(signed, data.currency),
                ]
            )

    table = Table(table_data, colWidths=[26 * mm, 76 * mm, 44 * mm, 32 * mm], repeatRows=1)
    table_style: list[tuple] = [
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#EEF1F4")),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("GRID", (0, 0), (-1, -1), 0.25, colors.HexColor("#D7DCE2")),
        ("ALIGN", (3, 1), (3, -1), "RIGHT"),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("TOPPADDING", (0, 0), (-1, -1), 4),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
    ]
    for row_index in range(1, len(table_data)):
        if row_index % 2 == 0:
            table_style.append(("BACKGROUND", (0, row_index), (-1, row_index), colors.HexColor("#FAFBFC")))
    table.setStyle(TableStyle(table_style))
    return table


def render_transactions_pdf(data: TransactionsReportData) -> bytes:
    """Render a transactions listing with a totals summary."""

    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=16 * mm,
        leftMargin=16 * mm,
        topMargin=16 * mm,
        bottomMargin=14 * mm,
    )
    styles = getSampleStyleSheet()
    subtitle_style = ParagraphStyle(
        name="Subtitle",
        parent=styles["BodyText"],
        fontSize=9,
        textColor=colors.HexColor("#6B7280"),
    )
    generated_on = date.today().isoformat()

    story = [
        Paragraph(escape(data.title), styles["Title"]),
        Spacer(1, 1 * mm),
    ]
    if data.filters_label:
        story.append(Paragraph(escape(data.filters_label), styles["BodyText"]))
    story.extend(
        [
            Paragraph(f"Generated on {generated_on}", subtitle_style),
            Spacer(1, 5 * mm),
            _build_summary_table(data),
            Spacer(1, 6 * mm),
        ]
    )
    if len(data.transactions) > PDF_DISPLAY_LIMIT:
        story.append(Paragraph(f"List truncated to {PDF_DISPLAY_LIMIT} transactions.", styles["Italic"]))
        story.append(Spacer(1, 2 * mm))
    story.append(_build_transactions_table(data))

    doc.build(
        story,
        canvasmaker=lambda *args, **kwargs: _FooterCanvas(*args, generated_on=generated_on, **kwargs),
    )
    buffer.seek(0)
    return buffer.read()
