"""PDF rendering of issued invoices."""
from __future__ import annotations

import html
import io
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Sequence

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.platypus import HRFlowable, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from .models import BillTo, InvoiceItem, InvoiceTotals

_ACCENT = colors.HexColor("#1f3a93")
_LINE = colors.HexColor("#d0d5dd")


def format_money(amount: Decimal, currency: str) -> str:
    return f"{currency} {Decimal(amount):,.2f}"


def _format_rate(rate: Decimal) -> str:
    normalized = Decimal(rate).normalize()
    text = format(normalized, "f")
    return text


def _styles() -> dict:
    base = getSampleStyleSheet()
    return {
        "title": ParagraphStyle("InvoiceTitle", parent=base["Title"], textColor=_ACCENT, alignment=0, fontSize=22),
        "brand": ParagraphStyle("InvoiceBrand", parent=base["Normal"], fontSize=11, textColor=colors.grey),
        "heading": ParagraphStyle("InvoiceHeading", parent=base["Heading4"], textColor=_ACCENT, spaceAfter=2),
        "body": ParagraphStyle("InvoiceBody", parent=base["Normal"], fontSize=10, leading=13),
        "cell": ParagraphStyle("InvoiceCell", parent=base["Normal"], fontSize=9.5, leading=12),
        "footer": ParagraphStyle("InvoiceFooter", parent=base["Normal"], fontSize=8.5, textColor=colors.grey),
    }


def _paragraphs(lines: Sequence[str], style: ParagraphStyle) -> List[Any]:
    return [Paragraph(html.escape(line), style) for line in lines if line]


def render_invoice_pdf(
    *,
    invoice_number: str,
    invoice_date: datetime,
    bill_to: BillTo,
    items: Sequence[InvoiceItem],
    totals: InvoiceTotals,
    currency: str,
    app_name: str = "JobZee",
) -> bytes:
    """Render an invoice and return the PDF bytes."""

    if not items:
        raise ValueError("An invoice needs at least one line item")

    styles = _styles()
    output = io.BytesIO()
    doc = SimpleDocTemplate(
        output,
        pagesize=A4,
        leftMargin=44,
        rightMargin=44,
        topMargin=42,
        bottomMargin=36,
        title=f"Invoice {invoice_number}",
        author=app_name,
    )

    story: List[Any] = [
        Paragraph("INVOICE", styles["title"]),
        Paragraph(html.escape(app_name), styles["brand"]),
        HRFlowable(width="100%", color=_LINE, thickness=0.9, spaceBefore=4, spaceAfter=8),
    ]

    meta = Table(
        [
            ["Invoice number", invoice_number],
            ["Invoice date", invoice_date.strftime("%d %b %Y")],
            ["Currency", currency],
        ],
        colWidths=[110, doc.width - 110],
    )
    meta.setStyle(
        TableStyle(
            [
                ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, -1), 10),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 3),
            ]
        )
    )
    story.extend([meta, Spacer(1, 10)])

    story.append(Paragraph("Bill to", styles["heading"]))
    bill_lines = [bill_to.company_name, bill_to.company_email, bill_to.company_phone or ""]
    bill_lines.extend(bill_to.address_lines())
    story.extend(_paragraphs(bill_lines, styles["body"]))
    story.append(Spacer(1, 12))

    rows: List[List[Any]] = [["Description", "Qty", "Unit price", "Amount"]]
    for item in items:
        rows.append(
            [
                Paragraph(html.escape(item.description), styles["cell"]),
                str(item.quantity),
                format_money(item.unit_price, currency),
                format_money(item.amount, currency),
            ]
        )
    item_table = Table(rows, colWidths=[doc.width - 250, 50, 100, 100], repeatRows=1)
    item_table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), _ACCENT),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("ALIGN", (1, 0), (-1, -1), "RIGHT"),
                ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
                ("LINEBELOW", (0, 0), (-1, -1), 0.5, _LINE),
                ("TOPPADDING", (0, 0), (-1, -1), 5),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 5),
            ]
        )
    )
    story.extend([item_table, Spacer(1, 10)])

    totals_table = Table(
        [
            ["Subtotal", format_money(totals.subtotal, currency)],
            [f"Tax ({_format_rate(totals.tax_rate)}%)", format_money(totals.tax_amount, currency)],
            ["Total", format_money(totals.total_amount, currency)],
        ],
        colWidths=[doc.width - 150, 150],
    )
    totals_table.setStyle(
        TableStyle(
            [
                ("ALIGN", (0, 0), (-1, -1), "RIGHT"),
                ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
                ("LINEABOVE", (0, -1), (-1, -1), 0.8, _ACCENT),
                ("TOPPADDING", (0, 0), (-1, -1), 3),
            ]
        )
    )
    story.extend([totals_table, Spacer(1, 18)])
    story.append(Paragraph("Thank you for your business.", styles["footer"]))

    doc.build(story)
    output.seek(0)
    return output.getvalue()


__all__ = ["format_money", "render_invoice_pdf"]
