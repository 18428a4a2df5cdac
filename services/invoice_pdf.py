"""
Invoice PDF

Letter-size invoice rendered with the reportlab canvas API.
"""

import io
from datetime import date
from decimal import Decimal
from typing import Optional

from reportlab.lib.colors import Color, HexColor
from reportlab.lib.pagesizes import letter
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas

from database.models import Client, Company, Invoice
from services.formatters import format_currency

NAVY = HexColor("#1a2744")
GRAY = HexColor("#555555")
BLACK = HexColor("#000000")
WHITE = HexColor("#FFFFFF")
ALT_ROW = Color(0.96, 0.96, 0.98)

PAGE_W, PAGE_H = letter
MARGIN = 40
CONTENT_W = PAGE_W - 2 * MARGIN
ROW_H = 16
BOTTOM = 60

COL_DESC = MARGIN + 6
COL_QTY = MARGIN + 330
COL_RATE = MARGIN + 400
COL_AMOUNT = PAGE_W - MARGIN - 6


def _draw_header(c: canvas.Canvas, invoice: Invoice, company: Company) -> float:
    y = PAGE_H - MARGIN

    c.setFont("Helvetica-Bold", 16)
    c.setFillColor(NAVY)
    c.drawString(MARGIN, y - 16, company.name)

    c.setFont("Helvetica", 8)
    c.setFillColor(GRAY)
    right = PAGE_W - MARGIN
    lines = [line for line in (company.address or "").splitlines() if line.strip()]
    lines += [v for v in (company.phone, company.email) if v]
    for i, line in enumerate(lines[:4]):
        c.drawRightString(right, y - 8 - i * 10, line)

    y -= 60
    c.setFont("Helvetica-Bold", 22)
    c.setFillColor(BLACK)
    c.drawString(MARGIN, y, "INVOICE")

    c.setFont("Helvetica", 9)
    issued = (invoice.sent_at.date() if invoice.sent_at else date.today()).isoformat()
    c.drawRightString(right, y + 12, f"Invoice #: {invoice.invoice_number}")
    c.drawRightString(right, y, f"Date: {issued}")
    if invoice.due_date:
        c.drawRightString(right, y - 12, f"Due: {invoice.due_date.isoformat()}")
    return y - 30


def _draw_bill_to(c: canvas.Canvas, y: float, client: Optional[Client]) -> float:
    c.setFont("Helvetica-Bold", 9)
    c.setFillColor(BLACK)
    c.drawString(MARGIN, y, "BILL TO:")
    c.setFont("Helvetica", 9)
    lines = [client.name] if client else ["-"]
    if client and client.address:
        lines += [line for line in client.address.splitlines() if line.strip()]
    if client and client.email:
        lines.append(client.email)
    for line in lines:
        y -= 12
        c.drawString(MARGIN, y, line[:80])
    return y - 20


def _draw_table_header(c: canvas.Canvas, y: float) -> float:
    c.setFillColor(NAVY)
    c.rect(MARGIN, y - ROW_H, CONTENT_W, ROW_H, fill=1, stroke=0)
    c.setFillColor(WHITE)
    c.setFont("Helvetica-Bold", 8)
    c.drawString(COL_DESC, y - 11, "DESCRIPTION")
    c.drawRightString(COL_QTY, y - 11, "QTY")
    c.drawRightString(COL_RATE + 60, y - 11, "RATE")
    c.drawRightString(COL_AMOUNT, y - 11, "AMOUNT")
    return y - ROW_H


def _draw_total_line(c: canvas.Canvas, y: float, label: str, amount, bold: bool = False) -> float:
    c.setFont("Helvetica-Bold" if bold else "Helvetica", 10 if bold else 9)
    c.setFillColor(BLACK)
    c.drawRightString(COL_RATE + 60, y, label)
    c.drawRightString(COL_AMOUNT, y, format_currency(amount))
    return y - 14


def render_pdf(invoice: Invoice, company: Company, client: Optional[Client] = None) -> bytes:
    """Render an invoice to PDF bytes."""
    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=letter)
    c.setTitle(f"Invoice {invoice.invoice_number}")

    y = _draw_header(c, invoice, company)
    y = _draw_bill_to(c, y, client)
    y = _draw_table_header(c, y)

    for idx, item in enumerate(invoice.line_items or []):
        desc_lines = simpleSplit(str(item.get("description") or ""), "Helvetica", 8, 300) or [""]
        height = ROW_H + (len(desc_lines) - 1) * 10
        if y - height < BOTTOM:
            c.showPage()
            y = _draw_table_header(c, PAGE_H - MARGIN)

        if idx % 2 == 1:
            c.setFillColor(ALT_ROW)
            c.rect(MARGIN, y - height, CONTENT_W, height, fill=1, stroke=0)
        c.setFillColor(BLACK)
        c.setFont("Helvetica", 8)
        for i, line in enumerate(desc_lines):
            c.drawString(COL_DESC, y - 11 - i * 10, line)
        c.drawRightString(COL_QTY, y - 11, str(item.get("quantity", "")))
        c.drawRightString(COL_RATE + 60, y - 11, format_currency(item.get("rate")))
        c.drawRightString(COL_AMOUNT, y - 11, format_currency(item.get("amount")))
        y -= height

    if y < BOTTOM + 160:
        c.showPage()
        y = PAGE_H - MARGIN

    y -= 20
    y = _draw_total_line(c, y, "Subtotal", invoice.subtotal)
    for name, amount in (invoice.fees or {}).items():
        y = _draw_total_line(c, y, name, amount)
    if invoice.retainer_applied and Decimal(invoice.retainer_applied) > 0:
        y = _draw_total_line(c, y, "Retainer credit", -Decimal(invoice.retainer_applied))
    y = _draw_total_line(c, y - 4, "TOTAL DUE", invoice.total_due, bold=True)

    y -= 20
    c.setFont("Helvetica", 9)
    if invoice.payment_terms:
        c.drawString(MARGIN, y, f"Payment terms: {invoice.payment_terms}")
        y -= 14
    if invoice.special_instructions:
        for line in simpleSplit(invoice.special_instructions, "Helvetica", 9, CONTENT_W):
            c.drawString(MARGIN, y, line)
            y -= 12

    c.setFont("Helvetica-Oblique", 8)
    c.setFillColor(GRAY)
    c.drawCentredString(PAGE_W / 2, 30, "Thank you for your business.")

    c.save()
    return buffer.getvalue()
