"""Printable invoice rendering.

:func:`render_invoice` turns an invoice and its surrounding records into an A4
PDF held in memory. ReportLab runs in invariant mode, so the same inputs always
produce the same bytes; the only date printed is the invoice's own.

Layout, top to bottom:

- Header band (title, invoice number, date)
- Merchant block
- Client block
- Line items table
- Totals (subtotal, IVA, total)
- Footer
"""

from __future__ import annotations

import io
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from babel.dates import format_date
from babel.numbers import format_currency
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from .constants import CURRENCY, DEFAULT_LOCALE, IVA_RATE, UNKNOWN_CLIENT_NAME
from .models import Client, Invoice, Merchant, Product

FONT_REGULAR_NAME = "Helvetica"
FONT_BOLD_NAME = "Helvetica-Bold"

HEADER_BLUE = (30 / 255, 64 / 255, 175 / 255)
TABLE_GREY = (209 / 255, 213 / 255, 219 / 255)
TOTAL_GREEN = (22 / 255, 163 / 255, 74 / 255)
FOOTER_GREY = (156 / 255, 163 / 255, 175 / 255)

ROW_HEIGHT = 10 * mm
BOTTOM_MARGIN = 30 * mm


def format_money(amount: Decimal, currency: str = CURRENCY, locale: str = DEFAULT_LOCALE) -> str:
    """Format ``amount`` as a currency string for ``locale``.

    Narrow no-break spaces are flattened to regular no-break spaces because the
    standard PDF fonts have no glyph for them.
    """

    return format_currency(amount, currency, locale=locale).replace("\u202f", "\u00a0")


def format_invoice_date(iso_date: str, locale: str = DEFAULT_LOCALE) -> str:
    try:
        moment = datetime.fromisoformat(iso_date)
    except ValueError:
        return iso_date
    return format_date(moment.date(), "dd/MM/yyyy", locale=locale)


def render_invoice(
    invoice: Invoice,
    client: Optional[Client],
    merchant: Merchant,
    products: Iterable[Product],
    *,
    tax_rate: Decimal = IVA_RATE,
    locale: str = DEFAULT_LOCALE,
    currency: str = CURRENCY,
) -> bytes:
    """Render ``invoice`` as PDF bytes.

    Items whose product is missing from ``products`` are left out of the
    table; the totals still come from the invoice itself. A ``None`` client is
    printed as an unknown customer.
    """

    catalog = {product.product_id: product for product in products}
    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=A4, invariant=1)
    c.setTitle(f"Fatura {invoice.invoice_number}")
    c.setAuthor(merchant.store_name)
    width, height = A4

    def money(amount: Decimal) -> str:
        return format_money(amount, currency, locale)

    def draw_text(x, y, text, font=FONT_REGULAR_NAME, size=10, align="left"):
        c.setFont(font, size)
        text_str = str(text) if text is not None else ""
        if align == "right":
            c.drawRightString(x, y, text_str)
        elif align == "center":
            c.drawCentredString(x, y, text_str)
        else:
            c.drawString(x, y, text_str)

    # --- Header band ---
    c.setFillColorRGB(*HEADER_BLUE)
    c.rect(0, height - 25 * mm, width, 25 * mm, fill=1, stroke=0)
    c.setFillColorRGB(1, 1, 1)
    draw_text(10 * mm, height - 15 * mm, "FATURA", font=FONT_BOLD_NAME, size=24)
    draw_text(width - 40 * mm, height - 10 * mm, f"Nº: {invoice.invoice_number}", align="right")
    draw_text(width - 40 * mm, height - 20 * mm, f"Data: {format_invoice_date(invoice.date, locale)}", align="right")

    # --- Merchant ---
    c.setFillColorRGB(0, 0, 0)
    draw_text(10 * mm, height - 35 * mm, merchant.store_name, font=FONT_BOLD_NAME, size=12)
    draw_text(10 * mm, height - 42 * mm, f"Telefone: {merchant.phone}", size=12)
    draw_text(10 * mm, height - 49 * mm, f"Cidade: {merchant.city}", size=12)

    # --- Client ---
    client_name = client.name if client is not None else UNKNOWN_CLIENT_NAME
    client_phone = client.phone if client is not None else "N/A"
    draw_text(10 * mm, height - 65 * mm, "Cliente:", font=FONT_BOLD_NAME, size=12)
    draw_text(10 * mm, height - 72 * mm, f"Nome: {client_name}", size=12)
    draw_text(10 * mm, height - 79 * mm, f"Telefone: {client_phone}", size=12)
    draw_text(10 * mm, height - 86 * mm, "NIF: N/A", size=12)

    # --- Items table ---
    def draw_table_header(top: float) -> float:
        c.setFillColorRGB(*TABLE_GREY)
        c.rect(10 * mm, top - ROW_HEIGHT, 190 * mm, ROW_HEIGHT, fill=1, stroke=0)
        c.setFillColorRGB(0, 0, 0)
        baseline = top - 7 * mm
        draw_text(12 * mm, baseline, "Item", font=FONT_BOLD_NAME)
        draw_text(90 * mm, baseline, "Qtde", font=FONT_BOLD_NAME)
        draw_text(120 * mm, baseline, "Preço Unit.", font=FONT_BOLD_NAME)
        draw_text(195 * mm, baseline, "Subtotal", font=FONT_BOLD_NAME, align="right")
        return top - ROW_HEIGHT

    y = draw_table_header(height - 100 * mm)
    for item in invoice.items:
        product = catalog.get(item.product_id)
        if product is None:
            continue
        if y - ROW_HEIGHT < BOTTOM_MARGIN:
            c.showPage()
            y = draw_table_header(height - 20 * mm)
        baseline = y - 7 * mm
        draw_text(12 * mm, baseline, product.name[:45])
        draw_text(90 * mm, baseline, item.quantity)
        draw_text(120 * mm, baseline, money(item.price))
        draw_text(195 * mm, baseline, money(item.line_total), align="right")
        y -= ROW_HEIGHT

    # --- Totals ---
    if y - 40 * mm < BOTTOM_MARGIN:
        c.showPage()
        y = height - 20 * mm
    y -= 10 * mm
    label_x = width - 60 * mm
    value_x = width - 15 * mm
    rate_label = f"{(tax_rate * 100):.0f}"
    draw_text(label_x, y, "Subtotal:", size=12, align="right")
    draw_text(value_x, y, money(invoice.subtotal), size=12, align="right")
    y -= 7 * mm
    draw_text(label_x, y, f"IVA ({rate_label}%):", size=12, align="right")
    draw_text(value_x, y, money(invoice.tax), size=12, align="right")
    y -= 10 * mm
    c.setFillColorRGB(*TOTAL_GREEN)
    draw_text(label_x, y, "Total:", font=FONT_BOLD_NAME, size=14, align="right")
    draw_text(value_x, y, money(invoice.total), font=FONT_BOLD_NAME, size=14, align="right")

    # --- Footer ---
    c.setFillColorRGB(*FOOTER_GREY)
    draw_text(width / 2, 10 * mm, "Obrigado pela sua preferência!", size=8, align="center")

    c.showPage()
    c.save()
    return buffer.getvalue()
