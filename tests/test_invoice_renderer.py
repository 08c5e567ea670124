"""Tests for the PDF invoice renderer and its formatting helpers."""

from __future__ import annotations

import re
from decimal import Decimal

import pytest

from gestor_vendas import invoice_renderer
from gestor_vendas.models import CartItem, Invoice, Sale

from conftest import make_client, make_merchant, make_product


@pytest.fixture
def invoice() -> Invoice:
    sale = Sale(
        sale_id="sale-1",
        client_id="cli-001",
        items=(CartItem("prod-001", 2, Decimal("1000")), CartItem("prod-002", 1, Decimal("4500"))),
        total=Decimal("7410.00"),
        tax=Decimal("910.00"),
        date="2025-03-01T12:00:00+00:00",
    )
    return Invoice.from_sale(sale, "INV-2025-0001")


@pytest.fixture
def products():
    return [make_product("prod-001", price="1000"), make_product("prod-002", name="Arroz & Feijão", price="4500")]


def count_pages(document: bytes) -> int:
    return len(re.findall(rb"/Type /Page[^s]", document))


def test_format_money_uses_locale_and_currency():
    """Amounts are formatted with the locale's separators and symbol."""

    text = invoice_renderer.format_money(Decimal("2280"), "AOA", "pt_AO")

    assert "280,00" in text
    assert "Kz" in text
    assert "\u202f" not in text


def test_format_invoice_date_uses_day_month_year():
    """Invoice dates print as dd/MM/yyyy."""

    assert invoice_renderer.format_invoice_date("2025-03-01T12:00:00+00:00") == "01/03/2025"


def test_format_invoice_date_passes_through_unparseable_text():
    """Dates that cannot be parsed are printed verbatim."""

    assert invoice_renderer.format_invoice_date("ontem") == "ontem"


def test_render_invoice_produces_pdf(invoice, products):
    """The renderer returns a PDF document."""

    document = invoice_renderer.render_invoice(invoice, make_client(), make_merchant(), products)

    assert document.startswith(b"%PDF")
    assert count_pages(document) == 1


def test_render_invoice_is_deterministic(invoice, products):
    """Identical inputs render to identical bytes."""

    first = invoice_renderer.render_invoice(invoice, make_client(), make_merchant(), products)
    second = invoice_renderer.render_invoice(invoice, make_client(), make_merchant(), products)

    assert first == second


def test_render_invoice_handles_missing_client_and_products(invoice):
    """A deleted client and an empty catalogue still render."""

    document = invoice_renderer.render_invoice(invoice, None, make_merchant(), [])

    assert document.startswith(b"%PDF")


def test_render_invoice_depends_on_invoice_content(invoice, products):
    """Different invoice numbers give different documents."""

    other = Invoice.from_sale(invoice.to_sale(), "INV-2025-0002")

    first = invoice_renderer.render_invoice(invoice, make_client(), make_merchant(), products)
    second = invoice_renderer.render_invoice(other, make_client(), make_merchant(), products)

    assert first != second


def test_render_invoice_continues_long_tables_on_new_pages(products):
    """Many lines spill onto further pages."""

    items = tuple(CartItem("prod-001", 1, Decimal("1000")) for _ in range(60))
    sale = Sale("sale-long", "cli-001", items, Decimal("68400.00"), Decimal("8400.00"), "2025-03-01T12:00:00+00:00")
    long_invoice = Invoice.from_sale(sale, "INV-2025-0005")

    document = invoice_renderer.render_invoice(long_invoice, make_client(), make_merchant(), products)

    assert count_pages(document) >= 2
