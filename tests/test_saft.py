"""Tests for the SAF-T (AO) export generator."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import replace
from datetime import UTC, datetime
from decimal import Decimal

import pytest

from gestor_vendas import saft
from gestor_vendas.models import CartItem, Invoice, Sale


GENERATED_AT = datetime(2025, 4, 1, 10, 0, tzinfo=UTC)
IVA = saft.TaxRate("IVA", "Imposto sobre o Valor Acrescentado", Decimal("14"))


@pytest.fixture
def company() -> saft.Company:
    return saft.Company(name="Loja do João", tax_id="5000000000", municipality="Luanda")


def generate(company, invoices, *, clients=None, products=None, tax_rates=(IVA,)) -> ET.Element:
    xml = saft.generate_saft(
        company,
        clients if clients is not None else [saft.ExportClient("c1", "Maria")],
        products if products is not None else [saft.ExportProduct("p1", "Arroz", Decimal("1000"), tax_code="IVA")],
        tax_rates,
        invoices,
        generated_at=GENERATED_AT,
    )
    assert xml.startswith('<?xml version="1.0" encoding="UTF-8"?>\n')
    return ET.fromstring(xml.split("\n", 1)[1])


def test_line_totals_use_two_decimals(company):
    """Two units at 1000 with 14% IVA give 2000.00 + 280.00 = 2280.00."""

    invoice = saft.ExportInvoice("INV-2025-0001", "2025-03-01", "c1", [saft.InvoiceLine("p1", Decimal("2"), Decimal("1000"))])

    root = generate(company, [invoice])

    line = root.find("SourceDocuments/SalesInvoices/Invoice/Lines/Line")
    assert line.findtext("Quantity") == "2.00"
    assert line.findtext("TaxAmount") == "280.00"
    assert line.findtext("LineTotal") == "2280.00"
    totals = root.find("SourceDocuments/SalesInvoices/Invoice/Totals")
    assert totals.findtext("NetTotal") == "2000.00"
    assert totals.findtext("TaxTotal") == "280.00"
    assert totals.findtext("GrossTotal") == "2280.00"


def test_header_carries_company_and_software(company):
    """The header lists the issuer, the software and the generation time."""

    root = generate(company, [])

    header = root.find("Header")
    assert header.findtext("CompanyName") == "Loja do João"
    assert header.findtext("TaxID") == "5000000000"
    assert header.findtext("SoftwareName") == "Gestor de Vendas Angola"
    assert header.findtext("SoftwareVersion") == "1.0"
    assert header.findtext("FileDate") == GENERATED_AT.isoformat()


def test_free_text_is_escaped(company):
    """Ampersands and angle brackets are escaped in the raw XML."""

    products = [saft.ExportProduct("p1", "Arroz & <Feijão>", Decimal("1000"), tax_code="IVA")]

    xml = saft.generate_saft(company, [], products, [IVA], [], generated_at=GENERATED_AT)

    assert "Arroz &amp; &lt;Feijão&gt;" in xml


def test_unknown_tax_code_exports_zero_tax(company):
    """Lines whose tax code cannot be resolved are exported without tax."""

    invoice = saft.ExportInvoice(
        "INV-2025-0001", "2025-03-01", "c1", [saft.InvoiceLine("p1", Decimal("1"), Decimal("500"), tax_code="XYZ")]
    )

    root = generate(company, [invoice])

    line = root.find("SourceDocuments/SalesInvoices/Invoice/Lines/Line")
    assert line.findtext("TaxAmount") == "0.00"
    assert line.findtext("TaxCode") == ""
    assert root.find("SourceDocuments/SalesInvoices/Invoice/Taxes/TaxSummary") is None


def test_line_falls_back_to_product_tax_code(company):
    """Without a line code the product's default code applies."""

    invoice = saft.ExportInvoice("INV-2025-0001", "2025-03-01", "c1", [saft.InvoiceLine("p1", Decimal("1"), Decimal("100"))])

    root = generate(company, [invoice])

    assert root.findtext("SourceDocuments/SalesInvoices/Invoice/Lines/Line/TaxAmount") == "14.00"


def test_discount_reduces_base(company):
    """The discount is subtracted before tax."""

    line = saft.InvoiceLine("p1", Decimal("2"), Decimal("1000"), discount=Decimal("500"))
    invoice = saft.ExportInvoice("INV-2025-0001", "2025-03-01", "c1", [line])

    root = generate(company, [invoice])

    assert root.findtext("SourceDocuments/SalesInvoices/Invoice/Totals/NetTotal") == "1500.00"
    assert root.findtext("SourceDocuments/SalesInvoices/Invoice/Totals/TaxTotal") == "210.00"


def test_tax_summary_groups_by_code_in_first_seen_order(company):
    """Per-code sums follow the order in which codes first appear."""

    isento = saft.TaxRate("ISE", "Isento", Decimal("0"))
    lines = [
        saft.InvoiceLine("p1", Decimal("1"), Decimal("100"), tax_code="ISE"),
        saft.InvoiceLine("p1", Decimal("1"), Decimal("100"), tax_code="IVA"),
        saft.InvoiceLine("p1", Decimal("2"), Decimal("50"), tax_code="IVA"),
    ]
    invoice = saft.ExportInvoice("INV-2025-0001", "2025-03-01", "c1", lines)

    root = generate(company, [invoice], tax_rates=(IVA, isento))

    summaries = root.findall("SourceDocuments/SalesInvoices/Invoice/Taxes/TaxSummary")
    assert [(s.findtext("TaxCode"), s.findtext("TaxAmount")) for s in summaries] == [("ISE", "0.00"), ("IVA", "28.00")]


def test_missing_client_yields_empty_fields(company):
    """An invoice for an unknown customer is still exported."""

    invoice = saft.ExportInvoice("INV-2025-0001", "2025-03-01", "gone", [saft.InvoiceLine("p1", Decimal("1"), Decimal("10"))])

    root = generate(company, [invoice])

    exported = root.find("SourceDocuments/SalesInvoices/Invoice")
    assert exported.findtext("CustomerID") == ""
    assert exported.findtext("CustomerName") == ""


def test_invoices_keep_input_order(company):
    """Invoices are written in the order supplied."""

    invoices = [
        saft.ExportInvoice(number, "2025-03-01", "c1", [saft.InvoiceLine("p1", Decimal("1"), Decimal("10"))])
        for number in ("INV-2025-0002", "INV-2025-0001")
    ]

    root = generate(company, invoices)

    assert [node.findtext("InvoiceNo") for node in root.findall("SourceDocuments/SalesInvoices/Invoice")] == [
        "INV-2025-0002",
        "INV-2025-0001",
    ]


def test_fmt_rounds_half_up():
    """Monetary values are rounded half-up to two decimals."""

    assert saft.fmt(Decimal("0.125")) == "0.13"
    assert saft.fmt(Decimal("7")) == "7.00"


def test_build_saft_from_context_uses_stored_invoices(context):
    """The application adapter exports stored invoices under IVA."""

    sale = Sale("sale-1", "cli-001", (CartItem("prod-001", 2, Decimal("1000")),), Decimal("2280.00"), Decimal("280.00"), "2025-03-01T12:00:00+00:00")
    context.invoices = [Invoice.from_sale(sale, "INV-2025-0001")]
    context.settings = replace(context.settings, company_tax_id="5000000000", company_email="a&b@example.ao")

    xml = saft.build_saft_from_context(context, generated_at=GENERATED_AT)
    root = ET.fromstring(xml.split("\n", 1)[1])

    assert root.findtext("Header/CompanyName") == context.merchant.store_name
    assert root.findtext("Header/TaxID") == "5000000000"
    assert "a&amp;b@example.ao" in xml
    invoice = root.find("SourceDocuments/SalesInvoices/Invoice")
    assert invoice.findtext("InvoiceDate") == "2025-03-01"
    assert invoice.findtext("CustomerName") == "Maria Domingos"
    assert invoice.findtext("Totals/GrossTotal") == "2280.00"
    assert invoice.findtext("Lines/Line/ProductDescription") == "Refrigerante Cola 1L"
