"""SAF-T (AO) style audit export.

:func:`generate_saft` aggregates invoices, customers, products, and tax rates
into the XML file handed to the tax authority. The export tolerates messy
historical data: a customer that no longer exists yields empty customer
fields, and a line whose tax code cannot be resolved is exported as zero-tax
rather than failing the whole file.

Every numeric field is written with exactly two decimals. Free text is escaped
by :mod:`xml.etree.ElementTree` (``&``, ``<``, ``>``).
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Sequence

from . import log
from .constants import CURRENCY, IVA_TAX_CODE

if TYPE_CHECKING:
    from .core_logic import RuntimeContext


SOFTWARE_NAME = "Gestor de Vendas Angola"
SOFTWARE_VERSION = "1.0"
DEFAULT_UNIT = "UN"

CENT = Decimal("0.01")


@dataclass(frozen=True)
class Company:
    name: str
    tax_id: str
    address: str = ""
    municipality: str = ""
    province: str = ""
    phone: str = ""
    email: str = ""
    software_name: str = SOFTWARE_NAME
    software_version: str = SOFTWARE_VERSION


@dataclass(frozen=True)
class TaxRate:
    """A tax code and its percentage (``14`` means 14%)."""

    code: str
    description: str
    percentage: Decimal


@dataclass(frozen=True)
class ExportClient:
    client_id: str
    name: str
    tax_id: str = ""
    address: str = ""
    municipality: str = ""
    province: str = ""
    phone: str = ""
    email: str = ""


@dataclass(frozen=True)
class ExportProduct:
    product_id: str
    name: str
    unit_price: Decimal
    code: Optional[str] = None
    unit: str = DEFAULT_UNIT
    tax_code: Optional[str] = None


@dataclass(frozen=True)
class InvoiceLine:
    product_id: str
    quantity: Decimal
    unit_price: Decimal
    description: Optional[str] = None
    tax_code: Optional[str] = None
    discount: Decimal = Decimal("0")


@dataclass(frozen=True)
class ExportInvoice:
    number: str
    date: str
    client_id: str
    lines: Sequence[InvoiceLine]
    currency: str = CURRENCY
    notes: str = ""


DEFAULT_TAX_RATES: tuple[TaxRate, ...] = (
    TaxRate(code=IVA_TAX_CODE, description="Imposto sobre o Valor Acrescentado", percentage=Decimal("14")),
)


@dataclass
class LineTotals:
    base: Decimal
    tax_rate: Optional[TaxRate]
    tax_amount: Decimal

    @property
    def line_total(self) -> Decimal:
        return self.base + self.tax_amount


@dataclass
class InvoiceTotals:
    """Accumulated totals for one invoice plus the per-tax-code map."""

    net_total: Decimal = Decimal("0")
    tax_total: Decimal = Decimal("0")
    lines: List[LineTotals] = field(default_factory=list)
    by_tax_code: Dict[str, Decimal] = field(default_factory=dict)

    @property
    def gross_total(self) -> Decimal:
        return self.net_total + self.tax_total


def fmt(value: Decimal) -> str:
    """Render ``value`` with exactly two decimal places (half-up)."""

    return str(Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP))


def _text(value: object) -> str:
    return "" if value is None else str(value)


def compute_line(
    line: InvoiceLine,
    taxes_by_code: Dict[str, TaxRate],
    products_by_id: Dict[str, ExportProduct],
) -> LineTotals:
    """Compute base and tax for a single line.

    The line's own tax code wins; otherwise the product's default code is used.
    An unknown code yields a zero tax amount.
    """

    base = line.quantity * line.unit_price - (line.discount or Decimal("0"))
    product = products_by_id.get(line.product_id)
    code = line.tax_code or (product.tax_code if product is not None else None)
    rate = taxes_by_code.get(code) if code else None
    if rate is None:
        if code:
            log.warning("Unresolvable tax code '%s' on product '%s'; exporting as zero-tax", code, line.product_id)
        return LineTotals(base=base, tax_rate=None, tax_amount=Decimal("0"))
    return LineTotals(base=base, tax_rate=rate, tax_amount=base * rate.percentage / Decimal("100"))


def compute_invoice_totals(
    invoice: ExportInvoice,
    taxes_by_code: Dict[str, TaxRate],
    products_by_id: Dict[str, ExportProduct],
) -> InvoiceTotals:
    totals = InvoiceTotals()
    for line in invoice.lines:
        result = compute_line(line, taxes_by_code, products_by_id)
        totals.lines.append(result)
        totals.net_total += result.base
        totals.tax_total += result.tax_amount
        if result.tax_rate is not None:
            code = result.tax_rate.code
            totals.by_tax_code[code] = totals.by_tax_code.get(code, Decimal("0")) + result.tax_amount
    return totals


def _sub(parent: ET.Element, tag: str, text: object = "") -> ET.Element:
    element = ET.SubElement(parent, tag)
    element.text = _text(text)
    return element


def _build_header(root: ET.Element, company: Company, generated_at: datetime) -> None:
    header = ET.SubElement(root, "Header")
    _sub(header, "CompanyName", company.name)
    _sub(header, "TaxID", company.tax_id)
    _sub(header, "Address", company.address)
    _sub(header, "Municipality", company.municipality)
    _sub(header, "Province", company.province)
    _sub(header, "Telephone", company.phone)
    _sub(header, "Email", company.email)
    _sub(header, "SoftwareName", company.software_name or SOFTWARE_NAME)
    _sub(header, "SoftwareVersion", company.software_version or SOFTWARE_VERSION)
    _sub(header, "FileDate", generated_at.isoformat())


def _build_master_files(
    root: ET.Element,
    clients: Sequence[ExportClient],
    products: Sequence[ExportProduct],
    tax_rates: Sequence[TaxRate],
) -> None:
    master = ET.SubElement(root, "MasterFiles")

    customers = ET.SubElement(master, "Customers")
    for client in clients:
        node = ET.SubElement(customers, "Customer")
        _sub(node, "CustomerID", client.client_id)
        _sub(node, "CustomerName", client.name)
        _sub(node, "TaxID", client.tax_id)
        _sub(node, "Address", client.address)
        _sub(node, "Municipality", client.municipality)
        _sub(node, "Province", client.province)
        _sub(node, "Telephone", client.phone)
        _sub(node, "Email", client.email)

    products_node = ET.SubElement(master, "Products")
    for product in products:
        node = ET.SubElement(products_node, "Product")
        _sub(node, "ProductID", product.product_id)
        _sub(node, "ProductCode", product.code)
        _sub(node, "ProductDescription", product.name)
        _sub(node, "UnitPrice", fmt(product.unit_price))
        _sub(node, "UnitOfMeasure", product.unit or DEFAULT_UNIT)
        _sub(node, "TaxCode", product.tax_code)

    taxes = ET.SubElement(master, "Taxes")
    for rate in tax_rates:
        node = ET.SubElement(taxes, "Tax")
        _sub(node, "TaxCode", rate.code)
        _sub(node, "TaxDescription", rate.description)
        _sub(node, "TaxPercentage", fmt(rate.percentage))


def _build_invoice(
    parent: ET.Element,
    invoice: ExportInvoice,
    clients_by_id: Dict[str, ExportClient],
    taxes_by_code: Dict[str, TaxRate],
    products_by_id: Dict[str, ExportProduct],
) -> None:
    client = clients_by_id.get(invoice.client_id)
    if client is None:
        log.warning("Invoice '%s' references unknown customer '%s'", invoice.number, invoice.client_id)
    totals = compute_invoice_totals(invoice, taxes_by_code, products_by_id)

    node = ET.SubElement(parent, "Invoice")
    _sub(node, "InvoiceNo", invoice.number)
    _sub(node, "InvoiceDate", invoice.date)
    _sub(node, "Currency", invoice.currency or CURRENCY)
    _sub(node, "CustomerID", client.client_id if client else "")
    _sub(node, "CustomerName", client.name if client else "")

    lines_node = ET.SubElement(node, "Lines")
    for line, result in zip(invoice.lines, totals.lines):
        product = products_by_id.get(line.product_id)
        line_node = ET.SubElement(lines_node, "Line")
        product_code = (product.code or product.product_id) if product else ""
        description = line.description or (product.name if product else "")
        _sub(line_node, "ProductCode", product_code)
        _sub(line_node, "ProductDescription", description)
        _sub(line_node, "Quantity", fmt(line.quantity))
        _sub(line_node, "UnitPrice", fmt(line.unit_price))
        _sub(line_node, "Discount", fmt(line.discount or Decimal("0")))
        _sub(line_node, "TaxCode", result.tax_rate.code if result.tax_rate else "")
        _sub(line_node, "TaxPercentage", fmt(result.tax_rate.percentage if result.tax_rate else Decimal("0")))
        _sub(line_node, "TaxAmount", fmt(result.tax_amount))
        _sub(line_node, "LineTotal", fmt(result.line_total))

    totals_node = ET.SubElement(node, "Totals")
    _sub(totals_node, "NetTotal", fmt(totals.net_total))
    _sub(totals_node, "TaxTotal", fmt(totals.tax_total))
    _sub(totals_node, "GrossTotal", fmt(totals.gross_total))

    taxes_node = ET.SubElement(node, "Taxes")
    for code, amount in totals.by_tax_code.items():
        summary = ET.SubElement(taxes_node, "TaxSummary")
        _sub(summary, "TaxCode", code)
        _sub(summary, "TaxPercentage", fmt(taxes_by_code[code].percentage))
        _sub(summary, "TaxAmount", fmt(amount))

    _sub(node, "Notes", invoice.notes)


def generate_saft(
    company: Company,
    clients: Sequence[ExportClient],
    products: Sequence[ExportProduct],
    tax_rates: Sequence[TaxRate],
    invoices: Iterable[ExportInvoice],
    *,
    generated_at: Optional[datetime] = None,
) -> str:
    """Build the SAF-T (AO) XML document.

    Args:
        company: Issuer identity written to ``Header``.
        clients: Customers listed under ``MasterFiles/Customers`` and used to
            resolve each invoice's customer.
        products: Catalogue listed under ``MasterFiles/Products``; supplies
            product codes, descriptions, and default tax codes.
        tax_rates: Tax definitions; lines resolve their rate by code.
        invoices: Invoices exported in the given order.
        generated_at: Timestamp for ``FileDate``. Defaults to the current UTC
            time; pass a fixed value for reproducible output.

    Returns:
        str: The XML document, declaration included.
    """

    generated_at = generated_at or datetime.now(UTC)
    clients_by_id = {client.client_id: client for client in clients}
    products_by_id = {product.product_id: product for product in products}
    taxes_by_code = {rate.code: rate for rate in tax_rates}

    root = ET.Element("SAFTAO")
    _build_header(root, company, generated_at)
    _build_master_files(root, clients, products, tax_rates)

    source = ET.SubElement(root, "SourceDocuments")
    sales_invoices = ET.SubElement(source, "SalesInvoices")
    count = 0
    for invoice in invoices:
        _build_invoice(sales_invoices, invoice, clients_by_id, taxes_by_code, products_by_id)
        count += 1

    ET.indent(root, space="  ")
    body = ET.tostring(root, encoding="unicode")
    log.info("Generated SAF-T export with %d invoices for '%s'", count, company.name)
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + body + "\n"


def build_saft_from_context(
    context: "RuntimeContext",
    *,
    tax_rates: Sequence[TaxRate] = DEFAULT_TAX_RATES,
    generated_at: Optional[datetime] = None,
) -> str:
    """Export the application's stored invoices.

    The merchant profile and the ``[Company]`` config section form the issuer.
    Each invoice line is exported under the ``IVA`` code with no discount, and
    every product carries ``IVA`` as its default code.
    """

    settings = context.settings
    merchant = context.merchant
    company = Company(
        name=merchant.store_name if merchant else "",
        tax_id=settings.company_tax_id,
        address=settings.company_address,
        municipality=settings.company_municipality or (merchant.city if merchant else ""),
        province=settings.company_province,
        phone=merchant.phone if merchant else "",
        email=settings.company_email,
    )
    clients = [
        ExportClient(client_id=client.client_id, name=client.name, phone=client.phone, municipality=client.city)
        for client in context.clients
    ]
    products = [
        ExportProduct(
            product_id=product.product_id,
            name=product.name,
            unit_price=product.price,
            code=product.product_id,
            tax_code=IVA_TAX_CODE,
        )
        for product in context.products
    ]
    invoices = [
        ExportInvoice(
            number=invoice.invoice_number,
            date=invoice.date[:10],
            client_id=invoice.client_id,
            lines=[
                InvoiceLine(
                    product_id=item.product_id,
                    quantity=Decimal(item.quantity),
                    unit_price=item.price,
                    tax_code=IVA_TAX_CODE,
                )
                for item in invoice.items
            ],
            currency=settings.currency,
        )
        for invoice in context.invoices
    ]
    return generate_saft(company, clients, products, tax_rates, invoices, generated_at=generated_at)
