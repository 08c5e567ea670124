"""Domain records for Gestor de Vendas.

Each entity is an immutable dataclass paired with ``serialize_*`` and
``deserialize_*`` helpers that translate to and from the JSON-compatible
dictionaries held by the persistent store. The dictionary keys follow the
camelCase layout of the browser edition so backups stay interchangeable.
Monetary values are :class:`~decimal.Decimal` in memory and strings on disk.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping, Optional

from .constants import MerchantPlan, ProductCategory


@dataclass(frozen=True)
class Product:
    """Catalogue entry with its current price and stock on hand."""

    product_id: str
    name: str
    price: Decimal
    stock: int
    category: ProductCategory
    image_url: Optional[str] = None


@dataclass(frozen=True)
class Client:
    """Customer record with a signed running balance."""

    client_id: str
    name: str
    phone: str
    city: str
    pending_amount: Decimal = Decimal("0")


@dataclass(frozen=True)
class CartItem:
    """Staged line: the price is captured when the item enters the cart."""

    product_id: str
    quantity: int
    price: Decimal

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


@dataclass(frozen=True)
class Sale:
    """Completed checkout. ``total`` includes ``tax``."""

    sale_id: str
    client_id: str
    items: tuple[CartItem, ...]
    total: Decimal
    tax: Decimal
    date: str

    @property
    def subtotal(self) -> Decimal:
        return self.total - self.tax


@dataclass(frozen=True)
class Invoice:
    """A :class:`Sale` plus its sequential number and rendered document."""

    sale_id: str
    client_id: str
    items: tuple[CartItem, ...]
    total: Decimal
    tax: Decimal
    date: str
    invoice_number: str
    document_path: Optional[str] = None

    @property
    def subtotal(self) -> Decimal:
        return self.total - self.tax

    @classmethod
    def from_sale(cls, sale: Sale, invoice_number: str, document_path: Optional[str] = None) -> "Invoice":
        return cls(
            sale_id=sale.sale_id,
            client_id=sale.client_id,
            items=sale.items,
            total=sale.total,
            tax=sale.tax,
            date=sale.date,
            invoice_number=invoice_number,
            document_path=document_path,
        )

    def to_sale(self) -> Sale:
        return Sale(
            sale_id=self.sale_id,
            client_id=self.client_id,
            items=self.items,
            total=self.total,
            tax=self.tax,
            date=self.date,
        )


@dataclass(frozen=True)
class Merchant:
    """Singleton merchant profile printed on every invoice."""

    name: str
    phone: str
    store_name: str
    city: str
    plan: MerchantPlan = MerchantPlan.GRATIS
    multicaixa_active: bool = False


def to_decimal(raw: Any, default: str = "0") -> Decimal:
    """Coerce stored numbers (strings, ints, floats) into ``Decimal``."""

    if raw is None or raw == "":
        return Decimal(default)
    return Decimal(str(raw))


def _money(value: Decimal) -> str:
    return str(value)


def _require_mapping(raw: Any, kind: str) -> Mapping[str, Any]:
    """Reject stored records that are not JSON objects."""

    if not isinstance(raw, Mapping):
        raise TypeError(f"{kind} record must be an object, got {type(raw).__name__}")
    return raw


def serialize_product(record: Product) -> dict[str, Any]:
    return {
        "id": record.product_id,
        "name": record.name,
        "price": _money(record.price),
        "stock": record.stock,
        "category": record.category.value,
        "imageUrl": record.image_url,
    }


def deserialize_product(raw: Mapping[str, Any]) -> Product:
    """Convert a stored product mapping into a :class:`Product`.

    Unknown categories degrade to ``OUTROS`` instead of rejecting the record.
    """

    raw = _require_mapping(raw, "product")
    try:
        category = ProductCategory(raw.get("category"))
    except ValueError:
        category = ProductCategory.OUTROS
    return Product(
        product_id=str(raw["id"]),
        name=str(raw["name"]),
        price=to_decimal(raw.get("price")),
        stock=int(raw.get("stock", 0)),
        category=category,
        image_url=raw.get("imageUrl"),
    )


def serialize_client(record: Client) -> dict[str, Any]:
    return {
        "id": record.client_id,
        "name": record.name,
        "phone": record.phone,
        "city": record.city,
        "pendingAmount": _money(record.pending_amount),
    }


def deserialize_client(raw: Mapping[str, Any]) -> Client:
    raw = _require_mapping(raw, "client")
    return Client(
        client_id=str(raw["id"]),
        name=str(raw["name"]),
        phone=str(raw.get("phone") or ""),
        city=str(raw.get("city") or ""),
        pending_amount=to_decimal(raw.get("pendingAmount")),
    )


def serialize_cart_item(record: CartItem) -> dict[str, Any]:
    return {
        "productId": record.product_id,
        "quantity": record.quantity,
        "price": _money(record.price),
    }


def deserialize_cart_item(raw: Mapping[str, Any]) -> CartItem:
    raw = _require_mapping(raw, "cart item")
    return CartItem(
        product_id=str(raw["productId"]),
        quantity=int(raw["quantity"]),
        price=to_decimal(raw.get("price")),
    )


def serialize_sale(record: Sale) -> dict[str, Any]:
    return {
        "id": record.sale_id,
        "clientId": record.client_id,
        "items": [serialize_cart_item(item) for item in record.items],
        "total": _money(record.total),
        "iva": _money(record.tax),
        "date": record.date,
    }


def deserialize_sale(raw: Mapping[str, Any]) -> Sale:
    raw = _require_mapping(raw, "sale")
    return Sale(
        sale_id=str(raw["id"]),
        client_id=str(raw["clientId"]),
        items=tuple(deserialize_cart_item(item) for item in raw.get("items") or []),
        total=to_decimal(raw.get("total")),
        tax=to_decimal(raw.get("iva")),
        date=str(raw.get("date") or ""),
    )


def serialize_invoice(record: Invoice) -> dict[str, Any]:
    payload = serialize_sale(record.to_sale())
    payload["invoiceNumber"] = record.invoice_number
    payload["documentPath"] = record.document_path
    return payload


def deserialize_invoice(raw: Mapping[str, Any]) -> Invoice:
    raw = _require_mapping(raw, "invoice")
    sale = deserialize_sale(raw)
    return Invoice.from_sale(
        sale,
        invoice_number=str(raw["invoiceNumber"]),
        document_path=raw.get("documentPath"),
    )


def serialize_merchant(record: Optional[Merchant]) -> Optional[dict[str, Any]]:
    if record is None:
        return None
    return {
        "name": record.name,
        "phone": record.phone,
        "storeName": record.store_name,
        "city": record.city,
        "plan": record.plan.value,
        "multicaixaActive": record.multicaixa_active,
    }


def deserialize_merchant(raw: Optional[Mapping[str, Any]]) -> Optional[Merchant]:
    if not raw:
        return None
    raw = _require_mapping(raw, "merchant")
    try:
        plan = MerchantPlan(raw.get("plan"))
    except ValueError:
        plan = MerchantPlan.GRATIS
    return Merchant(
        name=str(raw.get("name") or ""),
        phone=str(raw.get("phone") or ""),
        store_name=str(raw.get("storeName") or ""),
        city=str(raw.get("city") or ""),
        plan=plan,
        multicaixa_active=bool(raw.get("multicaixaActive", False)),
    )
