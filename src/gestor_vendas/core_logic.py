"""Business logic layer for Gestor de Vendas.

This module owns every mutation of the application state: the inventory and
client ledgers, the cart, and the sale-completion pipeline that turns a cart
into a numbered invoice. It consumes the Data Access Layer (DAL) for all I/O.

The store has no transactions, so each ledger operation ends with an explicit
save of the collection it changed, and multi-collection writes are ordered so
an interruption leaves a state that :func:`reconcile_context` can repair on the
next load.
"""

from __future__ import annotations

import threading
import uuid
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from functools import partial
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from . import data_manager, invoice_renderer, log, models
from .constants import (
    EXPECTED_SCHEMA_VERSION,
    IVA_RATE,
    LOW_STOCK_THRESHOLD,
    UNKNOWN_CLIENT_NAME,
    StoreKey,
)
from .data_manager import PersistenceWarning
from .models import CartItem, Client, Invoice, Merchant, Product, Sale


class ValidationError(Exception):
    """Raised when user input breaks a domain rule (stock, quantity, fields)."""


class RenderFailure(Exception):
    """Raised when an invoice document cannot be produced in time."""


Renderer = Callable[[Invoice, Optional[Client], Merchant, Sequence[Product]], bytes]

CENT = Decimal("0.01")


@dataclass
class RuntimeContext:
    """Explicit application state handed to every business operation.

    The context is created once at process start by
    :func:`load_runtime_context` and carries the configuration, the store
    handle, and the in-memory collections. ``lock`` serializes invoice
    sequence allocation and stock arithmetic.
    """

    settings: data_manager.ConfigSettings
    store: data_manager.PersistentStore
    products: List[Product] = field(default_factory=list)
    clients: List[Client] = field(default_factory=list)
    cart: List[CartItem] = field(default_factory=list)
    sales: List[Sale] = field(default_factory=list)
    invoices: List[Invoice] = field(default_factory=list)
    merchant: Optional[Merchant] = None
    sequences: Dict[str, int] = field(default_factory=dict)
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)


@dataclass(frozen=True)
class CartAddResult:
    """Outcome of :func:`add_to_cart`; ``low_stock`` is advisory only."""

    item: CartItem
    remaining_stock: int
    low_stock: bool


@dataclass(frozen=True)
class CartTotals:
    subtotal: Decimal
    tax: Decimal
    total: Decimal


def _resolve_timestamp(candidate: Optional[datetime]) -> datetime:
    """Return ``candidate`` unchanged or the current UTC time."""

    return candidate if candidate is not None else datetime.now(UTC)


def local_zone(context: RuntimeContext) -> ZoneInfo:
    return ZoneInfo(context.settings.time_zone)


def local_year(context: RuntimeContext, moment: datetime) -> int:
    """Calendar year of ``moment`` in the configured time zone."""

    return moment.astimezone(local_zone(context)).year


# ---------------------------------------------------------------------------
# Context lifecycle
# ---------------------------------------------------------------------------


_COLLECTIONS: Dict[StoreKey, tuple[str, Callable[[Any], Any], Callable[[Any], Any]]] = {
    StoreKey.PRODUCTS: ("products", models.serialize_product, models.deserialize_product),
    StoreKey.CLIENTS: ("clients", models.serialize_client, models.deserialize_client),
    StoreKey.CART: ("cart", models.serialize_cart_item, models.deserialize_cart_item),
    StoreKey.SALES: ("sales", models.serialize_sale, models.deserialize_sale),
    StoreKey.INVOICES: ("invoices", models.serialize_invoice, models.deserialize_invoice),
}


def _load_collection(store: data_manager.PersistentStore, key: StoreKey) -> list:
    """Load and deserialize one list collection, skipping malformed records."""

    _, _, deserializer = _COLLECTIONS[key]
    raw_items = store.load(key, [])
    if not isinstance(raw_items, list):
        log.warning("Store key '%s' does not hold a list; ignoring it", key.value)
        return []
    records = []
    for index, raw in enumerate(raw_items):
        try:
            records.append(deserializer(raw))
        except (KeyError, TypeError, ValueError, ArithmeticError) as exc:
            log.warning("Skipping malformed %s record #%d: %s", key.value, index, exc)
    return records


def _load_sequences(store: data_manager.PersistentStore) -> Dict[str, int]:
    raw = store.load(StoreKey.SEQUENCES, {})
    sequences: Dict[str, int] = {}
    if isinstance(raw, dict):
        for year, value in raw.items():
            try:
                sequences[str(year)] = int(value)
            except (TypeError, ValueError):
                log.warning("Ignoring malformed invoice sequence for year '%s'", year)
    return sequences


def load_state(context: RuntimeContext) -> RuntimeContext:
    """Populate ``context`` collections from its store and reconcile them."""

    store = context.store
    context.products = _load_collection(store, StoreKey.PRODUCTS)
    context.clients = _load_collection(store, StoreKey.CLIENTS)
    context.cart = _load_collection(store, StoreKey.CART)
    context.sales = _load_collection(store, StoreKey.SALES)
    context.invoices = _load_collection(store, StoreKey.INVOICES)
    try:
        context.merchant = models.deserialize_merchant(store.load(StoreKey.MERCHANT, None))
    except (AttributeError, TypeError, ValueError) as exc:
        log.warning("Ignoring malformed merchant profile: %s", exc)
        context.merchant = None
    context.sequences = _load_sequences(store)
    reconcile_context(context)
    return context


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration settings, open the store, and read all collections.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer performs its upward search from
            the current working directory.

    Returns:
        RuntimeContext: Fully populated context ready for business operations.

    Raises:
        FileNotFoundError: If the configuration file or store workbook cannot
            be located.
        KeyError: When mandatory configuration options are missing.
    """
    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    store = data_manager.PersistentStore.open(settings.data_file)
    context = load_state(RuntimeContext(settings=settings, store=store))
    log.info(
        "Loaded runtime context from '%s' (%d products, %d clients, %d invoices)",
        settings.data_file,
        len(context.products),
        len(context.clients),
        len(context.invoices),
    )
    return context


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate store compatibility before mutating state.

    Raises:
        RuntimeError: If the schema version declared in the configuration does
            not match ``EXPECTED_SCHEMA_VERSION``.
    """
    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Store schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Store schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    log.debug("Schema version '%s' validated", context.settings.schema_version)


def reconcile_context(context: RuntimeContext) -> None:
    """Repair states left behind by an interrupted multi-collection write.

    Cart lines that reference deleted products are dropped, and every invoice
    whose sale record is missing gets its sale rebuilt from the invoice fields
    (invoices are written before sales during checkout).
    """

    known_products = {product.product_id for product in context.products}
    stale = [item for item in context.cart if item.product_id not in known_products]
    if stale:
        log.warning("Dropping %d cart line(s) for deleted products", len(stale))
        context.cart = [item for item in context.cart if item.product_id in known_products]
        persist_collection(context, StoreKey.CART)

    sale_ids = {sale.sale_id for sale in context.sales}
    orphaned = [invoice for invoice in context.invoices if invoice.sale_id not in sale_ids]
    if orphaned:
        log.warning("Rebuilding %d sale record(s) from their invoices", len(orphaned))
        context.sales.extend(invoice.to_sale() for invoice in orphaned)
        persist_collection(context, StoreKey.SALES)


def serialize_collection(context: RuntimeContext, key: StoreKey) -> Any:
    if key is StoreKey.MERCHANT:
        return models.serialize_merchant(context.merchant)
    if key is StoreKey.SEQUENCES:
        return dict(context.sequences)
    attribute, serializer, _ = _COLLECTIONS[key]
    return [serializer(record) for record in getattr(context, attribute)]


def persist_collection(context: RuntimeContext, key: StoreKey) -> bool:
    """Rewrite the whole collection stored under ``key``."""

    return context.store.save(key, serialize_collection(context, key))


def persist_context(context: RuntimeContext) -> None:
    """Rewrite every collection held by ``context``."""

    for key in StoreKey:
        persist_collection(context, key)
    log.info("Persisted all collections to '%s'", context.settings.data_file)


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reload the store from disk and return a fresh context.

    Raises:
        FileNotFoundError: If the backing workbook cannot be reloaded.
    """
    store = data_manager.PersistentStore.open(context.settings.data_file)
    log.info("Reloaded store '%s'", context.settings.data_file)
    return load_state(RuntimeContext(settings=context.settings, store=store))


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def require_positive_quantity(quantity: Any) -> int:
    """Validate that a quantity is a strictly positive integer.

    Raises:
        ValidationError: If ``quantity`` is not an integer or is not above zero.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        log.error("Quantity validation failed: %r is not an integer", quantity)
        raise ValidationError("Quantity must be a whole number")
    if quantity <= 0:
        log.error("Quantity validation failed: %s", quantity)
        raise ValidationError("Quantity must be greater than zero")
    return quantity


def require_nonnegative_money(amount: Decimal, label: str = "Amount") -> None:
    if amount < Decimal("0"):
        log.error("Monetary value validation failed: %s=%s", label, amount)
        raise ValidationError(f"{label} must be zero or positive")


def require_text(value: Optional[str], label: str) -> str:
    text = (value or "").strip()
    if not text:
        log.error("Required field '%s' is missing", label)
        raise ValidationError(f"{label} is required")
    return text


# ---------------------------------------------------------------------------
# Inventory ledger
# ---------------------------------------------------------------------------


def new_product_id() -> str:
    return f"prod-{uuid.uuid4().hex[:12]}"


def list_products(context: RuntimeContext) -> List[Product]:
    return list(context.products)


def get_product(context: RuntimeContext, product_id: str) -> Optional[Product]:
    """Return the product with ``product_id`` or ``None`` when it is gone."""

    for product in context.products:
        if product.product_id == product_id:
            return product
    return None


def add_product(context: RuntimeContext, product: Product) -> Product:
    """Append ``product`` to the catalogue and persist the collection.

    Raises:
        ValidationError: If the name is blank, the price or stock is negative,
            or the id is already taken.
    """
    name = require_text(product.name, "Product name")
    require_nonnegative_money(product.price, "Price")
    if product.stock < 0:
        log.error("Stock validation failed for '%s': %s", product.product_id, product.stock)
        raise ValidationError("Stock must be zero or positive")
    with context.lock:
        if get_product(context, product.product_id) is not None:
            log.error("Duplicate product id '%s'", product.product_id)
            raise ValidationError(f"Product id already exists: {product.product_id}")
        product = replace(product, name=name)
        context.products.append(product)
        persist_collection(context, StoreKey.PRODUCTS)
    log.info("Added product '%s' (%s, stock=%d)", product.product_id, product.name, product.stock)
    return product


def adjust_stock(context: RuntimeContext, product_id: str, delta: int) -> Optional[Product]:
    """Apply a signed stock ``delta`` to ``product_id``.

    Unknown ids are a no-op. Returns the updated product, if any.
    """
    with context.lock:
        updated: Optional[Product] = None
        products = []
        for product in context.products:
            if product.product_id == product_id:
                product = replace(product, stock=product.stock + delta)
                updated = product
            products.append(product)
        if updated is None:
            log.debug("Stock adjustment ignored for unknown product '%s'", product_id)
            return None
        context.products = products
        persist_collection(context, StoreKey.PRODUCTS)
    log.info("Adjusted stock of '%s' by %+d (now %d)", product_id, delta, updated.stock)
    if updated.stock < 0:
        log.warning("Product '%s' has negative stock (%d)", product_id, updated.stock)
    return updated


def delete_product(context: RuntimeContext, product_id: str) -> bool:
    """Remove a product and every cart line that references it.

    Historical sales and invoices keep the product id untouched.
    """
    with context.lock:
        remaining = [product for product in context.products if product.product_id != product_id]
        if len(remaining) == len(context.products):
            log.debug("Delete ignored for unknown product '%s'", product_id)
            return False
        context.products = remaining
        persist_collection(context, StoreKey.PRODUCTS)
        cart = [item for item in context.cart if item.product_id != product_id]
        if len(cart) != len(context.cart):
            context.cart = cart
            persist_collection(context, StoreKey.CART)
    log.info("Deleted product '%s'", product_id)
    return True


# ---------------------------------------------------------------------------
# Client ledger
# ---------------------------------------------------------------------------


def new_client_id() -> str:
    return str(uuid.uuid4())


def list_clients(context: RuntimeContext) -> List[Client]:
    return list(context.clients)


def get_client(context: RuntimeContext, client_id: Optional[str]) -> Optional[Client]:
    """Return the client with ``client_id`` or ``None`` when it is gone."""

    for client in context.clients:
        if client.client_id == client_id:
            return client
    return None


def client_display_name(context: RuntimeContext, client_id: Optional[str]) -> str:
    client = get_client(context, client_id)
    return client.name if client is not None else UNKNOWN_CLIENT_NAME


def add_client(context: RuntimeContext, client: Client) -> Client:
    """Insert ``client`` unless its id already exists (first write wins).

    Returns the record held by the ledger afterwards.

    Raises:
        ValidationError: If the client name is blank.
    """
    require_text(client.name, "Client name")
    with context.lock:
        existing = get_client(context, client.client_id)
        if existing is not None:
            log.debug("Client '%s' already registered; keeping the stored record", client.client_id)
            return existing
        context.clients.append(client)
        persist_collection(context, StoreKey.CLIENTS)
    log.info("Added client '%s' (%s)", client.client_id, client.name)
    return client


def delete_client(context: RuntimeContext, client_id: str) -> bool:
    """Remove a client. Past sales keep the id and display as unknown."""

    with context.lock:
        remaining = [client for client in context.clients if client.client_id != client_id]
        if len(remaining) == len(context.clients):
            log.debug("Delete ignored for unknown client '%s'", client_id)
            return False
        context.clients = remaining
        persist_collection(context, StoreKey.CLIENTS)
    log.info("Deleted client '%s'", client_id)
    return True


def adjust_pending_balance(context: RuntimeContext, client_id: str, delta: Decimal) -> Optional[Client]:
    """Add ``delta`` to the client's pending balance (negative for payments)."""

    with context.lock:
        updated: Optional[Client] = None
        clients = []
        for client in context.clients:
            if client.client_id == client_id:
                client = replace(client, pending_amount=client.pending_amount + delta)
                updated = client
            clients.append(client)
        if updated is None:
            log.debug("Balance adjustment ignored for unknown client '%s'", client_id)
            return None
        context.clients = clients
        persist_collection(context, StoreKey.CLIENTS)
    log.info("Adjusted pending balance of '%s' by %s (now %s)", client_id, delta, updated.pending_amount)
    return updated


# ---------------------------------------------------------------------------
# Merchant profile
# ---------------------------------------------------------------------------


def set_merchant(context: RuntimeContext, merchant: Merchant) -> Merchant:
    """Replace the singleton merchant profile.

    Raises:
        ValidationError: If the owner or store name is blank.
    """
    require_text(merchant.name, "Merchant name")
    require_text(merchant.store_name, "Store name")
    context.merchant = merchant
    persist_collection(context, StoreKey.MERCHANT)
    log.info("Merchant profile set to '%s' (%s)", merchant.store_name, merchant.plan.value)
    return merchant


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------


def list_cart(context: RuntimeContext) -> List[CartItem]:
    return list(context.cart)


def add_to_cart(context: RuntimeContext, product_id: str, quantity: int) -> CartAddResult:
    """Stage ``quantity`` units of a product and reserve them from stock.

    The line keeps the price captured the first time the product entered the
    cart; repeated adds only sum the quantity. Stock is decremented
    immediately and persisted before the cart, so an interruption can leak a
    reservation but never oversell.

    Raises:
        ValidationError: If the product is unknown, the quantity is not a
            positive integer, or it exceeds the current stock.
    """
    require_positive_quantity(quantity)
    with context.lock:
        product = get_product(context, product_id)
        if product is None:
            log.error("Cart add failed: unknown product '%s'", product_id)
            raise ValidationError(f"Unknown product id: {product_id}")
        if quantity > product.stock:
            log.error(
                "Cart add failed: '%s' requested %d, only %d in stock",
                product_id,
                quantity,
                product.stock,
            )
            raise ValidationError(
                f"Insufficient stock for '{product.name}': requested {quantity}, available {product.stock}"
            )

        adjust_stock(context, product_id, -quantity)

        item: Optional[CartItem] = None
        cart = []
        for line in context.cart:
            if line.product_id == product_id:
                line = replace(line, quantity=line.quantity + quantity)
                item = line
            cart.append(line)
        if item is None:
            item = CartItem(product_id=product_id, quantity=quantity, price=product.price)
            cart.append(item)
        context.cart = cart
        persist_collection(context, StoreKey.CART)

    remaining = product.stock - quantity
    low_stock = remaining < LOW_STOCK_THRESHOLD
    if low_stock:
        log.warning("Low stock: '%s' has %d unit(s) left", product.name, remaining)
    log.info("Cart add '%s' x%d (line quantity %d)", product_id, quantity, item.quantity)
    return CartAddResult(item=item, remaining_stock=remaining, low_stock=low_stock)


def remove_from_cart(context: RuntimeContext, product_id: str) -> Optional[CartItem]:
    """Drop a cart line and return its reserved units to stock."""

    with context.lock:
        removed = next((item for item in context.cart if item.product_id == product_id), None)
        if removed is None:
            log.debug("Cart remove ignored: '%s' not in cart", product_id)
            return None
        context.cart = [item for item in context.cart if item.product_id != product_id]
        persist_collection(context, StoreKey.CART)
        adjust_stock(context, product_id, removed.quantity)
    log.info("Cart remove '%s' (restored %d unit(s))", product_id, removed.quantity)
    return removed


def clear_cart(context: RuntimeContext) -> None:
    """Empty the cart keeping reservations; used after a completed sale."""

    with context.lock:
        context.cart = []
        persist_collection(context, StoreKey.CART)
    log.info("Cart cleared")


def release_cart(context: RuntimeContext) -> List[CartItem]:
    """Abandon the cart: empty it and return every reservation to stock."""

    with context.lock:
        released = list(context.cart)
        context.cart = []
        persist_collection(context, StoreKey.CART)
        for item in released:
            adjust_stock(context, item.product_id, item.quantity)
    log.info("Cart released (%d line(s) returned to stock)", len(released))
    return released


def calculate_totals(items: Iterable[CartItem], tax_rate: Decimal = IVA_RATE) -> CartTotals:
    """Subtotal, tax (rounded half-up to cents), and tax-inclusive total."""

    subtotal = sum((item.line_total for item in items), Decimal("0"))
    tax = (subtotal * tax_rate).quantize(CENT, rounding=ROUND_HALF_UP)
    return CartTotals(subtotal=subtotal, tax=tax, total=subtotal + tax)


def compute_cart_totals(context: RuntimeContext, tax_rate: Decimal = IVA_RATE) -> CartTotals:
    return calculate_totals(context.cart, tax_rate)


# ---------------------------------------------------------------------------
# Invoice numbering
# ---------------------------------------------------------------------------


INVOICE_PREFIX = "INV"


def format_invoice_number(year: int, sequence: int) -> str:
    return f"{INVOICE_PREFIX}-{year}-{sequence:04d}"


def parse_invoice_number(invoice_number: str) -> Optional[tuple[int, int]]:
    """Split ``INV-<year>-<seq>`` into integers; ``None`` for foreign formats."""

    parts = invoice_number.split("-")
    if len(parts) != 3 or parts[0] != INVOICE_PREFIX:
        return None
    try:
        return int(parts[1]), int(parts[2])
    except ValueError:
        return None


def allocate_invoice_number(context: RuntimeContext, year: int) -> str:
    """Reserve the next invoice number for ``year`` and persist the counter.

    The next sequence follows the larger of the durable counter and the
    highest sequence already used by a stored invoice of that year, so deleted
    or restored records can never cause a number to be reused.
    """
    with context.lock:
        stored = context.sequences.get(str(year), 0)
        used = [
            parsed[1]
            for parsed in (parse_invoice_number(invoice.invoice_number) for invoice in context.invoices)
            if parsed is not None and parsed[0] == year
        ]
        sequence = max([stored, *used]) + 1
        context.sequences[str(year)] = sequence
        persist_collection(context, StoreKey.SEQUENCES)
    return format_invoice_number(year, sequence)


# ---------------------------------------------------------------------------
# Sale completion
# ---------------------------------------------------------------------------


def default_renderer(context: RuntimeContext) -> Renderer:
    return partial(
        invoice_renderer.render_invoice,
        locale=context.settings.locale,
        currency=context.settings.currency,
    )


def render_with_timeout(
    renderer: Renderer,
    invoice: Invoice,
    client: Optional[Client],
    merchant: Merchant,
    products: Sequence[Product],
    *,
    timeout: float,
) -> bytes:
    """Run ``renderer`` on a worker thread, bounded by ``timeout`` seconds.

    Raises:
        RenderFailure: If the renderer raises, exceeds the timeout, or returns
            an empty document.
    """
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="invoice-render")
    try:
        future = executor.submit(renderer, invoice, client, merchant, products)
        try:
            document = future.result(timeout=timeout)
        except FuturesTimeoutError as exc:
            raise RenderFailure(f"Rendering {invoice.invoice_number} exceeded {timeout:g}s") from exc
        except Exception as exc:
            raise RenderFailure(f"Rendering {invoice.invoice_number} failed: {exc}") from exc
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    if not document:
        raise RenderFailure(f"Rendering {invoice.invoice_number} produced no document")
    return bytes(document)


def document_path_for(context: RuntimeContext, invoice_number: str) -> Path:
    return context.settings.documents_dir / f"Fatura_{invoice_number}.pdf"


def _store_document(context: RuntimeContext, invoice_number: str, document: bytes) -> Path:
    path = document_path_for(context, invoice_number)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(document)
    except OSError as exc:
        raise RenderFailure(f"Could not write document '{path}': {exc}") from exc
    return path


def _resolve_sale_client(context: RuntimeContext, client_id: Optional[str], client: Optional[Client]) -> Client:
    """Prefer an explicitly supplied record, registering walk-in clients."""

    if client is not None:
        if client_id is not None and client_id != client.client_id:
            log.warning(
                "Client id '%s' differs from supplied record '%s'; using the record",
                client_id,
                client.client_id,
            )
        return add_client(context, client)
    target = get_client(context, client_id)
    if target is None:
        log.error("Sale aborted: client '%s' not found", client_id)
        raise ValidationError(f"Unknown client id: {client_id}")
    return target


def _validate_cart(context: RuntimeContext) -> None:
    for item in context.cart:
        require_positive_quantity(item.quantity)
        product = get_product(context, item.product_id)
        if product is None:
            log.error("Sale aborted: cart references missing product '%s'", item.product_id)
            raise ValidationError(f"Cart references unknown product: {item.product_id}")
        if product.stock < 0:
            log.error("Sale aborted: product '%s' shows negative stock %d", item.product_id, product.stock)
            raise ValidationError(f"Stock for '{product.name}' is negative; fix it before selling")


def _check_supplied_totals(totals: CartTotals, total: Optional[Decimal], tax: Optional[Decimal]) -> None:
    for label, supplied, computed in (("total", total, totals.total), ("tax", tax, totals.tax)):
        if supplied is None:
            continue
        if abs(Decimal(supplied) - computed) >= CENT:
            log.error("Supplied %s %s does not match cart %s %s", label, supplied, label, computed)
            raise ValidationError(f"Supplied {label} {supplied} does not match the cart ({computed})")


def complete_sale(
    context: RuntimeContext,
    client_id: Optional[str],
    total: Optional[Decimal] = None,
    tax: Optional[Decimal] = None,
    client: Optional[Client] = None,
    *,
    renderer: Optional[Renderer] = None,
    timestamp: Optional[datetime] = None,
) -> Invoice:
    """Turn the current cart into a Sale and a numbered Invoice.

    The sequence is:

    1. Require a merchant profile and a non-empty cart.
    2. Check the client exists unless a walk-in record is supplied.
    3. Validate the cart and compute totals; caller-supplied ``total`` and
       ``tax`` must match them to the cent.
    4. Register a supplied walk-in client, now that validation passed.
    5. Allocate the invoice number for the sale's local year (persisted
       before anything else).
    6. Snapshot the cart into the Sale and build the Invoice.
    7. Render the document within ``RenderTimeout``; a failure is logged and
       the invoice is kept without a document.
    8. Persist invoices, then sales.

    The cart is left untouched; callers clear it once they accept the result.

    Args:
        context (RuntimeContext): Application state.
        client_id (str | None): Ledger id of the buyer. Ignored when ``client``
            is supplied.
        total (Decimal | None): Tax-inclusive total the caller displayed.
        tax (Decimal | None): Tax amount the caller displayed.
        client (Client | None): Explicit client record (walk-in sales).
        renderer (Renderer | None): Document renderer; defaults to the PDF
            renderer configured for the context locale.
        timestamp (datetime | None): Sale time; defaults to now (UTC).

    Returns:
        Invoice: The committed invoice, with ``document_path`` when rendering
            succeeded.

    Raises:
        ValidationError: If a precondition fails.
    """
    merchant = context.merchant
    if merchant is None:
        log.error("Sale aborted: no merchant profile configured")
        raise ValidationError("Configure the merchant profile before selling")
    if not context.cart:
        log.error("Sale aborted: cart is empty")
        raise ValidationError("Cart is empty")

    if client is None and get_client(context, client_id) is None:
        log.error("Sale aborted: client '%s' not found", client_id)
        raise ValidationError(f"Unknown client id: {client_id}")
    renderer = renderer or default_renderer(context)

    with context.lock:
        _validate_cart(context)
        totals = compute_cart_totals(context)
        _check_supplied_totals(totals, total, tax)
        target_client = _resolve_sale_client(context, client_id, client)

        moment = _resolve_timestamp(timestamp)
        invoice_number = allocate_invoice_number(context, local_year(context, moment))
        sale = Sale(
            sale_id=str(uuid.uuid4()),
            client_id=target_client.client_id,
            items=tuple(context.cart),
            total=totals.total,
            tax=totals.tax,
            date=moment.isoformat(),
        )
        invoice = Invoice.from_sale(sale, invoice_number)

        try:
            document = render_with_timeout(
                renderer,
                invoice,
                target_client,
                merchant,
                list(context.products),
                timeout=context.settings.render_timeout,
            )
            path = _store_document(context, invoice_number, document)
            invoice = replace(invoice, document_path=str(path))
        except RenderFailure as exc:
            log.warning("Invoice %s saved without document: %s", invoice_number, exc)

        context.invoices.append(invoice)
        persist_collection(context, StoreKey.INVOICES)
        context.sales.append(sale)
        persist_collection(context, StoreKey.SALES)

    log.info(
        "Completed sale '%s' as %s for client '%s' (total=%s, tax=%s)",
        sale.sale_id,
        invoice_number,
        target_client.client_id,
        totals.total,
        totals.tax,
    )
    return invoice


def list_sales(context: RuntimeContext) -> List[Sale]:
    return list(context.sales)


def list_invoices(context: RuntimeContext) -> List[Invoice]:
    return list(context.invoices)


def find_invoice(context: RuntimeContext, invoice_number: str) -> Optional[Invoice]:
    for invoice in context.invoices:
        if invoice.invoice_number == invoice_number:
            return invoice
    return None


def regenerate_invoice_document(
    context: RuntimeContext,
    invoice_number: str,
    *,
    renderer: Optional[Renderer] = None,
) -> bytes:
    """Re-render a stored invoice under its original number.

    A deleted client is rendered as unknown. The refreshed document path is
    persisted with the invoice.

    Raises:
        ValidationError: If the invoice is unknown or no merchant is set.
        RenderFailure: If the document cannot be produced.
    """
    invoice = find_invoice(context, invoice_number)
    if invoice is None:
        log.error("Regeneration failed: unknown invoice '%s'", invoice_number)
        raise ValidationError(f"Unknown invoice: {invoice_number}")
    merchant = context.merchant
    if merchant is None:
        log.error("Regeneration failed: no merchant profile configured")
        raise ValidationError("Configure the merchant profile before printing invoices")

    client = get_client(context, invoice.client_id)
    if client is None:
        log.warning("Invoice %s references missing client '%s'", invoice_number, invoice.client_id)

    document = render_with_timeout(
        renderer or default_renderer(context),
        invoice,
        client,
        merchant,
        list(context.products),
        timeout=context.settings.render_timeout,
    )
    path = _store_document(context, invoice_number, document)
    with context.lock:
        context.invoices = [
            replace(stored, document_path=str(path)) if stored.invoice_number == invoice_number else stored
            for stored in context.invoices
        ]
        persist_collection(context, StoreKey.INVOICES)
    log.info("Regenerated document for %s at '%s'", invoice_number, path)
    return document


# ---------------------------------------------------------------------------
# Dashboard figures
# ---------------------------------------------------------------------------


SUMMARY_DAYS = 7


@dataclass(frozen=True)
class DailyRevenue:
    day: date
    total: Decimal


@dataclass(frozen=True)
class SalesSummary:
    """Headline figures for the dashboard.

    ``pending_total`` sums every client balance, so credits offset debts;
    ``pending_client_count`` only counts clients who owe money.
    ``daily_revenue`` runs oldest first and ends on ``today``.
    """

    today: date
    today_total: Decimal
    today_count: int
    sale_count: int
    product_count: int
    pending_client_count: int
    pending_total: Decimal
    daily_revenue: Tuple[DailyRevenue, ...]
    low_stock: Tuple[Product, ...]


def low_stock_products(context: RuntimeContext, threshold: int = LOW_STOCK_THRESHOLD) -> List[Product]:
    return [product for product in context.products if product.stock < threshold]


def _sale_day(sale: Sale, zone: ZoneInfo) -> Optional[date]:
    try:
        moment = datetime.fromisoformat(sale.date)
    except ValueError:
        log.debug("Sale '%s' has an unreadable date '%s'", sale.sale_id, sale.date)
        return None
    if moment.tzinfo is None:
        return moment.date()
    return moment.astimezone(zone).date()


def sales_summary(
    context: RuntimeContext,
    *,
    today: Optional[date] = None,
    days: int = SUMMARY_DAYS,
) -> SalesSummary:
    """Aggregate sales, debts and stock for the dashboard.

    Sale days are taken in the configured time zone. ``today`` defaults to
    the current local date.
    """
    zone = local_zone(context)
    if today is None:
        today = datetime.now(UTC).astimezone(zone).date()

    window = [today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]
    revenue = {day: Decimal("0") for day in window}
    today_total = Decimal("0")
    today_count = 0
    for sale in context.sales:
        day = _sale_day(sale, zone)
        if day in revenue:
            revenue[day] += sale.total
        if day == today:
            today_total += sale.total
            today_count += 1

    return SalesSummary(
        today=today,
        today_total=today_total,
        today_count=today_count,
        sale_count=len(context.sales),
        product_count=len(context.products),
        pending_client_count=sum(1 for client in context.clients if client.pending_amount > 0),
        pending_total=sum((client.pending_amount for client in context.clients), Decimal("0")),
        daily_revenue=tuple(DailyRevenue(day, revenue[day]) for day in window),
        low_stock=tuple(low_stock_products(context)),
    )
