"""Thin collaborators around the core: backups, CSV, and message links."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Mapping, Optional
from urllib.parse import quote

from . import core_logic, log, models
from .constants import (
    BACKUP_KEYS,
    DEFAULT_COUNTRY_CODE,
    INVOICE_MESSAGE_TEMPLATE,
    PENDING_REMINDER_TEMPLATE,
    StoreKey,
)
from .core_logic import RuntimeContext, ValidationError
from .models import Client

CSV_HEADER = ("ID", "Nome", "Telefone", "Cidade", "Valor Pendente")
CSV_DELIMITER = ";"
CSV_FILE_NAME = "clientes_angola.csv"

BACKUP_DATE_KEY = "exportDate"
WHATSAPP_BASE_URL = "https://wa.me/"


def backup_file_name(exported_at: datetime) -> str:
    return f"backup_vendas_angola_{exported_at.date().isoformat()}.json"


def export_backup(context: RuntimeContext, *, exported_at: Optional[datetime] = None) -> str:
    """Serialize the six backed-up collections plus ``exportDate`` as JSON."""

    moment = exported_at if exported_at is not None else datetime.now(UTC)
    payload: dict[str, Any] = {key.value: core_logic.serialize_collection(context, key) for key in BACKUP_KEYS}
    payload[BACKUP_DATE_KEY] = moment.isoformat()
    log.info("Exported backup with %d invoice(s)", len(context.invoices))
    return json.dumps(payload, ensure_ascii=False, indent=2)


def _decode_backup(payload: str | bytes | Mapping[str, Any]) -> Mapping[str, Any]:
    if isinstance(payload, Mapping):
        data = payload
    else:
        try:
            data = json.loads(payload)
        except ValueError as exc:
            log.error("Backup import failed: invalid JSON (%s)", exc)
            raise ValidationError(f"Backup is not valid JSON: {exc}") from exc
    if not isinstance(data, Mapping):
        log.error("Backup import failed: top-level value is not an object")
        raise ValidationError("Backup must be a JSON object")
    missing = [key.value for key in BACKUP_KEYS if key.value not in data]
    if missing:
        log.error("Backup import failed: missing keys %s", missing)
        raise ValidationError(f"Backup is missing keys: {', '.join(missing)}")
    return data


def _decode_records(data: Mapping[str, Any], key: StoreKey, deserializer) -> list:
    raw_items = data[key.value]
    if not isinstance(raw_items, list):
        raise ValidationError(f"Backup key '{key.value}' must be a list")
    try:
        return [deserializer(raw) for raw in raw_items]
    except (KeyError, TypeError, ValueError, ArithmeticError) as exc:
        log.error("Backup import failed: malformed %s record (%s)", key.value, exc)
        raise ValidationError(f"Backup has a malformed '{key.value}' record: {exc}") from exc


def import_backup(
    context: RuntimeContext,
    payload: str | bytes | Mapping[str, Any],
    *,
    confirm: bool,
) -> RuntimeContext:
    """Replace every backed-up collection with the contents of ``payload``.

    The whole backup is decoded before anything is written, so a malformed
    file leaves the current state untouched. The invoice counter is kept; the
    next allocation still accounts for the imported invoice numbers.

    Raises:
        ValidationError: If ``confirm`` is false, the JSON is malformed, or a
            collection is missing.
    """
    if not confirm:
        log.error("Backup import refused: confirmation missing")
        raise ValidationError("Importing a backup replaces all data; confirmation is required")

    data = _decode_backup(payload)
    products = _decode_records(data, StoreKey.PRODUCTS, models.deserialize_product)
    clients = _decode_records(data, StoreKey.CLIENTS, models.deserialize_client)
    cart = _decode_records(data, StoreKey.CART, models.deserialize_cart_item)
    sales = _decode_records(data, StoreKey.SALES, models.deserialize_sale)
    invoices = _decode_records(data, StoreKey.INVOICES, models.deserialize_invoice)
    try:
        merchant = models.deserialize_merchant(data[StoreKey.MERCHANT.value])
    except (AttributeError, TypeError, ValueError) as exc:
        raise ValidationError(f"Backup has a malformed merchant profile: {exc}") from exc

    with context.lock:
        context.products = products
        context.clients = clients
        context.cart = cart
        context.sales = sales
        context.invoices = invoices
        context.merchant = merchant
        for key in BACKUP_KEYS:
            core_logic.persist_collection(context, key)
        core_logic.reconcile_context(context)

    log.info(
        "Imported backup dated %s (%d products, %d clients, %d invoices)",
        data.get(BACKUP_DATE_KEY, "unknown"),
        len(products),
        len(clients),
        len(invoices),
    )
    return context


def _two_decimals(amount: Decimal) -> str:
    return str(amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def clients_to_csv(clients: Iterable[Client]) -> str:
    """Render clients as semicolon-separated text, one row per client."""

    lines = [CSV_DELIMITER.join(CSV_HEADER)]
    for client in clients:
        lines.append(
            CSV_DELIMITER.join(
                (client.client_id, client.name, client.phone, client.city, _two_decimals(client.pending_amount))
            )
        )
    return "\n".join(lines) + "\n"


def whatsapp_link(phone: str, message: str, *, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """Build a ``wa.me`` deep link that opens a chat pre-filled with ``message``."""

    digits = "".join(ch for ch in phone if ch.isdigit())
    if not digits.startswith(country_code):
        digits = f"{country_code}{digits}"
    return f"{WHATSAPP_BASE_URL}{digits}?text={quote(message, safe='')}"


def invoice_message(client_name: str, invoice_number: str, total: str, store_name: str) -> str:
    return INVOICE_MESSAGE_TEMPLATE.format(
        client_name=client_name,
        invoice_number=invoice_number,
        total=total,
        store_name=store_name,
    )


def pending_reminder_message(client_name: str, pending_amount: str, store_name: str) -> str:
    return PENDING_REMINDER_TEMPLATE.format(
        client_name=client_name,
        pending_amount=pending_amount,
        store_name=store_name,
    )
