"""Tests for backup, CSV and messaging collaborators."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from urllib.parse import unquote

import pytest

from gestor_vendas import core_logic, exports
from gestor_vendas.constants import BACKUP_KEYS, StoreKey

from conftest import make_client

EXPORTED_AT = datetime(2025, 5, 2, 18, 30, tzinfo=UTC)


def stored_json(context) -> dict[str, str]:
    return {key.value: context.store.read_raw(key) for key in BACKUP_KEYS}


def test_export_backup_contains_all_collections(runtime_context):
    """The backup holds the six collections plus its export date."""

    payload = json.loads(exports.export_backup(runtime_context, exported_at=EXPORTED_AT))

    assert set(payload) == {key.value for key in BACKUP_KEYS} | {"exportDate"}
    assert payload["exportDate"] == EXPORTED_AT.isoformat()
    assert [product["id"] for product in payload["products"]][:2] == ["prod-001", "prod-002"]
    assert payload["merchant"]["storeName"].startswith("João Luís")
    assert "sequences" not in payload


def test_backup_round_trip_is_byte_identical(runtime_context, fake_renderer):
    """Exporting then importing leaves every stored collection unchanged."""

    core_logic.add_client(runtime_context, make_client())
    core_logic.add_to_cart(runtime_context, "prod-001", 2)
    core_logic.complete_sale(runtime_context, "cli-001", renderer=fake_renderer)
    core_logic.clear_cart(runtime_context)
    core_logic.add_to_cart(runtime_context, "prod-004", 1)
    before = stored_json(runtime_context)
    backup = exports.export_backup(runtime_context)

    core_logic.delete_product(runtime_context, "prod-001")
    core_logic.delete_client(runtime_context, "cli-001")
    exports.import_backup(runtime_context, backup, confirm=True)

    assert stored_json(runtime_context) == before


def test_import_backup_requires_confirmation(runtime_context):
    """Imports without explicit confirmation are refused."""

    backup = exports.export_backup(runtime_context)

    with pytest.raises(core_logic.ValidationError):
        exports.import_backup(runtime_context, backup, confirm=False)


@pytest.mark.parametrize(
    "payload",
    [
        "{not json",
        "[]",
        json.dumps({"products": [], "clients": []}),
        json.dumps({key.value: [] for key in BACKUP_KEYS} | {"products": [{"name": "no id"}]}),
        json.dumps({key.value: [] for key in BACKUP_KEYS} | {"products": ["garbage"]}),
        json.dumps({key.value: [] for key in BACKUP_KEYS} | {"merchant": "not a profile"}),
    ],
)
def test_import_backup_rejects_malformed_payloads(runtime_context, payload):
    """Broken backups raise ValidationError and leave the data untouched."""

    before = stored_json(runtime_context)

    with pytest.raises(core_logic.ValidationError):
        exports.import_backup(runtime_context, payload, confirm=True)
    assert stored_json(runtime_context) == before


def test_import_backup_reconciles_orphaned_invoices(runtime_context):
    """Invoices without a sale in the backup get their sale rebuilt."""

    backup = json.loads(exports.export_backup(runtime_context))
    backup["invoices"] = [
        {
            "id": "sale-x",
            "clientId": "cli-x",
            "items": [{"productId": "prod-001", "quantity": 1, "price": "250"}],
            "total": "285.00",
            "iva": "35.00",
            "date": "2025-01-01T00:00:00+00:00",
            "invoiceNumber": "INV-2025-0004",
            "documentPath": None,
        }
    ]

    exports.import_backup(runtime_context, backup, confirm=True)

    assert [sale.sale_id for sale in runtime_context.sales] == ["sale-x"]
    assert core_logic.allocate_invoice_number(runtime_context, 2025) == "INV-2025-0005"


def test_backup_file_name_uses_export_date():
    """Backup files are named after the export day."""

    assert exports.backup_file_name(EXPORTED_AT) == "backup_vendas_angola_2025-05-02.json"


def test_clients_to_csv_writes_semicolon_rows():
    """Clients are written with a header and two-decimal balances."""

    clients = [
        make_client("c1", name="Maria", phone="923000111", pending="1500"),
        make_client("c2", name="Paulo", phone="N/A", city="Benguela", pending="-20.5"),
    ]

    text = exports.clients_to_csv(clients)

    assert text.splitlines() == [
        "ID;Nome;Telefone;Cidade;Valor Pendente",
        "c1;Maria;923000111;Luanda;1500.00",
        "c2;Paulo;N/A;Benguela;-20.50",
    ]


def test_clients_to_csv_empty_ledger_has_header_only():
    """An empty ledger still produces the header."""

    assert exports.clients_to_csv([]) == "ID;Nome;Telefone;Cidade;Valor Pendente\n"


def test_whatsapp_link_prefixes_country_code():
    """Local numbers get the country code prepended."""

    link = exports.whatsapp_link("923 456 789", "Olá & obrigado")

    assert link.startswith("https://wa.me/244923456789?text=")
    assert unquote(link.split("?text=", 1)[1]) == "Olá & obrigado"
    assert "&" not in link.split("?text=", 1)[1]


def test_whatsapp_link_keeps_existing_country_code():
    """Numbers already carrying the prefix are left alone."""

    assert exports.whatsapp_link("+244 999 123 456", "x").startswith("https://wa.me/244999123456?")


def test_invoice_message_fills_template():
    """The invoice message names the client, the number and the store."""

    message = exports.invoice_message("Maria", "INV-2025-0001", "2 280,00 Kz", "Loja do João")

    assert message.startswith("Olá Maria,")
    assert "INV-2025-0001" in message
    assert message.endswith("Loja do João")


def test_pending_reminder_message_fills_template():
    """The reminder states the pending amount."""

    message = exports.pending_reminder_message("Paulo", "1 500,00 Kz", "Loja do João")

    assert "1 500,00 Kz" in message
    assert message.startswith("Olá Paulo,")
