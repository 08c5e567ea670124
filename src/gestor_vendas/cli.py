"""Command-line entry points for Gestor de Vendas.

All orchestration in this module is limited to argparse wiring and translating
command-line arguments into calls on the business layer. Keeping the CLI thin
ensures the same parser configuration can be reused by tests, scripts, or any
alternative front-end that wants to expose the package capabilities.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence

from . import core_logic, exports, log, saft
from .constants import LOW_STOCK_THRESHOLD, MerchantPlan, ProductCategory
from .invoice_renderer import format_invoice_date, format_money
from .models import Client, Merchant, Product


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="gestor-vendas",
        description="Point-of-sale and invoicing tools for small businesses.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (searched upward from the current directory by default).",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare mutating CLI commands such as cart edits and checkout."""
    specs = {
        "add-product": register_add_product_command(subparsers),
        "adjust-stock": register_adjust_stock_command(subparsers),
        "delete-product": register_delete_product_command(subparsers),
        "add-client": register_add_client_command(subparsers),
        "delete-client": register_delete_client_command(subparsers),
        "adjust-balance": register_adjust_balance_command(subparsers),
        "set-merchant": register_set_merchant_command(subparsers),
        "cart-add": register_cart_add_command(subparsers),
        "cart-remove": register_cart_remove_command(subparsers),
        "cart-clear": register_cart_clear_command(subparsers),
        "checkout": register_checkout_command(subparsers),
        "regenerate": register_regenerate_command(subparsers),
        "import-backup": register_import_backup_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as listings and exports."""
    specs = {
        "stock": register_stock_command(subparsers),
        "clients": register_clients_command(subparsers),
        "cart": register_cart_command(subparsers),
        "invoices": register_invoices_command(subparsers),
        "dashboard": register_dashboard_command(subparsers),
        "saft-export": register_saft_export_command(subparsers),
        "export-backup": register_export_backup_command(subparsers),
        "clients-csv": register_clients_csv_command(subparsers),
        "whatsapp-link": register_whatsapp_link_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def _simple_command(
    name: str,
    help_text: str,
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int],
    configure: Optional[Callable[[argparse.ArgumentParser], None]] = None,
) -> CommandSpec:
    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        if configure is not None:
            configure(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=execute)


def register_add_product_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-product``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--product-id", default=None, help="Defaults to a generated id.")
        parser.add_argument("--name", required=True)
        parser.add_argument("--price", required=True)
        parser.add_argument("--stock", type=int, default=0)
        parser.add_argument(
            "--category",
            choices=[member.value for member in ProductCategory],
            default=ProductCategory.OUTROS.value,
        )
        parser.add_argument("--image-url", default=None)

    return _simple_command("add-product", "Register a new product in the catalogue.", run_add_product, configure)


def register_adjust_stock_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``adjust-stock``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--delta", type=int, required=True, help="Signed number of units.")

    return _simple_command("adjust-stock", "Add or remove units of a product.", run_adjust_stock, configure)


def register_delete_product_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-product``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--product-id", required=True)

    return _simple_command("delete-product", "Remove a product and its cart lines.", run_delete_product, configure)


def register_add_client_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-client``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--client-id", default=None, help="Defaults to a generated id.")
        parser.add_argument("--name", required=True)
        parser.add_argument("--phone", required=True)
        parser.add_argument("--city", required=True)
        parser.add_argument("--pending-amount", default="0")

    return _simple_command("add-client", "Register a new client.", run_add_client, configure)


def register_delete_client_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-client``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--client-id", required=True)

    return _simple_command("delete-client", "Remove a client.", run_delete_client, configure)


def register_adjust_balance_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``adjust-balance``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--client-id", required=True)
        parser.add_argument("--delta", required=True, help="Signed amount; negative for payments.")

    return _simple_command("adjust-balance", "Change a client's pending balance.", run_adjust_balance, configure)


def register_set_merchant_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``set-merchant``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--name", required=True)
        parser.add_argument("--phone", required=True)
        parser.add_argument("--store-name", required=True)
        parser.add_argument("--city", required=True)
        parser.add_argument(
            "--plan",
            choices=[member.value for member in MerchantPlan],
            default=MerchantPlan.GRATIS.value,
        )
        parser.add_argument("--multicaixa", action="store_true", help="Mark Multicaixa payments as active.")

    return _simple_command("set-merchant", "Set the merchant profile printed on invoices.", run_set_merchant, configure)


def register_cart_add_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``cart-add``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--quantity", type=int, required=True)

    return _simple_command("cart-add", "Add units of a product to the cart.", run_cart_add, configure)


def register_cart_remove_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``cart-remove``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--product-id", required=True)

    return _simple_command("cart-remove", "Remove a line from the cart.", run_cart_remove, configure)


def register_cart_clear_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``cart-clear``."""
    return _simple_command("cart-clear", "Abandon the cart and return its units to stock.", run_cart_clear)


def register_checkout_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``checkout``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        buyer = parser.add_mutually_exclusive_group(required=True)
        buyer.add_argument("--client-id", default=None)
        buyer.add_argument("--walk-in-name", default=None)
        parser.add_argument("--walk-in-phone", default="")
        parser.add_argument("--walk-in-city", default="Luanda")
        parser.add_argument("--total", default=None, help="Expected tax-inclusive total.")
        parser.add_argument("--tax", default=None, help="Expected tax amount.")

    return _simple_command("checkout", "Complete the sale and issue the invoice.", run_checkout, configure)


def register_regenerate_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``regenerate``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--invoice-number", required=True)

    return _simple_command("regenerate", "Re-render the document of a stored invoice.", run_regenerate, configure)


def register_import_backup_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``import-backup``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--input", type=Path, required=True)
        parser.add_argument("--yes", action="store_true", help="Confirm that all current data is replaced.")

    return _simple_command("import-backup", "Replace all data with a JSON backup.", run_import_backup, configure)


def register_stock_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``stock``."""
    return _simple_command("stock", "Display current stock levels.", run_stock_report)


def register_clients_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``clients``."""
    return _simple_command("clients", "Display clients and pending balances.", run_clients_report)


def register_cart_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``cart``."""
    return _simple_command("cart", "Display the cart and its totals.", run_cart_report)


def register_invoices_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``invoices``."""
    return _simple_command("invoices", "Display issued invoices.", run_invoices_report)


def register_dashboard_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``dashboard``."""
    return _simple_command("dashboard", "Display today's sales, debts and the last 7 days.", run_dashboard)


def _output_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--output", type=Path, default=None, help="Write to a file instead of stdout.")


def register_saft_export_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``saft-export``."""
    return _simple_command("saft-export", "Generate the SAF-T (AO) XML file.", run_saft_export, _output_option)


def register_export_backup_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``export-backup``."""
    return _simple_command("export-backup", "Write a JSON backup of all data.", run_export_backup, _output_option)


def register_clients_csv_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``clients-csv``."""
    return _simple_command("clients-csv", "Export clients as semicolon-separated CSV.", run_clients_csv, _output_option)


def register_whatsapp_link_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``whatsapp-link``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--client-id", required=True)
        parser.add_argument(
            "--invoice-number",
            default=None,
            help="Share this invoice; without it a pending-balance reminder is built.",
        )

    return _simple_command("whatsapp-link", "Build a WhatsApp message link for a client.", run_whatsapp_link, configure)


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations."""
    return core_logic.load_runtime_context(config_path)


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


def parse_money(raw: Optional[str], label: str) -> Optional[Decimal]:
    """Parse a monetary CLI argument, rejecting non-numeric text."""
    if raw is None:
        return None
    try:
        value = Decimal(raw)
    except InvalidOperation as exc:
        raise core_logic.ValidationError(f"{label} must be a number, got {raw!r}") from exc
    if not value.is_finite():
        raise core_logic.ValidationError(f"{label} must be a finite number")
    return value


def translate_add_product(args: argparse.Namespace) -> Product:
    """Translate CLI args into a new product record."""
    return Product(
        product_id=args.product_id or core_logic.new_product_id(),
        name=args.name,
        price=parse_money(args.price, "Price"),
        stock=args.stock,
        category=ProductCategory(args.category),
        image_url=args.image_url,
    )


def translate_add_client(args: argparse.Namespace) -> Client:
    """Translate CLI args into a new client record."""
    return Client(
        client_id=args.client_id or core_logic.new_client_id(),
        name=args.name,
        phone=args.phone,
        city=args.city,
        pending_amount=parse_money(args.pending_amount, "Pending amount"),
    )


def translate_set_merchant(args: argparse.Namespace) -> Merchant:
    """Translate CLI args into a merchant profile."""
    return Merchant(
        name=args.name,
        phone=args.phone,
        store_name=args.store_name,
        city=args.city,
        plan=MerchantPlan(args.plan),
        multicaixa_active=args.multicaixa,
    )


def translate_checkout(args: argparse.Namespace) -> Mapping[str, Any]:
    """Translate CLI args into ``complete_sale`` keyword arguments."""
    walk_in: Optional[Client] = None
    if args.walk_in_name is not None:
        walk_in = Client(
            client_id=core_logic.new_client_id(),
            name=args.walk_in_name,
            phone=args.walk_in_phone.strip() or "N/A",
            city=args.walk_in_city,
        )
    return {
        "client_id": args.client_id,
        "client": walk_in,
        "total": parse_money(args.total, "Total"),
        "tax": parse_money(args.tax, "Tax"),
    }


def _money(context: core_logic.RuntimeContext, amount: Decimal) -> str:
    return format_money(amount, context.settings.currency, context.settings.locale)


def _emit(text: str, output: Optional[Path]) -> None:
    if output is None:
        print(text, end="" if text.endswith("\n") else "\n")
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(text, encoding="utf-8")
    log.info("Wrote '%s'", output)


def run_add_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the add-product workflow in the BLL."""
    product = core_logic.add_product(context, translate_add_product(args))
    print(product.product_id)
    return 0


def run_adjust_stock(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the stock adjustment workflow in the BLL."""
    if core_logic.adjust_stock(context, args.product_id, args.delta) is None:
        raise core_logic.ValidationError(f"Unknown product id: {args.product_id}")
    return 0


def run_delete_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the delete-product workflow in the BLL."""
    if not core_logic.delete_product(context, args.product_id):
        raise core_logic.ValidationError(f"Unknown product id: {args.product_id}")
    return 0


def run_add_client(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the add-client workflow in the BLL."""
    client = core_logic.add_client(context, translate_add_client(args))
    print(client.client_id)
    return 0


def run_delete_client(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the delete-client workflow in the BLL."""
    if not core_logic.delete_client(context, args.client_id):
        raise core_logic.ValidationError(f"Unknown client id: {args.client_id}")
    return 0


def run_adjust_balance(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the pending-balance adjustment workflow in the BLL."""
    delta = parse_money(args.delta, "Delta")
    if core_logic.adjust_pending_balance(context, args.client_id, delta) is None:
        raise core_logic.ValidationError(f"Unknown client id: {args.client_id}")
    return 0


def run_set_merchant(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the merchant profile workflow in the BLL."""
    core_logic.set_merchant(context, translate_set_merchant(args))
    return 0


def run_cart_add(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the cart-add workflow in the BLL."""
    result = core_logic.add_to_cart(context, args.product_id, args.quantity)
    print(f"{result.item.product_id} x{result.item.quantity} (stock left: {result.remaining_stock})")
    if result.low_stock:
        print(f"Atenção: stock baixo ({result.remaining_stock} unidades)")
    return 0


def run_cart_remove(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the cart-remove workflow in the BLL."""
    core_logic.remove_from_cart(context, args.product_id)
    return 0


def run_cart_clear(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the cart abandonment workflow in the BLL."""
    core_logic.release_cart(context)
    return 0


def run_checkout(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the sale completion workflow, then empty the cart."""
    invoice = core_logic.complete_sale(context, **translate_checkout(args))
    core_logic.clear_cart(context)
    print(f"{invoice.invoice_number} {_money(context, invoice.total)}")
    if invoice.document_path is not None:
        print(invoice.document_path)
    else:
        print("Documento não gerado; use 'regenerate' para tentar de novo.")
    return 0


def run_regenerate(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the document regeneration workflow."""
    core_logic.regenerate_invoice_document(context, args.invoice_number)
    invoice = core_logic.find_invoice(context, args.invoice_number)
    print(invoice.document_path if invoice is not None else "")
    return 0


def run_import_backup(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the backup restore workflow."""
    payload = args.input.read_text(encoding="utf-8")
    exports.import_backup(context, payload, confirm=args.yes)
    return 0


def run_stock_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the stock reporting workflow."""
    for product in core_logic.list_products(context):
        marker = "\tstock baixo" if product.stock < LOW_STOCK_THRESHOLD else ""
        print(f"{product.product_id}\t{product.name}\t{product.stock}\t{_money(context, product.price)}{marker}")
    return 0


def run_clients_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the client reporting workflow."""
    for client in core_logic.list_clients(context):
        print(f"{client.client_id}\t{client.name}\t{client.phone}\t{_money(context, client.pending_amount)}")
    return 0


def run_cart_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the cart reporting workflow."""
    for item in core_logic.list_cart(context):
        product = core_logic.get_product(context, item.product_id)
        label = product.name if product is not None else f"ID:{item.product_id}"
        print(f"{label}\t{item.quantity}\t{_money(context, item.line_total)}")
    totals = core_logic.compute_cart_totals(context)
    print(f"Subtotal\t{_money(context, totals.subtotal)}")
    print(f"IVA\t{_money(context, totals.tax)}")
    print(f"Total\t{_money(context, totals.total)}")
    return 0


def run_invoices_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the invoice listing workflow."""
    for invoice in core_logic.list_invoices(context):
        client_name = core_logic.client_display_name(context, invoice.client_id)
        print(f"{invoice.invoice_number}\t{invoice.date[:10]}\t{client_name}\t{_money(context, invoice.total)}")
    return 0


def run_dashboard(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the dashboard summary workflow."""
    summary = core_logic.sales_summary(context)
    print(f"Vendas hoje\t{_money(context, summary.today_total)} ({summary.today_count})")
    print(f"Dívidas clientes\t{_money(context, summary.pending_total)} ({summary.pending_client_count} clientes)")
    print(f"Produtos\t{summary.product_count}")
    print(f"Faturas\t{summary.sale_count}")
    for entry in summary.daily_revenue:
        day = format_invoice_date(entry.day.isoformat(), context.settings.locale)
        print(f"{day}\t{_money(context, entry.total)}")
    if summary.low_stock:
        names = ", ".join(f"{product.name} ({product.stock})" for product in summary.low_stock)
        print(f"Stock baixo\t{names}")
    return 0


def run_saft_export(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the tax export workflow."""
    _emit(saft.build_saft_from_context(context), args.output)
    return 0


def run_export_backup(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the backup export workflow."""
    _emit(exports.export_backup(context), args.output)
    return 0


def run_clients_csv(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the client CSV export workflow."""
    _emit(exports.clients_to_csv(core_logic.list_clients(context)), args.output)
    return 0


def run_whatsapp_link(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Build and print the ``wa.me`` link for a client."""
    client = core_logic.get_client(context, args.client_id)
    if client is None:
        raise core_logic.ValidationError(f"Unknown client id: {args.client_id}")
    store_name = context.merchant.store_name if context.merchant is not None else ""
    if args.invoice_number is not None:
        invoice = core_logic.find_invoice(context, args.invoice_number)
        if invoice is None:
            raise core_logic.ValidationError(f"Unknown invoice: {args.invoice_number}")
        message = exports.invoice_message(
            client.name, invoice.invoice_number, _money(context, invoice.total), store_name
        )
    else:
        message = exports.pending_reminder_message(
            client.name, _money(context, client.pending_amount), store_name
        )
    print(exports.whatsapp_link(client.phone, message, country_code=context.settings.country_code))
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, core_logic.ValidationError):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    log.error("%s", error)
    return 1


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        core_logic.ensure_schema_version(context)
        return dispatch_command(context, args, command_table)
    except Exception as error:  # pragma: no cover - exit codes covered through handle_cli_error
        return handle_cli_error(error)
