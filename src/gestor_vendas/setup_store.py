"""Utility for initializing the Gestor de Vendas store workbook.

The module doubles as a console script (``gestor-vendas-setup``) and as a
library used by tests. It writes one worksheet per store key holding an empty
collection, and optionally the starter catalogue and merchant profile.
"""

from __future__ import annotations

import argparse
from decimal import Decimal
from pathlib import Path
from typing import Any, Mapping, Sequence
import sys

from . import data_manager, models
from .constants import MerchantPlan, ProductCategory, StoreKey
from .models import Merchant, Product

CONFIG_FILE = data_manager.CONFIG_FILE_NAME

EMPTY_VALUES: Mapping[StoreKey, Any] = {
    StoreKey.PRODUCTS: [],
    StoreKey.CLIENTS: [],
    StoreKey.CART: [],
    StoreKey.SALES: [],
    StoreKey.INVOICES: [],
    StoreKey.MERCHANT: None,
    StoreKey.SEQUENCES: {},
}

INITIAL_PRODUCTS: Sequence[Product] = (
    Product("prod-001", "Refrigerante Cola 1L", Decimal("250"), 120, ProductCategory.BEBIDAS),
    Product("prod-002", "Arroz Bom Gosto 5kg", Decimal("4500"), 50, ProductCategory.COMIDA),
    Product("prod-003", "Smartphone K5 Pro", Decimal("75000"), 15, ProductCategory.ELETRONICOS),
    Product("prod-004", "Água Mineral 1.5L", Decimal("150"), 200, ProductCategory.BEBIDAS),
    Product("prod-005", "Pão de Forma Nutri", Decimal("600"), 30, ProductCategory.COMIDA),
)

INITIAL_MERCHANT = Merchant(
    name="João Luís",
    phone="244999123456",
    store_name="João Luís Marketing Digital IA Agroindústria e Serviços",
    city="Luanda",
    plan=MerchantPlan.GRATIS,
)


def seed_values() -> dict[StoreKey, Any]:
    values = dict(EMPTY_VALUES)
    values[StoreKey.PRODUCTS] = [models.serialize_product(product) for product in INITIAL_PRODUCTS]
    values[StoreKey.MERCHANT] = models.serialize_merchant(INITIAL_MERCHANT)
    return values


def load_settings(config_path: Path) -> data_manager.ConfigSettings:
    """Read ``config.ini`` and resolve its paths against the config directory."""

    parser = data_manager.read_config(config_path)
    return data_manager.parse_settings(parser, base_path=config_path.expanduser().resolve().parent)


def create_store_workbook(
    destination: Path,
    *,
    seed: bool = False,
    initial_values: Mapping[StoreKey, Any] | None = None,
    overwrite: bool = False,
) -> Path:
    """Create the store workbook at ``destination``.

    ``initial_values`` overrides individual keys, which keeps tests free to
    start from any state. When ``overwrite`` is ``False`` (the default) this
    function raises ``FileExistsError`` if the target already exists.
    """

    destination = Path(destination).expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(f"Refusing to overwrite existing store workbook: {destination}")

    values = seed_values() if seed else dict(EMPTY_VALUES)
    if initial_values:
        values.update(initial_values)

    workbook = data_manager.empty_workbook()

    for key in StoreKey:
        worksheet = workbook.create_sheet(title=key.value)
        for chunk in data_manager.split_chunks(data_manager.encode_value(values[key])):
            worksheet.append([chunk])

    data_manager.save_workbook(workbook, destination)
    return destination


def run_from_config(config_path: Path, *, seed: bool = False, overwrite: bool = False) -> Path:
    settings = load_settings(config_path)
    return create_store_workbook(settings.data_file, seed=seed, overwrite=overwrite)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the setup script."""

    parser = argparse.ArgumentParser(prog="gestor-vendas-setup", description="Initialize the Gestor de Vendas store")
    parser.add_argument(
        "--config",
        default=CONFIG_FILE,
        help="Path to configuration file (default: config.ini)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite the target workbook if it already exists.",
    )
    parser.add_argument(
        "--seed",
        action="store_true",
        help="Fill the store with the starter catalogue and merchant profile.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the setup console script."""

    args = parse_args(argv)
    config_path = Path(args.config).expanduser().resolve()

    print("--- Gestor de Vendas Setup ---")
    print(f"Using configuration: {config_path}")

    try:
        output_path = run_from_config(config_path, seed=args.seed, overwrite=args.force)
    except FileNotFoundError as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except KeyError as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except FileExistsError as exc:
        print(f"\n[ERROR] {exc}")
        print("Run with --force to overwrite the existing file if appropriate.")
        return 1
    except (PermissionError, OSError) as exc:
        print(f"\n[ERROR] Unable to write workbook: {exc}")
        return 1

    print(f"\n[SUCCESS] Created store workbook at '{output_path}'.")
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised via manual runs
    sys.exit(main())
