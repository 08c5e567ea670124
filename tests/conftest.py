"""Shared pytest fixtures and utilities for Gestor de Vendas tests."""

from __future__ import annotations

import argparse
import sys
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Iterator, Mapping
from unittest.mock import Mock

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from gestor_vendas import cli, constants, core_logic, data_manager  # noqa: E402
from gestor_vendas.constants import MerchantPlan, ProductCategory, StoreKey  # noqa: E402
from gestor_vendas.models import Client, Merchant, Product  # noqa: E402
from gestor_vendas.setup_store import create_store_workbook  # noqa: E402

DEFAULT_SCHEMA_VERSION = constants.EXPECTED_SCHEMA_VERSION
FAKE_PDF = b"%PDF-1.4 stub document"
_CONFIG_TEMPLATE = (
    "[System]\n"
    "DataFile = {data_file}\n"
    "SchemaVersion = {schema_version}\n"
    "DocumentsDir = {documents_dir}\n"
    "RenderTimeout = {render_timeout}\n\n"
    "[Locale]\n"
    "Locale = pt_AO\n"
    "Currency = AOA\n"
    "CountryCode = 244\n\n"
    "[Company]\n"
    "TaxID = 5000000000\n"
    "Address = Rua Direita 1\n"
    "Municipality = Luanda\n"
    "Province = Luanda\n"
    "Email = loja@example.ao\n"
)


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    workbook_path: Path
    documents_dir: Path
    schema_version: str


def make_product(
    product_id: str = "prod-001",
    *,
    name: str = "Refrigerante Cola 1L",
    price: str = "250",
    stock: int = 120,
    category: ProductCategory = ProductCategory.BEBIDAS,
) -> Product:
    return Product(product_id, name, Decimal(price), stock, category)


def make_client(
    client_id: str = "cli-001",
    *,
    name: str = "Maria Domingos",
    phone: str = "923456789",
    city: str = "Luanda",
    pending: str = "0",
) -> Client:
    return Client(client_id, name, phone, city, Decimal(pending))


def make_merchant() -> Merchant:
    return Merchant(
        name="João Luís",
        phone="244999123456",
        store_name="Loja do João",
        city="Luanda",
        plan=MerchantPlan.GRATIS,
    )


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture
def workbook_factory(tmp_path: Path) -> Callable[..., Path]:
    """Factory that creates an initialized store workbook in a temp folder."""

    def _create_workbook(
        *,
        subdir: str | None = None,
        seed: bool = True,
        initial_values: Mapping[StoreKey, Any] | None = None,
        filename: str = "gestor_vendas.xlsx",
    ) -> Path:
        base_dir = tmp_path if subdir is None else tmp_path / subdir
        base_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = base_dir / filename
        create_store_workbook(workbook_path, seed=seed, initial_values=initial_values, overwrite=True)
        return workbook_path

    return _create_workbook


@pytest.fixture
def config_factory(tmp_path: Path, workbook_factory: Callable[..., Path]) -> Callable[..., ConfigBundle]:
    """Provide a callable that creates config/workbook bundles on demand."""

    def _create_config(
        *,
        make_relative: bool = False,
        schema_version: str = DEFAULT_SCHEMA_VERSION,
        render_timeout: float = 5,
        seed: bool = True,
        initial_values: Mapping[StoreKey, Any] | None = None,
    ) -> ConfigBundle:
        subdir = f"bundle_{uuid.uuid4().hex}"
        bundle_dir = tmp_path / subdir
        workbook_path = workbook_factory(subdir=subdir, seed=seed, initial_values=initial_values)
        documents_dir = bundle_dir / "faturas"
        config_path = bundle_dir / "config.ini"
        config_path.write_text(
            _CONFIG_TEMPLATE.format(
                data_file=workbook_path.name if make_relative else str(workbook_path),
                schema_version=schema_version,
                documents_dir="faturas" if make_relative else str(documents_dir),
                render_timeout=render_timeout,
            ),
            encoding="utf-8",
        )
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            workbook_path=workbook_path,
            documents_dir=documents_dir,
            schema_version=schema_version,
        )

    return _create_config


@pytest.fixture
def config_bundle(config_factory: Callable[..., ConfigBundle]) -> ConfigBundle:
    return config_factory()


@pytest.fixture
def config_file(config_bundle: ConfigBundle) -> Path:
    """Convenience fixture returning only the config path."""

    return config_bundle.config_path


@pytest.fixture
def runtime_context(config_file: Path) -> core_logic.RuntimeContext:
    """Load a seeded runtime context through the public API."""

    context = core_logic.load_runtime_context(config_file)
    core_logic.ensure_schema_version(context)
    return context


@pytest.fixture
def fake_renderer() -> Mock:
    """Renderer stand-in that returns a tiny fixed document."""

    return Mock(name="renderer", return_value=FAKE_PDF)


# ---------------------------------------------------------------------------
# CLI layer fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_parser() -> argparse.ArgumentParser:
    """Return a fresh CLI parser instance for tests."""

    return argparse.ArgumentParser(prog="gestor-vendas", description="Gestor de Vendas CLI")


@pytest.fixture
def subparsers_action(
    cli_parser: argparse.ArgumentParser,
) -> argparse._SubParsersAction[argparse.ArgumentParser]:
    """Return the subparser action used to register commands."""

    return cli_parser.add_subparsers(dest="command")


@pytest.fixture
def command_spec_iterable() -> list[cli.CommandSpec]:
    """Provide a list of command specs for indexing tests."""

    def _make_spec(name: str) -> cli.CommandSpec:
        return cli.CommandSpec(
            name,
            f"{name} help",
            lambda subparsers: subparsers.add_parser(name),
            lambda *_: 0,
        )

    return [_make_spec("alpha"), _make_spec("beta"), _make_spec("gamma")]


# ---------------------------------------------------------------------------
# Core logic fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path: Path) -> data_manager.ConfigSettings:
    """Provide default configuration settings for in-memory context tests."""

    return data_manager.ConfigSettings(
        data_file=tmp_path / "gestor_vendas.xlsx",
        schema_version=constants.EXPECTED_SCHEMA_VERSION,
        documents_dir=tmp_path / "faturas",
        render_timeout=5,
    )


@pytest.fixture
def store() -> Mock:
    """Return a mock store; every save reports success."""

    mock = Mock(name="store")
    mock.save.return_value = True
    return mock


@pytest.fixture
def context(settings: data_manager.ConfigSettings, store: Mock) -> core_logic.RuntimeContext:
    """Assemble a runtime context with a catalogue, a client and a merchant."""

    return core_logic.RuntimeContext(
        settings=settings,
        store=store,
        products=[
            make_product("prod-001", price="1000", stock=20),
            make_product("prod-002", name="Arroz Bom Gosto 5kg", price="4500", stock=12, category=ProductCategory.COMIDA),
        ],
        clients=[make_client()],
        merchant=make_merchant(),
    )


@pytest.fixture
def set_fixed_datetime(monkeypatch: pytest.MonkeyPatch) -> Callable[[datetime], datetime]:
    """Patch ``core_logic.datetime`` to return a predetermined moment."""

    def _apply(moment: datetime) -> datetime:
        class _FixedDateTime:
            @staticmethod
            def now(tz=None):
                assert tz is UTC
                return moment

        monkeypatch.setattr(core_logic, "datetime", _FixedDateTime)
        return moment

    return _apply
