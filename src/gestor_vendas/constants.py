"""Enumerations and fixed values shared across Gestor de Vendas modules.

Keeps the store keys, tax rate, and catalogue enumerations in one place so the
data access layer, the business logic layer, and the presentation layers agree
on the same identifiers.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum


# Central schema version expected by all layers when validating the store.
EXPECTED_SCHEMA_VERSION = "1.0.0"

CURRENCY = "AOA"
DEFAULT_LOCALE = "pt_AO"
DEFAULT_COUNTRY_CODE = "244"
# Angola keeps UTC+1 all year; invoice years and daily figures use local dates.
DEFAULT_TIME_ZONE = "Africa/Luanda"

# 14% IVA in Angola.
IVA_RATE = Decimal("0.14")
IVA_TAX_CODE = "IVA"

LOW_STOCK_THRESHOLD = 10

UNKNOWN_CLIENT_NAME = "Cliente desconhecido"


class StoreKey(str, Enum):
    """Enumerate the collections held by the persistent store."""

    PRODUCTS = "products"
    CLIENTS = "clients"
    CART = "cart"
    SALES = "sales"
    INVOICES = "invoices"
    MERCHANT = "merchant"
    SEQUENCES = "sequences"


# The six collections that make up a backup; ``SEQUENCES`` is bookkeeping only.
BACKUP_KEYS: tuple[StoreKey, ...] = (
    StoreKey.PRODUCTS,
    StoreKey.CLIENTS,
    StoreKey.CART,
    StoreKey.SALES,
    StoreKey.INVOICES,
    StoreKey.MERCHANT,
)


class ProductCategory(str, Enum):
    """Enumerate the catalogue categories offered when registering products."""

    BEBIDAS = "Bebidas"
    COMIDA = "Comida"
    ELETRONICOS = "Eletrónicos"
    VESTUARIO = "Vestuário"
    HIGIENE = "Higiene"
    FERRAMENTAS = "Ferramentas"
    AGROINDUSTRIA = "Agroindústria"
    SERVICOS = "Serviços"
    MARKETING_DIGITAL = "Marketing Digital"
    IA_SOFTWARE = "IA & Software"
    CONSTRUCAO = "Construção"
    PAPELARIA = "Papelaria"
    SAUDE_BELEZA = "Saúde & Beleza"
    LIMPEZA = "Limpeza"
    INFORMATICA = "Informática"
    MOBILIARIO = "Mobiliário"
    AUTOMOTIVO = "Automotivo"
    SEMENTES = "Sementes & Plantas"
    FERTILIZANTES = "Fertilizantes"
    MAQUINARIA = "Maquinaria"
    CONSULTORIA = "Consultoria"
    OUTROS = "Outros"


class MerchantPlan(str, Enum):
    """Enumerate the subscription tiers a merchant profile may carry."""

    GRATIS = "GRÁTIS"
    PRO5K = "PRO5K"
    VIP15K = "VIP15K"


INVOICE_MESSAGE_TEMPLATE = (
    "Olá {client_name},\n\n"
    "A sua fatura Nº {invoice_number} no valor de {total} está pronta.\n\n"
    "Atenciosamente,\n{store_name}"
)

PENDING_REMINDER_TEMPLATE = (
    "Olá {client_name},\n\n"
    "Gostaríamos de lembrar que tem um valor pendente de {pending_amount}.\n\n"
    "Por favor, entre em contacto para regularizar.\n\n"
    "Obrigado,\n{store_name}"
)


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "CURRENCY",
    "DEFAULT_LOCALE",
    "DEFAULT_COUNTRY_CODE",
    "IVA_RATE",
    "IVA_TAX_CODE",
    "LOW_STOCK_THRESHOLD",
    "UNKNOWN_CLIENT_NAME",
    "StoreKey",
    "BACKUP_KEYS",
    "ProductCategory",
    "MerchantPlan",
    "INVOICE_MESSAGE_TEMPLATE",
    "PENDING_REMINDER_TEMPLATE",
]
