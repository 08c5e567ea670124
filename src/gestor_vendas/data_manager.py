"""Data access layer for Gestor de Vendas.

This module provides low-level helpers that read from and write to the local
store workbook. Business logic belongs elsewhere.

The public API is designed around three responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: opening and persisting the Excel file.
3. Key/value access: :class:`PersistentStore` loads and saves one serialized
   collection per key, overwriting the whole collection on every save.
"""


from __future__ import annotations

import configparser
import json
import os
import tempfile
import warnings
import zipfile
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.workbook import Workbook
import openpyxl

from . import log
from .constants import CURRENCY, DEFAULT_COUNTRY_CODE, DEFAULT_LOCALE, DEFAULT_TIME_ZONE, StoreKey


CONFIG_FILE_NAME = "config.ini"
DEFAULT_DOCUMENTS_DIR = "faturas"
DEFAULT_RENDER_TIMEOUT = 10.0

# Spreadsheet cells hold at most 32 767 characters; values are split below that.
CHUNK_SIZE = 32_000


class PersistenceWarning(UserWarning):
    """Emitted when the store cannot be read or written; callers carry on."""


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    schema_version: str
    documents_dir: Path
    render_timeout: float = DEFAULT_RENDER_TIMEOUT
    locale: str = DEFAULT_LOCALE
    currency: str = CURRENCY
    country_code: str = DEFAULT_COUNTRY_CODE
    time_zone: str = DEFAULT_TIME_ZONE
    company_tax_id: str = ""
    company_address: str = ""
    company_municipality: str = ""
    company_province: str = ""
    company_email: str = ""


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification. When no explicit path is given the function walks
    up from the current working directory toward the filesystem root looking
    for a file named ``CONFIG_FILE_NAME``. The first match that exists on disk
    is considered authoritative.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search. May be relative to the current working directory.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If the search exhausts all parent directories without
            finding ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Args:
        config_path (Path): Path to the configuration file, relative or
            absolute. ``~`` is expanded.

    Returns:
        configparser.ConfigParser: Initialized parser containing the raw
            configuration data. Validation happens in :func:`parse_settings`.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path, encoding="utf-8")
    return parser


def _anchor(raw: str, base_path: Optional[Path]) -> Path:
    path = Path(raw).expanduser()
    if not path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        path = (base_path / path).resolve()
    return path


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    ``[System] DataFile`` and ``[System] SchemaVersion`` are mandatory; every
    other option falls back to a default. Relative paths are anchored to
    ``base_path`` (normally the directory holding ``config.ini``) or the
    current working directory.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory used to resolve relative paths.

    Returns:
        ConfigSettings: Immutable settings container.

    Raises:
        KeyError: If a required section or option is missing, or if
            ``RenderTimeout`` is not a number or ``TimeZone`` is unknown.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        schema_version = parser.get("System", "SchemaVersion")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    documents_raw = parser.get("System", "DocumentsDir", fallback=DEFAULT_DOCUMENTS_DIR)
    try:
        render_timeout = parser.getfloat("System", "RenderTimeout", fallback=DEFAULT_RENDER_TIMEOUT)
    except ValueError as exc:
        raise KeyError(f"Invalid RenderTimeout entry: {exc}") from exc

    time_zone = parser.get("Locale", "TimeZone", fallback=DEFAULT_TIME_ZONE)
    try:
        ZoneInfo(time_zone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise KeyError(f"Invalid TimeZone entry: {time_zone!r}") from exc

    return ConfigSettings(
        data_file=_anchor(data_file_raw, base_path),
        schema_version=schema_version,
        documents_dir=_anchor(documents_raw, base_path),
        render_timeout=render_timeout,
        locale=parser.get("Locale", "Locale", fallback=DEFAULT_LOCALE),
        currency=parser.get("Locale", "Currency", fallback=CURRENCY),
        country_code=parser.get("Locale", "CountryCode", fallback=DEFAULT_COUNTRY_CODE),
        time_zone=time_zone,
        company_tax_id=parser.get("Company", "TaxID", fallback=""),
        company_address=parser.get("Company", "Address", fallback=""),
        company_municipality=parser.get("Company", "Municipality", fallback=""),
        company_province=parser.get("Company", "Province", fallback=""),
        company_email=parser.get("Company", "Email", fallback=""),
    )


def open_workbook(data_file: Path) -> Workbook:
    """Open the store workbook and return a live ``openpyxl`` workbook.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist after expansion and
            resolution.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    return openpyxl.load_workbook(data_file)


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook to disk at ``destination``.

    The workbook is first written to a sibling temporary file and then moved
    over the destination, so an interrupted save leaves the previous file
    intact. Parent directories are created on demand.
    """

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{dest.stem}-", suffix=dest.suffix, dir=dest.parent)
    os.close(fd)
    try:
        workbook.save(tmp_name)
        os.replace(tmp_name, dest)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def empty_workbook() -> Workbook:
    """Return a workbook without the default sheet openpyxl creates."""

    workbook = Workbook()
    workbook.remove(workbook.active)
    return workbook


def quarantine_file(data_file: Path) -> Optional[Path]:
    """Rename an unreadable workbook aside so later saves cannot overwrite it.

    Returns the new path, or ``None`` when the rename itself failed.
    """

    source = Path(data_file).expanduser().resolve()
    target = source.with_name(f"{source.name}.corrupt-{datetime.now().strftime('%Y%m%dT%H%M%S')}")
    try:
        os.replace(source, target)
    except OSError as exc:
        log.error("Could not move unreadable workbook '%s' aside: %s", source, exc)
        return None
    return target


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode_value(value: Any) -> str:
    """Serialize a collection deterministically (insertion order, UTF-8 text)."""

    return json.dumps(value, ensure_ascii=False, default=_json_default)


def split_chunks(text: str, size: int = CHUNK_SIZE) -> list[str]:
    if not text:
        return [""]
    return [text[start:start + size] for start in range(0, len(text), size)]


class PersistentStore:
    """Key/value store over the workbook, one worksheet per key.

    The serialized value of a key is spread across column ``A`` of the sheet
    named after the key. :meth:`save` recreates the sheet wholesale and writes
    the workbook to disk; there is no update-in-place primitive.
    """

    def __init__(self, data_file: Path, workbook: Workbook):
        self.data_file = Path(data_file)
        self.workbook = workbook

    @classmethod
    def open(cls, data_file: Path) -> "PersistentStore":
        """Open the workbook at ``data_file``.

        An unreadable workbook is renamed to ``<name>.corrupt-<timestamp>`` and
        the store starts empty, with a :class:`PersistenceWarning`.

        Raises:
            FileNotFoundError: If ``data_file`` does not exist.
        """
        try:
            workbook = open_workbook(data_file)
        except FileNotFoundError:
            raise
        except (zipfile.BadZipFile, InvalidFileException, OSError, KeyError) as exc:
            quarantined = quarantine_file(data_file)
            where = f"moved to '{quarantined}'" if quarantined is not None else "left in place"
            _warn(f"Store workbook '{data_file}' is unreadable ({exc}); {where}, starting empty")
            return cls(data_file, empty_workbook())
        log.info("Opened store workbook '%s'", data_file)
        return cls(data_file, workbook)

    def keys(self) -> list[str]:
        return list(self.workbook.sheetnames)

    def read_raw(self, key: StoreKey | str) -> Optional[str]:
        """Return the stored JSON text for ``key`` or ``None`` when absent."""

        name = _key_name(key)
        if name not in self.workbook.sheetnames:
            return None
        sheet = self.workbook[name]
        parts = [row[0] for row in sheet.iter_rows(min_col=1, max_col=1, values_only=True) if row[0] is not None]
        if not parts:
            return None
        return "".join(str(part) for part in parts)

    def load(self, key: StoreKey | str, default: Any) -> Any:
        """Load the value stored under ``key``.

        Absent keys silently yield ``default``. Corrupt JSON is logged and
        reported as a :class:`PersistenceWarning`, and ``default`` is returned.
        """

        name = _key_name(key)
        raw = self.read_raw(name)
        if raw is None:
            log.debug("Store key '%s' absent; using default", name)
            return default
        try:
            return json.loads(raw)
        except ValueError as exc:
            _warn(f"Error loading store key '{name}': {exc}")
            return default

    def save(self, key: StoreKey | str, value: Any) -> bool:
        """Overwrite ``key`` with ``value`` and persist the workbook.

        Returns ``True`` when the value reached the disk. Failures are logged
        and reported as :class:`PersistenceWarning`; they are never raised.
        """

        name = _key_name(key)
        try:
            text = encode_value(value)
        except (TypeError, ValueError) as exc:
            _warn(f"Error serializing store key '{name}': {exc}")
            return False

        if name in self.workbook.sheetnames:
            self.workbook.remove(self.workbook[name])
        sheet = self.workbook.create_sheet(title=name)
        for chunk in split_chunks(text):
            sheet.append([chunk])

        try:
            save_workbook(self.workbook, self.data_file)
        except (OSError, PermissionError) as exc:
            _warn(f"Error saving store key '{name}' to '{self.data_file}': {exc}")
            return False
        log.debug("Saved store key '%s' (%d chars)", name, len(text))
        return True


def _key_name(key: StoreKey | str) -> str:
    return key.value if isinstance(key, StoreKey) else str(key)


def _warn(message: str) -> None:
    log.warning(message)
    warnings.warn(message, PersistenceWarning, stacklevel=3)
