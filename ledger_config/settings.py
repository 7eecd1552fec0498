"""
Runtime settings (``ledger_config.settings``).

``load_settings()`` is the only place in the project that reads
environment variables.  Everything else receives a ``LedgerSettings``
value or something built from it by ``ledger_config.bridges``.

Precedence, lowest first:
    1. ``sets/default.yaml`` shipped with the package
    2. the file named by ``path`` or ``LEDGER_CONFIG``
    3. ``LEDGER_DATABASE_URL`` and ``LEDGER_LOG_LEVEL``
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Mapping

from ledger_config.loader import load_yaml_file

DEFAULT_SETTINGS_FILE = Path(__file__).parent / "sets" / "default.yaml"

ENV_CONFIG_PATH = "LEDGER_CONFIG"
ENV_DATABASE_URL = "LEDGER_DATABASE_URL"
ENV_LOG_LEVEL = "LEDGER_LOG_LEVEL"


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite:///ledger.db"
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800


@dataclass(frozen=True)
class PostingSettings:
    entry_number_prefix: str = "JE"
    entry_number_width: int = 5
    balance_tolerance: Decimal = Decimal("0.01")
    max_number_attempts: int = 5
    max_transaction_attempts: int = 3
    retry_backoff_seconds: float = 0.05


@dataclass(frozen=True)
class LedgerSettings:
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    posting: PostingSettings = field(default_factory=PostingSettings)
    log_level: str = "INFO"
    source: str | None = None


def _merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(result.get(key), dict):
            result[key] = _merge(result[key], value)
        else:
            result[key] = value
    return result


def parse_settings(data: Mapping[str, Any], source: str | None = None) -> LedgerSettings:
    """Build LedgerSettings from a parsed YAML mapping; unknown keys are ignored."""
    db = data.get("database", {}) or {}
    posting = data.get("posting", {}) or {}
    logging_section = data.get("logging", {}) or {}

    database = DatabaseSettings(
        url=str(db.get("url", DatabaseSettings.url)),
        echo=bool(db.get("echo", False)),
        pool_size=int(db.get("pool_size", DatabaseSettings.pool_size)),
        max_overflow=int(db.get("max_overflow", DatabaseSettings.max_overflow)),
        pool_timeout=int(db.get("pool_timeout", DatabaseSettings.pool_timeout)),
        pool_recycle=int(db.get("pool_recycle", DatabaseSettings.pool_recycle)),
    )
    posting_settings = PostingSettings(
        entry_number_prefix=str(posting.get("entry_number_prefix", "JE")),
        entry_number_width=int(posting.get("entry_number_width", 5)),
        # str() first so a YAML float never reaches Decimal directly
        balance_tolerance=Decimal(str(posting.get("balance_tolerance", "0.01"))),
        max_number_attempts=int(posting.get("max_number_attempts", 5)),
        max_transaction_attempts=int(posting.get("max_transaction_attempts", 3)),
        retry_backoff_seconds=float(posting.get("retry_backoff_seconds", 0.05)),
    )
    return LedgerSettings(
        database=database,
        posting=posting_settings,
        log_level=str(logging_section.get("level", "INFO")).upper(),
        source=source,
    )


def load_settings(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> LedgerSettings:
    """
    Load settings from YAML plus environment overrides.

    Args:
        path: Settings file layered over the defaults.  Falls back to
            ``LEDGER_CONFIG`` when omitted.
        environ: Environment mapping; ``os.environ`` when omitted.

    Raises:
        FileNotFoundError: the named settings file does not exist.
    """
    env = os.environ if environ is None else environ

    data = load_yaml_file(DEFAULT_SETTINGS_FILE)
    source = str(DEFAULT_SETTINGS_FILE)

    override_path = path or env.get(ENV_CONFIG_PATH)
    if override_path:
        data = _merge(data, load_yaml_file(Path(override_path)))
        source = str(override_path)

    if env.get(ENV_DATABASE_URL):
        data = _merge(data, {"database": {"url": env[ENV_DATABASE_URL]}})
    if env.get(ENV_LOG_LEVEL):
        data = _merge(data, {"logging": {"level": env[ENV_LOG_LEVEL]}})

    return parse_settings(data, source=source)
