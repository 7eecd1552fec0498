"""
Configuration loader (``ledger_config.loader``).

Responsibility
--------------
Reads YAML files with ``yaml.safe_load`` and parses them into the frozen
dataclasses of ``ledger_config.settings`` and into kernel ``AccountSpec``
values for chart-of-accounts templates.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Template entry without code/name/account_type  -> ``KeyError``.
* Unknown business type  -> ``UnknownBusinessTypeError``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from ledger_kernel.domain.dtos import AccountSpec
from ledger_kernel.exceptions import UnknownBusinessTypeError
from ledger_kernel.models.account import AccountType
from ledger_kernel.models.company import BusinessType

TEMPLATES_DIR = Path(__file__).parent / "templates"

COMMON_TEMPLATE = "common"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Returns an empty dict for an empty file.
    """
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def parse_account_spec(data: dict[str, Any]) -> AccountSpec:
    return AccountSpec(
        code=str(data["code"]),
        name=data["name"],
        account_type=AccountType(data["account_type"]),
        parent_code=data.get("parent_code"),
        description=data.get("description"),
    )


def load_template_file(name: str, templates_dir: Path | None = None) -> list[AccountSpec]:
    path = (templates_dir or TEMPLATES_DIR) / f"{name}.yaml"
    data = load_yaml_file(path)
    return [parse_account_spec(item) for item in data.get("accounts", [])]


def load_chart_template(
    business_type: BusinessType | str,
    templates_dir: Path | None = None,
) -> tuple[AccountSpec, ...]:
    """
    Chart of accounts for a business type.

    The common accounts are merged with the industry accounts; an industry
    entry replaces a common one with the same code.  Sorted by code.
    """
    known = [bt.value for bt in BusinessType]
    value = getattr(business_type, "value", business_type)
    if value not in known:
        raise UnknownBusinessTypeError(str(value), known)

    merged = {spec.code: spec for spec in load_template_file(COMMON_TEMPLATE, templates_dir)}
    for spec in load_template_file(value, templates_dir):
        merged[spec.code] = spec
    return tuple(merged[code] for code in sorted(merged))
