"""
ledger_config -- settings and chart-of-accounts templates.

Responsibility:
    Loads runtime settings (``load_settings``) and industry chart-of-accounts
    templates (``load_chart_template``) from the YAML files shipped in
    ``sets/`` and ``templates/``.  ``bridges`` turns them into kernel inputs.

Architecture position:
    Sits above ``ledger_kernel``.  The kernel MUST NEVER import from
    ``ledger_config``.
"""

from ledger_config.loader import load_chart_template
from ledger_config.settings import (
    DatabaseSettings,
    LedgerSettings,
    PostingSettings,
    load_settings,
)

__all__ = [
    "DatabaseSettings",
    "LedgerSettings",
    "PostingSettings",
    "load_chart_template",
    "load_settings",
]
