"""
Config -> kernel bridges.

Functions that turn settings and templates into kernel inputs.  They live
here because the kernel must never import ledger_config.

Usage:
    from ledger_config import load_settings
    from ledger_config.bridges import bootstrap, chart_of_accounts, posting_policy

    settings = load_settings()
    engine = bootstrap(settings)
    policy = posting_policy(settings)
    accounts = chart_of_accounts("trading")
"""

from __future__ import annotations

from sqlalchemy.engine import Engine

from ledger_config.loader import load_chart_template
from ledger_config.settings import LedgerSettings
from ledger_kernel.db.engine import init_engine_from_url
from ledger_kernel.domain.dtos import AccountSpec, PostingPolicy
from ledger_kernel.logging_config import configure_logging, get_logger
from ledger_kernel.models.company import BusinessType

logger = get_logger("config")


def posting_policy(settings: LedgerSettings) -> PostingPolicy:
    posting = settings.posting
    return PostingPolicy(
        entry_number_prefix=posting.entry_number_prefix,
        entry_number_width=posting.entry_number_width,
        balance_tolerance=posting.balance_tolerance,
        max_number_attempts=posting.max_number_attempts,
        max_transaction_attempts=posting.max_transaction_attempts,
        retry_backoff_seconds=posting.retry_backoff_seconds,
    )


def chart_of_accounts(business_type: BusinessType | str) -> tuple[AccountSpec, ...]:
    """Template accounts for CompanyService.create_company(accounts=...)."""
    return load_chart_template(business_type)


def bootstrap(settings: LedgerSettings) -> Engine:
    """
    Configure logging at the settings' level, then initialise the engine.

    Returns the engine; sessions come from ledger_kernel.db.get_session().
    """
    configure_logging(level=settings.log_level)
    db = settings.database
    engine = init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        pool_recycle=db.pool_recycle,
    )
    logger.info(
        "ledger_bootstrapped",
        extra={"config_source": settings.source, "log_level": settings.log_level},
    )
    return engine
