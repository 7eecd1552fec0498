"""
Module: ledger_kernel.db.triggers
Responsibility: Loading, installing and checking the PostgreSQL
    immutability triggers.  The database-level complement to the ORM
    listeners in db/immutability.py.
Architecture position: Kernel > DB.  May import from db/ only.  MUST NOT
    import from models/, services/, selectors/ or domain/.

Invariants enforced (8 triggers across 4 SQL files):
    - Posted JournalEntry rows: no UPDATE, no DELETE.
    - JournalLine rows: no UPDATE/DELETE when the parent entry is posted.
    - PeriodClosing rows: no DELETE; UPDATE only closed -> reopened and
      only on the reopen fields.
    - OpeningBalance rows: no UPDATE, no DELETE.
    updated_at/updated_by_id are audit metadata and may always change.

Failure modes:
    - The trigger raises with SQLSTATE restrict_violation, surfaced by
      SQLAlchemy as IntegrityError.
    - FileNotFoundError if an SQL file is missing from the sql/ directory.

The listeners only see writes that go through the ORM unit of work.  A
Core update(), a bulk statement or psql access bypasses them; the
triggers do not.  SQLite has no plpgsql, so there the listeners are the
only layer.
"""

from pathlib import Path

from sqlalchemy import text
from sqlalchemy.engine import Engine

from ledger_kernel.logging_config import get_logger

logger = get_logger("db.triggers")

SQL_DIR = Path(__file__).parent / "sql"

# Installed in this order; each file creates its function then its triggers
TRIGGER_FILES = [
    "01_journal_entry.sql",
    "02_journal_line.sql",
    "03_period_closing.sql",
    "04_opening_balance.sql",
]

DROP_FILE = "99_drop_all.sql"

ALL_TRIGGER_NAMES = [
    "trg_journal_entry_immutability_update",
    "trg_journal_entry_immutability_delete",
    "trg_journal_line_immutability_update",
    "trg_journal_line_immutability_delete",
    "trg_period_closing_immutability_update",
    "trg_period_closing_immutability_delete",
    "trg_opening_balance_immutability_update",
    "trg_opening_balance_immutability_delete",
]


def _load_sql_file(filename: str) -> str:
    return (SQL_DIR / filename).read_text(encoding="utf-8")


def _load_all_trigger_sql() -> str:
    parts = []
    for filename in TRIGGER_FILES:
        parts.append(f"-- Loading: {filename}")
        parts.append(_load_sql_file(filename))
        parts.append("")
    return "\n".join(parts)


def install_immutability_triggers(engine: Engine) -> None:
    """
    Install the database-level immutability triggers.

    Preconditions: Tables exist (call after Base.metadata.create_all()).
        Engine is connected to PostgreSQL.
    Postconditions: Every trigger in ALL_TRIGGER_NAMES is installed.
        Functions use CREATE OR REPLACE, so a second call is harmless.
    """
    with engine.connect() as conn:
        conn.execute(text(_load_all_trigger_sql()))
        conn.commit()
    logger.info("immutability_triggers_installed", extra={"trigger_count": len(ALL_TRIGGER_NAMES)})


def uninstall_immutability_triggers(engine: Engine) -> None:
    """
    Remove the immutability triggers and their functions.

    WARNING: Only for drop_tables() and migrations that must rewrite
    history.  Reinstall immediately afterwards.
    """
    with engine.connect() as conn:
        conn.execute(text(_load_sql_file(DROP_FILE)))
        conn.commit()
    logger.warning("immutability_triggers_uninstalled")


def get_installed_triggers(engine: Engine) -> list[str]:
    """Names from ALL_TRIGGER_NAMES present in pg_trigger, sorted."""
    with engine.connect() as conn:
        rows = conn.execute(
            text("SELECT tgname FROM pg_trigger WHERE tgname = ANY(:names) ORDER BY tgname"),
            {"names": ALL_TRIGGER_NAMES},
        )
        return [row[0] for row in rows]


def triggers_installed(engine: Engine) -> bool:
    """True iff every trigger in ALL_TRIGGER_NAMES is installed."""
    return len(get_installed_triggers(engine)) == len(ALL_TRIGGER_NAMES)
