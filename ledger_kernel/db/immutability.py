"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Posted journal entries are the ledger.  Balances are replayed from them on
every query, so editing or deleting one silently rewrites every balance,
report and closing snapshot that was ever derived from it.  Corrections
are made with new offsetting entries instead.

SQLAlchemy fires events before UPDATE/DELETE statements reach the
database.  The listeners below check the rules and raise
ImmutabilityViolationError; the flush aborts and nothing is written.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity          | Rule
----------------|---------------------------------------------------------
JournalEntry    | No update or delete once is_posted
JournalLine     | No update or delete once the parent entry is posted
Account         | account_type never changes; no delete once referenced
PeriodClosing   | No delete; only closed -> reopened (plus reopen fields)
OpeningBalance  | No update, no delete

updated_at/updated_by_id are audit metadata and may always change.

===============================================================================
USAGE
===============================================================================

init_engine_from_url() registers the listeners.  Tests that need to plant
corrupted rows may unregister them temporarily:

    unregister_immutability_listeners()
    try:
        ...
    finally:
        register_immutability_listeners()
"""

from sqlalchemy import event, inspect, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import get_history

from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})

# Fields a reopen may touch on a PeriodClosing
REOPEN_FIELDS = frozenset({"status", "reopened_at", "reopened_by_id", "reopen_reason"})


def _blocked(entity_type: str, entity_id, operation: str, reason: str, **fields):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            **fields,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _changed_fields(target) -> list[str]:
    changed = []
    for attr in inspect(target).attrs:
        if attr.key in AUDIT_FIELDS:
            continue
        if attr.history.has_changes():
            changed.append(attr.key)
    return changed


def _changed_columns(mapper, target) -> list[str]:
    columns = set(mapper.columns.keys())
    return [key for key in _changed_fields(target) if key in columns]


def _value(value):
    return getattr(value, "value", value)


def _was_posted(target) -> bool:
    history = get_history(target, "is_posted")
    if history.deleted:
        return bool(history.deleted[0])
    if history.added:
        return False
    return bool(target.is_posted)


# =============================================================================
# Journal entries and lines
# =============================================================================


def _check_journal_entry_immutability(mapper, connection, target):
    if not _was_posted(target):
        return
    # Column attributes only; a relationship collection change shows up on
    # the lines themselves.
    changed = _changed_columns(mapper, target)
    if changed:
        raise _blocked(
            "JournalEntry",
            target.id,
            "UPDATE",
            f"Cannot modify field(s) {changed} on posted journal entry {target.entry_number}",
            fields=changed,
        )


def _check_journal_entry_delete(mapper, connection, target):
    if target.is_posted:
        raise _blocked(
            "JournalEntry",
            target.id,
            "DELETE",
            f"Posted journal entry {target.entry_number} cannot be deleted",
        )


def _check_journal_line_immutability(mapper, connection, target):
    if not _changed_columns(mapper, target):
        return
    if target.entry is not None and target.entry.is_posted:
        raise _blocked(
            "JournalLine",
            target.id,
            "UPDATE",
            "Journal lines cannot be modified after the entry is posted",
        )


def _check_journal_line_delete(mapper, connection, target):
    if target.entry is not None and target.entry.is_posted:
        raise _blocked(
            "JournalLine",
            target.id,
            "DELETE",
            "Journal lines cannot be deleted after the entry is posted",
        )


# =============================================================================
# Accounts
# =============================================================================


def _check_account_type_immutability(mapper, connection, target):
    history = get_history(target, "account_type")
    if not history.deleted:
        return
    old, new = history.deleted[0], target.account_type
    if _value(old) != _value(new):
        raise _blocked(
            "Account",
            target.id,
            "UPDATE",
            f"account_type of account {target.code} cannot change ({old} -> {new})",
            field="account_type",
        )


def _check_account_deletion_before_flush(session, flush_context, instances):
    """
    Block deletion of accounts that journal lines reference.

    Runs in before_flush because mapper-level delete events fire after the
    flush plan is fixed.
    """
    from ledger_kernel.models.account import Account
    from ledger_kernel.models.journal import JournalLine

    for obj in list(session.deleted):
        if not isinstance(obj, Account):
            continue
        with session.no_autoflush:
            referenced = session.execute(
                select(JournalLine.id).where(JournalLine.account_id == obj.id).limit(1)
            ).first()
        if referenced is not None:
            raise _blocked(
                "Account",
                obj.id,
                "DELETE",
                f"Account {obj.code} has journal lines; deactivate it instead",
            )


# =============================================================================
# Period closings and opening balances
# =============================================================================


def _check_period_closing_immutability(mapper, connection, target):
    from ledger_kernel.models.period_closing import ClosingStatus

    changed = _changed_columns(mapper, target)
    if not changed:
        return

    illegal = [key for key in changed if key not in REOPEN_FIELDS]
    if illegal:
        raise _blocked(
            "PeriodClosing",
            target.id,
            "UPDATE",
            f"Cannot modify field(s) {illegal} on a period closing",
            fields=illegal,
        )

    status_history = get_history(target, "status")
    old_status = status_history.deleted[0] if status_history.deleted else target.status
    if (
        _value(old_status) != ClosingStatus.CLOSED.value
        or _value(target.status) != ClosingStatus.REOPENED.value
    ):
        raise _blocked(
            "PeriodClosing",
            target.id,
            "UPDATE",
            f"Only closed -> reopened is allowed (got {old_status} -> {target.status})",
        )


def _check_period_closing_delete(mapper, connection, target):
    raise _blocked(
        "PeriodClosing",
        target.id,
        "DELETE",
        "Period closings are append-only",
    )


def _check_opening_balance_immutability(mapper, connection, target):
    if _changed_columns(mapper, target):
        raise _blocked(
            "OpeningBalance",
            target.id,
            "UPDATE",
            "Opening balance snapshots cannot be modified",
        )


def _check_opening_balance_delete(mapper, connection, target):
    raise _blocked(
        "OpeningBalance",
        target.id,
        "DELETE",
        "Opening balance snapshots cannot be deleted",
    )


# =============================================================================
# Registration
# =============================================================================


def _listeners():
    from ledger_kernel.models.account import Account
    from ledger_kernel.models.journal import JournalEntry, JournalLine
    from ledger_kernel.models.period_closing import OpeningBalance, PeriodClosing

    return (
        (Session, "before_flush", _check_account_deletion_before_flush),
        (JournalEntry, "before_update", _check_journal_entry_immutability),
        (JournalEntry, "before_delete", _check_journal_entry_delete),
        (JournalLine, "before_update", _check_journal_line_immutability),
        (JournalLine, "before_delete", _check_journal_line_delete),
        (Account, "before_update", _check_account_type_immutability),
        (PeriodClosing, "before_update", _check_period_closing_immutability),
        (PeriodClosing, "before_delete", _check_period_closing_delete),
        (OpeningBalance, "before_update", _check_opening_balance_immutability),
        (OpeningBalance, "before_delete", _check_opening_balance_delete),
    )


def register_immutability_listeners() -> None:
    """Register all immutability listeners.  Safe to call more than once."""
    for target, name, fn in _listeners():
        if not event.contains(target, name, fn):
            event.listen(target, name, fn)


def unregister_immutability_listeners() -> None:
    """
    Remove the immutability listeners.

    WARNING: Only for tests that deliberately plant invalid rows.
    """
    for target, name, fn in _listeners():
        if event.contains(target, name, fn):
            event.remove(target, name, fn)
