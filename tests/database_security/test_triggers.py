"""
Database-level immutability triggers.

Core statements skip the ORM listeners; on PostgreSQL the triggers
installed by create_tables() must still refuse them.  Each blocked
statement runs in its own savepoint so the posted data survives for the
follow-up assertions.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError

from ledger_kernel.db.engine import is_postgres
from ledger_kernel.db.triggers import ALL_TRIGGER_NAMES, get_installed_triggers, triggers_installed
from ledger_kernel.models.journal import JournalEntry, JournalLine
from ledger_kernel.models.period_closing import OpeningBalance, PeriodClosing

pytestmark = pytest.mark.postgres

JAN_1 = date(2024, 1, 1)
JAN_15 = date(2024, 1, 15)
JAN_31 = date(2024, 1, 31)


@pytest.fixture
def cash_sale(post):
    return post("1-1001", "4-1100", Decimal("100"), JAN_15, "Cash sale")


@pytest.fixture
def closing(closing_service, cash_sale, company, test_actor_id):
    return closing_service.close_period(company.id, JAN_1, JAN_31, test_actor_id)


def _blocked(session, statement):
    with pytest.raises(IntegrityError, match="immutable|append-only|closed to reopened") as exc_info:
        with session.begin_nested():
            session.execute(statement)
    return exc_info.value


class TestInstallation:

    def test_all_triggers_installed(self, db_engine, db_tables):
        assert is_postgres(db_engine)
        assert triggers_installed(db_engine)
        assert get_installed_triggers(db_engine) == sorted(ALL_TRIGGER_NAMES)


class TestJournalTriggers:

    def test_core_update_of_posted_line_blocked(self, session, ledger, accounts, cash_sale):
        _blocked(
            session,
            update(JournalLine)
            .where(JournalLine.account_id == accounts["1-1001"].id)
            .values(debit_amount=Decimal("999")),
        )
        session.expire_all()
        assert ledger.account_balance(accounts["1-1001"].id, JAN_15) == Decimal("100")

    def test_core_delete_of_posted_line_blocked(self, session, accounts, cash_sale):
        _blocked(session, delete(JournalLine).where(JournalLine.account_id == accounts["4-1100"].id))

    def test_core_update_of_posted_entry_blocked(self, session, cash_sale):
        _blocked(
            session,
            update(JournalEntry).where(JournalEntry.id == cash_sale.id).values(description="hacked"),
        )

    def test_core_delete_of_posted_entry_blocked(self, session, cash_sale):
        _blocked(session, delete(JournalEntry).where(JournalEntry.id == cash_sale.id))

    def test_audit_columns_may_change(self, session, cash_sale):
        actor = uuid4()
        session.execute(
            update(JournalEntry).where(JournalEntry.id == cash_sale.id).values(updated_by_id=actor)
        )
        assert session.execute(
            select(JournalEntry.updated_by_id).where(JournalEntry.id == cash_sale.id)
        ).scalar_one() == actor


class TestClosingTriggers:

    def test_core_update_of_opening_balance_blocked(self, session, closing):
        _blocked(
            session,
            update(OpeningBalance)
            .where(OpeningBalance.period_closing_id == closing.id)
            .values(debit_balance=Decimal("9000")),
        )

    def test_core_delete_of_opening_balance_blocked(self, session, closing):
        _blocked(session, delete(OpeningBalance).where(OpeningBalance.period_closing_id == closing.id))

    def test_core_delete_of_closing_blocked(self, session, closing):
        _blocked(session, delete(PeriodClosing).where(PeriodClosing.id == closing.id))

    def test_core_update_of_closing_period_blocked(self, session, closing):
        _blocked(
            session,
            update(PeriodClosing).where(PeriodClosing.id == closing.id).values(period_end=JAN_15),
        )

    def test_reopened_closing_cannot_close_again(self, session, closing_service, closing, test_actor_id):
        closing_service.reopen_closing(closing.id, test_actor_id, reason="late invoice")
        _blocked(
            session,
            update(PeriodClosing).where(PeriodClosing.id == closing.id).values(status="closed"),
        )

    def test_reopen_through_service_allowed(self, closing_service, closing, test_actor_id):
        reopened = closing_service.reopen_closing(closing.id, test_actor_id, reason="late invoice")
        assert reopened.status == "reopened"
