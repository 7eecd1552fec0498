"""
Period closing: snapshots, opening balances, reopen, verification.
"""

import dataclasses
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from ledger_kernel.exceptions import (
    CompanyNotFoundError,
    CorruptedSnapshotError,
    InvalidClosingTransitionError,
    InvalidPeriodRangeError,
    PeriodAlreadyClosedError,
    PeriodClosingNotFoundError,
    UnbalancedPeriodError,
)
from ledger_kernel.models.period_closing import OpeningBalance, PeriodClosing
from ledger_kernel.selectors.period_closing_selector import PeriodClosingSelector

JAN_1 = date(2024, 1, 1)
JAN_31 = date(2024, 1, 31)
FEB_1 = date(2024, 2, 1)


@pytest.fixture
def closings(session):
    return PeriodClosingSelector(session)


@pytest.fixture
def january(post):
    post("1-1100", "3-1100", "10000", date(2024, 1, 2))
    post("1-2100", "4-1100", "3000", date(2024, 1, 10))
    post("6-1200", "1-1100", "1500", date(2024, 1, 31))


class TestClosePeriod:

    def test_january_close(self, closing_service, ledger, company, accounts, january, test_actor_id):
        before = {code: ledger.account_balance(acc.id, date(2024, 1, 15)) for code, acc in accounts.items()}

        closing = closing_service.close_period(company.id, JAN_1, JAN_31, test_actor_id, notes="month end")

        assert closing.status == "closed"
        assert closing.closed_by_id == test_actor_id
        assert closing.notes == "month end"
        assert {ob.balance_date for ob in closing.opening_balances} == {FEB_1}
        nets = {ob.account_id: ob.net for ob in closing.opening_balances}
        assert nets == {
            accounts["1-1100"].id: Decimal("8500"),
            accounts["1-2100"].id: Decimal("3000"),
            accounts["3-1100"].id: Decimal("-10000"),
            accounts["4-1100"].id: Decimal("-3000"),
            accounts["6-1200"].id: Decimal("1500"),
        }
        after = {code: ledger.account_balance(acc.id, date(2024, 1, 15)) for code, acc in accounts.items()}
        assert after == before

    def test_opening_balance_equals_period_end_balance(self, closing_service, ledger, company, accounts, january, test_actor_id):
        closing_service.close_period(company.id, JAN_1, JAN_31, test_actor_id)

        for account in accounts.values():
            assert ledger.opening_balance(account.id, FEB_1) == ledger.account_balance(account.id, JAN_31)

    def test_no_opening_balance_without_closing(self, ledger, accounts, january):
        assert ledger.opening_balance(accounts["1-1100"].id, FEB_1) is None

    def test_empty_company_closes_with_no_rows(self, closing_service, company, test_actor_id):
        closing = closing_service.close_period(company.id, JAN_1, JAN_31, test_actor_id)
        assert closing.opening_balances == ()

    def test_already_closed(self, closing_service, company, january, test_actor_id):
        first = closing_service.close_period(company.id, JAN_1, JAN_31, test_actor_id)
        with pytest.raises(PeriodAlreadyClosedError) as exc_info:
            closing_service.close_period(company.id, JAN_1, JAN_31, test_actor_id)
        assert exc_info.value.closing_id == str(first.id)

    def test_invalid_range(self, closing_service, company, test_actor_id):
        with pytest.raises(InvalidPeriodRangeError):
            closing_service.close_period(company.id, JAN_31, JAN_1, test_actor_id)

    def test_unknown_company(self, closing_service, test_actor_id):
        with pytest.raises(CompanyNotFoundError):
            closing_service.close_period(uuid4(), JAN_1, JAN_31, test_actor_id)

    def test_inactive_account_with_balance_blocks_close(
        self, closing_service, account_service, closings, company, accounts, january, test_actor_id, captured_logs
    ):
        account_service.deactivate_account(accounts["1-2100"].id)

        with pytest.raises(UnbalancedPeriodError) as exc_info:
            closing_service.close_period(company.id, JAN_1, JAN_31, test_actor_id)

        assert exc_info.value.implicated_accounts == ["1-2100"]
        assert closings.list_closings(company.id) == []
        assert any(r["message"] == "period_unbalanced" for r in captured_logs())

    def test_preview_matches_close(self, closing_service, company, january, test_actor_id):
        preview = closing_service.preview_closing(company.id, JAN_31)
        closing = closing_service.close_period(company.id, JAN_1, JAN_31, test_actor_id)

        assert preview.is_balanced
        assert preview.total_debit == preview.total_credit == Decimal("13000")
        assert sorted(row.net for row in preview.rows) == sorted(ob.net for ob in closing.opening_balances)

    def test_later_entries_do_not_change_snapshot(self, closing_service, closings, post, company, accounts, january, test_actor_id):
        closing = closing_service.close_period(company.id, JAN_1, JAN_31, test_actor_id)
        post("1-1100", "4-1100", "999", date(2024, 1, 31))

        stored = {ob.account_id: ob.net for ob in closings.opening_balances(closing.id)}
        assert stored[accounts["1-1100"].id] == Decimal("8500")

    def test_failed_snapshot_insert_leaves_no_rows(
        self, closing_service, session, company, january, test_actor_id, monkeypatch, captured_logs
    ):
        real_preview = closing_service._selector.preview

        def preview_with_missing_account(company_id, period_end):
            preview = real_preview(company_id, period_end)
            broken = dataclasses.replace(preview.rows[-1], account_id=uuid4())
            return dataclasses.replace(preview, rows=preview.rows[:-1] + (broken,))

        # The closing row and the first opening balances insert; the last
        # one fails its foreign key.
        monkeypatch.setattr(closing_service._selector, "preview", preview_with_missing_account)
        with pytest.raises(IntegrityError):
            closing_service.close_period(company.id, JAN_1, JAN_31, test_actor_id)

        def count(model):
            return session.execute(
                select(func.count()).select_from(model).where(model.company_id == company.id)
            ).scalar()

        assert count(PeriodClosing) == 0
        assert count(OpeningBalance) == 0
        assert any(r["message"] == "period_closing_insert_failed" for r in captured_logs())

        monkeypatch.undo()
        closing = closing_service.close_period(company.id, JAN_1, JAN_31, test_actor_id)
        assert len(closing.opening_balances) == 5
        assert count(PeriodClosing) == 1
        assert count(OpeningBalance) == 5


class TestReopen:

    def test_reopen_then_close_again(
        self, closing_service, closings, ledger, post, company, accounts, january, test_actor_id, deterministic_clock
    ):
        first = closing_service.close_period(company.id, JAN_1, JAN_31, test_actor_id)
        reopened = closing_service.reopen_closing(first.id, test_actor_id, reason="missed rent")

        assert reopened.status == "reopened"
        assert reopened.reopened_by_id == test_actor_id
        assert ledger.opening_balance(accounts["1-1100"].id, FEB_1) is None

        deterministic_clock.advance(60)
        post("6-1200", "1-1100", "500", JAN_31)
        second = closing_service.close_period(company.id, JAN_1, JAN_31, test_actor_id)

        assert second.id != first.id
        assert ledger.opening_balance(accounts["1-1100"].id, FEB_1) == Decimal("8000")
        assert [c.status for c in closings.list_closings(company.id)] == ["reopened", "closed"]
        assert [c.id for c in closings.list_closings(company.id, status="closed")] == [second.id]

    def test_double_reopen_rejected(self, closing_service, company, january, test_actor_id):
        closing = closing_service.close_period(company.id, JAN_1, JAN_31, test_actor_id)
        closing_service.reopen_closing(closing.id, test_actor_id)
        with pytest.raises(InvalidClosingTransitionError):
            closing_service.reopen_closing(closing.id, test_actor_id)

    def test_reopen_unknown(self, closing_service, test_actor_id):
        with pytest.raises(PeriodClosingNotFoundError):
            closing_service.reopen_closing(uuid4(), test_actor_id)


class TestSnapshotVerification:

    def test_fresh_snapshot_verifies(self, closing_service, closings, company, january, test_actor_id, captured_logs):
        closing = closing_service.close_period(company.id, JAN_1, JAN_31, test_actor_id)
        assert closings.verify_snapshot(closing.id).id == closing.id
        assert any(r["message"] == "snapshot_verified" for r in captured_logs())

    def test_tampered_row_detected(
        self, session, closing_service, closings, company, accounts, january, test_actor_id, triggers_disabled
    ):
        closing = closing_service.close_period(company.id, JAN_1, JAN_31, test_actor_id)

        # Core UPDATE bypasses the ORM immutability listeners
        with triggers_disabled("opening_balances"):
            session.execute(
                update(OpeningBalance.__table__)
                .where(
                    OpeningBalance.__table__.c.period_closing_id == closing.id,
                    OpeningBalance.__table__.c.account_id == accounts["1-1100"].id,
                )
                .values(debit_balance=Decimal("9000"))
            )
        session.expire_all()

        with pytest.raises(CorruptedSnapshotError) as exc_info:
            closings.verify_snapshot(closing.id)
        assert "1-1100" in exc_info.value.problems
        assert "totals" in exc_info.value.problems

    def test_posting_into_closed_period_detected(self, closing_service, closings, post, company, january, test_actor_id):
        closing = closing_service.close_period(company.id, JAN_1, JAN_31, test_actor_id)
        post("1-1001", "4-1100", "10", JAN_31 - timedelta(days=5))

        with pytest.raises(CorruptedSnapshotError) as exc_info:
            closings.verify_snapshot(closing.id)
        assert set(exc_info.value.problems) == {"1-1001", "4-1100"}
