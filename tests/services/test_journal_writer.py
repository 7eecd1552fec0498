"""
JournalWriter: validation order, atomic posting and entry numbering.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from ledger_kernel.domain.dtos import LineSpec, PostingPolicy
from ledger_kernel.exceptions import (
    AmbiguousLineError,
    InsufficientLinesError,
    InvalidAmountError,
    UnbalancedEntryError,
    UnknownAccountError,
    ValidationError,
)
from ledger_kernel.models.journal import JournalEntry, JournalLine
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.journal_writer import JournalWriter
from ledger_kernel.services.sequence_service import SequenceService

JAN_15 = date(2024, 1, 15)


def _count_entries(session, company_id):
    return session.execute(
        select(func.count()).select_from(JournalEntry).where(JournalEntry.company_id == company_id)
    ).scalar()


class TestPostEntry:

    def test_cash_sale_increases_cash_and_revenue(self, writer, ledger, company, accounts, test_actor_id):
        entry = writer.post_entry(
            company_id=company.id,
            entry_date=JAN_15,
            description="Cash sale",
            reference_type="sales",
            reference_id="INV-001",
            lines=[
                LineSpec(account_id=accounts["1-1001"].id, debit=Decimal("1000000")),
                LineSpec(account_id=accounts["4-1100"].id, credit=Decimal("1000000")),
            ],
            actor_id=test_actor_id,
        )

        assert entry.entry_number == "JE-00001"
        assert entry.is_posted
        assert entry.reference_type == "sales"
        assert entry.reference_id == "INV-001"
        assert entry.total_debit == entry.total_credit == Decimal("1000000")
        assert [line.account_code for line in entry.lines] == ["1-1001", "4-1100"]
        assert ledger.account_balance(accounts["1-1001"].id, JAN_15) == Decimal("1000000")
        assert ledger.account_balance(accounts["4-1100"].id, JAN_15) == Decimal("1000000")

    def test_unbalanced_entry_writes_nothing(self, writer, ledger, session, company, accounts):
        with pytest.raises(UnbalancedEntryError) as exc_info:
            writer.post_entry(
                company_id=company.id,
                entry_date=JAN_15,
                description="Bad",
                lines=[
                    LineSpec(account_id=accounts["1-1001"].id, debit=Decimal("500000")),
                    LineSpec(account_id=accounts["4-1100"].id, credit=Decimal("480000")),
                ],
            )

        assert str(exc_info.value) == "entry total debit 500000 ≠ credit 480000, difference 20000"
        assert exc_info.value.difference == Decimal("20000")
        assert _count_entries(session, company.id) == 0
        assert ledger.account_balance(accounts["1-1001"].id, JAN_15) == Decimal("0")
        assert ledger.account_balance(accounts["4-1100"].id, JAN_15) == Decimal("0")

    def test_difference_below_tolerance_is_accepted(self, writer, company, accounts):
        entry = writer.post_entry(
            company_id=company.id,
            entry_date=JAN_15,
            description="Rounding",
            lines=[
                LineSpec(account_id=accounts["1-1001"].id, debit=Decimal("100.004")),
                LineSpec(account_id=accounts["4-1100"].id, credit=Decimal("100.00")),
            ],
        )
        assert entry.total_debit == Decimal("100.004")

    def test_difference_at_tolerance_is_rejected(self, writer, company, accounts):
        with pytest.raises(UnbalancedEntryError):
            writer.post_entry(
                company_id=company.id,
                entry_date=JAN_15,
                description="Off by a cent",
                lines=[
                    LineSpec(account_id=accounts["1-1001"].id, debit=Decimal("100.01")),
                    LineSpec(account_id=accounts["4-1100"].id, credit=Decimal("100.00")),
                ],
            )

    def test_accepts_mappings_and_datetime(self, writer, company, accounts):
        entry = writer.post_entry(
            company_id=company.id,
            entry_date=datetime(2024, 1, 15, 17, 30),
            description="From a form",
            lines=[
                {"account_id": str(accounts["6-1200"].id), "debit": "250", "description": "Rent"},
                {"account_id": accounts["1-1100"].id, "credit": 250},
            ],
        )
        assert entry.entry_date == JAN_15
        assert entry.lines[0].description == "Rent"
        assert entry.lines[1].credit == Decimal("250")

    def test_multi_line_entry(self, writer, company, accounts):
        entry = writer.post_entry(
            company_id=company.id,
            entry_date=JAN_15,
            description="Sale with cost",
            lines=[
                LineSpec(account_id=accounts["1-2100"].id, debit=Decimal("300")),
                LineSpec(account_id=accounts["4-1100"].id, credit=Decimal("300")),
                LineSpec(account_id=accounts["5-1100"].id, debit=Decimal("180")),
                LineSpec(account_id=accounts["1-2600"].id, credit=Decimal("180")),
            ],
        )
        assert [line.line_seq for line in entry.lines] == [0, 1, 2, 3]
        assert entry.total_debit == Decimal("480")

    def test_posted_at_comes_from_clock(self, writer, company, accounts, deterministic_clock):
        entry = writer.post_entry(
            company_id=company.id,
            entry_date=JAN_15,
            description="Clocked",
            lines=[
                LineSpec(account_id=accounts["1-1001"].id, debit=Decimal("1")),
                LineSpec(account_id=accounts["4-1100"].id, credit=Decimal("1")),
            ],
        )
        assert entry.posted_at == deterministic_clock.now()


class TestValidation:

    def test_single_line_rejected(self, writer, company, accounts):
        with pytest.raises(InsufficientLinesError) as exc_info:
            writer.post_entry(
                company_id=company.id,
                entry_date=JAN_15,
                description="One line",
                lines=[LineSpec(account_id=accounts["1-1001"].id, debit=Decimal("10"))],
            )
        assert exc_info.value.line_count == 1

    def test_no_lines_rejected(self, writer, company):
        with pytest.raises(InsufficientLinesError):
            writer.post_entry(company_id=company.id, entry_date=JAN_15, description="Empty")

    @pytest.mark.parametrize(
        "debit,credit",
        [
            (Decimal("10"), Decimal("10")),
            (Decimal("0"), Decimal("0")),
            (Decimal("-10"), Decimal("0")),
            (Decimal("0"), Decimal("-10")),
        ],
    )
    def test_ambiguous_line_names_its_index(self, writer, company, accounts, debit, credit):
        with pytest.raises(AmbiguousLineError) as exc_info:
            writer.post_entry(
                company_id=company.id,
                entry_date=JAN_15,
                description="Ambiguous",
                lines=[
                    LineSpec(account_id=accounts["1-1001"].id, debit=Decimal("10")),
                    LineSpec(account_id=accounts["4-1100"].id, debit=debit, credit=credit),
                ],
            )
        assert exc_info.value.line_index == 1

    def test_float_amount_rejected(self, writer, company, accounts):
        with pytest.raises(InvalidAmountError) as exc_info:
            writer.post_entry(
                company_id=company.id,
                entry_date=JAN_15,
                description="Float",
                lines=[
                    LineSpec(account_id=accounts["1-1001"].id, debit=0.1),
                    LineSpec(account_id=accounts["4-1100"].id, credit=Decimal("0.1")),
                ],
            )
        assert exc_info.value.line_index == 0
        assert exc_info.value.field == "debit"

    def test_amount_finer_than_storage_scale_rejected(self, writer, session, company, accounts):
        with pytest.raises(InvalidAmountError, match="decimal places") as exc_info:
            writer.post_entry(
                company_id=company.id,
                entry_date=JAN_15,
                description="Dust",
                lines=[
                    LineSpec(account_id=accounts["1-1001"].id, debit=Decimal("0.0000000001")),
                    LineSpec(account_id=accounts["4-1100"].id, credit=Decimal("0.0000000001")),
                ],
            )
        assert exc_info.value.line_index == 0
        assert exc_info.value.field == "debit"
        assert _count_entries(session, company.id) == 0

    def test_line_checks_run_before_account_checks(self, writer, company, accounts):
        with pytest.raises(AmbiguousLineError):
            writer.post_entry(
                company_id=company.id,
                entry_date=JAN_15,
                description="Both problems",
                lines=[
                    LineSpec(account_id=uuid4(), debit=Decimal("10")),
                    LineSpec(account_id=accounts["4-1100"].id),
                ],
            )

    def test_unknown_inactive_and_foreign_accounts_listed(
        self, session, writer, company, accounts, make_company
    ):
        _, other_accounts = make_company("OTHER-CO")
        AccountService(session).deactivate_account(accounts["1-1100"].id)
        missing = uuid4()

        with pytest.raises(UnknownAccountError) as exc_info:
            writer.post_entry(
                company_id=company.id,
                entry_date=JAN_15,
                description="Bad accounts",
                lines=[
                    LineSpec(account_id=missing, debit=Decimal("10")),
                    LineSpec(account_id=accounts["1-1100"].id, debit=Decimal("10")),
                    LineSpec(account_id=other_accounts["4-1100"].id, credit=Decimal("20")),
                ],
            )

        reasons = exc_info.value.reasons
        assert reasons[str(missing)] == "not found"
        assert "inactive" in reasons[str(accounts["1-1100"].id)]
        assert reasons[str(other_accounts["4-1100"].id)] == "belongs to another company"

    def test_account_checks_run_before_balance_check(self, writer, company):
        with pytest.raises(UnknownAccountError):
            writer.post_entry(
                company_id=company.id,
                entry_date=JAN_15,
                description="Unbalanced and unknown",
                lines=[
                    LineSpec(account_id=uuid4(), debit=Decimal("10")),
                    LineSpec(account_id=uuid4(), credit=Decimal("5")),
                ],
            )

    def test_rejection_is_logged(self, writer, company, accounts, captured_logs):
        with pytest.raises(ValidationError):
            writer.post_entry(
                company_id=company.id,
                entry_date=JAN_15,
                description="Bad",
                lines=[
                    LineSpec(account_id=accounts["1-1001"].id, debit=Decimal("5")),
                    LineSpec(account_id=accounts["4-1100"].id, credit=Decimal("4")),
                ],
            )
        rejected = [r for r in captured_logs() if r["message"] == "entry_rejected"]
        assert len(rejected) == 1
        assert rejected[0]["error_code"] == "UNBALANCED_ENTRY"
        assert rejected[0]["level"] == "WARNING"


class TestNumbering:

    def test_numbers_are_sequential_per_company(self, session, post, make_company):
        numbers = [post("1-1001", "4-1100", "10", JAN_15).entry_number for _ in range(3)]
        assert numbers == ["JE-00001", "JE-00002", "JE-00003"]

        other_company, other_accounts = make_company("SECOND-CO")
        other = JournalWriter(session).post_entry(
            company_id=other_company.id,
            entry_date=JAN_15,
            description="Other company",
            lines=[
                LineSpec(account_id=other_accounts["1-1001"].id, debit=Decimal("1")),
                LineSpec(account_id=other_accounts["4-1100"].id, credit=Decimal("1")),
            ],
        )
        assert other.entry_number == "JE-00001"

    def test_failed_post_does_not_consume_a_number(self, writer, post, company, accounts):
        post("1-1001", "4-1100", "10", JAN_15)
        with pytest.raises(UnbalancedEntryError):
            writer.post_entry(
                company_id=company.id,
                entry_date=JAN_15,
                description="Bad",
                lines=[
                    LineSpec(account_id=accounts["1-1001"].id, debit=Decimal("5")),
                    LineSpec(account_id=accounts["4-1100"].id, credit=Decimal("4")),
                ],
            )
        assert post("1-1001", "4-1100", "10", JAN_15).entry_number == "JE-00002"

    def test_counter_seeded_from_imported_entries(self, session, company, accounts):
        session.add(
            JournalEntry(
                company_id=company.id,
                entry_number="JE-00041",
                sequence=41,
                entry_date=JAN_15,
                description="Imported",
                reference_type="manual",
                is_posted=True,
                lines=[
                    JournalLine(account_id=accounts["1-1001"].id, debit_amount=Decimal("1"),
                                credit_amount=Decimal("0"), line_seq=0),
                    JournalLine(account_id=accounts["3-1100"].id, debit_amount=Decimal("0"),
                                credit_amount=Decimal("1"), line_seq=1),
                ],
            )
        )
        session.flush()

        entry = JournalWriter(session).post_entry(
            company_id=company.id,
            entry_date=JAN_15,
            description="After import",
            lines=[
                LineSpec(account_id=accounts["1-1001"].id, debit=Decimal("1")),
                LineSpec(account_id=accounts["4-1100"].id, credit=Decimal("1")),
            ],
        )
        assert entry.entry_number == "JE-00042"

    def test_collision_resyncs_counter_and_retries(self, session, company, accounts, captured_logs):
        sequences = SequenceService(session)
        writer = JournalWriter(session, sequence_service=sequences)
        first = writer.post_entry(
            company_id=company.id,
            entry_date=JAN_15,
            description="First",
            lines=[
                LineSpec(account_id=accounts["1-1001"].id, debit=Decimal("1")),
                LineSpec(account_id=accounts["4-1100"].id, credit=Decimal("1")),
            ],
        )
        # A row written outside the counter takes the next number
        session.add(
            JournalEntry(
                company_id=company.id,
                entry_number="JE-00002",
                sequence=2,
                entry_date=JAN_15,
                description="Written around the counter",
                reference_type="manual",
                is_posted=True,
                lines=[
                    JournalLine(account_id=accounts["1-1001"].id, debit_amount=Decimal("1"),
                                credit_amount=Decimal("0"), line_seq=0),
                    JournalLine(account_id=accounts["4-1100"].id, debit_amount=Decimal("0"),
                                credit_amount=Decimal("1"), line_seq=1),
                ],
            )
        )
        session.flush()

        second = writer.post_entry(
            company_id=company.id,
            entry_date=JAN_15,
            description="Second",
            lines=[
                LineSpec(account_id=accounts["1-1001"].id, debit=Decimal("1")),
                LineSpec(account_id=accounts["4-1100"].id, credit=Decimal("1")),
            ],
        )

        assert first.entry_number == "JE-00001"
        assert second.entry_number == "JE-00003"
        assert any(r["message"] == "entry_number_collision" for r in captured_logs())
        assert sequences.current_value(company.id, SequenceService.JOURNAL_ENTRY) == 3

    def test_custom_prefix_and_width(self, session, company, accounts):
        writer = JournalWriter(session, policy=PostingPolicy(entry_number_prefix="GJ", entry_number_width=3))
        entry = writer.post_entry(
            company_id=company.id,
            entry_date=JAN_15,
            description="Custom",
            lines=[
                LineSpec(account_id=accounts["1-1001"].id, debit=Decimal("1")),
                LineSpec(account_id=accounts["4-1100"].id, credit=Decimal("1")),
            ],
        )
        assert entry.entry_number == "GJ-001"
