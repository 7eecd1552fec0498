"""
JournalEntry and JournalLine -- the only write path for financial facts.

Responsibility:
    A JournalEntry is the header (company, number, date, description,
    originating document).  Its JournalLines carry the amounts: each line
    names one account and puts a positive amount on exactly one side.

Invariants enforced:
    - (company_id, entry_number) and (company_id, sequence) are unique;
      entry numbers are company-scoped, not global.
    - debit_amount >= 0, credit_amount >= 0 and exactly one of them is
      non-zero (table CHECK constraints, validated first by JournalWriter).
      The checks CAST the amount because SQLite stores it as text.
    - Posted entries and their lines are immutable (db/immutability.py,
      plus db/triggers.py on PostgreSQL).
    - sum(debit) == sum(credit) per entry; enforced by JournalWriter in
      the same transaction as the insert.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.db.types import MoneyType

if TYPE_CHECKING:
    from ledger_kernel.models.account import Account


class ReferenceType(str, Enum):
    """Kind of document that produced a journal entry."""

    MANUAL = "manual"
    SALES = "sales"
    PURCHASE = "purchase"
    PAYMENT = "payment"
    RECEIPT = "receipt"
    POS = "pos"
    ADJUSTMENT = "adjustment"
    REVERSAL = "reversal"


class JournalEntry(TrackedBase):
    """
    Journal entry header.

    Guarantees:
        - entry_number is "<prefix>-<sequence zero padded>", e.g. JE-00001.
        - sequence gives creation order within the company.
        - is_posted is True for every stored entry; there are no drafts.
    """

    __tablename__ = "journal_entries"

    __table_args__ = (
        UniqueConstraint("company_id", "entry_number", name="uq_journal_entry_company_number"),
        UniqueConstraint("company_id", "sequence", name="uq_journal_entry_company_sequence"),
        Index("idx_journal_entry_company_date", "company_id", "entry_date"),
        Index("idx_journal_entry_reference", "company_id", "reference_type", "reference_id"),
    )

    company_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("companies.id"),
        nullable=False,
    )

    entry_number: Mapped[str] = mapped_column(String(30), nullable=False)

    sequence: Mapped[int] = mapped_column(BigInteger, nullable=False)

    entry_date: Mapped[date] = mapped_column(Date, nullable=False)

    description: Mapped[str] = mapped_column(String(1000), nullable=False)

    reference_type: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default=ReferenceType.MANUAL.value,
    )

    reference_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    is_posted: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    posted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    lines: Mapped[list["JournalLine"]] = relationship(
        back_populates="entry",
        cascade="all, delete-orphan",
        order_by="JournalLine.line_seq",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<JournalEntry {self.entry_number} {self.entry_date}>"

    @property
    def total_debit(self) -> Decimal:
        return sum((line.debit_amount for line in self.lines), Decimal("0"))

    @property
    def total_credit(self) -> Decimal:
        return sum((line.credit_amount for line in self.lines), Decimal("0"))


class JournalLine(TrackedBase):
    """One account movement inside a journal entry."""

    __tablename__ = "journal_lines"

    __table_args__ = (
        CheckConstraint(
            "CAST(debit_amount AS NUMERIC) >= 0",
            name="ck_journal_line_debit_non_negative",
        ),
        CheckConstraint(
            "CAST(credit_amount AS NUMERIC) >= 0",
            name="ck_journal_line_credit_non_negative",
        ),
        CheckConstraint(
            "(CAST(debit_amount AS NUMERIC) = 0) <> (CAST(credit_amount AS NUMERIC) = 0)",
            name="ck_journal_line_one_side",
        ),
        Index("idx_journal_line_account", "account_id"),
        Index("idx_journal_line_entry", "journal_entry_id"),
    )

    journal_entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=False,
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    debit_amount: Mapped[Decimal] = mapped_column(
        MoneyType(),
        nullable=False,
        default=Decimal("0"),
    )

    credit_amount: Mapped[Decimal] = mapped_column(
        MoneyType(),
        nullable=False,
        default=Decimal("0"),
    )

    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    line_seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    entry: Mapped["JournalEntry"] = relationship(back_populates="lines")

    account: Mapped["Account"] = relationship(back_populates="journal_lines")

    def __repr__(self) -> str:
        return (
            f"<JournalLine {self.line_seq}: debit {self.debit_amount} "
            f"credit {self.credit_amount}>"
        )
