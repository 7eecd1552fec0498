"""
PeriodClosing and OpeningBalance -- the carry-forward snapshot.

Responsibility:
    A PeriodClosing records that a company's books were closed as of
    period_end.  It owns one OpeningBalance row per account that carried a
    non-zero balance at that date, dated period_end + 1 day.

Invariants enforced:
    - At most one closing with status 'closed' per (company_id, period_end)
      (partial unique index uq_period_closing_active).
    - Closings are append-only: never deleted; the only permitted update
      is closed -> reopened (db/immutability.py).
    - OpeningBalance rows are immutable, never have both sides non-zero,
      and are unique per (period_closing_id, account_id).
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.db.types import MoneyType


class ClosingStatus(str, Enum):
    CLOSED = "closed"
    REOPENED = "reopened"


class PeriodClosing(TrackedBase):
    """
    Closing record for one period of one company.

    Contract:
        Created in status CLOSED together with its opening balances, in one
        savepoint.  Reopening flips the status and records who and when;
        the opening balance rows stay as history.
    """

    __tablename__ = "period_closings"

    __table_args__ = (
        Index(
            "uq_period_closing_active",
            "company_id",
            "period_end",
            unique=True,
            postgresql_where=text("status = 'closed'"),
            sqlite_where=text("status = 'closed'"),
        ),
        Index("idx_period_closing_company_end", "company_id", "period_end"),
    )

    company_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("companies.id"),
        nullable=False,
    )

    period_start: Mapped[date] = mapped_column(Date, nullable=False)

    period_end: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ClosingStatus.CLOSED.value,
    )

    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    closed_at: Mapped[datetime] = mapped_column(nullable=False)

    closed_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    reopened_at: Mapped[datetime | None] = mapped_column(nullable=True)

    reopened_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    reopen_reason: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    opening_balances: Mapped[list["OpeningBalance"]] = relationship(
        back_populates="closing",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<PeriodClosing {self.period_start}..{self.period_end} {self.status}>"

    @property
    def balance_date(self) -> date:
        return self.period_end + timedelta(days=1)


class OpeningBalance(TrackedBase):
    """Net balance of one account carried into the next period."""

    __tablename__ = "opening_balances"

    __table_args__ = (
        UniqueConstraint(
            "period_closing_id",
            "account_id",
            name="uq_opening_balance_closing_account",
        ),
        CheckConstraint(
            "CAST(debit_balance AS NUMERIC) >= 0",
            name="ck_opening_balance_debit_non_negative",
        ),
        CheckConstraint(
            "CAST(credit_balance AS NUMERIC) >= 0",
            name="ck_opening_balance_credit_non_negative",
        ),
        CheckConstraint(
            "CAST(debit_balance AS NUMERIC) = 0 OR CAST(credit_balance AS NUMERIC) = 0",
            name="ck_opening_balance_one_side",
        ),
        Index("idx_opening_balance_account_date", "account_id", "balance_date"),
    )

    company_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("companies.id"),
        nullable=False,
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    period_closing_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("period_closings.id"),
        nullable=False,
    )

    balance_date: Mapped[date] = mapped_column(Date, nullable=False)

    debit_balance: Mapped[Decimal] = mapped_column(
        MoneyType(),
        nullable=False,
        default=Decimal("0"),
    )

    credit_balance: Mapped[Decimal] = mapped_column(
        MoneyType(),
        nullable=False,
        default=Decimal("0"),
    )

    closing: Mapped["PeriodClosing"] = relationship(back_populates="opening_balances")

    @property
    def net(self) -> Decimal:
        """debit_balance - credit_balance."""
        return self.debit_balance - self.credit_balance
