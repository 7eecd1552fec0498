"""
Account -- a single node in a company's chart of accounts.

Responsibility:
    Holds the code, name and type of an account.  The type fixes the
    account's normal balance and therefore the sign of every balance ever
    computed for it, which is why it may never change after creation.

Invariants enforced:
    - (company_id, code) is unique (uq_account_company_code).
    - account_type is immutable (db/immutability.py).
    - Accounts referenced by journal lines are never deleted; they are
      deactivated instead.
"""

from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from ledger_kernel.models.journal import JournalLine


class AccountType(str, Enum):
    """Types of accounts in the chart of accounts."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"
    CASH_BANK = "cash_bank"


class NormalBalance(str, Enum):
    """Side of a journal line that increases an account's balance."""

    DEBIT = "debit"
    CREDIT = "credit"


class Account(TrackedBase):
    """
    Chart of accounts entry.

    Contract:
        Account.code is unique within its company.  account_type is set at
        creation and never changes.

    Guarantees:
        - account_type is one of the AccountType values.
        - parent_id, when set, points at an account of the same company.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("company_id", "code", name="uq_account_company_code"),
        Index("idx_account_company_type", "company_id", "account_type"),
        Index("idx_account_parent", "parent_id"),
    )

    company_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("companies.id"),
        nullable=False,
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    account_type: Mapped[str] = mapped_column(String(20), nullable=False)

    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Display hierarchy only; balances never roll up through it
    parent_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=True,
    )

    parent: Mapped["Account | None"] = relationship(
        remote_side="Account.id",
        lazy="joined",
    )

    journal_lines: Mapped[list["JournalLine"]] = relationship(
        back_populates="account",
        lazy="dynamic",
    )

    def __repr__(self) -> str:
        return f"<Account {self.code}: {self.name}>"

    @property
    def type(self) -> AccountType:
        return AccountType(self.account_type)

    @property
    def parent_code(self) -> str | None:
        return self.parent.code if self.parent is not None else None

    @property
    def normal_balance(self) -> NormalBalance:
        from ledger_kernel.domain.normal_balance import normal_balance_for

        return normal_balance_for(self.account_type)
