"""
DTOs -- immutable data structures crossing the kernel boundary.

Responsibility:
    Inputs accepted by services (LineSpec, AccountSpec, PostingPolicy) and
    the records they hand back (AccountInfo, JournalEntryRecord,
    PeriodClosingInfo, ...).  Callers never receive live ORM objects, so a
    returned record cannot be mutated into a flush by accident.

Architecture position:
    Kernel > Domain.  from_model() class methods are boundary converters
    used by services and selectors only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Mapping
from uuid import UUID

from ledger_kernel.db.types import BALANCE_TOLERANCE
from ledger_kernel.models.account import AccountType

if TYPE_CHECKING:
    from ledger_kernel.models.account import Account as AccountModel
    from ledger_kernel.models.company import Company as CompanyModel
    from ledger_kernel.models.journal import JournalEntry as JournalEntryModel
    from ledger_kernel.models.period_closing import (
        OpeningBalance as OpeningBalanceModel,
        PeriodClosing as PeriodClosingModel,
    )


@dataclass(frozen=True)
class PostingPolicy:
    """
    Tunables for the write path.

    entry_number_prefix/width produce numbers like JE-00001.
    max_number_attempts bounds the in-transaction renumbering loop;
    max_transaction_attempts bounds whole-transaction retries in
    LedgerOrchestrator.
    """

    entry_number_prefix: str = "JE"
    entry_number_width: int = 5
    balance_tolerance: Decimal = BALANCE_TOLERANCE
    max_number_attempts: int = 5
    max_transaction_attempts: int = 3
    retry_backoff_seconds: float = 0.05

    def format_entry_number(self, value: int) -> str:
        return f"{self.entry_number_prefix}-{value:0{self.entry_number_width}d}"

    def parse_entry_number(self, entry_number: str) -> int | None:
        """Numeric part of an entry number with this prefix, else None."""
        prefix = f"{self.entry_number_prefix}-"
        if not entry_number.startswith(prefix):
            return None
        digits = entry_number[len(prefix):]
        return int(digits) if digits.isdigit() else None


@dataclass(frozen=True)
class AccountSpec:
    """One account of a chart-of-accounts template."""

    code: str
    name: str
    account_type: AccountType
    parent_code: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class LineSpec:
    """
    One requested journal line.

    Amounts are kept as given; JournalWriter converts and validates them so
    that a bad amount is reported with its line number.
    """

    account_id: UUID
    debit: Decimal | int | str | None = Decimal("0")
    credit: Decimal | int | str | None = Decimal("0")
    description: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> LineSpec:
        """Build from ``{account_id, debit, credit, description?}``."""
        account_id = data["account_id"]
        if not isinstance(account_id, UUID):
            account_id = UUID(str(account_id))
        return cls(
            account_id=account_id,
            debit=data.get("debit", Decimal("0")),
            credit=data.get("credit", Decimal("0")),
            description=data.get("description"),
        )


@dataclass(frozen=True)
class CompanyInfo:
    id: UUID
    code: str
    name: str
    business_type: str
    is_active: bool

    @classmethod
    def from_model(cls, model: CompanyModel) -> CompanyInfo:
        return cls(
            id=model.id,
            code=model.code,
            name=model.name,
            business_type=model.business_type,
            is_active=model.is_active,
        )


@dataclass(frozen=True)
class AccountInfo:
    """Read-side view of an account."""

    id: UUID
    company_id: UUID
    code: str
    name: str
    account_type: AccountType
    is_active: bool
    parent_code: str | None = None
    description: str | None = None

    @classmethod
    def from_model(cls, model: AccountModel) -> AccountInfo:
        return cls(
            id=model.id,
            company_id=model.company_id,
            code=model.code,
            name=model.name,
            account_type=AccountType(model.account_type),
            is_active=model.is_active,
            parent_code=model.parent_code,
            description=model.description,
        )


@dataclass(frozen=True)
class JournalLineRecord:
    account_id: UUID
    account_code: str
    debit: Decimal
    credit: Decimal
    line_seq: int
    description: str | None = None


@dataclass(frozen=True)
class JournalEntryRecord:
    """
    A posted journal entry.

    Guarantees:
        - total_debit equals total_credit within the balance tolerance.
        - lines are ordered by line_seq.
    """

    id: UUID
    company_id: UUID
    entry_number: str
    sequence: int
    entry_date: date
    description: str
    reference_type: str
    reference_id: str | None
    is_posted: bool
    posted_at: datetime | None
    lines: tuple[JournalLineRecord, ...] = field(default_factory=tuple)

    @property
    def total_debit(self) -> Decimal:
        return sum((line.debit for line in self.lines), Decimal("0"))

    @property
    def total_credit(self) -> Decimal:
        return sum((line.credit for line in self.lines), Decimal("0"))

    @classmethod
    def from_model(cls, model: JournalEntryModel) -> JournalEntryRecord:
        lines = tuple(
            JournalLineRecord(
                account_id=line.account_id,
                account_code=line.account.code if line.account else "",
                debit=line.debit_amount,
                credit=line.credit_amount,
                line_seq=line.line_seq,
                description=line.description,
            )
            for line in sorted(model.lines, key=lambda x: x.line_seq)
        )
        return cls(
            id=model.id,
            company_id=model.company_id,
            entry_number=model.entry_number,
            sequence=model.sequence,
            entry_date=model.entry_date,
            description=model.description,
            reference_type=model.reference_type,
            reference_id=model.reference_id,
            is_posted=model.is_posted,
            posted_at=model.posted_at,
            lines=lines,
        )


@dataclass(frozen=True)
class OpeningBalanceInfo:
    account_id: UUID
    balance_date: date
    debit_balance: Decimal
    credit_balance: Decimal

    @property
    def net(self) -> Decimal:
        return self.debit_balance - self.credit_balance

    @classmethod
    def from_model(cls, model: OpeningBalanceModel) -> OpeningBalanceInfo:
        return cls(
            account_id=model.account_id,
            balance_date=model.balance_date,
            debit_balance=model.debit_balance,
            credit_balance=model.credit_balance,
        )


@dataclass(frozen=True)
class PeriodClosingInfo:
    """Read-side view of a period closing and its snapshot."""

    id: UUID
    company_id: UUID
    period_start: date
    period_end: date
    status: str
    closed_at: datetime
    closed_by_id: UUID
    notes: str | None
    reopened_at: datetime | None = None
    reopened_by_id: UUID | None = None
    reopen_reason: str | None = None
    opening_balances: tuple[OpeningBalanceInfo, ...] = field(default_factory=tuple)

    @property
    def balance_date(self) -> date:
        return self.period_end + timedelta(days=1)

    @classmethod
    def from_model(cls, model: PeriodClosingModel) -> PeriodClosingInfo:
        return cls(
            id=model.id,
            company_id=model.company_id,
            period_start=model.period_start,
            period_end=model.period_end,
            status=model.status,
            closed_at=model.closed_at,
            closed_by_id=model.closed_by_id,
            notes=model.notes,
            reopened_at=model.reopened_at,
            reopened_by_id=model.reopened_by_id,
            reopen_reason=model.reopen_reason,
            opening_balances=tuple(
                OpeningBalanceInfo.from_model(ob) for ob in model.opening_balances
            ),
        )
