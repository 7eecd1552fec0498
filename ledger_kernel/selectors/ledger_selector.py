"""
Module: ledger_kernel.selectors.ledger_selector
Responsibility: Balance computation.  Account balances, account ledgers
    with running balances, the trial balance and the opening balances
    written by period closings.
Architecture position: Kernel > Selectors.  May import from models/,
    domain/ and selectors/base.py.  MUST NOT import from services/.

Invariants enforced:
    - No stored balances.  Every figure is summed from posted JournalLine
      rows at query time.
    - Balances carry the account's normal-balance sign (domain/normal_balance).
    - Ledger lines are ordered by entry_date, then entry sequence, then
      line_seq, so the running balance is reproducible.
    - account_balance(A, D) equals the closing balance of ledger(A, S, D)
      for every S <= D.

Failure modes:
    - AccountNotFoundError for an unknown account id.
    - Zero balances (never None) for accounts without activity.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from ledger_kernel.db.types import ZERO, is_within_tolerance
from ledger_kernel.domain.normal_balance import signed_balance, split_net
from ledger_kernel.exceptions import AccountNotFoundError
from ledger_kernel.models.account import Account, AccountType
from ledger_kernel.models.journal import JournalEntry, JournalLine
from ledger_kernel.models.period_closing import ClosingStatus, OpeningBalance, PeriodClosing
from ledger_kernel.selectors.base import BaseSelector


def _dec(value) -> Decimal:
    if value is None:
        return ZERO
    return value if isinstance(value, Decimal) else Decimal(str(value))


@dataclass(frozen=True)
class LedgerLine:
    """One line of an account ledger."""

    entry_number: str
    entry_date: date
    description: str
    reference_type: str
    reference_id: str | None
    debit: Decimal
    credit: Decimal
    running_balance: Decimal
    line_description: str | None = None


@dataclass(frozen=True)
class LedgerReport:
    """General ledger of one account over a date range."""

    account_id: UUID
    account_code: str
    account_name: str
    account_type: AccountType
    start_date: date
    end_date: date
    opening_balance: Decimal
    lines: tuple[LedgerLine, ...] = field(default_factory=tuple)

    @property
    def total_debit(self) -> Decimal:
        return sum((line.debit for line in self.lines), ZERO)

    @property
    def total_credit(self) -> Decimal:
        return sum((line.credit for line in self.lines), ZERO)

    @property
    def closing_balance(self) -> Decimal:
        if self.lines:
            return self.lines[-1].running_balance
        return self.opening_balance


@dataclass(frozen=True)
class TrialBalanceRow:
    """
    One account in a trial balance.

    net is the raw debit_total - credit_total; balance applies the normal
    sign.  debit_balance/credit_balance are the presentation columns: the
    net placed on its natural side.
    """

    account_id: UUID
    account_code: str
    account_name: str
    account_type: AccountType
    is_active: bool
    debit_total: Decimal
    credit_total: Decimal

    @property
    def net(self) -> Decimal:
        return self.debit_total - self.credit_total

    @property
    def balance(self) -> Decimal:
        return signed_balance(self.account_type, self.debit_total, self.credit_total)

    @property
    def debit_balance(self) -> Decimal:
        return split_net(self.net)[0]

    @property
    def credit_balance(self) -> Decimal:
        return split_net(self.net)[1]


@dataclass(frozen=True)
class TrialBalance:
    company_id: UUID
    as_of_date: date
    rows: tuple[TrialBalanceRow, ...] = field(default_factory=tuple)

    @property
    def total_debit(self) -> Decimal:
        return sum((row.debit_balance for row in self.rows), ZERO)

    @property
    def total_credit(self) -> Decimal:
        return sum((row.credit_balance for row in self.rows), ZERO)

    @property
    def is_balanced(self) -> bool:
        return is_within_tolerance(self.total_debit, self.total_credit)

    def rows_of_type(self, account_type: AccountType | str) -> list[TrialBalanceRow]:
        wanted = AccountType(account_type)
        return [row for row in self.rows if row.account_type == wanted]

    def row_for(self, account_code: str) -> TrialBalanceRow | None:
        for row in self.rows:
            if row.account_code == account_code:
                return row
        return None


class LedgerSelector(BaseSelector[JournalLine]):
    """
    The authoritative balance computation.

    Contract:
        Only posted entries count.  Dates are inclusive.  Every method is
        read-only and safe to call inside or outside a writing transaction.
    """

    def _account(self, account_id: UUID) -> Account:
        account = self.session.get(Account, account_id)
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return account

    def _totals(
        self,
        account_id: UUID,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> tuple[Decimal, Decimal]:
        # Summed in Python: SQL SUM over the SQLite text column goes through REAL.
        query = (
            select(JournalLine.debit_amount, JournalLine.credit_amount)
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .where(
                JournalLine.account_id == account_id,
                JournalEntry.is_posted.is_(True),
            )
        )
        if start_date is not None:
            query = query.where(JournalEntry.entry_date >= start_date)
        if end_date is not None:
            query = query.where(JournalEntry.entry_date <= end_date)
        debit, credit = ZERO, ZERO
        for line_debit, line_credit in self.session.execute(query):
            debit += _dec(line_debit)
            credit += _dec(line_credit)
        return debit, credit

    def account_balance(self, account_id: UUID, as_of_date: date) -> Decimal:
        """
        Normal-signed balance of an account at the end of as_of_date.

        Raises:
            AccountNotFoundError: unknown account id.
        """
        account = self._account(account_id)
        debit, credit = self._totals(account_id, end_date=as_of_date)
        return signed_balance(account.account_type, debit, credit)

    def ledger(self, account_id: UUID, start_date: date, end_date: date) -> LedgerReport:
        """
        Account ledger for [start_date, end_date].

        opening_balance is the balance at the end of the day before
        start_date; each line's running_balance adds its signed amount.
        """
        account = self._account(account_id)
        account_type = AccountType(account.account_type)
        opening = self.account_balance(account_id, start_date - timedelta(days=1))

        rows = self.session.execute(
            select(JournalLine, JournalEntry)
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .where(
                JournalLine.account_id == account_id,
                JournalEntry.is_posted.is_(True),
                JournalEntry.entry_date >= start_date,
                JournalEntry.entry_date <= end_date,
            )
            .order_by(JournalEntry.entry_date, JournalEntry.sequence, JournalLine.line_seq)
        ).all()

        running = opening
        lines = []
        for line, entry in rows:
            debit = _dec(line.debit_amount)
            credit = _dec(line.credit_amount)
            running += signed_balance(account_type, debit, credit)
            lines.append(
                LedgerLine(
                    entry_number=entry.entry_number,
                    entry_date=entry.entry_date,
                    description=entry.description,
                    reference_type=entry.reference_type,
                    reference_id=entry.reference_id,
                    debit=debit,
                    credit=credit,
                    running_balance=running,
                    line_description=line.description,
                )
            )

        return LedgerReport(
            account_id=account.id,
            account_code=account.code,
            account_name=account.name,
            account_type=account_type,
            start_date=start_date,
            end_date=end_date,
            opening_balance=opening,
            lines=tuple(lines),
        )

    def account_totals(
        self,
        company_id: UUID,
        start_date: date | None = None,
        end_date: date | None = None,
        active_only: bool = False,
    ) -> list[TrialBalanceRow]:
        """
        Debit/credit totals per account over an optional date range.

        Every account of the company is returned, with zero totals when it
        has no activity in the range.  Sorted by account code.
        """
        lines = (
            select(JournalLine.account_id, JournalLine.debit_amount, JournalLine.credit_amount)
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .where(
                JournalEntry.company_id == company_id,
                JournalEntry.is_posted.is_(True),
            )
        )
        if start_date is not None:
            lines = lines.where(JournalEntry.entry_date >= start_date)
        if end_date is not None:
            lines = lines.where(JournalEntry.entry_date <= end_date)

        totals: dict[UUID, list[Decimal]] = {}
        for account_id, debit, credit in self.session.execute(lines):
            pair = totals.setdefault(account_id, [ZERO, ZERO])
            pair[0] += _dec(debit)
            pair[1] += _dec(credit)

        query = select(Account).where(Account.company_id == company_id).order_by(Account.code)
        if active_only:
            query = query.where(Account.is_active.is_(True))

        rows = []
        for account in self.session.execute(query).scalars():
            debit_total, credit_total = totals.get(account.id, (ZERO, ZERO))
            rows.append(
                TrialBalanceRow(
                    account_id=account.id,
                    account_code=account.code,
                    account_name=account.name,
                    account_type=AccountType(account.account_type),
                    is_active=account.is_active,
                    debit_total=debit_total,
                    credit_total=credit_total,
                )
            )
        return rows

    def trial_balance(
        self,
        company_id: UUID,
        as_of_date: date,
        include_zero: bool = False,
    ) -> TrialBalance:
        """
        Trial balance of every account as of as_of_date.

        Accounts with no posted activity are left out unless include_zero.
        An account whose activity nets to zero is still listed.
        """
        rows = [
            row
            for row in self.account_totals(company_id, end_date=as_of_date)
            if include_zero or row.debit_total != 0 or row.credit_total != 0
        ]
        return TrialBalance(company_id=company_id, as_of_date=as_of_date, rows=tuple(rows))

    def opening_balance(self, account_id: UUID, balance_date: date) -> Decimal | None:
        """
        Opening balance written by a closed period closing for balance_date.

        Returns:
            The snapshot value with the account's normal sign, zero when a
            snapshot exists for that date but holds no row for the account,
            or None when no closed closing produced a snapshot for that date.
        """
        account = self._account(account_id)
        closing_id = self.session.execute(
            select(PeriodClosing.id).where(
                PeriodClosing.company_id == account.company_id,
                PeriodClosing.status == ClosingStatus.CLOSED.value,
                PeriodClosing.period_end == balance_date - timedelta(days=1),
            )
        ).scalar_one_or_none()
        if closing_id is None:
            return None

        row = self.session.execute(
            select(OpeningBalance).where(
                OpeningBalance.period_closing_id == closing_id,
                OpeningBalance.account_id == account_id,
            )
        ).scalar_one_or_none()
        if row is None:
            return ZERO
        return signed_balance(
            account.account_type, _dec(row.debit_balance), _dec(row.credit_balance)
        )
