"""
ReportSelector -- financial statements derived from the trial balance.

Profit and loss, balance sheet and a cash-and-bank movement summary.
Layout and formatting belong to the caller; these methods only produce
the figures.

Retained earnings are not a posted account.  The balance sheet shows an
unposted "Retained Earnings" line equal to cumulative revenue minus
expense up to the report date, so closing a period never has to post
closing entries.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from ledger_kernel.db.types import ZERO, is_within_tolerance
from ledger_kernel.models.account import AccountType
from ledger_kernel.selectors.base import BaseSelector
from ledger_kernel.selectors.ledger_selector import LedgerSelector, TrialBalanceRow

RETAINED_EARNINGS_LABEL = "Retained Earnings"


@dataclass(frozen=True)
class StatementLine:
    account_id: UUID | None
    account_code: str | None
    account_name: str
    amount: Decimal


def _total(lines) -> Decimal:
    return sum((line.amount for line in lines), ZERO)


@dataclass(frozen=True)
class ProfitAndLoss:
    company_id: UUID
    start_date: date
    end_date: date
    revenue: tuple[StatementLine, ...] = field(default_factory=tuple)
    expenses: tuple[StatementLine, ...] = field(default_factory=tuple)

    @property
    def total_revenue(self) -> Decimal:
        return _total(self.revenue)

    @property
    def total_expenses(self) -> Decimal:
        return _total(self.expenses)

    @property
    def net_income(self) -> Decimal:
        return self.total_revenue - self.total_expenses


@dataclass(frozen=True)
class BalanceSheet:
    company_id: UUID
    as_of_date: date
    assets: tuple[StatementLine, ...] = field(default_factory=tuple)
    liabilities: tuple[StatementLine, ...] = field(default_factory=tuple)
    equity: tuple[StatementLine, ...] = field(default_factory=tuple)
    retained_earnings: Decimal = ZERO

    @property
    def total_assets(self) -> Decimal:
        return _total(self.assets)

    @property
    def total_liabilities(self) -> Decimal:
        return _total(self.liabilities)

    @property
    def total_equity(self) -> Decimal:
        """Posted equity plus retained earnings."""
        return _total(self.equity) + self.retained_earnings

    @property
    def is_balanced(self) -> bool:
        return is_within_tolerance(
            self.total_assets, self.total_liabilities + self.total_equity
        )


@dataclass(frozen=True)
class CashFlowLine:
    account_id: UUID
    account_code: str
    account_name: str
    opening_balance: Decimal
    inflow: Decimal
    outflow: Decimal

    @property
    def net_change(self) -> Decimal:
        return self.inflow - self.outflow

    @property
    def closing_balance(self) -> Decimal:
        return self.opening_balance + self.net_change


@dataclass(frozen=True)
class CashFlowSummary:
    company_id: UUID
    start_date: date
    end_date: date
    accounts: tuple[CashFlowLine, ...] = field(default_factory=tuple)

    @property
    def opening_balance(self) -> Decimal:
        return sum((a.opening_balance for a in self.accounts), ZERO)

    @property
    def total_inflow(self) -> Decimal:
        return sum((a.inflow for a in self.accounts), ZERO)

    @property
    def total_outflow(self) -> Decimal:
        return sum((a.outflow for a in self.accounts), ZERO)

    @property
    def closing_balance(self) -> Decimal:
        return sum((a.closing_balance for a in self.accounts), ZERO)


def _lines(rows: list[TrialBalanceRow], *types: AccountType) -> tuple[StatementLine, ...]:
    return tuple(
        StatementLine(
            account_id=row.account_id,
            account_code=row.account_code,
            account_name=row.account_name,
            amount=row.balance,
        )
        for row in rows
        if row.account_type in types and (row.debit_total or row.credit_total)
    )


class ReportSelector(BaseSelector):
    """Statements for one company, computed from posted journal lines."""

    def __init__(self, session, ledger_selector: LedgerSelector | None = None):
        super().__init__(session)
        self._ledger = ledger_selector or LedgerSelector(session)

    def profit_and_loss(self, company_id: UUID, start_date: date, end_date: date) -> ProfitAndLoss:
        rows = self._ledger.account_totals(company_id, start_date=start_date, end_date=end_date)
        return ProfitAndLoss(
            company_id=company_id,
            start_date=start_date,
            end_date=end_date,
            revenue=_lines(rows, AccountType.REVENUE),
            expenses=_lines(rows, AccountType.EXPENSE),
        )

    def balance_sheet(self, company_id: UUID, as_of_date: date) -> BalanceSheet:
        """
        Balance sheet as of a date.

        Cash/bank accounts are reported among the assets.  Retained
        earnings cover revenue - expense since the first entry.
        """
        rows = self._ledger.account_totals(company_id, end_date=as_of_date)
        revenue = _total(_lines(rows, AccountType.REVENUE))
        expenses = _total(_lines(rows, AccountType.EXPENSE))
        return BalanceSheet(
            company_id=company_id,
            as_of_date=as_of_date,
            assets=_lines(rows, AccountType.CASH_BANK, AccountType.ASSET),
            liabilities=_lines(rows, AccountType.LIABILITY),
            equity=_lines(rows, AccountType.EQUITY),
            retained_earnings=revenue - expenses,
        )

    def cash_flow(self, company_id: UUID, start_date: date, end_date: date) -> CashFlowSummary:
        """Opening balance, debits in and credits out per cash/bank account."""
        opening = {
            row.account_id: row.balance
            for row in self._ledger.account_totals(
                company_id, end_date=start_date - timedelta(days=1)
            )
        }
        movements = self._ledger.account_totals(
            company_id, start_date=start_date, end_date=end_date
        )
        accounts = tuple(
            CashFlowLine(
                account_id=row.account_id,
                account_code=row.account_code,
                account_name=row.account_name,
                opening_balance=opening.get(row.account_id, ZERO),
                inflow=row.debit_total,
                outflow=row.credit_total,
            )
            for row in movements
            if row.account_type == AccountType.CASH_BANK
        )
        return CashFlowSummary(
            company_id=company_id,
            start_date=start_date,
            end_date=end_date,
            accounts=accounts,
        )
