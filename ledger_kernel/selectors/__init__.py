"""Selectors for the ledger kernel (read side)."""

from ledger_kernel.selectors.account_selector import AccountSelector
from ledger_kernel.selectors.journal_selector import JournalSelector
from ledger_kernel.selectors.ledger_selector import (
    LedgerLine,
    LedgerReport,
    LedgerSelector,
    TrialBalance,
    TrialBalanceRow,
)
from ledger_kernel.selectors.period_closing_selector import (
    ClosingPreview,
    PeriodClosingSelector,
    SnapshotRow,
)
from ledger_kernel.selectors.report_selector import (
    BalanceSheet,
    CashFlowLine,
    CashFlowSummary,
    ProfitAndLoss,
    ReportSelector,
    StatementLine,
)

__all__ = [
    "AccountSelector",
    "BalanceSheet",
    "CashFlowLine",
    "CashFlowSummary",
    "ClosingPreview",
    "JournalSelector",
    "LedgerLine",
    "LedgerReport",
    "LedgerSelector",
    "PeriodClosingSelector",
    "ProfitAndLoss",
    "ReportSelector",
    "SnapshotRow",
    "StatementLine",
    "TrialBalance",
    "TrialBalanceRow",
]
