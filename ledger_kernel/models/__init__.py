"""Domain models for the ledger kernel."""

from ledger_kernel.models.account import Account, AccountType, NormalBalance
from ledger_kernel.models.company import BusinessType, Company
from ledger_kernel.models.journal import JournalEntry, JournalLine, ReferenceType
from ledger_kernel.models.period_closing import (
    ClosingStatus,
    OpeningBalance,
    PeriodClosing,
)
from ledger_kernel.models.sequence_counter import SequenceCounter

__all__ = [
    "Account",
    "AccountType",
    "NormalBalance",
    "BusinessType",
    "Company",
    "JournalEntry",
    "JournalLine",
    "ReferenceType",
    "ClosingStatus",
    "OpeningBalance",
    "PeriodClosing",
    "SequenceCounter",
]
