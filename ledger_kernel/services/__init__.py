"""Services for the ledger kernel (write side)."""

from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.company_service import CompanyService
from ledger_kernel.services.journal_writer import JournalWriter
from ledger_kernel.services.ledger_orchestrator import LedgerOrchestrator
from ledger_kernel.services.period_closing_service import PeriodClosingService
from ledger_kernel.services.sequence_service import SequenceService

__all__ = [
    "AccountService",
    "CompanyService",
    "JournalWriter",
    "LedgerOrchestrator",
    "PeriodClosingService",
    "SequenceService",
]
