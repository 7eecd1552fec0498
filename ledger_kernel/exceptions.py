"""
Typed Exception Hierarchy for the Ledger Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the ledger decide what to do with a failure: show the user what
to correct, retry with fresh state, or stop and investigate.  They must be
able to make that decision by catching a type, not by parsing a message:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA as attributes, and a message that
     names the specific cause ("entry total debit 500 ≠ credit 480,
     difference 20")

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerKernelError (base)
    |
    +-- ValidationError             recoverable, the input must be corrected
    |   +-- InsufficientLinesError
    |   +-- AmbiguousLineError
    |   +-- InvalidAmountError
    |   +-- UnknownAccountError
    |   +-- UnbalancedEntryError
    |   +-- DuplicateCodeError
    |   +-- InvalidParentError
    |   +-- InvalidPeriodRangeError
    |   +-- PeriodAlreadyClosedError
    |   +-- EntryAlreadyReversedError
    |   +-- UnknownBusinessTypeError
    |
    +-- ConcurrencyConflictError    recovered by retrying with fresh state
    |   +-- EntryNumberConflictError
    |   +-- ConcurrentClosingError
    |
    +-- IntegrityFailure            fatal to the operation, never auto-fixed
    |   +-- UnbalancedPeriodError
    |   +-- CorruptedSnapshotError
    |
    +-- NotFoundError
    |   +-- CompanyNotFoundError
    |   +-- AccountNotFoundError
    |   +-- JournalEntryNotFoundError
    |   +-- PeriodClosingNotFoundError
    |
    +-- InvalidClosingTransitionError
    |
    +-- ImmutabilityViolationError

===============================================================================
HANDLING PATTERNS
===============================================================================

1. VALIDATION: show the structured fields to the caller, change nothing.

    except UnbalancedEntryError as e:
        return {"error": e.code, "debit": e.total_debit, "credit": e.total_credit}

2. CONCURRENCY: LedgerOrchestrator retries these automatically; callers
   only see one after every attempt was used.

3. INTEGRITY: the whole operation was rolled back.  The exception lists
   the accounts involved; do not adjust balances to make it pass.
"""

from decimal import Decimal
from typing import Any, Sequence

from ledger_kernel.db.types import format_amount


class LedgerKernelError(Exception):
    """Base exception for all ledger kernel errors."""

    code: str = "LEDGER_KERNEL_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# =============================================================================
# Validation errors
# =============================================================================


class ValidationError(LedgerKernelError):
    """Input was rejected; nothing was written."""

    code: str = "VALIDATION_ERROR"


class InsufficientLinesError(ValidationError):
    """A journal entry needs at least two lines."""

    code: str = "INSUFFICIENT_LINES"

    def __init__(self, line_count: int, minimum: int = 2):
        self.line_count = line_count
        self.minimum = minimum
        super().__init__(
            f"Journal entry has {line_count} line(s); at least {minimum} are required"
        )


class AmbiguousLineError(ValidationError):
    """A line must carry exactly one non-zero, non-negative side."""

    code: str = "AMBIGUOUS_LINE"

    def __init__(self, line_index: int, debit: Decimal, credit: Decimal, reason: str):
        self.line_index = line_index
        self.debit = debit
        self.credit = credit
        self.reason = reason
        super().__init__(
            f"Line {line_index + 1} (debit {format_amount(debit)}, "
            f"credit {format_amount(credit)}): {reason}"
        )


class InvalidAmountError(ValidationError):
    """An amount could not be read as an exact decimal."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, line_index: int, field: str, value: Any, reason: str):
        self.line_index = line_index
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Line {line_index + 1} {field} {value!r}: {reason}")


class UnknownAccountError(ValidationError):
    """A line refers to an account that is missing, inactive or foreign."""

    code: str = "UNKNOWN_ACCOUNT"

    def __init__(self, company_id: str, account_ids: Sequence[str], reasons: dict[str, str]):
        self.company_id = company_id
        self.account_ids = list(account_ids)
        self.reasons = dict(reasons)
        detail = ", ".join(f"{acc} ({reasons[acc]})" for acc in self.account_ids)
        super().__init__(f"Unknown or inactive account(s) for company {company_id}: {detail}")


class UnbalancedEntryError(ValidationError):
    """Total debits and credits of an entry differ by the tolerance or more."""

    code: str = "UNBALANCED_ENTRY"

    def __init__(self, total_debit: Decimal, total_credit: Decimal):
        self.total_debit = total_debit
        self.total_credit = total_credit
        self.difference = abs(total_debit - total_credit)
        super().__init__(
            f"entry total debit {format_amount(total_debit)} ≠ credit "
            f"{format_amount(total_credit)}, difference {format_amount(self.difference)}"
        )


class DuplicateCodeError(ValidationError):
    """An account code is already used within the company."""

    code: str = "DUPLICATE_CODE"

    def __init__(self, company_id: str, account_code: str):
        self.company_id = company_id
        self.account_code = account_code
        super().__init__(
            f"Account code '{account_code}' already exists for company {company_id}"
        )


class InvalidParentError(ValidationError):
    """The parent code does not resolve to an account in the same company."""

    code: str = "INVALID_PARENT"

    def __init__(self, company_id: str, parent_code: str):
        self.company_id = company_id
        self.parent_code = parent_code
        super().__init__(
            f"Parent account '{parent_code}' does not exist for company {company_id}"
        )


class InvalidPeriodRangeError(ValidationError):
    """The period start falls after its end."""

    code: str = "INVALID_PERIOD_RANGE"

    def __init__(self, period_start: Any, period_end: Any):
        self.period_start = str(period_start)
        self.period_end = str(period_end)
        super().__init__(
            f"Period start {period_start} is after period end {period_end}"
        )


class PeriodAlreadyClosedError(ValidationError):
    """A closed closing already exists for the period end."""

    code: str = "PERIOD_ALREADY_CLOSED"

    def __init__(self, company_id: str, period_end: Any, closing_id: str):
        self.company_id = company_id
        self.period_end = str(period_end)
        self.closing_id = closing_id
        super().__init__(
            f"Period ending {period_end} is already closed for company "
            f"{company_id} (closing {closing_id})"
        )


class EntryAlreadyReversedError(ValidationError):
    """A reversing entry already exists for the original entry."""

    code: str = "ENTRY_ALREADY_REVERSED"

    def __init__(self, entry_number: str, reversal_entry_number: str):
        self.entry_number = entry_number
        self.reversal_entry_number = reversal_entry_number
        super().__init__(
            f"Journal entry {entry_number} was already reversed by {reversal_entry_number}"
        )


class UnknownBusinessTypeError(ValidationError):
    """No chart-of-accounts template exists for the business type."""

    code: str = "UNKNOWN_BUSINESS_TYPE"

    def __init__(self, business_type: str, known: Sequence[str]):
        self.business_type = business_type
        self.known = sorted(known)
        super().__init__(
            f"Unknown business type '{business_type}'; expected one of {', '.join(self.known)}"
        )


# =============================================================================
# Concurrency conflicts
# =============================================================================


class ConcurrencyConflictError(LedgerKernelError):
    """Another writer won a race; retrying with fresh state will succeed."""

    code: str = "CONCURRENCY_CONFLICT"


class EntryNumberConflictError(ConcurrencyConflictError):
    """Entry number allocation kept colliding with existing entries."""

    code: str = "ENTRY_NUMBER_CONFLICT"

    def __init__(self, company_id: str, entry_number: str, attempts: int):
        self.company_id = company_id
        self.entry_number = entry_number
        self.attempts = attempts
        super().__init__(
            f"Entry number {entry_number} for company {company_id} collided "
            f"after {attempts} allocation attempt(s)"
        )


class ConcurrentClosingError(ConcurrencyConflictError):
    """Another transaction closed the same period first."""

    code: str = "CONCURRENT_CLOSING"

    def __init__(self, company_id: str, period_end: Any):
        self.company_id = company_id
        self.period_end = str(period_end)
        super().__init__(
            f"Period ending {period_end} for company {company_id} was closed "
            "by a concurrent transaction"
        )


# =============================================================================
# Integrity failures
# =============================================================================


class IntegrityFailure(LedgerKernelError):
    """Ledger data is inconsistent; the operation was aborted."""

    code: str = "INTEGRITY_FAILURE"


class UnbalancedPeriodError(IntegrityFailure):
    """The trial balance at a period end does not net to zero."""

    code: str = "UNBALANCED_PERIOD"

    def __init__(
        self,
        company_id: str,
        period_end: Any,
        total_debit: Decimal,
        total_credit: Decimal,
        implicated_accounts: Sequence[str] = (),
    ):
        self.company_id = company_id
        self.period_end = str(period_end)
        self.total_debit = total_debit
        self.total_credit = total_credit
        self.difference = abs(total_debit - total_credit)
        self.implicated_accounts = list(implicated_accounts)
        message = (
            f"Trial balance for company {company_id} as of {period_end} is unbalanced: "
            f"debit {format_amount(total_debit)} ≠ credit {format_amount(total_credit)}, "
            f"difference {format_amount(self.difference)}"
        )
        if self.implicated_accounts:
            message += f"; accounts involved: {', '.join(self.implicated_accounts)}"
        super().__init__(message)


class CorruptedSnapshotError(IntegrityFailure):
    """Stored opening balances disagree with the journal history."""

    code: str = "CORRUPTED_SNAPSHOT"

    def __init__(self, closing_id: str, problems: dict[str, str]):
        self.closing_id = closing_id
        self.problems = dict(problems)
        detail = "; ".join(f"{key}: {reason}" for key, reason in sorted(self.problems.items()))
        super().__init__(f"Opening balance snapshot of closing {closing_id} is corrupted: {detail}")


# =============================================================================
# Lookups and state transitions
# =============================================================================


class NotFoundError(LedgerKernelError):
    """A referenced record does not exist."""

    code: str = "NOT_FOUND"


class CompanyNotFoundError(NotFoundError):
    code: str = "COMPANY_NOT_FOUND"

    def __init__(self, company_id: str):
        self.company_id = company_id
        super().__init__(f"Company not found: {company_id}")


class AccountNotFoundError(NotFoundError):
    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")


class JournalEntryNotFoundError(NotFoundError):
    code: str = "JOURNAL_ENTRY_NOT_FOUND"

    def __init__(self, company_id: str, entry_number: str):
        self.company_id = company_id
        self.entry_number = entry_number
        super().__init__(f"Journal entry {entry_number} not found for company {company_id}")


class PeriodClosingNotFoundError(NotFoundError):
    code: str = "PERIOD_CLOSING_NOT_FOUND"

    def __init__(self, closing_id: str):
        self.closing_id = closing_id
        super().__init__(f"Period closing not found: {closing_id}")


class InvalidClosingTransitionError(LedgerKernelError):
    """Only closed -> reopened is a valid status change."""

    code: str = "INVALID_CLOSING_TRANSITION"

    def __init__(self, closing_id: str, from_status: str, to_status: str):
        self.closing_id = closing_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Cannot move period closing {closing_id} from '{from_status}' to '{to_status}'"
        )


class ImmutabilityViolationError(LedgerKernelError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Cannot modify {entity_type} {entity_id}: {reason}")
