"""
JournalWriter -- the single write path for financial facts.

Responsibility:
    Validates a requested journal entry and persists it, posted, together
    with all of its lines.  Also posts reversing entries.

Architecture position:
    Kernel > Services.  Flushes only; LedgerOrchestrator (or the caller)
    commits.

Validation, in order:
    1. At least two lines                       -> InsufficientLinesError
    2. Each line: exact decimal amounts, one
       non-zero side, nothing negative          -> InvalidAmountError /
                                                   AmbiguousLineError
    3. Every account exists, is active and
       belongs to the company                   -> UnknownAccountError
    4. sum(debit) == sum(credit) within the
       tolerance                                -> UnbalancedEntryError
    5. Entry number allocated from the locked company counter; the insert
       runs in a savepoint and a unique-key collision re-synchronises the
       counter and retries inside the same transaction
                                                -> EntryNumberConflictError
                                                   after max_number_attempts

Invariants enforced:
    - The balance check and the insert happen in the same transaction;
      no partially written or unbalanced entry is ever visible.
    - Entries are stored with is_posted = True.  There are no drafts.
    - No balance is stored or updated; balances are replayed on read.
"""

import time
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Mapping, Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from ledger_kernel.db.types import ZERO, is_within_tolerance, to_money
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import JournalEntryRecord, LineSpec, PostingPolicy
from ledger_kernel.exceptions import (
    AmbiguousLineError,
    EntryAlreadyReversedError,
    EntryNumberConflictError,
    InsufficientLinesError,
    InvalidAmountError,
    JournalEntryNotFoundError,
    UnbalancedEntryError,
    UnknownAccountError,
    ValidationError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.journal import JournalEntry, JournalLine, ReferenceType
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.journal_writer")

MIN_LINES = 2


def _is_number_collision(exc: IntegrityError) -> bool:
    message = str(exc.orig).lower()
    return "uq_journal_entry_company" in message or (
        "unique" in message and "journal_entries." in message
    )


class JournalWriter(BaseService[JournalEntry]):
    """
    Validates and posts journal entries.

    Contract:
        post_entry() either writes the entry and all its lines, or raises
        and leaves the session exactly as it found it.
    """

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        policy: PostingPolicy | None = None,
        sequence_service: SequenceService | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._policy = policy or PostingPolicy()
        self._sequences = sequence_service or SequenceService(session)

    # ------------------------------------------------------------------
    # Posting
    # ------------------------------------------------------------------

    def post_entry(
        self,
        company_id: UUID,
        entry_date: date,
        description: str,
        reference_type: ReferenceType | str = ReferenceType.MANUAL,
        reference_id: str | None = None,
        lines: Sequence[LineSpec | Mapping[str, Any]] = (),
        actor_id: UUID | None = None,
    ) -> JournalEntryRecord:
        """
        Validate and post one journal entry.

        Args:
            company_id: Owning company.
            entry_date: Accounting date of the entry.
            description: Free-text description shown in ledgers.
            reference_type: Kind of originating document (manual, sales, ...).
            reference_id: Optional id of the originating document.
            lines: LineSpec values or ``{account_id, debit, credit,
                description?}`` mappings, in display order.
            actor_id: User posting the entry.

        Returns:
            The posted entry, including its allocated entry_number.

        Raises:
            ValidationError subclasses (see module docstring).
            EntryNumberConflictError: numbering kept colliding.
        """
        t0 = time.monotonic()
        if isinstance(entry_date, datetime):
            entry_date = entry_date.date()
        reference_type = getattr(reference_type, "value", reference_type)

        try:
            specs = [
                line if isinstance(line, LineSpec) else LineSpec.from_mapping(line)
                for line in lines
            ]
            amounts = self._validate_lines(specs)
            self._resolve_accounts(company_id, specs)
            total_debit, total_credit = self._validate_balance(amounts)
        except ValidationError as exc:
            logger.warning(
                "entry_rejected",
                extra={
                    "company_id": str(company_id),
                    "error_code": exc.code,
                    "reason": str(exc),
                    "line_count": len(lines),
                },
            )
            raise

        entry = self._insert_with_number(
            company_id=company_id,
            entry_date=entry_date,
            description=description or "",
            reference_type=reference_type,
            reference_id=reference_id,
            specs=specs,
            amounts=amounts,
            actor_id=actor_id,
        )

        duration_ms = round((time.monotonic() - t0) * 1000, 2)
        logger.info(
            "entry_posted",
            extra={
                "company_id": str(company_id),
                "entry_number": entry.entry_number,
                "entry_date": entry_date.isoformat(),
                "reference_type": reference_type,
                "line_count": len(specs),
                "total_debit": str(total_debit),
                "total_credit": str(total_credit),
                "duration_ms": duration_ms,
            },
        )
        return JournalEntryRecord.from_model(entry)

    def reverse_entry(
        self,
        company_id: UUID,
        entry_number: str,
        reversal_date: date,
        description: str | None = None,
        actor_id: UUID | None = None,
    ) -> JournalEntryRecord:
        """
        Post an entry that swaps every debit and credit of ``entry_number``.

        The reversal references the original through reference_type
        'reversal' and reference_id = the original entry number.

        Raises:
            JournalEntryNotFoundError: no such entry for the company.
            EntryAlreadyReversedError: a reversal already exists.
        """
        original = self.session.execute(
            select(JournalEntry).where(
                JournalEntry.company_id == company_id,
                JournalEntry.entry_number == entry_number,
            )
        ).scalar_one_or_none()
        if original is None:
            raise JournalEntryNotFoundError(str(company_id), entry_number)

        existing = self.session.execute(
            select(JournalEntry.entry_number).where(
                JournalEntry.company_id == company_id,
                JournalEntry.reference_type == ReferenceType.REVERSAL.value,
                JournalEntry.reference_id == entry_number,
            )
        ).scalar_one_or_none()
        if existing is not None:
            raise EntryAlreadyReversedError(entry_number, existing)

        lines = [
            LineSpec(
                account_id=line.account_id,
                debit=line.credit_amount,
                credit=line.debit_amount,
                description=line.description,
            )
            for line in sorted(original.lines, key=lambda x: x.line_seq)
        ]
        return self.post_entry(
            company_id=company_id,
            entry_date=reversal_date,
            description=description or f"Reversal of {entry_number}",
            reference_type=ReferenceType.REVERSAL,
            reference_id=entry_number,
            lines=lines,
            actor_id=actor_id,
        )

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate_lines(self, specs: Sequence[LineSpec]) -> list[tuple[Decimal, Decimal]]:
        if len(specs) < MIN_LINES:
            raise InsufficientLinesError(len(specs), MIN_LINES)

        amounts: list[tuple[Decimal, Decimal]] = []
        for index, spec in enumerate(specs):
            debit = self._amount(index, "debit", spec.debit)
            credit = self._amount(index, "credit", spec.credit)
            if debit < 0 or credit < 0:
                raise AmbiguousLineError(index, debit, credit, "amounts cannot be negative")
            if debit != 0 and credit != 0:
                raise AmbiguousLineError(index, debit, credit, "both debit and credit are set")
            if debit == 0 and credit == 0:
                raise AmbiguousLineError(index, debit, credit, "neither debit nor credit is set")
            amounts.append((debit, credit))
        return amounts

    @staticmethod
    def _amount(index: int, field: str, value: Any) -> Decimal:
        try:
            return to_money(value)
        except (TypeError, ValueError) as exc:
            raise InvalidAmountError(index, field, value, str(exc)) from exc

    def _resolve_accounts(self, company_id: UUID, specs: Sequence[LineSpec]) -> dict[UUID, Account]:
        wanted = {spec.account_id for spec in specs}
        found = {
            account.id: account
            for account in self.session.execute(
                select(Account).where(Account.id.in_(wanted))
            ).scalars()
        }

        reasons: dict[str, str] = {}
        for spec in specs:
            key = str(spec.account_id)
            if key in reasons:
                continue
            account = found.get(spec.account_id)
            if account is None:
                reasons[key] = "not found"
            elif account.company_id != company_id:
                reasons[key] = "belongs to another company"
            elif not account.is_active:
                reasons[key] = f"account {account.code} is inactive"

        if reasons:
            raise UnknownAccountError(str(company_id), list(reasons), reasons)
        return found

    def _validate_balance(self, amounts: Sequence[tuple[Decimal, Decimal]]) -> tuple[Decimal, Decimal]:
        total_debit = sum((debit for debit, _ in amounts), ZERO)
        total_credit = sum((credit for _, credit in amounts), ZERO)
        balanced = is_within_tolerance(total_debit, total_credit, self._policy.balance_tolerance)
        logger.debug(
            "balance_validated",
            extra={
                "sum_debit": str(total_debit),
                "sum_credit": str(total_credit),
                "balanced": balanced,
            },
        )
        if not balanced:
            raise UnbalancedEntryError(total_debit, total_credit)
        return total_debit, total_credit

    # ------------------------------------------------------------------
    # Numbering and insert
    # ------------------------------------------------------------------

    def _highest_number_in_use(self, company_id: UUID) -> int:
        """Largest sequence or parsable entry number stored for the company."""
        highest = self.session.execute(
            select(func.max(JournalEntry.sequence)).where(JournalEntry.company_id == company_id)
        ).scalar() or 0
        numbers = self.session.execute(
            select(JournalEntry.entry_number).where(
                JournalEntry.company_id == company_id,
                JournalEntry.entry_number.like(f"{self._policy.entry_number_prefix}-%"),
            )
        ).scalars()
        for number in numbers:
            parsed = self._policy.parse_entry_number(number)
            if parsed is not None and parsed > highest:
                highest = parsed
        return highest

    def _insert_with_number(
        self,
        company_id: UUID,
        entry_date: date,
        description: str,
        reference_type: str,
        reference_id: str | None,
        specs: Sequence[LineSpec],
        amounts: Sequence[tuple[Decimal, Decimal]],
        actor_id: UUID | None,
    ) -> JournalEntry:
        attempts = self._policy.max_number_attempts
        entry_number = ""

        for attempt in range(1, attempts + 1):
            value = self._sequences.next_value(
                company_id,
                SequenceService.JOURNAL_ENTRY,
                seed=lambda: self._highest_number_in_use(company_id),
            )
            entry_number = self._policy.format_entry_number(value)
            entry = JournalEntry(
                company_id=company_id,
                entry_number=entry_number,
                sequence=value,
                entry_date=entry_date,
                description=description,
                reference_type=reference_type,
                reference_id=reference_id,
                is_posted=True,
                posted_at=self._clock.now(),
                created_by_id=actor_id,
                lines=[
                    JournalLine(
                        account_id=spec.account_id,
                        debit_amount=debit,
                        credit_amount=credit,
                        description=spec.description,
                        line_seq=index,
                        created_by_id=actor_id,
                    )
                    for index, (spec, (debit, credit)) in enumerate(zip(specs, amounts))
                ],
            )
            try:
                with self.session.begin_nested():
                    self.session.add(entry)
                    self.session.flush()
                return entry
            except IntegrityError as exc:
                if not _is_number_collision(exc):
                    raise
                logger.warning(
                    "entry_number_collision",
                    extra={
                        "company_id": str(company_id),
                        "entry_number": entry_number,
                        "attempt": attempt,
                        "max_attempts": attempts,
                    },
                )
                self._sequences.resync(
                    company_id,
                    SequenceService.JOURNAL_ENTRY,
                    self._highest_number_in_use(company_id),
                )

        raise EntryNumberConflictError(str(company_id), entry_number, attempts)
