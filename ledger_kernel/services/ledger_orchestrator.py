"""
LedgerOrchestrator -- transaction boundary for every ledger mutation.

Responsibility:
    Wires JournalWriter and PeriodClosingService to one session, binds the
    logging context, and owns commit / rollback for post_entry,
    reverse_entry, close_period and reopen_closing.

Architecture position:
    Kernel > Services.  The only kernel class that calls
    ``session.commit()``.  Collaborators (POS, sales, purchasing, CSV
    import) call these methods; they never drive the services directly.

Retry policy:
    ConcurrencyConflictError and transient OperationalErrors (serialization
    failure, deadlock, locked SQLite database) roll the transaction back
    and run the operation again with fresh state, up to
    policy.max_transaction_attempts, sleeping retry_backoff_seconds *
    attempt in between.  Every other error rolls back and propagates
    unchanged.  Retries only happen with auto_commit=True, because the
    orchestrator cannot restart a transaction the caller owns.
"""

import time
from datetime import date
from typing import Any, Callable, Mapping, Sequence, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import JournalEntryRecord, LineSpec, PeriodClosingInfo, PostingPolicy
from ledger_kernel.exceptions import ConcurrencyConflictError, ValidationError
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.journal import ReferenceType
from ledger_kernel.services.journal_writer import JournalWriter
from ledger_kernel.services.period_closing_service import PeriodClosingService

logger = get_logger("services.ledger_orchestrator")

T = TypeVar("T")

# PostgreSQL serialization_failure and deadlock_detected
_TRANSIENT_PGCODES = frozenset({"40001", "40P01"})


def is_transient(exc: BaseException) -> bool:
    """True for errors worth retrying in a fresh transaction."""
    if isinstance(exc, ConcurrencyConflictError):
        return True
    if isinstance(exc, OperationalError):
        pgcode = getattr(exc.orig, "pgcode", None)
        if pgcode in _TRANSIENT_PGCODES:
            return True
        return "database is locked" in str(exc.orig).lower()
    return False


class LedgerOrchestrator:
    """
    Entry point for mutating the ledger.

    By default every call commits on success and rolls back on failure.
    Pass auto_commit=False to leave the transaction to the caller (tests,
    or a caller batching several operations in one transaction).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: PostingPolicy | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._policy = policy or PostingPolicy()
        self._auto_commit = auto_commit
        self._writer = JournalWriter(session, clock=self._clock, policy=self._policy)
        self._closings = PeriodClosingService(session, clock=self._clock)

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
        return self._run(
            "post_entry",
            company_id,
            actor_id,
            lambda: self._writer.post_entry(
                company_id=company_id,
                entry_date=entry_date,
                description=description,
                reference_type=reference_type,
                reference_id=reference_id,
                lines=lines,
                actor_id=actor_id,
            ),
        )

    def reverse_entry(
        self,
        company_id: UUID,
        entry_number: str,
        reversal_date: date,
        description: str | None = None,
        actor_id: UUID | None = None,
    ) -> JournalEntryRecord:
        return self._run(
            "reverse_entry",
            company_id,
            actor_id,
            lambda: self._writer.reverse_entry(
                company_id=company_id,
                entry_number=entry_number,
                reversal_date=reversal_date,
                description=description,
                actor_id=actor_id,
            ),
        )

    def close_period(
        self,
        company_id: UUID,
        period_start: date,
        period_end: date,
        actor_id: UUID,
        notes: str | None = None,
    ) -> PeriodClosingInfo:
        return self._run(
            "close_period",
            company_id,
            actor_id,
            lambda: self._closings.close_period(
                company_id=company_id,
                period_start=period_start,
                period_end=period_end,
                actor_id=actor_id,
                notes=notes,
            ),
        )

    def reopen_closing(
        self,
        company_id: UUID,
        closing_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
    ) -> PeriodClosingInfo:
        return self._run(
            "reopen_closing",
            company_id,
            actor_id,
            lambda: self._closings.reopen_closing(closing_id, actor_id, reason),
        )

    # ------------------------------------------------------------------

    def _run(
        self,
        operation: str,
        company_id: UUID,
        actor_id: UUID | None,
        action: Callable[[], T],
    ) -> T:
        max_attempts = self._policy.max_transaction_attempts if self._auto_commit else 1

        with LogContext.bind(
            correlation_id=str(uuid4()),
            company_id=str(company_id),
            actor_id=str(actor_id) if actor_id else None,
        ):
            logger.info("operation_started", extra={"operation": operation})
            t0 = time.monotonic()
            attempt = 1
            while True:
                try:
                    result = action()
                    if self._auto_commit:
                        self._session.commit()
                except Exception as exc:
                    if self._auto_commit:
                        self._session.rollback()
                    duration_ms = round((time.monotonic() - t0) * 1000, 2)
                    if is_transient(exc) and attempt < max_attempts:
                        logger.warning(
                            "operation_retry",
                            extra={
                                "operation": operation,
                                "attempt": attempt,
                                "max_attempts": max_attempts,
                                "error_type": type(exc).__name__,
                            },
                        )
                        time.sleep(self._policy.retry_backoff_seconds * attempt)
                        attempt += 1
                        continue
                    if isinstance(exc, ValidationError):
                        logger.warning(
                            "operation_rejected",
                            extra={
                                "operation": operation,
                                "error_code": exc.code,
                                "duration_ms": duration_ms,
                            },
                        )
                    else:
                        logger.error(
                            "operation_failed",
                            extra={
                                "operation": operation,
                                "attempt": attempt,
                                "duration_ms": duration_ms,
                            },
                            exc_info=True,
                        )
                    raise

                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                logger.info(
                    "operation_completed",
                    extra={
                        "operation": operation,
                        "attempt": attempt,
                        "duration_ms": duration_ms,
                    },
                )
                return result
