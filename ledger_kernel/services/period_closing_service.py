"""
PeriodClosingService -- closes a period into next-period opening balances.

Responsibility:
    Converts the balances at a period end into OpeningBalance rows dated
    the following day, records the closing, and reopens it on request.

Architecture position:
    Kernel > Services.  Flush-only; LedgerOrchestrator commits.

State machine:
    (no closing) --close_period--> CLOSED --reopen_closing--> REOPENED
    A reopened period end may be closed again, producing a new closing.

Invariants enforced:
    - The company row is locked FOR UPDATE before anything is checked, so
      concurrent closings of one company run one after the other.
    - At most one CLOSED closing per (company, period_end); backed by the
      partial unique index uq_period_closing_active.
    - The snapshot balances: sum of positive nets == sum of |negative|
      nets within the tolerance, or nothing is written.
    - Journal entries are never touched.  Revenue and expense accounts
      carry forward like every other account.

Failure modes:
    - InvalidPeriodRangeError, PeriodAlreadyClosedError (validation).
    - UnbalancedPeriodError (integrity, names the inactive accounts that
      still carry a balance).
    - ConcurrentClosingError when another transaction won the unique index.
      Any other IntegrityError from the insert propagates unchanged; in
      both cases the savepoint is rolled back and no row is left behind.
    - InvalidClosingTransitionError on a second reopen.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import PeriodClosingInfo
from ledger_kernel.exceptions import (
    CompanyNotFoundError,
    ConcurrentClosingError,
    InvalidClosingTransitionError,
    InvalidPeriodRangeError,
    PeriodAlreadyClosedError,
    PeriodClosingNotFoundError,
    UnbalancedPeriodError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.company import Company
from ledger_kernel.models.period_closing import ClosingStatus, OpeningBalance, PeriodClosing
from ledger_kernel.selectors.period_closing_selector import ClosingPreview, PeriodClosingSelector
from ledger_kernel.services.base import BaseService

logger = get_logger("services.period_closing")


class PeriodClosingService(BaseService[PeriodClosing]):

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        selector: PeriodClosingSelector | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._selector = selector or PeriodClosingSelector(session)

    def preview_closing(self, company_id: UUID, period_end: date) -> ClosingPreview:
        """Read-only: what close_period would write."""
        return self._selector.preview(company_id, period_end)

    def close_period(
        self,
        company_id: UUID,
        period_start: date,
        period_end: date,
        actor_id: UUID,
        notes: str | None = None,
    ) -> PeriodClosingInfo:
        """
        Close the books of a company as of period_end.

        Args:
            company_id: Company to close.
            period_start: First day of the period (informational).
            period_end: Last day of the period; balances are taken as of
                the end of this day.
            actor_id: User closing the period (required).
            notes: Free text stored with the closing.

        Returns:
            The closing with its opening balances.
        """
        if period_start > period_end:
            raise InvalidPeriodRangeError(period_start, period_end)

        self._lock_company(company_id)

        existing = self._selector.active_closing(company_id, period_end)
        if existing is not None:
            raise PeriodAlreadyClosedError(str(company_id), period_end, str(existing.id))

        preview = self._selector.preview(company_id, period_end)
        if not preview.is_balanced:
            logger.error(
                "period_unbalanced",
                extra={
                    "company_id": str(company_id),
                    "period_end": period_end.isoformat(),
                    "total_debit": str(preview.total_debit),
                    "total_credit": str(preview.total_credit),
                    "implicated_accounts": list(preview.implicated_accounts),
                },
            )
            raise UnbalancedPeriodError(
                str(company_id),
                period_end,
                preview.total_debit,
                preview.total_credit,
                preview.implicated_accounts,
            )

        closing = PeriodClosing(
            company_id=company_id,
            period_start=period_start,
            period_end=period_end,
            status=ClosingStatus.CLOSED.value,
            notes=notes,
            closed_at=self._clock.now(),
            closed_by_id=actor_id,
            created_by_id=actor_id,
        )
        closing.opening_balances = [
            OpeningBalance(
                company_id=company_id,
                account_id=row.account_id,
                balance_date=preview.balance_date,
                debit_balance=row.debit_balance,
                credit_balance=row.credit_balance,
                created_by_id=actor_id,
            )
            for row in preview.rows
        ]
        try:
            with self.session.begin_nested():
                self.session.add(closing)
                self.session.flush()
        except IntegrityError as exc:
            # The savepoint is gone: neither the closing nor any of its
            # opening balances were written.
            if self._selector.active_closing(company_id, period_end) is None:
                logger.error(
                    "period_closing_insert_failed",
                    extra={
                        "company_id": str(company_id),
                        "period_end": period_end.isoformat(),
                        "error": str(exc.orig),
                    },
                )
                raise
            logger.warning(
                "concurrent_closing_conflict",
                extra={"company_id": str(company_id), "period_end": period_end.isoformat()},
            )
            raise ConcurrentClosingError(str(company_id), period_end) from exc

        logger.info(
            "period_closed",
            extra={
                "company_id": str(company_id),
                "closing_id": str(closing.id),
                "period_start": period_start.isoformat(),
                "period_end": period_end.isoformat(),
                "opening_balance_count": len(preview.rows),
                "total_debit": str(preview.total_debit),
                "total_credit": str(preview.total_credit),
            },
        )
        return PeriodClosingInfo.from_model(closing)

    def reopen_closing(
        self,
        closing_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
    ) -> PeriodClosingInfo:
        """
        Move a closing from closed to reopened.

        The opening balance rows stay in place as history; lookups only
        use closings whose status is closed.
        """
        closing = self.session.execute(
            select(PeriodClosing).where(PeriodClosing.id == closing_id).with_for_update()
        ).scalar_one_or_none()
        if closing is None:
            raise PeriodClosingNotFoundError(str(closing_id))
        if closing.status != ClosingStatus.CLOSED.value:
            raise InvalidClosingTransitionError(
                str(closing_id), closing.status, ClosingStatus.REOPENED.value
            )

        closing.status = ClosingStatus.REOPENED.value
        closing.reopened_at = self._clock.now()
        closing.reopened_by_id = actor_id
        closing.reopen_reason = reason
        self.session.flush()

        logger.info(
            "period_reopened",
            extra={
                "company_id": str(closing.company_id),
                "closing_id": str(closing_id),
                "period_end": closing.period_end.isoformat(),
            },
        )
        return PeriodClosingInfo.from_model(closing)

    def _lock_company(self, company_id: UUID) -> Company:
        company = self.session.execute(
            select(Company).where(Company.id == company_id).with_for_update()
        ).scalar_one_or_none()
        if company is None:
            raise CompanyNotFoundError(str(company_id))
        return company
