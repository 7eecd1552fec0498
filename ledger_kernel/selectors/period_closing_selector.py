"""
Module: ledger_kernel.selectors.period_closing_selector
Responsibility: Read side of period closing.  Closing history, stored
    opening balances, the closing preview and snapshot verification.
Architecture position: Kernel > Selectors.  PeriodClosingService builds
    its snapshot from preview() so the written rows and the verification
    use the same computation.

Invariants enforced:
    - A snapshot row holds the raw net (debit - credit) of one account as
      of period_end, on one side only, dated period_end + 1 day.
    - The preview only counts active accounts.  An inactive account that
      still carries a balance makes the preview unbalanced and is named
      in implicated_accounts.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from ledger_kernel.db.types import ZERO, is_within_tolerance
from ledger_kernel.domain.dtos import OpeningBalanceInfo, PeriodClosingInfo
from ledger_kernel.domain.normal_balance import split_net
from ledger_kernel.exceptions import CorruptedSnapshotError, PeriodClosingNotFoundError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.period_closing import ClosingStatus, OpeningBalance, PeriodClosing
from ledger_kernel.selectors.base import BaseSelector
from ledger_kernel.selectors.ledger_selector import LedgerSelector, TrialBalanceRow

logger = get_logger("selectors.period_closing")


@dataclass(frozen=True)
class SnapshotRow:
    """One opening balance a closing would write."""

    account_id: UUID
    account_code: str
    debit_balance: Decimal
    credit_balance: Decimal

    @property
    def net(self) -> Decimal:
        return self.debit_balance - self.credit_balance


@dataclass(frozen=True)
class ClosingPreview:
    """
    What close_period would write for a period end.

    total_debit is the sum of positive nets, total_credit the sum of the
    absolute negative nets, both over active accounts.
    """

    company_id: UUID
    period_end: date
    rows: tuple[SnapshotRow, ...] = field(default_factory=tuple)
    implicated_accounts: tuple[str, ...] = field(default_factory=tuple)

    @property
    def balance_date(self) -> date:
        return self.period_end + timedelta(days=1)

    @property
    def total_debit(self) -> Decimal:
        return sum((row.debit_balance for row in self.rows), ZERO)

    @property
    def total_credit(self) -> Decimal:
        return sum((row.credit_balance for row in self.rows), ZERO)

    @property
    def is_balanced(self) -> bool:
        return not self.implicated_accounts and is_within_tolerance(
            self.total_debit, self.total_credit
        )


def _snapshot_row(row: TrialBalanceRow) -> SnapshotRow:
    debit, credit = split_net(row.net)
    return SnapshotRow(
        account_id=row.account_id,
        account_code=row.account_code,
        debit_balance=debit,
        credit_balance=credit,
    )


class PeriodClosingSelector(BaseSelector[PeriodClosing]):

    def __init__(self, session, ledger_selector: LedgerSelector | None = None):
        super().__init__(session)
        self._ledger = ledger_selector or LedgerSelector(session)

    def preview(self, company_id: UUID, period_end: date) -> ClosingPreview:
        """Compute the snapshot for period_end without writing anything."""
        rows = self._ledger.account_totals(company_id, end_date=period_end)
        snapshot = tuple(
            _snapshot_row(row) for row in rows if row.is_active and row.net != 0
        )
        implicated = tuple(
            row.account_code for row in rows if not row.is_active and row.net != 0
        )
        return ClosingPreview(
            company_id=company_id,
            period_end=period_end,
            rows=snapshot,
            implicated_accounts=implicated,
        )

    def list_closings(
        self,
        company_id: UUID,
        status: ClosingStatus | str | None = None,
    ) -> list[PeriodClosingInfo]:
        """Closings of a company, oldest period end first."""
        query = select(PeriodClosing).where(PeriodClosing.company_id == company_id)
        if status is not None:
            query = query.where(PeriodClosing.status == ClosingStatus(status).value)
        query = query.order_by(PeriodClosing.period_end, PeriodClosing.closed_at)
        return [PeriodClosingInfo.from_model(c) for c in self.session.execute(query).scalars()]

    def get_closing(self, closing_id: UUID) -> PeriodClosingInfo:
        return PeriodClosingInfo.from_model(self._get(closing_id))

    def active_closing(self, company_id: UUID, period_end: date) -> PeriodClosingInfo | None:
        """The closed (not reopened) closing for a period end, if any."""
        closing = self.session.execute(
            select(PeriodClosing).where(
                PeriodClosing.company_id == company_id,
                PeriodClosing.period_end == period_end,
                PeriodClosing.status == ClosingStatus.CLOSED.value,
            )
        ).scalar_one_or_none()
        return PeriodClosingInfo.from_model(closing) if closing is not None else None

    def opening_balances(self, closing_id: UUID) -> list[OpeningBalanceInfo]:
        """Stored snapshot rows of a closing, ordered by account code."""
        self._get(closing_id)
        rows = self.session.execute(
            select(OpeningBalance)
            .join(Account, OpeningBalance.account_id == Account.id)
            .where(OpeningBalance.period_closing_id == closing_id)
            .order_by(Account.code)
        ).scalars()
        return [OpeningBalanceInfo.from_model(row) for row in rows]

    def verify_snapshot(self, closing_id: UUID) -> PeriodClosingInfo:
        """
        Check a stored snapshot against the journal history.

        Every row must be dated period_end + 1, hold one side only and
        equal the replayed balance; the rows must balance; and every
        account the replay finds with a balance must have a row.

        Raises:
            PeriodClosingNotFoundError: unknown closing.
            CorruptedSnapshotError: any check failed, naming the accounts.
        """
        closing = self._get(closing_id)
        expected = {
            row.account_id: row
            for row in self.preview(closing.company_id, closing.period_end).rows
        }
        codes = dict(
            self.session.execute(
                select(Account.id, Account.code).where(Account.company_id == closing.company_id)
            ).all()
        )

        problems: dict[str, str] = {}
        total_debit = ZERO
        total_credit = ZERO
        stored_ids = set()
        for row in closing.opening_balances:
            code = codes.get(row.account_id, str(row.account_id))
            stored_ids.add(row.account_id)
            total_debit += row.debit_balance
            total_credit += row.credit_balance
            if row.balance_date != closing.balance_date:
                problems[code] = (
                    f"balance_date {row.balance_date} != {closing.balance_date}"
                )
            elif row.debit_balance != 0 and row.credit_balance != 0:
                problems[code] = "both debit and credit balances are set"
            else:
                replayed = expected.get(row.account_id)
                replayed_net = replayed.net if replayed is not None else ZERO
                if row.net != replayed_net:
                    problems[code] = f"stored {row.net} != replayed {replayed_net}"

        for account_id, row in expected.items():
            if account_id not in stored_ids:
                problems[row.account_code] = f"missing row for balance {row.net}"

        if not is_within_tolerance(total_debit, total_credit):
            problems["totals"] = f"debit {total_debit} != credit {total_credit}"

        if problems:
            logger.error(
                "snapshot_verification_failed",
                extra={"closing_id": str(closing_id), "problems": problems},
            )
            raise CorruptedSnapshotError(str(closing_id), problems)

        logger.info(
            "snapshot_verified",
            extra={"closing_id": str(closing_id), "row_count": len(stored_ids)},
        )
        return PeriodClosingInfo.from_model(closing)

    def _get(self, closing_id: UUID) -> PeriodClosing:
        closing = self.session.get(PeriodClosing, closing_id)
        if closing is None:
            raise PeriodClosingNotFoundError(str(closing_id))
        return closing
