"""
SequenceService -- company-scoped sequence allocation via locked counter rows.

Responsibility:
    Hands out strictly increasing integers per (company, sequence name).
    Journal entry numbers are built from these values.

Invariants enforced:
    - The counter row is read with ``SELECT ... FOR UPDATE`` and
      incremented in the caller's transaction, so two concurrent
      transactions can never draw the same value.  On SQLite the
      BEGIN IMMEDIATE transaction gives the same exclusion.
    - Reading MAX(entry_number) and adding one is never used to allocate.
      The stored maximum is only consulted to *seed* a counter that does
      not exist yet (books migrated from another system) and to resync a
      counter that fell behind (resync()).
    - The increment is transactional: a rollback returns the value.

Failure modes:
    - IntegrityError on concurrent counter creation, handled with a
      savepoint and a locked re-read.
"""

from typing import Callable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.sequence_counter import SequenceCounter

logger = get_logger("services.sequence")

Seeder = Callable[[], int]


class SequenceService:
    """
    Service for transactional, company-scoped sequence numbers.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    JOURNAL_ENTRY = "journal_entry"

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, company_id: UUID, name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(
                SequenceCounter.company_id == company_id,
                SequenceCounter.name == name,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, company_id: UUID, name: str, seed: Seeder | None = None) -> int:
        """
        Lock, increment and return the company's counter.

        Args:
            company_id: Owning company.
            name: Sequence name, e.g. SequenceService.JOURNAL_ENTRY.
            seed: Called once when the counter does not exist yet; returns
                the highest value already in use (0 for a fresh company).

        Returns:
            The next value, always greater than any value handed out
            before for this (company, name).
        """
        counter = self._locked_counter(company_id, name)

        if counter is None:
            start = seed() if seed is not None else 0
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(company_id=company_id, name=name, current_value=start + 1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_counter_created",
                    extra={
                        "company_id": str(company_id),
                        "sequence_name": name,
                        "seeded_from": start,
                    },
                )
                return counter.current_value
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"company_id": str(company_id), "sequence_name": name},
                )
                savepoint.rollback()
                counter = self._locked_counter(company_id, name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={
                "company_id": str(company_id),
                "sequence_name": name,
                "value": counter.current_value,
            },
        )
        return counter.current_value

    def resync(self, company_id: UUID, name: str, floor: int) -> int:
        """
        Raise the counter to at least ``floor``; never lowers it.

        Used after an allocation collided with a row written outside the
        counter.  Returns the counter's value after the call.
        """
        counter = self._locked_counter(company_id, name)
        if counter is None:
            counter = SequenceCounter(company_id=company_id, name=name, current_value=floor)
            self._session.add(counter)
        elif counter.current_value < floor:
            counter.current_value = floor
        self._session.flush()
        logger.warning(
            "sequence_resynced",
            extra={
                "company_id": str(company_id),
                "sequence_name": name,
                "value": counter.current_value,
            },
        )
        return counter.current_value

    def current_value(self, company_id: UUID, name: str) -> int | None:
        """Current value without incrementing, or None if never used."""
        return self._session.execute(
            select(SequenceCounter.current_value).where(
                SequenceCounter.company_id == company_id,
                SequenceCounter.name == name,
            )
        ).scalar_one_or_none()
