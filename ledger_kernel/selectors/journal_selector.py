"""
JournalSelector -- read-only access to posted journal entries.

Entries come back as JournalEntryRecord DTOs ordered by entry_date, then
by the per-company sequence, which is creation order.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select

from ledger_kernel.domain.dtos import JournalEntryRecord
from ledger_kernel.exceptions import JournalEntryNotFoundError
from ledger_kernel.models.journal import JournalEntry, ReferenceType
from ledger_kernel.selectors.base import BaseSelector


class JournalSelector(BaseSelector[JournalEntry]):
    """Lookup and listing of journal entries for one company."""

    def get_entry(self, company_id: UUID, entry_number: str) -> JournalEntryRecord:
        """
        Fetch one entry by its number.

        Raises:
            JournalEntryNotFoundError: no such entry in the company.
        """
        entry = self.session.execute(
            select(JournalEntry).where(
                JournalEntry.company_id == company_id,
                JournalEntry.entry_number == entry_number,
            )
        ).scalar_one_or_none()
        if entry is None:
            raise JournalEntryNotFoundError(str(company_id), entry_number)
        return JournalEntryRecord.from_model(entry)

    def list_entries(
        self,
        company_id: UUID,
        start_date: date | None = None,
        end_date: date | None = None,
        reference_type: ReferenceType | str | None = None,
    ) -> list[JournalEntryRecord]:
        """Entries in [start_date, end_date], both bounds optional and inclusive."""
        query = select(JournalEntry).where(JournalEntry.company_id == company_id)
        if start_date is not None:
            query = query.where(JournalEntry.entry_date >= start_date)
        if end_date is not None:
            query = query.where(JournalEntry.entry_date <= end_date)
        if reference_type is not None:
            query = query.where(
                JournalEntry.reference_type == getattr(reference_type, "value", reference_type)
            )
        query = query.order_by(JournalEntry.entry_date, JournalEntry.sequence)
        return [JournalEntryRecord.from_model(e) for e in self.session.execute(query).scalars()]
