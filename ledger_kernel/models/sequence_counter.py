"""
SequenceCounter -- per-company locked counter rows.

Each row is a named sequence for one company.  SequenceService locks the
row with SELECT ... FOR UPDATE before incrementing it, so two concurrent
transactions can never draw the same value.
"""

from uuid import UUID

from sqlalchemy import BigInteger, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, UUIDString


class SequenceCounter(Base):
    """Current value of one company-scoped sequence."""

    __tablename__ = "sequence_counters"

    __table_args__ = (
        UniqueConstraint("company_id", "name", name="uq_sequence_counter_company_name"),
    )

    company_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("companies.id"),
        nullable=False,
    )

    # e.g. "journal_entry"
    name: Mapped[str] = mapped_column(String(50), nullable=False)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
