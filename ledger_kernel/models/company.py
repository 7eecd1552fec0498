"""
Company -- the tenant that owns a chart of accounts and a journal.

Every account, journal entry, sequence counter and period closing carries
a company_id; queries are always scoped by it.
"""

from enum import Enum

from sqlalchemy import Boolean, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase


class BusinessType(str, Enum):
    """Industry of a company; selects its default chart of accounts."""

    TRADING = "trading"
    SERVICE = "service"
    MANUFACTURING = "manufacturing"


class Company(TrackedBase):
    """
    A tenant of the ledger.

    The row doubles as the lock target that serialises period closings
    for the company (SELECT ... FOR UPDATE in PeriodClosingService).
    """

    __tablename__ = "companies"

    __table_args__ = (UniqueConstraint("code", name="uq_company_code"),)

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    business_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=BusinessType.TRADING.value,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Company {self.code}: {self.name}>"
