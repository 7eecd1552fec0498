"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Common constructor and session contract.  Services receive a SQLAlchemy
    ``Session`` and persist with ``session.flush()`` -- never
    ``session.commit()``.  The caller (LedgerOrchestrator, session_scope or
    a test harness) owns commit and rollback, so several service calls can
    form one atomic unit.

Non-goals:
    Read-only queries belong in ``ledger_kernel/selectors/``.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from ledger_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """Abstract base class for kernel services that write."""

    def __init__(self, session: Session):
        self.session = session
