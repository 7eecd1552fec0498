"""
AccountService -- write side of the account registry.

Responsibility:
    Creates accounts in a company's chart of accounts and toggles their
    active flag.  Accounts are never deleted; an account that has been
    posted to stays referenced by its journal lines forever.

Invariants enforced:
    - Codes are unique per company (checked here, backed by
      uq_account_company_code).
    - A parent code must name an existing account of the same company.
    - account_type is fixed at creation (db/immutability.py blocks edits).

Failure modes:
    - CompanyNotFoundError, DuplicateCodeError, InvalidParentError,
      AccountNotFoundError.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ledger_kernel.domain.dtos import AccountInfo
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    CompanyNotFoundError,
    DuplicateCodeError,
    InvalidParentError,
    ValidationError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account, AccountType
from ledger_kernel.models.company import Company
from ledger_kernel.services.base import BaseService

logger = get_logger("services.account")


class AccountService(BaseService[Account]):
    """Create, deactivate and reactivate accounts."""

    def create_account(
        self,
        company_id: UUID,
        code: str,
        name: str,
        account_type: AccountType | str,
        parent_code: str | None = None,
        description: str | None = None,
        actor_id: UUID | None = None,
    ) -> AccountInfo:
        """
        Add an account to a company's chart of accounts.

        Raises:
            CompanyNotFoundError: company_id does not exist.
            DuplicateCodeError: code already used in the company.
            InvalidParentError: parent_code is not an account of the company.
            ValidationError: empty code/name or unknown account type.
        """
        code = (code or "").strip()
        name = (name or "").strip()
        if not code or not name:
            raise ValidationError("Account code and name are required")
        try:
            account_type = AccountType(account_type)
        except ValueError as exc:
            raise ValidationError(f"Unknown account type '{account_type}'") from exc

        if self.session.get(Company, company_id) is None:
            raise CompanyNotFoundError(str(company_id))

        if self._find_by_code(company_id, code) is not None:
            raise DuplicateCodeError(str(company_id), code)

        parent = None
        if parent_code:
            parent = self._find_by_code(company_id, parent_code)
            if parent is None:
                raise InvalidParentError(str(company_id), parent_code)

        account = Account(
            company_id=company_id,
            code=code,
            name=name,
            account_type=account_type.value,
            description=description,
            is_active=True,
            parent=parent,
            created_by_id=actor_id,
        )
        try:
            with self.session.begin_nested():
                self.session.add(account)
                self.session.flush()
        except IntegrityError as exc:
            # A concurrent writer took the code between the check and the insert
            raise DuplicateCodeError(str(company_id), code) from exc

        logger.info(
            "account_created",
            extra={
                "company_id": str(company_id),
                "account_id": str(account.id),
                "account_code": code,
                "account_type": account_type.value,
                "parent_code": parent_code,
            },
        )
        return AccountInfo.from_model(account)

    def deactivate_account(self, account_id: UUID, actor_id: UUID | None = None) -> AccountInfo:
        """
        Mark an account inactive.  The row and its history stay.

        New journal lines can no longer reference it; balances and ledgers
        still include its history.
        """
        account = self._get(account_id)
        if account.is_active:
            account.is_active = False
            account.updated_by_id = actor_id
            self.session.flush()
            logger.info(
                "account_deactivated",
                extra={"account_id": str(account_id), "account_code": account.code},
            )
        return AccountInfo.from_model(account)

    def reactivate_account(self, account_id: UUID, actor_id: UUID | None = None) -> AccountInfo:
        account = self._get(account_id)
        if not account.is_active:
            account.is_active = True
            account.updated_by_id = actor_id
            self.session.flush()
            logger.info(
                "account_reactivated",
                extra={"account_id": str(account_id), "account_code": account.code},
            )
        return AccountInfo.from_model(account)

    def _get(self, account_id: UUID) -> Account:
        account = self.session.get(Account, account_id)
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return account

    def _find_by_code(self, company_id: UUID, code: str) -> Account | None:
        return self.session.execute(
            select(Account).where(Account.company_id == company_id, Account.code == code)
        ).scalar_one_or_none()
