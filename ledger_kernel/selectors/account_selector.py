"""
AccountSelector -- read side of the account registry.

Returns AccountInfo DTOs sorted by account code.  Inactive accounts are
included unless active_only is set, because their history still shows up
in ledgers and trial balances.
"""

from uuid import UUID

from sqlalchemy import select

from ledger_kernel.domain.dtos import AccountInfo
from ledger_kernel.exceptions import AccountNotFoundError
from ledger_kernel.models.account import Account, AccountType
from ledger_kernel.selectors.base import BaseSelector


class AccountSelector(BaseSelector[Account]):

    def list_accounts(
        self,
        company_id: UUID,
        account_type: AccountType | str | None = None,
        active_only: bool = False,
    ) -> list[AccountInfo]:
        """
        Accounts of a company ordered by code.

        Args:
            company_id: Owning company.
            account_type: Only accounts of this type.
            active_only: Skip deactivated accounts.
        """
        query = select(Account).where(Account.company_id == company_id)
        if account_type is not None:
            query = query.where(Account.account_type == AccountType(account_type).value)
        if active_only:
            query = query.where(Account.is_active.is_(True))
        query = query.order_by(Account.code)
        return [AccountInfo.from_model(a) for a in self.session.execute(query).scalars()]

    def get_account(self, account_id: UUID) -> AccountInfo:
        account = self.session.get(Account, account_id)
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return AccountInfo.from_model(account)

    def get_account_by_code(self, company_id: UUID, code: str) -> AccountInfo | None:
        """The account with this code in the company, or None."""
        account = self.session.execute(
            select(Account).where(Account.company_id == company_id, Account.code == code)
        ).scalar_one_or_none()
        return AccountInfo.from_model(account) if account is not None else None
