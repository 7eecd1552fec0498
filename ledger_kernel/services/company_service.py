"""
CompanyService -- tenant setup.

Creates a company and, optionally, seeds its chart of accounts from a list
of AccountSpec values (usually an industry template resolved by
ledger_config.bridges.chart_of_accounts()).  Seeding goes through
AccountService so template accounts obey the same rules as hand-made ones.
"""

from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ledger_kernel.domain.dtos import AccountInfo, AccountSpec, CompanyInfo
from ledger_kernel.exceptions import CompanyNotFoundError, ValidationError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.company import BusinessType, Company
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.base import BaseService

logger = get_logger("services.company")


class CompanyService(BaseService[Company]):

    def __init__(self, session, account_service: AccountService | None = None):
        super().__init__(session)
        self._accounts = account_service or AccountService(session)

    def create_company(
        self,
        code: str,
        name: str,
        business_type: BusinessType | str = BusinessType.TRADING,
        accounts: Sequence[AccountSpec] = (),
        actor_id: UUID | None = None,
    ) -> CompanyInfo:
        """
        Create a company and seed its chart of accounts.

        Raises:
            ValidationError: duplicate company code or unknown business type.
            DuplicateCodeError / InvalidParentError: bad template.
        """
        try:
            business_type = BusinessType(business_type)
        except ValueError as exc:
            raise ValidationError(f"Unknown business type '{business_type}'") from exc

        existing = self.session.execute(
            select(Company.id).where(Company.code == code)
        ).scalar_one_or_none()
        if existing is not None:
            raise ValidationError(f"Company code '{code}' already exists")

        company = Company(
            code=code,
            name=name,
            business_type=business_type.value,
            is_active=True,
            created_by_id=actor_id,
        )
        try:
            with self.session.begin_nested():
                self.session.add(company)
                self.session.flush()
        except IntegrityError as exc:
            raise ValidationError(f"Company code '{code}' already exists") from exc

        logger.info(
            "company_created",
            extra={
                "company_id": str(company.id),
                "company_code": code,
                "business_type": business_type.value,
            },
        )

        if accounts:
            self.seed_chart_of_accounts(company.id, accounts, actor_id=actor_id)

        return CompanyInfo.from_model(company)

    def seed_chart_of_accounts(
        self,
        company_id: UUID,
        accounts: Sequence[AccountSpec],
        actor_id: UUID | None = None,
    ) -> list[AccountInfo]:
        """
        Create every account of a template, parents before children.

        Codes are processed in ascending order; a parent whose code sorts
        after its child is created first anyway.
        """
        if self.session.get(Company, company_id) is None:
            raise CompanyNotFoundError(str(company_id))

        pending = {spec.code: spec for spec in accounts}
        created: dict[str, AccountInfo] = {}

        def _create(spec: AccountSpec) -> None:
            if spec.code in created:
                return
            if spec.parent_code and spec.parent_code in pending:
                _create(pending[spec.parent_code])
            created[spec.code] = self._accounts.create_account(
                company_id=company_id,
                code=spec.code,
                name=spec.name,
                account_type=spec.account_type,
                parent_code=spec.parent_code,
                description=spec.description,
                actor_id=actor_id,
            )

        for code in sorted(pending):
            _create(pending[code])

        logger.info(
            "chart_of_accounts_seeded",
            extra={"company_id": str(company_id), "account_count": len(created)},
        )
        return sorted(created.values(), key=lambda a: a.code)
