"""
Normal-balance sign convention.

Asset, cash_bank and expense accounts grow with debits; liability, equity
and revenue accounts grow with credits.  Every balance the kernel reports
goes through signed_balance() so the rule lives in exactly one place.
"""

from decimal import Decimal

from ledger_kernel.models.account import AccountType, NormalBalance

DEBIT_NORMAL_TYPES: frozenset[AccountType] = frozenset(
    {AccountType.ASSET, AccountType.CASH_BANK, AccountType.EXPENSE}
)

CREDIT_NORMAL_TYPES: frozenset[AccountType] = frozenset(
    {AccountType.LIABILITY, AccountType.EQUITY, AccountType.REVENUE}
)


def normal_balance_for(account_type: AccountType | str) -> NormalBalance:
    """Return the side that increases an account of this type."""
    if AccountType(account_type) in DEBIT_NORMAL_TYPES:
        return NormalBalance.DEBIT
    return NormalBalance.CREDIT


def is_debit_normal(account_type: AccountType | str) -> bool:
    return AccountType(account_type) in DEBIT_NORMAL_TYPES


def signed_balance(account_type: AccountType | str, debit: Decimal, credit: Decimal) -> Decimal:
    """
    Balance contribution of debit/credit amounts for an account type.

    debit - credit for debit-normal types, credit - debit otherwise.
    """
    if is_debit_normal(account_type):
        return debit - credit
    return credit - debit


def split_net(net: Decimal) -> tuple[Decimal, Decimal]:
    """
    Split a raw net (debit - credit) into its natural (debit, credit) side.

    Positive nets land on the debit side, negative nets on the credit side
    as an absolute value; one of the pair is always zero.
    """
    if net > 0:
        return net, Decimal("0")
    if net < 0:
        return Decimal("0"), -net
    return Decimal("0"), Decimal("0")
