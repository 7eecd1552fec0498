"""
Reversing entries: swapped sides, linkage to the original, single use.
"""

from datetime import date
from decimal import Decimal

import pytest

from ledger_kernel.exceptions import EntryAlreadyReversedError, JournalEntryNotFoundError

JAN_15 = date(2024, 1, 15)
JAN_20 = date(2024, 1, 20)


def test_reversal_swaps_every_line(writer, ledger, post, company, accounts):
    original = post("1-2100", "4-1100", "750", JAN_15)

    reversal = writer.reverse_entry(company.id, original.entry_number, JAN_20)

    assert reversal.reference_type == "reversal"
    assert reversal.reference_id == original.entry_number
    assert reversal.description == f"Reversal of {original.entry_number}"
    assert [(l.account_code, l.debit, l.credit) for l in reversal.lines] == [
        ("1-2100", Decimal("0"), Decimal("750")),
        ("4-1100", Decimal("750"), Decimal("0")),
    ]
    assert ledger.account_balance(accounts["1-2100"].id, JAN_15) == Decimal("750")
    assert ledger.account_balance(accounts["1-2100"].id, JAN_20) == Decimal("0")
    assert ledger.account_balance(accounts["4-1100"].id, JAN_20) == Decimal("0")


def test_second_reversal_rejected(writer, post, company):
    original = post("1-1001", "4-1100", "10", JAN_15)
    first = writer.reverse_entry(company.id, original.entry_number, JAN_20)

    with pytest.raises(EntryAlreadyReversedError) as exc_info:
        writer.reverse_entry(company.id, original.entry_number, JAN_20)
    assert exc_info.value.reversal_entry_number == first.entry_number


def test_unknown_entry(writer, company):
    with pytest.raises(JournalEntryNotFoundError):
        writer.reverse_entry(company.id, "JE-99999", JAN_20)


def test_entry_of_another_company_not_found(writer, post, make_company):
    original = post("1-1001", "4-1100", "10", JAN_15)
    other_company, _ = make_company("OTHER-CO")
    with pytest.raises(JournalEntryNotFoundError):
        writer.reverse_entry(other_company.id, original.entry_number, JAN_20)
