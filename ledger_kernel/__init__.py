"""
Ledger Kernel

A multi-company double-entry ledger core with:
- Balanced, atomically posted journal entries
- Company-scoped, race-free entry numbering
- Balances derived by replaying journal history
- Receivable/payable aging
- Period closing with carry-forward opening balances
"""

__version__ = "0.1.0"
