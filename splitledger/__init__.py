"""
Split Ledger - Source Package

A shared-expense ledger: record who paid for whom, derive who owes whom.

DESIGN PRINCIPLES:
1. Raw expenses are the only source of truth
2. Balances and contacts are derived, never stored
3. Validate fully, then write once
4. Every write is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Split Ledger Team"
