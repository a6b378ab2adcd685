"""
Pocket Ledger - Source Package

The ledger core of a personal-finance application: accounts, the
transactions recorded against them, and the rules that keep every
account balance consistent with its transaction history.

DESIGN PRINCIPLES:
1. Balance changes only through posted transactions
2. Validate before touching storage
3. Every posting is all-or-nothing
4. Every mutation is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Pocket Ledger Team"
