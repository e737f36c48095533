"""
Ledgerbook - Source Package

The double-entry core of a personal finance ledger: books, accounts,
split transactions, stored balances and recurring schedules.

DESIGN PRINCIPLES:
1. Every transaction balances: the values of its splits sum to zero
2. A stored balance always equals the replay of its ledger history
3. Each logical change is one atomic commit
4. Every mutation is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Ledgerbook Team"
