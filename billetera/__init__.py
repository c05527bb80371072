"""
Billetera - Ledger Core

The data and sync core of a household-finance app: income, expenses,
savings, credit cards, wishlist and savings-funded acquisitions for one
signed-in user, mirrored to a remote document store.

DESIGN PRINCIPLES:
1. Remote first for transactions: local state changes only after a confirmed write
2. Fail visibly: a failed load is never mistaken for an empty ledger
3. Migrations are all-or-nothing
4. Every user action is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Billetera Team"
