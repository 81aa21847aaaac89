"""
Flow Finance - Core Package

The ledger core of a personal finance tracker: accounts, categories and
transactions persisted in an embedded database, with the business rules
that sit on top of them.

DESIGN PRINCIPLES:
1. A transfer is two records, and both records change together
2. Money never adds across currencies without explicit conversion
3. Network failures degrade to cached data, never to wrong data
4. Every mutation is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Flow Finance Team"
