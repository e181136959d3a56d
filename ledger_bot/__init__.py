"""
Expense Ledger Bot - Source Package

Turns short chat messages such as "Mercado, 10,50, alimentação, crédito"
into ledger entries and replies with the running total for the entry's
category or payment type.

DESIGN PRINCIPLES:
1. Parse → validate → store → aggregate → reply, one message at a time
2. Fail early, reply with a correction
3. No silent success claims
4. Every step must be auditable
5. Storage backend is swappable
"""

__version__ = "1.0.0"
