"""
Storage Services Package

Provides the LedgerStore interface and one adapter per backend:
in-memory, Google Sheets, MongoDB and Notion. The adapter is picked by
configuration through create_ledger_store().
"""

from ledger_bot.services.storage.interface import (
    LedgerStore,
    StoreError,
    StoreErrorKind,
    coerce_amount,
    collect_amounts,
    label_matches,
)
from ledger_bot.services.storage.memory import InMemoryLedgerStore
from ledger_bot.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsLedgerStore,
)
from ledger_bot.services.storage.mongodb import MongoLedgerStore, connect_collection
from ledger_bot.services.storage.notion import NotionLedgerStore
from ledger_bot.services.storage.factory import create_ledger_store

__all__ = [
    # Interface
    "LedgerStore",
    "StoreError",
    "StoreErrorKind",
    "coerce_amount",
    "collect_amounts",
    "label_matches",
    # Adapters
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStore",
    "InMemoryLedgerStore",
    "MongoLedgerStore",
    "NotionLedgerStore",
    "connect_collection",
    # Selection
    "create_ledger_store",
]
