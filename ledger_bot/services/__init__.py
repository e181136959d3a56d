"""Services package."""

from ledger_bot.services.messaging import (
    DeliveryResult,
    InboundDecodeError,
    NotificationError,
    NotificationErrorKind,
    Notifier,
    WhatsAppNotifier,
    decode_webhook,
)
from ledger_bot.services.storage import (
    GoogleSheetsClient,
    GoogleSheetsLedgerStore,
    InMemoryLedgerStore,
    LedgerStore,
    MongoLedgerStore,
    NotionLedgerStore,
    StoreError,
    StoreErrorKind,
    create_ledger_store,
)

__all__ = [
    # Messaging services
    "DeliveryResult",
    "InboundDecodeError",
    "NotificationError",
    "NotificationErrorKind",
    "Notifier",
    "WhatsAppNotifier",
    "decode_webhook",
    # Storage services
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStore",
    "InMemoryLedgerStore",
    "LedgerStore",
    "MongoLedgerStore",
    "NotionLedgerStore",
    "StoreError",
    "StoreErrorKind",
    "create_ledger_store",
]
