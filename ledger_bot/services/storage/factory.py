"""Backend selection for the ledger."""

from ledger_bot.config.settings import AppSettings, Settings
from ledger_bot.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsLedgerStore,
)
from ledger_bot.services.storage.interface import LedgerStore
from ledger_bot.services.storage.memory import InMemoryLedgerStore
from ledger_bot.services.storage.mongodb import MongoLedgerStore, connect_collection
from ledger_bot.services.storage.notion import NotionLedgerStore


def create_ledger_store(app_settings: AppSettings, settings: Settings) -> LedgerStore:
    """
    Build the LedgerStore named by `app_settings.ledger_backend`.

    Only the settings group of the chosen backend is loaded, so the
    others don't need to be configured.
    """
    backend = app_settings.ledger_backend

    if backend == "memory":
        return InMemoryLedgerStore()

    if backend == "google_sheets":
        client = GoogleSheetsClient(settings.google_sheets)
        client.connect()
        return GoogleSheetsLedgerStore(client)

    if backend == "mongodb":
        mongo_settings = settings.mongo
        return MongoLedgerStore(
            connect_collection(mongo_settings),
            collation_locale=mongo_settings.collation_locale,
        )

    if backend == "notion":
        return NotionLedgerStore(settings.notion)

    raise ValueError(f"Unknown ledger backend: {backend}")
