"""
MongoDB Ledger Storage

Each transaction is one document in the configured collection:

    {description, amount, category, paymentType, timestamp, idempotencyKey}

Filtering happens server-side with a secondary-strength collation, which
compares labels case-insensitively (accents still count). An equality
match on an array field matches any element, so multi-valued labels work
the same way. Documents whose amount isn't numeric are skipped.
"""

import asyncio
from typing import Any, Optional

import structlog
from pymongo import MongoClient
from pymongo.collation import Collation, CollationStrength
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError, PyMongoError, WriteError

from ledger_bot.config.settings import MongoSettings
from ledger_bot.models.transaction import AppendAck, Dimension, Transaction
from ledger_bot.services.storage.interface import (
    LedgerStore,
    StoreError,
    StoreErrorKind,
    collect_amounts,
)


logger = structlog.get_logger(__name__)

DIMENSION_FIELDS = {
    Dimension.CATEGORY: "category",
    Dimension.PAYMENT_TYPE: "paymentType",
}


def connect_collection(settings: MongoSettings) -> Collection:
    """Open the ledger collection described by `settings`."""
    client: MongoClient = MongoClient(
        settings.uri,
        serverSelectionTimeoutMS=settings.server_selection_timeout_ms,
    )
    return client[settings.database][settings.collection]


class MongoLedgerStore(LedgerStore):
    """
    MongoDB implementation of the ledger.

    pymongo is synchronous, so collection calls run in a worker thread.
    """

    def __init__(self, collection: Collection, collation_locale: str = "pt"):
        self._collection = collection
        self._collation = Collation(
            locale=collation_locale,
            strength=CollationStrength.SECONDARY,
        )

    def _label_filter(self, dimension: Dimension, value: str) -> dict[str, Any]:
        return {DIMENSION_FIELDS[dimension]: value.strip()}

    def _append_sync(self, transaction: Transaction) -> AppendAck:
        document = transaction.to_record()
        key = transaction.idempotency_key
        try:
            if key:
                document["idempotencyKey"] = key
                result = self._collection.update_one(
                    {"idempotencyKey": key},
                    {"$setOnInsert": document},
                    upsert=True,
                )
                if result.upserted_id is None:
                    return AppendAck(stored=False, duplicate=True)
            else:
                self._collection.insert_one(document)
        except DuplicateKeyError:
            # Unique index on idempotencyKey lost a concurrent upsert race
            return AppendAck(stored=False, duplicate=True)
        except WriteError as e:
            # Document validation or a unique index refused the write
            raise StoreError(StoreErrorKind.BACKEND_REJECTED, f"MongoDB rejected the document: {e}")
        except PyMongoError as e:
            raise StoreError(StoreErrorKind.WRITE_FAILED, f"Failed to insert document: {e}")

        return AppendAck(stored=True)

    def _query_sync(self, dimension: Dimension, value: str) -> list[float]:
        try:
            cursor = self._collection.find(
                self._label_filter(dimension, value),
                {"amount": 1, "_id": 0},
                collation=self._collation,
            )
            raw_amounts = [document.get("amount") for document in cursor]
        except PyMongoError as e:
            raise StoreError(StoreErrorKind.READ_FAILED, f"Failed to query ledger: {e}")

        amounts = collect_amounts(raw_amounts)
        if len(amounts) < len(raw_amounts):
            logger.warning(
                "malformed_documents_skipped",
                backend="mongodb",
                skipped=len(raw_amounts) - len(amounts),
            )
        return amounts

    async def append(self, transaction: Transaction) -> AppendAck:
        return await asyncio.to_thread(self._append_sync, transaction)

    async def query(self, dimension: Dimension, value: str) -> list[float]:
        return await asyncio.to_thread(self._query_sync, dimension, value)

    def _total_sync(self, dimension: Dimension, value: str) -> float:
        pipeline = [
            {"$match": self._label_filter(dimension, value)},
            {"$match": {"amount": {"$type": "number"}}},
            {"$group": {"_id": None, "total": {"$sum": "$amount"}}},
        ]
        try:
            results = list(self._collection.aggregate(pipeline, collation=self._collation))
        except PyMongoError as e:
            raise StoreError(StoreErrorKind.READ_FAILED, f"Failed to aggregate ledger: {e}")

        total: Optional[float] = results[0]["total"] if results else None
        return float(total) if total is not None else 0.0

    async def total(self, dimension: Dimension, value: str) -> float:
        """
        Server-side sum using an aggregation pipeline.

        Diagnostic helper for inspecting the collection; the reply
        pipeline does not use it. Only amounts stored as BSON numbers
        are summed, so string amounts that query() re-parses are left
        out and the result can be lower than the running total.
        """
        return await asyncio.to_thread(self._total_sync, dimension, value)
