"""
In-Memory Ledger Storage

Keeps records in a list. Used by tests and by the `memory` backend
for local runs. Nothing survives a restart.
"""

from typing import Any, Optional

from ledger_bot.models.transaction import AppendAck, Dimension, Transaction
from ledger_bot.services.storage.interface import (
    LedgerStore,
    collect_amounts,
    label_matches,
)

# Record key holding each dimension's label
DIMENSION_KEYS = {
    Dimension.CATEGORY: "category",
    Dimension.PAYMENT_TYPE: "paymentType",
}


class InMemoryLedgerStore(LedgerStore):
    """
    List-backed ledger.

    Records use the backend-agnostic shape from Transaction.to_record()
    plus an "idempotencyKey" entry.
    """

    def __init__(self, records: Optional[list[dict[str, Any]]] = None):
        self._records: list[dict[str, Any]] = list(records or [])

    @property
    def records(self) -> list[dict[str, Any]]:
        return list(self._records)

    def _has_key(self, key: str) -> bool:
        return any(record.get("idempotencyKey") == key for record in self._records)

    async def append(self, transaction: Transaction) -> AppendAck:
        key = transaction.idempotency_key
        if key and self._has_key(key):
            return AppendAck(stored=False, duplicate=True)

        record = transaction.to_record()
        record["idempotencyKey"] = key
        self._records.append(record)
        return AppendAck(stored=True)

    async def query(self, dimension: Dimension, value: str) -> list[float]:
        field = DIMENSION_KEYS[dimension]
        return collect_amounts(
            record.get("amount")
            for record in self._records
            if label_matches(record.get(field), value)
        )
