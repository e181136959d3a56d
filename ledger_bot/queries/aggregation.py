"""
Aggregation Engine

DESIGN DECISION: Totals are computed from what the ledger actually
returns, never from anything cached in the process. Each call reads the
backend again.

Summation is plain floating-point addition with no rounding. Rounding to
currency precision only happens when a reply is formatted, so many small
entries can show the usual float drift (0.1 + 0.2 -> 0.30000000000000004).
"""

from pydantic import BaseModel, Field

from ledger_bot.models.transaction import Dimension
from ledger_bot.services.storage import LedgerStore


class AggregationResult(BaseModel):
    """Running total for one dimension value."""

    dimension: Dimension
    value: str
    total: float = Field(..., description="Unrounded sum")
    count: int = Field(..., ge=0, description="Number of entries summed")


class AggregationEngine:
    """
    Sums ledger amounts per dimension value.

    GUARANTEES:
    - Only sums amounts returned by the ledger
    - An empty match sums to exactly 0
    - Matching is case-insensitive ("pix" finds entries stored as "Pix")
    """

    def __init__(self, store: LedgerStore):
        self._store = store

    async def summarize(self, dimension: Dimension, value: str) -> AggregationResult:
        """
        Sum and count of the matching entries.

        Raises:
            StoreError: If the ledger can't be read
        """
        amounts = await self._store.query(dimension, value)

        total = 0.0
        for amount in amounts:
            total += amount

        return AggregationResult(
            dimension=dimension,
            value=value,
            total=total,
            count=len(amounts),
        )

    async def sum(self, dimension: Dimension, value: str) -> float:
        """Arithmetic sum of the matching amounts."""
        result = await self.summarize(dimension, value)
        return result.total
