"""
Abstract Ledger Storage Interface

DESIGN DECISION: The pipeline only ever talks to the ledger through this
interface. Each backend (Google Sheets, MongoDB, Notion, in-memory) is one
adapter implementing it. Adapters are picked by configuration.

The contract is intentionally narrow:
- append(transaction): record one entry (append-only, never update/delete)
- query(dimension, value): every stored amount whose label for that
  dimension equals `value`, compared case-insensitively

Backends differ in what they can filter natively (exact match, multi-valued
"contains", or nothing at all). Adapters hide that difference. They also
skip entries whose stored amount is missing or malformed instead of
failing the whole query.
"""

import math
import re
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Iterable, Optional

from ledger_bot.models.transaction import AppendAck, Dimension, Transaction


class LedgerStore(ABC):
    """
    Abstract interface for the ledger backend.

    Any storage implementation must implement these methods.
    """

    @abstractmethod
    async def append(self, transaction: Transaction) -> AppendAck:
        """
        Durably record one transaction.

        If the transaction carries an idempotency key that was already
        stored, nothing is written and the ack reports a duplicate.

        Raises:
            StoreError: If the write fails or the backend rejects it
        """
        pass

    @abstractmethod
    async def query(self, dimension: Dimension, value: str) -> list[float]:
        """
        Amounts of all entries whose `dimension` label matches `value`.

        Raises:
            StoreError: If the backend can't be read
        """
        pass


class StoreErrorKind(str, Enum):
    WRITE_FAILED = "write_failed"
    READ_FAILED = "read_failed"
    BACKEND_REJECTED = "backend_rejected"


class StoreError(Exception):
    """Base exception for ledger storage operations."""

    def __init__(self, kind: StoreErrorKind, message: str):
        self.kind = kind
        super().__init__(message)


# Leading currency symbols/codes, e.g. "R$ ", "$", "BRL "
_CURRENCY_PREFIX = re.compile(r"^[^\d\-+.,]+")
_NUMBER = re.compile(r"[\d.,]*\d[\d.,]*")


def coerce_amount(value: Any) -> Optional[float]:
    """
    Re-parse an amount as read back from a backend.

    Accepts numbers and loosely formatted strings ("10,50", "R$ 1.234,56",
    "1,234.56", "-5"). Returns None for anything missing, non-numeric or
    non-finite so callers can skip the entry.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        amount = float(value)
        return amount if math.isfinite(amount) else None

    if not isinstance(value, str):
        return None

    text = value.replace("\u00a0", " ").strip()
    sign = ""
    if text.startswith(("-", "+")):
        sign, text = text[0], text[1:].strip()
    text = _CURRENCY_PREFIX.sub("", text).replace(" ", "")
    if not sign and text.startswith(("-", "+")):
        sign, text = text[0], text[1:]

    if not _NUMBER.fullmatch(text):
        return None

    if "," in text and "." in text:
        # Whichever separator comes last is the decimal one
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    elif "," in text:
        text = text.replace(",", "") if text.count(",") > 1 else text.replace(",", ".")
    elif text.count(".") > 1:
        text = text.replace(".", "")

    try:
        amount = float(sign + text)
    except ValueError:
        return None
    return amount if math.isfinite(amount) else None


def label_matches(stored: Any, value: str) -> bool:
    """
    Case-insensitive label comparison.

    `stored` may be a single label or a collection of labels (multi-valued
    tag sets); a collection matches if any of its labels does.
    """
    wanted = value.strip().casefold()
    if isinstance(stored, str):
        return stored.strip().casefold() == wanted
    if isinstance(stored, (list, tuple, set)):
        return any(label_matches(item, value) for item in stored)
    return False


def collect_amounts(raw_amounts: Iterable[Any]) -> list[float]:
    """Coerce raw stored amounts, dropping the malformed ones."""
    amounts = []
    for raw in raw_amounts:
        amount = coerce_amount(raw)
        if amount is not None:
            amounts.append(amount)
    return amounts
