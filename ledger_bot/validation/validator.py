"""
Transaction Validation

Turns a ParsedMessage into a canonical Transaction:

- AMOUNT: the comma decimal separator is replaced by a dot, then the value
  is parsed as a float. Anything that isn't a finite number is rejected.
  Zero and negative amounts are accepted.
- LABELS: category and payment type are normalized to "first letter upper,
  rest lower" so they line up with the enumerations kept by the backends.
- DESCRIPTION: used verbatim (the parser already trimmed it).

No network or storage access happens here.
"""

import math
import re
from datetime import datetime
from enum import Enum
from typing import Optional

from ledger_bot.models.transaction import ParsedMessage, Transaction


# Plain decimal notation only: no exponents, underscores or non-ASCII digits
AMOUNT_PATTERN = re.compile(r"[+-]?[0-9]+(\.[0-9]+)?")


class ValidationErrorKind(str, Enum):
    INVALID_AMOUNT = "invalid_amount"
    EMPTY_FIELD = "empty_field"


class ValidationError(Exception):
    """A parsed field could not be turned into a valid transaction value."""

    def __init__(self, kind: ValidationErrorKind, raw_value: str, field: str):
        self.kind = kind
        self.raw_value = raw_value
        self.field = field
        super().__init__(f"{kind.value} in {field}: {raw_value!r}")


def normalize_label(value: str) -> str:
    """
    Capitalize the first character and lowercase the rest.

    "MERCADO" -> "Mercado", "pix" -> "Pix". Non-letters pass through
    unchanged, and normalizing twice gives the same result.
    """
    # Some characters upper-case to two ("ß" -> "SS"); keep only the first
    return value[:1].upper()[:1] + value[1:].lower()


def parse_amount(raw: str) -> float:
    """
    Parse a user-typed amount ("10,50", "7", "-3.2").

    Raises:
        ValidationError: If the value isn't a finite number
    """
    normalized = raw.strip().replace(",", ".")
    if not AMOUNT_PATTERN.fullmatch(normalized):
        raise ValidationError(ValidationErrorKind.INVALID_AMOUNT, raw, "amount")

    amount = float(normalized)
    if not math.isfinite(amount):
        raise ValidationError(ValidationErrorKind.INVALID_AMOUNT, raw, "amount")

    return amount


class TransactionValidator:
    """
    Validates and normalizes parsed messages.

    In the three-field schema there is no payment type in the message,
    so `default_payment_type` is recorded instead.
    """

    def __init__(self, default_payment_type: str = "Outros"):
        self._default_payment_type = normalize_label(default_payment_type.strip())

    def _require(self, field: str, value: str) -> str:
        if not value:
            raise ValidationError(ValidationErrorKind.EMPTY_FIELD, value, field)
        return value

    def validate(
        self,
        parsed: ParsedMessage,
        sender_id: str,
        timestamp: Optional[datetime] = None,
        idempotency_key: Optional[str] = None,
    ) -> Transaction:
        """
        Build the canonical Transaction for a parsed message.

        Timestamp and sender are supplied by the caller; the timestamp
        defaults to now on the local clock.

        Raises:
            ValidationError: On an invalid amount or an empty field
        """
        description = self._require("description", parsed.description)
        amount = parse_amount(parsed.amount)
        category = normalize_label(self._require("category", parsed.category))

        if parsed.payment_type is None:
            payment_type = self._default_payment_type
        else:
            payment_type = normalize_label(
                self._require("payment_type", parsed.payment_type)
            )

        return Transaction(
            description=description,
            amount=amount,
            category=category,
            payment_type=payment_type,
            timestamp=timestamp or datetime.now().astimezone(),
            sender_id=sender_id,
            idempotency_key=idempotency_key,
        )
