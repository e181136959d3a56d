"""Validation package."""

from ledger_bot.validation.validator import (
    TransactionValidator,
    ValidationError,
    ValidationErrorKind,
    normalize_label,
    parse_amount,
)

__all__ = [
    "TransactionValidator",
    "ValidationError",
    "ValidationErrorKind",
    "normalize_label",
    "parse_amount",
]
