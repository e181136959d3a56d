"""
Message Parser

Splits the raw text of an inbound message into candidate fields.

Messages look like:
    "Mercado, 10,50, alimentação, crédito"
    "Padaria, 7, lanche"

Fields are separated by commas. A comma that sits directly between two
digits is a decimal separator and does not split ("10,50" stays one field).

The parser only checks arity. Field content is left to the validator.
"""

import re
from enum import Enum

from ledger_bot.models.transaction import MessageSchema, ParsedMessage


# A comma splits fields unless it has a digit on both sides.
FIELD_SEPARATOR = re.compile(r"(?<!\d),|,(?!\d)")


class ParseErrorKind(str, Enum):
    WRONG_ARITY = "wrong_arity"


class ParseError(Exception):
    """The message does not have the configured number of fields."""

    def __init__(self, kind: ParseErrorKind, expected: int, actual: int):
        self.kind = kind
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{kind.value}: expected {expected} fields, got {actual}"
        )


def split_fields(text: str) -> list[str]:
    """Split on field separators and trim each field."""
    return [field.strip() for field in FIELD_SEPARATOR.split(text.strip())]


class MessageParser:
    """
    Turns raw message text into a ParsedMessage.

    The schema (three or four fields) is fixed per deployment and
    passed in by the caller; the parser never auto-detects it.
    """

    def __init__(self, schema: MessageSchema = MessageSchema.FOUR_FIELD):
        self._schema = schema

    @property
    def schema(self) -> MessageSchema:
        return self._schema

    def parse(self, text: str) -> ParsedMessage:
        """
        Parse one message.

        Raises:
            ParseError: If the field count doesn't match the schema
        """
        fields = split_fields(text)
        expected = self._schema.arity

        if len(fields) != expected:
            raise ParseError(ParseErrorKind.WRONG_ARITY, expected, len(fields))

        values = dict(zip(self._schema.field_names, fields))
        return ParsedMessage(**values)
