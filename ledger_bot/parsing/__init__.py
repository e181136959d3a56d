"""Message parsing package."""

from ledger_bot.parsing.parser import (
    MessageParser,
    ParseError,
    ParseErrorKind,
    split_fields,
)

__all__ = ["MessageParser", "ParseError", "ParseErrorKind", "split_fields"]
