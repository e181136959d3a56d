"""Reply formatting package."""

from ledger_bot.replies.formatter import CurrencyFormat, ReplyFormatter

__all__ = ["CurrencyFormat", "ReplyFormatter"]
