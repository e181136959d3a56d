"""Queries package."""

from ledger_bot.queries.aggregation import AggregationEngine, AggregationResult

__all__ = ["AggregationEngine", "AggregationResult"]
