"""
Data Models Package

This package contains all Pydantic models used in the expense ledger bot.
All data flowing through the pipeline must conform to these schemas.
"""

from ledger_bot.models.transaction import (
    AppendAck,
    Dimension,
    DispatchOutcome,
    DispatchState,
    InboundMessage,
    MessageSchema,
    ParsedMessage,
    Transaction,
)
from ledger_bot.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Pipeline models
    "AppendAck",
    "Dimension",
    "DispatchOutcome",
    "DispatchState",
    "InboundMessage",
    "MessageSchema",
    "ParsedMessage",
    "Transaction",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
