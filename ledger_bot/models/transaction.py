"""
Core Data Models for the Expense Ledger Bot

These models define the strict schemas for all data flowing through the pipeline:
1. InboundMessage - what the transport hands over (already decoded)
2. ParsedMessage  - raw fields split out of the text, not yet validated
3. Transaction    - the canonical, validated ledger entry
4. DispatchOutcome - what happened to one inbound message

DESIGN DECISION: Amounts are plain floats. Totals are accumulated without
rounding and only rounded when a reply is formatted.
"""

import math
from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class Dimension(str, Enum):
    """Field used to filter transactions for a running total."""
    CATEGORY = "category"
    PAYMENT_TYPE = "payment_type"


class MessageSchema(str, Enum):
    """
    Field layout of inbound messages.

    The two layouts are mutually exclusive per deployment; the parser
    never tries to guess which one a message uses.
    """
    THREE_FIELD = "three_field"   # description, amount, category
    FOUR_FIELD = "four_field"     # description, amount, category, payment type

    @property
    def field_names(self) -> tuple[str, ...]:
        if self == MessageSchema.THREE_FIELD:
            return ("description", "amount", "category")
        return ("description", "amount", "category", "payment_type")

    @property
    def arity(self) -> int:
        return len(self.field_names)


class DispatchState(str, Enum):
    """States one inbound message moves through."""
    RECEIVED = "received"
    PARSED = "parsed"
    VALIDATED = "validated"
    STORED = "stored"
    AGGREGATED = "aggregated"
    REPLIED = "replied"

    # Error exits (each goes straight to REPLIED)
    PARSE_FAILED = "parse_failed"
    VALIDATION_FAILED = "validation_failed"
    STORE_FAILED = "store_failed"


# =============================================================================
# PIPELINE MODELS
# =============================================================================

class InboundMessage(BaseModel):
    """
    A text message handed over by the transport layer.

    The pipeline never sees the raw webhook JSON, only this.
    """
    model_config = ConfigDict(frozen=True)

    text: str
    sender_id: str = Field(
        ...,
        min_length=1,
        description="Channel-specific id of the sender (reply address)"
    )
    message_id: Optional[str] = Field(
        default=None,
        description="Transport message id, used as idempotency token"
    )
    received_at: datetime = Field(
        default_factory=lambda: datetime.now().astimezone()
    )


class ParsedMessage(BaseModel):
    """Fields split out of a message. Content is not validated yet."""
    model_config = ConfigDict(frozen=True)

    description: str
    amount: str
    category: str
    payment_type: Optional[str] = None


class Transaction(BaseModel):
    """
    One validated expense record.

    CRITICAL: Only Transaction objects are appended to the ledger.
    Entries are never updated or deleted by this system.
    """
    model_config = ConfigDict(frozen=True)

    description: str = Field(
        ...,
        min_length=1,
        description="Free text, used verbatim"
    )
    amount: float = Field(
        ...,
        description="Finite amount; sign and magnitude are not constrained"
    )
    category: str = Field(
        ...,
        min_length=1,
        description="Normalized category label"
    )
    payment_type: str = Field(
        ...,
        min_length=1,
        description="Normalized payment type label"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now().astimezone(),
        description="Ingestion time on the local clock"
    )
    sender_id: str = Field(
        ...,
        description="Who sent the message (not used to scope the ledger)"
    )
    idempotency_key: Optional[str] = Field(
        default=None,
        description="Transport message id; re-appending the same key is a no-op"
    )

    @field_validator('amount')
    @classmethod
    def amount_must_be_finite(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("Amount must be a finite number")
        return v

    def value_for(self, dimension: Dimension) -> str:
        """Label of this transaction for the given dimension."""
        if dimension == Dimension.CATEGORY:
            return self.category
        return self.payment_type

    def to_record(self) -> dict:
        """
        Backend-agnostic persisted shape.

        Returns keys: description, amount, category, paymentType, timestamp.
        """
        return {
            "description": self.description,
            "amount": self.amount,
            "category": self.category,
            "paymentType": self.payment_type,
            "timestamp": self.timestamp.isoformat(),
        }


class AppendAck(BaseModel):
    """Acknowledgement returned by LedgerStore.append."""

    stored: bool = Field(
        ...,
        description="A new entry was written"
    )
    duplicate: bool = Field(
        default=False,
        description="The idempotency key was already present; nothing written"
    )


class DispatchOutcome(BaseModel):
    """
    What happened to one inbound message.

    `states` lists every state visited, in order, always ending in REPLIED.
    `exit_state` is the error exit taken, if any.
    """

    correlation_id: UUID = Field(default_factory=uuid4)
    sender_id: str
    states: list[DispatchState] = Field(default_factory=list)
    exit_state: Optional[DispatchState] = None
    transaction: Optional[Transaction] = None
    total: Optional[float] = None
    duplicate: bool = False
    reply: Optional[str] = Field(
        default=None,
        description="Text to send back; None means nothing is sent"
    )

    @property
    def succeeded(self) -> bool:
        return self.exit_state is None and self.transaction is not None

    @property
    def final_state(self) -> Optional[DispatchState]:
        return self.states[-1] if self.states else None
