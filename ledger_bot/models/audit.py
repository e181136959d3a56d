"""
Audit Models for the Expense Ledger Bot

Every state transition of an inbound message is recorded as an audit event.
This provides:
1. Traceability of each message from webhook to reply
2. Debugging information when a backend misbehaves
3. A record of replies that could not be delivered

All events of one message share a correlation ID.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every step in the message-to-ledger pipeline has its own event type.
    """
    # Intake
    MESSAGE_RECEIVED = "message_received"
    MESSAGE_PARSED = "message_parsed"
    PARSE_FAILED = "parse_failed"

    # Validation
    TRANSACTION_VALIDATED = "transaction_validated"
    VALIDATION_FAILED = "validation_failed"

    # Persistence
    TRANSACTION_STORED = "transaction_stored"
    DUPLICATE_IGNORED = "duplicate_ignored"
    STORE_FAILED = "store_failed"

    # Aggregation
    AGGREGATION_COMPLETED = "aggregation_completed"
    AGGREGATION_FAILED = "aggregation_failed"

    # Reply
    REPLY_SENT = "reply_sent"
    REPLY_SUPPRESSED = "reply_suppressed"
    NOTIFICATION_FAILED = "notification_failed"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    correlation_id: Optional[UUID] = Field(
        default=None,
        description="Shared by all events of one inbound message"
    )
    sender_id: Optional[str] = None

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "sender_id": self.sender_id,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.message_received(correlation_id, sender_id, message_id)
        event = AuditEventBuilder.store_failed(correlation_id, sender_id, kind, message)
    """

    @staticmethod
    def message_received(
        correlation_id: UUID,
        sender_id: str,
        message_id: Optional[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MESSAGE_RECEIVED,
            correlation_id=correlation_id,
            sender_id=sender_id,
            description="Inbound message received",
            details={"message_id": message_id},
        )

    @staticmethod
    def message_parsed(
        correlation_id: UUID,
        sender_id: str,
        field_count: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MESSAGE_PARSED,
            severity=AuditSeverity.DEBUG,
            correlation_id=correlation_id,
            sender_id=sender_id,
            description=f"Message split into {field_count} fields",
            details={"field_count": field_count},
        )

    @staticmethod
    def parse_failed(
        correlation_id: UUID,
        sender_id: str,
        expected: int,
        actual: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PARSE_FAILED,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            sender_id=sender_id,
            description=f"Wrong number of fields: expected {expected}, got {actual}",
            details={"expected": expected, "actual": actual},
        )

    @staticmethod
    def transaction_validated(
        correlation_id: UUID,
        sender_id: str,
        category: str,
        payment_type: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_VALIDATED,
            severity=AuditSeverity.DEBUG,
            correlation_id=correlation_id,
            sender_id=sender_id,
            description="Transaction validated",
            details={"category": category, "payment_type": payment_type},
        )

    @staticmethod
    def validation_failed(
        correlation_id: UUID,
        sender_id: str,
        kind: str,
        field: str,
        raw_value: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            sender_id=sender_id,
            description=f"Validation failed on {field}: {kind}",
            details={"kind": kind, "field": field, "raw_value": raw_value},
        )

    @staticmethod
    def transaction_stored(
        correlation_id: UUID,
        sender_id: str,
        amount: float,
        dimension_value: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_STORED,
            correlation_id=correlation_id,
            sender_id=sender_id,
            description=f"Transaction stored: {amount} ({dimension_value})",
            details={"amount": amount, "dimension_value": dimension_value},
        )

    @staticmethod
    def duplicate_ignored(
        correlation_id: UUID,
        sender_id: str,
        idempotency_key: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DUPLICATE_IGNORED,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            sender_id=sender_id,
            description="Message already recorded; append skipped",
            details={"idempotency_key": idempotency_key},
        )

    @staticmethod
    def store_failed(
        correlation_id: UUID,
        sender_id: str,
        kind: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORE_FAILED,
            severity=AuditSeverity.ERROR,
            correlation_id=correlation_id,
            sender_id=sender_id,
            description=f"Ledger backend failed: {kind}",
            details={"kind": kind},
            error_message=error_message,
        )

    @staticmethod
    def aggregation_completed(
        correlation_id: UUID,
        sender_id: str,
        dimension: str,
        value: str,
        total: float,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AGGREGATION_COMPLETED,
            correlation_id=correlation_id,
            sender_id=sender_id,
            description=f"Running total for {dimension}={value} computed",
            details={"dimension": dimension, "value": value, "total": total},
        )

    @staticmethod
    def aggregation_failed(
        correlation_id: UUID,
        sender_id: str,
        dimension: str,
        value: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AGGREGATION_FAILED,
            severity=AuditSeverity.ERROR,
            correlation_id=correlation_id,
            sender_id=sender_id,
            description=f"Could not compute running total for {dimension}={value}",
            details={"dimension": dimension, "value": value},
            error_message=error_message,
        )

    @staticmethod
    def reply_sent(
        correlation_id: UUID,
        sender_id: str,
        message_id: Optional[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REPLY_SENT,
            correlation_id=correlation_id,
            sender_id=sender_id,
            description="Reply delivered to the messaging API",
            details={"message_id": message_id},
        )

    @staticmethod
    def reply_suppressed(
        correlation_id: UUID,
        sender_id: str,
        reason: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REPLY_SUPPRESSED,
            correlation_id=correlation_id,
            sender_id=sender_id,
            description=f"No reply sent: {reason}",
            details={"reason": reason},
        )

    @staticmethod
    def notification_failed(
        correlation_id: UUID,
        sender_id: str,
        error_message: str,
        status_code: Optional[int] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.NOTIFICATION_FAILED,
            severity=AuditSeverity.ERROR,
            correlation_id=correlation_id,
            sender_id=sender_id,
            description="Reply could not be delivered",
            details={"status_code": status_code},
            error_message=error_message,
        )
