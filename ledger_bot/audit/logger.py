"""
Audit Logger

DESIGN DECISION: Every state transition of an inbound message is logged.
This provides:
1. Complete traceability from webhook to reply
2. Debugging capability when a backend or the messaging API misbehaves

The audit logger:
- Writes structured JSON logs through structlog
- Never raises into the pipeline (a broken log line must not lose a message)
- Tags every event with the correlation ID of its message
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from ledger_bot.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity


def configure_logging(level: str = "INFO", debug: bool = False) -> None:
    """
    Configure stdlib logging and structlog.

    JSON lines by default. With `debug`, everything down to DEBUG is
    logged and rendered for a console instead.

    Call once at process start.
    """
    if debug:
        level = "DEBUG"
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer(ensure_ascii=False)

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper(), logging.INFO),
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class AuditLogger:
    """Central audit logging service for the message pipeline."""

    def __init__(self, logger: Optional[structlog.typing.FilteringBoundLogger] = None):
        self._logger = logger or structlog.get_logger("ledger_bot.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns False if the event could not be written.
        """
        log_dict = event.to_log_dict()
        try:
            if event.severity == AuditSeverity.ERROR:
                self._logger.error("audit_event", **log_dict)
            elif event.severity == AuditSeverity.WARNING:
                self._logger.warning("audit_event", **log_dict)
            elif event.severity == AuditSeverity.DEBUG:
                self._logger.debug("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
        except Exception:
            return False
        return True

    async def log_message_received(
        self,
        correlation_id: UUID,
        sender_id: str,
        message_id: Optional[str],
    ) -> None:
        await self.log(AuditEventBuilder.message_received(
            correlation_id=correlation_id,
            sender_id=sender_id,
            message_id=message_id,
        ))

    async def log_message_parsed(
        self,
        correlation_id: UUID,
        sender_id: str,
        field_count: int,
    ) -> None:
        await self.log(AuditEventBuilder.message_parsed(
            correlation_id=correlation_id,
            sender_id=sender_id,
            field_count=field_count,
        ))

    async def log_parse_failed(
        self,
        correlation_id: UUID,
        sender_id: str,
        expected: int,
        actual: int,
    ) -> None:
        await self.log(AuditEventBuilder.parse_failed(
            correlation_id=correlation_id,
            sender_id=sender_id,
            expected=expected,
            actual=actual,
        ))

    async def log_transaction_validated(
        self,
        correlation_id: UUID,
        sender_id: str,
        category: str,
        payment_type: str,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_validated(
            correlation_id=correlation_id,
            sender_id=sender_id,
            category=category,
            payment_type=payment_type,
        ))

    async def log_validation_failed(
        self,
        correlation_id: UUID,
        sender_id: str,
        kind: str,
        field: str,
        raw_value: str,
    ) -> None:
        await self.log(AuditEventBuilder.validation_failed(
            correlation_id=correlation_id,
            sender_id=sender_id,
            kind=kind,
            field=field,
            raw_value=raw_value,
        ))

    async def log_transaction_stored(
        self,
        correlation_id: UUID,
        sender_id: str,
        amount: float,
        dimension_value: str,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_stored(
            correlation_id=correlation_id,
            sender_id=sender_id,
            amount=amount,
            dimension_value=dimension_value,
        ))

    async def log_duplicate_ignored(
        self,
        correlation_id: UUID,
        sender_id: str,
        idempotency_key: str,
    ) -> None:
        await self.log(AuditEventBuilder.duplicate_ignored(
            correlation_id=correlation_id,
            sender_id=sender_id,
            idempotency_key=idempotency_key,
        ))

    async def log_store_failed(
        self,
        correlation_id: UUID,
        sender_id: str,
        kind: str,
        error_message: str,
    ) -> None:
        await self.log(AuditEventBuilder.store_failed(
            correlation_id=correlation_id,
            sender_id=sender_id,
            kind=kind,
            error_message=error_message,
        ))

    async def log_aggregation_completed(
        self,
        correlation_id: UUID,
        sender_id: str,
        dimension: str,
        value: str,
        total: float,
    ) -> None:
        await self.log(AuditEventBuilder.aggregation_completed(
            correlation_id=correlation_id,
            sender_id=sender_id,
            dimension=dimension,
            value=value,
            total=total,
        ))

    async def log_aggregation_failed(
        self,
        correlation_id: UUID,
        sender_id: str,
        dimension: str,
        value: str,
        error_message: str,
    ) -> None:
        await self.log(AuditEventBuilder.aggregation_failed(
            correlation_id=correlation_id,
            sender_id=sender_id,
            dimension=dimension,
            value=value,
            error_message=error_message,
        ))

    async def log_reply_sent(
        self,
        correlation_id: UUID,
        sender_id: str,
        message_id: Optional[str],
    ) -> None:
        await self.log(AuditEventBuilder.reply_sent(
            correlation_id=correlation_id,
            sender_id=sender_id,
            message_id=message_id,
        ))

    async def log_reply_suppressed(
        self,
        correlation_id: UUID,
        sender_id: str,
        reason: str,
    ) -> None:
        await self.log(AuditEventBuilder.reply_suppressed(
            correlation_id=correlation_id,
            sender_id=sender_id,
            reason=reason,
        ))

    async def log_notification_failed(
        self,
        correlation_id: UUID,
        sender_id: str,
        error_message: str,
        status_code: Optional[int] = None,
    ) -> None:
        await self.log(AuditEventBuilder.notification_failed(
            correlation_id=correlation_id,
            sender_id=sender_id,
            error_message=error_message,
            status_code=status_code,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    One per inbound message; every audit event of that message carries it.
    """
    return uuid4()
