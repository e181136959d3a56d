"""
Main Orchestrator for the Expense Ledger Bot

This module ties together all the components and defines the
end-to-end flow for one inbound message:

    Received → Parsed → Validated → Stored → Aggregated → Replied

with the error exits ParseFailed, ValidationFailed and StoreFailed, each
going straight to Replied with a corrective reply instead of a
confirmation.

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing reaches the ledger unless it parsed and validated
- Totals are only reported from what the ledger returns
- Every step is audited
- No error in the pipeline escapes to the transport

There is no retry loop. A StoreFailed message is terminal.
"""

from typing import Optional

from ledger_bot.audit import AuditLogger, create_correlation_id
from ledger_bot.config import Settings, get_settings
from ledger_bot.models.transaction import (
    Dimension,
    DispatchOutcome,
    DispatchState,
    InboundMessage,
    MessageSchema,
)
from ledger_bot.parsing import MessageParser, ParseError
from ledger_bot.queries import AggregationEngine
from ledger_bot.replies import CurrencyFormat, ReplyFormatter
from ledger_bot.services.messaging import (
    NotificationError,
    Notifier,
    WhatsAppNotifier,
)
from ledger_bot.services.storage import LedgerStore, StoreError, create_ledger_store
from ledger_bot.validation import TransactionValidator, ValidationError


class Dispatcher:
    """
    Drives one inbound message through the pipeline.

    Stateless between messages. The only shared resource is the
    LedgerStore handle, which may be used by concurrent messages.
    """

    def __init__(
        self,
        parser: MessageParser,
        validator: TransactionValidator,
        store: LedgerStore,
        engine: Optional[AggregationEngine] = None,
        formatter: Optional[ReplyFormatter] = None,
        notifier: Optional[Notifier] = None,
        audit_logger: Optional[AuditLogger] = None,
        dimension: Optional[Dimension] = None,
        notify_on_store_failure: bool = True,
    ):
        self._parser = parser
        self._validator = validator
        self._store = store
        self._engine = engine or AggregationEngine(store)
        self._formatter = formatter or ReplyFormatter(schema=parser.schema)
        self._notifier = notifier
        self._audit_logger = audit_logger or AuditLogger()
        self._notify_on_store_failure = notify_on_store_failure

        if dimension is None:
            # Three-field messages carry no payment type worth totalling
            dimension = (
                Dimension.CATEGORY
                if parser.schema == MessageSchema.THREE_FIELD
                else Dimension.PAYMENT_TYPE
            )
        self._dimension = dimension

    @property
    def dimension(self) -> Dimension:
        return self._dimension

    async def handle(self, message: InboundMessage) -> DispatchOutcome:
        """
        Run one message through parse → validate → store → aggregate.

        Never raises for pipeline errors. The returned outcome carries
        the reply text (or None when nothing should be sent).
        """
        outcome = DispatchOutcome(
            correlation_id=create_correlation_id(),
            sender_id=message.sender_id,
            states=[DispatchState.RECEIVED],
        )
        cid = outcome.correlation_id
        sender = message.sender_id

        await self._audit_logger.log_message_received(cid, sender, message.message_id)

        # Step 1: Parse
        try:
            parsed = self._parser.parse(message.text)
        except ParseError as e:
            await self._audit_logger.log_parse_failed(cid, sender, e.expected, e.actual)
            return self._finish(
                outcome,
                DispatchState.PARSE_FAILED,
                self._formatter.for_parse_error(e),
            )
        outcome.states.append(DispatchState.PARSED)
        await self._audit_logger.log_message_parsed(
            cid, sender, self._parser.schema.arity
        )

        # Step 2: Validate
        try:
            transaction = self._validator.validate(
                parsed,
                sender_id=sender,
                idempotency_key=message.message_id,
            )
        except ValidationError as e:
            await self._audit_logger.log_validation_failed(
                cid, sender, e.kind.value, e.field, e.raw_value
            )
            return self._finish(
                outcome,
                DispatchState.VALIDATION_FAILED,
                self._formatter.for_validation_error(e),
            )
        outcome.states.append(DispatchState.VALIDATED)
        outcome.transaction = transaction
        await self._audit_logger.log_transaction_validated(
            cid, sender, transaction.category, transaction.payment_type
        )

        # Step 3: Store
        try:
            ack = await self._store.append(transaction)
        except StoreError as e:
            await self._audit_logger.log_store_failed(cid, sender, e.kind.value, str(e))
            reply = None
            if self._notify_on_store_failure:
                reply = self._formatter.store_failure(transaction)
            return self._finish(outcome, DispatchState.STORE_FAILED, reply)

        if ack.duplicate:
            # Redelivery of a message already in the ledger; the first
            # delivery already got its reply.
            outcome.duplicate = True
            await self._audit_logger.log_duplicate_ignored(
                cid, sender, transaction.idempotency_key or ""
            )
            return self._finish(outcome, None, None)

        outcome.states.append(DispatchState.STORED)
        dimension_value = transaction.value_for(self._dimension)
        await self._audit_logger.log_transaction_stored(
            cid, sender, transaction.amount, dimension_value
        )

        # Step 4: Aggregate
        try:
            total = await self._engine.sum(self._dimension, dimension_value)
        except StoreError as e:
            await self._audit_logger.log_aggregation_failed(
                cid, sender, self._dimension.value, dimension_value, str(e)
            )
            reply = None
            if self._notify_on_store_failure:
                reply = self._formatter.total_unavailable(transaction, self._dimension)
            return self._finish(outcome, DispatchState.STORE_FAILED, reply)

        outcome.states.append(DispatchState.AGGREGATED)
        outcome.total = total
        await self._audit_logger.log_aggregation_completed(
            cid, sender, self._dimension.value, dimension_value, total
        )

        # Step 5: Reply
        return self._finish(
            outcome,
            None,
            self._formatter.success(transaction, self._dimension, total),
        )

    async def handle_and_reply(self, message: InboundMessage) -> DispatchOutcome:
        """
        Handle a message and send its reply through the notifier.

        Delivery failures are logged and otherwise ignored.
        """
        outcome = await self.handle(message)
        cid = outcome.correlation_id

        if outcome.reply is None:
            reason = "duplicate" if outcome.duplicate else "store_failure_silenced"
            await self._audit_logger.log_reply_suppressed(cid, message.sender_id, reason)
            return outcome

        if self._notifier is None:
            await self._audit_logger.log_reply_suppressed(
                cid, message.sender_id, "no_notifier"
            )
            return outcome

        try:
            result = await self._notifier.send(message.sender_id, outcome.reply)
        except NotificationError as e:
            await self._audit_logger.log_notification_failed(
                cid, message.sender_id, str(e), status_code=e.status_code
            )
            return outcome

        await self._audit_logger.log_reply_sent(cid, message.sender_id, result.message_id)
        return outcome

    def _finish(
        self,
        outcome: DispatchOutcome,
        exit_state: Optional[DispatchState],
        reply: Optional[str],
    ) -> DispatchOutcome:
        if exit_state is not None:
            outcome.states.append(exit_state)
            outcome.exit_state = exit_state
        outcome.states.append(DispatchState.REPLIED)
        outcome.reply = reply
        return outcome


def create_app_components(
    settings: Optional[Settings] = None,
    store: Optional[LedgerStore] = None,
    notifier: Optional[Notifier] = None,
) -> Dispatcher:
    """
    Factory function to create all application components.

    Args:
        settings: Loaded settings; read from the environment when omitted.
        store: Ledger to use instead of the configured backend.
        notifier: Notifier to use instead of the WhatsApp Cloud API.

    Returns:
        A ready Dispatcher
    """
    settings = settings or get_settings()
    app_settings = settings.app

    if store is None:
        store = create_ledger_store(app_settings, settings)
    if notifier is None:
        notifier = WhatsAppNotifier(settings.whatsapp)

    schema = app_settings.message_schema
    formatter = ReplyFormatter(
        currency=CurrencyFormat(
            symbol=app_settings.currency_symbol,
            thousands_separator=app_settings.thousands_separator,
            decimal_separator=app_settings.decimal_separator,
            decimals=app_settings.currency_decimals,
        ),
        schema=schema,
    )

    return Dispatcher(
        parser=MessageParser(schema),
        validator=TransactionValidator(app_settings.default_payment_type),
        store=store,
        formatter=formatter,
        notifier=notifier,
        audit_logger=AuditLogger(),
        dimension=app_settings.effective_dimension,
        notify_on_store_failure=app_settings.notify_on_store_failure,
    )
