"""
Messaging Services Package

Inbound: webhook payload decoding and verification.
Outbound: the Notifier interface and its WhatsApp implementation.
"""

from ledger_bot.services.messaging.interface import (
    DeliveryResult,
    InboundDecodeError,
    NotificationError,
    NotificationErrorKind,
    Notifier,
)
from ledger_bot.services.messaging.webhook import (
    WebhookPayload,
    decode_webhook,
    verify_challenge,
    verify_signature,
)
from ledger_bot.services.messaging.whatsapp import WhatsAppNotifier

__all__ = [
    # Interface
    "DeliveryResult",
    "InboundDecodeError",
    "NotificationError",
    "NotificationErrorKind",
    "Notifier",
    # Webhook
    "WebhookPayload",
    "decode_webhook",
    "verify_challenge",
    "verify_signature",
    # WhatsApp
    "WhatsAppNotifier",
]
