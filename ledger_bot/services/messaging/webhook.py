"""
WhatsApp Webhook Decoding

The Cloud API posts payloads shaped like:

    {"object": "whatsapp_business_account",
     "entry": [{"id": "...",
                "changes": [{"field": "messages",
                             "value": {"messages": [{"from": "5511...",
                                                     "id": "wamid...",
                                                     "timestamp": "1700000000",
                                                     "type": "text",
                                                     "text": {"body": "..."}}]}}]}]}

DESIGN DECISION: The payload is validated against pydantic models and
turned into InboundMessage objects here. Nothing downstream ever looks
at the raw JSON.
"""

import hashlib
import hmac
from datetime import datetime, timezone
from typing import Any, Optional

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from ledger_bot.models.transaction import InboundMessage
from ledger_bot.services.messaging.interface import InboundDecodeError


WHATSAPP_OBJECT = "whatsapp_business_account"


class TextBody(BaseModel):
    body: str


class WhatsAppMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_: str = Field(..., alias="from", min_length=1)
    id: str
    timestamp: Optional[str] = None
    type: str
    text: Optional[TextBody] = None


class ChangeValue(BaseModel):
    messaging_product: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    messages: list[WhatsAppMessage] = Field(default_factory=list)
    statuses: list[dict[str, Any]] = Field(default_factory=list)


class WebhookChange(BaseModel):
    field: str
    value: ChangeValue


class WebhookEntry(BaseModel):
    id: Optional[str] = None
    changes: list[WebhookChange] = Field(default_factory=list)


class WebhookPayload(BaseModel):
    object: str
    entry: list[WebhookEntry] = Field(default_factory=list)


def _parse_timestamp(raw: Optional[str]) -> datetime:
    """Unix seconds as sent by the API; falls back to now."""
    try:
        return datetime.fromtimestamp(int(raw), tz=timezone.utc).astimezone()
    except (TypeError, ValueError, OverflowError, OSError):
        return datetime.now().astimezone()


def decode_webhook(payload: Any) -> list[InboundMessage]:
    """
    Extract text messages from a webhook payload.

    Status callbacks and non-text messages (images, reactions, ...)
    produce no InboundMessage.

    Raises:
        InboundDecodeError: If the payload doesn't match the webhook schema
    """
    try:
        decoded = WebhookPayload.model_validate(payload)
    except pydantic.ValidationError as e:
        raise InboundDecodeError(f"Invalid webhook payload: {e}")

    if decoded.object != WHATSAPP_OBJECT:
        raise InboundDecodeError(f"Unexpected webhook object: {decoded.object}")

    messages = []
    for entry in decoded.entry:
        for change in entry.changes:
            if change.field != "messages":
                continue
            for message in change.value.messages:
                if message.type != "text" or message.text is None:
                    continue
                messages.append(InboundMessage(
                    text=message.text.body,
                    sender_id=message.from_,
                    message_id=message.id,
                    received_at=_parse_timestamp(message.timestamp),
                ))
    return messages


def verify_signature(app_secret: str, body: bytes, signature_header: Optional[str]) -> bool:
    """Check an X-Hub-Signature-256 header ("sha256=<hex>") against the raw body."""
    if not signature_header or not signature_header.startswith("sha256="):
        return False
    expected = hmac.new(app_secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    provided = signature_header[len("sha256="):]
    return hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))


def verify_challenge(
    verify_token: str,
    mode: Optional[str],
    token: Optional[str],
    challenge: Optional[str],
) -> Optional[str]:
    """
    Answer the subscription handshake.

    Returns the challenge to echo back, or None if the request must be refused.
    """
    if mode == "subscribe" and token is not None and challenge is not None:
        if hmac.compare_digest(token.encode("utf-8"), verify_token.encode("utf-8")):
            return challenge
    return None
