"""
WhatsApp Cloud API Notifier

Sends text replies through the Graph API:

    POST {graph_base_url}/{api_version}/{phone_number_id}/messages
    {"messaging_product": "whatsapp", "to": ..., "text": {"body": ...}}

A non-2xx response is logged with its body and raised as a
NotificationError. There is no retry. The blocking HTTP call runs in a
worker thread so the event loop keeps serving other messages.
"""

import asyncio
from typing import Optional

import requests
import structlog

from ledger_bot.config.settings import WhatsAppSettings
from ledger_bot.services.messaging.interface import (
    DeliveryResult,
    NotificationError,
    NotificationErrorKind,
    Notifier,
)


logger = structlog.get_logger(__name__)


class WhatsAppNotifier(Notifier):
    """Notifier backed by the WhatsApp Cloud API."""

    def __init__(
        self,
        settings: WhatsAppSettings,
        session: Optional[requests.Session] = None,
    ):
        self._settings = settings
        self._session = session or requests.Session()

    @property
    def messages_url(self) -> str:
        s = self._settings
        return f"{s.graph_base_url}/{s.api_version}/{s.phone_number_id}/messages"

    async def send(self, recipient: str, text: str) -> DeliveryResult:
        payload = {
            "messaging_product": "whatsapp",
            "to": recipient,
            "text": {"body": text},
        }
        logger.debug("whatsapp_send_prepared", recipient=recipient, payload=payload)

        try:
            response = await asyncio.to_thread(
                self._session.post,
                self.messages_url,
                json=payload,
                headers={
                    "Authorization": f"Bearer {self._settings.access_token}",
                    "Content-Type": "application/json",
                },
                timeout=self._settings.request_timeout_seconds,
            )
        except requests.RequestException as e:
            logger.error("whatsapp_send_unreachable", recipient=recipient, error=str(e))
            raise NotificationError(
                NotificationErrorKind.DELIVERY_FAILED,
                recipient,
                f"Could not reach the WhatsApp API: {e}",
            )

        if not response.ok:
            logger.error(
                "whatsapp_send_rejected",
                recipient=recipient,
                status_code=response.status_code,
                body=response.text,
            )
            raise NotificationError(
                NotificationErrorKind.DELIVERY_FAILED,
                recipient,
                f"WhatsApp API returned {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError:
            data = {}
        messages = data.get("messages") or [{}]
        message_id = messages[0].get("id")
        logger.info("whatsapp_send_accepted", recipient=recipient, message_id=message_id)
        return DeliveryResult(delivered=True, message_id=message_id)
