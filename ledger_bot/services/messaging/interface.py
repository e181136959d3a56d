"""
Outbound Notification Interface

Replies are fire-and-forget: the pipeline logs a failed delivery but
never retries it or acts on it otherwise.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class DeliveryResult(BaseModel):
    """Outcome of handing a reply to the messaging API."""

    delivered: bool
    message_id: Optional[str] = None


class Notifier(ABC):
    """Sends text replies back to a sender."""

    @abstractmethod
    async def send(self, recipient: str, text: str) -> DeliveryResult:
        """
        Send `text` to `recipient`.

        Raises:
            NotificationError: If the messaging API refuses or can't be reached
        """
        pass


class NotificationErrorKind(str, Enum):
    DELIVERY_FAILED = "delivery_failed"


class NotificationError(Exception):
    """A reply could not be delivered."""

    def __init__(
        self,
        kind: NotificationErrorKind,
        recipient: str,
        message: str,
        status_code: Optional[int] = None,
    ):
        self.kind = kind
        self.recipient = recipient
        self.status_code = status_code
        super().__init__(message)


class InboundDecodeError(Exception):
    """A webhook payload does not match the expected schema."""
    pass
