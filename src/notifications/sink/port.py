"""Notification sink port — abstract interface for the message transport.

The fulfillment core programs against this port; push/SMS/email delivery
lives behind adapters and is out of the core's hands.
"""

from abc import ABC, abstractmethod


class NotificationSink(ABC):
    """Accepts a message for asynchronous delivery (fire-and-forget)."""

    @abstractmethod
    def enqueue(self, recipient_id: str, category: str, message: str) -> None:
        """Enqueue a message for delivery.

        Must not block on the transport. May raise when the message
        cannot even be accepted; callers treat that as best-effort failure.
        """
        ...
