"""Fake notification sink — records enqueued messages for testing."""

import threading

from notifications.notification.notification import EnqueuedNotification
from notifications.sink.port import NotificationSink


class FakeNotificationSink(NotificationSink):
    """Sink that records messages in memory for test assertions."""

    def __init__(self):
        self._lock = threading.Lock()
        self.enqueued: list[EnqueuedNotification] = []
        self.should_succeed = True
        self.failure_reason = "Notification queue unavailable"

    def configure(self, should_succeed: bool = True, failure_reason: str = "Notification queue unavailable"):
        """Configure the fake sink behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def enqueue(self, recipient_id: str, category: str, message: str) -> None:
        if not self.should_succeed:
            raise ConnectionError(self.failure_reason)

        with self._lock:
            self.enqueued.append(
                EnqueuedNotification(
                    recipient_id=recipient_id,
                    category=category,
                    message=message,
                )
            )

    def messages_for(self, recipient_id: str) -> list[EnqueuedNotification]:
        with self._lock:
            return [n for n in self.enqueued if n.recipient_id == recipient_id]

    def reset(self):
        """Clear recorded messages (useful between tests)."""
        with self._lock:
            self.enqueued.clear()
        self.should_succeed = True
        self.failure_reason = "Notification queue unavailable"
