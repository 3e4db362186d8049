"""Best-effort notification fan-out.

Renders a template and hands the message to the sink. Failures are logged
and swallowed: a notification problem never fails or rolls back the entity
mutation it belongs to.
"""

import structlog

from notifications.sink.port import NotificationSink
from notifications.templates import get_template

logger = structlog.get_logger(__name__)


class Notifier:
    def __init__(self, sink: NotificationSink):
        self.sink = sink

    def notify(self, recipient_id: str | None, notification_type: str, context: dict | None = None) -> bool:
        """Render and enqueue one message. Returns False when it was not accepted."""
        if not recipient_id:
            logger.warning("Notification skipped, no recipient", notification_type=notification_type)
            return False

        try:
            template_cls = get_template(notification_type)
            rendered = template_cls.render(context or {})
            self.sink.enqueue(recipient_id, template_cls.category, rendered["body"])
        except Exception as exc:
            logger.error(
                "Notification enqueue failed",
                recipient_id=recipient_id,
                notification_type=notification_type,
                error=str(exc),
            )
            return False

        logger.info(
            "Notification enqueued",
            recipient_id=recipient_id,
            notification_type=notification_type,
        )
        return True
