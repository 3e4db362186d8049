"""Driver account templates: sent when an operator reviews a driver's registration."""

from notifications.notification.notification import (
    NotificationCategory,
    NotificationType,
    RecipientType,
)


class DriverVerificationTemplate:
    notification_type = NotificationType.DRIVER_VERIFICATION.value
    category = NotificationCategory.ACCOUNT.value
    recipient_type = RecipientType.DRIVER.value

    @staticmethod
    def render(context: dict) -> dict:
        if context.get("is_verified"):
            return {"body": "Your registration was approved! You can now receive orders."}
        return {"body": "Your registration is under review. You will hear back soon."}
