"""Delivery failure templates — sent to both parties when a delivery fails or is cancelled."""

from notifications.notification.notification import (
    NotificationCategory,
    NotificationType,
    RecipientType,
)


class DeliveryFailureTemplate:
    notification_type = NotificationType.DELIVERY_FAILURE.value
    category = NotificationCategory.DELIVERY_UPDATE.value
    recipient_type = RecipientType.CUSTOMER.value

    @staticmethod
    def render(context: dict) -> dict:
        reason = context.get("reason", "reason not provided")
        return {"body": (f"There was a problem with your delivery: {reason}. We are working on a solution.")}


class VendorDeliveryFailureTemplate:
    notification_type = NotificationType.VENDOR_DELIVERY_FAILURE.value
    category = NotificationCategory.DELIVERY_UPDATE.value
    recipient_type = RecipientType.VENDOR.value

    @staticmethod
    def render(context: dict) -> dict:
        order_ref = context.get("order_ref", "N/A")
        reason = context.get("reason", "reason not provided")
        return {"body": f"Delivery of order #{order_ref} failed: {reason}"}
