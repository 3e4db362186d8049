"""Order status templates — sent when an order is advanced by the vendor or the delivery."""

from notifications.notification.notification import (
    NotificationCategory,
    NotificationType,
    RecipientType,
)

_CUSTOMER_MESSAGES = {
    "confirmed": "Your order has been confirmed and is being prepared!",
    "preparing": "Your order is being prepared!",
    "ready": "Your order is ready for delivery!",
    "out_for_delivery": "Your order is out for delivery!",
    "delivered": "Your order has been delivered! Thank you for choosing us.",
    "cancelled": "Your order has been cancelled.",
}


class OrderStatusTemplate:
    notification_type = NotificationType.ORDER_STATUS.value
    category = NotificationCategory.ORDER_STATUS.value
    recipient_type = RecipientType.CUSTOMER.value

    @staticmethod
    def render(context: dict) -> dict:
        status = context.get("status", "")
        message = _CUSTOMER_MESSAGES.get(status, f"Your order status was updated to: {status}")
        return {"body": message}


class VendorOrderStatusTemplate:
    notification_type = NotificationType.VENDOR_ORDER_STATUS.value
    category = NotificationCategory.ORDER_STATUS.value
    recipient_type = RecipientType.VENDOR.value

    @staticmethod
    def render(context: dict) -> dict:
        order_ref = context.get("order_ref", "N/A")
        status = context.get("status", "")
        return {"body": f"Order #{order_ref} - Status: {status}"}


class OrderCancellationTemplate:
    notification_type = NotificationType.ORDER_CANCELLATION.value
    category = NotificationCategory.ORDER_STATUS.value
    recipient_type = RecipientType.CUSTOMER.value

    @staticmethod
    def render(context: dict) -> dict:
        reason = context.get("reason")
        if reason:
            return {"body": f"Your order has been cancelled. Reason: {reason}"}
        return {"body": "Your order has been cancelled."}


class VendorOrderCancellationTemplate:
    notification_type = NotificationType.VENDOR_ORDER_CANCELLATION.value
    category = NotificationCategory.ORDER_STATUS.value
    recipient_type = RecipientType.VENDOR.value

    @staticmethod
    def render(context: dict) -> dict:
        order_ref = context.get("order_ref", "N/A")
        reason = context.get("reason")
        if reason:
            return {"body": f"Order #{order_ref} was cancelled - Reason: {reason}"}
        return {"body": f"Order #{order_ref} was cancelled"}
