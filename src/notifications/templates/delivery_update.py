"""Delivery progress templates — dispatch, pickup, transit and completion."""

from notifications.notification.notification import (
    NotificationCategory,
    NotificationType,
    RecipientType,
)


class DeliveryDispatchedTemplate:
    notification_type = NotificationType.DELIVERY_DISPATCHED.value
    category = NotificationCategory.DELIVERY_UPDATE.value
    recipient_type = RecipientType.CUSTOMER.value

    @staticmethod
    def render(context: dict) -> dict:
        driver = context.get("driver_name", "your driver")
        return {"body": f"Your order is out for delivery! Driver: {driver}"}


class VendorPickupTemplate:
    notification_type = NotificationType.VENDOR_PICKUP.value
    category = NotificationCategory.DELIVERY_UPDATE.value
    recipient_type = RecipientType.VENDOR.value

    @staticmethod
    def render(context: dict) -> dict:
        order_ref = context.get("order_ref", "N/A")
        return {"body": f"Order #{order_ref} was picked up for delivery"}


class DeliveryInTransitTemplate:
    notification_type = NotificationType.DELIVERY_IN_TRANSIT.value
    category = NotificationCategory.DELIVERY_UPDATE.value
    recipient_type = RecipientType.CUSTOMER.value

    @staticmethod
    def render(context: dict) -> dict:
        return {"body": "Your order is on the way!"}


class DeliveryConfirmationTemplate:
    notification_type = NotificationType.DELIVERY_CONFIRMATION.value
    category = NotificationCategory.ORDER_STATUS.value
    recipient_type = RecipientType.CUSTOMER.value

    @staticmethod
    def render(context: dict) -> dict:
        return {"body": "Your order has been delivered! Thank you for choosing us."}


class DriverReassignedTemplate:
    notification_type = NotificationType.DRIVER_REASSIGNED.value
    category = NotificationCategory.DELIVERY_UPDATE.value
    recipient_type = RecipientType.CUSTOMER.value

    @staticmethod
    def render(context: dict) -> dict:
        driver = context.get("driver_name", "a new driver")
        return {"body": f"New driver assigned: {driver}. Your delivery is on its way!"}
