"""Template registry — maps NotificationType to template classes.

Each template knows its category, its audience and how to render the
message from context data.
"""

from notifications.notification.notification import NotificationType
from notifications.templates.delivery_failure import (
    DeliveryFailureTemplate,
    VendorDeliveryFailureTemplate,
)
from notifications.templates.delivery_update import (
    DeliveryConfirmationTemplate,
    DeliveryDispatchedTemplate,
    DeliveryInTransitTemplate,
    DriverReassignedTemplate,
    VendorPickupTemplate,
)
from notifications.templates.driver_account import DriverVerificationTemplate
from notifications.templates.order_status import (
    OrderCancellationTemplate,
    OrderStatusTemplate,
    VendorOrderCancellationTemplate,
    VendorOrderStatusTemplate,
)

TEMPLATE_REGISTRY: dict[str, type] = {
    NotificationType.ORDER_STATUS.value: OrderStatusTemplate,
    NotificationType.VENDOR_ORDER_STATUS.value: VendorOrderStatusTemplate,
    NotificationType.ORDER_CANCELLATION.value: OrderCancellationTemplate,
    NotificationType.VENDOR_ORDER_CANCELLATION.value: VendorOrderCancellationTemplate,
    NotificationType.DELIVERY_DISPATCHED.value: DeliveryDispatchedTemplate,
    NotificationType.VENDOR_PICKUP.value: VendorPickupTemplate,
    NotificationType.DELIVERY_IN_TRANSIT.value: DeliveryInTransitTemplate,
    NotificationType.DELIVERY_CONFIRMATION.value: DeliveryConfirmationTemplate,
    NotificationType.DELIVERY_FAILURE.value: DeliveryFailureTemplate,
    NotificationType.VENDOR_DELIVERY_FAILURE.value: VendorDeliveryFailureTemplate,
    NotificationType.DRIVER_REASSIGNED.value: DriverReassignedTemplate,
    NotificationType.DRIVER_VERIFICATION.value: DriverVerificationTemplate,
}


def get_template(notification_type: str):
    """Look up a template class by notification type string."""
    template_cls = TEMPLATE_REGISTRY.get(notification_type)
    if template_cls is None:
        raise ValueError(f"No template registered for notification type: {notification_type}")
    return template_cls
