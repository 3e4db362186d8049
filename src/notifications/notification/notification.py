"""Notification vocabulary shared between the fulfillment core and the sink.

Notifications themselves are owned by the external delivery service: the
core only hands ``(recipient_id, category, message)`` to a NotificationSink.
"""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class NotificationCategory(Enum):
    ORDER_STATUS = "order_status"
    DELIVERY_UPDATE = "delivery_update"
    ACCOUNT = "account"


class NotificationType(Enum):
    ORDER_STATUS = "OrderStatus"
    VENDOR_ORDER_STATUS = "VendorOrderStatus"
    ORDER_CANCELLATION = "OrderCancellation"
    VENDOR_ORDER_CANCELLATION = "VendorOrderCancellation"
    DELIVERY_DISPATCHED = "DeliveryDispatched"
    VENDOR_PICKUP = "VendorPickup"
    DELIVERY_IN_TRANSIT = "DeliveryInTransit"
    DELIVERY_CONFIRMATION = "DeliveryConfirmation"
    DELIVERY_FAILURE = "DeliveryFailure"
    VENDOR_DELIVERY_FAILURE = "VendorDeliveryFailure"
    DRIVER_REASSIGNED = "DriverReassigned"
    DRIVER_VERIFICATION = "DriverVerification"


class RecipientType(Enum):
    CUSTOMER = "customer"
    VENDOR = "vendor"
    DRIVER = "driver"


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
class EnqueuedNotification(BaseModel):
    """A message accepted by a sink. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    recipient_id: str
    category: str
    message: str
    read: bool = False
    sent_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
