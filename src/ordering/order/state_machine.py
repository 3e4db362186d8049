"""OrderStateMachine: validates Order transitions and owns their entry effects.

Field changes that accompany a status (refund on cancellation, delivery
timestamp on delivery) are returned by ``entry_changes`` so the repository
writes them in the same conditional update as the status itself. A cancelled
order is therefore never observable while still marked paid.
"""

from datetime import UTC, datetime

from notifications.notification.notification import NotificationType
from notifications.notifier import Notifier
from ordering.order.order import (
    _REOPEN_TRANSITIONS,
    _TERMINAL_STATES,
    _VALID_TRANSITIONS,
    Order,
    OrderStatus,
    PaymentStatus,
)
from shared.errors import InvalidTransitionError

# Vendor hears about these transitions in addition to the customer
_VENDOR_NOTIFIED_STATES = {
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.DELIVERED,
}


class OrderStateMachine:
    def __init__(self, notifier: Notifier):
        self.notifier = notifier

    # -------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------
    @staticmethod
    def can_transition(current: str, target: str) -> bool:
        return OrderStatus(target) in _VALID_TRANSITIONS.get(OrderStatus(current), set())

    def assert_can_transition(self, current: str, target: str) -> None:
        if not self.can_transition(current, target):
            raise InvalidTransitionError(current, target, entity="order_status")

    def assert_can_reopen(self, current: str, target: str) -> None:
        if OrderStatus(target) not in _REOPEN_TRANSITIONS.get(OrderStatus(current), set()):
            raise InvalidTransitionError(current, target, entity="order_status")

    @staticmethod
    def is_terminal(status: str) -> bool:
        return OrderStatus(status) in _TERMINAL_STATES

    # -------------------------------------------------------------------
    # Entry effects
    # -------------------------------------------------------------------
    @staticmethod
    def entry_changes(target: str, now: datetime | None = None) -> dict:
        """Field changes written together with the status change."""
        now = now or datetime.now(UTC)
        status = OrderStatus(target)
        if status == OrderStatus.CANCELLED:
            return {"payment_status": PaymentStatus.REFUNDED.value}
        if status == OrderStatus.DELIVERED:
            return {"actual_delivery_time": now}
        return {}

    @staticmethod
    def reopen_changes() -> dict:
        """A reopened order awaits a fresh payment capture."""
        return {"payment_status": PaymentStatus.PENDING.value}

    def notify_entry(self, order: Order, reason: str | None = None) -> None:
        """Emit the status-specific customer (and, where relevant, vendor) messages."""
        status = OrderStatus(order.status)
        context = {"order_ref": order.reference, "status": status.value, "reason": reason}

        if status == OrderStatus.CANCELLED:
            self.notifier.notify(order.customer_id, NotificationType.ORDER_CANCELLATION.value, context)
            self.notifier.notify(order.vendor_id, NotificationType.VENDOR_ORDER_CANCELLATION.value, context)
            return

        self.notifier.notify(order.customer_id, NotificationType.ORDER_STATUS.value, context)

        if status in _VENDOR_NOTIFIED_STATES:
            self.notifier.notify(order.vendor_id, NotificationType.VENDOR_ORDER_STATUS.value, context)
