"""DeliveryStateMachine: validates Delivery transitions and owns their entry effects.

Entry effects come in two kinds. Driver effects (release on failure, release
plus completion statistics on delivery) always run once the transition is
committed, whichever side requested it. Notifications are only sent when the
delivery transition was the one requested; a transition derived from an
order change stays silent.
"""

from datetime import UTC, datetime

import structlog

from drivers.dispatch import DispatchEngine
from fulfillment.delivery.delivery import (
    _REDISPATCH_TRANSITIONS,
    _TERMINAL_STATES,
    _VALID_TRANSITIONS,
    FAILURE_ORIGIN_DELIVERY,
    FAILURE_ORIGIN_ORDER,
    Delivery,
    DeliveryStatus,
)
from notifications.notification.notification import NotificationType
from notifications.notifier import Notifier
from ordering.order.order import Order
from shared.errors import IllegalStateError, InvalidTransitionError, ValidationError

logger = structlog.get_logger(__name__)


class DeliveryStateMachine:
    def __init__(self, dispatch: DispatchEngine, notifier: Notifier, max_redispatches: int = 1):
        self.dispatch = dispatch
        self.notifier = notifier
        self.max_redispatches = max_redispatches

    # -------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------
    @staticmethod
    def can_transition(current: str, target: str) -> bool:
        return DeliveryStatus(target) in _VALID_TRANSITIONS.get(DeliveryStatus(current), set())

    def assert_can_transition(self, current: str, target: str) -> None:
        if not self.can_transition(current, target):
            raise InvalidTransitionError(current, target, entity="delivery_status")

    def assert_can_redispatch(self, delivery: Delivery) -> None:
        """A failed delivery goes back to picked_up a limited number of times."""
        target = DeliveryStatus.PICKED_UP
        if target not in _REDISPATCH_TRANSITIONS.get(DeliveryStatus(delivery.status), set()):
            raise InvalidTransitionError(delivery.status, target.value, entity="delivery_status")
        if delivery.redispatch_count >= self.max_redispatches:
            raise InvalidTransitionError(delivery.status, target.value, entity="delivery_status")
        if delivery.failure_origin == FAILURE_ORIGIN_ORDER:
            raise IllegalStateError({"delivery_id": ["The order was cancelled; the delivery cannot be redispatched"]})

    @staticmethod
    def is_terminal(status: str) -> bool:
        return DeliveryStatus(status) in _TERMINAL_STATES

    @staticmethod
    def validate_entry(target: str, failure_reason: str | None) -> None:
        if DeliveryStatus(target) == DeliveryStatus.FAILED and not (failure_reason or "").strip():
            raise ValidationError({"failure_reason": ["A failure reason is required for a failed delivery"]})

    @staticmethod
    def entry_changes(
        target: str,
        failure_reason: str | None = None,
        origin: str = FAILURE_ORIGIN_DELIVERY,
    ) -> dict:
        """Field changes written together with the status change."""
        if DeliveryStatus(target) == DeliveryStatus.FAILED:
            return {"failure_reason": failure_reason.strip(), "failure_origin": origin}
        return {}

    # -------------------------------------------------------------------
    # Entry effects
    # -------------------------------------------------------------------
    def apply_driver_effects(self, delivery: Delivery, now: datetime | None = None) -> None:
        """Release the driver when the delivery reached a terminal state."""
        status = DeliveryStatus(delivery.status)
        if status == DeliveryStatus.DELIVERED:
            now = now or datetime.now(UTC)
            driver = self.dispatch.drivers.complete_delivery(
                delivery.driver_id,
                delivery.id,
                delivery.minutes_since_creation(now),
            )
            if driver is None:
                logger.warning(
                    "Driver was not bound to the delivered delivery",
                    driver_id=delivery.driver_id,
                    delivery_id=delivery.id,
                )
            else:
                logger.info(
                    "Driver completed delivery",
                    driver_id=driver.id,
                    delivery_id=delivery.id,
                    completed_deliveries=driver.completed_deliveries,
                    average_delivery_time=round(driver.average_delivery_time, 2),
                )
        elif status == DeliveryStatus.FAILED:
            self.dispatch.release_driver(delivery.driver_id, delivery.id)

    def notify_entry(self, delivery: Delivery, order: Order) -> None:
        status = DeliveryStatus(delivery.status)
        context = {"order_ref": order.reference, "reason": delivery.failure_reason}

        if status == DeliveryStatus.IN_TRANSIT:
            self.notifier.notify(order.customer_id, NotificationType.DELIVERY_IN_TRANSIT.value, context)
        elif status == DeliveryStatus.DELIVERED:
            self.notifier.notify(order.customer_id, NotificationType.DELIVERY_CONFIRMATION.value, context)
        elif status == DeliveryStatus.FAILED:
            self.notifier.notify(order.customer_id, NotificationType.DELIVERY_FAILURE.value, context)
            self.notifier.notify(order.vendor_id, NotificationType.VENDOR_DELIVERY_FAILURE.value, context)

    def notify_dispatched(self, delivery: Delivery, order: Order, driver_name: str) -> None:
        context = {"order_ref": order.reference, "driver_name": driver_name}
        self.notifier.notify(order.customer_id, NotificationType.DELIVERY_DISPATCHED.value, context)
        self.notifier.notify(order.vendor_id, NotificationType.VENDOR_PICKUP.value, context)

    def notify_reassigned(self, delivery: Delivery, order: Order, driver_name: str) -> None:
        context = {"order_ref": order.reference, "driver_name": driver_name}
        self.notifier.notify(order.customer_id, NotificationType.DRIVER_REASSIGNED.value, context)
