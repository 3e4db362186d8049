"""ConsistencyEnforcer: keeps an Order and its Delivery in a legal pairing.

Exactly one side is requested per operation; the enforcer derives the paired
status, validates both transitions before writing anything, then writes the
Delivery first and the Order second, each as a compare-and-set. When the
Order write fails the Delivery write is rolled back. A rollback that fails
too is recorded with the InconsistencyRecorder instead of passing silently.

Canonical pairing (Order status -> Delivery statuses it may coexist with):

    pending / confirmed / preparing   no delivery
    ready                             no delivery, picked_up
    out_for_delivery                  picked_up, in_transit
    delivered                         delivered
    cancelled                         no delivery, failed
"""

from datetime import UTC, datetime

import structlog
from protean.utils.globals import current_domain

from fulfillment.delivery.delivery import (
    FAILURE_ORIGIN_DELIVERY,
    FAILURE_ORIGIN_ORDER,
    Delivery,
    DeliveryStatus,
)
from fulfillment.delivery.state_machine import DeliveryStateMachine
from fulfillment.reconciliation import InconsistencyRecorder
from ordering.order.order import Order, OrderStatus
from ordering.order.state_machine import OrderStateMachine
from shared.errors import ConflictError, IllegalStateError

logger = structlog.get_logger(__name__)

DEFAULT_CANCELLATION_REASON = "Order cancelled"

_ORDER_FOR_DELIVERY = {
    DeliveryStatus.PICKED_UP: OrderStatus.OUT_FOR_DELIVERY,
    DeliveryStatus.IN_TRANSIT: OrderStatus.OUT_FOR_DELIVERY,
    DeliveryStatus.DELIVERED: OrderStatus.DELIVERED,
    DeliveryStatus.FAILED: OrderStatus.CANCELLED,
}

_DELIVERY_FOR_ORDER = {
    OrderStatus.READY: DeliveryStatus.PICKED_UP,
    OrderStatus.OUT_FOR_DELIVERY: DeliveryStatus.IN_TRANSIT,
    OrderStatus.DELIVERED: DeliveryStatus.DELIVERED,
    OrderStatus.CANCELLED: DeliveryStatus.FAILED,
}

_COMPATIBLE = {
    OrderStatus.PENDING: {None},
    OrderStatus.CONFIRMED: {None},
    OrderStatus.PREPARING: {None},
    OrderStatus.READY: {None, DeliveryStatus.PICKED_UP},
    OrderStatus.OUT_FOR_DELIVERY: {DeliveryStatus.PICKED_UP, DeliveryStatus.IN_TRANSIT},
    OrderStatus.DELIVERED: {DeliveryStatus.DELIVERED},
    OrderStatus.CANCELLED: {None, DeliveryStatus.FAILED},
}

# Order states only reachable while a delivery is in flight
_DELIVERY_DRIVEN_ORDER_STATES = {OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED}

# Delivery fields restored when a delivery write is rolled back
_RESTORABLE_FIELDS = (
    "driver_id",
    "estimated_time",
    "failure_reason",
    "failure_origin",
    "redispatch_count",
)


def is_consistent(order_status: str, delivery_status: str | None) -> bool:
    """True when the two statuses may be observed together."""
    delivery = DeliveryStatus(delivery_status) if delivery_status is not None else None
    return delivery in _COMPATIBLE[OrderStatus(order_status)]


def order_status_for(delivery_status: str) -> str:
    return _ORDER_FOR_DELIVERY[DeliveryStatus(delivery_status)].value


def delivery_status_for(order_status: str) -> str | None:
    derived = _DELIVERY_FOR_ORDER.get(OrderStatus(order_status))
    return derived.value if derived else None


class ConsistencyEnforcer:
    def __init__(
        self,
        order_machine: OrderStateMachine,
        delivery_machine: DeliveryStateMachine,
        recorder: InconsistencyRecorder,
    ):
        self.order_machine = order_machine
        self.delivery_machine = delivery_machine
        self.recorder = recorder

    @property
    def orders(self):
        return current_domain.repository_for(Order)

    @property
    def deliveries(self):
        return current_domain.repository_for(Delivery)

    # -------------------------------------------------------------------
    # Pairing checks
    # -------------------------------------------------------------------
    def check(self, order: Order, delivery: Delivery | None) -> bool:
        """Report whether the pair is legal, logging the ones that are not."""
        delivery_status = delivery.status if delivery is not None else None
        consistent = is_consistent(order.status, delivery_status)
        if not consistent:
            logger.warning(
                "Order and delivery statuses do not pair",
                order_id=order.id,
                order_status=order.status,
                delivery_id=delivery.id if delivery else None,
                delivery_status=delivery_status,
            )
        return consistent

    # -------------------------------------------------------------------
    # Delivery creation
    # -------------------------------------------------------------------
    def open_delivery(self, order: Order, delivery: Delivery) -> tuple[Delivery, Order]:
        """Record a new picked-up delivery and move its order out for delivery."""
        target = OrderStatus.OUT_FOR_DELIVERY.value
        self.order_machine.assert_can_transition(order.status, target)

        created = self.deliveries.create(delivery)
        try:
            updated_order = self.orders.conditional_update_status(
                order.id,
                order.status,
                target,
                expected_version=order._version,
                estimated_delivery_time=created.estimated_time,
            )
        except Exception:
            self._remove_delivery(created, order, "create_delivery")
            raise

        if updated_order is None:
            self._remove_delivery(created, order, "create_delivery")
            logger.warning("Order changed while opening delivery", order_id=order.id, delivery_id=created.id)
            raise ConflictError({"order_id": [f"Order {order.id} was modified concurrently"]})

        logger.info(
            "Delivery opened",
            delivery_id=created.id,
            order_id=order.id,
            driver_id=created.driver_id,
            from_status=order.status,
            to_status=target,
        )
        return created, updated_order

    # -------------------------------------------------------------------
    # Delivery-requested transitions
    # -------------------------------------------------------------------
    def apply_delivery_transition(
        self,
        delivery: Delivery,
        target: str,
        failure_reason: str | None = None,
    ) -> tuple[Delivery, Order]:
        """Advance the delivery and derive the order status from it."""
        self.delivery_machine.assert_can_transition(delivery.status, target)
        self.delivery_machine.validate_entry(target, failure_reason)

        order = self.orders.get(delivery.order_id)
        derived = order_status_for(target)
        if derived != order.status:
            self.order_machine.assert_can_transition(order.status, derived)

        now = datetime.now(UTC)
        updated_delivery = self._write_delivery(
            delivery,
            target,
            **self.delivery_machine.entry_changes(target, failure_reason, FAILURE_ORIGIN_DELIVERY),
        )
        updated_order = self._write_paired_order(
            order,
            derived,
            before=delivery,
            after=updated_delivery,
            operation="advance_status",
            changes=self.order_machine.entry_changes(derived, now),
        )

        self.delivery_machine.apply_driver_effects(updated_delivery, now)
        self.delivery_machine.notify_entry(updated_delivery, updated_order)
        return updated_delivery, updated_order

    # -------------------------------------------------------------------
    # Order-requested transitions
    # -------------------------------------------------------------------
    def apply_order_transition(
        self,
        order: Order,
        target: str,
        reason: str | None = None,
    ) -> tuple[Order, Delivery | None]:
        """Advance the order and derive the status of its active delivery, if any."""
        self.order_machine.assert_can_transition(order.status, target)

        delivery = self.deliveries.find_active_for_order(order.id)
        if delivery is None:
            if OrderStatus(target) in _DELIVERY_DRIVEN_ORDER_STATES:
                raise IllegalStateError(
                    {"order_id": [f"Order {order.id} has no active delivery to move it to {target}"]}
                )
            # A delivery that just left the active states must still pair with the target
            latest = self.deliveries.find_latest_for_order(order.id)
            if latest is not None and not is_consistent(target, latest.status):
                logger.warning(
                    "Delivery changed while transitioning order",
                    order_id=order.id,
                    delivery_id=latest.id,
                    delivery_status=latest.status,
                    to_status=target,
                )
                raise ConflictError({"order_id": [f"Order {order.id} has a {latest.status} delivery"]})

        derived = delivery_status_for(target) if delivery is not None else None
        failure_reason = None
        if derived is not None and derived != delivery.status:
            self.delivery_machine.assert_can_transition(delivery.status, derived)
            if DeliveryStatus(derived) == DeliveryStatus.FAILED:
                failure_reason = (reason or "").strip() or DEFAULT_CANCELLATION_REASON
        else:
            derived = None

        now = datetime.now(UTC)
        updated_delivery = delivery
        if derived is not None:
            updated_delivery = self._write_delivery(
                delivery,
                derived,
                **self.delivery_machine.entry_changes(derived, failure_reason, FAILURE_ORIGIN_ORDER),
            )

        changes = self.order_machine.entry_changes(target, now)
        if derived is not None:
            updated_order = self._write_paired_order(
                order,
                target,
                before=delivery,
                after=updated_delivery,
                operation="advance_order",
                changes=changes,
            )
        else:
            updated_order = self.orders.conditional_update_status(
                order.id,
                order.status,
                target,
                expected_version=order._version,
                **changes,
            )
            if updated_order is None:
                logger.warning("Order transition lost a race", order_id=order.id, to_status=target)
                raise ConflictError({"order_id": [f"Order {order.id} was modified concurrently"]})

        logger.info("Order transitioned", order_id=order.id, from_status=order.status, to_status=target)

        if derived is not None:
            self.delivery_machine.apply_driver_effects(updated_delivery, now)
        self.order_machine.notify_entry(updated_order, reason=(reason or "").strip() or None)
        return updated_order, updated_delivery

    # -------------------------------------------------------------------
    # Driver changes
    # -------------------------------------------------------------------
    def rebind_driver(
        self,
        delivery: Delivery,
        driver_id: str,
        estimated_time: datetime | None,
    ) -> tuple[Delivery, Order]:
        """Hand the delivery to another driver and reset it to picked_up.

        An active delivery keeps its order out for delivery. A failed one is
        redispatched and its cancelled order reopened.
        """
        order = self.orders.get(delivery.order_id)
        target = DeliveryStatus.PICKED_UP.value

        if delivery.is_terminal:
            self.delivery_machine.assert_can_redispatch(delivery)
            self.order_machine.assert_can_reopen(order.status, OrderStatus.OUT_FOR_DELIVERY.value)
            delivery_changes = {
                "failure_reason": None,
                "failure_origin": None,
                "redispatch_count": delivery.redispatch_count + 1,
            }
            order_changes = self.order_machine.reopen_changes()
            operation = "redispatch"
        else:
            if not is_consistent(order.status, target):
                raise IllegalStateError({"order_id": [f"Order {order.id} is {order.status}"]})
            delivery_changes = {}
            order_changes = {}
            operation = "reassign"

        updated_delivery = self._write_delivery(
            delivery,
            target,
            driver_id=driver_id,
            estimated_time=estimated_time,
            **delivery_changes,
        )
        updated_order = self._write_paired_order(
            order,
            OrderStatus.OUT_FOR_DELIVERY.value,
            before=delivery,
            after=updated_delivery,
            operation=operation,
            changes={**order_changes, "estimated_delivery_time": estimated_time},
            force=True,
        )

        logger.info(
            "Delivery driver changed",
            operation=operation,
            delivery_id=delivery.id,
            previous_driver_id=delivery.driver_id,
            driver_id=driver_id,
            from_status=delivery.status,
            to_status=target,
        )
        return updated_delivery, updated_order

    # -------------------------------------------------------------------
    # Writes and rollback
    # -------------------------------------------------------------------
    def _write_delivery(self, delivery: Delivery, target: str, **changes) -> Delivery:
        updated = self.deliveries.conditional_update_status(
            delivery.id,
            delivery.status,
            target,
            expected_version=delivery._version,
            **changes,
        )
        if updated is None:
            logger.warning(
                "Delivery transition lost a race",
                delivery_id=delivery.id,
                from_status=delivery.status,
                to_status=target,
            )
            raise ConflictError({"delivery_id": [f"Delivery {delivery.id} was modified concurrently"]})

        logger.info(
            "Delivery transitioned",
            delivery_id=delivery.id,
            order_id=delivery.order_id,
            from_status=delivery.status,
            to_status=target,
        )
        return updated

    def _write_paired_order(
        self,
        order: Order,
        target: str,
        *,
        before: Delivery,
        after: Delivery,
        operation: str,
        changes: dict,
        force: bool = False,
    ) -> Order:
        """Write the order after its delivery, rolling the delivery back on failure.

        Without ``force`` an order already in ``target`` is left untouched.
        """
        if order.status == target and not force:
            return order

        try:
            updated = self.orders.conditional_update_status(
                order.id,
                order.status,
                target,
                expected_version=order._version,
                **changes,
            )
        except Exception:
            self._rollback_delivery(before, after, order, operation)
            raise

        if updated is None:
            self._rollback_delivery(before, after, order, operation)
            logger.warning("Order transition lost a race", order_id=order.id, to_status=target)
            raise ConflictError({"order_id": [f"Order {order.id} was modified concurrently"]})

        if updated.status != order.status:
            logger.info("Order transitioned", order_id=order.id, from_status=order.status, to_status=target)
        return updated

    def _rollback_delivery(self, before: Delivery, after: Delivery, order: Order, operation: str) -> None:
        restore = {field: getattr(before, field) for field in _RESTORABLE_FIELDS}
        try:
            restored = self.deliveries.conditional_update_status(
                after.id,
                after.status,
                before.status,
                expected_version=after._version,
                **restore,
            )
        except Exception as exc:
            restored = None
            detail = f"Rollback raised {type(exc).__name__}: {exc}"
        else:
            detail = "Delivery changed again before it could be rolled back"

        if restored is None:
            self.recorder.record(
                operation=operation,
                order_id=order.id,
                delivery_id=after.id,
                order_status=order.status,
                delivery_status=after.status,
                detail=detail,
            )
        else:
            logger.info(
                "Delivery transition rolled back",
                delivery_id=after.id,
                from_status=after.status,
                to_status=before.status,
            )

    def _remove_delivery(self, delivery: Delivery, order: Order, operation: str) -> None:
        try:
            self.deliveries.remove(delivery.id)
        except Exception as exc:
            self.recorder.record(
                operation=operation,
                order_id=order.id,
                delivery_id=delivery.id,
                order_status=order.status,
                delivery_status=delivery.status,
                detail=f"Removing the new delivery raised {type(exc).__name__}: {exc}",
            )
