"""FulfillmentOrchestrator: entry point for every delivery lifecycle operation.

Each public method is one logical transaction: it resolves the entities,
lets the state machines and the ConsistencyEnforcer validate and write both
sides of the Order/Delivery pair, then applies driver and notification side
effects. Errors from ``shared.errors`` are raised to the caller unchanged.
"""

from datetime import UTC, datetime, timedelta
from enum import Enum
from uuid import uuid4

import structlog
from protean.utils.globals import current_domain
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from drivers.dispatch import DispatchEngine
from drivers.driver.driver import Driver
from drivers.geo import GeoIndex, haversine_km
from drivers.management import DriverService, DriverStats
from fulfillment.config import DispatchConfig
from fulfillment.consistency import ConsistencyEnforcer
from fulfillment.delivery.delivery import Delivery, DeliveryLocation, DeliveryStatus
from fulfillment.delivery.state_machine import DeliveryStateMachine
from fulfillment.reconciliation import InconsistencyRecorder
from notifications.notifier import Notifier
from ordering.order.order import DISPATCHABLE_STATES, Order, OrderStatus
from ordering.order.state_machine import OrderStateMachine
from shared.errors import AlreadyTerminalError, IllegalStateError, ValidationError, from_pydantic
from shared.value_objects import Coordinates

logger = structlog.get_logger(__name__)


class TrackingInfo(BaseModel):
    """Where a delivery stands, as seen from its driver's last position."""

    model_config = ConfigDict(frozen=True)

    delivery_id: str
    order_id: str
    driver_id: str
    status: str
    current_location: Coordinates | None = None
    estimated_time: datetime | None = None
    distance_km: float | None = None
    minutes_remaining: float | None = None
    last_location_update: datetime | None = None


def _parse_status(enum_cls: type[Enum], value: str, field: str = "status"):
    try:
        return enum_cls(value)
    except ValueError as exc:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError({field: [f"Unknown status '{value}'. Expected one of: {allowed}"]}) from exc


class FulfillmentOrchestrator:
    def __init__(
        self,
        notifier: Notifier,
        config: DispatchConfig | None = None,
        recorder: InconsistencyRecorder | None = None,
    ):
        self.config = config or DispatchConfig()
        self.notifier = notifier
        self.recorder = recorder or InconsistencyRecorder()

        self.geo_index = GeoIndex()
        self.dispatch = DispatchEngine(
            self.geo_index,
            max_distance_meters=self.config.max_distance_meters,
            candidate_limit=self.config.candidate_limit,
        )
        self.order_machine = OrderStateMachine(notifier)
        self.delivery_machine = DeliveryStateMachine(
            self.dispatch,
            notifier,
            max_redispatches=self.config.max_redispatches,
        )
        self.enforcer = ConsistencyEnforcer(
            self.order_machine,
            self.delivery_machine,
            self.recorder,
        )
        self.driver_service = DriverService(notifier)

    @property
    def orders(self):
        return current_domain.repository_for(Order)

    @property
    def deliveries(self):
        return current_domain.repository_for(Delivery)

    @property
    def drivers(self):
        return current_domain.repository_for(Driver)

    # -------------------------------------------------------------------
    # Delivery lifecycle
    # -------------------------------------------------------------------
    def create_delivery(self, order_id: str, driver_id: str | None = None) -> Delivery:
        """Dispatch a driver for a ready (or confirmed) order."""
        order = self.orders.get(order_id)
        if OrderStatus(order.status) not in DISPATCHABLE_STATES:
            raise IllegalStateError({"order_id": [f"Order {order_id} is {order.status}, not ready for delivery"]})

        delivery_id = str(uuid4())
        if driver_id:
            driver = self.dispatch.claim_driver(driver_id, delivery_id)
        else:
            origin = order.delivery_address.coordinates
            if origin is None:
                raise ValidationError(
                    {"delivery_address": ["Coordinates are required to dispatch a driver automatically"]}
                )
            driver = self.dispatch.reserve_driver(origin, order.area_tag, delivery_id)

        try:
            delivery = Delivery(
                id=delivery_id,
                order_id=order.id,
                driver_id=driver.id,
                current_location=DeliveryLocation.at(driver.coordinates) if driver.coordinates else None,
                estimated_time=self.estimate_arrival(driver, order),
            )
            delivery, order = self.enforcer.open_delivery(order, delivery)
        except Exception:
            self.dispatch.release_driver(driver.id, delivery_id)
            raise

        self.delivery_machine.notify_dispatched(delivery, order, driver.display_name)
        return delivery

    def advance_status(self, delivery_id: str, status: str, failure_reason: str | None = None) -> Delivery:
        target = _parse_status(DeliveryStatus, status)
        delivery = self.deliveries.get(delivery_id)

        # Going back to picked_up is a redispatch, never a bare status write
        if target == DeliveryStatus.PICKED_UP and delivery.status == DeliveryStatus.FAILED.value:
            return self.reassign(delivery_id)

        delivery, _ = self.enforcer.apply_delivery_transition(delivery, target.value, failure_reason)
        return delivery

    def cancel(self, delivery_id: str, reason: str) -> Delivery:
        delivery = self.deliveries.get(delivery_id)
        if delivery.is_terminal:
            raise AlreadyTerminalError({"delivery_id": [f"Delivery {delivery_id} is already {delivery.status}"]})

        delivery, _ = self.enforcer.apply_delivery_transition(delivery, DeliveryStatus.FAILED.value, reason)
        return delivery

    def reassign(self, delivery_id: str, driver_id: str | None = None) -> Delivery:
        """Move the delivery to another driver, or redispatch a failed one."""
        delivery = self.deliveries.get(delivery_id)
        if delivery.status == DeliveryStatus.DELIVERED.value:
            raise AlreadyTerminalError({"delivery_id": [f"Delivery {delivery_id} is already delivered"]})
        if delivery.status == DeliveryStatus.FAILED.value:
            self.delivery_machine.assert_can_redispatch(delivery)

        order = self.orders.get(delivery.order_id)

        def rebind(driver: Driver):
            return self.enforcer.rebind_driver(delivery, driver.id, self.estimate_arrival(driver, order))

        driver, (delivery, order) = self.dispatch.reassign(
            delivery.id,
            delivery.driver_id,
            order.delivery_address.coordinates,
            order.area_tag,
            rebind,
            explicit_driver_id=driver_id,
        )

        self.delivery_machine.notify_reassigned(delivery, order, driver.display_name)
        return delivery

    # -------------------------------------------------------------------
    # Order lifecycle
    # -------------------------------------------------------------------
    def advance_order(self, order_id: str, status: str, reason: str | None = None) -> Order:
        """Apply a vendor or customer driven order transition."""
        target = _parse_status(OrderStatus, status)
        order = self.orders.get(order_id)
        order, _ = self.enforcer.apply_order_transition(order, target.value, reason)
        return order

    # -------------------------------------------------------------------
    # Drivers and tracking
    # -------------------------------------------------------------------
    def update_driver_location(self, driver_id: str, lat: float, lng: float) -> Driver:
        try:
            coordinates = Coordinates(lat=lat, lng=lng)
        except PydanticValidationError as exc:
            raise from_pydantic(exc) from exc

        driver = self.drivers.update_location(driver_id, coordinates)
        for delivery in self.deliveries.find_active_for_driver(driver_id):
            self.deliveries.update_location(delivery.id, coordinates)

        logger.debug("Driver location updated", driver_id=driver_id, lat=lat, lng=lng)
        return driver

    def rate_driver(self, driver_id: str, rating: float) -> Driver:
        return self.driver_service.rate(driver_id, rating)

    def verify_driver(self, driver_id: str, is_verified: bool = True) -> Driver:
        return self.driver_service.verify(driver_id, is_verified)

    def driver_stats(self, driver_id: str) -> DriverStats:
        return self.driver_service.stats(driver_id)

    def active_deliveries_for_driver(self, driver_id: str) -> list[Delivery]:
        self.drivers.get(driver_id)
        return self.deliveries.find_active_for_driver(driver_id)

    def track(self, delivery_id: str) -> TrackingInfo:
        delivery = self.deliveries.get(delivery_id)
        order = self.orders.get(delivery.order_id)
        driver = self.drivers.get(delivery.driver_id)

        position = delivery.coordinates or driver.coordinates
        destination = order.delivery_address.coordinates

        distance_km = None
        minutes_remaining = None
        if position is not None and destination is not None:
            distance_km = round(haversine_km(position, destination), 3)
            minutes_remaining = round(distance_km / self.config.average_speed_kmh * 60, 1)

        return TrackingInfo(
            delivery_id=str(delivery.id),
            order_id=str(order.id),
            driver_id=str(driver.id),
            status=delivery.status,
            current_location=position,
            estimated_time=delivery.estimated_time,
            distance_km=distance_km,
            minutes_remaining=minutes_remaining,
            last_location_update=driver.location.last_updated if driver.location else None,
        )

    def estimate_arrival(self, driver: Driver, order: Order, now: datetime | None = None) -> datetime:
        """Straight-line ETA at the configured average speed."""
        now = now or datetime.now(UTC)
        destination = order.delivery_address.coordinates
        if driver.coordinates is None or destination is None:
            minutes = self.config.default_eta_minutes
        else:
            minutes = haversine_km(driver.coordinates, destination) / self.config.average_speed_kmh * 60
        return now + timedelta(minutes=minutes)
