"""Delivery aggregate: one driver carrying one order to its address.

State Machine:
    PICKED_UP → IN_TRANSIT → DELIVERED
    {PICKED_UP, IN_TRANSIT} → FAILED
    FAILED → PICKED_UP (redispatch through DispatchEngine.reassign only)

A delivery is active while it is not terminal. At most one active delivery
exists per order and per driver.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Identifier, Integer, String, ValueObject

from fulfillment.domain import fulfillment
from shared.value_objects import Coordinates


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class DeliveryStatus(Enum):
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    FAILED = "failed"


class FailureOrigin(Enum):
    DELIVERY = "delivery"
    ORDER = "order"


# State machine transition map
_VALID_TRANSITIONS = {
    DeliveryStatus.PICKED_UP: {DeliveryStatus.IN_TRANSIT, DeliveryStatus.FAILED},
    DeliveryStatus.IN_TRANSIT: {DeliveryStatus.DELIVERED, DeliveryStatus.FAILED},
    DeliveryStatus.DELIVERED: set(),  # Terminal
    DeliveryStatus.FAILED: set(),  # Terminal, except for the redispatch edge below
}

# Never applied as a plain status write
_REDISPATCH_TRANSITIONS = {
    DeliveryStatus.FAILED: {DeliveryStatus.PICKED_UP},
}

_TERMINAL_STATES = {DeliveryStatus.DELIVERED, DeliveryStatus.FAILED}

FAILURE_ORIGIN_DELIVERY = FailureOrigin.DELIVERY.value
FAILURE_ORIGIN_ORDER = FailureOrigin.ORDER.value


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@fulfillment.value_object(part_of="Delivery")
class DeliveryLocation:
    """Where the delivery was last seen, copied from its driver."""

    latitude = Float(required=True, min_value=-90.0, max_value=90.0)
    longitude = Float(required=True, min_value=-180.0, max_value=180.0)

    @classmethod
    def at(cls, coordinates: Coordinates) -> "DeliveryLocation":
        return cls(latitude=coordinates.lat, longitude=coordinates.lng)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@fulfillment.aggregate
class Delivery:
    order_id = Identifier(required=True)
    driver_id = Identifier(required=True)
    status = String(
        max_length=50,
        choices=DeliveryStatus,
        default=DeliveryStatus.PICKED_UP.value,
    )
    current_location = ValueObject(DeliveryLocation)
    estimated_time = DateTime()
    failure_reason = String(max_length=500)
    failure_origin = String(max_length=20, choices=FailureOrigin)
    redispatch_count = Integer(default=0, min_value=0)
    created_at = DateTime(default=_utcnow)
    updated_at = DateTime(default=_utcnow)

    @invariant.post
    def failed_delivery_has_reason(self):
        if self.status == DeliveryStatus.FAILED.value and not (self.failure_reason or "").strip():
            raise ValidationError({"failure_reason": ["A failed delivery needs a failure reason"]})

    @property
    def is_terminal(self) -> bool:
        return DeliveryStatus(self.status) in _TERMINAL_STATES

    @property
    def is_active(self) -> bool:
        return not self.is_terminal

    @property
    def coordinates(self) -> Coordinates | None:
        if self.current_location is None:
            return None
        return Coordinates(lat=self.current_location.latitude, lng=self.current_location.longitude)

    @property
    def created_utc(self) -> datetime:
        # SQLite hands datetimes back without a zone; they were written in UTC
        if self.created_at.tzinfo is None:
            return self.created_at.replace(tzinfo=UTC)
        return self.created_at

    def minutes_since_creation(self, now: datetime | None = None) -> float:
        now = now or datetime.now(UTC)
        return max((now - self.created_utc).total_seconds() / 60.0, 0.0)
