"""Driver aggregate: a courier's position, availability and track record.

Availability is a reservation flag: a driver is unavailable exactly while
bound (``active_delivery_id``) to one non-terminal delivery.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String, Text, ValueObject

from fulfillment.domain import fulfillment
from shared.value_objects import Coordinates


class VehicleType(Enum):
    MOTORCYCLE = "motorcycle"
    CAR = "car"
    BICYCLE = "bicycle"


@fulfillment.value_object(part_of="Driver")
class DriverLocation:
    """Last reported position of a driver."""

    latitude = Float(required=True, min_value=-90.0, max_value=90.0)
    longitude = Float(required=True, min_value=-180.0, max_value=180.0)
    last_updated = DateTime()

    @classmethod
    def at(cls, coordinates: Coordinates, when: datetime | None = None) -> "DriverLocation":
        return cls(latitude=coordinates.lat, longitude=coordinates.lng, last_updated=when or datetime.now(UTC))

    @property
    def coordinates(self) -> Coordinates:
        return Coordinates(lat=self.latitude, lng=self.longitude)


@fulfillment.aggregate
class Driver:
    user_id = Identifier(required=True)
    name = String(max_length=255, default="")
    license_number = String(required=True, max_length=50)
    vehicle_type = String(
        max_length=20,
        choices=VehicleType,
        default=VehicleType.MOTORCYCLE.value,
    )
    location = ValueObject(DriverLocation)
    is_available = Boolean(default=True)
    is_verified = Boolean(default=False)
    rating = Float(default=0.0, min_value=0.0, max_value=5.0)
    review_count = Integer(default=0, min_value=0)
    total_deliveries = Integer(default=0, min_value=0)
    completed_deliveries = Integer(default=0, min_value=0)
    average_delivery_time = Float(default=0.0, min_value=0.0)  # minutes
    delivery_areas = Text()  # JSON list of area tags
    accepted_payment_methods = Text()  # JSON list
    active_delivery_id = Identifier()

    @invariant.post
    def completed_never_exceeds_total(self):
        if (self.completed_deliveries or 0) > (self.total_deliveries or 0):
            raise ValidationError({"completed_deliveries": ["Cannot exceed total deliveries"]})

    @classmethod
    def register(cls, delivery_areas=(), accepted_payment_methods=(), **data) -> "Driver":
        """Create a driver profile serving ``delivery_areas``."""
        return cls(
            delivery_areas=json.dumps(list(delivery_areas)),
            accepted_payment_methods=json.dumps(list(accepted_payment_methods)),
            **data,
        )

    @property
    def display_name(self) -> str:
        return self.name or self.license_number

    @property
    def coordinates(self) -> Coordinates | None:
        return self.location.coordinates if self.location else None

    @property
    def areas(self) -> list[str]:
        return json.loads(self.delivery_areas) if self.delivery_areas else []

    @property
    def payment_methods(self) -> list[str]:
        return json.loads(self.accepted_payment_methods) if self.accepted_payment_methods else []

    def serves(self, area_tag: str) -> bool:
        return area_tag in self.areas
