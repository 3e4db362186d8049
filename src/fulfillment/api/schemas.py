"""Pydantic API schemas for the Fulfillment domain.

These are the external API contracts, separate from the aggregates.
The API layer translates between these schemas and orchestrator calls.
"""

from datetime import datetime

from pydantic import BaseModel


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------
class CreateDeliveryRequest(BaseModel):
    order_id: str
    driver_id: str | None = None


class AdvanceDeliveryStatusRequest(BaseModel):
    status: str
    failure_reason: str | None = None


class CancelDeliveryRequest(BaseModel):
    reason: str


class ReassignDeliveryRequest(BaseModel):
    driver_id: str | None = None


class AdvanceOrderStatusRequest(BaseModel):
    status: str
    reason: str | None = None


class UpdateDriverLocationRequest(BaseModel):
    lat: float
    lng: float


class RateDriverRequest(BaseModel):
    rating: float


class VerifyDriverRequest(BaseModel):
    is_verified: bool = True


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------
class LocationResponse(BaseModel):
    lat: float
    lng: float


class DeliveryResponse(BaseModel):
    delivery_id: str
    order_id: str
    driver_id: str
    status: str
    current_location: LocationResponse | None = None
    estimated_time: datetime | None = None
    failure_reason: str | None = None
    redispatch_count: int = 0


class OrderStatusResponse(BaseModel):
    order_id: str
    status: str
    payment_status: str
    estimated_delivery_time: datetime | None = None
    actual_delivery_time: datetime | None = None


class TrackingResponse(BaseModel):
    delivery_id: str
    order_id: str
    driver_id: str
    status: str
    current_location: LocationResponse | None = None
    estimated_time: datetime | None = None
    distance_km: float | None = None
    minutes_remaining: float | None = None
    last_location_update: datetime | None = None


class DriverLocationResponse(BaseModel):
    driver_id: str
    location: LocationResponse
    active_delivery_ids: list[str]


class DriverResponse(BaseModel):
    driver_id: str
    rating: float
    review_count: int
    is_verified: bool
    is_available: bool


class DriverStatsResponse(BaseModel):
    driver_id: str
    rating: float
    review_count: int
    total_deliveries: int
    completed_deliveries: int
    completion_rate: float
    average_delivery_time: float
    delivered_count: int
    failed_count: int
    is_available: bool
    is_verified: bool
