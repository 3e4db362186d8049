"""FastAPI routes for the Fulfillment domain."""

from contextlib import contextmanager

from fastapi import APIRouter, Depends, HTTPException

from drivers.driver.driver import Driver
from fulfillment.api.schemas import (
    AdvanceDeliveryStatusRequest,
    AdvanceOrderStatusRequest,
    CancelDeliveryRequest,
    CreateDeliveryRequest,
    DeliveryResponse,
    DriverLocationResponse,
    DriverResponse,
    DriverStatsResponse,
    LocationResponse,
    OrderStatusResponse,
    RateDriverRequest,
    ReassignDeliveryRequest,
    TrackingResponse,
    UpdateDriverLocationRequest,
    VerifyDriverRequest,
)
from fulfillment.bootstrap import get_orchestrator
from fulfillment.delivery.delivery import Delivery
from fulfillment.orchestrator import FulfillmentOrchestrator
from ordering.order.order import Order
from shared.errors import (
    ConflictError,
    IllegalStateError,
    InvalidTransitionError,
    NoCapacityError,
    ObjectNotFoundError,
    ValidationError,
    error_payload,
)

# Most specific first: InvalidTransitionError is a ValidationError
_STATUS_CODES = (
    (InvalidTransitionError, 409),
    (ValidationError, 400),
    (ObjectNotFoundError, 404),
    (IllegalStateError, 409),
    (ConflictError, 409),
    (NoCapacityError, 503),
)

_HANDLED = tuple(error_cls for error_cls, _ in _STATUS_CODES)


@contextmanager
def _translate_errors():
    """Map domain errors onto their HTTP status codes."""
    try:
        yield
    except _HANDLED as exc:
        status_code = next(code for error_cls, code in _STATUS_CODES if isinstance(exc, error_cls))
        raise HTTPException(status_code=status_code, detail=error_payload(exc)) from exc


def _location(coordinates) -> LocationResponse | None:
    if coordinates is None:
        return None
    return LocationResponse(lat=coordinates.lat, lng=coordinates.lng)


def _delivery_response(delivery: Delivery) -> DeliveryResponse:
    return DeliveryResponse(
        delivery_id=str(delivery.id),
        order_id=str(delivery.order_id),
        driver_id=str(delivery.driver_id),
        status=delivery.status,
        current_location=_location(delivery.coordinates),
        estimated_time=delivery.estimated_time,
        failure_reason=delivery.failure_reason,
        redispatch_count=delivery.redispatch_count,
    )


def _driver_response(driver: Driver) -> DriverResponse:
    return DriverResponse(
        driver_id=str(driver.id),
        rating=driver.rating,
        review_count=driver.review_count,
        is_verified=driver.is_verified,
        is_available=driver.is_available,
    )


def _order_response(order: Order) -> OrderStatusResponse:
    return OrderStatusResponse(
        order_id=str(order.id),
        status=order.status,
        payment_status=order.payment_status,
        estimated_delivery_time=order.estimated_delivery_time,
        actual_delivery_time=order.actual_delivery_time,
    )


# ---------------------------------------------------------------------------
# Delivery Router
# ---------------------------------------------------------------------------
delivery_router = APIRouter(prefix="/deliveries", tags=["deliveries"])


@delivery_router.post("", status_code=201, response_model=DeliveryResponse)
async def create_delivery(
    body: CreateDeliveryRequest,
    orchestrator: FulfillmentOrchestrator = Depends(get_orchestrator),
) -> DeliveryResponse:
    """Dispatch a driver for a ready order."""
    with _translate_errors():
        delivery = orchestrator.create_delivery(body.order_id, body.driver_id)
    return _delivery_response(delivery)


@delivery_router.put("/{delivery_id}/status", response_model=DeliveryResponse)
async def advance_delivery_status(
    delivery_id: str,
    body: AdvanceDeliveryStatusRequest,
    orchestrator: FulfillmentOrchestrator = Depends(get_orchestrator),
) -> DeliveryResponse:
    """Move a delivery to in_transit, delivered or failed."""
    with _translate_errors():
        delivery = orchestrator.advance_status(delivery_id, body.status, body.failure_reason)
    return _delivery_response(delivery)


@delivery_router.put("/{delivery_id}/cancel", response_model=DeliveryResponse)
async def cancel_delivery(
    delivery_id: str,
    body: CancelDeliveryRequest,
    orchestrator: FulfillmentOrchestrator = Depends(get_orchestrator),
) -> DeliveryResponse:
    with _translate_errors():
        delivery = orchestrator.cancel(delivery_id, body.reason)
    return _delivery_response(delivery)


@delivery_router.put("/{delivery_id}/reassign", response_model=DeliveryResponse)
async def reassign_delivery(
    delivery_id: str,
    body: ReassignDeliveryRequest,
    orchestrator: FulfillmentOrchestrator = Depends(get_orchestrator),
) -> DeliveryResponse:
    """Hand the delivery to another driver, chosen explicitly or by dispatch."""
    with _translate_errors():
        delivery = orchestrator.reassign(delivery_id, body.driver_id)
    return _delivery_response(delivery)


@delivery_router.get("/{delivery_id}/tracking", response_model=TrackingResponse)
async def track_delivery(
    delivery_id: str,
    orchestrator: FulfillmentOrchestrator = Depends(get_orchestrator),
) -> TrackingResponse:
    with _translate_errors():
        info = orchestrator.track(delivery_id)
    return TrackingResponse(
        **info.model_dump(exclude={"current_location"}),
        current_location=_location(info.current_location),
    )


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.put("/{order_id}/status", response_model=OrderStatusResponse)
async def advance_order_status(
    order_id: str,
    body: AdvanceOrderStatusRequest,
    orchestrator: FulfillmentOrchestrator = Depends(get_orchestrator),
) -> OrderStatusResponse:
    """Vendor and customer driven order transitions (confirm, prepare, ready, cancel)."""
    with _translate_errors():
        order = orchestrator.advance_order(order_id, body.status, body.reason)
    return _order_response(order)


# ---------------------------------------------------------------------------
# Driver Router
# ---------------------------------------------------------------------------
driver_router = APIRouter(prefix="/drivers", tags=["drivers"])


@driver_router.put("/{driver_id}/location", response_model=DriverLocationResponse)
async def update_driver_location(
    driver_id: str,
    body: UpdateDriverLocationRequest,
    orchestrator: FulfillmentOrchestrator = Depends(get_orchestrator),
) -> DriverLocationResponse:
    with _translate_errors():
        driver = orchestrator.update_driver_location(driver_id, body.lat, body.lng)
        active = orchestrator.active_deliveries_for_driver(driver_id)
    return DriverLocationResponse(
        driver_id=str(driver.id),
        location=_location(driver.coordinates),
        active_delivery_ids=[str(delivery.id) for delivery in active],
    )


@driver_router.put("/{driver_id}/rating", response_model=DriverResponse)
async def rate_driver(
    driver_id: str,
    body: RateDriverRequest,
    orchestrator: FulfillmentOrchestrator = Depends(get_orchestrator),
) -> DriverResponse:
    """Record one customer rating (1 to 5) in the driver's running average."""
    with _translate_errors():
        driver = orchestrator.rate_driver(driver_id, body.rating)
    return _driver_response(driver)


@driver_router.put("/{driver_id}/verification", response_model=DriverResponse)
async def verify_driver(
    driver_id: str,
    body: VerifyDriverRequest,
    orchestrator: FulfillmentOrchestrator = Depends(get_orchestrator),
) -> DriverResponse:
    with _translate_errors():
        driver = orchestrator.verify_driver(driver_id, body.is_verified)
    return _driver_response(driver)


@driver_router.get("/{driver_id}/stats", response_model=DriverStatsResponse)
async def driver_stats(
    driver_id: str,
    orchestrator: FulfillmentOrchestrator = Depends(get_orchestrator),
) -> DriverStatsResponse:
    with _translate_errors():
        stats = orchestrator.driver_stats(driver_id)
    return DriverStatsResponse(**stats.model_dump())
