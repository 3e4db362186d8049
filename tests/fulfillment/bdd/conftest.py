"""Shared BDD fixtures and step definitions for delivery fulfillment."""

import pytest
from pytest_bdd import given, parsers, then


@pytest.fixture()
def error():
    """Container for captured domain errors."""
    return {"exc": None}


@pytest.fixture()
def drivers_by_name():
    return {}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('a ready order for "{area}"'), target_fixture="order")
def ready_order(make_order, area):
    return make_order(status="ready", neighborhood=area)


@given(parsers.cfparse('a verified driver "{name}" rated {rating:f} serving "{area}"'))
def verified_driver(make_driver, drivers_by_name, name, rating, area):
    drivers_by_name[name] = make_driver(rating=rating, areas=(area,), name=name)


@given(
    parsers.cfparse('a verified driver "{name}" rated {rating:f} serving "{area}" averaging {minutes:d} minutes')
)
def verified_driver_with_pace(make_driver, drivers_by_name, name, rating, area, minutes):
    drivers_by_name[name] = make_driver(
        rating=rating,
        areas=(area,),
        name=name,
        average_delivery_time=float(minutes),
    )


@given("the order has been dispatched", target_fixture="delivery")
def order_dispatched(orchestrator, order, sink):
    delivery = orchestrator.create_delivery(order.id)
    sink.reset()
    return delivery


@given("the delivery has been delivered", target_fixture="delivery")
def delivery_delivered(orchestrator, delivery, sink):
    orchestrator.advance_status(delivery.id, "in_transit")
    delivered = orchestrator.advance_status(delivery.id, "delivered")
    sink.reset()
    return delivered


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order is "{status}"'))
def order_status_is(orchestrator, order, status):
    assert orchestrator.orders.get(order.id).status == status


@then(parsers.cfparse('the order payment is "{payment_status}"'))
def order_payment_is(orchestrator, order, payment_status):
    assert orchestrator.orders.get(order.id).payment_status == payment_status


@then(parsers.cfparse('the delivery is "{status}"'))
def delivery_status_is(orchestrator, delivery, status):
    assert orchestrator.deliveries.get(delivery.id).status == status


@then(parsers.cfparse('driver "{name}" is available'))
def driver_available(orchestrator, drivers_by_name, name):
    assert orchestrator.drivers.get(drivers_by_name[name].id).is_available is True


@then(parsers.cfparse('driver "{name}" is unavailable'))
def driver_unavailable(orchestrator, drivers_by_name, name):
    assert orchestrator.drivers.get(drivers_by_name[name].id).is_available is False


@then(parsers.cfparse('a "{error_name}" is raised'))
def error_raised(error, error_name):
    assert error["exc"] is not None
    assert type(error["exc"]).__name__ == error_name
