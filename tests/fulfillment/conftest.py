from itertools import count

import pytest
from drivers.driver.driver import Driver, DriverLocation
from fulfillment.config import DispatchConfig
from fulfillment.orchestrator import FulfillmentOrchestrator
from notifications.notifier import Notifier
from notifications.sink.fake_sink import FakeNotificationSink
from ordering.order.order import Order

# Baixa, Maputo
BAIXA = {"lat": -25.9692, "lng": 32.5732}

_sequence = count(1)


@pytest.fixture()
def sink():
    return FakeNotificationSink()


@pytest.fixture()
def orchestrator(sink):
    return FulfillmentOrchestrator(Notifier(sink), config=DispatchConfig())


@pytest.fixture()
def make_order(orchestrator):
    """Factory: store an order and return it."""

    def _make(status="ready", coordinates=BAIXA, neighborhood="Baixa", customer_id="cust-001", vendor_id="vendor-001"):
        order = Order.create(
            customer_id=customer_id,
            vendor_id=vendor_id,
            items_data=[{"product_id": "prod-matapa", "quantity": 2, "unit_price": 150.0}],
            delivery_address={
                "street": "Av. 25 de Setembro 1020",
                "neighborhood": neighborhood,
                "city": "Maputo",
                "coordinates": coordinates,
            },
            delivery_fee=50.0,
            tax=15.0,
            status=status,
            payment_status="paid",
        )
        return orchestrator.orders.add(order)

    return _make


@pytest.fixture()
def make_driver(orchestrator):
    """Factory: register a verified driver near Baixa and return it."""

    def _make(rating=4.0, lat=-25.9680, lng=32.5745, areas=("Baixa",), **overrides):
        n = next(_sequence)
        data = {
            "user_id": f"user-{n}",
            "name": f"Driver {n}",
            "license_number": f"MZ-{n:04d}",
            "location": DriverLocation(latitude=lat, longitude=lng),
            "is_verified": True,
            "rating": rating,
        }
        data.update(overrides)
        return orchestrator.drivers.add(Driver.register(delivery_areas=list(areas), **data))

    return _make


@pytest.fixture()
def dispatched(orchestrator, make_order, make_driver):
    """A ready order dispatched to a single driver: returns (order, driver, delivery)."""
    order = make_order()
    driver = make_driver()
    delivery = orchestrator.create_delivery(order.id)
    return order, driver, delivery
