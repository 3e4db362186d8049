"""Order aggregate: the customer's purchase from a single vendor.

State Machine:
    PENDING → CONFIRMED → PREPARING → READY → OUT_FOR_DELIVERY → DELIVERED
    CONFIRMED → OUT_FOR_DELIVERY (early dispatch)
    {PENDING, CONFIRMED, PREPARING, READY, OUT_FOR_DELIVERY} → CANCELLED
    CANCELLED → OUT_FOR_DELIVERY (reopen, only when a failed delivery is redispatched)

Vendor-driven states are advanced directly; OUT_FOR_DELIVERY, DELIVERED and
(with an active delivery) CANCELLED are reached through the paired Delivery.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String, ValueObject

from fulfillment.domain import fulfillment
from shared.value_objects import Coordinates

_MONEY_TOLERANCE = 0.005


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


# State machine transition map
_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {
        OrderStatus.PREPARING,
        OrderStatus.OUT_FOR_DELIVERY,  # early dispatch
        OrderStatus.CANCELLED,
    },
    OrderStatus.PREPARING: {OrderStatus.READY, OrderStatus.CANCELLED},
    OrderStatus.READY: {OrderStatus.OUT_FOR_DELIVERY, OrderStatus.CANCELLED},
    OrderStatus.OUT_FOR_DELIVERY: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal, except for the reopen edge below
}

# Only reachable through a redispatch of the failed delivery
_REOPEN_TRANSITIONS = {
    OrderStatus.CANCELLED: {OrderStatus.OUT_FOR_DELIVERY},
}

_TERMINAL_STATES = {OrderStatus.DELIVERED, OrderStatus.CANCELLED}

# States in which a delivery may be created for the order
DISPATCHABLE_STATES = {OrderStatus.READY, OrderStatus.CONFIRMED}


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@fulfillment.value_object(part_of="Order")
class DeliveryAddress:
    """Where the order is delivered. The neighborhood doubles as the dispatch area tag.

    Coordinates are optional, but both are required when either is given.
    """

    street = String(required=True, max_length=255)
    neighborhood = String(max_length=100, default="")
    city = String(required=True, max_length=100)
    latitude = Float(min_value=-90.0, max_value=90.0)
    longitude = Float(min_value=-180.0, max_value=180.0)

    @invariant.post
    def both_coordinates_or_neither(self):
        if (self.latitude is None) != (self.longitude is None):
            raise ValidationError({"coordinates": ["Both latitude and longitude are required"]})

    @property
    def coordinates(self) -> Coordinates | None:
        if self.latitude is None:
            return None
        return Coordinates(lat=self.latitude, lng=self.longitude)


@fulfillment.value_object(part_of="Order")
class OrderPricing:
    """Financial summary of an order, locked at checkout."""

    subtotal = Float(required=True, min_value=0.0)
    delivery_fee = Float(default=0.0, min_value=0.0)
    tax = Float(default=0.0, min_value=0.0)
    total = Float(required=True, min_value=0.0)

    @invariant.post
    def total_matches_components(self):
        expected = self.subtotal + (self.delivery_fee or 0.0) + (self.tax or 0.0)
        if abs(self.total - expected) > _MONEY_TOLERANCE:
            raise ValidationError(
                {"total": [f"Total {self.total:.2f} does not equal subtotal + fee + tax ({expected:.2f})"]}
            )


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@fulfillment.entity(part_of="Order")
class OrderItem:
    """A line item: a product reference, quantity and locked unit price."""

    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    line_total = Float(required=True, min_value=0.0)

    @invariant.post
    def line_total_matches_quantity(self):
        if abs(self.line_total - self.quantity * self.unit_price) > _MONEY_TOLERANCE:
            raise ValidationError({"line_total": ["Line total must equal quantity x unit price"]})


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@fulfillment.aggregate
class Order:
    customer_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    items = HasMany(OrderItem)
    delivery_address = ValueObject(DeliveryAddress, required=True)
    status = String(
        max_length=50,
        choices=OrderStatus,
        default=OrderStatus.PENDING.value,
    )
    payment_status = String(
        max_length=50,
        choices=PaymentStatus,
        default=PaymentStatus.PENDING.value,
    )
    payment_method = String(max_length=50, default="cash")
    pricing = ValueObject(OrderPricing, required=True)
    estimated_delivery_time = DateTime()
    actual_delivery_time = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def subtotal_matches_items(self):
        if not self.items:
            return
        item_total = sum(item.line_total for item in self.items)
        if abs(self.pricing.subtotal - item_total) > _MONEY_TOLERANCE:
            raise ValidationError({"pricing": ["Subtotal must equal the sum of line totals"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        customer_id: str,
        vendor_id: str,
        items_data: list[dict],
        delivery_address: dict,
        delivery_fee: float = 0.0,
        tax: float = 0.0,
        payment_method: str = "cash",
        **extra,
    ) -> "Order":
        """Create a pending order, computing line totals and the pricing summary."""
        if not items_data:
            raise ValidationError({"items": ["An order needs at least one item"]})
        try:
            lines = [
                {
                    "product_id": item["product_id"],
                    "quantity": item["quantity"],
                    "unit_price": item["unit_price"],
                    "line_total": item.get("line_total", item["quantity"] * item["unit_price"]),
                }
                for item in items_data
            ]
        except KeyError as exc:
            raise ValidationError({"items": [f"Missing item field: {exc.args[0]}"]}) from exc

        address = dict(delivery_address)
        coordinates = address.pop("coordinates", None)
        if coordinates is not None:
            address["latitude"] = coordinates["lat"]
            address["longitude"] = coordinates["lng"]

        subtotal = round(sum(line["line_total"] for line in lines), 2)
        now = datetime.now(UTC)
        extra.setdefault("created_at", now)
        extra.setdefault("updated_at", now)
        order = cls(
            customer_id=customer_id,
            vendor_id=vendor_id,
            delivery_address=DeliveryAddress(**address),
            payment_method=payment_method,
            pricing=OrderPricing(
                subtotal=subtotal,
                delivery_fee=delivery_fee,
                tax=tax,
                total=round(subtotal + delivery_fee + tax, 2),
            ),
            **extra,
        )
        with atomic_change(order):
            for line in lines:
                order.add_items(OrderItem(**line))
        return order

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def is_terminal(self) -> bool:
        return OrderStatus(self.status) in _TERMINAL_STATES

    @property
    def reference(self) -> str:
        """Short human-facing order reference used in messages."""
        return str(self.id)[-6:]

    @property
    def area_tag(self) -> str:
        return self.delivery_address.neighborhood or ""
