"""Fulfillment domain API package."""

from fulfillment.api.routes import delivery_router, driver_router, order_router

__all__ = ["delivery_router", "order_router", "driver_router"]
