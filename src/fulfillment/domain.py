"""Domain initialization and configuration.

Orders, drivers and deliveries register on one domain: every fulfillment
operation writes across them synchronously, so they share a provider.
"""

import importlib
import threading

import structlog
from protean.domain import Domain

from fulfillment.utils.db import database_config

logger = structlog.get_logger(__name__)

# Domain Composition Root
fulfillment = Domain(name="fulfillment")

# Modules whose decorators register aggregates and repositories on the domain
_REGISTERED_MODULES = (
    "ordering.order.order",
    "ordering.order.repository",
    "drivers.driver.driver",
    "drivers.driver.repository",
    "fulfillment.delivery.delivery",
    "fulfillment.delivery.repository",
)

_init_lock = threading.Lock()
_initialized = False


def init_domain(database_uri: str | None = None) -> Domain:
    """Register every aggregate and repository, then initialize the domain once.

    ``database_uri`` switches the default provider from memory to SQLite or
    PostgreSQL. It only takes effect on the first call.
    """
    global _initialized
    with _init_lock:
        if _initialized:
            return fulfillment

        if database_uri:
            fulfillment.config["databases"]["default"] = database_config(database_uri)

        for module in _REGISTERED_MODULES:
            importlib.import_module(module)

        fulfillment.init(traverse=False)
        _initialized = True
        logger.info("Fulfillment domain initialized", provider=fulfillment.config["databases"]["default"]["provider"])
        return fulfillment
