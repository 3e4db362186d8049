"""Wires the orchestrator to the domain, sink and settings."""

import os
import threading

import structlog

from fulfillment.config import DispatchConfig
from fulfillment.domain import init_domain
from fulfillment.orchestrator import FulfillmentOrchestrator
from notifications.notifier import Notifier
from notifications.sink import get_sink

logger = structlog.get_logger(__name__)

_orchestrator_instance = None
_orchestrator_lock = threading.Lock()


def build_orchestrator(config: DispatchConfig | None = None) -> FulfillmentOrchestrator:
    """Build an orchestrator over the initialized domain.

    Persistence is selected by the DATABASE_URL environment variable the
    first time the domain is initialized.
    """
    domain = init_domain(os.environ.get("DATABASE_URL"))
    config = config or DispatchConfig.from_env()
    logger.info(
        "Fulfillment orchestrator built",
        provider=domain.config["databases"]["default"]["provider"],
        max_distance_meters=config.max_distance_meters,
        candidate_limit=config.candidate_limit,
    )
    return FulfillmentOrchestrator(Notifier(get_sink()), config=config)


def get_orchestrator() -> FulfillmentOrchestrator:
    """Return the process-wide orchestrator (singleton)."""
    global _orchestrator_instance
    if _orchestrator_instance is None:
        with _orchestrator_lock:
            if _orchestrator_instance is None:
                _orchestrator_instance = build_orchestrator()
    return _orchestrator_instance


def reset_orchestrator():
    """Reset the orchestrator singleton (useful for testing)."""
    global _orchestrator_instance
    with _orchestrator_lock:
        _orchestrator_instance = None
