"""Structured records of Order/Delivery pairs left out of step.

Written when a compensating rollback itself fails, so a reconciliation job
can find the pair and repair it.
"""

import threading
from datetime import UTC, datetime

import structlog
from pydantic import BaseModel, ConfigDict, Field

logger = structlog.get_logger(__name__)


class InconsistencyRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    operation: str
    order_id: str
    delivery_id: str | None = None
    order_status: str | None = None
    delivery_status: str | None = None
    detail: str = ""
    recorded_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class InconsistencyRecorder:
    def __init__(self):
        self._records: list[InconsistencyRecord] = []
        self._lock = threading.Lock()

    def record(self, **fields) -> InconsistencyRecord:
        record = InconsistencyRecord(**fields)
        with self._lock:
            self._records.append(record)
        logger.error("Order and delivery out of step", **record.model_dump(exclude={"recorded_at"}))
        return record

    @property
    def records(self) -> list[InconsistencyRecord]:
        with self._lock:
            return list(self._records)

    def reset(self) -> None:
        with self._lock:
            self._records.clear()
