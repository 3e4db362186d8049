"""Repository for the Delivery aggregate."""

from datetime import UTC, datetime

import structlog

from fulfillment.delivery.delivery import Delivery, DeliveryLocation
from fulfillment.domain import fulfillment
from shared.errors import ConflictError
from shared.repository import CompareAndSetRepository, write_lock

logger = structlog.get_logger(__name__)


@fulfillment.repository(part_of=Delivery)
class DeliveryRepository(CompareAndSetRepository):
    """``create`` refuses a second active delivery for the same order.

    ``conditional_update_status`` has the same compare-and-set contract as
    the order repository.
    """

    def create(self, delivery: Delivery) -> Delivery:
        with write_lock():
            if self.find_active_for_order(delivery.order_id) is not None:
                raise ConflictError({"order_id": [f"Order {delivery.order_id} already has an active delivery"]})
            self.add(delivery)
            return self.get(delivery.id)

    def remove(self, delivery_id: str) -> None:
        """Delete a delivery whose creation is being compensated."""
        with write_lock():
            self._dao.delete(self.get(delivery_id))

    def conditional_update_status(
        self,
        delivery_id: str,
        expected_status: str,
        new_status: str,
        *,
        expected_version: int | None = None,
        **changes,
    ) -> Delivery | None:
        def expected(delivery):
            if delivery.status != expected_status:
                return False
            return expected_version is None or delivery._version == expected_version

        updated = self.compare_and_set(
            delivery_id,
            expected,
            {**changes, "status": new_status, "updated_at": datetime.now(UTC)},
        )
        if updated is not None:
            logger.debug(
                "Delivery status written", delivery_id=delivery_id, status=new_status, version=updated._version
            )
        return updated

    def update_location(self, delivery_id: str, coordinates) -> Delivery | None:
        """Refresh the current location of an active delivery."""
        return self.compare_and_set(
            delivery_id,
            lambda delivery: delivery.is_active,
            {"current_location": DeliveryLocation.at(coordinates), "updated_at": datetime.now(UTC)},
        )

    def find_active_for_order(self, order_id: str) -> Delivery | None:
        active = [delivery for delivery in self._find(order_id=order_id) if delivery.is_active]
        return active[0] if active else None

    def find_active_for_driver(self, driver_id: str) -> list[Delivery]:
        return [delivery for delivery in self._find(driver_id=driver_id) if delivery.is_active]

    def find_for_driver(self, driver_id: str) -> list[Delivery]:
        return self._find(driver_id=driver_id)

    def find_latest_for_order(self, order_id: str) -> Delivery | None:
        """Most recent delivery of the order, terminal or not."""
        matches = self._find(order_id=order_id)
        if not matches:
            return None
        return max(matches, key=lambda delivery: delivery.created_utc)
