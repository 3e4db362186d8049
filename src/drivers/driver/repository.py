"""Repository for the Driver aggregate.

Every availability change is a compare-and-set on the stored driver: a claim
only succeeds against an available, verified driver, and a release only
frees a driver still bound to the delivery that asks.
"""

import structlog

from drivers.driver.driver import Driver, DriverLocation
from fulfillment.domain import fulfillment
from shared.repository import CompareAndSetRepository
from shared.value_objects import Coordinates

logger = structlog.get_logger(__name__)


def running_mean(previous_average: float, count: int, sample: float) -> float:
    """Mean of ``count`` samples given the mean of the first ``count - 1``."""
    return (previous_average * (count - 1) + sample) / count


@fulfillment.repository(part_of=Driver)
class DriverRepository(CompareAndSetRepository):
    def list_all(self) -> list[Driver]:
        return self._find()

    def find_claimable(self) -> list[Driver]:
        """Available, verified drivers, the pool dispatch ranks candidates from."""
        return self._find(is_available=True, is_verified=True)

    def conditional_claim(self, driver_id: str, delivery_id: str) -> Driver | None:
        """Flip an available, verified driver to unavailable and bind it to the delivery.

        Increments ``total_deliveries`` in the same step. Returns None when the
        driver was not claimable.
        """
        return self.compare_and_set(
            driver_id,
            lambda driver: driver.is_available and driver.is_verified,
            lambda driver: {
                "is_available": False,
                "active_delivery_id": delivery_id,
                "total_deliveries": driver.total_deliveries + 1,
            },
        )

    def release(self, driver_id: str, delivery_id: str | None = None) -> bool:
        """Make the driver available again. Idempotent.

        With ``delivery_id``, only a driver still bound to that delivery is
        released. Returns True when this call changed the driver.
        """

        def bound(driver):
            if driver.is_available:
                return False
            return delivery_id is None or driver.active_delivery_id == delivery_id

        released = self.compare_and_set(driver_id, bound, {"is_available": True, "active_delivery_id": None})
        return released is not None

    def complete_delivery(self, driver_id: str, delivery_id: str, duration_minutes: float) -> Driver | None:
        """Release the driver and record one completed delivery of the given duration."""

        def completion(driver):
            completed = driver.completed_deliveries + 1
            return {
                "is_available": True,
                "active_delivery_id": None,
                "completed_deliveries": completed,
                "average_delivery_time": running_mean(driver.average_delivery_time, completed, duration_minutes),
            }

        return self.compare_and_set(
            driver_id,
            lambda driver: not driver.is_available and driver.active_delivery_id == delivery_id,
            completion,
        )

    def update_location(self, driver_id: str, coordinates: Coordinates) -> Driver:
        return self.compare_and_set(driver_id, lambda driver: True, {"location": DriverLocation.at(coordinates)})

    def record_rating(self, driver_id: str, rating: float) -> Driver:
        """Fold one customer rating into the driver's running mean."""

        def rated(driver):
            reviews = driver.review_count + 1
            return {"review_count": reviews, "rating": round(running_mean(driver.rating, reviews, rating), 2)}

        return self.compare_and_set(driver_id, lambda driver: True, rated)

    def set_verified(self, driver_id: str, is_verified: bool) -> Driver | None:
        """Returns None when the driver already had the requested verification state."""
        return self.compare_and_set(
            driver_id,
            lambda driver: driver.is_verified != is_verified,
            {"is_verified": is_verified},
        )
