"""DriverService: operator and customer actions on a driver's profile.

Ratings fold into a running mean, verification gates dispatch, and the
statistics view summarizes a driver's track record from the driver and its
deliveries.
"""

import structlog
from protean.utils.globals import current_domain
from pydantic import BaseModel, ConfigDict

from drivers.driver.driver import Driver
from fulfillment.delivery.delivery import Delivery, DeliveryStatus
from notifications.notification.notification import NotificationType
from notifications.notifier import Notifier
from shared.errors import ConflictError, ValidationError

logger = structlog.get_logger(__name__)

MIN_RATING = 1
MAX_RATING = 5


class DriverStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    driver_id: str
    rating: float
    review_count: int
    total_deliveries: int
    completed_deliveries: int
    completion_rate: float
    average_delivery_time: float
    delivered_count: int
    failed_count: int
    is_available: bool
    is_verified: bool


class DriverService:
    def __init__(self, notifier: Notifier):
        self.notifier = notifier

    @property
    def drivers(self):
        return current_domain.repository_for(Driver)

    @property
    def deliveries(self):
        return current_domain.repository_for(Delivery)

    def rate(self, driver_id: str, rating: float) -> Driver:
        if rating is None or not MIN_RATING <= rating <= MAX_RATING:
            raise ValidationError({"rating": [f"Rating must be between {MIN_RATING} and {MAX_RATING}"]})

        driver = self.drivers.record_rating(driver_id, rating)
        if driver is None:
            raise ConflictError({"driver_id": [f"Driver {driver_id} was modified concurrently"]})

        logger.info("Driver rated", driver_id=driver_id, rating=rating, average=driver.rating, reviews=driver.review_count)
        return driver

    def verify(self, driver_id: str, is_verified: bool = True) -> Driver:
        """Set the verification flag and tell the driver. Repeating the current state is a no-op."""
        driver = self.drivers.set_verified(driver_id, is_verified)
        if driver is None:
            return self.drivers.get(driver_id)

        logger.info("Driver verification changed", driver_id=driver_id, is_verified=is_verified)
        self.notifier.notify(
            driver.user_id,
            NotificationType.DRIVER_VERIFICATION.value,
            {"is_verified": is_verified},
        )
        return driver

    def stats(self, driver_id: str) -> DriverStats:
        driver = self.drivers.get(driver_id)
        deliveries = self.deliveries.find_for_driver(driver_id)

        completion_rate = 0.0
        if driver.total_deliveries:
            completion_rate = round(driver.completed_deliveries / driver.total_deliveries, 4)

        return DriverStats(
            driver_id=str(driver.id),
            rating=driver.rating,
            review_count=driver.review_count,
            total_deliveries=driver.total_deliveries,
            completed_deliveries=driver.completed_deliveries,
            completion_rate=completion_rate,
            average_delivery_time=round(driver.average_delivery_time, 2),
            delivered_count=sum(d.status == DeliveryStatus.DELIVERED.value for d in deliveries),
            failed_count=sum(d.status == DeliveryStatus.FAILED.value for d in deliveries),
            is_available=driver.is_available,
            is_verified=driver.is_verified,
        )
