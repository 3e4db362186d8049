"""DispatchEngine: selects and atomically reserves exactly one driver.

Candidates come from a GeoIndex snapshot; each is claimed with a
compare-and-set on the driver. A lost claim means a concurrent request got
the driver first, so the engine moves on to the next candidate. When a whole
snapshot is lost to rivals the index is queried again without the drivers
already tried, and capacity only runs out once a fresh query comes back empty.
"""

from collections.abc import Callable

import structlog
from protean.utils.globals import current_domain

from drivers.driver.driver import Driver
from drivers.geo import GeoIndex
from shared.errors import NoCapacityError, ValidationError
from shared.value_objects import Coordinates

logger = structlog.get_logger(__name__)


class DispatchEngine:
    def __init__(
        self,
        geo_index: GeoIndex | None = None,
        max_distance_meters: float = 5000.0,
        candidate_limit: int = 10,
    ):
        self.geo_index = geo_index or GeoIndex()
        self.max_distance_meters = max_distance_meters
        self.candidate_limit = candidate_limit

    @property
    def drivers(self):
        return current_domain.repository_for(Driver)

    def reserve_driver(
        self,
        origin: Coordinates,
        area_tag: str,
        delivery_id: str,
        max_distance_meters: float | None = None,
        exclude: set[str] | frozenset[str] = frozenset(),
    ) -> Driver:
        """Claim the best available driver near ``origin`` for ``delivery_id``."""
        max_distance = max_distance_meters if max_distance_meters is not None else self.max_distance_meters
        tried = set(exclude)
        queries = 0

        while True:
            candidates = self.geo_index.find_candidates(
                origin,
                area_tag,
                max_distance,
                self.candidate_limit,
                exclude=frozenset(tried),
            )
            queries += 1
            if not candidates:
                break

            for candidate in candidates:
                claimed = self.drivers.conditional_claim(candidate.id, delivery_id)
                if claimed is not None:
                    logger.info(
                        "Driver reserved",
                        driver_id=claimed.id,
                        delivery_id=delivery_id,
                        area_tag=area_tag,
                    )
                    return claimed
                tried.add(candidate.id)
                logger.warning(
                    "Driver claim lost, trying next candidate",
                    driver_id=candidate.id,
                    delivery_id=delivery_id,
                )

        logger.info(
            "No driver capacity",
            area_tag=area_tag,
            queries=queries,
            lost_claims=len(tried) - len(exclude),
            delivery_id=delivery_id,
        )
        raise NoCapacityError({"driver": [f"No available driver found in area '{area_tag}'"]})

    def claim_driver(self, driver_id: str, delivery_id: str) -> Driver:
        """Directly claim an explicitly chosen driver."""
        claimed = self.drivers.conditional_claim(driver_id, delivery_id)
        if claimed is None:
            raise NoCapacityError({"driver_id": [f"Driver {driver_id} is not available"]})
        logger.info("Driver reserved", driver_id=driver_id, delivery_id=delivery_id, explicit=True)
        return claimed

    def release_driver(self, driver_id: str, delivery_id: str | None = None) -> bool:
        """Return the driver to the available pool. Releasing an available driver is a no-op."""
        released = self.drivers.release(driver_id, delivery_id)
        if released:
            logger.info("Driver released", driver_id=driver_id, delivery_id=delivery_id)
        return released

    def reassign(
        self,
        delivery_id: str,
        previous_driver_id: str,
        origin: Coordinates | None,
        area_tag: str,
        rebind: Callable[[Driver], object],
        explicit_driver_id: str | None = None,
        release_previous: bool = True,
    ) -> tuple[Driver, object]:
        """Move a delivery to a new driver.

        Claims the new driver, lets ``rebind`` record it on the delivery and,
        once that succeeded, releases the previous driver. If ``rebind``
        raises, the new driver is released again and the error propagates.
        """
        if explicit_driver_id:
            new_driver = self.claim_driver(explicit_driver_id, delivery_id)
        else:
            if origin is None:
                raise ValidationError(
                    {"delivery_address": ["Coordinates are required to dispatch a driver automatically"]}
                )
            new_driver = self.reserve_driver(
                origin,
                area_tag,
                delivery_id,
                exclude={previous_driver_id},
            )

        try:
            result = rebind(new_driver)
        except Exception:
            if new_driver.id != previous_driver_id:
                self.release_driver(new_driver.id, delivery_id)
            raise

        if release_previous and previous_driver_id != new_driver.id:
            self.release_driver(previous_driver_id, delivery_id)

        return new_driver, result
