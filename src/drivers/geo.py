"""GeoIndex: nearest available drivers around a pickup origin.

Distances are great-circle distances on a spherical Earth (Haversine).
Having no qualifying driver is a normal outcome and yields an empty list.
"""

import math

from protean.utils.globals import current_domain

from drivers.driver.driver import Driver
from shared.value_objects import Coordinates

EARTH_RADIUS_KM = 6371.0


def haversine_km(origin: Coordinates, destination: Coordinates) -> float:
    """Great-circle distance in kilometers."""
    lat1 = math.radians(origin.lat)
    lat2 = math.radians(destination.lat)
    delta_lat = math.radians(destination.lat - origin.lat)
    delta_lng = math.radians(destination.lng - origin.lng)

    a = math.sin(delta_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(delta_lng / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def haversine_meters(origin: Coordinates, destination: Coordinates) -> float:
    return haversine_km(origin, destination) * 1000.0


class GeoIndex:
    @property
    def drivers(self):
        return current_domain.repository_for(Driver)

    def find_candidates(
        self,
        origin: Coordinates,
        area_tag: str,
        max_distance_meters: float,
        limit: int,
        exclude: set[str] | frozenset[str] = frozenset(),
    ) -> list[Driver]:
        """Available, verified drivers serving ``area_tag`` within range of ``origin``.

        Ordered by rating (highest first), then average delivery time
        (fastest first), then distance. Each driver appears at most once.
        """
        ranked: dict[str, tuple[tuple, Driver]] = {}
        for driver in self.drivers.find_claimable():
            if driver.id in exclude or driver.id in ranked:
                continue
            if not (driver.is_available and driver.is_verified and driver.serves(area_tag)):
                continue
            if driver.coordinates is None:
                continue

            distance = haversine_meters(origin, driver.coordinates)
            if distance > max_distance_meters:
                continue

            ranked[driver.id] = ((-driver.rating, driver.average_delivery_time, distance, driver.id), driver)

        ordered = sorted(ranked.values(), key=lambda entry: entry[0])
        return [driver for _, driver in ordered[:limit]]
