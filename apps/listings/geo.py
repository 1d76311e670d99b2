"""Great-circle helpers for radius search.

The database narrows candidates with a latitude/longitude bounding box;
the exact distance is then computed here.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

EARTH_RADIUS_MILES = 3958.8
MILES_PER_DEGREE_LAT = 69.0


@dataclass(frozen=True)
class BoundingBox:
    min_lat: float
    max_lat: float
    min_lng: float | None
    max_lng: float | None

    def as_filter(self) -> dict[str, float]:
        lookups = {"latitude__gte": self.min_lat, "latitude__lte": self.max_lat}
        if self.min_lng is not None and self.max_lng is not None:
            lookups.update(longitude__gte=self.min_lng, longitude__lte=self.max_lng)
        return lookups


def haversine_miles(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Distance in statute miles between two points."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_MILES * math.asin(min(1.0, math.sqrt(a)))


def bounding_box(lat: float, lng: float, radius_miles: float) -> BoundingBox:
    """Box enclosing the circle of ``radius_miles`` around a point.

    Longitude bounds are dropped near the poles or when the box would
    cross the antimeridian; the haversine pass still filters exactly.
    """
    lat_delta = radius_miles / MILES_PER_DEGREE_LAT
    min_lat = max(-90.0, lat - lat_delta)
    max_lat = min(90.0, lat + lat_delta)

    cos_lat = math.cos(math.radians(lat))
    if cos_lat < 1e-6 or max_lat >= 90.0 or min_lat <= -90.0:
        return BoundingBox(min_lat, max_lat, None, None)

    lng_delta = radius_miles / (MILES_PER_DEGREE_LAT * cos_lat)
    min_lng, max_lng = lng - lng_delta, lng + lng_delta
    if min_lng < -180.0 or max_lng > 180.0:
        return BoundingBox(min_lat, max_lat, None, None)
    return BoundingBox(min_lat, max_lat, min_lng, max_lng)


def rank_by_distance(
    rows: list[tuple[object, float, float]],
    lat: float,
    lng: float,
    radius_miles: float,
) -> list[tuple[object, float]]:
    """Keep rows ``(key, lat, lng)`` within the radius, nearest first."""
    ranked = []
    for key, row_lat, row_lng in rows:
        distance = haversine_miles(lat, lng, float(row_lat), float(row_lng))
        if distance <= radius_miles:
            ranked.append((key, round(distance, 2)))
    ranked.sort(key=lambda item: item[1])
    return ranked
