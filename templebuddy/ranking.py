from __future__ import annotations

import math

from templebuddy.domain import Coordinates, Directory, Facility, FacilityId, same_facility

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in kilometers."""
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)
    a = (math.sin(dlat / 2) ** 2 +
         math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) *
         math.sin(dlng / 2) ** 2)
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def distance_km(a: Coordinates, b: Coordinates) -> float:
    if not a.is_resolved or not b.is_resolved:
        return math.inf
    return haversine_km(a.latitude, a.longitude, b.latitude, b.longitude)


def nearby_with_distance(
    directory: Directory, origin_facility_id: FacilityId, count: int = 3
) -> list[tuple[Facility, float]]:
    origin = directory.get(origin_facility_id)
    if origin is None or not origin.coordinates.is_resolved or count <= 0:
        return []

    candidates = [
        (f, distance_km(origin.coordinates, f.coordinates))
        for f in directory.facilities
        if not same_facility(f.id, origin.id)
    ]
    # Unresolved facilities come out as inf; drop them instead of sorting them last.
    candidates = [(f, d) for f, d in candidates if math.isfinite(d)]
    # sorted() is stable: equal distances keep directory order.
    candidates.sort(key=lambda item: item[1])
    return candidates[:count]


def nearby(directory: Directory, origin_facility_id: FacilityId, count: int = 3) -> list[Facility]:
    """The `count` closest facilities to the origin, closest first, origin excluded."""
    return [f for f, _ in nearby_with_distance(directory, origin_facility_id, count)]
