"""Great-circle geofence containment."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable

from hris_engine.exceptions import ValidationError

EARTH_RADIUS_METERS = 6_371_000.0


@dataclass(frozen=True)
class GeoPoint:
    """WGS84 coordinate in decimal degrees."""

    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not -90.0 <= self.latitude <= 90.0:
            raise ValidationError(f"Latitude {self.latitude} out of range")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValidationError(f"Longitude {self.longitude} out of range")


@dataclass(frozen=True)
class Geofence:
    """Circular inclusion zone around a site center."""

    site_id: int
    center: GeoPoint
    radius_meters: float


@dataclass(frozen=True)
class GeofenceMatch:
    """Outcome of checking a point against a set of geofences."""

    within: bool
    site_id: int | None
    distance_meters: float


def distance(p1: GeoPoint, p2: GeoPoint) -> float:
    """Haversine distance in meters."""
    lat1 = math.radians(p1.latitude)
    lat2 = math.radians(p2.latitude)
    dlat = lat2 - lat1
    dlon = math.radians(p2.longitude - p1.longitude)

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c


def is_within(point: GeoPoint, center: GeoPoint, radius_meters: float) -> bool:
    return distance(point, center) <= radius_meters


def match_geofences(point: GeoPoint, fences: Iterable[Geofence]) -> GeofenceMatch:
    """Find a containing geofence, or report the nearest one.

    The point is accepted by the closest fence that contains it. When none
    contains it, the minimum distance over all fences is reported. An empty
    fence list never matches.
    """
    best_inside: tuple[float, int] | None = None
    nearest: tuple[float, int] | None = None

    for fence in fences:
        d = distance(point, fence.center)
        if nearest is None or d < nearest[0]:
            nearest = (d, fence.site_id)
        if d <= fence.radius_meters and (best_inside is None or d < best_inside[0]):
            best_inside = (d, fence.site_id)

    if best_inside is not None:
        return GeofenceMatch(within=True, site_id=best_inside[1], distance_meters=best_inside[0])
    if nearest is not None:
        return GeofenceMatch(within=False, site_id=nearest[1], distance_meters=nearest[0])
    return GeofenceMatch(within=False, site_id=None, distance_meters=math.inf)
