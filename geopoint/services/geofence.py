from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from geopoint.errors import ApiError
from geopoint.services.directory import get_zones_for_user
from geopoint.services.geo import distance_meters


@dataclass(frozen=True, slots=True)
class GeofenceMatch:
    ok: bool
    zone_name: str
    distance_m: float


class OutsideAllZonesError(Exception):
    def __init__(self, *, lat: float, lon: float, closest_distance_m: float | None) -> None:
        super().__init__("outside all zones")
        self.lat = lat
        self.lon = lon
        self.closest_distance_m = closest_distance_m


def no_zones_configured() -> ApiError:
    return ApiError(
        status_code=400,
        code="NO_ZONES_CONFIGURED",
        message="No work location is configured for this user.",
    )


def is_within_any_zone(db: Session, user_id: int, lat: float, lon: float) -> GeofenceMatch:
    """Match a coordinate against company-wide zones and the user's own zones.

    A zone without owner applies to everybody; a zone with an owner applies only
    to that user. The first zone whose radius contains the point wins.

    Raises ``ApiError`` (``NO_ZONES_CONFIGURED``) when the user has no zone at
    all and ``OutsideAllZonesError`` when none of them contains the point.
    """
    zones = get_zones_for_user(db, user_id)
    if not zones:
        raise no_zones_configured()

    closest_distance: float | None = None
    for zone in zones:
        zone_distance_m = distance_meters(lat, lon, float(zone.latitude), float(zone.longitude))
        if closest_distance is None or zone_distance_m < closest_distance:
            closest_distance = zone_distance_m
        if zone_distance_m <= zone.radius_m:
            return GeofenceMatch(ok=True, zone_name=zone.name, distance_m=zone_distance_m)

    raise OutsideAllZonesError(lat=lat, lon=lon, closest_distance_m=closest_distance)
