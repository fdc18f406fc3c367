"""
CivicTrack - Geospatial Utilities
Great-circle distance, radius containment and bounding boxes used by the
geofence and the radius filter.
"""

import math
from typing import Any, Dict
from dataclasses import dataclass

from civictrack.core.errors import FieldViolation, InvalidCoordinate, ValidationError

# Earth's radius in kilometers
EARTH_RADIUS_KM = 6371.0

# Approximate kilometers per degree of latitude
KM_PER_DEGREE = 111.0

# Floor for cos(latitude) so longitude spans stay finite near the poles
MIN_COS_LATITUDE = 0.01


@dataclass(frozen=True)
class GeoPoint:
    """Geographic point with latitude and longitude."""
    latitude: float
    longitude: float

    def to_dict(self) -> Dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GeoPoint":
        return cls(latitude=data["latitude"], longitude=data["longitude"])


@dataclass(frozen=True)
class BoundingBox:
    """Geographic bounding box."""
    west: float   # min longitude
    south: float  # min latitude
    east: float   # max longitude
    north: float  # max latitude

    def contains(self, point: GeoPoint) -> bool:
        """Check if a point is within the bounding box."""
        return (
            self.west <= point.longitude <= self.east and
            self.south <= point.latitude <= self.north
        )

    @property
    def crosses_antimeridian(self) -> bool:
        return self.west < -180 or self.east > 180

    @property
    def contains_pole(self) -> bool:
        """A box clamped at a pole spans every longitude around it."""
        return self.north >= 90 or self.south <= -90


def is_valid_coordinates(latitude: Any, longitude: Any) -> bool:
    """Check latitude/longitude are finite numbers inside their ranges."""
    if isinstance(latitude, bool) or isinstance(longitude, bool):
        return False
    if not isinstance(latitude, (int, float)) or not isinstance(longitude, (int, float)):
        return False
    if not (math.isfinite(latitude) and math.isfinite(longitude)):
        return False
    return -90 <= latitude <= 90 and -180 <= longitude <= 180


def validate_coordinates(latitude: Any, longitude: Any, field: str = "location") -> None:
    """Raise InvalidCoordinate unless the pair is a valid position."""
    if not is_valid_coordinates(latitude, longitude):
        raise InvalidCoordinate(latitude, longitude, field=field)


def validate_point(point: GeoPoint, field: str = "location") -> GeoPoint:
    validate_coordinates(point.latitude, point.longitude, field=field)
    return point


def haversine_distance(
    lat1: float, lon1: float,
    lat2: float, lon2: float
) -> float:
    """
    Calculate the great-circle distance between two points on Earth.

    Args:
        lat1, lon1: First point coordinates in decimal degrees
        lat2, lon2: Second point coordinates in decimal degrees

    Returns:
        Distance in kilometers
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_lat / 2) ** 2 +
        math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lon / 2) ** 2
    )
    # Rounding can push a slightly above 1 for antipodal points
    a = min(1.0, a)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def distance_km(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance between two validated points in kilometers."""
    validate_point(a)
    validate_point(b)
    return haversine_distance(a.latitude, a.longitude, b.latitude, b.longitude)


def is_within_radius(center: GeoPoint, point: GeoPoint, radius_km: float) -> bool:
    """True when ``point`` lies on or inside the circle around ``center``."""
    _validate_radius(radius_km)
    return distance_km(center, point) <= radius_km


def bounding_box(center: GeoPoint, radius_km: float) -> BoundingBox:
    """
    Approximate box enclosing the circle of ``radius_km`` around ``center``.

    Latitude edges are clamped to the poles. Longitude edges are left
    unclamped so callers can detect a box that crosses the antimeridian.
    When the circle reaches a pole the box is clamped there and
    ``contains_pole`` is set; its longitude edges then bound nothing.

    The longitude span is never narrower than the circle's true extent, so
    every point within ``radius_km`` falls inside the box.
    """
    validate_point(center)
    _validate_radius(radius_km)

    true_cos_lat = abs(math.cos(math.radians(center.latitude)))
    cos_lat = max(true_cos_lat, MIN_COS_LATITUDE)
    lat_delta = radius_km / KM_PER_DEGREE
    lng_delta = radius_km / (KM_PER_DEGREE * cos_lat)

    # Widest longitude offset of the circle: asin(sin(d) / cos(lat))
    reach = math.sin(min(radius_km / EARTH_RADIUS_KM, math.pi / 2))
    if reach < true_cos_lat:
        lng_delta = max(lng_delta, math.degrees(math.asin(reach / true_cos_lat)))

    return BoundingBox(
        west=center.longitude - lng_delta,
        south=max(-90.0, center.latitude - lat_delta),
        east=center.longitude + lng_delta,
        north=min(90.0, center.latitude + lat_delta),
    )


def format_coordinates(latitude: float, longitude: float, precision: int = 6) -> str:
    """Format coordinates for display."""
    return f"{latitude:.{precision}f}, {longitude:.{precision}f}"


def _validate_radius(radius_km: Any) -> None:
    if isinstance(radius_km, bool) or not isinstance(radius_km, (int, float)) \
            or not math.isfinite(radius_km) or radius_km < 0:
        raise ValidationError([FieldViolation("radius_km", "Radius must be a non-negative number", radius_km)])
