"""
CivicTrack - Core Utilities
Central configuration, logging, errors and geospatial helpers.
"""

from civictrack.core.config import settings, get_settings
from civictrack.core.geo_utils import (
    GeoPoint,
    BoundingBox,
    distance_km,
    is_within_radius,
    bounding_box,
    validate_coordinates,
)

__all__ = [
    "settings",
    "get_settings",
    "GeoPoint",
    "BoundingBox",
    "distance_km",
    "is_within_radius",
    "bounding_box",
    "validate_coordinates",
]
