"""
Geographic primitives: the GeoPoint value type and great-circle distance.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict

from open_status.core.errors import InvalidArgument

EARTH_RADIUS_METERS = 6_371_000.0


def validate_coordinates(latitude: float, longitude: float) -> None:
    """
    Reject coordinates outside the WGS84 range.

    Raises:
        InvalidArgument: If either value is non-numeric, non-finite or out of range
    """
    for name, value, bound in (("latitude", latitude, 90.0), ("longitude", longitude, 180.0)):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise InvalidArgument(f"{name} must be a number, got {value!r}")
        if not math.isfinite(value):
            raise InvalidArgument(f"{name} must be finite, got {value!r}")
        if value < -bound or value > bound:
            raise InvalidArgument(f"{name} {value} outside [-{bound:g}, {bound:g}]")


@dataclass(frozen=True)
class GeoPoint:
    """
    An immutable latitude/longitude pair in decimal degrees.

    Attributes:
        latitude: Degrees north, in [-90, 90]
        longitude: Degrees east, in [-180, 180]
    """

    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        validate_coordinates(self.latitude, self.longitude)

    def to_dict(self) -> Dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GeoPoint":
        """Build a point from a record-store mapping."""
        try:
            return cls(latitude=data["latitude"], longitude=data["longitude"])
        except (KeyError, TypeError) as e:
            raise InvalidArgument(f"Malformed location mapping: {data!r}") from e


def distance(a: GeoPoint, b: GeoPoint) -> float:
    """
    Great-circle distance between two points in meters (haversine).

    Uses a spherical earth of radius 6,371 km; identical points give 0.0.
    """
    lat1, lon1, lat2, lon2 = map(math.radians, (a.latitude, a.longitude, b.latitude, b.longitude))
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    # Clamp guards against h drifting past 1.0 for antipodal points
    return 2 * EARTH_RADIUS_METERS * math.asin(math.sqrt(min(1.0, h)))
