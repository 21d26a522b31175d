"""
Great-Circle Distance
=====================

Haversine distance on a spherical Earth.

Used by proximity search to drop the false positives of a cell-prefix
scan: scanned cells cover more area than the query disk, so every
candidate is re-checked against the exact radius.

Accuracy:
    - Spherical model with a mean radius of 6371 km
    - Error against the WGS84 ellipsoid stays under ~0.5%
    - No input validation; GeoPoint bounds are enforced by the model
"""

import math

from geocrowd.models.geo import GeoPoint


# Mean Earth radius
EARTH_RADIUS_KM = 6371.0


def haversine_distance_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Distance in kilometers between two (lat, lng) pairs given in degrees.

    Example:
        >>> round(haversine_distance_km(0.0, 0.0, 0.0, 1.0), 2)
        111.19
    """
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    half_dphi = math.radians(lat2 - lat1) / 2
    half_dlambda = math.radians(lng2 - lng1) / 2

    h = math.sin(half_dphi) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(half_dlambda) ** 2
    # Rounding can push h just past 1 for antipodal points
    h = min(1.0, h)
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(h))


def distance_km(p1: GeoPoint, p2: GeoPoint) -> float:
    """Distance in kilometers between two points."""
    return haversine_distance_km(p1.latitude, p1.longitude, p2.latitude, p2.longitude)
