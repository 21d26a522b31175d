"""
Geo Module
==========

Geohash spatial indexing primitives.

Components:
    - codec: encode/decode points to/from base-32 cells
    - neighbors: the 8 cells adjacent to a cell
    - planner: radius -> prefix set for range scans
    - distance: Haversine great-circle distance
"""

from geocrowd.geo.codec import BASE32, decode, encode, encode_point, validate_cell
from geocrowd.geo.neighbors import Direction, Neighbors, adjacent, neighbors
from geocrowd.geo.planner import (
    DEFAULT_PRECISION_TABLE,
    cells_covering,
    precision_for_radius,
    prefix_range,
)
from geocrowd.geo.distance import EARTH_RADIUS_KM, distance_km, haversine_distance_km

__all__ = [
    "BASE32",
    "encode",
    "encode_point",
    "decode",
    "validate_cell",
    "Direction",
    "Neighbors",
    "adjacent",
    "neighbors",
    "DEFAULT_PRECISION_TABLE",
    "cells_covering",
    "precision_for_radius",
    "prefix_range",
    "EARTH_RADIUS_KM",
    "distance_km",
    "haversine_distance_km",
]
