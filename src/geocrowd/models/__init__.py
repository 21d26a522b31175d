"""
Data Models
===========

Pydantic models for GeoCrowd.

This module re-exports all data models for convenient access.

Models:
    Geo:
        - GeoPoint: Validated latitude/longitude pair
        - DecodedCell: Cell centroid plus error bounds

    Entities:
        - SpatialEntity: Base document with location and cell
        - Event, Signal: Indexed documents

    Density:
        - TierLevel, DensityTier, DensityState

    Query:
        - ProximityQuery, ProximityMatch
"""

from geocrowd.models.geo import DecodedCell, GeoPoint
from geocrowd.models.density import DensityState, DensityTier, TierLevel
from geocrowd.models.entity import Event, Signal, SpatialEntity
from geocrowd.models.query import ProximityMatch, ProximityQuery

__all__ = [
    # Geo
    "GeoPoint",
    "DecodedCell",
    # Density
    "TierLevel",
    "DensityTier",
    "DensityState",
    # Entities
    "SpatialEntity",
    "Event",
    "Signal",
    # Query
    "ProximityQuery",
    "ProximityMatch",
]
