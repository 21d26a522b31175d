"""
Proximity Query Models
======================

Input and output types of the proximity search service.

A query is restartable: it carries no cursor state, and running it twice
against an unchanged store yields the same ordered result.
"""

from dataclasses import dataclass

from pydantic import BaseModel, Field

from geocrowd.models.entity import SpatialEntity
from geocrowd.models.geo import GeoPoint


class ProximityQuery(BaseModel):
    """
    "What is within radius_km of origin?"

    Attributes:
        origin: Query center
        radius_km: Search radius in kilometers
    """

    origin: GeoPoint = Field(..., description="Query center")
    radius_km: float = Field(..., gt=0, description="Search radius (km)")


@dataclass(frozen=True, slots=True)
class ProximityMatch:
    """One entity within the query radius, with its exact distance."""

    entity: SpatialEntity
    distance_km: float

    def __repr__(self) -> str:
        return f"ProximityMatch(id={self.entity.id!r}, distance_km={self.distance_km:.4f})"
