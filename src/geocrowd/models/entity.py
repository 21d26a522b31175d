"""
Spatial Entity Models
=====================

Documents indexed by geohash cell.

Every SpatialEntity carries a denormalized `cell` field: the geohash of its
`location` at the configured precision. The cell is an index key only and is
re-derived from `location` whenever a location is written (see
geocrowd.handlers). A stored cell that was not just derived from the
location is never trusted.

Entities:
    - Event: a hosted gathering at a point
    - Signal: a participant's "I'm here" marker, carrying a DensityState
"""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field

from geocrowd.models.density import DensityState
from geocrowd.models.geo import GeoPoint


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SpatialEntity(BaseModel):
    """
    Base for documents with a location.

    Attributes:
        id: Document id
        location: Point the entity sits at
        cell: Geohash of location, used as the range-scan index key
    """

    id: str = Field(..., min_length=1, description="Document id")
    location: GeoPoint = Field(..., description="Entity location")
    cell: str = Field(..., min_length=1, max_length=12, description="Geohash index key")


class Event(SpatialEntity):
    """A hosted event."""

    title: str = Field(..., min_length=1, description="Event title")
    host_id: str = Field(..., min_length=1, description="Hosting user id")
    radius_meters: float = Field(default=60.0, gt=0, description="Event footprint")
    tags: List[str] = Field(default_factory=list, description="Free-form tags")
    starts_at: Optional[datetime] = Field(default=None, description="Start time")
    ends_at: Optional[datetime] = Field(default=None, description="End time")
    created_at: datetime = Field(default_factory=_utcnow, description="Creation time")


class Signal(SpatialEntity):
    """
    A participation signal at a location.

    The density field is derived; only the aggregation engine and the
    creation handler write it.
    """

    event_id: str = Field(..., min_length=1, description="Event this signal joins")
    user_id: str = Field(..., min_length=1, description="Signalling user id")
    signal_strength: int = Field(default=1, ge=1, le=5, description="Strength 1-5")
    density: DensityState = Field(..., description="Derived crowd state")
    created_at: datetime = Field(default_factory=_utcnow, description="Creation time")
    updated_at: datetime = Field(default_factory=_utcnow, description="Last update time")
