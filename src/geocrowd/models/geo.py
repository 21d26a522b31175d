"""
Geographic Models
=================

Points and decoded cells.

A GeoPoint is a WGS84 latitude/longitude pair in degrees. Range checks
happen here, at the model boundary; the codec assumes valid input.

A DecodedCell is the centroid of a geohash cell plus its half-height
(lat_error) and half-width (lng_error) in degrees.
"""

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field


class GeoPoint(BaseModel):
    """
    Latitude/longitude pair in degrees.

    Attributes:
        latitude: Degrees north, in [-90, 90]
        longitude: Degrees east, in [-180, 180]
    """

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(
        ...,
        ge=-90.0,
        le=90.0,
        description="Latitude in degrees [-90, 90]",
    )

    longitude: float = Field(
        ...,
        ge=-180.0,
        le=180.0,
        description="Longitude in degrees [-180, 180]",
    )

    def __repr__(self) -> str:
        return f"GeoPoint({self.latitude:.6f}, {self.longitude:.6f})"


@dataclass(frozen=True, slots=True)
class DecodedCell:
    """
    Result of decoding a geohash cell.

    Attributes:
        latitude: Latitude of the cell centroid
        longitude: Longitude of the cell centroid
        lat_error: Half the cell height in degrees
        lng_error: Half the cell width in degrees
    """

    latitude: float
    longitude: float
    lat_error: float
    lng_error: float

    def contains(self, latitude: float, longitude: float) -> bool:
        """Whether a point lies inside the cell bounds (edges inclusive)."""
        return (
            abs(latitude - self.latitude) <= self.lat_error
            and abs(longitude - self.longitude) <= self.lng_error
        )

    def to_dict(self) -> dict:
        """Export as dictionary for serialization."""
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "lat_error": self.lat_error,
            "lng_error": self.lng_error,
        }
