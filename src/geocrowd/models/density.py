"""
Density Models
==============

Crowd tier and per-signal density state.

A DensityState is attached 1:1 to a Signal. It is never created or
destroyed on its own: the aggregation engine recomputes it in place for
every signal of a cell group, and it disappears with its signal.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class TierLevel(str, Enum):
    """
    Discrete crowd tiers, ordered by severity.

    Attributes:
        BASE: Up to the elevated threshold (default 25 people)
        ELEVATED: Above the elevated threshold, up to the deep threshold
        DEEP: Above the deep threshold (default 50 people)
    """

    BASE = "BASE"
    ELEVATED = "ELEVATED"
    DEEP = "DEEP"


class DensityTier(BaseModel):
    """
    Visual tier rendered by clients for a crowd.

    Attributes:
        level: Tier level
        color_hex: Fill color, e.g. "#FFD700"
        radius_meters: Rendered circle radius
    """

    model_config = ConfigDict(frozen=True)

    level: TierLevel = Field(..., description="Tier level")
    color_hex: str = Field(..., description="Hex color for rendering")
    radius_meters: int = Field(..., gt=0, description="Rendered radius in meters")


class DensityState(BaseModel):
    """
    Derived crowd state of one signal.

    Attributes:
        people_count: Number of signals sharing the grouping prefix
        tier: Tier classified from people_count
    """

    model_config = ConfigDict(frozen=True)

    people_count: int = Field(..., ge=0, description="Signals in the cell group")
    tier: DensityTier = Field(..., description="Classified tier")
