"""
Density Module
==============

Crowd tier classification and cell-group aggregation.

Components:
    - DensityTierClassifier: people count -> tier (pure)
    - DensityAggregationEngine: recompute a group's state in bounded batches
"""

from geocrowd.density.classifier import (
    BASE_TIER,
    DEEP_TIER,
    ELEVATED_TIER,
    DensityTierClassifier,
    TierThresholds,
    classify,
)
from geocrowd.density.engine import DensityAggregationEngine, RecomputeReport, chunked

__all__ = [
    "BASE_TIER",
    "ELEVATED_TIER",
    "DEEP_TIER",
    "TierThresholds",
    "DensityTierClassifier",
    "classify",
    "DensityAggregationEngine",
    "RecomputeReport",
    "chunked",
]
