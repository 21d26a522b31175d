"""
Density Tier Classifier
=======================

Pure mapping from a people count to a rendered crowd tier.

Bands (exclusive lower bounds, defaults):
    count > 50  -> DEEP      #8B0000, 200 m
    count > 25  -> ELEVATED  #FF6B6B, 125 m
    otherwise   -> BASE      #FFD700,  75 m

There are exactly three bands. Small crowds (including a single signal)
fall into BASE; there is no separate "sparse" band below 10.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from geocrowd.models.density import DensityState, DensityTier, TierLevel


logger = logging.getLogger(__name__)


BASE_TIER = DensityTier(level=TierLevel.BASE, color_hex="#FFD700", radius_meters=75)
ELEVATED_TIER = DensityTier(level=TierLevel.ELEVATED, color_hex="#FF6B6B", radius_meters=125)
DEEP_TIER = DensityTier(level=TierLevel.DEEP, color_hex="#8B0000", radius_meters=200)


@dataclass
class TierThresholds:
    """
    Thresholds and tiers for classification.

    Loaded from configuration file.
    """

    elevated_above: int = 25
    deep_above: int = 50
    base: DensityTier = field(default_factory=lambda: BASE_TIER)
    elevated: DensityTier = field(default_factory=lambda: ELEVATED_TIER)
    deep: DensityTier = field(default_factory=lambda: DEEP_TIER)


class DensityTierClassifier:
    """
    Classifies people counts into tiers.

    Example:
        classifier = DensityTierClassifier()
        classifier.classify(30).level   # TierLevel.ELEVATED
    """

    def __init__(self, thresholds: Optional[TierThresholds] = None) -> None:
        """
        Initialize classifier.

        Args:
            thresholds: Band thresholds and tiers (defaults if None)
        """
        self.thresholds = thresholds or TierThresholds()
        if self.thresholds.deep_above <= self.thresholds.elevated_above:
            raise ValueError("deep_above must be greater than elevated_above")

        logger.info(
            f"DensityTierClassifier initialized: "
            f"elevated>{self.thresholds.elevated_above}, "
            f"deep>{self.thresholds.deep_above}"
        )

    def classify(self, people_count: int) -> DensityTier:
        """Tier for a people count."""
        if people_count < 0:
            raise ValueError("people_count must be non-negative")

        if people_count > self.thresholds.deep_above:
            return self.thresholds.deep
        if people_count > self.thresholds.elevated_above:
            return self.thresholds.elevated
        return self.thresholds.base

    def state_for(self, people_count: int) -> DensityState:
        """DensityState for a people count."""
        return DensityState(people_count=people_count, tier=self.classify(people_count))


_default_classifier: Optional[DensityTierClassifier] = None


def classify(people_count: int) -> DensityTier:
    """Classify with the default thresholds."""
    global _default_classifier
    if _default_classifier is None:
        _default_classifier = DensityTierClassifier()
    return _default_classifier.classify(people_count)
