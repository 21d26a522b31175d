"""
Search Module
=============

Proximity search over geohash-indexed collections.
"""

from geocrowd.search.service import ProximitySearchService

__all__ = ["ProximitySearchService"]
