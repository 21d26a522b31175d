"""
GeoCrowd
========

Geospatial proximity indexing and crowd-density aggregation engine.

This package lets a point-location query ("what is near (lat, lng) within
R km?") run against a document store that only supports exact-match and
lexicographic range queries on indexed string fields, and keeps a per-signal
crowd tier convergent as signals near a point are created or removed.

Components:
    - geo: geohash codec, neighbor resolver, range planner, distance
    - search: proximity search service (plan, scan, merge, filter, sort)
    - density: tier classifier and cell-group aggregation engine
    - events: mutation queue and recompute workers
    - store: document store protocol and in-memory implementation

Example:
    from geocrowd.geo import encode, cells_covering
    from geocrowd.models import GeoPoint

    cell = encode(37.7749, -122.4194, 6)   # "9q8yyk"
    prefixes = cells_covering(GeoPoint(latitude=37.7749, longitude=-122.4194), 5.0)

    # The HTTP service is started via FastAPI application
    # See main.py for entry point
"""

__version__ = "0.1.0"
__author__ = "GeoCrowd Project"

__all__ = [
    "__version__",
]
