"""
Range Planner
=============

Chooses the cell prefixes to scan for a radius query.

A fixed radius -> precision table picks a cell size on the order of the
radius; the center cell plus its 8 neighbors are returned as prefixes.

Coverage is a heuristic, not a proof: near a precision band boundary
the ring may miss part of the disk (false negatives) or scan more area
than needed. The exact-distance post-filter only discards false
positives; it never recovers entities outside the scanned cells.
"""

import logging
from typing import List, Optional, Sequence, Tuple

from geocrowd.geo.codec import encode
from geocrowd.geo.neighbors import neighbors
from geocrowd.models.geo import GeoPoint


logger = logging.getLogger(__name__)


# (max radius km, precision); None marks the catch-all band
PrecisionTable = Sequence[Tuple[Optional[float], int]]

DEFAULT_PRECISION_TABLE: PrecisionTable = (
    (0.02, 8),   # ~20 m
    (0.15, 7),   # ~150 m
    (1.2, 6),    # ~1.2 km
    (5.0, 5),    # ~5 km
    (20.0, 4),   # ~20 km
    (80.0, 3),   # ~80 km
    (None, 2),   # ~300 km+
)

# Sorts after every alphabet character; upper bound of a prefix scan
PREFIX_SENTINEL = "\uf8ff"


def precision_for_radius(
    radius_km: float,
    table: PrecisionTable = DEFAULT_PRECISION_TABLE,
) -> int:
    """
    Precision of the first band whose max radius covers `radius_km`.

    Smaller radius -> longer cell string.
    """
    for max_radius_km, precision in table:
        if max_radius_km is None or radius_km <= max_radius_km:
            return precision
    return table[-1][1]


def cells_covering(
    origin: GeoPoint,
    radius_km: float,
    table: PrecisionTable = DEFAULT_PRECISION_TABLE,
) -> List[str]:
    """
    Prefixes whose union approximately covers the search disk.

    Args:
        origin: Query center
        radius_km: Search radius in kilometers
        table: Radius -> precision bands

    Returns:
        Center cell followed by its neighbors (N, S, E, W, NE, NW, SE, SW),
        duplicates removed. Nine cells away from the poles.
    """
    precision = precision_for_radius(radius_km, table)
    center = encode(origin.latitude, origin.longitude, precision)
    cells = list(dict.fromkeys([center, *neighbors(center)]))

    logger.debug(
        f"Planned {len(cells)} prefixes at precision {precision} "
        f"for radius {radius_km}km around {origin!r}"
    )
    return cells


def prefix_range(prefix: str) -> Tuple[str, str]:
    """
    Lexicographic [lower, upper) bounds matching every cell that starts
    with `prefix`, including the prefix itself.
    """
    return prefix, prefix + PREFIX_SENTINEL
