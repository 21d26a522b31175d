"""
Proximity Search Service
========================

Answers "what is within R km of a point?" against a store that only
offers lexicographic range scans.

Pipeline:
    1. Plan: cells_covering(origin, radius) -> up to 9 prefixes
    2. Scan: one range scan per prefix, issued concurrently
    3. Merge: union, deduplicated by entity id
    4. Filter: exact Haversine distance, keep distance <= radius
    5. Sort: ascending distance (id breaks ties)

Design Rules:
    - The post-filter is authoritative; cell membership is only a
      candidate optimization
    - No partial results: any failed scan fails the query
      (ProximityQueryFailed), a missed deadline fails it too
      (ProximityQueryTimedOut); outstanding scans are cancelled
    - No cursor state; a query is restartable
"""

import asyncio
import logging
import time
from typing import Dict, List, Optional

from geocrowd.errors import ProximityQueryFailed, ProximityQueryTimedOut
from geocrowd.geo.distance import distance_km
from geocrowd.geo.planner import (
    DEFAULT_PRECISION_TABLE,
    PrecisionTable,
    cells_covering,
    prefix_range,
)
from geocrowd.models.entity import SpatialEntity
from geocrowd.models.query import ProximityMatch, ProximityQuery
from geocrowd.store.base import DocumentStore


logger = logging.getLogger(__name__)


CELL_FIELD = "cell"


class ProximitySearchService:
    """
    Geohash-planned proximity search over one collection.

    Attributes:
        store: Collection to scan
        precision_table: Radius -> precision bands for planning
        timeout: Default deadline in seconds (None = no deadline)

    Example:
        service = ProximitySearchService(signal_store, timeout=5.0)
        query = ProximityQuery(origin=GeoPoint(latitude=37.77, longitude=-122.42), radius_km=1.0)
        for match in await service.find_near(query):
            print(match.entity.id, match.distance_km)
    """

    def __init__(
        self,
        store: DocumentStore,
        precision_table: PrecisionTable = DEFAULT_PRECISION_TABLE,
        timeout: Optional[float] = 5.0,
    ) -> None:
        """
        Initialize search service.

        Args:
            store: Document store holding entities with a `cell` field
            precision_table: Radius -> precision bands
            timeout: Default per-query deadline in seconds
        """
        if timeout is not None and timeout <= 0:
            raise ValueError("timeout must be positive")

        self.store = store
        self.precision_table = precision_table
        self.timeout = timeout

        # Metrics
        self._queries: int = 0
        self._failed: int = 0
        self._timed_out: int = 0
        self._candidates_scanned: int = 0
        self._last_latency_ms: float = 0.0

        logger.info(f"ProximitySearchService initialized: timeout={timeout}s")

    async def find_near(
        self,
        query: ProximityQuery,
        timeout: Optional[float] = None,
        limit: Optional[int] = None,
    ) -> List[ProximityMatch]:
        """
        Find entities within query.radius_km of query.origin.

        Args:
            query: Origin and radius
            timeout: Deadline in seconds for this call (defaults to self.timeout)
            limit: Keep only the nearest `limit` matches

        Returns:
            Matches sorted by ascending distance, each within the radius

        Raises:
            ProximityQueryFailed: A prefix scan failed
            ProximityQueryTimedOut: The deadline passed before all scans returned
        """
        self._queries += 1
        started = time.monotonic()
        deadline = timeout if timeout is not None else self.timeout

        prefixes = cells_covering(query.origin, query.radius_km, self.precision_table)
        candidates = await self._scan_all(prefixes, deadline)
        self._candidates_scanned += len(candidates)

        matches: List[ProximityMatch] = []
        for entity in candidates.values():
            d = distance_km(query.origin, entity.location)
            if d <= query.radius_km:
                matches.append(ProximityMatch(entity=entity, distance_km=d))
        matches.sort(key=lambda m: (m.distance_km, m.entity.id))

        if limit is not None:
            matches = matches[:limit]

        self._last_latency_ms = (time.monotonic() - started) * 1000.0
        logger.debug(
            f"find_near {query.origin!r} r={query.radius_km}km: "
            f"{len(prefixes)} prefixes, {len(candidates)} candidates, "
            f"{len(matches)} matches in {self._last_latency_ms:.1f}ms"
        )
        return matches

    async def _scan_all(
        self,
        prefixes: List[str],
        deadline: Optional[float],
    ) -> Dict[str, SpatialEntity]:
        """Run all prefix scans concurrently and merge by id."""
        tasks = [
            asyncio.create_task(self._scan(prefix), name=f"prefix_scan:{prefix}")
            for prefix in prefixes
        ]

        try:
            gathered = asyncio.gather(*tasks)
            if deadline is not None:
                results = await asyncio.wait_for(gathered, timeout=deadline)
            else:
                results = await gathered
        except asyncio.TimeoutError:
            pending = sum(1 for t in tasks if not t.done())
            self._timed_out += 1
            logger.warning(
                f"Proximity query timed out after {deadline}s "
                f"({pending}/{len(tasks)} scans outstanding)"
            )
            raise ProximityQueryTimedOut(deadline, pending) from None
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

        merged: Dict[str, SpatialEntity] = {}
        for batch in results:
            for entity in batch:
                merged.setdefault(entity.id, entity)
        return merged

    async def _scan(self, prefix: str) -> List[SpatialEntity]:
        """One prefix range scan, store errors mapped to ProximityQueryFailed."""
        lower, upper = prefix_range(prefix)
        try:
            return await self.store.range_query(CELL_FIELD, lower, upper)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._failed += 1
            logger.warning(f"Prefix scan failed for {prefix!r}: {e}")
            raise ProximityQueryFailed(prefix, e) from e

    def get_metrics(self) -> dict:
        """Get service metrics for observability."""
        return {
            "queries": self._queries,
            "failed": self._failed,
            "timed_out": self._timed_out,
            "candidates_scanned": self._candidates_scanned,
            "last_latency_ms": round(self._last_latency_ms, 2),
        }
