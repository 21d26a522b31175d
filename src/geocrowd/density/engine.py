"""
Density Aggregation Engine
==========================

Recomputes people count and tier for every signal of a cell group.

A cell group is the set of signals whose cell shares the first
`grouping_precision` characters (5 characters is roughly 5 km). The
people count is the flat size of the group, applied identically to each
member; it is not distance-weighted.

Consistency Model (eventual, self-healing):
    - A pass reads a snapshot of the group, classifies once, and writes
      the new state to every member whose state differs
    - Writes are chunked to the store's batch limit; chunks are committed
      sequentially and independently (no rollback across chunks)
    - Writes touch only the density fields and require the member's cell
      to be unchanged since the snapshot; a relocated member fails its
      chunk instead of receiving a stale count
    - A failed chunk is logged and skipped; the next mutation in the group
      triggers another full pass
    - The engine holds no locks; RecomputeWorkerPool runs at most one pass
      per group at a time
    - Idempotent: a pass over an unchanged group writes nothing
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterator, List, Optional, Sequence, TypeVar

from geocrowd.density.classifier import DensityTierClassifier
from geocrowd.errors import RecomputeChunkFailed
from geocrowd.geo.codec import validate_cell
from geocrowd.geo.planner import prefix_range
from geocrowd.models.density import DensityState, TierLevel
from geocrowd.models.entity import Signal
from geocrowd.store.base import DocumentStore, FieldUpdate


logger = logging.getLogger(__name__)


T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Split a sequence into consecutive chunks of at most `size` items."""
    if size < 1:
        raise ValueError("size must be >= 1")
    for start in range(0, len(items), size):
        yield items[start:start + size]


@dataclass(frozen=True, slots=True)
class RecomputeReport:
    """
    Outcome of one recompute pass.

    Attributes:
        prefix: Grouping prefix that was recomputed
        people_count: Group size in the snapshot
        tier: Tier level applied to the group
        updated: Signals written successfully
        unchanged: Signals already holding the computed state
        chunks: Batch writes attempted
        failed_chunks: Batch writes that failed
    """

    prefix: str
    people_count: int
    tier: TierLevel
    updated: int
    unchanged: int
    chunks: int
    failed_chunks: int

    @property
    def converged(self) -> bool:
        """Whether every member now holds the computed state."""
        return self.failed_chunks == 0

    def to_dict(self) -> dict:
        """Export as dictionary for logging/serialization."""
        return {
            "prefix": self.prefix,
            "people_count": self.people_count,
            "tier": self.tier.value,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "chunks": self.chunks,
            "failed_chunks": self.failed_chunks,
        }


class DensityAggregationEngine:
    """
    Recomputes DensityState across cell groups.

    Attributes:
        store: Signal collection
        classifier: People count -> tier mapping
        grouping_precision: Prefix length defining a group
        batch_size: Writes per batch chunk (<= store.max_batch_size)

    Example:
        engine = DensityAggregationEngine(signal_store, grouping_precision=5)
        report = await engine.recompute_cell_group(signal.cell)
        print(report.people_count, report.tier)
    """

    def __init__(
        self,
        store: DocumentStore,
        classifier: Optional[DensityTierClassifier] = None,
        grouping_precision: int = 5,
        batch_size: Optional[int] = None,
    ) -> None:
        """
        Initialize aggregation engine.

        Args:
            store: Signal collection with `cell` index and batch writes
            classifier: Tier classifier (default thresholds if None)
            grouping_precision: Prefix length of a density group
            batch_size: Chunk size; capped at store.max_batch_size
        """
        if grouping_precision < 1:
            raise ValueError("grouping_precision must be >= 1")

        limit = store.max_batch_size
        if batch_size is None:
            batch_size = limit
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")

        self.store = store
        self.classifier = classifier or DensityTierClassifier()
        self.grouping_precision = grouping_precision
        self.batch_size = min(batch_size, limit)

        # Metrics
        self._passes: int = 0
        self._signals_updated: int = 0
        self._chunks_failed: int = 0
        self._last_report: Optional[RecomputeReport] = None

        logger.info(
            f"DensityAggregationEngine initialized: "
            f"grouping_precision={grouping_precision}, batch_size={self.batch_size}"
        )

    def group_prefix(self, cell: str, precision_for_grouping: Optional[int] = None) -> str:
        """Grouping prefix of a cell."""
        precision = self.grouping_precision
        if precision_for_grouping is not None:
            if precision_for_grouping < 1:
                raise ValueError("precision_for_grouping must be >= 1")
            precision = precision_for_grouping
        return validate_cell(cell)[:precision]

    async def group_members(self, prefix: str) -> List[Signal]:
        """Snapshot of all signals in a group."""
        lower, upper = prefix_range(prefix)
        return await self.store.range_query("cell", lower, upper)

    async def initial_state(self, cell: str, signal_id: str) -> DensityState:
        """
        State for a signal about to be created in `cell`.

        Counts the current group members other than `signal_id`, plus one
        for the new signal itself. Computed synchronously on the creation
        path so the creation response carries the fields.
        """
        prefix = self.group_prefix(cell)
        members = await self.group_members(prefix)
        count = sum(1 for s in members if s.id != signal_id) + 1
        return self.classifier.state_for(count)

    async def recompute_cell_group(
        self,
        cell: str,
        precision_for_grouping: Optional[int] = None,
    ) -> RecomputeReport:
        """
        Recompute people count and tier for the group containing `cell`.

        Args:
            cell: Any cell inside the group (a signal's cell or the prefix)
            precision_for_grouping: Override of the grouping prefix length

        Returns:
            RecomputeReport for this pass. Chunk failures are reported and
            logged, never raised.

        Raises:
            ValueError: Invalid cell or precision_for_grouping < 1
            Exception: Errors from the snapshot read propagate to the caller
        """
        prefix = self.group_prefix(cell, precision_for_grouping)
        self._passes += 1
        members = await self.group_members(prefix)

        state = self.classifier.state_for(len(members))
        now = datetime.now(timezone.utc)
        updates: List[FieldUpdate] = [
            FieldUpdate(
                doc_id=signal.id,
                fields={"density": state, "updated_at": now},
                expected={"cell": signal.cell},
            )
            for signal in members
            if signal.density != state
        ]

        updated = 0
        chunks = 0
        failed_chunks = 0
        for chunk_index, chunk in enumerate(chunked(updates, self.batch_size)):
            chunks += 1
            try:
                await self.store.batch_write(chunk)
                updated += len(chunk)
            except Exception as e:
                failed_chunks += 1
                failure = RecomputeChunkFailed(prefix, chunk_index, len(chunk), e)
                logger.error(f"{failure}")

        self._signals_updated += updated
        self._chunks_failed += failed_chunks

        report = RecomputeReport(
            prefix=prefix,
            people_count=len(members),
            tier=state.tier.level,
            updated=updated,
            unchanged=len(members) - len(updates),
            chunks=chunks,
            failed_chunks=failed_chunks,
        )
        self._last_report = report

        logger.info(
            f"Recomputed group {prefix!r}: count={report.people_count}, "
            f"tier={report.tier.value}, updated={updated}, "
            f"chunks={chunks}, failed={failed_chunks}"
        )
        return report

    def get_metrics(self) -> dict:
        """Get engine metrics for observability."""
        return {
            "passes": self._passes,
            "signals_updated": self._signals_updated,
            "chunks_failed": self._chunks_failed,
            "last_report": self._last_report.to_dict() if self._last_report else None,
        }
