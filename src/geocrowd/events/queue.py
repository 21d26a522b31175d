"""
Mutation Queue
==============

Async bounded queue between store mutation delivery and recompute workers.

This module makes the trigger semantics explicit: mutations are
delivered at-least-once, with no ordering across groups, and every
mutation schedules a recompute of its cell group.

Design Rules:
    - Fixed maximum size; publishers wait when full (nothing is dropped)
    - Coalescing: an event whose group already has a pending, not yet
      taken, event is skipped. The pending recompute reads the group
      when it runs, so it covers the skipped mutation too
    - A taken event marks its group running until the worker calls
      finish(). A mutation for a running group is not queued; it marks
      the group dirty, and finish() tells the worker to run one more pass
    - So at most one pass per group runs at a time, and every mutation
      is followed by a pass whose snapshot starts after it
"""

import asyncio
import logging
from typing import Dict, Optional, Set

from geocrowd.events.message import MutationEvent
from geocrowd.models.entity import SpatialEntity
from geocrowd.store.base import MutationKind


logger = logging.getLogger(__name__)


class MutationQueue:
    """
    Async-safe bounded queue of MutationEvents with per-group coalescing.

    Attributes:
        maxsize: Maximum number of queued events
        grouping_precision: Prefix length used to coalesce events

    Example:
        queue = MutationQueue(maxsize=1000, grouping_precision=5)
        store.set_listener(queue.on_mutation)

        # Consumer
        event = await queue.get()
        await recompute(event.cell)
        while queue.finish(event):
            await recompute(event.cell)
        queue.task_done()
    """

    def __init__(self, maxsize: int = 1000, grouping_precision: int = 5) -> None:
        """
        Initialize mutation queue.

        Args:
            maxsize: Maximum queued events. Must be >= 1.
            grouping_precision: Prefix length that defines a group
        """
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")
        if grouping_precision < 1:
            raise ValueError("grouping_precision must be >= 1")

        self._maxsize = maxsize
        self.grouping_precision = grouping_precision
        self._queue: asyncio.Queue[MutationEvent] = asyncio.Queue(maxsize=maxsize)
        self._pending: Set[str] = set()
        self._running: Set[str] = set()
        self._dirty: Dict[str, MutationEvent] = {}

        self._total_published: int = 0
        self._coalesced_count: int = 0
        self._deferred_count: int = 0

    @property
    def maxsize(self) -> int:
        """Maximum queue size."""
        return self._maxsize

    @property
    def size(self) -> int:
        """Current number of queued events."""
        return self._queue.qsize()

    @property
    def coalesced_count(self) -> int:
        """Events skipped because their group was already pending."""
        return self._coalesced_count

    @property
    def deferred_count(self) -> int:
        """Events that arrived while their group was being recomputed."""
        return self._deferred_count

    def is_pending(self, cell: str) -> bool:
        """Whether the group containing `cell` has a queued event."""
        return cell[:self.grouping_precision] in self._pending

    def is_running(self, cell: str) -> bool:
        """Whether the group containing `cell` is being recomputed."""
        return cell[:self.grouping_precision] in self._running

    async def publish(self, event: MutationEvent) -> bool:
        """
        Schedule a recompute for the event's group.

        Args:
            event: Mutation to schedule

        Returns:
            True if a new pass was scheduled (queued, or deferred until the
            running pass of the group finishes), False if it was coalesced
            into an already scheduled pass.
        """
        self._total_published += 1
        key = event.group_key(self.grouping_precision)

        if key in self._pending or key in self._dirty:
            self._coalesced_count += 1
            logger.debug(f"Coalesced {event!r} into scheduled group {key!r}")
            return False

        if key in self._running:
            self._dirty[key] = event
            self._deferred_count += 1
            logger.debug(f"Deferred {event!r} until group {key!r} finishes")
            return True

        self._pending.add(key)
        await self._queue.put(event)
        return True

    async def on_mutation(self, kind: MutationKind, entity: SpatialEntity) -> None:
        """Store listener adapter: publish a mutation of `entity`."""
        await self.publish(MutationEvent.from_entity(kind, entity))

    async def get(self, timeout: Optional[float] = None) -> Optional[MutationEvent]:
        """
        Take the next event, moving its group from pending to running.

        The caller must call finish() for the event once its pass ends,
        then task_done().

        Args:
            timeout: Maximum seconds to wait. None = wait forever.

        Returns:
            Next event, or None if timeout occurred.
        """
        try:
            if timeout is not None:
                event = await asyncio.wait_for(self._queue.get(), timeout=timeout)
            else:
                event = await self._queue.get()
        except asyncio.TimeoutError:
            return None

        key = event.group_key(self.grouping_precision)
        self._pending.discard(key)
        self._running.add(key)
        return event

    def finish(self, event: MutationEvent) -> bool:
        """
        End a pass for the event's group.

        Returns:
            True if the group was mutated during the pass. The group stays
            running and the caller must run another pass, then call
            finish() again. False releases the group.
        """
        key = event.group_key(self.grouping_precision)
        if self._dirty.pop(key, None) is not None:
            return True
        self._running.discard(key)
        return False

    def release(self, event: MutationEvent) -> None:
        """Drop the running and dirty marks of an abandoned pass."""
        key = event.group_key(self.grouping_precision)
        self._running.discard(key)
        self._dirty.pop(key, None)

    def task_done(self) -> None:
        """Mark a taken event as fully processed."""
        self._queue.task_done()

    async def join(self) -> None:
        """Wait until every queued event has been taken and processed."""
        await self._queue.join()

    def metrics(self) -> dict:
        """
        Get queue metrics for observability.

        Returns:
            Dict with queue size, group marks and event counters
        """
        return {
            "size": self.size,
            "maxsize": self._maxsize,
            "pending_groups": len(self._pending),
            "running_groups": len(self._running),
            "dirty_groups": len(self._dirty),
            "total_published": self._total_published,
            "coalesced_count": self._coalesced_count,
            "deferred_count": self._deferred_count,
        }
