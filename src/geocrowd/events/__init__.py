"""
Events Module
=============

Mutation delivery and background recompute scheduling.

This module provides the write-path pipeline:
    - MutationEvent: Immutable record of a signal create/delete
    - MutationQueue: Bounded async queue with per-group coalescing
    - RecomputeWorkerPool: Workers running density recomputes

Example:
    from geocrowd.events import MutationQueue, RecomputeWorkerPool

    queue = MutationQueue(maxsize=1000, grouping_precision=5)
    signal_store.set_listener(queue.on_mutation)

    pool = RecomputeWorkerPool(queue, engine, workers=4)
    pool.start()
"""

from geocrowd.events.message import MutationEvent
from geocrowd.events.queue import MutationQueue
from geocrowd.events.workers import RecomputeWorkerPool


__all__ = [
    "MutationEvent",
    "MutationQueue",
    "RecomputeWorkerPool",
]
