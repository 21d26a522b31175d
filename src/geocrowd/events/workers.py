"""
Recompute Workers
=================

Worker tasks consuming the mutation queue and running density recomputes.

Workers share no in-process state beyond the queue and never hold a lock
across an await. Independent groups recompute concurrently. A group is
owned by the worker that took its event until MutationQueue.finish()
releases it; mutations arriving meanwhile make that same worker run
another pass, so two passes over one group never overlap.
"""

import asyncio
import logging
from typing import List, Optional

from geocrowd.density.engine import DensityAggregationEngine
from geocrowd.events.message import MutationEvent
from geocrowd.events.queue import MutationQueue


logger = logging.getLogger(__name__)


class RecomputeWorkerPool:
    """
    Pool of asyncio workers calling recompute_cell_group per event.

    Example:
        pool = RecomputeWorkerPool(queue, engine, workers=4)
        pool.start()
        ...
        await pool.drain()   # wait for all scheduled recomputes
        await pool.stop()
    """

    def __init__(
        self,
        queue: MutationQueue,
        engine: DensityAggregationEngine,
        workers: int = 4,
        poll_timeout: float = 1.0,
    ) -> None:
        """
        Initialize worker pool.

        Args:
            queue: Mutation queue to consume
            engine: Aggregation engine to invoke
            workers: Number of worker tasks
            poll_timeout: Seconds a worker waits on an empty queue before
                re-checking the stop flag
        """
        if workers < 1:
            raise ValueError("workers must be >= 1")

        self.queue = queue
        self.engine = engine
        self.workers = workers
        self.poll_timeout = poll_timeout

        self._tasks: List[asyncio.Task] = []
        self._running: bool = False

        # Metrics
        self._processed: int = 0
        self._failed: int = 0
        self._reruns: int = 0

        logger.info(f"RecomputeWorkerPool initialized: workers={workers}")

    @property
    def running(self) -> bool:
        """Whether workers are running."""
        return self._running

    def start(self) -> None:
        """Start worker tasks on the running event loop."""
        if self._running:
            return
        self._running = True
        self._tasks = [
            asyncio.create_task(self._run_worker(i), name=f"recompute_worker_{i}")
            for i in range(self.workers)
        ]
        logger.info(f"Started {self.workers} recompute workers")

    async def _run_worker(self, worker_id: int) -> None:
        """Worker loop: take event, recompute its group until clean, repeat."""
        while self._running:
            try:
                event = await self.queue.get(timeout=self.poll_timeout)
            except asyncio.CancelledError:
                break

            if event is None:
                continue

            try:
                await self._recompute(worker_id, event)
                while self.queue.finish(event):
                    self._reruns += 1
                    logger.debug(f"Worker {worker_id}: group of {event!r} changed, recomputing again")
                    await self._recompute(worker_id, event)
            except asyncio.CancelledError:
                self.queue.release(event)
                break
            finally:
                self.queue.task_done()

        logger.debug(f"Recompute worker {worker_id} stopped")

    async def _recompute(self, worker_id: int, event: MutationEvent) -> None:
        """One pass over the event's group; failures are logged and counted."""
        try:
            report = await self.engine.recompute_cell_group(event.cell)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._failed += 1
            logger.error(f"Worker {worker_id}: recompute failed for {event!r}: {e}")
            return

        self._processed += 1
        if not report.converged:
            logger.warning(
                f"Worker {worker_id}: group {report.prefix!r} partially "
                f"converged ({report.failed_chunks}/{report.chunks} chunks failed)"
            )

    async def drain(self, timeout: Optional[float] = None) -> None:
        """
        Wait until every scheduled recompute has run.

        Args:
            timeout: Maximum seconds to wait. None = wait forever.
        """
        if timeout is not None:
            await asyncio.wait_for(self.queue.join(), timeout=timeout)
        else:
            await self.queue.join()

    async def stop(self) -> None:
        """Stop workers, cancelling in-flight recomputes."""
        self._running = False
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        logger.info("Recompute workers stopped")

    def get_metrics(self) -> dict:
        """Get worker metrics for observability."""
        return {
            "workers": self.workers,
            "running": self._running,
            "processed": self._processed,
            "failed": self._failed,
            "reruns": self._reruns,
        }
