#!/usr/bin/env python3
"""
Crowd Convergence Simulation
============================

Standalone script exercising the write path end to end, in process.

This script:
    1. Creates one event and N signals scattered around it
    2. Lets the recompute workers converge every cell group
    3. Optionally injects batch failures and deletes a share of signals
    4. Reports per-group counts and tiers, and checks convergence

Usage:
    python scripts/simulate_crowd.py --signals 120
    python scripts/simulate_crowd.py --signals 60 --batch-size 7 --fail-batches 2
"""

import argparse
import asyncio
import logging
import os
import random
import sys
import time
from collections import Counter

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from geocrowd.density import DensityAggregationEngine
from geocrowd.events import MutationQueue, RecomputeWorkerPool
from geocrowd.geo.planner import PREFIX_SENTINEL
from geocrowd.handlers import EventHandler, SignalHandler
from geocrowd.models import GeoPoint
from geocrowd.search import ProximitySearchService
from geocrowd.store import InMemoryDocumentStore


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


async def run_simulation(
    signals: int,
    spread_km: float,
    batch_size: int,
    fail_batches: int,
    delete_share: float,
    seed: int,
) -> dict:
    """
    Run the simulation.

    Args:
        signals: Number of signals to create
        spread_km: Max offset of a signal from the event (approximate)
        batch_size: Store batch limit
        fail_batches: Batch writes to fail after creation
        delete_share: Fraction of signals deleted after convergence
        seed: Random seed

    Returns:
        Final summary dict
    """
    rng = random.Random(seed)

    logger.info("=" * 60)
    logger.info("Crowd Convergence Simulation")
    logger.info("=" * 60)
    logger.info(f"Signals: {signals}, spread: {spread_km} km, batch size: {batch_size}")
    logger.info("=" * 60)

    event_store = InMemoryDocumentStore(name="events", max_batch_size=batch_size)
    signal_store = InMemoryDocumentStore(name="signals", max_batch_size=batch_size)
    queue = MutationQueue(maxsize=1000, grouping_precision=5)
    signal_store.set_listener(queue.on_mutation)

    engine = DensityAggregationEngine(signal_store, grouping_precision=5)
    pool = RecomputeWorkerPool(queue, engine, workers=4)
    events = EventHandler(event_store, ProximitySearchService(event_store))
    handler = SignalHandler(
        signal_store, event_store, engine, ProximitySearchService(signal_store), queue,
    )

    origin = GeoPoint(latitude=40.1106, longitude=-88.2073)
    event = await events.create_event("Quad Day", origin, host_id="host")

    pool.start()
    start_time = time.time()

    try:
        # ~111 km per degree of latitude
        degrees = spread_km / 111.0
        ids = []
        for i in range(signals):
            point = GeoPoint(
                latitude=origin.latitude + rng.uniform(-degrees, degrees),
                longitude=origin.longitude + rng.uniform(-degrees, degrees),
            )
            signal = await handler.create_signal(event.id, f"user{i}", point)
            ids.append(signal.id)

        if fail_batches:
            signal_store.fail_next_batches(fail_batches)
            logger.info(f"Injected {fail_batches} batch failures")

        await pool.drain(timeout=30.0)

        # A later mutation heals groups left stale by failed chunks
        to_delete = ids[: int(len(ids) * delete_share)]
        for signal_id in to_delete:
            await handler.delete_signal(signal_id)
        if not to_delete and fail_batches:
            extra = await handler.create_signal(event.id, "late-user", origin)
            ids.append(extra.id)

        await pool.drain(timeout=30.0)
    finally:
        await pool.stop()

    # Final report
    total_time = time.time() - start_time
    remaining = await signal_store.range_query("cell", "", PREFIX_SENTINEL)
    groups = Counter(s.cell[:5] for s in remaining)

    converged = True
    for s in remaining:
        if s.density.people_count != groups[s.cell[:5]]:
            converged = False

    logger.info("=" * 60)
    logger.info("FINAL SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Total runtime: {total_time:.2f} seconds")
    logger.info(f"Signals remaining: {len(remaining)} in {len(groups)} groups")
    for prefix, count in groups.most_common():
        tier = engine.classifier.classify(count)
        logger.info(f"  {prefix}: {count} people, {tier.level.value} ({tier.color_hex})")
    logger.info(f"Queue: {queue.metrics()}")
    logger.info(f"Engine: {engine.get_metrics()}")
    logger.info("=" * 60)

    if converged:
        logger.info("CONVERGED - every signal holds its group count")
    else:
        logger.error("NOT CONVERGED - stale density states remain")

    return {
        "duration": total_time,
        "signals": len(remaining),
        "groups": len(groups),
        "converged": converged,
    }


def main():
    parser = argparse.ArgumentParser(
        description="Crowd convergence simulation for the density aggregation engine"
    )
    parser.add_argument(
        "--signals",
        type=int,
        default=100,
        help="Number of signals (default: 100)",
    )
    parser.add_argument(
        "--spread-km",
        type=float,
        default=3.0,
        help="Max signal offset from the event in km (default: 3.0)",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=500,
        help="Store batch limit (default: 500)",
    )
    parser.add_argument(
        "--fail-batches",
        type=int,
        default=0,
        help="Batch writes to fail after creation (default: 0)",
    )
    parser.add_argument(
        "--delete-share",
        type=float,
        default=0.0,
        help="Fraction of signals to delete (default: 0.0)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=7,
        help="Random seed (default: 7)",
    )

    args = parser.parse_args()

    result = asyncio.run(run_simulation(
        signals=args.signals,
        spread_km=args.spread_km,
        batch_size=args.batch_size,
        fail_batches=args.fail_batches,
        delete_share=args.delete_share,
        seed=args.seed,
    ))

    sys.exit(0 if result["converged"] else 1)


if __name__ == "__main__":
    main()
