"""
Test Configuration
==================

Pytest fixtures and test configuration for GeoCrowd.

Async components are exercised with asyncio.run() inside plain tests.
Anything owning an asyncio primitive (MutationQueue, RecomputeWorkerPool)
is built inside the coroutine under test, not in a fixture.
"""

import asyncio
from typing import Optional

import pytest

from geocrowd.density import DensityAggregationEngine, DensityTierClassifier
from geocrowd.geo.codec import encode
from geocrowd.handlers import EventHandler, SignalHandler
from geocrowd.models import DensityState, GeoPoint, Signal
from geocrowd.search import ProximitySearchService
from geocrowd.store import InMemoryDocumentStore


@pytest.fixture
def sf_point():
    """San Francisco, encodes to 9q8yyk at precision 6."""
    return GeoPoint(latitude=37.7749, longitude=-122.4194)


@pytest.fixture
def nyc_point():
    """New York City, ~4129 km from San Francisco."""
    return GeoPoint(latitude=40.7128, longitude=-74.0060)


@pytest.fixture
def make_signal():
    """Factory for signals stored directly, bypassing handlers."""

    def _make(
        signal_id: str,
        point: GeoPoint,
        event_id: str = "evt1",
        user_id: Optional[str] = None,
        precision: int = 9,
        people_count: int = 1,
    ) -> Signal:
        classifier = DensityTierClassifier()
        return Signal(
            id=signal_id,
            location=point,
            cell=encode(point.latitude, point.longitude, precision),
            event_id=event_id,
            user_id=user_id or f"user-{signal_id}",
            density=DensityState(
                people_count=people_count,
                tier=classifier.classify(people_count),
            ),
        )

    return _make


@pytest.fixture
def signal_store():
    return InMemoryDocumentStore(name="signals", max_batch_size=500)


@pytest.fixture
def event_store():
    return InMemoryDocumentStore(name="events", max_batch_size=500)


@pytest.fixture
def engine(signal_store):
    return DensityAggregationEngine(signal_store, grouping_precision=5)


@pytest.fixture
def signal_search(signal_store):
    return ProximitySearchService(signal_store, timeout=5.0)


@pytest.fixture
def event_handler(event_store):
    return EventHandler(event_store, ProximitySearchService(event_store), cell_precision=9)


@pytest.fixture
def signal_handler(signal_store, event_store, engine, signal_search):
    """Signal handler without a mutation queue."""
    return SignalHandler(
        store=signal_store,
        event_store=event_store,
        engine=engine,
        search=signal_search,
        cell_precision=9,
    )


class GatedSignalStore(InMemoryDocumentStore):
    """
    Signal store whose batch writes wait while the gate is held.

    Lets a test pause a recompute between its snapshot and its write.
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._gate: Optional[asyncio.Event] = None
        self.held_batches: int = 0

    def hold(self) -> None:
        """Make subsequent batch writes wait until release()."""
        self._gate = asyncio.Event()

    def release(self) -> None:
        gate, self._gate = self._gate, None
        if gate is not None:
            gate.set()

    async def batch_write(self, updates) -> None:
        gate = self._gate
        if gate is not None:
            self.held_batches += 1
            await gate.wait()
        await super().batch_write(updates)


async def _wait_until(predicate, timeout: float = 2.0) -> None:
    """Poll until `predicate()` is true; fail the test after `timeout`."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def gated_signal_store():
    """Signal store with gated batch writes (call hold() inside the test loop)."""
    return GatedSignalStore(name="signals", max_batch_size=500)


@pytest.fixture
def wait_until():
    """Async poller: `await wait_until(lambda: cond)`."""
    return _wait_until
