"""
Domain Handlers
===============

Create/delete/query operations for events and signals.

Handlers own the write-time invariant of the spatial index: every write
that sets a location re-derives `cell` from it at the configured
precision. They also compute a new signal's own density synchronously so
the creation response carries it; the rest of the group converges in the
background through the mutation queue.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from geocrowd.density.engine import DensityAggregationEngine
from geocrowd.errors import GeoCrowdError
from geocrowd.events.message import MutationEvent
from geocrowd.events.queue import MutationQueue
from geocrowd.geo.codec import encode_point
from geocrowd.models.entity import Event, Signal
from geocrowd.models.geo import GeoPoint
from geocrowd.models.query import ProximityMatch, ProximityQuery
from geocrowd.search.service import ProximitySearchService
from geocrowd.store.base import DocumentStore, MutationKind


logger = logging.getLogger(__name__)


class NotFoundError(GeoCrowdError, LookupError):
    """Raised when a referenced document does not exist."""
    pass


class ConflictError(GeoCrowdError):
    """Raised when a write conflicts with existing documents."""
    pass


def _new_id() -> str:
    return uuid.uuid4().hex


class EventHandler:
    """Operations on the events collection."""

    def __init__(
        self,
        store: DocumentStore,
        search: ProximitySearchService,
        cell_precision: int = 9,
    ) -> None:
        self.store = store
        self.search = search
        self.cell_precision = cell_precision

    async def create_event(
        self,
        title: str,
        location: GeoPoint,
        host_id: str,
        radius_meters: float = 60.0,
        tags: Optional[List[str]] = None,
        starts_at: Optional[datetime] = None,
        ends_at: Optional[datetime] = None,
        event_id: Optional[str] = None,
    ) -> Event:
        """Create an event at `location`."""
        event = Event(
            id=event_id or _new_id(),
            location=location,
            cell=encode_point(location, self.cell_precision),
            title=title,
            host_id=host_id,
            radius_meters=radius_meters,
            tags=tags or [],
            starts_at=starts_at,
            ends_at=ends_at,
        )
        await self.store.put(event.id, event)
        logger.info(f"Event created: {event.id} at cell {event.cell}")
        return event

    async def get_event(self, event_id: str) -> Event:
        event = await self.store.get(event_id)
        if event is None:
            raise NotFoundError(f"Event not found: {event_id}")
        return event

    async def delete_event(self, event_id: str) -> Event:
        event = await self.store.delete(event_id)
        if event is None:
            raise NotFoundError(f"Event not found: {event_id}")
        logger.info(f"Event deleted: {event_id}")
        return event

    async def find_nearby(
        self,
        origin: GeoPoint,
        radius_km: float,
        limit: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> List[ProximityMatch]:
        query = ProximityQuery(origin=origin, radius_km=radius_km)
        return await self.search.find_near(query, timeout=timeout, limit=limit)


class SignalHandler:
    """
    Operations on the signals collection.

    Example:
        handler = SignalHandler(signal_store, event_store, engine, search, queue)
        signal = await handler.create_signal("evt1", "user1", GeoPoint(latitude=40.11, longitude=-88.24))
        print(signal.density.people_count, signal.density.tier.color_hex)
    """

    def __init__(
        self,
        store: DocumentStore,
        event_store: DocumentStore,
        engine: DensityAggregationEngine,
        search: ProximitySearchService,
        queue: Optional[MutationQueue] = None,
        cell_precision: int = 9,
    ) -> None:
        """
        Initialize signal handler.

        Args:
            store: Signals collection (its listener feeds the queue)
            event_store: Events collection, for existence checks
            engine: Aggregation engine, for the synchronous initial state
            search: Proximity search over signals
            queue: Mutation queue, for recomputes the store does not emit
            cell_precision: Length of stored cells
        """
        self.store = store
        self.event_store = event_store
        self.engine = engine
        self.search = search
        self.queue = queue
        self.cell_precision = cell_precision

    async def create_signal(
        self,
        event_id: str,
        user_id: str,
        location: GeoPoint,
        signal_strength: int = 1,
        signal_id: Optional[str] = None,
    ) -> Signal:
        """
        Create a signal for an event.

        Raises:
            NotFoundError: The event does not exist
            ConflictError: The user already signalled this event
        """
        if await self.event_store.get(event_id) is None:
            raise NotFoundError(f"Event not found: {event_id}")

        existing = await self.store.range_query("event_id", event_id, event_id + "\x00")
        if any(s.user_id == user_id for s in existing):
            raise ConflictError(f"User {user_id} already has a signal for event {event_id}")

        signal_id = signal_id or _new_id()
        cell = encode_point(location, self.cell_precision)
        density = await self.engine.initial_state(cell, signal_id)

        signal = Signal(
            id=signal_id,
            location=location,
            cell=cell,
            event_id=event_id,
            user_id=user_id,
            signal_strength=signal_strength,
            density=density,
        )
        await self.store.put(signal.id, signal)

        logger.info(
            f"Signal created: {signal.id} for event {event_id} at cell {cell} "
            f"(count={density.people_count}, tier={density.tier.level.value})"
        )
        return signal

    async def get_signal(self, signal_id: str) -> Signal:
        signal = await self.store.get(signal_id)
        if signal is None:
            raise NotFoundError(f"Signal not found: {signal_id}")
        return signal

    async def delete_signal(self, signal_id: str) -> Signal:
        """Delete a signal; its group recompute is scheduled by the store."""
        signal = await self.store.delete(signal_id)
        if signal is None:
            raise NotFoundError(f"Signal not found: {signal_id}")
        logger.info(f"Signal deleted: {signal_id} from cell {signal.cell}")
        return signal

    async def relocate_signal(self, signal_id: str, location: GeoPoint) -> Signal:
        """
        Move a signal, re-deriving its cell.

        Overwrites do not emit store mutations, so recomputes for the old
        and new groups are published here.
        """
        signal = await self.get_signal(signal_id)
        old_cell = signal.cell
        cell = encode_point(location, self.cell_precision)
        density = await self.engine.initial_state(cell, signal_id)

        moved = signal.model_copy(update={
            "location": location,
            "cell": cell,
            "density": density,
            "updated_at": datetime.now(timezone.utc),
        })
        await self.store.put(moved.id, moved)

        if self.queue is not None:
            await self.queue.publish(MutationEvent(MutationKind.DELETE, signal_id, old_cell))
            await self.queue.publish(MutationEvent(MutationKind.CREATE, signal_id, cell))

        logger.info(f"Signal relocated: {signal_id} {old_cell} -> {cell}")
        return moved

    async def find_nearby(
        self,
        origin: GeoPoint,
        radius_km: float,
        limit: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> List[ProximityMatch]:
        query = ProximityQuery(origin=origin, radius_km=radius_km)
        return await self.search.find_near(query, timeout=timeout, limit=limit)
