"""
GeoCrowd Main Application
=========================

FastAPI entry point for the proximity and density service.

Wiring:
    - Two collections (events, signals) in InMemoryDocumentStore
    - Signal create/delete mutations feed a MutationQueue
    - RecomputeWorkerPool drains the queue into DensityAggregationEngine
    - ProximitySearchService per collection answers nearby queries

Endpoints:
    GET    /                      - Service information
    GET    /health                - Liveness probe
    GET    /ready                 - Readiness probe (workers running?)
    GET    /metrics               - Component metrics
    POST   /events                - Create event
    GET    /events/nearby         - Events within radius
    POST   /signals               - Create signal (returns own density state)
    GET    /signals/nearby        - Signals within radius
    PATCH  /signals/{id}/location - Move a signal
    DELETE /signals/{id}          - Delete signal
    GET    /cells/{cell}          - Decode a cell and list its neighbors
    WS     /ws/signals/{prefix}   - Periodic snapshots of signals under a prefix
    WS     /ws/events/{prefix}    - Periodic snapshots of events under a prefix
"""

import asyncio
import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Callable, List, Optional

from fastapi import FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from geocrowd.config import settings
from geocrowd.density import DensityAggregationEngine, DensityTierClassifier, TierThresholds
from geocrowd.errors import InvalidCellChar, ProximityQueryFailed, ProximityQueryTimedOut
from geocrowd.events import MutationQueue, RecomputeWorkerPool
from geocrowd.geo import decode, neighbors, prefix_range, validate_cell
from geocrowd.handlers import ConflictError, EventHandler, NotFoundError, SignalHandler
from geocrowd.models import DensityTier, Event, GeoPoint, ProximityMatch, Signal, TierLevel
from geocrowd.search import ProximitySearchService
from geocrowd.store import InMemoryDocumentStore


logger = logging.getLogger(__name__)


# =============================================================================
# Global State
# =============================================================================

_event_store: Optional[InMemoryDocumentStore] = None
_signal_store: Optional[InMemoryDocumentStore] = None
_mutation_queue: Optional[MutationQueue] = None
_engine: Optional[DensityAggregationEngine] = None
_workers: Optional[RecomputeWorkerPool] = None
_event_search: Optional[ProximitySearchService] = None
_signal_search: Optional[ProximitySearchService] = None
_event_handler: Optional[EventHandler] = None
_signal_handler: Optional[SignalHandler] = None

_startup_time: float = 0.0
_shutdown_flag: bool = False


# =============================================================================
# Getters
# =============================================================================

def get_event_store() -> Optional[InMemoryDocumentStore]:
    return _event_store

def get_signal_store() -> Optional[InMemoryDocumentStore]:
    return _signal_store

def get_workers() -> Optional[RecomputeWorkerPool]:
    return _workers

def get_event_handler() -> EventHandler:
    if _event_handler is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return _event_handler

def get_signal_handler() -> SignalHandler:
    if _signal_handler is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return _signal_handler


# =============================================================================
# Component Factory
# =============================================================================

def create_classifier() -> DensityTierClassifier:
    """Build the tier classifier from config."""
    density = settings.density
    return DensityTierClassifier(TierThresholds(
        elevated_above=density.elevated_above,
        deep_above=density.deep_above,
        base=DensityTier(level=TierLevel.BASE, **density.base.model_dump()),
        elevated=DensityTier(level=TierLevel.ELEVATED, **density.elevated.model_dump()),
        deep=DensityTier(level=TierLevel.DEEP, **density.deep.model_dump()),
    ))


def precision_table() -> list:
    """Planner table from config."""
    return [(band.max_radius_km, band.precision) for band in settings.geo.precision_table]


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager with graceful shutdown."""
    global _event_store, _signal_store, _mutation_queue, _engine, _workers
    global _event_search, _signal_search, _event_handler, _signal_handler
    global _startup_time, _shutdown_flag

    _startup_time = time.time()
    _shutdown_flag = False
    logger.info(f"Starting {settings.service.name} {settings.service.version}")

    # Stores
    _event_store = InMemoryDocumentStore(
        name="events",
        max_batch_size=settings.store.max_batch_size,
    )
    _signal_store = InMemoryDocumentStore(
        name="signals",
        max_batch_size=settings.store.max_batch_size,
    )

    # Write path: mutations -> queue -> workers -> engine
    _mutation_queue = MutationQueue(
        maxsize=settings.workers.queue_size,
        grouping_precision=settings.geo.grouping_precision,
    )
    _signal_store.set_listener(_mutation_queue.on_mutation)
    _engine = DensityAggregationEngine(
        store=_signal_store,
        classifier=create_classifier(),
        grouping_precision=settings.geo.grouping_precision,
    )
    _workers = RecomputeWorkerPool(
        queue=_mutation_queue,
        engine=_engine,
        workers=settings.workers.count,
    )
    _workers.start()

    # Read path
    table = precision_table()
    _event_search = ProximitySearchService(
        _event_store, precision_table=table, timeout=settings.search.timeout_seconds,
    )
    _signal_search = ProximitySearchService(
        _signal_store, precision_table=table, timeout=settings.search.timeout_seconds,
    )

    _event_handler = EventHandler(
        _event_store, _event_search, cell_precision=settings.geo.cell_precision,
    )
    _signal_handler = SignalHandler(
        store=_signal_store,
        event_store=_event_store,
        engine=_engine,
        search=_signal_search,
        queue=_mutation_queue,
        cell_precision=settings.geo.cell_precision,
    )

    logger.info("All components started")

    yield

    logger.info("Shutting down gracefully...")
    _shutdown_flag = True

    if _workers:
        try:
            await _workers.drain(timeout=5.0)
        except asyncio.TimeoutError:
            logger.warning("Recompute queue not drained before shutdown")
        await _workers.stop()

    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="GeoCrowd",
    description="Geohash proximity search and crowd density aggregation",
    version=settings.service.version,
    lifespan=lifespan,
)


@app.exception_handler(ProximityQueryTimedOut)
async def _timed_out_handler(request: Request, exc: ProximityQueryTimedOut) -> JSONResponse:
    return JSONResponse({"detail": str(exc), "retryable": True}, status_code=504)


@app.exception_handler(ProximityQueryFailed)
async def _query_failed_handler(request: Request, exc: ProximityQueryFailed) -> JSONResponse:
    return JSONResponse({"detail": str(exc), "retryable": True}, status_code=503)


@app.exception_handler(InvalidCellChar)
async def _invalid_cell_handler(request: Request, exc: InvalidCellChar) -> JSONResponse:
    return JSONResponse({"detail": str(exc)}, status_code=400)


@app.exception_handler(NotFoundError)
async def _not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse({"detail": str(exc)}, status_code=404)


@app.exception_handler(ConflictError)
async def _conflict_handler(request: Request, exc: ConflictError) -> JSONResponse:
    return JSONResponse({"detail": str(exc)}, status_code=409)


# =============================================================================
# Request Models
# =============================================================================

class CreateEventRequest(BaseModel):
    title: str = Field(..., min_length=1)
    host_id: str = Field(..., min_length=1)
    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)
    radius_meters: float = Field(default=60.0, gt=0)
    tags: List[str] = Field(default_factory=list)
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None


class CreateSignalRequest(BaseModel):
    event_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)
    signal_strength: int = Field(default=1, ge=1, le=5)


class LocationRequest(BaseModel):
    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)


def _match_payload(match: ProximityMatch) -> dict:
    payload = match.entity.model_dump(mode="json")
    payload["distance_km"] = round(match.distance_km, 6)
    return payload


# =============================================================================
# HTTP Endpoints
# =============================================================================

@app.get("/")
async def root() -> JSONResponse:
    """Service information endpoint."""
    return JSONResponse({
        "service": settings.service.name,
        "version": settings.service.version,
        "status": "running",
        "cell_precision": settings.geo.cell_precision,
        "grouping_precision": settings.geo.grouping_precision,
    })


@app.get("/health")
async def health() -> JSONResponse:
    """Liveness probe - always 200 while the process runs."""
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": round(time.time() - _startup_time, 1),
    })


@app.get("/ready")
async def ready() -> JSONResponse:
    """Readiness probe - 200 once handlers are wired and workers run."""
    workers = get_workers()
    is_ready = _signal_handler is not None and workers is not None and workers.running

    if is_ready:
        return JSONResponse({"status": "ready", "workers_running": True})
    return JSONResponse(
        {"status": "not_ready", "workers_running": False},
        status_code=503,
    )


@app.get("/metrics")
async def metrics() -> JSONResponse:
    """Detailed metrics for observability."""
    return JSONResponse({
        "uptime_seconds": round(time.time() - _startup_time, 1),
        "event_store": _event_store.metrics() if _event_store else {},
        "signal_store": _signal_store.metrics() if _signal_store else {},
        "mutation_queue": _mutation_queue.metrics() if _mutation_queue else {},
        "workers": _workers.get_metrics() if _workers else {},
        "engine": _engine.get_metrics() if _engine else {},
        "event_search": _event_search.get_metrics() if _event_search else {},
        "signal_search": _signal_search.get_metrics() if _signal_search else {},
    })


@app.post("/events", status_code=201)
async def create_event(body: CreateEventRequest) -> dict:
    event: Event = await get_event_handler().create_event(
        title=body.title,
        location=GeoPoint(latitude=body.latitude, longitude=body.longitude),
        host_id=body.host_id,
        radius_meters=body.radius_meters,
        tags=body.tags,
        starts_at=body.starts_at,
        ends_at=body.ends_at,
    )
    return {"success": True, "event": event.model_dump(mode="json")}


@app.get("/events/nearby")
async def events_nearby(
    lat: float = Query(..., ge=-90.0, le=90.0),
    lng: float = Query(..., ge=-180.0, le=180.0),
    radius_km: Optional[float] = Query(default=None, gt=0),
    limit: int = Query(default=settings.search.max_results, ge=1),
) -> dict:
    radius = radius_km or settings.search.default_radius_km
    matches = await get_event_handler().find_nearby(
        GeoPoint(latitude=lat, longitude=lng), radius, limit=limit,
    )
    return {
        "success": True,
        "radius_km": radius,
        "events": [_match_payload(m) for m in matches],
    }


@app.post("/signals", status_code=201)
async def create_signal(body: CreateSignalRequest) -> dict:
    signal: Signal = await get_signal_handler().create_signal(
        event_id=body.event_id,
        user_id=body.user_id,
        location=GeoPoint(latitude=body.latitude, longitude=body.longitude),
        signal_strength=body.signal_strength,
    )
    return {"success": True, "signal_id": signal.id, "signal": signal.model_dump(mode="json")}


@app.get("/signals/nearby")
async def signals_nearby(
    lat: float = Query(..., ge=-90.0, le=90.0),
    lng: float = Query(..., ge=-180.0, le=180.0),
    radius_km: Optional[float] = Query(default=None, gt=0),
    limit: int = Query(default=settings.search.max_results, ge=1),
) -> dict:
    radius = radius_km or settings.search.default_signal_radius_km
    matches = await get_signal_handler().find_nearby(
        GeoPoint(latitude=lat, longitude=lng), radius, limit=limit,
    )
    return {
        "success": True,
        "radius_km": radius,
        "signals": [_match_payload(m) for m in matches],
    }


@app.patch("/signals/{signal_id}/location")
async def relocate_signal(signal_id: str, body: LocationRequest) -> dict:
    signal = await get_signal_handler().relocate_signal(
        signal_id, GeoPoint(latitude=body.latitude, longitude=body.longitude),
    )
    return {"success": True, "signal": signal.model_dump(mode="json")}


@app.delete("/signals/{signal_id}")
async def delete_signal(signal_id: str) -> dict:
    await get_signal_handler().delete_signal(signal_id)
    return {"success": True, "message": "Signal deleted successfully"}


@app.get("/cells/{cell}")
async def describe_cell(cell: str) -> dict:
    """Centroid, error bounds and neighbors of a cell."""
    try:
        decoded = decode(cell)
    except InvalidCellChar:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    return {
        "cell": cell,
        **decoded.to_dict(),
        "neighbors": neighbors(cell)._asdict(),
    }


# =============================================================================
# WebSocket Endpoints
# =============================================================================

async def _stream_prefix(
    websocket: WebSocket,
    prefix: str,
    collection: str,
    get_store: Callable[[], Optional[InMemoryDocumentStore]],
) -> None:
    """Push the documents of one collection under a cell prefix every push interval."""
    try:
        validate_cell(prefix)
    except ValueError:
        await websocket.close(code=1008)
        return

    await websocket.accept()
    logger.info(f"Client subscribed to {collection} under {prefix!r}")

    try:
        while not _shutdown_flag:
            store = get_store()
            if store is not None:
                lower, upper = prefix_range(prefix)
                docs = await store.range_query("cell", lower, upper)
                await websocket.send_json({
                    "prefix": prefix,
                    "count": len(docs),
                    collection: [d.model_dump(mode="json") for d in docs],
                })
            # Client messages are ignored; receiving only surfaces disconnects
            try:
                await asyncio.wait_for(
                    websocket.receive_text(),
                    timeout=settings.workers.push_interval_seconds,
                )
            except asyncio.TimeoutError:
                pass

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.warning(f"WebSocket error: {e}")
    finally:
        logger.info(f"Client unsubscribed from {collection} under {prefix!r}")


@app.websocket("/ws/signals/{prefix}")
async def signal_stream(websocket: WebSocket, prefix: str) -> None:
    """Signals under a cell prefix, with their density state."""
    await _stream_prefix(websocket, prefix, "signals", get_signal_store)


@app.websocket("/ws/events/{prefix}")
async def event_stream(websocket: WebSocket, prefix: str) -> None:
    """Events under a cell prefix."""
    await _stream_prefix(websocket, prefix, "events", get_event_store)


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    # Cloud Run uses PORT env var
    port = int(os.environ.get("PORT", settings.server.port))

    uvicorn.run(
        "geocrowd.main:app",
        host=settings.server.host,
        port=port,
        reload=False,
    )
