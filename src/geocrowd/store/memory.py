"""
In-Memory Document Store
========================

Deterministic in-process DocumentStore for development and tests.

Behavior mirrors a hosted document database closely enough for the
engine's purposes:
    - Every operation is an await point (optional artificial latency)
    - Reads and writes copy documents; callers never share references
    - batch_write applies field-level updates to the stored documents,
      checks optional preconditions, and is all-or-nothing
    - A listener is notified after creates and deletes, not updates

Fault injection (tests only):
    - fail_next_batches(n): the next n batch writes raise StoreError
    - fail_range_queries(prefix): range scans starting at prefix raise
"""

import asyncio
import copy
import logging
from typing import Dict, Generic, List, Optional, Sequence, Set

from geocrowd.store.base import (
    BatchLimitExceeded,
    DocumentNotFound,
    E,
    FieldUpdate,
    MutationKind,
    MutationListener,
    PreconditionFailed,
    StoreError,
)


logger = logging.getLogger(__name__)


class InMemoryDocumentStore(Generic[E]):
    """
    Dict-backed document store for one collection.

    Attributes:
        name: Collection name (for logging)
        max_batch_size: Maximum entries per batch_write
        latency: Seconds slept inside each range scan

    Example:
        store = InMemoryDocumentStore[Signal](name="signals", max_batch_size=500)
        await store.put(signal.id, signal)
        docs = await store.range_query("cell", "9q8yy", "9q8yy\\uf8ff")
    """

    def __init__(
        self,
        name: str = "documents",
        max_batch_size: int = 500,
        latency: float = 0.0,
        listener: Optional[MutationListener] = None,
    ) -> None:
        """
        Initialize store.

        Args:
            name: Collection name
            max_batch_size: Atomic batch limit, must be >= 1
            latency: Artificial delay per range scan in seconds
            listener: Async callback for create/delete notifications
        """
        if max_batch_size < 1:
            raise ValueError("max_batch_size must be >= 1")

        self.name = name
        self.max_batch_size = max_batch_size
        self.latency = latency
        self._listener = listener
        self._docs: Dict[str, E] = {}

        # Fault injection
        self._failing_batches: int = 0
        self._failing_prefixes: Set[str] = set()

        # Metrics
        self._reads: int = 0
        self._writes: int = 0
        self._range_queries: int = 0
        self._batches: int = 0
        self._failed_batches: int = 0

    def set_listener(self, listener: Optional[MutationListener]) -> None:
        """Attach (or detach with None) the mutation listener."""
        self._listener = listener

    def __len__(self) -> int:
        return len(self._docs)

    async def get(self, doc_id: str) -> Optional[E]:
        await asyncio.sleep(0)
        self._reads += 1
        doc = self._docs.get(doc_id)
        return doc.model_copy(deep=True) if doc is not None else None

    async def put(self, doc_id: str, entity: E) -> None:
        await asyncio.sleep(0)
        created = doc_id not in self._docs
        self._docs[doc_id] = entity.model_copy(deep=True)
        self._writes += 1

        if created and self._listener is not None:
            await self._listener(MutationKind.CREATE, entity.model_copy(deep=True))

    async def delete(self, doc_id: str) -> Optional[E]:
        await asyncio.sleep(0)
        doc = self._docs.pop(doc_id, None)
        if doc is None:
            return None
        self._writes += 1

        if self._listener is not None:
            await self._listener(MutationKind.DELETE, doc.model_copy(deep=True))
        return doc

    async def range_query(
        self,
        field: str,
        lower_inclusive: str,
        upper_exclusive: str,
    ) -> List[E]:
        if self.latency > 0:
            await asyncio.sleep(self.latency)
        else:
            await asyncio.sleep(0)
        self._range_queries += 1

        if lower_inclusive in self._failing_prefixes:
            raise StoreError(
                f"Injected range query failure on {self.name}.{field} at {lower_inclusive!r}"
            )

        matches = [
            doc for doc in self._docs.values()
            if lower_inclusive <= getattr(doc, field) < upper_exclusive
        ]
        matches.sort(key=lambda doc: (getattr(doc, field), doc.id))
        return [doc.model_copy(deep=True) for doc in matches]

    async def batch_write(self, updates: Sequence[FieldUpdate]) -> None:
        await asyncio.sleep(0)
        self._batches += 1

        if len(updates) > self.max_batch_size:
            self._failed_batches += 1
            raise BatchLimitExceeded(len(updates), self.max_batch_size)

        if self._failing_batches > 0:
            self._failing_batches -= 1
            self._failed_batches += 1
            raise StoreError(f"Injected batch failure on {self.name}")

        # All-or-nothing: validate every target before applying any
        try:
            for update in updates:
                self._check_update(update)
        except StoreError:
            self._failed_batches += 1
            raise

        for update in updates:
            current = self._docs[update.doc_id]
            self._docs[update.doc_id] = current.model_copy(update=copy.deepcopy(update.fields))
        self._writes += len(updates)

    def _check_update(self, update: FieldUpdate) -> None:
        """Validate one update against the stored document."""
        doc = self._docs.get(update.doc_id)
        if doc is None:
            raise DocumentNotFound(update.doc_id)

        unknown = set(update.fields) - set(type(doc).model_fields)
        if unknown:
            raise StoreError(f"Unknown fields for {update.doc_id!r}: {sorted(unknown)}")

        for name, expected in update.expected.items():
            actual = getattr(doc, name)
            if actual != expected:
                raise PreconditionFailed(update.doc_id, name, expected, actual)

    # =========================================================================
    # Fault injection
    # =========================================================================

    def fail_next_batches(self, count: int = 1) -> None:
        """Make the next `count` batch writes raise StoreError."""
        self._failing_batches = count

    def fail_range_queries(self, prefix: str) -> None:
        """Make range scans whose lower bound equals `prefix` raise StoreError."""
        self._failing_prefixes.add(prefix)

    def clear_faults(self) -> None:
        """Remove all injected faults."""
        self._failing_batches = 0
        self._failing_prefixes.clear()

    def metrics(self) -> dict:
        """
        Get store metrics for observability.

        Returns:
            Dict with document count and operation counters
        """
        return {
            "collection": self.name,
            "documents": len(self._docs),
            "reads": self._reads,
            "writes": self._writes,
            "range_queries": self._range_queries,
            "batches": self._batches,
            "failed_batches": self._failed_batches,
        }
