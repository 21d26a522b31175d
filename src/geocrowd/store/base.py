"""
Document Store Contract
=======================

The collaborator the engine consumes but never implements in production:
a document store with single-document operations, a lexicographic range
scan on one indexed string field, and bounded atomic batch writes.

There is no geospatial query operator. Proximity queries are planned as
cell-prefix range scans on the `cell` field.

Mutation delivery:
    After a successful mutation the store notifies a listener with
    (MutationKind, entity). Delivery is at-least-once and unordered
    across documents; consumers must be idempotent.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Sequence, TypeVar

from geocrowd.models.entity import SpatialEntity


E = TypeVar("E", bound=SpatialEntity)


class MutationKind(str, Enum):
    """Kinds of mutation delivered to listeners."""

    CREATE = "CREATE"
    DELETE = "DELETE"


MutationListener = Callable[[MutationKind, SpatialEntity], Awaitable[None]]


class StoreError(Exception):
    """Raised when a store operation fails."""
    pass


class DocumentNotFound(StoreError, KeyError):
    """Raised when an operation targets a document that does not exist."""

    def __init__(self, doc_id: str) -> None:
        self.doc_id = doc_id
        super().__init__(f"Document not found: {doc_id!r}")

    def __str__(self) -> str:
        return self.args[0]


class BatchLimitExceeded(StoreError, ValueError):
    """Raised when a batch exceeds the store's maximum operation count."""

    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(f"Batch of {size} operations exceeds limit of {limit}")


class PreconditionFailed(StoreError):
    """Raised when a batch update's expected field values no longer hold."""

    def __init__(self, doc_id: str, field_name: str, expected: Any, actual: Any) -> None:
        self.doc_id = doc_id
        self.field_name = field_name
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Precondition failed on {doc_id!r}: {field_name}={actual!r}, expected {expected!r}"
        )


@dataclass(frozen=True, slots=True)
class FieldUpdate:
    """
    Partial update of one existing document inside a batch.

    Only the named fields are replaced; every other field keeps the value
    currently stored, not the value the writer last read.

    Attributes:
        doc_id: Target document
        fields: Field name -> new value
        expected: Field name -> value the stored document must still hold
    """

    doc_id: str
    fields: Dict[str, Any]
    expected: Dict[str, Any] = field(default_factory=dict)


class DocumentStore(Protocol[E]):
    """
    Protocol for document store backends.

    One store instance serves one collection.
    """

    max_batch_size: int

    async def get(self, doc_id: str) -> Optional[E]:
        """Fetch one document, or None if it does not exist."""
        ...

    async def put(self, doc_id: str, entity: E) -> None:
        """Create or overwrite one document."""
        ...

    async def delete(self, doc_id: str) -> Optional[E]:
        """Delete one document, returning it if it existed."""
        ...

    async def range_query(
        self,
        field: str,
        lower_inclusive: str,
        upper_exclusive: str,
    ) -> List[E]:
        """All documents whose `field` lies in [lower_inclusive, upper_exclusive)."""
        ...

    async def batch_write(self, updates: Sequence[FieldUpdate]) -> None:
        """
        Atomically apply field-level updates to existing documents.

        Raises:
            BatchLimitExceeded: If len(updates) > max_batch_size
            DocumentNotFound: If any target no longer exists (nothing applied)
            PreconditionFailed: If any expected value changed (nothing applied)
        """
        ...
