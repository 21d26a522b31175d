"""
Store Module
============

Document store abstraction.

The engine treats the store as a black box with exact-match and
lexicographic range queries only.

Components:
    - DocumentStore: Protocol for store backends
    - FieldUpdate: One partial update inside a batch write
    - InMemoryDocumentStore: Deterministic in-process backend
"""

from geocrowd.store.base import (
    BatchLimitExceeded,
    DocumentNotFound,
    DocumentStore,
    FieldUpdate,
    MutationKind,
    MutationListener,
    PreconditionFailed,
    StoreError,
)
from geocrowd.store.memory import InMemoryDocumentStore

__all__ = [
    "DocumentStore",
    "InMemoryDocumentStore",
    "MutationKind",
    "MutationListener",
    "StoreError",
    "DocumentNotFound",
    "BatchLimitExceeded",
    "FieldUpdate",
    "PreconditionFailed",
]
