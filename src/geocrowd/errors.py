"""
Error Taxonomy
==============

Exceptions raised by the proximity and density engine.

Propagation:
    - Read-path errors (decode, proximity search) are raised to the caller.
    - Write-path background errors (recompute chunks) are logged and counted,
      never raised to the create or delete caller.
"""

from typing import Optional


class GeoCrowdError(Exception):
    """Base class for all engine errors."""
    pass


class InvalidCellChar(GeoCrowdError, ValueError):
    """Raised when a cell string contains a character outside the alphabet."""

    def __init__(self, cell: str, char: str) -> None:
        self.cell = cell
        self.char = char
        super().__init__(f"Invalid geohash character {char!r} in cell {cell!r}")


class ProximityQueryFailed(GeoCrowdError):
    """
    Raised when a prefix scan of a proximity query failed.

    The whole query fails; it is an idempotent read and safe to retry.
    """

    def __init__(self, prefix: str, cause: Optional[BaseException] = None) -> None:
        self.prefix = prefix
        self.cause = cause
        super().__init__(f"Prefix scan failed for {prefix!r}: {cause}")


class ProximityQueryTimedOut(GeoCrowdError):
    """Raised when a proximity query exceeds its deadline. Safe to retry."""

    def __init__(self, timeout: float, pending: int = 0) -> None:
        self.timeout = timeout
        self.pending = pending
        super().__init__(
            f"Proximity query timed out after {timeout:.3f}s "
            f"({pending} prefix scans outstanding)"
        )


class RecomputeChunkFailed(GeoCrowdError):
    """
    A batch write inside a recompute pass failed.

    Created and logged by the aggregation engine, never raised to callers.
    The next mutation in the same cell group retries the full group.
    """

    def __init__(
        self,
        prefix: str,
        chunk_index: int,
        size: int,
        cause: Optional[BaseException] = None,
    ) -> None:
        self.prefix = prefix
        self.chunk_index = chunk_index
        self.size = size
        self.cause = cause
        super().__init__(
            f"Recompute chunk {chunk_index} ({size} writes) failed "
            f"for group {prefix!r}: {cause}"
        )
