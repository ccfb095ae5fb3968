"""Error types raised by the clustering engine."""

from concurrent.futures import Future
from typing import Any


class ClusteringError(Exception):
    """Base class for clustering errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(ClusteringError, ValueError):
    """A request did not name exactly one data point."""


class ConfigurationError(ClusteringError, ValueError):
    """Unknown strategy identifier or malformed configuration."""


class EncodingError(ClusteringError):
    """The text encoder could not produce a vector."""


class InternalInvariantFault(ClusteringError):
    """Matrix contract broken. Always a bug, never a user error."""


class DimensionMismatch(InternalInvariantFault):
    def __init__(self, expected: int, got: int):
        super().__init__(
            f"Dimension mismatch: expected {expected}, got {got}",
            {"expected": expected, "got": got},
        )


class NotSquare(InternalInvariantFault):
    def __init__(self, shape: tuple[int, ...]):
        super().__init__(f"Matrix is not square: {shape}", {"shape": shape})


class IndexOutOfBounds(InternalInvariantFault):
    def __init__(self, index: int, size: int):
        super().__init__(
            f"Index {index} out of bounds for matrix of size {size}",
            {"index": index, "size": size},
        )


class ConcurrencyDeferral(ClusteringError):
    """The request arrived during a clustering pass and was queued.

    ``replay`` resolves with the outcome once the request has been replayed.
    """

    def __init__(self, operation: str, replay: Future):
        self.replay = replay
        super().__init__(
            f"Clustering in progress, '{operation}' deferred until it completes",
            {"operation": operation},
        )
