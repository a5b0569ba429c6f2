"""Core primitives shared across the oracle: error taxonomy and request context."""
from .context import RequestContext, utcnow
from .exceptions import (
    CancellationError,
    ConcurrentUpdateError,
    NotFoundError,
    OracleError,
    PersistenceError,
    ProviderError,
    PublishError,
    ScoreRangeError,
    ValidationError,
)

__all__ = [
    "RequestContext",
    "utcnow",
    "OracleError",
    "ValidationError",
    "ScoreRangeError",
    "NotFoundError",
    "ProviderError",
    "PersistenceError",
    "ConcurrentUpdateError",
    "PublishError",
    "CancellationError",
]
