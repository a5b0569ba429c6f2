"""
Error taxonomy for the credit oracle.

Every error raised across a component boundary derives from OracleError so
callers can catch the whole family, while the subclasses keep the recovery
semantics apart:

- ValidationError: malformed address or out-of-range score
- NotFoundError: no score or metrics for an address
- ProviderError: one data source failed (recoverable through fallback)
- PersistenceError: store read/write failed (always fatal)
- PublishError: blockchain submission failed (recorded, retriable)
- CancellationError: caller deadline expired or request was cancelled
"""
from typing import Any, Dict, Optional


class OracleError(Exception):
    """Base exception for all oracle errors."""

    def __init__(self, message: str, original_error: Optional[BaseException] = None):
        self.message = message
        self.original_error = original_error
        super().__init__(message)

    def __str__(self) -> str:
        if self.original_error is not None:
            return f"{self.message}: {self.original_error}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "original_error": str(self.original_error) if self.original_error else None,
        }


class ValidationError(OracleError):
    """Input rejected before any I/O happened."""


class ScoreRangeError(ValidationError):
    """A score fell outside the published [300, 850] range."""

    def __init__(self, score: int, min_score: int = 300, max_score: int = 850):
        self.score = score
        super().__init__(f"score {score} is outside valid range [{min_score}-{max_score}]")


class NotFoundError(OracleError):
    """No active record exists for the requested address."""


class ProviderError(OracleError):
    """A single data provider failed to produce usable data."""

    def __init__(
        self,
        message: str,
        provider_name: str = "unknown",
        original_error: Optional[BaseException] = None,
    ):
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}", original_error)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["provider_name"] = self.provider_name
        return data


class PersistenceError(OracleError):
    """The score store could not be read or written."""


class ConcurrentUpdateError(PersistenceError):
    """A compare-and-swap on update_count lost the race to another writer."""


class PublishError(OracleError):
    """Submitting a score to the oracle contract failed."""


class CancellationError(OracleError):
    """The caller cancelled the request or its deadline passed."""
