"""Request context carrying a cancellation signal and an optional deadline."""
import threading
import time
from datetime import datetime, timezone
from typing import Optional

from .exceptions import CancellationError


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class RequestContext:
    """
    Cooperative cancellation token passed through every fetch.

    A context is cancelled either explicitly via `cancel()` or implicitly once
    its deadline passes. Long-running operations call `raise_if_cancelled()`
    between steps and use `timeout_for()` to bound blocking calls.

    Example:
        >>> ctx = RequestContext.with_timeout(5.0)
        >>> ctx.raise_if_cancelled()
        >>> ctx.timeout_for(10.0) <= 5.0
        True
    """

    def __init__(self, deadline: Optional[float] = None):
        # deadline is a time.monotonic() value
        self.deadline = deadline
        self._cancelled = threading.Event()

    @classmethod
    def background(cls) -> "RequestContext":
        return cls()

    @classmethod
    def with_timeout(cls, seconds: float) -> "RequestContext":
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        self._cancelled.set()

    def remaining(self) -> Optional[float]:
        """Seconds until the deadline, or None when there is no deadline."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def is_cancelled(self) -> bool:
        if self._cancelled.is_set():
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline

    def raise_if_cancelled(self) -> None:
        if self._cancelled.is_set():
            raise CancellationError("request cancelled by caller")
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise CancellationError("request deadline exceeded")

    def timeout_for(self, per_call_timeout: float) -> float:
        """Per-call timeout shortened to whatever is left before the deadline."""
        remaining = self.remaining()
        if remaining is None:
            return per_call_timeout
        return min(per_call_timeout, remaining)

