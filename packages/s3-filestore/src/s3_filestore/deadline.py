"""Explicit deadline passed through long-running backend calls (listing)."""

import time

from .errors import InvalidTimeoutError, ListingTimeoutError


class Deadline:
    """A fixed point in time after which an operation is abandoned."""

    def __init__(self, timeout_seconds: float) -> None:
        if timeout_seconds <= 0:
            raise InvalidTimeoutError(f"timeout must be positive, got {timeout_seconds}s")
        self.timeout_seconds = timeout_seconds
        self._expires_at = time.monotonic() + timeout_seconds

    def remaining(self) -> float:
        """Seconds left before expiry (0.0 once expired)."""
        return max(0.0, self._expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return time.monotonic() >= self._expires_at

    def check(self, operation: str, *, uri: str | None = None) -> None:
        """Raise ListingTimeoutError if the deadline has passed."""
        if self.expired:
            raise ListingTimeoutError(
                f"{operation} exceeded its {self.timeout_seconds:g}s deadline", uri=uri
            )
