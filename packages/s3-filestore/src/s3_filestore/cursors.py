"""
Per-direction cursor state for S3File.

Each direction (read, write) moves UNOPENED -> OPEN -> EXHAUSTED | CLOSED and
never goes back. The slot's lock serializes opening and using the cursor, so
concurrent read()/write() calls on one handle cannot race on its creation.
"""

import threading
from collections.abc import Callable
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class CursorState(str, Enum):
    UNOPENED = "unopened"
    OPEN = "open"
    # read side only: end of stream was reported
    EXHAUSTED = "exhausted"
    CLOSED = "closed"


TERMINAL_STATES = frozenset({CursorState.EXHAUSTED, CursorState.CLOSED})


class CursorSlot(Generic[T]):
    """Holds at most one lazily opened cursor."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.lock = threading.RLock()
        self._state = CursorState.UNOPENED
        self._cursor: T | None = None

    @property
    def state(self) -> CursorState:
        return self._state

    def acquire(self, opener: Callable[[], T]) -> T:
        """
        Return the open cursor, calling opener() on first use.

        Caller must hold self.lock. A failed opener() leaves the slot UNOPENED
        so a later call may try again.
        """
        if self._state in TERMINAL_STATES:
            raise ValueError(f"I/O operation on {self._state.value} {self.name} cursor")
        if self._state == CursorState.UNOPENED:
            self._cursor = opener()
            self._state = CursorState.OPEN
        return self._cursor  # type: ignore[return-value]

    def release(self, state: CursorState = CursorState.CLOSED) -> T | None:
        """Move to a terminal state; return the open cursor, if any, for the caller to close."""
        if state not in TERMINAL_STATES:
            raise ValueError(f"release() needs a terminal state, got {state.value}")
        with self.lock:
            cursor, self._cursor = self._cursor, None
            self._state = state
            return cursor
