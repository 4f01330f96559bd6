"""
Atomic holder for the shutdown state.

The state is touched from signal handlers, thread excepthooks and the event
loop at once, so every transition goes through compare_and_set under a
lock; there is no plain setter.
"""

import threading

from models.enums import ShutdownState


class AtomicShutdownState:
    """ShutdownState guarded by a lock, only changed via compare_and_set."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value = ShutdownState.NOT_STARTED

    @property
    def value(self) -> ShutdownState:
        with self._lock:
            return self._value

    def compare_and_set(self, expected: ShutdownState, new: ShutdownState) -> bool:
        """
        Set `new` only if the current value is `expected`.

        Returns:
            True if this call performed the transition
        """
        if new.value < expected.value:
            raise ValueError(f"Shutdown state cannot regress ({expected.name} -> {new.name})")

        with self._lock:
            if self._value is not expected:
                return False
            self._value = new
            return True

    def __repr__(self) -> str:
        return f"AtomicShutdownState({self.value.name})"
