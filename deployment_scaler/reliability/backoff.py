"""
Backoff — Exponential delays for reconnect loops.

## Usage

    backoff = Backoff(initial=1.0, maximum=30.0)

    while not stopped:
        try:
            run_once()
            backoff.reset()
        except StoreError:
            stop_event.wait(backoff.next_delay())
"""

from __future__ import annotations


class Backoff:
    """Doubling delay capped at ``maximum``. Not thread-safe; one per loop."""

    def __init__(self, initial: float = 1.0, maximum: float = 30.0, factor: float = 2.0):
        if initial <= 0 or maximum < initial or factor < 1:
            raise ValueError("backoff requires 0 < initial <= maximum and factor >= 1")
        self.initial = initial
        self.maximum = maximum
        self.factor = factor
        self._current = initial
        self.attempts = 0

    def next_delay(self) -> float:
        """Return the delay to wait now and grow the next one."""
        delay = self._current
        self._current = min(self._current * self.factor, self.maximum)
        self.attempts += 1
        return delay

    def reset(self) -> None:
        self._current = self.initial
        self.attempts = 0
