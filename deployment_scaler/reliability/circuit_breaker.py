"""
Circuit Breaker — Fail scale writes fast while the store is down.

The breaker never retries anything. It only decides whether a write is
attempted at all, so a struggling API server is not hammered by every
incoming request while it recovers.

## States

- CLOSED: Normal operation, writes pass through
- OPEN: Store is failing, writes are rejected immediately
- HALF_OPEN: Trial writes allowed to test recovery

## Usage

    breaker = CircuitBreaker("scale-writes")

    if breaker.allow_request():
        try:
            store.update_scale(...)
            breaker.record_success()
        except StoreError:
            breaker.record_failure()
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitConfig:
    """Configuration for a circuit breaker."""

    # Failures inside the window that trip the circuit
    failure_threshold: int = 5
    failure_window_seconds: float = 60.0

    # Time to wait before allowing a trial request
    reset_timeout_seconds: float = 30.0

    # Trial successes needed to close again
    success_threshold: int = 2


@dataclass
class CircuitStats:
    """Counters reported through health and metrics."""

    success_count: int = 0
    failure_count: int = 0
    rejected_count: int = 0
    window_failures: int = 0


class CircuitBreaker:
    """
    Thread-safe circuit breaker.

    Request handlers run on many threads, so every transition happens
    under one lock. ``clock`` is injectable for tests.
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.config = config or CircuitConfig()
        self._clock = clock
        self._lock = threading.Lock()

        self._state = CircuitState.CLOSED
        self._stats = CircuitStats()
        self._opened_at: Optional[float] = None
        self._window_start: Optional[float] = None
        self._half_open_successes = 0

    @property
    def state(self) -> CircuitState:
        """Current state, moving OPEN to HALF_OPEN once the reset timeout passes."""
        with self._lock:
            return self._current_state()

    def allow_request(self) -> bool:
        with self._lock:
            if self._current_state() != CircuitState.OPEN:
                return True
            self._stats.rejected_count += 1
        logger.warning(f"Circuit {self.name} is OPEN, rejecting request")
        return False

    def record_success(self) -> None:
        with self._lock:
            self._stats.success_count += 1
            if self._state == CircuitState.HALF_OPEN:
                self._half_open_successes += 1
                if self._half_open_successes >= self.config.success_threshold:
                    self._transition_to(CircuitState.CLOSED)

    def record_failure(self) -> None:
        with self._lock:
            now = self._clock()
            self._stats.failure_count += 1

            if self._state == CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.OPEN)
                return

            if self._state != CircuitState.CLOSED:
                return

            if self._window_start is None or now - self._window_start > self.config.failure_window_seconds:
                self._window_start = now
                self._stats.window_failures = 1
            else:
                self._stats.window_failures += 1

            if self._stats.window_failures >= self.config.failure_threshold:
                logger.warning(
                    f"Circuit {self.name} tripped: {self._stats.window_failures} failures "
                    f"in {self.config.failure_window_seconds:.0f}s"
                )
                self._transition_to(CircuitState.OPEN)

    def reset(self) -> None:
        with self._lock:
            self._state = CircuitState.CLOSED
            self._stats = CircuitStats()
            self._opened_at = None
            self._window_start = None
            self._half_open_successes = 0

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "name": self.name,
                "state": self._current_state().value,
                "stats": asdict(self._stats),
                "config": asdict(self.config),
            }

    # Caller holds the lock for everything below

    def _current_state(self) -> CircuitState:
        if self._state == CircuitState.OPEN and self._opened_at is not None:
            if self._clock() - self._opened_at >= self.config.reset_timeout_seconds:
                self._transition_to(CircuitState.HALF_OPEN)
        return self._state

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        self._half_open_successes = 0

        if new_state == CircuitState.OPEN:
            self._opened_at = self._clock()
        elif new_state == CircuitState.CLOSED:
            self._opened_at = None
            self._window_start = None
            self._stats.window_failures = 0

        logger.info(f"Circuit {self.name}: {old_state.value} → {new_state.value}")
