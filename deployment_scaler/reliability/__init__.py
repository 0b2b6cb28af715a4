"""
Reliability Module — Reconnect backoff and the write-path circuit breaker.
"""

from .backoff import Backoff
from .circuit_breaker import CircuitBreaker, CircuitConfig, CircuitState

__all__ = [
    "Backoff",
    "CircuitBreaker",
    "CircuitConfig",
    "CircuitState",
]
