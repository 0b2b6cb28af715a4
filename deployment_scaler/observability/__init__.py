"""
Observability Module — Metrics and health checks.
"""

from .health import ComponentHealth, HealthChecker, HealthStatus, SystemHealth
from .metrics import Counter, Gauge, Histogram, MetricsRegistry

__all__ = [
    "MetricsRegistry",
    "Counter",
    "Gauge",
    "Histogram",
    "HealthChecker",
    "HealthStatus",
    "SystemHealth",
    "ComponentHealth",
]
