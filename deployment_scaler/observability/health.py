"""
Health Check — Aggregate status of the cache and the write path.

## Usage

    checker = HealthChecker(synchronizer, breaker)
    status = checker.check()

    if status.healthy:
        print("Serving from a synced cache")
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

if TYPE_CHECKING:
    from ..cache.synchronizer import WatchSynchronizer
    from ..reliability.circuit_breaker import CircuitBreaker

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    """Health status levels."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    """Health status of a single component."""

    name: str
    status: HealthStatus
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SystemHealth:
    """Overall health status."""

    status: HealthStatus
    timestamp: str
    uptime_seconds: float
    components: List[ComponentHealth]

    @property
    def healthy(self) -> bool:
        return self.status != HealthStatus.UNHEALTHY

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "timestamp": self.timestamp,
            "uptime_seconds": round(self.uptime_seconds, 3),
            "components": [
                {
                    "name": c.name,
                    "status": c.status.value,
                    "message": c.message,
                    "details": c.details,
                }
                for c in self.components
            ],
        }


class HealthChecker:
    """
    Checks the synchronizer and the write circuit.

    A cache that has not finished its initial sync is UNHEALTHY. A cache
    whose watch keeps failing is only DEGRADED: it is stale but still
    answers reads.
    """

    WATCH_FAILURES_DEGRADED = 3

    def __init__(
        self,
        synchronizer: "WatchSynchronizer",
        breaker: Optional["CircuitBreaker"] = None,
    ):
        self.synchronizer = synchronizer
        self.breaker = breaker
        self._start_time = time.time()

    def is_ready(self) -> bool:
        return self.synchronizer.sync_state.is_synced

    def check(self) -> SystemHealth:
        components = [
            self._check_cache_sync(),
            self._check_watch_stream(),
        ]
        if self.breaker is not None:
            components.append(self._check_write_circuit())

        statuses = [c.status for c in components]
        if HealthStatus.UNHEALTHY in statuses:
            overall = HealthStatus.UNHEALTHY
        elif HealthStatus.DEGRADED in statuses:
            overall = HealthStatus.DEGRADED
        else:
            overall = HealthStatus.HEALTHY

        return SystemHealth(
            status=overall,
            timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            uptime_seconds=time.time() - self._start_time,
            components=components,
        )

    def _check_cache_sync(self) -> ComponentHealth:
        status = self.synchronizer.status()
        if not status.synced:
            return ComponentHealth(
                name="cache_sync",
                status=HealthStatus.UNHEALTHY,
                message="Initial cache sync has not completed",
            )
        return ComponentHealth(
            name="cache_sync",
            status=HealthStatus.HEALTHY,
            message=f"{status.objects} deployments mirrored",
            details={
                "objects": status.objects,
                "resource_version": status.resource_version,
            },
        )

    def _check_watch_stream(self) -> ComponentHealth:
        status = self.synchronizer.status()
        details: Dict[str, Any] = {
            "consecutive_failures": status.consecutive_failures,
            "last_event_at": _iso(status.last_event_at),
            "last_relist_at": _iso(status.last_relist_at),
        }

        if status.consecutive_failures >= self.WATCH_FAILURES_DEGRADED:
            details["last_error"] = status.last_error
            return ComponentHealth(
                name="watch_stream",
                status=HealthStatus.DEGRADED,
                message=f"Watch failed {status.consecutive_failures} times in a row; serving stale data",
                details=details,
            )
        return ComponentHealth(
            name="watch_stream",
            status=HealthStatus.HEALTHY,
            message="Watch stream active" if status.running else "Watch stream not running",
            details=details,
        )

    def _check_write_circuit(self) -> ComponentHealth:
        stats = self.breaker.get_stats()
        if stats["state"] == "closed":
            return ComponentHealth(
                name="write_circuit",
                status=HealthStatus.HEALTHY,
                message="Scale writes enabled",
            )
        return ComponentHealth(
            name="write_circuit",
            status=HealthStatus.DEGRADED,
            message=f"Scale write circuit is {stats['state']}",
            details=stats["stats"],
        )


def _iso(ts: Optional[float]) -> Optional[str]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, timezone.utc).isoformat().replace("+00:00", "Z")
