"""
Scaler Context — Every long-lived collaborator, built once at startup.

Request handlers and the lifecycle receive this object explicitly; there
is no module-level client or cache.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .cache.mirror import Mirror
from .cache.query import QueryFacade
from .cache.synchronizer import WatchSynchronizer
from .config.settings import ScalerSettings
from .mutation import MutationCoordinator
from .observability.health import HealthChecker
from .observability.metrics import MetricsRegistry
from .reliability.circuit_breaker import CircuitBreaker
from .store import ObjectStore, build_store

logger = logging.getLogger(__name__)


@dataclass
class ScalerContext:
    """Dependency container handed to the API and the lifecycle."""

    settings: ScalerSettings
    store: ObjectStore
    mirror: Mirror
    synchronizer: WatchSynchronizer
    query: QueryFacade
    coordinator: MutationCoordinator
    breaker: CircuitBreaker
    metrics: MetricsRegistry
    health: HealthChecker

    def is_ready(self) -> bool:
        return self.query.is_ready()


def build_context(settings: ScalerSettings, store: Optional[ObjectStore] = None) -> ScalerContext:
    """Wire the components together. ``store`` overrides STORE_BACKEND."""
    if store is None:
        store = build_store(settings.store_backend, settings.kubeconfig)

    metrics = MetricsRegistry()
    mirror = Mirror()
    breaker = CircuitBreaker("scale-writes")

    synchronizer = WatchSynchronizer(
        store,
        mirror=mirror,
        metrics=metrics,
        resync_period_seconds=settings.resync_period_seconds,
        sync_timeout_seconds=settings.sync_timeout_seconds,
        watch_timeout_seconds=settings.watch_timeout_seconds,
    )
    coordinator = MutationCoordinator(
        store,
        breaker=breaker,
        metrics=metrics,
        write_timeout=settings.write_timeout_seconds,
    )

    return ScalerContext(
        settings=settings,
        store=store,
        mirror=mirror,
        synchronizer=synchronizer,
        query=QueryFacade(mirror, synchronizer.sync_state),
        coordinator=coordinator,
        breaker=breaker,
        metrics=metrics,
        health=HealthChecker(synchronizer, breaker),
    )
