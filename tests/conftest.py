"""
Shared fixtures.

Every test runs against an InMemoryStore. Contexts are built with resync
disabled and short timeouts; the synchronizer is stopped on teardown so
no watch thread outlives its test.
"""

from __future__ import annotations

import time

import pytest

from deployment_scaler.config.settings import ScalerSettings
from deployment_scaler.context import build_context
from deployment_scaler.store.memory import InMemoryStore


@pytest.fixture
def store():
    """Empty in-memory store."""
    return InMemoryStore()


@pytest.fixture
def seeded_store(store):
    """Store holding three deployments across two namespaces."""
    store.create("default", "web", replicas=3)
    store.create("default", "api", replicas=2)
    store.create("batch", "worker", replicas=0)
    return store


@pytest.fixture
def settings():
    return ScalerSettings(
        store_backend="memory",
        resync_period_seconds=0,
        sync_timeout_seconds=2,
        watch_timeout_seconds=30,
        write_timeout_seconds=2,
        shutdown_grace_seconds=1,
    )


@pytest.fixture
def context(settings, seeded_store):
    """Unstarted context over the seeded store."""
    ctx = build_context(settings, store=seeded_store)
    yield ctx
    ctx.synchronizer.stop()


@pytest.fixture
def started_context(context):
    """Context whose synchronizer has completed its initial sync."""
    context.synchronizer.start()
    return context


@pytest.fixture
def app(started_context):
    pytest.importorskip("flask")
    from deployment_scaler.api import create_app

    app = create_app(started_context)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def wait_until():
    """Poll ``predicate`` until it is true or ``timeout`` runs out."""

    def _wait(predicate, timeout: float = 3.0, interval: float = 0.01) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return predicate()

    return _wait
