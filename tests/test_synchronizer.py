"""
Tests for the WatchSynchronizer against the in-memory store.
"""

from __future__ import annotations

import time

import pytest

from deployment_scaler.cache.mirror import ApplyResult
from deployment_scaler.cache.synchronizer import WatchSynchronizer
from deployment_scaler.errors import CacheSyncError
from deployment_scaler.models.deployment import MirroredObject
from deployment_scaler.store.base import (
    EventType,
    ResourceVersionTooOldError,
    StoreError,
    WatchEvent,
)
from deployment_scaler.store.memory import InMemoryStore


@pytest.fixture
def make_synchronizer():
    created = []

    def _make(store, **kwargs):
        kwargs.setdefault("resync_period_seconds", 0)
        kwargs.setdefault("sync_timeout_seconds", 2)
        kwargs.setdefault("backoff_initial", 0.01)
        kwargs.setdefault("backoff_max", 0.05)
        sync = WatchSynchronizer(store, **kwargs)
        created.append(sync)
        return sync

    yield _make

    for sync in created:
        sync.stop()


def event(event_type, name="web", replicas=1, rv="1", namespace="default"):
    return WatchEvent(
        event_type,
        MirroredObject(namespace=namespace, name=name, replicas=replicas, resource_version=rv),
    )


class SlowListStore(InMemoryStore):
    """Store whose list answers long after any sync deadline."""

    def __init__(self, delay):
        super().__init__()
        self.delay = delay
        self.timeouts = []

    def list(self, timeout=None):
        self.timeouts.append(timeout)
        time.sleep(self.delay)
        return super().list(timeout)


class OutageStore(InMemoryStore):
    """Store whose list fails while ``down`` is set."""

    down = True

    def list(self, timeout=None):
        if self.down:
            raise StoreError("apiserver unavailable")
        return super().list(timeout)


class TestInitialSync:

    def test_start_mirrors_initial_listing(self, seeded_store, make_synchronizer):
        sync = make_synchronizer(seeded_store)
        listing = seeded_store.list()

        sync.start()

        assert sync.sync_state.is_synced
        assert sync.mirror.keys() == sorted(o.key for o in listing.objects)
        assert sync.resource_version == listing.resource_version
        assert sync.mirror.get("default", "web").replicas == 3

    def test_not_ready_before_start(self, seeded_store, make_synchronizer):
        sync = make_synchronizer(seeded_store)
        assert sync.wait_for_sync(timeout=0) is False
        assert len(sync.mirror) == 0

    def test_start_is_idempotent(self, seeded_store, make_synchronizer):
        sync = make_synchronizer(seeded_store)
        sync.start()
        sync.start()
        assert [c for c in seeded_store.calls if c[0] == "list"] == [("list",)]

    def test_transient_list_failure_is_retried(self, seeded_store, make_synchronizer):
        seeded_store.inject_failure("list", StoreError("apiserver unavailable"))
        sync = make_synchronizer(seeded_store)

        sync.start()

        assert sync.sync_state.is_synced
        assert len(sync.mirror) == 3
        assert sync.metrics.counter("relist_errors_total").get() == 1

    def test_persistent_list_failure_is_fatal(self, store, make_synchronizer):
        for _ in range(100):
            store.inject_failure("list", StoreError("apiserver unavailable"))
        sync = make_synchronizer(store, sync_timeout_seconds=0.2)

        with pytest.raises(CacheSyncError):
            sync.start()
        assert not sync.sync_state.is_synced

    def test_slow_list_fails_at_deadline(self, make_synchronizer):
        store = SlowListStore(delay=3)
        sync = make_synchronizer(store, sync_timeout_seconds=0.3)

        began = time.monotonic()
        with pytest.raises(CacheSyncError):
            sync.start()

        assert time.monotonic() - began < 1.5
        assert not sync.sync_state.is_synced
        assert 0 < store.timeouts[0] <= 0.3

    def test_start_after_failed_sync_retries(self, make_synchronizer):
        store = OutageStore()
        store.create("default", "web", replicas=3)
        sync = make_synchronizer(store, sync_timeout_seconds=0.2)

        with pytest.raises(CacheSyncError):
            sync.start()

        store.down = False
        sync.start()

        assert sync.sync_state.is_synced
        assert sync.status().running is True
        assert sync.mirror.get("default", "web").replicas == 3

    def test_start_after_stop_raises(self, seeded_store, make_synchronizer):
        sync = make_synchronizer(seeded_store)
        sync.stop()
        with pytest.raises(CacheSyncError):
            sync.start()


class TestWatch:

    def test_added_and_modified_events_reach_mirror(self, seeded_store, make_synchronizer, wait_until):
        sync = make_synchronizer(seeded_store)
        sync.start()

        seeded_store.create("default", "cache", replicas=1)
        seeded_store.update_scale("default", "web", 6)

        assert wait_until(lambda: sync.mirror.get("default", "cache") is not None)
        assert wait_until(lambda: sync.mirror.get("default", "web").replicas == 6)
        assert sync.resource_version == seeded_store.list().resource_version

    def test_deleted_event_removes_entry(self, seeded_store, make_synchronizer, wait_until):
        sync = make_synchronizer(seeded_store)
        sync.start()
        assert sync.mirror.get("batch", "worker") is not None

        seeded_store.delete("batch", "worker")

        assert wait_until(lambda: sync.mirror.get("batch", "worker") is None)
        assert "batch" not in sync.mirror.namespaces()

    def test_expired_start_point_triggers_relist(self, seeded_store, make_synchronizer, wait_until):
        seeded_store.inject_failure("watch", ResourceVersionTooOldError("too old"))
        sync = make_synchronizer(seeded_store)
        sync.start()

        relists = sync.metrics.counter("relist_total")
        assert wait_until(lambda: relists.get(labels={"reason": "expired"}) == 1)

        # The resubscribed stream keeps working
        seeded_store.create("default", "late", replicas=2)
        assert wait_until(lambda: sync.mirror.get("default", "late") is not None)

    def test_watch_error_backs_off_and_resubscribes(self, seeded_store, make_synchronizer, wait_until):
        seeded_store.inject_failure("watch", StoreError("connection reset"))
        sync = make_synchronizer(seeded_store)
        sync.start()

        restarts = sync.metrics.counter("watch_restarts_total")
        assert wait_until(lambda: restarts.get(labels={"reason": "error"}) == 1)

        seeded_store.update_scale("default", "api", 4)
        assert wait_until(lambda: sync.mirror.get("default", "api").replicas == 4)
        assert wait_until(lambda: sync.status().consecutive_failures == 0)

    def test_watch_starts_at_listed_version(self, seeded_store, make_synchronizer, wait_until):
        sync = make_synchronizer(seeded_store)
        sync.start()
        rv = sync.resource_version

        assert wait_until(lambda: len([c for c in seeded_store.calls if c[0] == "watch"]) >= 1)
        watches = [c for c in seeded_store.calls if c[0] == "watch"]
        assert watches[0] == ("watch", rv)


class TestApplyEvent:

    def test_stale_event_is_counted_and_dropped(self, store, make_synchronizer):
        sync = make_synchronizer(store)
        assert sync.apply_event(event(EventType.ADDED, replicas=5, rv="10")) == ApplyResult.APPLIED
        assert sync.apply_event(event(EventType.MODIFIED, replicas=1, rv="9")) == ApplyResult.STALE

        assert sync.mirror.get("default", "web").replicas == 5
        assert sync.metrics.counter("watch_events_stale_total").get() == 1

    def test_delete_ignores_version(self, store, make_synchronizer):
        sync = make_synchronizer(store)
        sync.apply_event(event(EventType.ADDED, rv="10"))
        assert sync.apply_event(event(EventType.DELETED, rv="2")) == ApplyResult.DELETED
        assert len(sync.mirror) == 0

    def test_same_added_event_twice(self, store, make_synchronizer):
        sync = make_synchronizer(store)
        added = event(EventType.ADDED, replicas=2, rv="4")
        sync.apply_event(added)
        before = sync.mirror.snapshot()

        sync.apply_event(added)

        assert sync.mirror.snapshot() == before
        assert sync.metrics.gauge("mirror_objects").get() == 1


class TestResync:

    def test_resync_removes_missing_and_repairs_drift(self, seeded_store, make_synchronizer):
        sync = make_synchronizer(seeded_store)
        sync.start()
        web = sync.mirror.get("default", "web")

        # Drift the mirror the way missed events would
        sync.mirror.upsert(MirroredObject("default", "ghost", 1, "1"))
        sync.mirror.upsert(MirroredObject("default", "web", 42, web.resource_version))

        assert sync.resync(timeout=2) is True

        assert sync.mirror.get("default", "ghost") is None
        assert sync.mirror.get("default", "web").replicas == 3

    def test_resync_keeps_entries_newer_than_listing(self, seeded_store, make_synchronizer):
        sync = make_synchronizer(seeded_store)
        sync.start()
        sync.mirror.upsert(MirroredObject("default", "future", 1, "999999"))

        assert sync.resync(timeout=2) is True
        assert sync.mirror.get("default", "future") is not None

    def test_resync_before_start_runs_inline(self, seeded_store, make_synchronizer):
        sync = make_synchronizer(seeded_store)
        assert sync.resync() is True
        assert len(sync.mirror) == 3

    def test_failed_resync_leaves_mirror_alone(self, seeded_store, make_synchronizer):
        sync = make_synchronizer(seeded_store)
        sync.start()
        seeded_store.inject_failure("list", StoreError("boom"))

        assert sync.resync(timeout=2) is False
        assert len(sync.mirror) == 3
        assert sync.status().last_error == "boom"

    def test_periodic_resync(self, seeded_store, make_synchronizer, wait_until):
        sync = make_synchronizer(seeded_store, resync_period_seconds=0.05)
        sync.start()
        relists = sync.metrics.counter("relist_total")
        assert wait_until(lambda: relists.get(labels={"reason": "resync"}) >= 1)


class TestStop:

    def test_stop_is_idempotent(self, seeded_store, make_synchronizer):
        sync = make_synchronizer(seeded_store)
        sync.start()
        sync.stop()
        sync.stop()

        status = sync.status()
        assert status.running is False
        assert status.synced is True

    def test_stop_joins_threads(self, seeded_store, make_synchronizer):
        sync = make_synchronizer(seeded_store)
        sync.start()
        sync.stop()
        assert all(not t.is_alive() for t in sync._threads)

    def test_stop_without_start(self, store, make_synchronizer):
        sync = make_synchronizer(store)
        sync.stop()
        assert sync.status().running is False
