"""
Watch Synchronizer — Keep the Mirror in step with the store.

Start-up performs a full list, applies it, and opens the sync barrier.
After that three daemon threads cooperate, with exactly one of them
touching the mirror:

- watch: reads the change stream and queues each event
- resync: queues a relist command every ``resync_period_seconds``
- apply: drains the queue; the only thread that mutates the mirror

Transient watch failures back off and resubscribe from the last seen
resource version. A "resource version too old" answer triggers a relist
and a fresh subscription from the listed version. None of this ever
raises into request handlers: the worst case is a stale mirror.

## Usage

    synchronizer = WatchSynchronizer(store, resync_period_seconds=600)
    synchronizer.start()          # blocks until the initial list is applied
    ...
    synchronizer.stop()
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Union

from ..errors import CacheSyncError
from ..observability.metrics import MetricsRegistry
from ..reliability.backoff import Backoff
from ..store.base import (
    EventType,
    ListResult,
    ObjectStore,
    ResourceVersionTooOldError,
    StoreError,
    StoreTimeoutError,
    WatchEvent,
    WatchStream,
)
from .mirror import ApplyResult, Mirror, compare_resource_versions, is_stale
from .sync_state import SyncState

logger = logging.getLogger(__name__)


class _Relist:
    """Queue command: list the store and reconcile the mirror against it."""

    def __init__(self, reason: str):
        self.reason = reason
        self.done = threading.Event()
        self.ok = False


_STOP = object()

QueueItem = Union[WatchEvent, _Relist, object]


@dataclass
class SyncStatus:
    """Point-in-time view of the synchronizer, for health and logs."""

    synced: bool
    running: bool
    resource_version: str
    objects: int
    last_event_at: Optional[float]
    last_relist_at: Optional[float]
    consecutive_failures: int
    last_error: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class WatchSynchronizer:
    """Owns the Mirror and the threads that keep it current."""

    JOIN_TIMEOUT_SECONDS = 5.0

    def __init__(
        self,
        store: ObjectStore,
        mirror: Optional[Mirror] = None,
        metrics: Optional[MetricsRegistry] = None,
        resync_period_seconds: float = 600,
        sync_timeout_seconds: float = 30,
        watch_timeout_seconds: int = 300,
        backoff_initial: float = 1.0,
        backoff_max: float = 30.0,
    ):
        self.store = store
        self.mirror = mirror if mirror is not None else Mirror()
        self.metrics = metrics or MetricsRegistry()
        self.sync_state = SyncState()

        self.resync_period_seconds = resync_period_seconds
        self.sync_timeout_seconds = sync_timeout_seconds
        self.watch_timeout_seconds = watch_timeout_seconds
        self.backoff_initial = backoff_initial
        self.backoff_max = backoff_max

        self._queue: "queue.Queue[QueueItem]" = queue.Queue()
        self._stop_event = threading.Event()
        self._threads: List[threading.Thread] = []
        self._apply_thread: Optional[threading.Thread] = None
        self._start_lock = threading.Lock()
        self._started = False
        self._stopped = False

        self._stream: Optional[WatchStream] = None
        self._stream_lock = threading.Lock()

        self._rv_lock = threading.Lock()
        self._resource_version = ""

        self._last_event_at: Optional[float] = None
        self._last_relist_at: Optional[float] = None
        self._consecutive_failures = 0
        self._last_error: Optional[str] = None

    # ─── Lifecycle ──────────────────────────────────────────

    def start(self) -> None:
        """
        List, apply, open the sync barrier, then start watching.

        Raises CacheSyncError if the initial list cannot be obtained
        within ``sync_timeout_seconds``.
        """
        with self._start_lock:
            if self._started:
                return
            if self._stopped:
                raise CacheSyncError("Synchronizer has been stopped")

            logger.info(f"Starting synchronizer against {self.store.name} store")
            # A failed sync leaves the synchronizer startable again
            self._initial_sync()
            if self._stop_event.is_set():
                raise CacheSyncError("Synchronizer stopped before the initial sync completed")
            self._started = True

            self.sync_state.mark_synced()
            self.metrics.set_gauge("cache_synced", 1)

            self._apply_thread = self._spawn(self._apply_loop, "mirror-apply")
            self._spawn(self._watch_loop, "mirror-watch")
            if self.resync_period_seconds and self.resync_period_seconds > 0:
                self._spawn(self._resync_loop, "mirror-resync")

    def stop(self) -> None:
        """Close the subscription and join the worker threads. Idempotent."""
        if self._stopped:
            return
        self._stopped = True

        logger.info("Stopping synchronizer")
        self._stop_event.set()
        with self._stream_lock:
            if self._stream is not None:
                self._stream.close()
        self._queue.put(_STOP)

        for thread in self._threads:
            thread.join(timeout=self.JOIN_TIMEOUT_SECONDS)
            if thread.is_alive():
                logger.warning(f"Thread {thread.name} did not stop within {self.JOIN_TIMEOUT_SECONDS}s")

    def wait_for_sync(self, timeout: Optional[float] = None) -> bool:
        return self.sync_state.wait(timeout)

    @property
    def resource_version(self) -> str:
        with self._rv_lock:
            return self._resource_version

    def status(self) -> SyncStatus:
        return SyncStatus(
            synced=self.sync_state.is_synced,
            running=self._started and not self._stopped,
            resource_version=self.resource_version,
            objects=len(self.mirror),
            last_event_at=self._last_event_at,
            last_relist_at=self._last_relist_at,
            consecutive_failures=self._consecutive_failures,
            last_error=self._last_error,
        )

    # ─── Mirror mutation ────────────────────────────────────

    def apply_event(self, event: WatchEvent) -> ApplyResult:
        """
        Apply one change to the mirror.

        ADDED/MODIFIED replace the entry unless the mirror already holds a
        newer version; DELETED removes it unconditionally.
        """
        result = self._apply(event)
        self._last_event_at = time.time()

        if result == ApplyResult.STALE:
            self.metrics.increment("watch_events_stale_total")
            logger.debug(
                f"Dropped stale {event.type.value} for {event.object.display_name} "
                f"at {event.resource_version}",
                extra={
                    "namespace": event.object.namespace,
                    "deployment": event.object.name,
                    "resource_version": event.resource_version,
                    "event_type": event.type.value,
                },
            )
        else:
            self.metrics.increment("watch_events_total", labels={"type": event.type.value})
        return result

    def resync(self, wait: bool = True, timeout: Optional[float] = None) -> bool:
        """
        Relist the store and reconcile the mirror against it.

        Once started, the relist runs on the apply thread like every other
        mutation; before that it runs inline. Returns True if the relist
        was applied (always False for ``wait=False`` on a running
        synchronizer).
        """
        command = _Relist("manual")
        if self._apply_thread is None or not self._apply_thread.is_alive():
            self._handle_relist(command)
            return command.ok

        self._queue.put(command)
        if not wait:
            return False
        return command.done.wait(timeout) and command.ok

    def _apply(self, event: WatchEvent) -> ApplyResult:
        if event.type == EventType.DELETED:
            result = self.mirror.remove(event.object.key)
        else:
            result = self.mirror.upsert(event.object)
        self.metrics.set_gauge("mirror_objects", len(self.mirror))
        return result

    def _reconcile(self, listing: ListResult, reason: str) -> None:
        """Bring the mirror in line with a full listing."""
        listed = set()
        applied = stale = removed = 0

        for obj in listing.objects:
            listed.add(obj.key)
            event_type = EventType.MODIFIED if obj.key in self.mirror else EventType.ADDED
            if self._apply(WatchEvent(event_type, obj)) == ApplyResult.STALE:
                stale += 1
            else:
                applied += 1

        for key, current in self.mirror.snapshot().items():
            if key in listed:
                continue
            # Created after the listing was taken
            if is_stale(listing.resource_version, current.resource_version):
                continue
            self._apply(WatchEvent(EventType.DELETED, current))
            removed += 1

        self._advance_resource_version(listing.resource_version)
        self._last_relist_at = time.time()
        self.metrics.increment("relist_total", labels={"reason": reason})
        logger.info(
            f"Relist ({reason}) at {listing.resource_version}: "
            f"{applied} applied, {stale} stale, {removed} removed, {len(self.mirror)} total",
            extra={"resource_version": listing.resource_version},
        )

    # ─── Initial sync ───────────────────────────────────────

    def _initial_sync(self) -> None:
        deadline = time.monotonic() + self.sync_timeout_seconds
        backoff = Backoff(self.backoff_initial, self.backoff_max)
        last_error: Optional[StoreError] = None

        while True:
            if self._stop_event.is_set():
                raise CacheSyncError("Synchronizer stopped before the initial sync completed")

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise CacheSyncError(
                    f"Failed to sync deployment cache within {self.sync_timeout_seconds}s: {last_error}"
                ) from last_error

            try:
                listing = self._list(remaining)
            except StoreError as e:
                last_error = e
                self.metrics.increment("relist_errors_total")
                remaining = deadline - time.monotonic()
                if remaining > 0:
                    delay = min(backoff.next_delay(), remaining)
                    logger.warning(f"Initial list failed ({e}), retrying in {delay:.1f}s")
                    self._stop_event.wait(delay)
                continue

            self._reconcile(listing, reason="initial")
            return

    def _list(self, timeout: float) -> ListResult:
        """
        ``store.list()`` bounded by ``timeout``.

        The store is asked to honour the timeout itself; the call also runs
        on a helper thread so a store that ignores it cannot hold up the
        caller. An abandoned call finishes (or hangs) on its daemon thread.
        """
        outcome: Dict[str, Any] = {}
        done = threading.Event()

        def call() -> None:
            try:
                outcome["listing"] = self.store.list(timeout=timeout)
            except Exception as e:
                outcome["error"] = e
            finally:
                done.set()

        threading.Thread(target=call, name="mirror-list", daemon=True).start()
        if not done.wait(timeout):
            raise StoreTimeoutError(f"list did not answer within {timeout:.1f}s")
        if "error" in outcome:
            raise outcome["error"]
        return outcome["listing"]

    # ─── Threads ────────────────────────────────────────────

    def _spawn(self, target, name: str) -> threading.Thread:
        thread = threading.Thread(target=target, name=name, daemon=True)
        thread.start()
        self._threads.append(thread)
        return thread

    def _apply_loop(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                return
            try:
                if isinstance(item, _Relist):
                    self._handle_relist(item)
                else:
                    self.apply_event(item)
            except Exception:
                # The only writer must survive anything a single item does
                logger.exception(f"Failed to apply {item!r}")

    def _handle_relist(self, command: _Relist) -> None:
        try:
            listing = self._list(self.sync_timeout_seconds)
            self._reconcile(listing, reason=command.reason)
            command.ok = True
        except StoreError as e:
            self.metrics.increment("relist_errors_total")
            self._last_error = str(e)
            logger.warning(f"Relist ({command.reason}) failed: {e}")
        finally:
            command.done.set()

    def _watch_loop(self) -> None:
        backoff = Backoff(self.backoff_initial, self.backoff_max)

        while not self._stop_event.is_set():
            try:
                self._consume_stream(self.resource_version)
                backoff.reset()
                self._consecutive_failures = 0
                self.metrics.increment("watch_restarts_total", labels={"reason": "closed"})
            except ResourceVersionTooOldError as e:
                logger.info(f"Watch start point {self.resource_version} expired ({e}), relisting")
                self.metrics.increment("watch_restarts_total", labels={"reason": "expired"})
                if not self._relist_and_wait("expired"):
                    self._record_failure(e)
                    self._stop_event.wait(backoff.next_delay())
            except Exception as e:
                self._record_failure(e)
                self.metrics.increment("watch_restarts_total", labels={"reason": "error"})
                delay = backoff.next_delay()
                logger.warning(f"Watch failed ({e}), resubscribing in {delay:.1f}s")
                self._stop_event.wait(delay)

    def _consume_stream(self, resource_version: str) -> None:
        stream = self.store.watch(resource_version, timeout_seconds=self.watch_timeout_seconds)
        with self._stream_lock:
            if self._stop_event.is_set():
                stream.close()
                return
            self._stream = stream

        logger.debug(f"Watching from resource version {resource_version}")
        try:
            for event in stream:
                if self._stop_event.is_set():
                    break
                self._advance_resource_version(event.resource_version)
                self._queue.put(event)
                self._consecutive_failures = 0
        finally:
            with self._stream_lock:
                self._stream = None

    def _relist_and_wait(self, reason: str) -> bool:
        command = _Relist(reason)
        self._queue.put(command)
        while not command.done.wait(0.5):
            if self._stop_event.is_set():
                return False
        return command.ok

    def _resync_loop(self) -> None:
        while not self._stop_event.wait(self.resync_period_seconds):
            logger.debug("Periodic resync")
            self._queue.put(_Relist("resync"))

    # ─── Bookkeeping ────────────────────────────────────────

    def _advance_resource_version(self, resource_version: str) -> None:
        if not resource_version:
            return
        with self._rv_lock:
            if compare_resource_versions(resource_version, self._resource_version) != -1:
                self._resource_version = resource_version

    def _record_failure(self, error: Exception) -> None:
        self._consecutive_failures += 1
        self._last_error = str(error)
