"""
In-Memory Store — A thread-safe stand-in for the control plane.

Behaves like the real thing where the cache cares: one global,
monotonically increasing resource version; a bounded event history so
old watch start points eventually fail with ResourceVersionTooOldError;
scale writes that produce MODIFIED events. Used by the test-suite and by
``STORE_BACKEND=memory`` for local development.

## Usage

    from deployment_scaler.store.memory import InMemoryStore

    store = InMemoryStore()
    store.create("default", "web", replicas=3)
    store.update_scale("default", "web", 5)

    # Make the next list() fail once
    store.inject_failure("list", StoreError("apiserver unavailable"))
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import Any, Deque, Dict, Iterator, List, Optional, Tuple

from ..models.deployment import MirroredObject, ObjectKey
from .base import (
    EventType,
    ListResult,
    ObjectStore,
    ResourceVersionTooOldError,
    StoreError,
    StoreNotFoundError,
    WatchEvent,
    WatchStream,
)

logger = logging.getLogger(__name__)


class InMemoryStore(ObjectStore):
    """Dictionary-backed ObjectStore with a replayable change log."""

    DEFAULT_HISTORY_LIMIT = 1000

    def __init__(self, history_limit: int = DEFAULT_HISTORY_LIMIT):
        self._objects: Dict[ObjectKey, MirroredObject] = {}
        self._history: Deque[Tuple[int, WatchEvent]] = deque()
        self._history_limit = history_limit
        self._revision = 0
        # Watches must start at or after this revision
        self._compacted_revision = 0
        self._cond = threading.Condition()
        self._failures: Dict[str, List[Exception]] = {}
        self.calls: List[Tuple[Any, ...]] = []

    @property
    def name(self) -> str:
        return "memory"

    # ─── Seeding helpers ────────────────────────────────────

    def create(
        self,
        namespace: str,
        name: str,
        replicas: int = 1,
        payload: Optional[Dict[str, Any]] = None,
    ) -> MirroredObject:
        """Create or replace an object, emitting ADDED or MODIFIED."""
        with self._cond:
            key = (namespace, name)
            event_type = EventType.MODIFIED if key in self._objects else EventType.ADDED
            obj = self._store(namespace, name, replicas, payload)
            self._emit(event_type, obj)
            return obj

    def delete(self, namespace: str, name: str) -> None:
        """Delete an object, emitting DELETED."""
        with self._cond:
            existing = self._objects.pop((namespace, name), None)
            if existing is None:
                raise StoreNotFoundError(f"{namespace}/{name}")
            self._revision += 1
            tombstone = MirroredObject(
                namespace=namespace,
                name=name,
                replicas=existing.replicas,
                resource_version=str(self._revision),
                payload=existing.payload,
            )
            self._emit(EventType.DELETED, tombstone)

    def get(self, namespace: str, name: str) -> Optional[MirroredObject]:
        with self._cond:
            return self._objects.get((namespace, name))

    def compact(self) -> None:
        """Forget all history; every earlier watch start point becomes too old."""
        with self._cond:
            self._history.clear()
            self._compacted_revision = self._revision
            self._cond.notify_all()

    def inject_failure(self, operation: str, error: Exception) -> None:
        """Make the next call to ``operation`` raise ``error``."""
        with self._cond:
            self._failures.setdefault(operation, []).append(error)

    @property
    def scale_calls(self) -> List[Tuple[Any, ...]]:
        return [c for c in self.calls if c[0] == "update_scale"]

    # ─── ObjectStore ────────────────────────────────────────

    def list(self, timeout: Optional[float] = None) -> ListResult:
        with self._cond:
            self.calls.append(("list",))
            self._raise_injected("list")
            return ListResult(
                objects=sorted(self._objects.values(), key=lambda o: o.key),
                resource_version=str(self._revision),
            )

    def watch(self, resource_version: str, timeout_seconds: Optional[int] = None) -> WatchStream:
        with self._cond:
            self.calls.append(("watch", resource_version))
            self._raise_injected("watch")
            start = _parse_revision(resource_version)
            if start < self._compacted_revision:
                raise ResourceVersionTooOldError(
                    f"resource version {resource_version} is older than {self._compacted_revision}"
                )
        return _MemoryWatchStream(self, start, timeout_seconds)

    def update_scale(
        self,
        namespace: str,
        name: str,
        replicas: int,
        timeout: Optional[float] = None,
    ) -> int:
        with self._cond:
            self.calls.append(("update_scale", namespace, name, replicas))
            self._raise_injected("update_scale")
            existing = self._objects.get((namespace, name))
            if existing is None:
                raise StoreNotFoundError(f"deployments \"{name}\" not found in {namespace}")
            obj = self._store(namespace, name, replicas, existing.payload)
            self._emit(EventType.MODIFIED, obj)
            return replicas

    # ─── Internals (caller holds the lock) ──────────────────

    def _store(
        self,
        namespace: str,
        name: str,
        replicas: int,
        payload: Optional[Dict[str, Any]],
    ) -> MirroredObject:
        self._revision += 1
        body = dict(payload or {})
        body.setdefault("metadata", {})
        body["metadata"] = {
            **body["metadata"],
            "namespace": namespace,
            "name": name,
            "resourceVersion": str(self._revision),
        }
        body["spec"] = {**body.get("spec", {}), "replicas": replicas}
        obj = MirroredObject(
            namespace=namespace,
            name=name,
            replicas=replicas,
            resource_version=str(self._revision),
            payload=body,
        )
        self._objects[obj.key] = obj
        return obj

    def _emit(self, event_type: EventType, obj: MirroredObject) -> None:
        self._history.append((int(obj.resource_version), WatchEvent(event_type, obj)))
        while len(self._history) > self._history_limit:
            dropped, _ = self._history.popleft()
            self._compacted_revision = dropped
        self._cond.notify_all()

    def _raise_injected(self, operation: str) -> None:
        pending = self._failures.get(operation)
        if pending:
            raise pending.pop(0)

    def _events_after(self, revision: int) -> List[Tuple[int, WatchEvent]]:
        if revision < self._compacted_revision:
            raise ResourceVersionTooOldError(
                f"resource version {revision} is older than {self._compacted_revision}"
            )
        return [(rev, ev) for rev, ev in self._history if rev > revision]


class _MemoryWatchStream(WatchStream):
    """Replays history after a revision, then blocks for new events."""

    def __init__(self, store: InMemoryStore, start: int, timeout_seconds: Optional[int]):
        self._store = store
        self._cursor = start
        self._timeout = timeout_seconds
        self._closed = False

    def __iter__(self) -> Iterator[WatchEvent]:
        deadline = time.monotonic() + self._timeout if self._timeout else None
        cond = self._store._cond
        while not self._closed:
            with cond:
                pending = self._store._events_after(self._cursor)
                if not pending:
                    remaining = None if deadline is None else deadline - time.monotonic()
                    if remaining is not None and remaining <= 0:
                        return
                    cond.wait(timeout=remaining if remaining is not None else 1.0)
                    continue
            for revision, event in pending:
                if self._closed:
                    return
                self._cursor = revision
                yield event

    def close(self) -> None:
        self._closed = True
        with self._store._cond:
            self._store._cond.notify_all()


def _parse_revision(resource_version: str) -> int:
    try:
        return int(resource_version or 0)
    except ValueError:
        raise StoreError(f"invalid resource version: {resource_version!r}")
