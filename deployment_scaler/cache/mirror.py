"""
Mirror — In-memory indexed copy of the store's Deployments.

Keyed by (namespace, name) with a per-namespace secondary index. Entries
are immutable MirroredObject snapshots and index buckets are frozensets,
so every mutation is a single reference swap. Readers never lock and
never observe half of an applied event; the writer lock only keeps the
two indexes in step when more than one thread writes (the synchronizer
normally guarantees a single writer anyway).
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from ..models.deployment import MirroredObject, ObjectKey

logger = logging.getLogger(__name__)


class ApplyResult(str, Enum):
    """What a single mirror mutation did."""
    APPLIED = "applied"
    STALE = "stale"
    DELETED = "deleted"
    ABSENT = "absent"


def compare_resource_versions(a: str, b: str) -> Optional[int]:
    """
    Order two resource versions.

    Returns -1, 0 or 1 when an order can be determined and None when it
    cannot. Versions are opaque in general; decimal strings (what
    Kubernetes hands out) are compared numerically.
    """
    if a == b:
        return 0
    if a.isdigit() and b.isdigit():
        x, y = int(a), int(b)
        return (x > y) - (x < y)
    return None


def is_stale(incoming: str, current: str) -> bool:
    """True when ``incoming`` is known to be older than ``current``."""
    return compare_resource_versions(incoming, current) == -1


class Mirror:
    """The indexed collection. Only the WatchSynchronizer writes to it."""

    def __init__(self) -> None:
        self._objects: Dict[ObjectKey, MirroredObject] = {}
        self._namespaces: Dict[str, FrozenSet[str]] = {}
        self._write_lock = threading.Lock()

    # ─── Writes ─────────────────────────────────────────────

    def upsert(self, obj: MirroredObject) -> ApplyResult:
        """Insert or replace unless the stored copy is newer."""
        with self._write_lock:
            current = self._objects.get(obj.key)
            if current is not None and is_stale(obj.resource_version, current.resource_version):
                return ApplyResult.STALE

            self._objects[obj.key] = obj
            names = self._namespaces.get(obj.namespace, frozenset())
            if obj.name not in names:
                self._namespaces[obj.namespace] = names | {obj.name}
            return ApplyResult.APPLIED

    def remove(self, key: ObjectKey) -> ApplyResult:
        """Drop an entry regardless of version."""
        namespace, name = key
        with self._write_lock:
            if key not in self._objects:
                return ApplyResult.ABSENT

            # Index first, so a listing never names a key that get() cannot find
            names = self._namespaces.get(namespace, frozenset()) - {name}
            if names:
                self._namespaces[namespace] = names
            else:
                self._namespaces.pop(namespace, None)
            del self._objects[key]
            return ApplyResult.DELETED

    # ─── Reads ──────────────────────────────────────────────

    def get(self, namespace: str, name: str) -> Optional[MirroredObject]:
        return self._objects.get((namespace, name))

    def keys(self, namespace: Optional[str] = None) -> List[ObjectKey]:
        """Sorted keys, optionally restricted to one namespace."""
        if namespace:
            return [(namespace, n) for n in sorted(self._namespaces.get(namespace, ()))]

        index = self._namespaces.copy()
        return [(ns, n) for ns in sorted(index) for n in sorted(index[ns])]

    def namespaces(self) -> List[str]:
        return sorted(self._namespaces.copy())

    def snapshot(self) -> Dict[ObjectKey, MirroredObject]:
        return self._objects.copy()

    def __len__(self) -> int:
        return len(self._objects)

    def __contains__(self, key: object) -> bool:
        return key in self._objects
