"""
Query Façade — Read-only access to the mirror for request handlers.

Reads never touch the store. A read reflects every event applied before
it began; how far that trails the store is bounded by watch propagation
delay (normally sub-second) or, after a dropped stream, by the resync
period. A scale written a moment ago may therefore still read as the old
value until its MODIFIED event arrives.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

from ..errors import NotFoundError
from ..models.deployment import MirroredObject, ObjectKey
from ..validation import validate_key
from .mirror import Mirror
from .sync_state import SyncState


class QueryFacade:
    """Point and range lookups against the mirror."""

    def __init__(self, mirror: Mirror, sync_state: SyncState):
        self._mirror = mirror
        self._sync_state = sync_state

    def get_by_key(self, namespace: str, name: str) -> Tuple[Optional[MirroredObject], bool]:
        """
        O(1) lookup.

        ``found`` is False both for keys that never existed and for keys
        deleted since; the mirror keeps no tombstones to tell them apart.
        """
        obj = self._mirror.get(namespace, name)
        return obj, obj is not None

    def list_by_namespace(self, namespace: Optional[str] = None) -> List[ObjectKey]:
        """Keys in one namespace, or all keys when ``namespace`` is empty, sorted."""
        return self._mirror.keys(namespace or None)

    def query_single(self, namespace: Optional[str], name: Optional[str]) -> MirroredObject:
        """Validated lookup; raises InvalidInputError or NotFoundError."""
        namespace, name = validate_key(namespace, name)
        obj, found = self.get_by_key(namespace, name)
        if not found:
            raise NotFoundError(namespace, name)
        return obj

    def query_list(self, namespace: Optional[str] = None) -> List[ObjectKey]:
        return self.list_by_namespace(namespace)

    def is_ready(self) -> bool:
        """True once the initial sync barrier has completed."""
        return self._sync_state.is_synced
