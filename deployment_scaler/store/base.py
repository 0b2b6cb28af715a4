"""
Object Store Interface — The narrow surface the core needs from the
control plane.

Three calls and nothing else: a full list, a watch from a resource
version, and a write to the scale subresource. Keeping the surface this
small lets the cache be exercised against InMemoryStore instead of a
generated client fake.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional

from ..models.deployment import MirroredObject


class EventType(str, Enum):
    """Change-stream event kinds."""
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


@dataclass(frozen=True)
class WatchEvent:
    """One change observed on the stream."""

    type: EventType
    object: MirroredObject

    @property
    def resource_version(self) -> str:
        return self.object.resource_version


@dataclass
class ListResult:
    """A consistent full listing and the version it was taken at."""

    objects: List[MirroredObject] = field(default_factory=list)
    resource_version: str = ""


# ─── Errors ──────────────────────────────────────────────────


class StoreError(Exception):
    """Any failure talking to the store."""


class StoreNotFoundError(StoreError):
    """The addressed object does not exist."""


class StoreConflictError(StoreError):
    """The store rejected the write on its optimistic-concurrency check."""


class StoreTimeoutError(StoreError):
    """The store did not answer in time."""


class ResourceVersionTooOldError(StoreError):
    """The requested watch start point has been compacted away."""


# ─── Interface ───────────────────────────────────────────────


class WatchStream(ABC):
    """
    An open subscription.

    Iterating yields WatchEvents until the server ends the stream or
    ``close()`` is called from another thread.
    """

    @abstractmethod
    def __iter__(self) -> Iterator[WatchEvent]:
        ...

    @abstractmethod
    def close(self) -> None:
        """Abort the subscription. Safe to call more than once."""
        ...


class ObjectStore(ABC):
    """Authoritative store of Deployment objects."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend name, used in logs."""
        ...

    @abstractmethod
    def list(self, timeout: Optional[float] = None) -> ListResult:
        """
        List every object and the resource version of the listing.

        Raises StoreTimeoutError when ``timeout`` elapses first.
        """
        ...

    @abstractmethod
    def watch(self, resource_version: str, timeout_seconds: Optional[int] = None) -> WatchStream:
        """
        Subscribe to changes after ``resource_version``.

        Raises ResourceVersionTooOldError, either here or while iterating,
        when that version is no longer available.
        """
        ...

    @abstractmethod
    def update_scale(
        self,
        namespace: str,
        name: str,
        replicas: int,
        timeout: Optional[float] = None,
    ) -> int:
        """
        Set the desired replica count and return what the store accepted.

        Raises StoreNotFoundError, StoreConflictError, StoreTimeoutError or
        StoreError.
        """
        ...
