"""
Store Module — Adapters for the authoritative Deployment store.
"""

from __future__ import annotations

from .base import (
    EventType,
    ListResult,
    ObjectStore,
    ResourceVersionTooOldError,
    StoreConflictError,
    StoreError,
    StoreNotFoundError,
    StoreTimeoutError,
    WatchEvent,
    WatchStream,
)
from .memory import InMemoryStore

__all__ = [
    "EventType",
    "ListResult",
    "ObjectStore",
    "WatchEvent",
    "WatchStream",
    "StoreError",
    "StoreNotFoundError",
    "StoreConflictError",
    "StoreTimeoutError",
    "ResourceVersionTooOldError",
    "InMemoryStore",
    "build_store",
]


def build_store(backend: str, kubeconfig: str | None = None) -> ObjectStore:
    """Create the store named by STORE_BACKEND."""
    if backend == "memory":
        return InMemoryStore()
    if backend == "kubernetes":
        # Imported lazily so the memory backend works without cluster config
        from .kubernetes import KubernetesDeploymentStore
        return KubernetesDeploymentStore.from_config(kubeconfig)
    raise ValueError(f"Unknown store backend: {backend}")
