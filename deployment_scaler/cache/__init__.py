"""
Cache Module — The watch-synchronized Deployment mirror and its read side.
"""

from .mirror import ApplyResult, Mirror, compare_resource_versions
from .query import QueryFacade
from .sync_state import SyncState
from .synchronizer import SyncStatus, WatchSynchronizer

__all__ = [
    "ApplyResult",
    "Mirror",
    "compare_resource_versions",
    "QueryFacade",
    "SyncState",
    "SyncStatus",
    "WatchSynchronizer",
]
