"""
Models — Value types shared by the cache, the store adapters and the API.
"""

from .deployment import MirroredObject, ObjectKey, ReplicaChangeRequest

__all__ = ["MirroredObject", "ObjectKey", "ReplicaChangeRequest"]
