"""
Deployment Models — What the mirror stores and what a scale request carries.

MirroredObject is an immutable snapshot of one Deployment as last seen on
the change stream. The mirror replaces whole snapshots and never edits one
in place, so a reader holding a reference always sees a consistent object.

ReplicaChangeRequest is a throwaway value object validated by pydantic.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Tuple

from pydantic import BaseModel, ConfigDict, Field, StrictInt

# (namespace, name)
ObjectKey = Tuple[str, str]


@dataclass(frozen=True)
class MirroredObject:
    """Snapshot of one Deployment."""

    namespace: str
    name: str
    replicas: int
    resource_version: str
    # Opaque beyond the replica count
    payload: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def key(self) -> ObjectKey:
        return (self.namespace, self.name)

    @property
    def display_name(self) -> str:
        return f"{self.namespace}/{self.name}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "namespace": self.namespace,
            "name": self.name,
            "replicas": self.replicas,
            "resourceVersion": self.resource_version,
        }


class ReplicaChangeRequest(BaseModel):
    """A validated request to set a Deployment's desired replica count."""

    model_config = ConfigDict(frozen=True)

    namespace: str = Field(min_length=1)
    name: str = Field(min_length=1)
    replicas: StrictInt = Field(ge=0)

    @property
    def key(self) -> ObjectKey:
        return (self.namespace, self.name)
