"""
Validation — Turn raw caller input into validated value objects.

Everything here raises InvalidInputError (or ConfigurationError for
settings) so the HTTP layer can map failures without knowing about
pydantic.

## Usage

    from deployment_scaler.validation import parse_replica_change

    try:
        request = parse_replica_change("default", "web", body.get("replicas"))
    except InvalidInputError as e:
        print(f"Rejected: {e.message}")
"""

from __future__ import annotations

from typing import Any, Optional, Tuple

from pydantic import ValidationError

from .errors import InvalidInputError
from .models.deployment import ReplicaChangeRequest

MISSING_KEY_MESSAGE = "Both namespace and deployment must be specified"
NEGATIVE_REPLICAS_MESSAGE = "Replica count must be non-negative"
INVALID_BODY_MESSAGE = "Invalid request body"


class ConfigurationError(Exception):
    """Raised when configuration is missing or invalid."""
    pass


def validate_key(namespace: Optional[str], name: Optional[str]) -> Tuple[str, str]:
    """Require both halves of a (namespace, name) key."""
    if not namespace or not name:
        raise InvalidInputError(MISSING_KEY_MESSAGE, field="namespace" if not namespace else "deployment")
    return namespace, name


def parse_replica_change(namespace: Optional[str], name: Optional[str], replicas: Any) -> ReplicaChangeRequest:
    """
    Build a ReplicaChangeRequest or raise InvalidInputError.

    Booleans and floats are rejected even though Python would happily
    treat ``True`` as 1.
    """
    namespace, name = validate_key(namespace, name)

    try:
        return ReplicaChangeRequest(namespace=namespace, name=name, replicas=replicas)
    except ValidationError as e:
        for error in e.errors():
            if error.get("loc") == ("replicas",) and error.get("type") == "greater_than_equal":
                raise InvalidInputError(NEGATIVE_REPLICAS_MESSAGE, field="replicas") from e
        raise InvalidInputError(INVALID_BODY_MESSAGE, field="replicas") from e
