"""
Errors — The closed set of outcomes request handlers can see.

Store-level failures never leave the core as-is. Reads and writes
translate them into one of the request-facing kinds below, keeping the
original exception chained as ``__cause__`` for logging.

## Kinds

- InvalidInputError: bad key or replica count, rejected before any I/O
- NotFoundError: key absent from the mirror (read) or the store (write)
- WriteFailureError: any other write failure (conflict, auth, unavailable)
- WriteTimeoutError: a WriteFailureError that hit the write deadline
"""

from __future__ import annotations

from typing import Optional


class ScalerError(Exception):
    """Base class for all deployment-scaler errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidInputError(ScalerError):
    """The caller sent something we will not act on."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class NotFoundError(ScalerError):
    """The target deployment does not exist."""

    def __init__(self, namespace: str, name: str):
        self.namespace = namespace
        self.name = name
        super().__init__(f"Deployment {namespace}/{name} not found")


class WriteFailureError(ScalerError):
    """The authoritative write did not succeed."""


class WriteTimeoutError(WriteFailureError):
    """The authoritative write did not answer within its deadline."""


class CacheSyncError(ScalerError):
    """The initial list could not be applied within the startup window."""
