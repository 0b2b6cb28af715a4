"""
Mutation Coordinator — Apply replica changes through the store's write path.

Writes go straight to the store, never to the mirror. The mirror catches
up when the resulting MODIFIED event arrives, so a read issued right
after a successful write may still return the previous count.

Nothing here retries. Whether a failed scale should be re-attempted
depends on intent the caller has and we do not.

## Usage

    coordinator = MutationCoordinator(store, write_timeout=10)

    try:
        applied = coordinator.set_replica_count("default", "web", 5)
    except NotFoundError:
        ...
    except WriteFailureError as e:
        logger.error(f"scale failed: {e.__cause__}")
"""

from __future__ import annotations

import logging
import time
from typing import Any, Optional

from .errors import NotFoundError, WriteFailureError, WriteTimeoutError
from .observability.metrics import MetricsRegistry
from .reliability.circuit_breaker import CircuitBreaker
from .store.base import (
    ObjectStore,
    StoreConflictError,
    StoreError,
    StoreNotFoundError,
    StoreTimeoutError,
)
from .validation import parse_replica_change

logger = logging.getLogger(__name__)

DEFAULT_WRITE_TIMEOUT_SECONDS = 10.0


class MutationCoordinator:
    """validate → write → respond; no partial states."""

    def __init__(
        self,
        store: ObjectStore,
        breaker: Optional[CircuitBreaker] = None,
        metrics: Optional[MetricsRegistry] = None,
        write_timeout: float = DEFAULT_WRITE_TIMEOUT_SECONDS,
    ):
        self.store = store
        self.breaker = breaker or CircuitBreaker("scale-writes")
        self.metrics = metrics or MetricsRegistry()
        self.write_timeout = write_timeout

    def set_replica_count(
        self,
        namespace: Optional[str],
        name: Optional[str],
        count: Any,
        timeout: Optional[float] = None,
    ) -> int:
        """
        Write ``count`` as the desired replicas of namespace/name.

        ``timeout`` can only shorten the configured write deadline.

        Raises:
            InvalidInputError: missing key or a count that is not a non-negative int
            NotFoundError: the store has no such Deployment
            WriteFailureError: anything else, including WriteTimeoutError
        """
        request = parse_replica_change(namespace, name, count)
        deadline = self.write_timeout if timeout is None else min(timeout, self.write_timeout)
        target = f"{request.namespace}/{request.name}"
        log_extra = {"namespace": request.namespace, "deployment": request.name}

        if not self.breaker.allow_request():
            self._record("rejected")
            raise WriteFailureError(f"Scale writes suspended after repeated store failures ({target})")

        start = time.monotonic()
        try:
            applied = self.store.update_scale(
                request.namespace,
                request.name,
                request.replicas,
                timeout=deadline,
            )
        except StoreNotFoundError as e:
            # The store answered; that is not a store failure
            self.breaker.record_success()
            self._record("not_found", start)
            raise NotFoundError(request.namespace, request.name) from e
        except StoreConflictError as e:
            self._record("conflict", start)
            logger.warning(f"Scale of {target} rejected by concurrency check: {e}", extra=log_extra)
            raise WriteFailureError(f"Conflict updating scale of {target}") from e
        except StoreTimeoutError as e:
            self.breaker.record_failure()
            self._record("timeout", start)
            logger.error(f"Scale of {target} timed out after {deadline}s: {e}", extra=log_extra)
            raise WriteTimeoutError(f"Timed out updating scale of {target}") from e
        except StoreError as e:
            self.breaker.record_failure()
            self._record("error", start)
            logger.error(f"Failed to update scale of {target}: {e}", extra=log_extra)
            raise WriteFailureError(f"Failed to update scale of {target}") from e

        self.breaker.record_success()
        self._record("ok", start)
        logger.info(f"Scaled {target} to {request.replicas} replicas", extra=log_extra)
        return request.replicas if applied is None else applied

    def mutate(self, namespace: Optional[str], name: Optional[str], desired: Any) -> int:
        return self.set_replica_count(namespace, name, desired)

    def _record(self, outcome: str, start: Optional[float] = None) -> None:
        self.metrics.increment("scale_requests_total", labels={"outcome": outcome})
        if start is not None:
            self.metrics.timing("scale_duration_seconds", time.monotonic() - start)
