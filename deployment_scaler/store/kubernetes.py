"""
Kubernetes Store — ObjectStore backed by the official kubernetes client.

Lists and watches Deployments across all namespaces and writes replica
counts through the ``scale`` subresource, so a scale never clobbers
concurrent edits to the rest of the Deployment spec.

Client configuration follows the usual order: in-cluster service account
first, then KUBECONFIG (or ~/.kube/config).
"""

from __future__ import annotations

import functools
import logging
import socket
from typing import Any, Iterator, Optional

import urllib3
from kubernetes import client, config, watch
from kubernetes.client.exceptions import ApiException
from kubernetes.config.config_exception import ConfigException

from ..models.deployment import MirroredObject
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

logger = logging.getLogger(__name__)

HTTP_GONE = 410

# Kubernetes defaults spec.replicas to 1 when it is omitted
DEFAULT_REPLICAS = 1


class KubernetesDeploymentStore(ObjectStore):
    """Deployments in one cluster, as seen through AppsV1Api."""

    def __init__(self, apps: client.AppsV1Api, api_client: Optional[client.ApiClient] = None):
        self._apps = apps
        self._api_client = api_client or apps.api_client

    @classmethod
    def from_config(cls, kubeconfig: Optional[str] = None) -> "KubernetesDeploymentStore":
        """Load cluster credentials and build the store."""
        try:
            config.load_incluster_config()
            logger.info("Using in-cluster Kubernetes configuration")
        except ConfigException:
            try:
                config.load_kube_config(config_file=kubeconfig)
            except (ConfigException, OSError) as e:
                raise StoreError(f"error building kubeconfig: {e}") from e
            logger.info(f"Using kubeconfig {kubeconfig or '~/.kube/config'}")

        api_client = client.ApiClient()
        return cls(client.AppsV1Api(api_client), api_client)

    @property
    def name(self) -> str:
        return "kubernetes"

    def list(self, timeout: Optional[float] = None) -> ListResult:
        try:
            result = self._apps.list_deployment_for_all_namespaces(_request_timeout=timeout)
        except ApiException as e:
            raise StoreError(f"list deployments failed: {e.status} {e.reason}") from e
        except urllib3.exceptions.HTTPError as e:
            if _is_timeout(e):
                raise StoreTimeoutError(f"list deployments timed out after {timeout}s") from e
            raise StoreError(f"list deployments failed: {e}") from e

        return ListResult(
            objects=[self._to_mirrored(item) for item in result.items],
            resource_version=result.metadata.resource_version or "",
        )

    def watch(self, resource_version: str, timeout_seconds: Optional[int] = None) -> WatchStream:
        return _KubernetesWatchStream(self, resource_version, timeout_seconds)

    def update_scale(
        self,
        namespace: str,
        name: str,
        replicas: int,
        timeout: Optional[float] = None,
    ) -> int:
        body = client.V1Scale(
            metadata=client.V1ObjectMeta(name=name, namespace=namespace),
            spec=client.V1ScaleSpec(replicas=replicas),
        )
        try:
            result = self._apps.replace_namespaced_deployment_scale(
                name=name,
                namespace=namespace,
                body=body,
                _request_timeout=timeout,
            )
        except ApiException as e:
            if e.status == 404:
                raise StoreNotFoundError(f"{namespace}/{name}") from e
            if e.status == 409:
                raise StoreConflictError(f"{namespace}/{name}: {e.reason}") from e
            raise StoreError(f"scale {namespace}/{name} failed: {e.status} {e.reason}") from e
        except urllib3.exceptions.HTTPError as e:
            if _is_timeout(e):
                raise StoreTimeoutError(f"scale {namespace}/{name} timed out after {timeout}s") from e
            raise StoreError(f"scale {namespace}/{name} failed: {e}") from e

        accepted = getattr(getattr(result, "spec", None), "replicas", None)
        return replicas if accepted is None else accepted

    def _to_mirrored(self, deployment: Any) -> MirroredObject:
        meta = deployment.metadata
        spec_replicas = getattr(deployment.spec, "replicas", None)
        return MirroredObject(
            namespace=meta.namespace,
            name=meta.name,
            replicas=DEFAULT_REPLICAS if spec_replicas is None else spec_replicas,
            resource_version=meta.resource_version or "",
            payload=self._api_client.sanitize_for_serialization(deployment),
        )


class _KubernetesWatchStream(WatchStream):
    """Wraps kubernetes.watch.Watch and translates its events and errors."""

    def __init__(self, store: KubernetesDeploymentStore, resource_version: str, timeout_seconds: Optional[int]):
        self._store = store
        self._resource_version = resource_version
        self._timeout_seconds = timeout_seconds
        self._watch = watch.Watch()
        self._response = None
        self._closed = False

    def _list_and_keep_response(self):
        list_fn = self._store._apps.list_deployment_for_all_namespaces

        # Watch.stream reads the return type and parameters off the wrapped function
        @functools.wraps(list_fn)
        def call(*args, **kwargs):
            self._response = list_fn(*args, **kwargs)
            return self._response

        return call

    def __iter__(self) -> Iterator[WatchEvent]:
        kwargs = {"resource_version": self._resource_version}
        if self._timeout_seconds:
            kwargs["timeout_seconds"] = self._timeout_seconds

        try:
            for raw in self._watch.stream(self._list_and_keep_response(), **kwargs):
                event_type = raw.get("type")

                if event_type == "ERROR":
                    # Older clients yield the error instead of raising it
                    status = raw.get("raw_object", {}) or {}
                    if status.get("code") == HTTP_GONE:
                        raise ResourceVersionTooOldError(status.get("message", "resource version too old"))
                    raise StoreError(f"watch error: {status.get('reason')}: {status.get('message')}")

                if event_type not in EventType.__members__:
                    # BOOKMARK and anything newer
                    continue

                yield WatchEvent(EventType(event_type), self._store._to_mirrored(raw["object"]))
        except ApiException as e:
            if e.status == HTTP_GONE:
                raise ResourceVersionTooOldError(str(e.reason)) from e
            raise StoreError(f"watch failed: {e.status} {e.reason}") from e
        except (urllib3.exceptions.HTTPError, OSError, ValueError) as e:
            if self._closed:
                # Reading from a socket close() shut down
                return
            raise StoreError(f"watch connection lost: {e}") from e
        finally:
            self._watch.stop()
            self._response = None

    def close(self) -> None:
        self._closed = True
        self._watch.stop()

        # Watch.stop() is only noticed at the next event; shut the socket so a
        # quiet stream unblocks now. The stream's own finally closes the response.
        response = self._response
        connection = getattr(response, "connection", None) if response is not None else None
        sock = getattr(connection, "sock", None) if connection is not None else None
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError as e:
            logger.debug(f"Watch socket already closed: {e}")


def _is_timeout(error: urllib3.exceptions.HTTPError) -> bool:
    if isinstance(error, urllib3.exceptions.TimeoutError):
        return True
    return isinstance(error, urllib3.exceptions.MaxRetryError) and isinstance(
        error.reason, urllib3.exceptions.TimeoutError
    )
