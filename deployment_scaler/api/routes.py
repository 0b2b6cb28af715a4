"""
Replica API — Read and change Deployment replica counts.

Blueprint: replicas_bp
Routes:
    GET  /healthz
    GET  /replica-count?namespace=&deployment=
    POST /replica-count?namespace=&deployment=   {"replicas": n}
    GET  /deployments[?namespace=]
    GET  /metrics

Reads are served from the mirror. Writes go to the store; a GET right
after a POST can still return the old count for a moment.

Domain errors (InvalidInputError, NotFoundError, WriteFailureError) are
raised from here and turned into JSON by the handlers in server.py.
"""

from __future__ import annotations

import logging

from flask import Blueprint, Response, jsonify, request

from ..validation import INVALID_BODY_MESSAGE, validate_key
from ..errors import InvalidInputError
from .helpers import json_error, scaler_context

logger = logging.getLogger(__name__)

replicas_bp = Blueprint("replicas", __name__)


@replicas_bp.route("/healthz", methods=["GET"])
def healthz():
    """Ready and not unhealthy → 200, otherwise 503."""
    ctx = scaler_context()
    if not ctx.is_ready():
        return json_error("Deployment cache not synced", 503)

    health = ctx.health.check()
    if not health.healthy:
        return json_error(f"Service {health.status.value}", 503)

    return jsonify({"status": "OK", "health": health.to_dict()})


@replicas_bp.route("/replica-count", methods=["GET"])
def get_replica_count():
    """Desired replicas of one Deployment, from the mirror."""
    ctx = scaler_context()
    deployment = ctx.query.query_single(
        request.args.get("namespace"),
        request.args.get("deployment"),
    )
    return jsonify({"replicaCount": deployment.replicas})


@replicas_bp.route("/replica-count", methods=["POST"])
def post_replica_count():
    """Scale one Deployment through the store."""
    ctx = scaler_context()
    namespace, name = validate_key(
        request.args.get("namespace"),
        request.args.get("deployment"),
    )

    body = request.get_json(force=True, silent=True)
    if not isinstance(body, dict) or "replicas" not in body:
        raise InvalidInputError(INVALID_BODY_MESSAGE, field="replicas")

    applied = ctx.coordinator.set_replica_count(namespace, name, body["replicas"])
    return jsonify({"replicaCount": applied})


@replicas_bp.route("/deployments", methods=["GET"])
def list_deployments():
    """namespace/name of every mirrored Deployment, optionally one namespace."""
    ctx = scaler_context()
    keys = ctx.query.query_list(request.args.get("namespace"))
    return jsonify({"deployments": [f"{ns}/{name}" for ns, name in keys]})


@replicas_bp.route("/metrics", methods=["GET"])
def metrics():
    """Prometheus exposition."""
    ctx = scaler_context()
    return Response(ctx.metrics.export_prometheus(), mimetype="text/plain; version=0.0.4")
