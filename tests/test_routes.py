"""
Tests for the replica API routes.

Uses the Flask test client against a context whose synchronizer has
completed its initial sync over the seeded in-memory store.
"""

from __future__ import annotations

import pytest

pytest.importorskip("flask")

from deployment_scaler.api import create_app
from deployment_scaler.context import build_context
from deployment_scaler.store.base import StoreConflictError, StoreError, StoreTimeoutError


# ── Health ───────────────────────────────────────────────────────────


class TestHealthz:

    def test_ok_when_synced(self, client):
        resp = client.get("/healthz")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["status"] == "OK"
        assert data["health"]["status"] == "healthy"

    def test_503_before_sync(self, settings, seeded_store):
        ctx = build_context(settings, store=seeded_store)
        client = create_app(ctx).test_client()

        resp = client.get("/healthz")

        assert resp.status_code == 503
        assert resp.get_json() == {"message": "Deployment cache not synced", "code": 503}


# ── Reads ────────────────────────────────────────────────────────────


class TestGetReplicaCount:

    def test_returns_count(self, client):
        resp = client.get("/replica-count?namespace=default&deployment=web")
        assert resp.status_code == 200
        assert resp.get_json() == {"replicaCount": 3}

    def test_zero_replicas(self, client):
        resp = client.get("/replica-count?namespace=batch&deployment=worker")
        assert resp.get_json() == {"replicaCount": 0}

    @pytest.mark.parametrize("query", [
        "",
        "?namespace=default",
        "?deployment=web",
        "?namespace=&deployment=web",
    ])
    def test_missing_parameters(self, client, query):
        resp = client.get(f"/replica-count{query}")
        assert resp.status_code == 400
        assert resp.get_json() == {
            "message": "Both namespace and deployment must be specified",
            "code": 400,
        }

    def test_not_found(self, client):
        resp = client.get("/replica-count?namespace=default&deployment=missing")
        assert resp.status_code == 404
        assert resp.get_json() == {"message": "Deployment not found", "code": 404}


class TestListDeployments:

    def test_all(self, client):
        resp = client.get("/deployments")
        assert resp.status_code == 200
        assert resp.get_json() == {
            "deployments": ["batch/worker", "default/api", "default/web"]
        }

    def test_filtered(self, client):
        resp = client.get("/deployments?namespace=default")
        assert resp.get_json() == {"deployments": ["default/api", "default/web"]}

    def test_unknown_namespace(self, client):
        resp = client.get("/deployments?namespace=nowhere")
        assert resp.get_json() == {"deployments": []}


# ── Writes ───────────────────────────────────────────────────────────


class TestPostReplicaCount:

    URL = "/replica-count?namespace=default&deployment=web"

    def test_scales(self, client, seeded_store):
        resp = client.post(self.URL, json={"replicas": 5})
        assert resp.status_code == 200
        assert resp.get_json() == {"replicaCount": 5}
        assert seeded_store.get("default", "web").replicas == 5

    def test_body_without_content_type(self, client, seeded_store):
        resp = client.post(self.URL, data='{"replicas": 5}')
        assert resp.status_code == 200
        assert resp.get_json() == {"replicaCount": 5}
        assert seeded_store.get("default", "web").replicas == 5

    def test_negative(self, client, seeded_store):
        resp = client.post(self.URL, json={"replicas": -1})
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Replica count must be non-negative"
        assert seeded_store.scale_calls == []

    @pytest.mark.parametrize("body", [
        {"count": 2},
        {"replicas": "2"},
        {"replicas": 1.5},
        [2],
    ])
    def test_invalid_body(self, client, seeded_store, body):
        resp = client.post(self.URL, json=body)
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Invalid request body"
        assert seeded_store.scale_calls == []

    def test_malformed_json(self, client):
        resp = client.post(self.URL, data="{not json", content_type="application/json")
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Invalid request body"

    def test_missing_parameters(self, client):
        resp = client.post("/replica-count?namespace=default", json={"replicas": 1})
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Both namespace and deployment must be specified"

    def test_not_found(self, client):
        resp = client.post(
            "/replica-count?namespace=default&deployment=missing", json={"replicas": 1}
        )
        assert resp.status_code == 404
        assert resp.get_json() == {"message": "Deployment not found", "code": 404}

    @pytest.mark.parametrize("error", [
        StoreConflictError("object has been modified"),
        StoreTimeoutError("deadline exceeded"),
        StoreError("forbidden"),
    ])
    def test_write_failures(self, client, seeded_store, error):
        seeded_store.inject_failure("update_scale", error)
        resp = client.post(self.URL, json={"replicas": 2})
        assert resp.status_code == 500
        assert resp.get_json() == {"message": "Failed to update deployment scale", "code": 500}


# ── Metrics & errors ─────────────────────────────────────────────────


class TestMetrics:

    def test_prometheus_text(self, client):
        client.get("/replica-count?namespace=default&deployment=web")
        resp = client.get("/metrics")

        assert resp.status_code == 200
        assert resp.mimetype == "text/plain"
        body = resp.get_data(as_text=True)
        assert "scaler_mirror_objects 3" in body
        assert 'scaler_http_requests_total{method="GET",status="200"} 1' in body


class TestErrorEnvelope:

    def test_unknown_route(self, client):
        resp = client.get("/nope")
        assert resp.status_code == 404
        assert resp.get_json() == {"message": "Not found", "code": 404}

    def test_method_not_allowed(self, client):
        resp = client.delete("/replica-count")
        assert resp.status_code == 405
        assert resp.get_json()["code"] == 405


class TestInFlightTracking:

    def test_counter_returns_to_zero(self, app, client):
        client.get("/deployments")
        assert app.config["IN_FLIGHT"].count == 0
        assert app.config["IN_FLIGHT"].wait_idle(0) is True
